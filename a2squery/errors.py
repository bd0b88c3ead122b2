class A2SError(Exception):
    pass


class QueryTimeoutError(A2SError):
    pass


class RetryExhaustedError(A2SError):
    pass


class InvalidResponseError(A2SError):
    pass


class UnknownResponseTypeError(A2SError):
    def __init__(self, header: int):
        super().__init__(f"Unknown response type: 0x{header:02X}")
        self.header = header


class DecompressionError(A2SError):
    pass


class ChecksumMismatchError(A2SError):
    def __init__(self, expected: int, actual: int):
        super().__init__(f"Checksum mismatch: expected 0x{expected:08X}, got 0x{actual:08X}")
        self.expected = expected
        self.actual = actual


class DecodeError(A2SError):
    pass
