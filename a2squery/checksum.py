# CRC32 verification for bzip2-compressed split responses.
import zlib

from .errors import ChecksumMismatchError

U32_MASK = 0xFFFFFFFF

def u32(x: int) -> int:
    return x & U32_MASK

def as_i32(x: int) -> int:
    """0..2^32-1 -> -2^31..2^31-1, the way the checksum is logged by most tools."""
    x = u32(x)
    return x - (1 << 32) if x & 0x80000000 else x

def crc32(data: bytes) -> int:
    return u32(zlib.crc32(data))

def verify_checksum(data: bytes, expected: int) -> int:
    """
    Checks the CRC32 of the decompressed payload against the value carried
    in the first packet of the split response. Returns the computed value.
    """
    actual = crc32(data)
    if actual != u32(expected):
        raise ChecksumMismatchError(u32(expected), actual)
    return actual
