import struct

from .errors import DecodeError


class BinaryReader:
    def __init__(self, data, offset=0, byteorder='<'):
        self.data = data
        self.offset = offset
        self.byteorder = byteorder

    def _unpack(self, fmt, size, byteorder):
        if self.offset + size > len(self.data):
            raise DecodeError(
                f"read of {size} bytes at offset {self.offset} overruns buffer of {len(self.data)} bytes"
            )
        val = struct.unpack_from((byteorder or self.byteorder) + fmt, self.data, self.offset)[0]
        self.offset += size
        return val

    def read_int8(self):
        return self._unpack('b', 1, None)

    def read_uint8(self):
        return self._unpack('B', 1, None)

    def read_int16(self, byteorder=None):
        return self._unpack('h', 2, byteorder)

    def read_uint16(self, byteorder=None):
        return self._unpack('H', 2, byteorder)

    def read_int32(self, byteorder=None):
        return self._unpack('i', 4, byteorder)

    def read_uint32(self, byteorder=None):
        return self._unpack('I', 4, byteorder)

    def read_int64(self, byteorder=None):
        return self._unpack('q', 8, byteorder)

    def read_uint64(self, byteorder=None):
        return self._unpack('Q', 8, byteorder)

    def read_float32(self, byteorder=None):
        return self._unpack('f', 4, byteorder)

    def read_float64(self, byteorder=None):
        return self._unpack('d', 8, byteorder)

    def read_char(self):
        # Server type / environment codes are single ASCII octets
        return chr(self.read_uint8())

    def read_bytes(self, length):
        if self.offset + length > len(self.data):
            raise DecodeError(
                f"read of {length} bytes at offset {self.offset} overruns buffer of {len(self.data)} bytes"
            )
        val = self.data[self.offset:self.offset+length]
        self.offset += length
        return val

    def read_string_null(self):
        # Reads until 0x00
        end = self.data.find(b'\x00', self.offset)
        if end == -1:
            # Unterminated, take the rest of the buffer
            s = self.data[self.offset:].decode('utf-8', errors='replace')
            self.offset = len(self.data)
        else:
            s = self.data[self.offset:end].decode('utf-8', errors='replace')
            self.offset = end + 1
        return s

    def tell(self):
        return self.offset

    def position(self, offset):
        self.offset = offset

    def skip(self, length):
        self.offset += length

    def remaining(self):
        return max(len(self.data) - self.offset, 0)

    def subarray(self, start=0, end=None):
        return self.data[start:end]
