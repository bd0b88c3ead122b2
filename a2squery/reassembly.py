import bz2

from .checksum import as_i32, verify_checksum
from .errors import DecompressionError
from .utils import BinaryReader

# ==================================================================================
# A2S SPLIT RESPONSE REASSEMBLER
# ==================================================================================
#
# Responses too large for one datagram arrive as several, each starting with
# 0xFFFFFFFE. The header that follows differs by engine and is never declared,
# so it is inferred from the bytes themselves.
#
# DATA FORMAT SUMMARY:
# --------------------
# 1. Source (Orange Box and later):
#    [Header: 4] 0xFFFFFFFE
#    [ID: 4]     bit 31 set -> payload is bzip2 compressed
#    [Total: 1] [Number: 1]
#    [Size: 2]   max packet size before splitting
#    [DecompressedSize: 4] [CRC32: 4]   (packet 0 of a compressed response only)
#
# 2. Source (before Orange Box):
#    Same as 1 without the Size field. Detected when packet 0 carries the
#    0xFFFFFFFF payload prefix right where Size would be, or, for compressed
#    responses, when bzip2 fails under the Orange Box layout.
#
# 3. GoldSource:
#    [Header: 4] [ID: 4]
#    [Packet: 1] high nibble = number, low nibble = total
#    Detected when 0xFFFFFFFF follows directly after that single byte.
#
# A detected dialect is never undone. On detection every raw datagram buffered
# so far is parsed again from scratch under the corrected layout.
# ==================================================================================

SINGLE_PACKET_HEADER = b'\xFF\xFF\xFF\xFF'
MULTI_PACKET_HEADER = b'\xFF\xFF\xFF\xFE'

COMPRESSED_FLAG = 0x80000000

GOLDSOURCE_PAYLOAD_OFFSET = 9
SOURCE_PAYLOAD_OFFSET = 10
SIZE_FIELD_LEN = 2
COMPRESSION_FIELDS_LEN = 8


class SplitPacketAssembler:
    """
    Buffers the raw datagrams of one split response until all have arrived,
    then returns the joined (and, if flagged, decompressed and verified) payload.
    """
    def __init__(self, debug=False):
        self.debug = debug
        # Every raw datagram seen, replayed in arrival order on reload
        self.received = []
        # Key: packet number -> raw datagram
        self.packets = {}
        self.response_id = None
        self.total = 0
        self.compressed = False
        self.checksum = 0
        self.goldsource = False
        self.orange_box = True

    def _trace(self, message):
        if self.debug:
            print(f"[Packet] {message}")

    def ingest(self, message: bytes) -> bytes | None:
        """
        Takes one 0xFFFFFFFE datagram. Returns the complete payload once every
        packet of the response has been seen, otherwise None.
        """
        response_id = BinaryReader(message, offset=4).read_uint32()
        if self.response_id is not None and response_id != self.response_id:
            self._trace(f"New response ID 0x{response_id:08X}, dropping {len(self.received)} stale datagrams")
            self.received = []
            self.packets = {}
            self.total = 0
            self.checksum = 0
        self.response_id = response_id

        self.received.append(message)
        return self._process(message)

    def _process(self, message):
        reader = BinaryReader(message, offset=4)
        response_id = reader.read_uint32()
        self.compressed = (response_id & COMPRESSED_FLAG) != 0

        if not self.goldsource and len(message) < SOURCE_PAYLOAD_OFFSET:
            # Too short for a Source header, kept raw until packet 0 settles the dialect
            return None

        if not self.goldsource:
            start = GOLDSOURCE_PAYLOAD_OFFSET
            if message[start:start + 4] == SINGLE_PACKET_HEADER:
                self._trace("GoldSource split response detected")
                self.goldsource = True
                return self._reload()

        if self.goldsource:
            packet_byte = reader.read_uint8()
            number = (packet_byte >> 4) & 0x0F
            total = packet_byte & 0x0F
        else:
            total = reader.read_uint8()
            number = reader.read_uint8()

            if self.orange_box and number == 0:
                start = SOURCE_PAYLOAD_OFFSET + (COMPRESSION_FIELDS_LEN if self.compressed else 0)
                if message[start:start + 4] == SINGLE_PACKET_HEADER:
                    self._trace("Pre-Orange Box split response detected")
                    self.orange_box = False
                    return self._reload()

            if self.orange_box:
                reader.skip(SIZE_FIELD_LEN)  # max packet size, unused

            if number == 0 and self.compressed:
                self._trace("Compression detected")
                reader.read_uint32()  # decompressed size, unused
                self.checksum = reader.read_uint32()
                self._trace(f"CRC32: {as_i32(self.checksum)}")

        if number >= total:
            self._trace(f"Packet number {number} out of range for {total} packets, ignored")
            return None

        if number == 0:
            self._trace(f"Total packets: {total}")

        self.total = total
        self.packets[number] = message

        if self.total and set(self.packets) == set(range(self.total)):
            return self._assemble()
        return None

    def _reload(self):
        """Re-parses every datagram received so far under the current dialect flags."""
        self._trace("Reload")
        self.packets = {}
        self.total = 0
        self.checksum = 0

        for raw in list(self.received):
            payload = self._process(raw)
            if payload is not None:
                return payload
        return None

    def _fragment(self, number, packet):
        if self.goldsource:
            return packet[GOLDSOURCE_PAYLOAD_OFFSET:]

        start = SOURCE_PAYLOAD_OFFSET
        if self.orange_box:
            start += SIZE_FIELD_LEN
        if number == 0 and self.compressed:
            start += COMPRESSION_FIELDS_LEN
        return packet[start:]

    def _assemble(self):
        payload = b''.join(self._fragment(number, self.packets[number]) for number in sorted(self.packets))
        if self.debug:
            print(f"[Payload] {payload.hex().upper()}")

        if not self.compressed:
            return payload

        try:
            payload = bz2.decompress(payload)
        except (OSError, ValueError, EOFError) as e:
            if not self.orange_box:
                raise DecompressionError(f"bzip2 decompression failed: {e}") from e
            self._trace("bzip2 failed, retrying as pre-Orange Box")
            self.orange_box = False
            return self._reload()

        if self.debug:
            print(f"[Payload] Decompressed: {payload.hex().upper()}")

        verify_checksum(payload, self.checksum)
        return payload
