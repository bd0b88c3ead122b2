"""
A2S query client for Source and GoldSource game servers.

Each query opens its own UDP socket, keeps its own reassembly state and
closes the socket before returning or raising, so a single Source (or the
module level query_* helpers) can be used from several threads at once.
"""
import socket
import time

from .decoders import parse_response
from .errors import InvalidResponseError, QueryTimeoutError, RetryExhaustedError
from .reassembly import MULTI_PACKET_HEADER, SINGLE_PACKET_HEADER, SplitPacketAssembler

# ==================================================================================
# CONFIGURATION
# ==================================================================================
DEFAULT_PORT = 27015
DEFAULT_TIMEOUT = 5.0      # seconds, for the whole exchange
MAX_RETRIES = 2            # challenge retransmissions per query
RECV_BUFFER_SIZE = 65535

A2S_INFO = 0x54
A2S_PLAYER = 0x55
A2S_RULES = 0x56
S2C_CHALLENGE = 0x41

A2S_INFO_PAYLOAD = b'Source Engine Query\x00'
NO_CHALLENGE = b'\xFF\xFF\xFF\xFF'


def build_request(header: int, challenge: bytes | None = None) -> bytes:
    request = SINGLE_PACKET_HEADER + bytes([header])

    if header == A2S_INFO:
        request += A2S_INFO_PAYLOAD

    if challenge is not None:
        request += challenge
    elif header != A2S_INFO:
        request += NO_CHALLENGE

    return request


class Source:
    """
    Queries one server over A2S.

      host     hostname or IP address
      port     query port
      timeout  seconds allowed for one complete exchange, challenge included
      debug    print every datagram and decoding decision
    """
    def __init__(self, host, port=DEFAULT_PORT, timeout=DEFAULT_TIMEOUT, debug=False):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.debug = debug

    def get_info(self):
        """Returns a ServerInfo, or a GoldSourceInfo for obsolete GoldSource servers."""
        return self._query(A2S_INFO)

    def get_players(self):
        """Returns a list of Player."""
        return self._query(A2S_PLAYER)

    def get_rules(self):
        """Returns the server cvars as a dict of name -> value."""
        return self._query(A2S_RULES)

    def _open(self):
        family, socktype, proto, _, address = socket.getaddrinfo(
            self.host, self.port, type=socket.SOCK_DGRAM)[0]
        sock = socket.socket(family, socktype, proto)
        try:
            sock.connect(address)
        except OSError:
            sock.close()
            raise
        return sock

    def _send(self, sock, request):
        if self.debug:
            print(f"[Send] {request.hex().upper()}")
        sock.send(request)

    def _receive(self, sock, deadline):
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise QueryTimeoutError("Request timed out")

        sock.settimeout(remaining)
        try:
            message = sock.recv(RECV_BUFFER_SIZE)
        except socket.timeout:
            raise QueryTimeoutError("Request timed out") from None

        if self.debug:
            print(f"[Recv] {message.hex().upper()}")
        return message

    def _query(self, header):
        deadline = time.monotonic() + self.timeout
        assembler = SplitPacketAssembler(debug=self.debug)
        retries = 0

        sock = self._open()
        try:
            self._send(sock, build_request(header))

            while True:
                message = self._receive(sock, deadline)
                marker = message[:4]

                if marker == SINGLE_PACKET_HEADER and message[4:5] == bytes([S2C_CHALLENGE]):
                    if len(message) < 9:
                        raise InvalidResponseError("Truncated challenge response")
                    if retries >= MAX_RETRIES:
                        raise RetryExhaustedError("Max retries reached while handling challenge")
                    retries += 1
                    challenge = message[5:9]
                    if self.debug:
                        print(f"[Challenge] {challenge.hex().upper()} (retry {retries}/{MAX_RETRIES})")
                    self._send(sock, build_request(header, challenge))

                elif marker == SINGLE_PACKET_HEADER:
                    return parse_response(message, verbose=self.debug)

                elif marker == MULTI_PACKET_HEADER:
                    payload = assembler.ingest(message)
                    if payload is not None:
                        return parse_response(payload, verbose=self.debug)

                else:
                    raise InvalidResponseError("Invalid response header")
        finally:
            sock.close()


def query_info(host, port=DEFAULT_PORT, timeout=DEFAULT_TIMEOUT, debug=False):
    return Source(host, port, timeout, debug).get_info()


def query_players(host, port=DEFAULT_PORT, timeout=DEFAULT_TIMEOUT, debug=False):
    return Source(host, port, timeout, debug).get_players()


def query_rules(host, port=DEFAULT_PORT, timeout=DEFAULT_TIMEOUT, debug=False):
    return Source(host, port, timeout, debug).get_rules()
