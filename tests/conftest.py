import bz2
import socket
import struct
import threading
import zlib

import pytest

SINGLE = b'\xFF\xFF\xFF\xFF'
MULTI = b'\xFF\xFF\xFF\xFE'


def cstr(s):
    return s.encode('utf-8') + b'\x00'


def info_payload(name="Test Server", map_name="de_dust2", folder="cstrike",
                 game="Counter-Strike: Source", app_id=240, players=5, max_players=10,
                 bots=0, server_type='d', environment='l', visibility=0, vac=1,
                 version="1.0.0.0", protocol=17, extra=b''):
    return (SINGLE + b'I' + bytes([protocol])
            + cstr(name) + cstr(map_name) + cstr(folder) + cstr(game)
            + struct.pack('<H', app_id)
            + bytes([players, max_players, bots])
            + server_type.encode() + environment.encode()
            + bytes([visibility, vac])
            + cstr(version) + extra)


def players_payload(players, ship=None):
    body = SINGLE + b'D' + bytes([len(players)])
    for index, name, score, duration in players:
        body += bytes([index]) + cstr(name) + struct.pack('<If', score, duration)
    if ship is not None:
        for deaths, money in ship:
            body += struct.pack('<II', deaths, money)
    return body


def rules_payload(rules):
    body = SINGLE + b'E' + struct.pack('<H', len(rules))
    for key, value in rules:
        body += cstr(key) + cstr(value)
    return body


def chunks(data, size):
    return [data[i:i + size] for i in range(0, len(data), size)]


def split_source(payload, size, response_id=0x1234, orange_box=True, max_size=1248):
    parts = chunks(payload, size)
    packets = []
    for number, part in enumerate(parts):
        header = MULTI + struct.pack('<I', response_id) + bytes([len(parts), number])
        if orange_box:
            header += struct.pack('<H', max_size)
        packets.append(header + part)
    return packets


def split_compressed(payload, size, response_id=0x1234, orange_box=True, crc=None):
    data = bz2.compress(payload)
    if crc is None:
        crc = zlib.crc32(payload)
    parts = chunks(data, size)
    packets = []
    for number, part in enumerate(parts):
        header = MULTI + struct.pack('<I', response_id | 0x80000000) + bytes([len(parts), number])
        if orange_box:
            header += struct.pack('<H', 1248)
        if number == 0:
            header += struct.pack('<II', len(payload), crc)
        packets.append(header + part)
    return packets


def split_goldsource(payload, size, response_id=0x1234):
    parts = chunks(payload, size)
    return [
        MULTI + struct.pack('<I', response_id) + bytes([(number << 4) | len(parts)]) + part
        for number, part in enumerate(parts)
    ]


def challenge(token=b'\x12\x34\x56\x78'):
    return SINGLE + b'A' + token


class FakeServer:
    """
    Localhost UDP responder. `handler(request, index)` returns the datagrams
    to send back for the index-th request received.
    """
    def __init__(self, handler):
        self.handler = handler
        self.requests = []
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self.sock.bind(('127.0.0.1', 0))
        self.sock.settimeout(0.05)
        self.port = self.sock.getsockname()[1]
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def _run(self):
        while not self._stop.is_set():
            try:
                data, addr = self.sock.recvfrom(65535)
            except socket.timeout:
                continue
            except OSError:
                break
            self.requests.append(data)
            for reply in self.handler(data, len(self.requests) - 1):
                self.sock.sendto(reply, addr)

    def close(self):
        self._stop.set()
        self._thread.join(timeout=1)
        self.sock.close()


def scripted(*replies):
    """Handler answering the n-th request with replies[n], and nothing afterwards."""
    def handler(request, index):
        if index < len(replies):
            return replies[index]
        return []
    return handler


@pytest.fixture
def udp_server():
    servers = []

    def start(handler):
        server = FakeServer(handler)
        servers.append(server)
        return server

    yield start

    for server in servers:
        server.close()
