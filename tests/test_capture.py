import socket

import dpkt
import pytest

from a2squery.capture import replay_capture
from a2squery.models import ServerInfo
from a2squery.source import A2S_INFO, A2S_RULES, build_request

from conftest import challenge, info_payload, rules_payload, split_compressed, split_source

SERVER = ('10.0.0.1', 27015)
CLIENT = ('10.0.0.2', 50000)


def frame(src, dst, payload):
    udp = dpkt.udp.UDP(sport=src[1], dport=dst[1], ulen=8 + len(payload), data=payload)
    ip = dpkt.ip.IP(
        src=socket.inet_aton(src[0]),
        dst=socket.inet_aton(dst[0]),
        p=dpkt.ip.IP_PROTO_UDP,
        len=20 + 8 + len(payload),
        data=udp,
    )
    eth = dpkt.ethernet.Ethernet(
        src=b'\x00\x11\x22\x33\x44\x55',
        dst=b'\x66\x77\x88\x99\xaa\xbb',
        type=dpkt.ethernet.ETH_TYPE_IP,
        data=ip,
    )
    return bytes(eth)


def write_pcap(path, datagrams):
    with open(path, 'wb') as f:
        writer = dpkt.pcap.Writer(f)
        for ts, (src, dst, payload) in enumerate(datagrams):
            writer.writepkt(frame(src, dst, payload), ts=float(ts))
    return path


@pytest.fixture
def capture_file(tmp_path):
    rules = rules_payload([("sv_gravity", "800"), ("mp_timelimit", "30")])
    packets = split_source(rules, 16)
    datagrams = [
        (CLIENT, SERVER, build_request(A2S_INFO)),
        (SERVER, CLIENT, info_payload()),
        (CLIENT, SERVER, build_request(A2S_RULES)),
        (SERVER, CLIENT, challenge()),
        (CLIENT, SERVER, build_request(A2S_RULES, b'\x12\x34\x56\x78')),
        (SERVER, CLIENT, packets[2]),
        (SERVER, CLIENT, packets[0]),
        (('10.0.0.9', 9999), CLIENT, b'unrelated traffic'),
        (SERVER, CLIENT, packets[1]),
    ]
    return write_pcap(tmp_path / "a2s.pcap", datagrams)


def test_replay_decodes_responses(capture_file):
    responses = list(replay_capture(str(capture_file)))

    assert len(responses) == 2
    info, rules = responses
    assert isinstance(info.result, ServerInfo)
    assert info.result.name == "Test Server"
    assert info.source == "10.0.0.1:27015"
    assert info.destination == "10.0.0.2:50000"
    assert rules.result == {"sv_gravity": "800", "mp_timelimit": "30"}
    assert rules.timestamp == pytest.approx(8.0)


def test_replay_port_filter(capture_file):
    assert list(replay_capture(str(capture_file), port=27016)) == []
    assert len(list(replay_capture(str(capture_file), port=27015))) == 2


def test_replay_skips_broken_response(tmp_path, capsys):
    payload = rules_payload([("sv_gravity", "800")])
    bad = split_compressed(payload, 4096, crc=1)
    path = write_pcap(tmp_path / "bad.pcap", [
        (SERVER, CLIENT, bad[0]),
        (SERVER, CLIENT, info_payload()),
    ])

    responses = list(replay_capture(str(path), debug=True))

    assert [r.result.name for r in responses] == ["Test Server"]
    assert "dropped split response" in capsys.readouterr().out


def test_replay_lost_packet_does_not_leak_into_next_response(tmp_path):
    first = rules_payload([("mp_timelimit", "30"), ("sv_cheats", "0"), ("hostname", "First Response")])
    lost = split_source(first, 20, response_id=1)
    assert len(lost) >= 3
    second_payload = rules_payload([("sv_gravity", "800")])
    second = split_source(second_payload, 12, response_id=2)
    assert len(second) == 2

    path = write_pcap(tmp_path / "lost.pcap", [(SERVER, CLIENT, p) for p in [lost[0]] + lost[2:] + second])

    responses = list(replay_capture(str(path)))

    assert [r.result for r in responses] == [{"sv_gravity": "800"}]


def test_replay_single_packet_response_drops_pending_split(tmp_path, capsys):
    lost = split_source(rules_payload([("sv_gravity", "800"), ("mp_timelimit", "30")]), 16)
    path = write_pcap(tmp_path / "pending.pcap", [
        (SERVER, CLIENT, lost[0]),
        (SERVER, CLIENT, info_payload()),
        (SERVER, CLIENT, lost[1]),
    ])

    responses = list(replay_capture(str(path), debug=True))

    assert [r.result.name for r in responses] == ["Test Server"]
    assert "dropped incomplete split response" in capsys.readouterr().out
