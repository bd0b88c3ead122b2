# capture - Decode A2S responses from a pcap/pcapng capture instead of a live socket
import socket
from dataclasses import dataclass
from typing import Any

import dpkt

from .decoders import parse_response
from .errors import A2SError
from .reassembly import MULTI_PACKET_HEADER, SINGLE_PACKET_HEADER, SplitPacketAssembler

PCAPNG_MAGIC = b'\x0A\x0D\x0D\x0A'

# Client -> server requests and server challenges carry no result
SKIPPED_HEADERS = (0x54, 0x55, 0x56, 0x41)


@dataclass(frozen=True)
class CapturedResponse:
    timestamp: float
    source: str
    destination: str
    result: Any


def _open_reader(f):
    magic = f.read(4)
    f.seek(0)
    if magic == PCAPNG_MAGIC:
        return dpkt.pcapng.Reader(f)
    return dpkt.pcap.Reader(f)


def _udp_datagrams(pcap):
    for ts, buf in pcap:
        try:
            eth = dpkt.ethernet.Ethernet(buf)
        except dpkt.dpkt.UnpackError:
            continue
        ip = eth.data
        if not isinstance(ip, (dpkt.ip.IP, dpkt.ip6.IP6)): continue
        udp = ip.data
        if not isinstance(udp, dpkt.udp.UDP): continue

        family = socket.AF_INET6 if isinstance(ip, dpkt.ip6.IP6) else socket.AF_INET
        src = socket.inet_ntop(family, ip.src)
        dst = socket.inet_ntop(family, ip.dst)
        if family == socket.AF_INET6:
            src, dst = f"[{src}]", f"[{dst}]"
        yield ts, f"{src}:{udp.sport}", f"{dst}:{udp.dport}", udp.sport, bytes(udp.data)


def replay_capture(path, port=None, debug=False):
    """
    Yields a CapturedResponse for every complete A2S response found in the
    capture at `path`, in capture order. When `port` is given only datagrams
    sent from that port are considered.
    """
    # Key: (source, destination) -> SplitPacketAssembler for the response in progress.
    # A new response ID or a single packet response on the flow drops what was pending.
    flows = {}

    with open(path, 'rb') as f:
        pcap = _open_reader(f)

        for ts, source, destination, sport, data in _udp_datagrams(pcap):
            if port is not None and sport != port:
                continue

            marker = data[:4]
            if marker == SINGLE_PACKET_HEADER:
                if data[4:5] and data[4] in SKIPPED_HEADERS:
                    continue
                if flows.pop((source, destination), None) is not None and debug:
                    print(f"[Capture] {source} -> {destination}: dropped incomplete split response")
                payload = data
            elif marker == MULTI_PACKET_HEADER:
                key = (source, destination)
                assembler = flows.get(key)
                if assembler is None:
                    assembler = flows[key] = SplitPacketAssembler(debug=debug)
                try:
                    payload = assembler.ingest(data)
                except A2SError as e:
                    if debug:
                        print(f"[Capture] {source} -> {destination}: dropped split response: {e}")
                    del flows[key]
                    continue
                if payload is None:
                    continue
                del flows[key]
            else:
                continue

            try:
                result = parse_response(payload, verbose=debug)
            except A2SError as e:
                if debug:
                    print(f"[Capture] {source} -> {destination}: undecodable response: {e}")
                continue

            yield CapturedResponse(timestamp=ts, source=source, destination=destination, result=result)
