# a2squery - Query Source/GoldSource servers over A2S, or decode A2S traffic from a capture
import argparse
import dataclasses
import json
import sys

from .capture import replay_capture
from .errors import A2SError
from .models import GoldSourceInfo, ServerInfo
from .source import DEFAULT_PORT, DEFAULT_TIMEOUT, Source


def parse_address(address_str):
    """
    Parses HOST, HOST:PORT or [IPv6]:PORT.
    Returns: (host, port)
    """
    host, port = address_str, DEFAULT_PORT

    if address_str.startswith('['):
        end = address_str.find(']')
        if end == -1:
            raise argparse.ArgumentTypeError(f"unterminated '[' in address '{address_str}'")
        host = address_str[1:end]
        rest = address_str[end + 1:]
        if rest:
            if not rest.startswith(':'):
                raise argparse.ArgumentTypeError(f"bad address '{address_str}'")
            port = rest[1:]
    elif address_str.count(':') == 1:
        host, port = address_str.rsplit(':', 1)

    try:
        port = int(port)
    except ValueError:
        raise argparse.ArgumentTypeError(f"bad port in address '{address_str}'") from None
    if not (1 <= port <= 65535):
        raise argparse.ArgumentTypeError(f"port {port} is invalid, must be between 1 and 65535")
    if not host:
        raise argparse.ArgumentTypeError(f"missing host in address '{address_str}'")
    return host, port


def to_jsonable(result):
    if dataclasses.is_dataclass(result):
        return dataclasses.asdict(result)
    if isinstance(result, list):
        return [to_jsonable(r) for r in result]
    return result


def print_result(result):
    if isinstance(result, ServerInfo):
        print(f"  Name:        {result.name}")
        print(f"  Map:         {result.map}")
        print(f"  Game:        {result.game} ({result.folder}, app {result.app_id})")
        print(f"  Players:     {result.players}/{result.max_players} ({result.bots} bots)")
        print(f"  Type/Env:    {result.server_type}/{result.environment}")
        print(f"  Visibility:  {result.visibility}  VAC: {result.vac}")
        print(f"  Version:     {result.version}  Protocol: {result.protocol}")
        if result.extra_data is not None:
            for field in dataclasses.fields(result.extra_data):
                value = getattr(result.extra_data, field.name)
                if value is not None:
                    print(f"  {field.name + ':':<12} {value}")

    elif isinstance(result, GoldSourceInfo):
        print(f"  Address:     {result.address}")
        print(f"  Name:        {result.name}")
        print(f"  Map:         {result.map}")
        print(f"  Game:        {result.game} ({result.folder})")
        print(f"  Players:     {result.players}/{result.max_players} ({result.bots} bots)")
        print(f"  Type/Env:    {result.server_type}/{result.environment}")
        print(f"  Visibility:  {result.visibility}  VAC: {result.vac}")
        print(f"  Protocol:    {result.protocol}")
        if result.mod is not None:
            print(f"  Mod:         {result.mod.link} v{result.mod.version} ({result.mod.size} bytes)")

    elif isinstance(result, list):
        print(f"  Players ({len(result)}):")
        for p in result:
            line = f"    [{p.index:03}] {p.name:<32} | Score: {p.score:<6} | Time: {p.duration:.0f}s"
            if p.deaths is not None:
                line += f" | Deaths: {p.deaths} | Money: {p.money}"
            print(line)

    elif isinstance(result, dict):
        print(f"  Rules ({len(result)}):")
        for key, value in result.items():
            print(f"    {key} = {value}")


def build_parser():
    parser = argparse.ArgumentParser(prog="a2squery", description="A2S game server query tool")
    sub = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (("info", "Query server information"),
                            ("players", "Query the player list"),
                            ("rules", "Query server rules")):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("address", type=parse_address, help=f"HOST[:PORT], port defaults to {DEFAULT_PORT}")
        p.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT, help="Seconds to wait for a response")
        p.add_argument("--debug", action="store_true", help="Print sent/received datagrams and decoding decisions")
        p.add_argument("--json", action="store_true", help="Print the result as JSON")

    p = sub.add_parser("replay", help="Decode A2S responses from a .pcap/.pcapng file")
    p.add_argument("filename", help="Path to the capture file")
    p.add_argument("--port", type=int, default=None, help="Only consider datagrams sent from this port")
    p.add_argument("--debug", action="store_true", help="Print decoding decisions")
    p.add_argument("--json", action="store_true", help="Print results as JSON lines")

    return parser


def run_query(args):
    host, port = args.address
    source = Source(host, port, timeout=args.timeout, debug=args.debug)
    query = {"info": source.get_info, "players": source.get_players, "rules": source.get_rules}[args.command]
    result = query()

    if args.json:
        print(json.dumps(to_jsonable(result), ensure_ascii=False, indent=2))
    else:
        print(f"{host}:{port}")
        print_result(result)


def run_replay(args):
    count = 0
    for response in replay_capture(args.filename, port=args.port, debug=args.debug):
        count += 1
        if args.json:
            print(json.dumps({
                "timestamp": response.timestamp,
                "source": response.source,
                "destination": response.destination,
                "result": to_jsonable(response.result),
            }, ensure_ascii=False))
        else:
            print(f"\n[{response.timestamp:.6f}] {response.source} -> {response.destination}")
            print_result(response.result)

    if not args.json:
        print(f"\n{count} response(s) decoded from {args.filename}")


def main(argv=None):
    args = build_parser().parse_args(argv)

    try:
        if args.command == "replay":
            run_replay(args)
        else:
            run_query(args)
    except (A2SError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
