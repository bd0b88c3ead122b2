"""
Decoders for fully reassembled A2S payloads.

Every payload handed to these functions still carries the 4 byte
0xFFFFFFFF single-packet prefix, followed by the response discriminator.
"""
from .errors import UnknownResponseTypeError
from .models import ExtraData, GoldSourceInfo, ModInfo, Player, ServerInfo
from .utils import BinaryReader

A2S_INFO_RESPONSE = 0x49
A2S_INFO_GOLDSOURCE_RESPONSE = 0x6D
A2S_PLAYER_RESPONSE = 0x44
A2S_RULES_RESPONSE = 0x45

# Extra Data Flag bits, in the order their fields appear
EDF_PORT = 0x80
EDF_STEAM_ID = 0x10
EDF_SOURCE_TV = 0x40
EDF_KEYWORDS = 0x20
EDF_GAME_ID = 0x01


def parse_info(reader: BinaryReader, verbose=False) -> ServerInfo:
    """
    A2S_INFO response (header 'I').

      u8     protocol
      string name, map, folder, game
      u16    appId
      u8     players, maxPlayers, bots
      u8     serverType, environment (ASCII)
      u8     visibility, vac
      string version
      u8     extraDataFlag   (optional, only if bytes remain)
    """
    protocol = reader.read_uint8()
    name = reader.read_string_null()
    map_name = reader.read_string_null()
    folder = reader.read_string_null()
    game = reader.read_string_null()
    app_id = reader.read_uint16()
    players = reader.read_uint8()
    max_players = reader.read_uint8()
    bots = reader.read_uint8()
    server_type = reader.read_char()
    environment = reader.read_char()
    visibility = reader.read_uint8()
    vac = reader.read_uint8()
    version = reader.read_string_null()

    if verbose:
        print(f"[Info] {name} ({map_name}), protocol {protocol}")

    extra_data = None
    if reader.remaining() > 0:
        extra_data = _parse_extra_data(reader, verbose)

    return ServerInfo(
        protocol=protocol,
        name=name,
        map=map_name,
        folder=folder,
        game=game,
        app_id=app_id,
        players=players,
        max_players=max_players,
        bots=bots,
        server_type=server_type,
        environment=environment,
        visibility=visibility,
        vac=vac,
        version=version,
        extra_data=extra_data,
    )


def _parse_extra_data(reader: BinaryReader, verbose=False) -> ExtraData:
    flags = reader.read_uint8()
    if verbose:
        print(f"[Info] Extra data flag: 0x{flags:02X}")
    fields = {}

    if flags & EDF_PORT:
        fields['port'] = reader.read_uint16()

    if flags & EDF_STEAM_ID:
        fields['steam_id'] = reader.read_uint64()

    if flags & EDF_SOURCE_TV:
        fields['tv_port'] = reader.read_uint16()
        fields['tv_name'] = reader.read_string_null()

    if flags & EDF_KEYWORDS:
        fields['keywords'] = reader.read_string_null()

    if flags & EDF_GAME_ID:
        fields['game_id'] = reader.read_uint64()

    return ExtraData(**fields)


def parse_goldsource_info(reader: BinaryReader, verbose=False) -> GoldSourceInfo:
    """
    Obsolete GoldSource A2S_INFO response (header 'm').

      string address ("ip:port"), name, map, folder, game
      u8     players, maxPlayers, protocol
      u8     serverType, environment (ASCII)
      u8     visibility
      u8     mod
        string link, downloadLink     (only if mod == 1)
        u8     NULL
        u32    version, size
        u8     type, dll
      u8     vac, bots
    """
    address = reader.read_string_null()
    name = reader.read_string_null()
    map_name = reader.read_string_null()
    folder = reader.read_string_null()
    game = reader.read_string_null()
    players = reader.read_uint8()
    max_players = reader.read_uint8()
    protocol = reader.read_uint8()
    server_type = reader.read_char()
    environment = reader.read_char()
    visibility = reader.read_uint8()

    if verbose:
        print(f"[Info] GoldSource {address}: {name} ({map_name})")

    mod = None
    if reader.read_uint8() == 1:
        if verbose:
            print("[Info] Mod block present")
        link = reader.read_string_null()
        download_link = reader.read_string_null()
        reader.skip(1)
        mod = ModInfo(
            link=link,
            download_link=download_link,
            version=reader.read_uint32(),
            size=reader.read_uint32(),
            type=reader.read_uint8(),
            dll=reader.read_uint8(),
        )

    vac = reader.read_uint8()
    bots = reader.read_uint8()

    return GoldSourceInfo(
        address=address,
        name=name,
        map=map_name,
        folder=folder,
        game=game,
        players=players,
        max_players=max_players,
        protocol=protocol,
        server_type=server_type,
        environment=environment,
        visibility=visibility,
        mod=mod,
        vac=vac,
        bots=bots,
    )


def parse_players(reader: BinaryReader, verbose=False) -> list[Player]:
    """
    A2S_PLAYER response (header 'D').

      u8 count
      per player: u8 index, string name, u32 score, f32 duration
      per player: u32 deaths, u32 money   (The Ship, only if bytes remain)
    """
    count = reader.read_uint8()
    if verbose:
        print(f"[Players] Count: {count}")

    base = []
    for _ in range(count):
        index = reader.read_uint8()
        name = reader.read_string_null()
        score = reader.read_uint32()
        duration = reader.read_float32()
        base.append((index, name, score, duration))

    if reader.remaining() == 0:
        return [Player(index, name, score, duration) for index, name, score, duration in base]

    if verbose:
        print(f"[Players] {reader.remaining()} trailing bytes, reading The Ship extension")

    players = []
    for index, name, score, duration in base:
        deaths = reader.read_uint32()
        money = reader.read_uint32()
        players.append(Player(index, name, score, duration, deaths=deaths, money=money))
    return players


def parse_rules(reader: BinaryReader, verbose=False) -> dict[str, str]:
    """
    A2S_RULES response (header 'E').

      u16 count
      per rule: string name, string value
    """
    count = reader.read_uint16()
    if verbose:
        print(f"[Rules] Count: {count}")

    rules = {}
    for _ in range(count):
        key = reader.read_string_null()
        rules[key] = reader.read_string_null()
    return rules


RESPONSE_PARSERS = {
    A2S_INFO_RESPONSE: parse_info,
    A2S_INFO_GOLDSOURCE_RESPONSE: parse_goldsource_info,
    A2S_PLAYER_RESPONSE: parse_players,
    A2S_RULES_RESPONSE: parse_rules,
}


def parse_response(payload: bytes, verbose=False):
    """Routes a complete payload to its decoder by the byte after the 0xFFFFFFFF prefix."""
    reader = BinaryReader(payload, offset=4)
    header = reader.read_uint8()

    parser = RESPONSE_PARSERS.get(header)
    if parser is None:
        raise UnknownResponseTypeError(header)

    return parser(reader, verbose=verbose)
