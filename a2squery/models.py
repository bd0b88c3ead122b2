from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ExtraData:
    port: Optional[int] = None
    steam_id: Optional[int] = None
    tv_port: Optional[int] = None
    tv_name: Optional[str] = None
    keywords: Optional[str] = None
    game_id: Optional[int] = None


@dataclass(frozen=True)
class ServerInfo:
    protocol: int
    name: str
    map: str
    folder: str
    game: str
    app_id: int
    players: int
    max_players: int
    bots: int
    server_type: str  # 'd' dedicated, 'l' listen, 'p' SourceTV relay
    environment: str  # 'l' linux, 'w' windows, 'm'/'o' mac
    visibility: int
    vac: int
    version: str
    extra_data: Optional[ExtraData] = None


@dataclass(frozen=True)
class ModInfo:
    link: str
    download_link: str
    version: int
    size: int
    type: int  # 0 single + multiplayer, 1 multiplayer only
    dll: int   # 0 Half-Life DLL, 1 own DLL


@dataclass(frozen=True)
class GoldSourceInfo:
    address: str
    name: str
    map: str
    folder: str
    game: str
    players: int
    max_players: int
    protocol: int
    server_type: str
    environment: str
    visibility: int
    mod: Optional[ModInfo]
    vac: int
    bots: int


@dataclass(frozen=True)
class Player:
    index: int
    name: str
    score: int
    duration: float
    # The Ship only
    deaths: Optional[int] = None
    money: Optional[int] = None
