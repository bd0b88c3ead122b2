from .capture import CapturedResponse, replay_capture
from .errors import (
    A2SError,
    ChecksumMismatchError,
    DecodeError,
    DecompressionError,
    InvalidResponseError,
    QueryTimeoutError,
    RetryExhaustedError,
    UnknownResponseTypeError,
)
from .models import ExtraData, GoldSourceInfo, ModInfo, Player, ServerInfo
from .source import Source, query_info, query_players, query_rules

__version__ = "0.1.0"
