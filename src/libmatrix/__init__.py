"""Worker-side command server for distributed linear-algebra objects."""

from .config import ConfigError, clear_config, config_from_env, configure_worker, get_config
from .controller import Controller, assemble, block_partition
from .protocol import QUIT, Command
from .registry import InvalidHandle, Kind, Registry
from .transport import GroupDeadlock, ProtocolDesync, TransportError
from .worker import Session

__all__ = [
    "configure_worker",
    "config_from_env",
    "get_config",
    "clear_config",
    "ConfigError",
    "Command",
    "QUIT",
    "Controller",
    "assemble",
    "block_partition",
    "Kind",
    "Registry",
    "InvalidHandle",
    "Session",
    "TransportError",
    "GroupDeadlock",
    "ProtocolDesync",
]
