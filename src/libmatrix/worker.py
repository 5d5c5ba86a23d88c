"""Worker entrypoint: joins the spawned group and serves controller commands."""

from __future__ import annotations

import logging
import sys
from typing import Optional

from .backend import Backend, create_backend
from .config import WorkerConfig, config_from_env
from .handlers import HANDLERS
from .protocol import COMMAND_DTYPE, Command, is_command
from .registry import Registry
from .transport import Channel, connect_to_parent

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(message)s"


class RankAdapter(logging.LoggerAdapter):
    def process(self, msg, kwargs):
        return f"[{self.extra['rank']}/{self.extra['size']}] {msg}", kwargs


class Session:
    """State one worker keeps for the lifetime of the controller session."""

    def __init__(self, channel: Channel, backend: Backend, registry: Optional[Registry] = None):
        self.channel = channel
        self.backend = backend
        self.registry = registry if registry is not None else Registry()
        self.log = RankAdapter(logger, {"rank": channel.rank, "size": channel.size})

    @property
    def rank(self) -> int:
        return self.channel.rank

    def eventloop(self) -> None:
        while True:
            self.log.debug("waiting")
            code = self.channel.bcast(COMMAND_DTYPE)
            self.log.debug("received %d", code)
            if not is_command(code):
                self.log.debug("quit")
                break
            command = Command(code)
            try:
                HANDLERS[command](self)
            except Exception as exc:
                self.log.error("%s failed: %s", command.name.lower(), exc)
                raise
        self.channel.disconnect()


def setup_logging(cfg: WorkerConfig) -> None:
    level = logging.DEBUG if cfg.debug else logging.WARNING
    logging.basicConfig(stream=sys.stdout, level=level, format=LOG_FORMAT)
    logging.getLogger("libmatrix").setLevel(level)


def worker_main():
    cfg = config_from_env()
    setup_logging(cfg)
    session = Session(connect_to_parent(), create_backend(cfg.backend))
    session.eventloop()


if __name__ == "__main__":
    worker_main()
