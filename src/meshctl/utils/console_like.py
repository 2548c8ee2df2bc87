"""Reporter seam between the deployment core and whatever displays progress."""

from __future__ import annotations

from typing import Protocol

from loguru import logger
from rich.console import ConsoleRenderable


class ConsoleLike(Protocol):
    """Progress sink used by deployers.

    ``print`` carries command output (status tables, log lines) verbatim;
    the other methods carry one-line progress messages.
    """

    def print(self, msg: ConsoleRenderable | str | None = None) -> None: ...

    def info(self, msg: str) -> None: ...

    def warn(self, msg: str) -> None: ...

    def error(self, msg: str) -> None: ...

    def ok(self, msg: str) -> None: ...


class LoguruConsole:
    """Reports progress through loguru when no CLI console is attached.

    Command output still goes to stdout so it can be piped.
    """

    def print(self, msg: ConsoleRenderable | str | None = None) -> None:
        print("" if msg is None else msg)

    def info(self, msg: str) -> None:
        logger.info(msg)

    def warn(self, msg: str) -> None:
        logger.warning(msg)

    def error(self, msg: str) -> None:
        logger.error(msg)

    def ok(self, msg: str) -> None:
        logger.success(msg)


def coalesce_console(console: ConsoleLike | None) -> ConsoleLike:
    return LoguruConsole() if console is None else console
