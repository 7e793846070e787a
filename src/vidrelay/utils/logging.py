"""Process-wide logging setup.

Rich's :class:`~rich.logging.RichHandler` is used when Rich is
installed; otherwise a plain stderr handler with the same level.
"""

from __future__ import annotations

import logging
import sys

_PLAIN_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

# Loggers of libraries that are chatty at INFO.
_QUIET_LOGGERS: tuple[str, ...] = ("httpx", "httpcore")


def _rich_handler() -> logging.Handler | None:
    try:
        from rich.console import Console
        from rich.logging import RichHandler
    except ModuleNotFoundError:
        return None
    return RichHandler(
        console=Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )


def configure_logging(level: str | int = "INFO") -> None:
    """Install a single root handler at *level*.

    Calling this again replaces the previous handler.
    """
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown log level: {level!r}")
        level = resolved

    handler = _rich_handler()
    if handler is None:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(_PLAIN_FORMAT))
    else:
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
