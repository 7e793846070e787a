"""CLI console helpers with optional Rich support.

Rich is imported lazily so that bootstrap paths (``--help``,
``--version``) keep working even when it is not installed.
"""

from __future__ import annotations

import sys
from typing import Any

from vidrelay.exceptions import EnvironmentError


def _load_rich_console_class() -> type[Any]:
    """Return ``rich.console.Console`` or raise ``EnvironmentError``."""
    try:
        from rich.console import Console
    except ModuleNotFoundError as exc:
        raise EnvironmentError(
            "rich is not installed. Install with: pip install rich",
        ) from exc
    return Console


def get_rich_console(*, stderr: bool = True) -> Any:
    console_class = _load_rich_console_class()
    return console_class(stderr=stderr)


def rich_available() -> bool:
    try:
        _load_rich_console_class()
    except EnvironmentError:
        return False
    return True


class _ConsoleProxy:
    """``print``-compatible proxy rendering through Rich when possible."""

    def __init__(self, *, stderr: bool = True) -> None:
        self._stderr = stderr

    def print(self, *objects: object) -> None:
        try:
            rich_console = get_rich_console(stderr=self._stderr)
        except EnvironmentError:
            print(*objects, file=sys.stderr if self._stderr else sys.stdout)
            return
        rich_console.print(*objects)


console = _ConsoleProxy()
