"""Infrastructure: external binary detection and platform guidance.

Locates the extraction tool (yt-dlp) and ffmpeg, and provides
platform-specific installation guidance when one is missing.

Rules
-----
* Detection via :func:`shutil.which` and :func:`importlib.util.find_spec`
  only, no subprocess.
* No permanent PATH modification.
* No automatic installation.
* No ``print()``; callers handle user-facing output.
"""

from __future__ import annotations

import importlib.util
import platform
import shutil
import sys
from dataclasses import dataclass
from pathlib import Path

from vidrelay.exceptions import ToolNotFoundError

YTDLP_MODULE: str = "yt_dlp"


# ---------------------------------------------------------------------------
# Detection result
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class BinaryStatus:
    """Result of a detection probe for one external binary.

    Attributes
    ----------
    name : str
        The binary looked for (e.g. ``"ffmpeg"``).
    found : bool
        Whether the binary is usable.
    path : Path | None
        Absolute path to the binary, or ``None``.
    version_hint : str
        Human-readable status string (e.g. ``"found at …"`` or ``"not found"``).
    install_commands : tuple[str, ...]
        Suggested shell commands for installing the binary on the
        current platform.  Empty when it is already present.
    """

    name: str
    found: bool
    path: Path | None
    version_hint: str
    install_commands: tuple[str, ...]


# ---------------------------------------------------------------------------
# Detection logic
# ---------------------------------------------------------------------------

def detect_binary(name: str) -> BinaryStatus:
    """Probe PATH for *name*.

    Returns a :class:`BinaryStatus` regardless of whether the binary is
    present; the caller decides whether to abort or merely warn.
    """
    result = shutil.which(name)
    if result is not None:
        resolved = Path(result).resolve()
        return BinaryStatus(
            name=name,
            found=True,
            path=resolved,
            version_hint=f"found at {resolved}",
            install_commands=(),
        )
    return BinaryStatus(
        name=name,
        found=False,
        path=None,
        version_hint="not found",
        install_commands=_platform_install_commands(name),
    )


def detect_ffmpeg() -> BinaryStatus:
    return detect_binary("ffmpeg")


def ytdlp_module_available() -> bool:
    return importlib.util.find_spec(YTDLP_MODULE) is not None


def resolve_tool_command(tool_binary: str = "yt-dlp") -> tuple[str, ...]:
    """Return the command prefix used to run the extraction tool.

    Prefers *tool_binary* on PATH, then the installed ``yt_dlp`` package
    run through the current interpreter.  When neither exists the bare
    name is returned and the spawn reports it as not found.
    """
    status = detect_binary(tool_binary)
    if status.found and status.path is not None:
        return (str(status.path),)
    if tool_binary == "yt-dlp" and ytdlp_module_available():
        return (sys.executable, "-m", YTDLP_MODULE)
    return (tool_binary,)


def require_tool_command(tool_binary: str = "yt-dlp") -> tuple[str, ...]:
    """Like :func:`resolve_tool_command` but raise when nothing is usable."""
    command = resolve_tool_command(tool_binary)
    if len(command) == 1 and shutil.which(command[0]) is None:
        raise ToolNotFoundError(
            f"{tool_binary} is not installed or not on PATH.",
            hint="Install with: pip install yt-dlp",
        )
    return command


# ---------------------------------------------------------------------------
# Platform-specific install guidance
# ---------------------------------------------------------------------------

def _platform_install_commands(name: str) -> tuple[str, ...]:
    """Return install commands for *name* appropriate for the current OS."""
    if name == "yt-dlp":
        return ("pip install --upgrade yt-dlp",)

    system = platform.system().lower()
    if system == "windows":
        return (
            f"winget install {'Gyan.FFmpeg' if name == 'ffmpeg' else name}",
            f"choco install {name}",
        )
    if system == "linux":
        return (
            f"sudo apt install {name}",
            f"sudo dnf install {name}",
            f"sudo pacman -S {name}",
        )
    if system == "darwin":
        return (f"brew install {name}",)
    return (f"Please install {name} from its project website",)
