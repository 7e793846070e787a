"""``vidrelay doctor``: environment diagnostics command.

Gathers system information and renders a Rich table summarising whether
the runtime can resolve and transcode media.  Purely collects and
displays diagnostic data; no business logic resides here.
"""

from __future__ import annotations

import platform
import sys

from vidrelay.cli import exit_codes
from vidrelay.cli.console import console, rich_available
from vidrelay.config import Settings
from vidrelay.infra.binary_detector import (
    detect_binary,
    detect_ffmpeg,
    resolve_tool_command,
    ytdlp_module_available,
)
from vidrelay.version import __version__

Check = tuple[str, str, str]
"""(label, value, status) row of the doctor table."""


# ---------------------------------------------------------------------------
# Diagnostic collectors
# ---------------------------------------------------------------------------

def _vidrelay_version_check() -> Check:
    return "vidrelay", __version__, "[green]OK[/green]"


def _python_version_check() -> Check:
    version = platform.python_version()
    ok = sys.version_info[:2] >= (3, 10)
    status = "[green]OK[/green]" if ok else "[red]FAIL (>=3.10 required)[/red]"
    return "Python", version, status


def _ytdlp_check(tool_binary: str) -> Check:
    """yt-dlp must be runnable either as a binary or as a module."""
    status = detect_binary(tool_binary)
    if status.found:
        return "yt-dlp", str(status.path), "[green]OK[/green]"

    if tool_binary == "yt-dlp" and ytdlp_module_available():
        try:
            from yt_dlp.version import __version__ as ydl_ver
        except ImportError:
            ydl_ver = "unknown"
        command = " ".join(resolve_tool_command(tool_binary)[1:])
        return "yt-dlp", f"{ydl_ver} ({command})", "[green]OK[/green]"

    return "yt-dlp", "NOT INSTALLED", "[red]FAIL[/red]"


def _ffmpeg_check() -> Check:
    """ffmpeg is only needed for transcoding, so its absence is a warning."""
    status = detect_ffmpeg()
    if status.found:
        return "ffmpeg", str(status.path), "[green]OK[/green]"
    return "ffmpeg", "not found", "[yellow]WARN[/yellow]"


def _os_check() -> Check:
    system_raw = platform.system()
    system_display = {
        "Windows": "Windows",
        "Linux": "Linux",
        "Darwin": "macOS",
    }.get(system_raw, system_raw)
    value = f"{system_display} {platform.release()} ({platform.machine()})"
    return "OS", value, "[green]OK[/green]"


def _status_plain(status: str) -> str:
    for word in ("FAIL", "WARN", "OK"):
        if word in status:
            return word
    return status


def collect_checks(settings: Settings | None = None) -> list[Check]:
    settings = settings or Settings()
    return [
        _vidrelay_version_check(),
        _python_version_check(),
        _ytdlp_check(settings.tool_binary),
        _ffmpeg_check(),
        _os_check(),
    ]


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

def _print_plain_table(checks: list[Check]) -> None:
    print("\nvidrelay doctor", file=sys.stderr)
    print("=" * 56, file=sys.stderr)
    print(f"{'Component':<12} {'Value':<32} {'Status':<8}", file=sys.stderr)
    print("-" * 56, file=sys.stderr)
    for label, value, status in checks:
        print(f"{label:<12} {value:<32} {_status_plain(status):<8}", file=sys.stderr)
    print(file=sys.stderr)


def _print_rich_table(checks: list[Check]) -> None:
    from rich.table import Table

    table = Table(
        title="vidrelay doctor",
        show_header=True,
        header_style="bold cyan",
        border_style="dim",
    )
    table.add_column("Component", style="bold", min_width=12)
    table.add_column("Value", min_width=20)
    table.add_column("Status", justify="center", min_width=8)
    for label, value, status in checks:
        table.add_row(label, value, status)

    console.print()
    console.print(table)
    console.print()


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------

def run_doctor(settings: Settings | None = None) -> int:
    """Execute all diagnostic checks and render a summary table.

    Returns
    -------
    int
        :data:`exit_codes.SUCCESS` when all critical checks pass,
        :data:`exit_codes.GENERAL_ERROR` if a critical check fails.
    """
    checks = collect_checks(settings)
    has_failure = any("FAIL" in status for _, _, status in checks)
    use_rich = rich_available()

    if use_rich:
        _print_rich_table(checks)
    else:
        _print_plain_table(checks)

    ffmpeg_status = detect_ffmpeg()
    if not ffmpeg_status.found and ffmpeg_status.install_commands:
        console.print("ffmpeg is not installed; transcoding will fail.")
        console.print("Install using one of the following commands:\n")
        for cmd in ffmpeg_status.install_commands:
            console.print(f"  {cmd}")
        console.print()

    if has_failure:
        console.print("[bold red]Some checks failed.[/bold red]" if use_rich else "Some checks failed.")
        return exit_codes.GENERAL_ERROR

    console.print("[bold green]All checks passed.[/bold green]" if use_rich else "All checks passed.")
    return exit_codes.SUCCESS
