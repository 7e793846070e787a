"""CLI application entry point and command routing for vidrelay.

This module is the **sole error boundary** of the command-line process.
It catches :class:`~vidrelay.exceptions.VidRelayError`,
``KeyboardInterrupt`` and any unexpected ``Exception``, rendering a
clean message and returning well-defined exit codes.

Commands
--------
* ``vidrelay serve``         run the HTTP API with uvicorn
* ``vidrelay info <url>``    print metadata and the quality ladder
* ``vidrelay link <url>``    print the resolved media URL
* ``vidrelay doctor``        environment diagnostics
* ``vidrelay --version``
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from vidrelay.cli import exit_codes
from vidrelay.cli.console import console
from vidrelay.config import Settings
from vidrelay.exceptions import VidRelayError
from vidrelay.version import __version__


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------

def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vidrelay",
        description="Resolve media URLs from video platforms and relay them over HTTP.",
    )
    parser.add_argument(
        "-V",
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Load VIDRELAY_* settings from this .env file (default: ./.env if present).",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override VIDRELAY_LOG_LEVEL (DEBUG, INFO, WARNING, ...).",
    )

    subparsers = parser.add_subparsers(dest="command", metavar="command")

    serve = subparsers.add_parser("serve", help="Run the HTTP API server.")
    serve.add_argument("--host", default=None, help="Bind address (default from settings).")
    serve.add_argument("--port", type=int, default=None, help="Bind port (default from settings).")

    info = subparsers.add_parser("info", help="Show metadata and available qualities.")
    info.add_argument("url", help="Video page URL.")

    link = subparsers.add_parser("link", help="Print the direct media URL.")
    link.add_argument("url", help="Video page URL.")
    link.add_argument("-q", "--quality", default="720p HD", help="Quality label (default: 720p HD).")
    link.add_argument("-f", "--format", dest="container", default="mp4", help="Container (default: mp4).")

    subparsers.add_parser("doctor", help="Check the runtime environment.")
    return parser


def _load_settings(args: argparse.Namespace) -> Settings:
    from dotenv import load_dotenv

    if args.env_file is not None:
        load_dotenv(dotenv_path=args.env_file, override=False)
    else:
        load_dotenv(override=False)
    try:
        return Settings.from_env()
    except ValueError as exc:
        raise VidRelayError(f"Invalid configuration: {exc}") from exc


# ---------------------------------------------------------------------------
# Command dispatch
# ---------------------------------------------------------------------------

def _handle_serve(settings: Settings, host: str | None, port: int | None) -> int:
    import uvicorn

    from vidrelay.api.app import create_app
    from vidrelay.infra.binary_detector import require_tool_command

    require_tool_command(settings.tool_binary)
    uvicorn.run(
        create_app(settings),
        host=host or settings.host,
        port=port or settings.port,
        log_config=None,
    )
    return exit_codes.SUCCESS


async def _extract(settings: Settings, url: str):
    import httpx

    from vidrelay.pipeline import build_pipeline

    async with httpx.AsyncClient() as client:
        pipeline = build_pipeline(settings, client)
        try:
            return await pipeline.extract_metadata(url)
        finally:
            await pipeline.aclose()


async def _resolve(settings: Settings, url: str, quality: str, container: str):
    import httpx

    from vidrelay.pipeline import build_pipeline

    async with httpx.AsyncClient() as client:
        pipeline = build_pipeline(settings, client)
        return await pipeline.resolve_download_link(url, quality, container)


def _handle_info(settings: Settings, url: str) -> int:
    from vidrelay.core.quality import format_file_size

    metadata = asyncio.run(_extract(settings, url))

    console.print(f"\n[bold]{metadata.title}[/bold]")
    console.print(
        f"{metadata.platform.value} · {metadata.uploader} · {metadata.duration}"
        f" · source={metadata.source.value}"
    )
    if metadata.placeholder:
        console.print("[yellow]Demo content: the platform refused anonymous extraction.[/yellow]")

    try:
        from rich.table import Table
    except ModuleNotFoundError:
        for option in metadata.qualities:
            console.print(f"  {option.label:<12} {option.container:<5} {format_file_size(option.filesize)}")
        return exit_codes.SUCCESS

    table = Table(show_header=True, header_style="bold cyan", border_style="dim")
    table.add_column("Quality", style="bold")
    table.add_column("Format")
    table.add_column("Size", justify="right")
    for option in metadata.qualities:
        table.add_row(option.label, option.container, format_file_size(option.filesize))
    console.print(table)
    return exit_codes.SUCCESS


def _handle_link(settings: Settings, url: str, quality: str, container: str) -> int:
    resolved = asyncio.run(_resolve(settings, url, quality, container))
    if resolved.is_sample:
        console.print("[yellow]Platform refused resolution; printing the sample media URL.[/yellow]")
    # Plain stdout so the URL can be piped without wrapping.
    sys.stdout.write(resolved.media_url + "\n")
    return exit_codes.SUCCESS


def _handle_doctor(settings: Settings) -> int:
    from vidrelay.cli.doctor import run_doctor

    return run_doctor(settings)


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------

def main(argv: list[str] | None = None) -> int:
    """Run the vidrelay CLI.

    Parameters
    ----------
    argv:
        Explicit argument list.  When ``None`` (default), ``sys.argv[1:]``
        is used.

    Returns
    -------
    int
        OS process exit code.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return exit_codes.SUCCESS

    settings = _load_settings(args)

    from vidrelay.utils.logging import configure_logging

    try:
        configure_logging(args.log_level or settings.log_level)
    except ValueError as exc:
        raise VidRelayError(str(exc)) from exc

    if args.command == "doctor":
        return _handle_doctor(settings)
    if args.command == "serve":
        return _handle_serve(settings, args.host, args.port)
    if args.command == "info":
        return _handle_info(settings, args.url)
    return _handle_link(settings, args.url, args.quality, args.container)


# ---------------------------------------------------------------------------
# Script-level error boundary
# ---------------------------------------------------------------------------

def cli() -> None:
    """Top-level error boundary invoked by the console-script entry point."""
    try:
        code = main()
        sys.exit(code)
    except VidRelayError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        if exc.hint:
            console.print(f"[yellow]Hint:[/yellow] {exc.hint}")
        sys.exit(exit_codes.GENERAL_ERROR)
    except KeyboardInterrupt:
        console.print("\n[yellow]Aborted by user.[/yellow]")
        sys.exit(exit_codes.KEYBOARD_INTERRUPT)
    except Exception as exc:  # noqa: BLE001
        console.print(
            "[bold red]Unexpected error.[/bold red] "
            "Please report this issue.\n"
            f"  {type(exc).__name__}: {exc}"
        )
        sys.exit(exit_codes.UNEXPECTED_ERROR)
