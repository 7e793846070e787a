"""Subprocess implementation of :class:`~vidrelay.core.protocols.ExternalToolInvoker`.

This module is the **only** place in the codebase that spawns the
extraction tool.  Spawn failures, exits, timeouts and cancellations are
all turned into a :class:`~vidrelay.core.models.ToolResult`; nothing
raw escapes the infrastructure boundary.

Rules
-----
* The tool runs in its own session; on timeout or cancellation the whole
  process group is killed (ffmpeg children included), then the tool is
  reaped with a bounded wait.
* Output read before a kill is kept in the result.
* Cancellation is re-raised after the kill.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shlex
import signal
from collections.abc import Sequence

from vidrelay.core.models import ToolOutcome, ToolResult

logger = logging.getLogger(__name__)

_READ_CHUNK = 64 * 1024
_POSIX = os.name == "posix"


async def _drain(stream: asyncio.StreamReader | None, sink: bytearray) -> None:
    if stream is None:
        return
    while True:
        chunk = await stream.read(_READ_CHUNK)
        if not chunk:
            return
        sink.extend(chunk)


def _decode(data: bytearray) -> str:
    return data.decode("utf-8", errors="replace")


class SubprocessToolInvoker:
    """Run the tool as ``command + args`` with :mod:`asyncio` subprocesses.

    Parameters
    ----------
    command:
        Command prefix, e.g. ``("yt-dlp",)`` or
        ``(sys.executable, "-m", "yt_dlp")``.
    default_timeout:
        Used when :meth:`run` receives no timeout.  ``None`` waits forever.
    kill_grace:
        Seconds to wait for a killed process to exit.
    """

    def __init__(
        self,
        command: Sequence[str],
        *,
        default_timeout: float | None = None,
        kill_grace: float = 5.0,
    ) -> None:
        if not command:
            raise ValueError("command must not be empty")
        self._command: tuple[str, ...] = tuple(command)
        self._default_timeout = default_timeout
        self._kill_grace = kill_grace

    @property
    def command(self) -> tuple[str, ...]:
        return self._command

    async def run(
        self,
        args: Sequence[str],
        *,
        timeout: float | None = None,
    ) -> ToolResult:
        argv = [*self._command, *args]
        logger.debug("Running %s", shlex.join(argv))

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=_POSIX,
            )
        except (FileNotFoundError, PermissionError) as exc:
            logger.error("Cannot start %s: %s", self._command[0], exc)
            return ToolResult(
                ToolOutcome.NOT_FOUND, None, "", f"{self._command[0]}: {exc}",
            )

        stdout = bytearray()
        stderr = bytearray()

        async def communicate() -> int:
            await asyncio.gather(
                _drain(process.stdout, stdout),
                _drain(process.stderr, stderr),
            )
            return await process.wait()

        effective_timeout = timeout if timeout is not None else self._default_timeout
        try:
            returncode = await asyncio.wait_for(communicate(), timeout=effective_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "%s timed out after %ss; killing pid %s",
                self._command[0], effective_timeout, process.pid,
            )
            await self._kill(process)
            return ToolResult(
                ToolOutcome.TIMEOUT,
                process.returncode,
                _decode(stdout),
                _decode(stderr),
            )
        except asyncio.CancelledError:
            logger.info("Cancelled; killing %s pid %s", self._command[0], process.pid)
            await self._kill(process)
            raise

        if returncode == 0:
            outcome = ToolOutcome.SUCCESS
        elif returncode < 0:
            outcome = ToolOutcome.KILLED
        else:
            outcome = ToolOutcome.EXIT_CODE
        if outcome is not ToolOutcome.SUCCESS:
            logger.debug("%s exited with %s", self._command[0], returncode)
        return ToolResult(outcome, returncode, _decode(stdout), _decode(stderr))

    async def _kill(self, process: asyncio.subprocess.Process) -> None:
        try:
            if _POSIX:
                os.killpg(process.pid, signal.SIGKILL)
            elif process.returncode is None:
                process.kill()
        except (ProcessLookupError, PermissionError):
            pass
        try:
            await asyncio.wait_for(process.wait(), timeout=self._kill_grace)
        except asyncio.TimeoutError:
            logger.warning(
                "pid %s did not exit within %ss of being killed",
                process.pid, self._kill_grace,
            )
