"""Custom exception hierarchy for vidrelay.

All exceptions that cross layer boundaries must inherit from
:class:`VidRelayError`.  Raw third-party exceptions (httpx, OS errors,
subprocess failures) must NEVER propagate beyond the infrastructure
layer; they must be caught and re-raised as a typed subclass defined
here.

Hierarchy
---------
VidRelayError
├── InvalidURLError
│   └── UnsupportedPlatformError
├── ExtractionFailedError
├── LinkResolutionError
├── UpstreamFetchError
├── TranscodeError
├── StreamInterruptedError
└── EnvironmentError
    └── ToolNotFoundError
"""

from __future__ import annotations


class VidRelayError(Exception):
    """Base exception for all vidrelay errors.

    Every user-visible error condition must map to a subclass of this
    exception so that the CLI and HTTP error boundaries can render a
    clean message without leaking internal stack traces.
    """

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint: str | None = hint
        """Optional actionable guidance shown below the error message."""


# --- URL validation --------------------------------------------------------

class InvalidURLError(VidRelayError):
    """Raised when the provided URL fails validation."""


class UnsupportedPlatformError(InvalidURLError):
    """Raised when the URL does not belong to any supported platform."""


# --- Metadata / extraction -------------------------------------------------

class ExtractionFailedError(VidRelayError):
    """Raised when every metadata tier failed without a usable fallback.

    ``diagnostics`` carries the raw stderr of the last tool invocation
    so that callers can classify the failure.
    """

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        diagnostics: str = "",
    ) -> None:
        super().__init__(message, hint=hint)
        self.diagnostics: str = diagnostics


# --- Download link resolution ----------------------------------------------

class LinkResolutionError(VidRelayError):
    """Raised when no media URL could be obtained after the retry ladder."""

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        diagnostics: str = "",
    ) -> None:
        super().__init__(message, hint=hint)
        self.diagnostics: str = diagnostics


# --- Streaming -------------------------------------------------------------

class UpstreamFetchError(VidRelayError):
    """Raised when the resolved media URL is unreachable or non-2xx."""

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.status_code: int | None = status_code


class TranscodeError(VidRelayError):
    """Raised when the tool exits non-zero while remuxing or extracting audio."""

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        diagnostics: str = "",
    ) -> None:
        super().__init__(message, hint=hint)
        self.diagnostics: str = diagnostics


class StreamInterruptedError(VidRelayError):
    """Raised when the relay is cut after the response has started."""


# --- Environment / tooling -------------------------------------------------

class EnvironmentError(VidRelayError):
    """Raised when a required runtime dependency is not available."""


class ToolNotFoundError(EnvironmentError):
    """Raised when an external binary (yt-dlp, ffmpeg) is not on PATH."""


def append_ytdlp_upgrade_suggestion(hint: str) -> str:
    """Append yt-dlp upgrade guidance to an existing hint text.

    The suggestion is appended only once and preserves the original
    hint content verbatim.
    """
    marker = "Also try updating yt-dlp:"
    if marker in hint:
        return hint
    return "\n".join(
        (
            hint,
            marker,
            "    pip install --upgrade yt-dlp",
        )
    )
