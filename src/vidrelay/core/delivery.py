"""Pure helpers for delivering media to the caller.

Filename, extension and content-type rules, the transcode policy and
the states of the streaming proxy.  Nothing here performs I/O.
"""

from __future__ import annotations

import enum
import re
from collections.abc import Collection
from dataclasses import dataclass
from pathlib import PurePosixPath
from urllib.parse import urlsplit

from vidrelay.core.format_selector import is_audio_request
from vidrelay.core.models import PlatformId


class ProxyState(str, enum.Enum):
    """Lifecycle of one streaming request.

    ``RESOLVING → (DIRECT_FETCH | TRANSCODE) → RELAYING → DONE``;
    ``ERROR`` is reachable from every state before ``RELAYING``.
    """

    RESOLVING = "resolving"
    DIRECT_FETCH = "direct_fetch"
    TRANSCODE = "transcode"
    RELAYING = "relaying"
    DONE = "done"
    ERROR = "error"


DEFAULT_STEM: str = "video"

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9_-]")
_MAX_STEM_LENGTH = 120

KNOWN_EXTENSIONS: frozenset[str] = frozenset({
    "mp4", "webm", "mkv", "mov", "flv", "3gp",
    "m4a", "mp3", "aac", "ogg", "opus", "wav",
})

CONTENT_TYPES: dict[str, str] = {
    "mp4": "video/mp4",
    "webm": "video/webm",
    "mkv": "video/x-matroska",
    "mov": "video/quicktime",
    "flv": "video/x-flv",
    "3gp": "video/3gpp",
    "m4a": "audio/mp4",
    "mp3": "audio/mpeg",
    "aac": "audio/aac",
    "ogg": "audio/ogg",
    "opus": "audio/opus",
    "wav": "audio/wav",
}

_EXTENSIONS_BY_TYPE: dict[str, str] = {mime: ext for ext, mime in CONTENT_TYPES.items()}
_EXTENSIONS_BY_TYPE.update({
    "audio/webm": "webm",
    "audio/mp3": "mp3",
    "audio/x-m4a": "m4a",
})


def sanitize_filename(title: str | None) -> str:
    """Reduce *title* to ``[A-Za-z0-9_-]``; other characters become ``_``.

    >>> sanitize_filename("Cats & Dogs!")
    'Cats___Dogs_'
    """
    if not title or not title.strip():
        return DEFAULT_STEM
    return _UNSAFE_FILENAME_CHARS.sub("_", title.strip())[:_MAX_STEM_LENGTH]


def extension_from_url(media_url: str) -> str | None:
    suffix = PurePosixPath(urlsplit(media_url).path).suffix.lower().lstrip(".")
    return suffix if suffix in KNOWN_EXTENSIONS else None


def extension_from_content_type(content_type: str | None) -> str | None:
    if not content_type:
        return None
    mime = content_type.split(";", 1)[0].strip().lower()
    return _EXTENSIONS_BY_TYPE.get(mime)


def choose_extension(media_url: str, content_type: str | None, container: str) -> str:
    """Pick the download extension.

    Order: upstream URL path, then upstream content type, then the
    requested container.
    """
    return (
        extension_from_url(media_url)
        or extension_from_content_type(content_type)
        or container.lower()
    )


def content_type_for(extension: str) -> str:
    return CONTENT_TYPES.get(extension.lower(), "application/octet-stream")


_SINGLE_RANGE = re.compile(r"^bytes=(\d*)-(\d*)$")


def parse_byte_range(header: str | None, size: int) -> tuple[int, int] | None:
    """Resolve a single ``bytes=`` range against a body of *size* bytes.

    Returns the inclusive ``(start, end)`` pair, or ``None`` when the
    header is absent, multi-range, malformed or unsatisfiable.  Check
    :func:`range_not_satisfiable` first to tell the last case apart.

    >>> parse_byte_range("bytes=100-", 1000)
    (100, 999)
    >>> parse_byte_range("bytes=-100", 1000)
    (900, 999)
    """
    if not header or size <= 0:
        return None
    match = _SINGLE_RANGE.match(header.strip().replace(" ", ""))
    if match is None:
        return None
    first, last = match.groups()
    if not first and not last:
        return None
    if not first:
        length = int(last)
        if length == 0:
            return None
        return max(size - length, 0), size - 1
    start = int(first)
    end = int(last) if last else size - 1
    if start >= size or end < start:
        return None
    return start, min(end, size - 1)


def range_not_satisfiable(header: str | None, size: int) -> bool:
    """True for a well-formed single range that selects no byte of *size*.

    Such a request is answered with 416 and ``Content-Range: bytes */size``.

    >>> range_not_satisfiable("bytes=5000-", 1000)
    True
    >>> range_not_satisfiable("bytes=0-", 1000)
    False
    """
    if not header:
        return False
    match = _SINGLE_RANGE.match(header.strip().replace(" ", ""))
    if match is None:
        return False
    first, last = match.groups()
    if not first:
        return last != "" and (int(last) == 0 or size == 0)
    if last and int(last) < int(first):
        return False
    return int(first) >= size


def content_disposition(stem: str, extension: str) -> str:
    return f'attachment; filename="{stem}.{extension}"'


def should_transcode(
    platform: PlatformId,
    quality: str,
    container: str,
    *,
    compatible: bool,
    transcode_platforms: Collection[str],
) -> bool:
    """Return whether the request needs a local download-and-remux run.

    Audio requests and ``compatible`` requests always transcode; video
    requests transcode when the platform is in *transcode_platforms*.
    """
    if compatible or is_audio_request(quality, container):
        return True
    return platform.value in transcode_platforms


@dataclass(frozen=True, slots=True)
class TransferStartSignal:
    """Short-lived cookie telling the browser that the transfer began."""

    name: str
    token: str
    max_age: int
    path: str = "/"
    same_site: str = "lax"
