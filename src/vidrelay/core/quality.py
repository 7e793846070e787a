"""Pure quality-ladder construction, merging, and sorting logic.

Every function in this module is a **pure** transformation: no I/O,
no side effects, fully deterministic, and trivially unit-testable.

Pipeline order (enforced by :func:`build_quality_ladder`):

1. **Filter**: keep only declared streams that carry video.
2. **Label**: map each stream height onto a ladder label.
3. **Merge**: at most one option per label (see :func:`merge_qualities`).
4. **Sort**: resolution desc, audio-only last.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from vidrelay.core.models import AUDIO_ONLY_LABEL, QualityOption

GENERIC_VIDEO_LABELS: tuple[str, ...] = (
    "4K (2160p)",
    "2K (1440p)",
    "1080p HD",
    "720p HD",
    "480p",
    "360p",
)

AUDIO_ONLY_OPTION = QualityOption(label=AUDIO_ONLY_LABEL, container="mp3")

GENERIC_LADDER: tuple[QualityOption, ...] = (
    *(QualityOption(label=label, container="mp4") for label in GENERIC_VIDEO_LABELS),
    AUDIO_ONLY_OPTION,
)
"""Placeholder ladder offered when only a lightweight probe succeeded."""

_VIDEO_CONTAINERS: frozenset[str] = frozenset({"mp4", "webm"})
_HEIGHT_PATTERN = re.compile(r"(\d{3,4})p")


# ---------------------------------------------------------------------------
# Labels
# ---------------------------------------------------------------------------

def label_for_height(height: int) -> str:
    """Return the ladder label for a vertical resolution."""
    if height >= 2160:
        return "4K (2160p)"
    if height >= 1440:
        return "2K (1440p)"
    if height >= 1080:
        return "1080p HD"
    if height >= 720:
        return "720p HD"
    return f"{height}p"


def height_from_label(label: str) -> int | None:
    """Extract the resolution encoded in *label* (``"1080p HD"`` → 1080).

    ``"4K"`` and ``"2K"`` without an explicit ``NNNNp`` suffix map to
    2160 and 1440.  Returns ``None`` when the label carries no height.
    """
    match = _HEIGHT_PATTERN.search(label)
    if match is not None:
        return int(match.group(1))
    upper = label.upper()
    if "4K" in upper:
        return 2160
    if "2K" in upper:
        return 1440
    return None


# ---------------------------------------------------------------------------
# 1-2. Filter and label
# ---------------------------------------------------------------------------

def _as_int(value: object) -> int | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def option_from_format(raw: Mapping[str, Any]) -> QualityOption | None:
    """Convert one declared stream into a ladder option.

    Returns ``None`` for streams without a height, without video, or
    without a container extension.
    """
    height = _as_int(raw.get("height"))
    ext = raw.get("ext")
    if not height or not ext or raw.get("vcodec") == "none":
        return None
    filesize = _as_int(raw.get("filesize"))
    if filesize is None:
        filesize = _as_int(raw.get("filesize_approx"))
    ext_str = str(ext).lower()
    return QualityOption(
        label=label_for_height(height),
        container=ext_str if ext_str in _VIDEO_CONTAINERS else "mp4",
        filesize=filesize or None,
    )


# ---------------------------------------------------------------------------
# 3. Merge
# ---------------------------------------------------------------------------

def _should_replace(existing: QualityOption, incoming: QualityOption) -> bool:
    if not existing.size_known and incoming.size_known:
        return True
    return incoming.container == "mp4" and existing.container != "mp4"


def merge_qualities(
    existing: Iterable[QualityOption],
    incoming: Iterable[QualityOption],
) -> tuple[QualityOption, ...]:
    """Merge *incoming* options into *existing*, keyed by label.

    An incoming option wins when its label is new, when it knows a size
    the existing entry does not, or when it is mp4 and the existing
    entry is not.  The result is sorted and merging the same input twice
    yields the same ladder as merging it once.
    """
    by_label: dict[str, QualityOption] = {opt.label: opt for opt in existing}
    for opt in incoming:
        current = by_label.get(opt.label)
        if current is None or _should_replace(current, opt):
            by_label[opt.label] = opt
    return sort_qualities(by_label.values())


# ---------------------------------------------------------------------------
# 4. Sort
# ---------------------------------------------------------------------------

def _sort_key(opt: QualityOption) -> tuple[int, int]:
    """Audio-only last, otherwise highest resolution first."""
    if opt.is_audio_only:
        return (1, 0)
    height = height_from_label(opt.label) or 0
    return (0, -height)


def sort_qualities(options: Iterable[QualityOption]) -> tuple[QualityOption, ...]:
    return tuple(sorted(options, key=_sort_key))


# ---------------------------------------------------------------------------
# Composite pipeline
# ---------------------------------------------------------------------------

def build_quality_ladder(
    formats: Sequence[Mapping[str, Any]],
) -> tuple[QualityOption, ...]:
    """Build the real ladder from a tool's declared stream list.

    The audio-only option is always present; video labels only appear
    when a matching stream was declared.
    """
    options = (option_from_format(raw) for raw in formats if isinstance(raw, Mapping))
    return merge_qualities((AUDIO_ONLY_OPTION,), (opt for opt in options if opt is not None))


def is_generic_ladder(options: Sequence[QualityOption]) -> bool:
    return tuple(options) == GENERIC_LADDER


# ---------------------------------------------------------------------------
# Presentation helpers
# ---------------------------------------------------------------------------

_SIZE_UNITS: tuple[str, ...] = ("B", "KB", "MB", "GB")


def format_file_size(filesize: int | None) -> str:
    """Render bytes as ``"45.3 MB"``, or ``"Unknown"``."""
    if not filesize:
        return "Unknown"
    value = float(filesize)
    unit = 0
    while value >= 1024 and unit < len(_SIZE_UNITS) - 1:
        value /= 1024
        unit += 1
    return f"{value:.1f} {_SIZE_UNITS[unit]}"


def format_duration(seconds: float | int | None) -> str:
    """Render seconds as ``MM:SS`` or ``HH:MM:SS``; ``"00:00"`` when unknown."""
    if not seconds or seconds < 0:
        return "00:00"
    total = int(seconds)
    hours, rem = divmod(total, 3600)
    minutes, secs = divmod(rem, 60)
    if hours > 0:
        return f"{hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"
