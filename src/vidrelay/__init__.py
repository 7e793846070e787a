"""vidrelay: media URL resolution and streaming relay.

Resolves links from supported platforms into metadata and a byte
stream, driving yt-dlp as an external subprocess.
"""

from vidrelay.version import __version__

__all__: list[str] = ["__version__"]
