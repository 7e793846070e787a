"""Tests for external-tool argument construction (core/tool_args.py)."""

from __future__ import annotations

from pathlib import Path

from vidrelay.config import Settings
from vidrelay.core.format_selector import AUDIO_SELECTOR
from vidrelay.core.models import PlatformId
from vidrelay.core.tool_args import (
    metadata_args,
    origin_for,
    referer_for,
    resolve_url_args,
    transcode_args,
)

URL = "https://www.youtube.com/watch?v=abc123"


def _value_after(args: list[str], flag: str) -> str:
    return args[args.index(flag) + 1]


class TestReferers:
    def test_known_platform(self) -> None:
        assert referer_for(PlatformId.VIMEO) == "https://vimeo.com/"
        assert origin_for(PlatformId.VIMEO) == "https://vimeo.com"

    def test_unknown_platform(self) -> None:
        assert referer_for(PlatformId.UNKNOWN) is None
        assert origin_for(PlatformId.UNKNOWN) is None


class TestMetadataArgs:
    def test_shape(self) -> None:
        settings = Settings()
        args = metadata_args(URL, PlatformId.YOUTUBE, settings)
        assert args[:2] == ["--dump-json", "--no-download"]
        assert args[-1] == URL
        assert "--no-playlist" in args
        assert _value_after(args, "--user-agent") == settings.user_agent
        assert "Referer:https://www.youtube.com/" in args

    def test_cookie_file_wins_over_browser(self) -> None:
        settings = Settings(cookies_file=Path("/tmp/c.txt"), cookies_from_browser="firefox")
        args = metadata_args(URL, PlatformId.YOUTUBE, settings)
        assert _value_after(args, "--cookies") == str(Path("/tmp/c.txt"))
        assert "--cookies-from-browser" not in args

    def test_browser_cookies(self) -> None:
        args = metadata_args(URL, PlatformId.YOUTUBE, Settings(cookies_from_browser="chrome"))
        assert _value_after(args, "--cookies-from-browser") == "chrome"


class TestResolveUrlArgs:
    def test_video_selector(self) -> None:
        args = resolve_url_args(URL, PlatformId.YOUTUBE, Settings(), selector="best")
        assert args[0] == "--get-url"
        assert _value_after(args, "--format") == "best"
        assert "--extract-audio" not in args
        assert "--force-generic-extractor" not in args
        assert args[-1] == URL

    def test_audio_ignores_selector(self) -> None:
        args = resolve_url_args(
            URL, PlatformId.YOUTUBE, Settings(), selector="best", audio_only=True,
        )
        assert _value_after(args, "--format") == AUDIO_SELECTOR
        assert _value_after(args, "--audio-format") == "mp3"
        assert args.count("--format") == 1

    def test_force_generic(self) -> None:
        args = resolve_url_args(
            URL, PlatformId.VIMEO, Settings(), selector=None, force_generic=True,
        )
        assert "--force-generic-extractor" in args
        assert "--format" not in args
        assert args[-1] == URL


class TestTranscodeArgs:
    def _args(self, tmp_path: Path, **overrides) -> list[str]:
        options = {
            "output_dir": tmp_path,
            "stem": "media",
            "quality": "720p HD",
            "container": "mp4",
            "audio_only": False,
            "compatible": False,
        }
        options.update(overrides)
        return transcode_args(URL, PlatformId.TIKTOK, Settings(), **options)

    def test_video(self, tmp_path: Path) -> None:
        args = self._args(tmp_path)
        assert _value_after(args, "--output") == str(tmp_path / "media.%(ext)s")
        assert _value_after(args, "--merge-output-format") == "mp4"
        assert _value_after(args, "--print") == "after_move:filepath"
        assert "--remux-video" not in args
        assert args[-1] == URL

    def test_compatible_remuxes(self, tmp_path: Path) -> None:
        args = self._args(tmp_path, compatible=True)
        assert _value_after(args, "--remux-video") == "mp4"
        assert "[vcodec^=avc1]" in _value_after(args, "--format")

    def test_audio(self, tmp_path: Path) -> None:
        args = self._args(tmp_path, container="m4a", audio_only=True)
        assert "--extract-audio" in args
        assert _value_after(args, "--audio-format") == "m4a"
        assert "--merge-output-format" not in args

    def test_audio_with_video_container_extracts_mp3(self, tmp_path: Path) -> None:
        args = self._args(tmp_path, quality="Audio Only", audio_only=True)
        assert _value_after(args, "--audio-format") == "mp3"
