"""Shared pytest fixtures and configuration for the vidrelay test suite.

Guidelines
----------
* No internet access in any test; HTTP goes through ``httpx.MockTransport``.
* The extraction tool is replaced by :class:`fakes.FakeInvoker`; real
  subprocess tests only spawn the running Python interpreter.
* Core tests must be pure, with no side effects.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from vidrelay.config import Settings


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings with a private temp root and enrichment disabled."""
    return Settings(temp_dir=tmp_path / "work", background_enrichment=False)
