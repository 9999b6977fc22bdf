"""Pytest configuration helpers."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest


def _ensure_repo_on_path() -> None:
    """Make `mobile.segscribe` importable without installing the package."""
    repo_root = Path(__file__).resolve().parents[1]
    path_str = str(repo_root)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)


_ensure_repo_on_path()


@pytest.fixture
def make_settings(tmp_path):
    """Build PipelineSettings rooted in the test's tmp dir."""
    from mobile.segscribe.config import PipelineSettings

    def _make(**overrides):
        values = {"data_dir": str(tmp_path / "data"), "api_key": "k", "language": None}
        values.update(overrides)
        return PipelineSettings(**values)

    return _make
