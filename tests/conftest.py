"""Shared pytest fixtures for sonarbridge tests."""

from __future__ import annotations

from pathlib import Path

import pytest


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture
def make_tree(tmp_path):
    """Create files under tmp_path from a {relative_path: content} mapping."""

    def _make(files: dict[str, str], root: Path | None = None) -> Path:
        base = root or tmp_path
        for rel, content in files.items():
            path = base / rel
            if rel.endswith("/"):
                path.mkdir(parents=True, exist_ok=True)
                continue
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content)
        return base

    return _make
