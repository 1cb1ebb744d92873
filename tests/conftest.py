"""
Pytest config.

Tests import the local `nodescope/` package and `main.py` from the repo root. When a
global `pytest` entrypoint is used without an editable install, the repo root is not
reliably on sys.path during collection, so we pin it here.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest


def _ensure_repo_root_on_syspath() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


_ensure_repo_root_on_syspath()


@pytest.fixture(autouse=True)
def _fresh_agent_config():
    """
    `load_agent_config()` is cached per process. Tests that monkeypatch the environment
    need a fresh read, and must not leak their config into other tests.
    """
    from nodescope.config import load_agent_config

    load_agent_config.cache_clear()
    yield
    load_agent_config.cache_clear()
