"""
Pytest config.

Tests import the local `nodeguard/` package and `main.py` from the repo root. When
invoked through a global `pytest` entrypoint the root isn't reliably on sys.path
during collection, so pin it here.
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
def _clear_nodeguard_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Policy config is env driven; start every test from the built-in defaults."""
    import os

    for name in list(os.environ):
        if name.startswith("NODEGUARD_"):
            monkeypatch.delenv(name, raising=False)
