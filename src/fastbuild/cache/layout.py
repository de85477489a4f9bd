"""Cache home and target-cache root selection."""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path

SHARED_DATA_DIR = Path("/mnt/data")


def resolve_cache_home(
    *,
    repo_root: Path,
    environ: Mapping[str, str],
    override: str | None = None,
    shared_data_dir: Path = SHARED_DATA_DIR,
) -> Path:
    """Pick the cache home: override, ``CODE_HOME``, ``CODEX_HOME``, shared data dir, repo."""
    candidate = override or environ.get("CODE_HOME") or environ.get("CODEX_HOME")
    if candidate:
        home = Path(candidate.rstrip("/") or "/")
    elif shared_data_dir.is_dir() and os.access(shared_data_dir, os.W_OK):
        home = shared_data_dir / ".code"
    else:
        home = repo_root / ".code"
    if not home.is_absolute():
        home = repo_root / home
    return home


def target_cache_root(cache_home: Path, repo_name: str) -> Path:
    return cache_home / "working" / "_target-cache" / repo_name
