"""Cache bucket key derivation."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from fastbuild.hashing import HasherChain, default_hasher_chain
from fastbuild.models import CacheBucket, KeyProvenance, VcsInfo

MAX_KEY_LENGTH = 120
HASH_PREFIX_LENGTH = 12
DEFAULT_KEY = "default"

_DISALLOWED = re.compile(r"[^A-Za-z0-9._-]")
_DASH_RUNS = re.compile(r"-{2,}")


@dataclass(frozen=True, slots=True)
class CacheKeyInput:
    branch: str
    worktree_root: str
    target: str | None = None
    override: str | None = None


def sanitize_cache_key(raw: str) -> str:
    """Reduce *raw* to a non-empty ``[A-Za-z0-9._-]`` name of at most 120 chars.

    Idempotent: ``sanitize_cache_key(sanitize_cache_key(x)) == sanitize_cache_key(x)``.
    """
    result = _DISALLOWED.sub("-", raw)
    result = _DASH_RUNS.sub("-", result).strip("-")
    # Truncation can expose a trailing dash; trim again so a second pass is a no-op.
    result = result[:MAX_KEY_LENGTH].strip("-")
    return result or DEFAULT_KEY


def branch_label(vcs: VcsInfo | None, *, now: datetime | None = None) -> str:
    if vcs is None or not vcs.in_repo:
        return "unknown"
    label = vcs.branch_or_ref_label
    if label and label != "HEAD":
        return label
    if vcs.short_commit:
        return f"detached-{vcs.short_commit}"
    stamp = (now or datetime.now()).strftime("%Y%m%d%H%M%S")
    return f"detached-{stamp}"


def cache_key(inputs: CacheKeyInput, *, hasher: HasherChain | None = None) -> tuple[str, KeyProvenance]:
    """Return ``(key, provenance)`` for *inputs*.

    An override is taken verbatim (sanitised); otherwise the branch label and
    worktree root are hashed independently so two worktrees on one branch
    never share a key.
    """
    provenance: KeyProvenance
    if inputs.override:
        raw = inputs.override
        provenance = "override"
    else:
        chain = hasher or default_hasher_chain()
        branch_hash = _short_hash(chain, inputs.branch)
        worktree_hash = _short_hash(chain, inputs.worktree_root)
        raw = f"{inputs.branch}-{branch_hash}-{worktree_hash}"
        provenance = "branch/worktree"
    if inputs.target:
        raw = f"{raw}-{inputs.target}"
    return sanitize_cache_key(raw), provenance


def resolve_bucket(
    inputs: CacheKeyInput,
    *,
    cache_root: Path,
    workspace: str,
    hasher: HasherChain | None = None,
) -> CacheBucket:
    key, provenance = cache_key(inputs, hasher=hasher)
    return CacheBucket(key=key, provenance=provenance, directory=cache_root / key / workspace)


def _short_hash(chain: HasherChain, value: str) -> str:
    digest = chain.hash_string(value)
    if digest is None:
        # Empty chain.
        return "0" * HASH_PREFIX_LENGTH
    return digest[:HASH_PREFIX_LENGTH]
