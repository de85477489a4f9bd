"""Cache bucket identity and on-disk layout."""

from .keys import (
    DEFAULT_KEY,
    MAX_KEY_LENGTH,
    CacheKeyInput,
    branch_label,
    cache_key,
    resolve_bucket,
    sanitize_cache_key,
)
from .layout import resolve_cache_home, target_cache_root

__all__ = [
    "DEFAULT_KEY",
    "MAX_KEY_LENGTH",
    "CacheKeyInput",
    "branch_label",
    "cache_key",
    "resolve_bucket",
    "resolve_cache_home",
    "sanitize_cache_key",
    "target_cache_root",
]
