"""Utilities - caching, secret masking, path lookup, retry, logging."""

from paramarr.utilities.cache import CacheStats, TTLCache, make_cache_key
from paramarr.utilities.logging import setup_logging
from paramarr.utilities.masking import MASK_TOKEN, mask_secrets
from paramarr.utilities.paths import MISSING, get_path, to_text
from paramarr.utilities.retry import call_with_retry, retry_budget

__all__ = [
    "CacheStats",
    "MASK_TOKEN",
    "MISSING",
    "TTLCache",
    "call_with_retry",
    "retry_budget",
    "get_path",
    "make_cache_key",
    "mask_secrets",
    "setup_logging",
    "to_text",
]
