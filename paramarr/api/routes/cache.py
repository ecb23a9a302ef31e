"""Cache API endpoints.

- POST /cache/refresh - clear the resolved-value cache and every source cache
- GET /cache/status - resolved-value cache statistics
"""

import logging

from fastapi import APIRouter, Depends

from paramarr.api.deps import get_resolver
from paramarr.resolver import ParamResolver

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cache", tags=["Cache"])


@router.post("/refresh")
def refresh_caches(resolver: ParamResolver = Depends(get_resolver)) -> dict:
    """Invalidate both cache tiers. Call at the start of each spec."""
    resolver.refresh_caches()
    logger.info("[API] Caches refreshed")
    return {"success": True}


@router.get("/status")
def get_cache_status(resolver: ParamResolver = Depends(get_resolver)) -> dict:
    stats = resolver.cache_stats()
    return {
        "size": stats.size,
        "hits": stats.hits,
        "misses": stats.misses,
        "evictions": stats.evictions,
        "ttl_seconds": stats.ttl_seconds,
    }
