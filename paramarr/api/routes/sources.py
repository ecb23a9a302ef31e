"""Source registration endpoint."""

from fastapi import APIRouter, Depends

from paramarr.api.deps import get_resolver
from paramarr.resolver import ParamResolver
from paramarr.sources import SOURCE_PRECEDENCE

router = APIRouter(tags=["Sources"])


@router.get("/sources")
def list_sources(resolver: ParamResolver = Depends(get_resolver)) -> dict:
    """Active sources in precedence order, plus every source's startup result."""
    registration = resolver.registration
    return {
        "precedence": list(SOURCE_PRECEDENCE),
        "active": registration.names(),
        "sources": [
            {
                "name": result.source,
                "enabled": result.enabled,
                "active": result.source in registration,
                "error": result.error,
            }
            for result in registration.results
        ],
    }
