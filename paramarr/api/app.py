"""FastAPI application factory.

The app owns one ParamResolver for its lifetime: initialized on startup,
cleaned up on shutdown. A test runner drives it per run:

    startup          -> initialize
    spec starting    -> POST /api/v1/cache/refresh
    step starting    -> POST /api/v1/steps/resolve
    shutdown         -> cleanup
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI

from paramarr import __version__
from paramarr.api.routes import cache, resolve, sources
from paramarr.resolver import ParamResolver

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    resolver: ParamResolver = app.state.resolver
    resolver.initialize()
    logger.info("[API] Resolver ready with sources: %s", ", ".join(resolver.available_sources) or "(none)")
    try:
        yield
    finally:
        resolver.cleanup()
        logger.info("[API] Resolver shut down")


def create_app(config_path: str | Path | None = None, *, resolver: ParamResolver | None = None) -> FastAPI:
    """Build the API app.

    Args:
        config_path: Config file for a new resolver (default ./paramarr.json)
        resolver: Pre-built resolver (tests, embedding); initialized by the lifespan
    """
    app = FastAPI(title="Paramarr", version=__version__, lifespan=lifespan)
    app.state.resolver = resolver or ParamResolver(config_path)

    app.include_router(resolve.router, prefix=API_PREFIX)
    app.include_router(cache.router, prefix=API_PREFIX)
    app.include_router(sources.router, prefix=API_PREFIX)

    @app.get(f"{API_PREFIX}/health", tags=["Health"])
    def health() -> dict:
        resolver_ = app.state.resolver
        return {
            "status": "ok" if resolver_.is_initialized else "starting",
            "version": __version__,
            "sources": resolver_.available_sources,
        }

    return app
