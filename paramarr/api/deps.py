"""Shared dependencies for API routes."""

from fastapi import HTTPException, Request, status

from paramarr.resolver import ParamResolver


def get_resolver(request: Request) -> ParamResolver:
    """The resolver owned by the app lifespan."""
    resolver: ParamResolver | None = getattr(request.app.state, "resolver", None)
    if resolver is None or not resolver.is_initialized:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Resolver not initialized",
        )
    return resolver
