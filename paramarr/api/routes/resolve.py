"""Resolution endpoints.

- POST /resolve - resolve one text blob
- POST /steps/resolve - resolve a step's text and fragments, reporting
  failure in the body the way a test runner expects it
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from paramarr.api.deps import get_resolver
from paramarr.core.errors import ParamarrError
from paramarr.resolver import ParamResolver
from paramarr.utilities.masking import mask_secrets

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Resolve"])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================


class ResolveRequest(BaseModel):
    text: str


class ResolveResponse(BaseModel):
    text: str


class StepFragment(BaseModel):
    """A step fragment (static text or parameter)."""

    text: str | None = None


class StepResolveRequest(BaseModel):
    actual_text: str
    fragments: list[StepFragment] = Field(default_factory=list)


class StepResolveResponse(BaseModel):
    """Execution result for one step.

    On failure the original text and fragments are returned unchanged.
    """

    failed: bool
    error_message: str | None = None
    actual_text: str
    fragments: list[StepFragment] = Field(default_factory=list)


# =============================================================================
# ENDPOINTS
# =============================================================================


@router.post("/resolve", response_model=ResolveResponse)
def resolve_text(request: ResolveRequest, resolver: ParamResolver = Depends(get_resolver)):
    """Resolve every placeholder in `text`.

    Returns 422 with a masked message if a required placeholder cannot be
    resolved.
    """
    try:
        return ResolveResponse(text=resolver.resolve_text(request.text))
    except ParamarrError as e:
        raise HTTPException(
            status_code=422,
            detail=mask_secrets(str(e)),
        ) from e


@router.post("/steps/resolve", response_model=StepResolveResponse)
def resolve_step(request: StepResolveRequest, resolver: ParamResolver = Depends(get_resolver)):
    """Resolve a step's text and every fragment text. All or nothing."""
    try:
        actual_text = resolver.resolve_text(request.actual_text)
        fragments = [
            StepFragment(text=resolver.resolve_text(f.text) if f.text else f.text)
            for f in request.fragments
        ]
    except ParamarrError as e:
        message = f"Parameter resolution failed: {mask_secrets(str(e))}"
        logger.error("[API] %s", message)
        return StepResolveResponse(
            failed=True,
            error_message=message,
            actual_text=request.actual_text,
            fragments=request.fragments,
        )

    return StepResolveResponse(failed=False, actual_text=actual_text, fragments=fragments)
