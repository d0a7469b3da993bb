"""API routes for matrix profile computation and queries."""
from fastapi import APIRouter, Depends, Query

from mpserver.config import settings
from mpserver.schemas.profile import (
    AdjustedProfileResponse,
    AnnotationVectorRequest,
    CalculateRequest,
    DiscordResponse,
    ErrorResponse,
    MotifResponse,
    SegmentResponse,
)
from mpserver.services.query_router import QueryRouter
from mpserver.api.dependencies import get_query_router
from mpserver.api.session import get_session_id

router = APIRouter(prefix=settings.api_prefix, tags=["matrix-profile"])

_ERRORS = {
    code: {"model": ErrorResponse}
    for code in (400, 410, 413, 422, 500, 503, 504)
}


@router.post("/calculate", response_model=SegmentResponse, responses=_ERRORS)
def calculate(
    params: CalculateRequest,
    session_id: str = Depends(get_session_id),
    query_router: QueryRouter = Depends(get_query_router),
) -> SegmentResponse:
    """
    Compute the matrix profile of the series with window length m.

    The profile is cached for the session and the corrected arc curve
    (segmentation signal) is returned.
    """
    return query_router.compute(session_id, params.m)


@router.get("/topkmotifs", response_model=MotifResponse, responses=_ERRORS)
def top_k_motifs(
    k: int = Query(..., description="Number of motif groups"),
    r: float = Query(..., description="Group radius as a multiple of the motif distance"),
    session_id: str = Depends(get_session_id),
    query_router: QueryRouter = Depends(get_query_router),
) -> MotifResponse:
    """
    Get the top-k motif groups of the session's matrix profile.

    Fails with cache_expired=true when no profile is cached.
    """
    return query_router.top_k_motifs(session_id, k, r)


@router.get("/topkdiscords", response_model=DiscordResponse, responses=_ERRORS)
def top_k_discords(
    k: int = Query(..., description="Number of discords"),
    session_id: str = Depends(get_session_id),
    query_router: QueryRouter = Depends(get_query_router),
) -> DiscordResponse:
    """Get the top-k discords of the session's matrix profile."""
    return query_router.top_k_discords(session_id, k)


@router.post("/mp", response_model=AdjustedProfileResponse, responses=_ERRORS)
def set_annotation_vector(
    params: AnnotationVectorRequest,
    session_id: str = Depends(get_session_id),
    query_router: QueryRouter = Depends(get_query_router),
) -> AdjustedProfileResponse:
    """
    Switch the session's matrix profile to another annotation vector.

    Returns the annotation vector and the adjusted matrix profile.
    """
    return query_router.set_annotation_vector(session_id, params.name)
