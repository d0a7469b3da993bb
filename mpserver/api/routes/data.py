"""API routes for the raw series."""
from typing import List
from fastapi import APIRouter, Depends

from mpserver.config import settings
from mpserver.schemas.profile import ErrorResponse
from mpserver.services.query_router import QueryRouter
from mpserver.api.dependencies import get_query_router

router = APIRouter(prefix=settings.api_prefix, tags=["data"])


@router.get("/data", response_model=List[float], responses={500: {"model": ErrorResponse}})
def get_data(
    query_router: QueryRouter = Depends(get_query_router),
) -> List[float]:
    """Get the smoothed series that matrix profiles are computed on."""
    return query_router.get_data()
