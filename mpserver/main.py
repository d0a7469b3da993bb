"""FastAPI application entry point."""
from contextlib import asynccontextmanager
import logging

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from mpserver.config import settings
from mpserver.errors import InvalidParameter, MPServerError
from mpserver.api.routes import data, matrix_profile
from mpserver.data.artifact_store import ArtifactStore
from mpserver.api.dependencies import get_artifact_store, get_metrics, get_query_router

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Check the artifact store on startup, stop the engine pool on shutdown."""
    if not get_artifact_store().ping():
        logger.warning("Artifact store is not reachable at startup")
    yield
    get_query_router().close()

# Create FastAPI app with orjson for faster JSON serialization
app = FastAPI(
    title=settings.api_title,
    version=settings.api_version,
    redirect_slashes=False,
    lifespan=lifespan,
    default_response_class=ORJSONResponse,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Origin", "X-Requested-With", "Content-Type", "Accept"],
)


@app.exception_handler(MPServerError)
async def mpserver_error_handler(request: Request, exc: MPServerError) -> ORJSONResponse:
    """Render request failures as the error envelope."""
    return ORJSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> ORJSONResponse:
    """Malformed query parameters or bodies are invalid parameters."""
    details = "; ".join(
        f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
    )
    error = InvalidParameter(f"invalid request: {details}")
    # rejected before reaching a handler, so only counted, not timed
    get_metrics().observe(request.method, request.url.path, error.status_code, None)
    return ORJSONResponse(status_code=error.status_code, content=error.to_dict())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> ORJSONResponse:
    """Anything unexpected still gets the error envelope."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return ORJSONResponse(
        status_code=500,
        content={"error": "internal server error", "cache_expired": False},
    )


# Include routers
app.include_router(data.router)
app.include_router(matrix_profile.router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": settings.api_title,
        "version": settings.api_version,
        "docs": "/docs",
    }


@app.get("/health")
def health(store: ArtifactStore = Depends(get_artifact_store)):
    """Health check endpoint."""
    store_ok = store.ping()
    return {"status": "healthy" if store_ok else "degraded", "cache": store_ok}


@app.get("/metrics", include_in_schema=False)
async def metrics():
    """Prometheus metrics."""
    return Response(generate_latest(get_metrics().registry), media_type=CONTENT_TYPE_LATEST)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8081)
