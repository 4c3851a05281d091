"""SoloSphere Backend API - FastAPI application."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from . import __version__
from .config import get_settings
from .database import JOBS_TABLE, close_store, init_store
from .errors import DuplicateBidError, MarketplaceError, UnauthorizedError
from .logging_config import configure_logging, get_logger
from .rate_limit import limiter
from .routes import auth_router, bids_router, jobs_router

logger = get_logger("solosphere.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info(
        f"Starting SoloSphere Backend API (environment={settings.environment}, debug={settings.debug})"
    )
    init_store(app, settings)
    yield
    close_store(app)
    logger.info("Shutting down SoloSphere Backend API")


app = FastAPI(
    title="SoloSphere Backend API",
    description="Job and bid marketplace backend",
    version=__version__,
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


# Error responses
async def _marketplace_error_handler(request: Request, exc: MarketplaceError):
    if isinstance(exc, DuplicateBidError):
        return PlainTextResponse(exc.message, status_code=exc.status_code)
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, UnauthorizedError) else None
    return JSONResponse({"message": exc.message}, status_code=exc.status_code, headers=headers)


app.add_exception_handler(MarketplaceError, _marketplace_error_handler)

# CORS middleware; credentials are needed for the session cookie
settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth_router)
app.include_router(jobs_router)
app.include_router(bids_router)


@app.get("/")
async def root():
    """Service banner."""
    return {
        "service": "solosphere-backend",
        "version": __version__,
        "status": "ok",
    }


@app.get("/health")
async def health(request: Request):
    """Detailed health check with actual store verification."""
    db = getattr(request.app.state, "db", None)

    if db is None:
        db_status = "disconnected"
    else:
        try:
            db.table(JOBS_TABLE).select("id").limit(1).execute()
            db_status = "connected"
        except Exception as e:
            db_status = f"error: {str(e)[:50]}"

    overall_status = "healthy" if db_status == "connected" else "degraded"

    return {
        "status": overall_status,
        "database": db_status,
    }


def run():
    """Serve the API with uvicorn."""
    import uvicorn

    uvicorn.run("solosphere.main:app", host="0.0.0.0", port=get_settings().port)


if __name__ == "__main__":
    run()
