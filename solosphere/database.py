"""Store client lifecycle for the Supabase backend.

The client is created once when the application starts, kept on
``app.state.db`` and handed to routes through the ``Database`` dependency.
"""

from typing import Annotated

from fastapi import Depends, FastAPI, HTTPException, Request, status
from supabase import Client, create_client

from .config import Settings
from .logging_config import get_logger

logger = get_logger("solosphere.database")

# =============================================================================
# Table Names
# =============================================================================

JOBS_TABLE = "jobs"
BIDS_TABLE = "bids"

# SQL function that bumps jobs.bid_count in a single statement
INCREMENT_BID_COUNT_RPC = "increment_bid_count"


def create_supabase_client(settings: Settings) -> Client:
    """Build a Supabase client from settings."""
    # Prefer new secret key, fall back to legacy service_role_key
    api_key = settings.supabase_secret_key or settings.supabase_service_role_key
    if not api_key:
        raise ValueError("Either SUPABASE_SECRET_KEY or SUPABASE_SERVICE_ROLE_KEY must be set")
    return create_client(settings.supabase_url, api_key)


def init_store(app: FastAPI, settings: Settings) -> Client:
    """Create the store client and attach it to the application."""
    client = create_supabase_client(settings)
    app.state.db = client
    logger.info(f"Store client initialised | url={settings.supabase_url}")
    return client


def close_store(app: FastAPI) -> None:
    """Release the store client held by the application."""
    if getattr(app.state, "db", None) is not None:
        app.state.db = None
        logger.info("Store client released")


def get_db(request: Request) -> Client:
    """FastAPI dependency for the store client."""
    db = getattr(request.app.state, "db", None)
    if db is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Store not initialised",
        )
    return db


# Type alias for dependency injection
Database = Annotated[Client, Depends(get_db)]
