"""Bid routes for the SoloSphere marketplace.

Freelancers bid on jobs; job owners move bids through their status
lifecycle. One bid per bidder per job.
"""

from datetime import date, datetime
from typing import Literal
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, Request, status
from postgrest.exceptions import APIError
from pydantic import AliasChoices, BaseModel, Field

from ..auth import CurrentUser, require_owner, require_same_email
from ..database import BIDS_TABLE, Database
from ..errors import DuplicateBidError
from ..logging_config import get_logger
from ..models import EMAIL_PATTERN
from ..rate_limit import limiter
from .jobs import get_job, increment_bid_count

logger = get_logger("solosphere.bids")
router = APIRouter(tags=["bids"])

# Postgres unique_violation
UNIQUE_VIOLATION = "23505"


# =============================================================================
# Request/Response Models
# =============================================================================

BidStatus = Literal["Pending", "In Progress", "Completed", "Rejected"]
INITIAL_BID_STATUS: BidStatus = "Pending"


class BidCreate(BaseModel):
    """Request to bid on a job."""

    job_id: UUID = Field(..., validation_alias=AliasChoices("job_id", "jobId", "id"))
    bidder_email: str = Field(
        ...,
        pattern=EMAIL_PATTERN,
        validation_alias=AliasChoices("bidder_email", "email"),
    )
    price: float = Field(..., ge=0)
    comment: str | None = None
    deadline: date | None = None


class BidResponse(BaseModel):
    """Bid details response."""

    id: str
    job_id: str
    bidder_email: str
    job_owner_email: str
    price: float | None = None
    comment: str | None = None
    deadline: date | None = None
    title: str | None = None
    category: str | None = None
    status: BidStatus
    created_at: datetime | None = None


class BidStatusUpdate(BaseModel):
    """Request to move a bid to a new status."""

    status: BidStatus = Field(..., validation_alias=AliasChoices("currentStatus", "status"))


# =============================================================================
# Database Operations
# =============================================================================


async def find_bid(db, bidder_email: str, job_id: str) -> dict | None:
    """The bid ``bidder_email`` placed on ``job_id``, if any."""
    result = (
        db.table(BIDS_TABLE)
        .select("*")
        .eq("bidder_email", bidder_email)
        .eq("job_id", job_id)
        .limit(1)
        .execute()
    )
    return result.data[0] if result.data else None


async def create_bid(db, data: dict) -> dict | None:
    """Insert a bid row."""
    result = db.table(BIDS_TABLE).insert(data).execute()
    return result.data[0] if result.data else None


async def get_bid(db, bid_id: str) -> dict | None:
    """Get a bid by ID."""
    result = db.table(BIDS_TABLE).select("*").eq("id", bid_id).execute()
    return result.data[0] if result.data else None


async def list_bids(db, email: str, as_owner: bool = False) -> list[dict]:
    """Bids received on ``email``'s jobs (``as_owner``) or placed by ``email``."""
    field = "job_owner_email" if as_owner else "bidder_email"
    result = db.table(BIDS_TABLE).select("*").eq(field, email).execute()
    return result.data or []


async def atomic_update_bid_status(
    db,
    bid_id: str,
    expected_status: str,
    new_status: str,
) -> tuple[dict | None, str | None]:
    """Update a bid's status only if it still has ``expected_status``.

    Returns:
        Tuple of (updated_bid, error_message).
        - If successful: (bid_dict, None)
        - If not found: (None, "not_found")
        - If status mismatch: (None, "conflict")
    """
    result = (
        db.table(BIDS_TABLE)
        .update({"status": new_status})
        .eq("id", bid_id)
        .eq("status", expected_status)
        .execute()
    )

    if result.data:
        return result.data[0], None

    bid = await get_bid(db, bid_id)
    if not bid:
        return None, "not_found"

    logger.warning(
        f"Concurrent status change on bid {bid_id}: "
        f"expected '{expected_status}', found '{bid['status']}'"
    )
    return None, "conflict"


# =============================================================================
# Helper Functions
# =============================================================================


def to_bid_response(bid: dict) -> BidResponse:
    """Convert DB bid dict to response model."""
    return BidResponse(
        id=str(bid["id"]),
        job_id=str(bid["job_id"]),
        bidder_email=bid["bidder_email"],
        job_owner_email=bid["job_owner_email"],
        price=bid.get("price"),
        comment=bid.get("comment"),
        deadline=bid.get("deadline"),
        title=bid.get("title"),
        category=bid.get("category"),
        status=bid["status"],
        created_at=bid.get("created_at"),
    )


# Owner-driven status transitions
VALID_TRANSITIONS = {
    "Pending": {"In Progress", "Rejected"},
    "In Progress": {"Completed"},
}


def can_transition(from_status: str, to_status: str) -> bool:
    """Check if a status transition is valid."""
    return to_status in VALID_TRANSITIONS.get(from_status, set())


def _is_unique_violation(e: APIError) -> bool:
    return e.code == UNIQUE_VIOLATION


# =============================================================================
# Routes
# =============================================================================


@router.post("/add-bid", response_model=BidResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
async def add_bid(
    request: Request,
    bid: BidCreate,
    user: CurrentUser,
    db: Database,
):
    """
    Place a bid on a job.

    A bidder gets one bid per job. The job's bid counter is bumped after
    the insert; if that fails the bid stands and the counter lags by one.
    """
    job_id = str(bid.job_id)
    logger.info(f"POST /add-bid | bidder={user.email} | job={job_id}")
    require_owner(user, bid.bidder_email)

    job = await get_job(db, job_id)
    if not job:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")

    owner_email = (job.get("owner") or {}).get("email")
    if owner_email == user.email:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot bid on your own job",
        )

    if await find_bid(db, user.email, job_id):
        raise DuplicateBidError()

    data = {
        "job_id": job_id,
        "bidder_email": user.email,
        "job_owner_email": owner_email,
        "price": bid.price,
        "comment": bid.comment,
        "deadline": bid.deadline.isoformat() if bid.deadline else None,
        "title": job.get("title"),
        "category": job.get("category"),
        "status": INITIAL_BID_STATUS,
    }
    try:
        created = await create_bid(db, data)
    except APIError as e:
        # Lost a race with an identical bid; the unique index caught it
        if _is_unique_violation(e):
            raise DuplicateBidError() from e
        raise

    if not created:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create bid",
        )

    try:
        await increment_bid_count(db, job_id)
    except Exception as e:
        logger.warning(f"bid_count increment failed | job={job_id} | bid={created['id']} | {e}")

    logger.info(f"Bid created | id={created['id']} | job={job_id} | bidder={user.email}")
    return to_bid_response(created)


@router.get("/bids/{email}", response_model=list[BidResponse])
@limiter.limit("60/minute")
async def list_bids_endpoint(
    request: Request,
    email: str,
    user: CurrentUser,
    db: Database,
    as_owner: bool = Query(
        False,
        alias="bayerEmail",
        description="List bids received on my jobs instead of bids I placed",
    ),
):
    """List bids placed by ``email``, or received on its jobs."""
    logger.info(f"GET /bids/{email} | session={user.email} | as_owner={as_owner}")
    require_same_email(user, email)

    bids = await list_bids(db, email, as_owner=as_owner)
    return [to_bid_response(b) for b in bids]


@router.patch("/status-updated/{bid_id}", response_model=BidResponse)
@limiter.limit("30/minute")
async def update_bid_status(
    request: Request,
    bid_id: UUID,
    update: BidStatusUpdate,
    user: CurrentUser,
    db: Database,
):
    """
    Move a bid to a new status.

    Only the owner of the job can do this. Allowed moves:
    Pending -> In Progress | Rejected, In Progress -> Completed.
    """
    bid_key = str(bid_id)
    logger.info(f"PATCH /status-updated/{bid_key} | session={user.email} | to={update.status}")

    bid = await get_bid(db, bid_key)
    if not bid:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Bid not found")

    require_owner(user, bid.get("job_owner_email"))

    if not can_transition(bid["status"], update.status):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Cannot move bid from {bid['status']} to {update.status}",
        )

    updated, error = await atomic_update_bid_status(
        db, bid_key, expected_status=bid["status"], new_status=update.status
    )

    if error == "not_found":
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Bid not found")

    if error == "conflict":
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Bid status was modified by another request. Please refresh and try again.",
        )

    logger.info(f"Bid status updated | id={bid_key} | {bid['status']} -> {update.status}")
    return to_bid_response(updated)
