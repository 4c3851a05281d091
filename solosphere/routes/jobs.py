"""Job routes for the SoloSphere marketplace.

Clients post jobs; everyone can browse and search them. Owner-scoped reads
and every mutation are bound to the session identity.
"""

from datetime import date, datetime
from typing import Literal
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, Request, status
from pydantic import AliasChoices, BaseModel, Field, model_validator

from ..auth import CurrentUser, require_owner, require_same_email
from ..database import INCREMENT_BID_COUNT_RPC, JOBS_TABLE, Database
from ..logging_config import get_logger
from ..models import DeleteResult, OwnerInfo
from ..rate_limit import limiter

logger = get_logger("solosphere.jobs")
router = APIRouter(tags=["jobs"])


# =============================================================================
# Request/Response Models
# =============================================================================

SortOrder = Literal["asc", "desc"]


class JobFields(BaseModel):
    """Editable job fields."""

    title: str | None = Field(None, min_length=1, max_length=200)
    category: str | None = Field(None, min_length=1)
    deadline: date | None = None
    description: str | None = None
    min_price: float | None = Field(None, ge=0)
    max_price: float | None = Field(None, ge=0)

    @model_validator(mode="after")
    def check_price_range(self):
        if (
            self.min_price is not None
            and self.max_price is not None
            and self.min_price > self.max_price
        ):
            raise ValueError("min_price must not exceed max_price")
        return self


class JobCreate(JobFields):
    """Request to post a job. The owner must be the session user."""

    title: str = Field(..., min_length=1, max_length=200)
    category: str = Field(..., min_length=1)
    deadline: date
    owner: OwnerInfo = Field(..., validation_alias=AliasChoices("owner", "bayer"))


class JobUpdate(JobFields):
    """Partial job update. ``owner`` and ``bid_count`` are not writable."""


class JobResponse(BaseModel):
    """Job details response."""

    id: str
    title: str | None = None
    category: str | None = None
    deadline: date | None = None
    description: str | None = None
    min_price: float | None = None
    max_price: float | None = None
    owner: OwnerInfo
    bid_count: int = 0
    created_at: datetime | None = None


class JobUpsertResponse(BaseModel):
    """Result of an update-or-insert."""

    job: JobResponse
    upserted: bool


# =============================================================================
# Database Operations
# =============================================================================


def escape_like(term: str) -> str:
    """Escape LIKE metacharacters so the term matches literally."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


async def create_job(db, job: JobCreate) -> dict | None:
    """Insert a new job. Its bid counter starts at zero."""
    data = job.model_dump(mode="json", exclude_none=True)
    data["bid_count"] = 0
    result = db.table(JOBS_TABLE).insert(data).execute()
    return result.data[0] if result.data else None


async def list_all_jobs(db) -> list[dict]:
    """Every job, unfiltered."""
    result = db.table(JOBS_TABLE).select("*").execute()
    return result.data or []


async def list_jobs_by_owner(db, email: str) -> list[dict]:
    """Jobs posted by ``email``."""
    result = db.table(JOBS_TABLE).select("*").eq("owner->>email", email).execute()
    return result.data or []


async def search_jobs(
    db,
    search: str = "",
    category: str | None = None,
    sort: SortOrder | None = None,
) -> list[dict]:
    """Case-insensitive title search, optional category filter and deadline sort."""
    query = db.table(JOBS_TABLE).select("*")

    if search:
        query = query.ilike("title", f"%{escape_like(search)}%")
    if category:
        query = query.eq("category", category)
    if sort:
        query = query.order("deadline", desc=(sort == "desc"))

    result = query.execute()
    return result.data or []


async def get_job(db, job_id: str) -> dict | None:
    """Get a job by ID."""
    result = db.table(JOBS_TABLE).select("*").eq("id", job_id).execute()
    return result.data[0] if result.data else None


async def update_job_fields(db, job_id: str, data: dict) -> dict | None:
    """Set the given fields on an existing job."""
    result = db.table(JOBS_TABLE).update(data).eq("id", job_id).execute()
    return result.data[0] if result.data else None


async def upsert_job(db, job_id: str, data: dict) -> dict | None:
    """Create a job under ``job_id``, or overwrite it if one appeared meanwhile.

    ``data`` must be a full row including ``owner``; the NOT NULL check runs
    before the conflict is resolved.
    """
    result = db.table(JOBS_TABLE).upsert({"id": job_id, **data}).execute()
    return result.data[0] if result.data else None


async def delete_job(db, job_id: str) -> int:
    """Delete a job; returns how many rows went away (0 or 1)."""
    result = db.table(JOBS_TABLE).delete().eq("id", job_id).execute()
    return len(result.data or [])


async def increment_bid_count(db, job_id: str):
    """Atomically add one to a job's bid counter."""
    result = db.rpc(INCREMENT_BID_COUNT_RPC, {"p_job_id": job_id}).execute()
    return result.data


# =============================================================================
# Helper Functions
# =============================================================================


def to_job_response(job: dict) -> JobResponse:
    """Convert DB job dict to response model."""
    return JobResponse(
        id=str(job["id"]),
        title=job.get("title"),
        category=job.get("category"),
        deadline=job.get("deadline"),
        description=job.get("description"),
        min_price=job.get("min_price"),
        max_price=job.get("max_price"),
        owner=job["owner"],
        bid_count=job.get("bid_count") or 0,
        created_at=job.get("created_at"),
    )


# =============================================================================
# Routes
# =============================================================================


@router.post("/add-job", response_model=JobResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
async def add_job(
    request: Request,
    job: JobCreate,
    user: CurrentUser,
    db: Database,
):
    """
    Post a new job.

    The embedded owner must be the session user.
    """
    logger.info(f"POST /add-job | owner={user.email} | title={job.title[:50]}")
    require_owner(user, job.owner.email)

    created = await create_job(db, job)
    if not created:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create job",
        )

    logger.info(f"Job created | id={created['id']} | owner={user.email}")
    return to_job_response(created)


@router.get("/jobs", response_model=list[JobResponse])
@limiter.limit("60/minute")
async def list_jobs_endpoint(request: Request, db: Database):
    """List every job."""
    jobs = await list_all_jobs(db)
    return [to_job_response(j) for j in jobs]


@router.get("/jobs/{email}", response_model=list[JobResponse])
@limiter.limit("60/minute")
async def list_my_jobs(
    request: Request,
    email: str,
    user: CurrentUser,
    db: Database,
):
    """List the jobs posted by ``email``. Only that user may ask."""
    logger.info(f"GET /jobs/{email} | session={user.email}")
    require_same_email(user, email)

    jobs = await list_jobs_by_owner(db, email)
    return [to_job_response(j) for j in jobs]


@router.get("/all-jobs", response_model=list[JobResponse])
@limiter.limit("60/minute")
async def all_jobs(
    request: Request,
    db: Database,
    search: str = Query("", description="Case-insensitive substring of the title"),
    category: str | None = Query(None, alias="filter", description="Exact category"),
    sort: SortOrder | None = Query(None, description="Order by deadline"),
):
    """
    Search jobs.

    - search: title contains this text (any case); empty matches everything
    - filter: exact category
    - sort: ``asc`` or ``desc`` by deadline
    """
    jobs = await search_jobs(db, search=search, category=category or None, sort=sort)
    return [to_job_response(j) for j in jobs]


@router.get("/job/{job_id}", response_model=JobResponse | None)
@limiter.limit("60/minute")
async def get_job_details(request: Request, job_id: UUID, db: Database):
    """Get a single job, or ``null`` when it doesn't exist."""
    job = await get_job(db, str(job_id))
    return to_job_response(job) if job else None


@router.put("/update-job/{job_id}", response_model=JobUpsertResponse)
@limiter.limit("20/minute")
async def update_job(
    request: Request,
    job_id: UUID,
    update: JobUpdate,
    user: CurrentUser,
    db: Database,
):
    """
    Update a job, creating it if no job has this id.

    Only provided fields change. An existing job can only be edited by its
    owner; a job created this way belongs to the session user.
    """
    job_key = str(job_id)
    logger.info(f"PUT /update-job/{job_key} | session={user.email}")

    existing = await get_job(db, job_key)
    data = update.model_dump(mode="json", exclude_unset=True)

    if existing:
        require_owner(user, (existing.get("owner") or {}).get("email"))
        saved = await update_job_fields(db, job_key, data) if data else existing
    else:
        owner = {"email": user.email}
        if user.name:
            owner["name"] = user.name
        data["owner"] = owner
        data["bid_count"] = 0
        saved = await upsert_job(db, job_key, data)

    if not saved:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update job",
        )

    if existing:
        logger.info(f"Job updated | id={job_key} | fields={sorted(data)}")
    else:
        logger.warning(f"Job upserted on update | id={job_key} | owner={user.email}")
    return JobUpsertResponse(job=to_job_response(saved), upserted=existing is None)


@router.delete("/job/{job_id}", response_model=DeleteResult)
@limiter.limit("20/minute")
async def remove_job(
    request: Request,
    job_id: UUID,
    user: CurrentUser,
    db: Database,
):
    """
    Delete a job.

    Deleting a job that doesn't exist succeeds with ``deleted_count`` 0.
    Bids on the job are left in place.
    """
    job_key = str(job_id)
    logger.info(f"DELETE /job/{job_key} | session={user.email}")

    existing = await get_job(db, job_key)
    if not existing:
        return DeleteResult(deleted_count=0)

    require_owner(user, (existing.get("owner") or {}).get("email"))
    deleted = await delete_job(db, job_key)

    logger.info(f"Job deleted | id={job_key} | owner={user.email}")
    return DeleteResult(deleted_count=deleted)
