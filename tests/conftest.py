"""Pytest configuration and fixtures."""

import copy
import os
import re
import secrets
import uuid
from datetime import datetime, timezone

import pytest
from postgrest.exceptions import APIError

# Generate a unique test secret for this test run to prevent token forgery
_TEST_JWT_SECRET = f"test-only-{secrets.token_urlsafe(32)}"

os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SECRET_KEY", "test-secret-key")
os.environ.setdefault("JWT_SECRET_KEY", _TEST_JWT_SECRET)
os.environ.setdefault("ENVIRONMENT", "development")

from fastapi.testclient import TestClient  # noqa: E402

from solosphere.auth import create_access_token  # noqa: E402
from solosphere.config import get_settings  # noqa: E402
from solosphere.database import get_db  # noqa: E402
from solosphere.main import app  # noqa: E402
from solosphere.rate_limit import limiter  # noqa: E402


# =============================================================================
# In-memory Supabase stand-in
# =============================================================================

UNIQUE_KEYS = {"bids": ("bidder_email", "job_id")}
# Columns declared NOT NULL without a default
NOT_NULL = {"jobs": ("owner",), "bids": ("job_id", "bidder_email", "job_owner_email")}


def _check_not_null(table: str, row: dict):
    # Postgres checks the proposed row before resolving ON CONFLICT
    for column in NOT_NULL.get(table, ()):
        if row.get(column) is None:
            raise APIError({
                "message": f'null value in column "{column}" of relation "{table}" violates not-null constraint',
                "code": "23502",
            })


class FakeExecuteResult:
    """Mock Supabase execute() result."""

    def __init__(self, data=None, count=None):
        self.data = data if data is not None else []
        self.count = count


def _field_value(row: dict, field: str):
    # Supports the JSON path form used for owner lookups: owner->>email
    if "->>" in field:
        column, key = field.split("->>", 1)
        return (row.get(column) or {}).get(key)
    return row.get(field)


def _like_to_regex(pattern: str) -> re.Pattern:
    out = []
    chars = iter(pattern)
    for ch in chars:
        if ch == "\\":
            out.append(re.escape(next(chars, "\\")))
        elif ch == "%":
            out.append(".*")
        elif ch == "_":
            out.append(".")
        else:
            out.append(re.escape(ch))
    return re.compile("".join(out), re.IGNORECASE | re.DOTALL)


class FakeQuery:
    """Query builder over one in-memory table."""

    def __init__(self, db: "FakeSupabase", table: str):
        self._db = db
        self._table = table
        self._op = "select"
        self._payload = None
        self._filters = []
        self._order = None
        self._limit = None
        self._count = None

    # Operations
    def select(self, *fields, count=None):
        self._op = "select"
        self._count = count
        return self

    def insert(self, data):
        self._op, self._payload = "insert", data
        return self

    def upsert(self, data):
        self._op, self._payload = "upsert", data
        return self

    def update(self, data):
        self._op, self._payload = "update", data
        return self

    def delete(self):
        self._op = "delete"
        return self

    # Modifiers
    def eq(self, field, value):
        self._filters.append(lambda row: _field_value(row, field) == value)
        return self

    def ilike(self, field, pattern):
        regex = _like_to_regex(pattern)
        self._filters.append(
            lambda row: regex.fullmatch(str(_field_value(row, field) or "")) is not None
        )
        return self

    def order(self, field, desc=False):
        self._order = (field, desc)
        return self

    def limit(self, n):
        self._limit = n
        return self

    def _matches(self, row) -> bool:
        return all(f(row) for f in self._filters)

    def execute(self) -> FakeExecuteResult:
        self._db.executed.append((self._table, self._op))
        rows = self._db.tables.setdefault(self._table, [])

        if self._op == "insert":
            return FakeExecuteResult([self._db._insert(self._table, self._payload)])

        if self._op == "upsert":
            _check_not_null(self._table, self._payload)
            existing = [r for r in rows if r["id"] == self._payload.get("id")]
            if existing:
                existing[0].update(copy.deepcopy(self._payload))
                return FakeExecuteResult([copy.deepcopy(existing[0])])
            return FakeExecuteResult([self._db._insert(self._table, self._payload)])

        if self._op == "update":
            hit = [r for r in rows if self._matches(r)]
            for row in hit:
                row.update(copy.deepcopy(self._payload))
            return FakeExecuteResult(copy.deepcopy(hit))

        if self._op == "delete":
            hit = [r for r in rows if self._matches(r)]
            self._db.tables[self._table] = [r for r in rows if not self._matches(r)]
            return FakeExecuteResult(copy.deepcopy(hit))

        hit = [r for r in rows if self._matches(r)]
        if self._order:
            field, desc = self._order
            hit = sorted(hit, key=lambda r: str(r.get(field) or ""), reverse=desc)
        if self._limit is not None:
            hit = hit[: self._limit]
        count = len(hit) if self._count else None
        return FakeExecuteResult(copy.deepcopy(hit), count)


class FakeRpc:
    def __init__(self, db: "FakeSupabase", name: str, params: dict):
        self._db = db
        self._name = name
        self._params = params

    def execute(self) -> FakeExecuteResult:
        self._db.executed.append((self._name, "rpc"))
        if self._db.fail_rpc:
            raise APIError({"message": "function unavailable", "code": "PGRST202"})
        if self._name == "increment_bid_count":
            for row in self._db.tables.get("jobs", []):
                if row["id"] == self._params["p_job_id"]:
                    row["bid_count"] = (row.get("bid_count") or 0) + 1
                    return FakeExecuteResult(row["bid_count"])
            return FakeExecuteResult(None)
        raise APIError({"message": f"unknown function {self._name}", "code": "PGRST202"})


class FakeSupabase:
    """Just enough of the Supabase client for the marketplace routes."""

    def __init__(self):
        self.tables: dict[str, list[dict]] = {"jobs": [], "bids": []}
        self.executed: list[tuple[str, str]] = []
        self.fail_rpc = False

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rpc(self, name: str, params: dict) -> FakeRpc:
        return FakeRpc(self, name, params)

    def _insert(self, table: str, data: dict) -> dict:
        _check_not_null(table, data)
        row = copy.deepcopy(data)
        row.setdefault("id", str(uuid.uuid4()))
        row.setdefault("created_at", datetime.now(timezone.utc).isoformat())
        if table == "jobs":
            row.setdefault("bid_count", 0)
        if table == "bids":
            row.setdefault("status", "Pending")

        keys = UNIQUE_KEYS.get(table)
        if keys:
            for other in self.tables[table]:
                if all(other.get(k) == row.get(k) for k in keys):
                    raise APIError({
                        "message": 'duplicate key value violates unique constraint "bids_bidder_job_key"',
                        "code": "23505",
                    })

        self.tables.setdefault(table, []).append(row)
        return copy.deepcopy(row)

    def seed(self, table: str, **row) -> dict:
        """Insert a row directly, bypassing the API."""
        return self._insert(table, row)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def fake_db():
    return FakeSupabase()


@pytest.fixture
def client(fake_db):
    """Create a test client wired to the in-memory store."""
    app.dependency_overrides[get_db] = lambda: fake_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def reset_rate_limits():
    limiter.reset()
    yield


@pytest.fixture
def login(client):
    """Install a session cookie for ``email`` on the test client."""

    def _login(email: str, **claims) -> str:
        token = create_access_token({"email": email, **claims}, get_settings())
        client.cookies.clear()
        client.cookies.set(get_settings().cookie_name, token)
        return token

    return _login


@pytest.fixture
def make_job(fake_db):
    """Seed a job owned by ``owner_email``."""

    def _make_job(owner_email: str = "a@x.com", **fields) -> dict:
        row = {
            "title": "Logo Design",
            "category": "design",
            "deadline": "2024-06-01",
            "owner": {"email": owner_email},
            "bid_count": 0,
        }
        row.update(fields)
        return fake_db.seed("jobs", **row)

    return _make_job
