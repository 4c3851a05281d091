"""Error types surfaced by the marketplace API.

Handlers for these are registered in ``solosphere.main``.
"""


class MarketplaceError(Exception):
    """Base class for errors that map to a fixed HTTP response."""

    status_code = 500
    message = "internal server error"

    def __init__(self, message: str | None = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class UnauthorizedError(MarketplaceError):
    """Missing, invalid, expired or mismatched session."""

    status_code = 401
    message = "unauthorized access"


class ForbiddenError(MarketplaceError):
    """Valid session acting on a resource it does not own."""

    status_code = 403
    message = "forbidden access"


class DuplicateBidError(MarketplaceError):
    """The bidder already has a bid on this job."""

    status_code = 400
    message = "You have already Bid on this job...!"
