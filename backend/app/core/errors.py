"""Error taxonomy shared by the aggregation services and the HTTP layer."""

from __future__ import annotations


class MarketDataError(Exception):
    """Base error carrying the HTTP status and the message safe to show clients."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None, *, status_code: int | None = None) -> None:
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class MissingParameter(MarketDataError):
    status_code = 400
    default_message = "Missing required parameter"


class InvalidInput(MarketDataError):
    status_code = 400
    default_message = "Invalid request body"


class UpstreamError(MarketDataError):
    """Non-success response from a third-party API.

    ``upstream_status`` keeps the status the upstream returned even when the
    boundary collapses it to a 500.
    """

    default_message = "Upstream request failed"

    def __init__(
        self,
        message: str | None = None,
        *,
        status_code: int | None = None,
        upstream_status: int | None = None,
    ) -> None:
        super().__init__(message, status_code=status_code or upstream_status or 500)
        self.upstream_status = upstream_status if upstream_status is not None else self.status_code


class UnexpectedError(MarketDataError):
    status_code = 500
    default_message = "Internal server error"
