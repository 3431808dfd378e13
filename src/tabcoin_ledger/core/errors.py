"""Error taxonomy surfaced by the ledger engine and its database layer."""

from __future__ import annotations

from typing import Any

GET_NEW_CLIENT_FROM_POOL = "INFRA:DATABASE:GET_NEW_CLIENT_FROM_POOL"
GET_NEW_CONNECTED_CLIENT = "INFRA:DATABASE:GET_NEW_CONNECTED_CLIENT"
DATABASE_QUERY = "INFRA:DATABASE:QUERY"
NEGATIVE_USER_EARNINGS = "MODEL:CONTENT:CREDIT_OR_DEBIT_TABCOINS:NEGATIVE_USER_EARNINGS"


class TabcoinLedgerError(RuntimeError):
    """Base exception carrying diagnostic context for structured logs."""

    def __init__(
        self,
        message: str,
        *,
        context: dict[str, Any] | None = None,
        error_location_code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.error_location_code = error_location_code

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly representation for log records."""
        return {
            "name": type(self).__name__,
            "message": self.message,
            "context": self.context,
            "error_location_code": self.error_location_code,
        }


class ServiceError(TabcoinLedgerError):
    """Raised when infrastructure (the database) fails."""


class ConnectionAcquisitionError(ServiceError):
    """Raised when no connection could be obtained after all retries.

    Attributes:
        attempt: Number of the last attempt made before giving up.
        pool: Pool telemetry (total/idle/waiting) at the time of failure, if a
            pool exists.
    """

    def __init__(
        self,
        message: str,
        *,
        attempt: int,
        pool: dict[str, int] | None = None,
        context: dict[str, Any] | None = None,
        error_location_code: str = GET_NEW_CLIENT_FROM_POOL,
    ) -> None:
        merged = {"attempt": attempt, "pool": pool}
        merged.update(context or {})
        super().__init__(message, context=merged, error_location_code=error_location_code)
        self.attempt = attempt
        self.pool = pool


class QueryError(ServiceError):
    """Raised when the database rejects a statement.

    ``database_error_code`` is the SQLSTATE reported by Postgres (``None`` when
    the failure did not come from the server).
    """

    def __init__(
        self,
        message: str,
        *,
        query: str | None,
        database_error_code: str | None,
        context: dict[str, Any] | None = None,
    ) -> None:
        merged = {"query": query}
        merged.update(context or {})
        super().__init__(message, context=merged, error_location_code=DATABASE_QUERY)
        self.query = query
        self.database_error_code = database_error_code

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["database_error_code"] = self.database_error_code
        return data


class ForbiddenTransition(TabcoinLedgerError):
    """Raised when a content lifecycle change is rejected by business rules."""

    def __init__(
        self,
        message: str,
        *,
        action: str | None = None,
        context: dict[str, Any] | None = None,
        error_location_code: str = NEGATIVE_USER_EARNINGS,
    ) -> None:
        super().__init__(message, context=context, error_location_code=error_location_code)
        self.action = action

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["action"] = self.action
        return data
