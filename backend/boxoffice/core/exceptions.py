"""
Box office exception taxonomy.

Services raise these; the API layer renders them through a single exception
handler registered in main.py.
"""

from typing import Any, Dict, Iterable, Optional


class BoxOfficeError(Exception):
    """Base exception for the box office application"""

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int = 400,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(BoxOfficeError):
    """Malformed buyer or admin input"""

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            status_code=400,
            details=details,
        )


class ConflictError(BoxOfficeError):
    """Resource is not in a state that allows the operation"""

    def __init__(self, message: str, code: str = "CONFLICT", details: Optional[Dict] = None):
        super().__init__(
            message=message,
            code=code,
            status_code=409,
            details=details,
        )


class SeatsTakenError(ConflictError):
    """One or more requested seats are held or sold"""

    def __init__(self, seat_ids: Optional[Iterable[str]] = None):
        details = {"unavailable_seats": sorted(seat_ids)} if seat_ids else {}
        super().__init__(
            message="Some seats were just taken, please reselect seats.",
            code="SEATS_TAKEN",
            details=details,
        )
        self.seat_ids = details.get("unavailable_seats", [])


class AuthorizationError(BoxOfficeError):
    """Missing or invalid token/signature. The message never says which."""

    def __init__(self, message: str = "Access denied"):
        super().__init__(
            message=message,
            code="AUTH_FORBIDDEN",
            status_code=403,
        )


class AuthenticationError(BoxOfficeError):
    """Admin credentials missing or wrong"""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(
            message=message,
            code="AUTH_ERROR",
            status_code=401,
        )


class NotFoundError(BoxOfficeError):
    """Unknown event, order, rule or seat"""

    def __init__(self, resource: str, identifier: Any = None):
        message = f"{resource} not found"
        if identifier is not None:
            message = f"{resource} {identifier} not found"
        super().__init__(
            message=message,
            code="NOT_FOUND",
            status_code=404,
        )


class UpstreamError(BoxOfficeError):
    """Payment or email collaborator unavailable or misconfigured"""

    def __init__(self, service: str, message: Optional[str] = None):
        super().__init__(
            message=message or f"External service {service} is unavailable",
            code="UPSTREAM_ERROR",
            status_code=503,
            details={"service": service},
        )


class RateLimitError(BoxOfficeError):
    def __init__(self, limit: int, window: int):
        super().__init__(
            message=f"Rate limit exceeded. Max {limit} requests per {window} seconds",
            code="RATE_LIMIT_EXCEEDED",
            status_code=429,
            details={"limit": limit, "window": window},
        )


class InvariantViolation(BoxOfficeError):
    """Stored data breaks an invariant, e.g. a price area with corrupt selectors"""

    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(
            message=message,
            code="INVARIANT_VIOLATION",
            status_code=500,
            details=details,
        )
