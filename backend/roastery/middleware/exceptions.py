"""Domain exceptions and the handlers that turn them into JSON responses.

Every rejection raised by a service is a ``RoasteryException`` subclass
carrying an HTTP status, a stable error code and optional details, so the
UI can tell which precondition failed (which line, how much weight was
left, which status the record was in).
"""

import logging

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger("roastery.errors")


class RoasteryException(Exception):
    """Base exception for roastery application errors."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str = "INTERNAL_ERROR",
        details: dict | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)


class ValidationError(RoasteryException):
    """Malformed input: missing field, notes too short, non-positive quantity."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code="VALIDATION_ERROR",
            details=details,
        )


class InsufficientStockError(RoasteryException):
    """Requested quantity or weight exceeds what is on hand."""

    def __init__(self, message: str, requested: float | None = None, available: float | None = None):
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            error_code="INSUFFICIENT_STOCK",
            details={"requested": requested, "available": available},
        )
        self.requested = requested
        self.available = available


class InsufficientWeightError(RoasteryException):
    """Allocation needs more roasted weight than the batch has left."""

    def __init__(self, batch_code: str, needed_kg: float, remaining_kg: float):
        super().__init__(
            message=(
                f"Batch {batch_code} has {remaining_kg:.3f} kg remaining, "
                f"allocation needs {needed_kg:.3f} kg"
            ),
            status_code=status.HTTP_409_CONFLICT,
            error_code="INSUFFICIENT_WEIGHT",
            details={
                "needed_kg": round(needed_kg, 3),
                "remaining_kg": round(remaining_kg, 3),
            },
        )
        self.needed_kg = needed_kg
        self.remaining_kg = remaining_kg


class InvalidLineError(RoasteryException):
    """An allocation line references an ineligible product or quantity."""

    def __init__(self, line_index: int, message: str, product_id: str | None = None):
        super().__init__(
            message=f"Line {line_index + 1}: {message}",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code="INVALID_LINE",
            details={"line": line_index, "product_id": product_id},
        )
        self.line_index = line_index
        self.product_id = product_id


class AuthorizationError(RoasteryException):
    """A non-privileged role attempted a gated action."""

    def __init__(self, message: str = "Permission denied"):
        super().__init__(
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            error_code="PERMISSION_DENIED",
        )


class AlreadyResolvedError(RoasteryException):
    """The adjustment was already approved or rejected."""

    def __init__(self, adjustment_id: str, current_status: str):
        super().__init__(
            message=f"Adjustment {adjustment_id} is already {current_status}",
            status_code=status.HTTP_409_CONFLICT,
            error_code="ALREADY_RESOLVED",
            details={"status": current_status},
        )


class InvalidTransitionError(RoasteryException):
    """The requested status change is not allowed from the current status."""

    def __init__(self, entity: str, current: str, target: str, message: str | None = None):
        super().__init__(
            message=message or f"Cannot move {entity} from {current} to {target}",
            status_code=status.HTTP_409_CONFLICT,
            error_code="INVALID_TRANSITION",
            details={"current": current, "target": target},
        )


class ConcurrencyConflictError(RoasteryException):
    """A row was changed by another session between read and write."""

    def __init__(self, message: str = "Record was modified concurrently; reload and retry"):
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            error_code="CONCURRENT_MODIFICATION",
        )


class ResourceNotFoundError(RoasteryException):
    """Exception for resources not found."""

    def __init__(self, resource: str, identifier: str):
        super().__init__(
            message=f"{resource} not found: {identifier}",
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="RESOURCE_NOT_FOUND",
        )


class StorageError(RoasteryException):
    """The backing store failed; already-issued writes may need reconciling."""

    def __init__(self, message: str = "Storage backend unavailable. Please try again."):
        super().__init__(
            message=message,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            error_code="STORAGE_ERROR",
        )


def create_error_response(
    status_code: int,
    message: str,
    error_code: str = "ERROR",
    details: dict | list | None = None,
) -> JSONResponse:
    """Render the error envelope: {"error": {"code", "message", "details"?}}."""
    error = {"code": error_code, "message": message}
    if details:
        error["details"] = details
    return JSONResponse(status_code=status_code, content={"error": error})


def _request_context(request: Request) -> dict:
    return {"path": request.url.path, "method": request.method}


async def roastery_exception_handler(request: Request, exc: RoasteryException) -> JSONResponse:
    """Render a service-layer rejection with its own status, code and details."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "%s on %s: %s", exc.error_code, request.url.path, exc.message,
        extra={"error_code": exc.error_code, **_request_context(request)},
    )
    return create_error_response(exc.status_code, exc.message, exc.error_code, exc.details)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    # 401 / 403 from the auth dependencies, 404 / 405 from routing
    if exc.status_code >= 500:
        logger.error("HTTP %s: %s", exc.status_code, exc.detail, extra=_request_context(request))
    return create_error_response(exc.status_code, str(exc.detail), f"HTTP_{exc.status_code}")


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Request body / query failed schema validation.

    Each error is echoed as location, message and type only; the offending
    input can be NaN, which JSONResponse refuses to render.
    """
    errors = [
        {
            "field": " -> ".join(str(part) for part in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    logger.warning(
        "Validation error on %s: %d problem(s)", request.url.path, len(errors),
        extra={**_request_context(request), "errors": errors},
    )
    return create_error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY, "Validation error", "VALIDATION_ERROR",
        {"errors": errors},
    )


# Substring of the driver message → (error code, message)
_INTEGRITY_CODES = (
    ("unique", "DUPLICATE_RECORD", "A record with this value already exists"),
    ("foreign key", "FOREIGN_KEY_VIOLATION", "Referenced record does not exist"),
    ("not null", "NULL_VALUE_NOT_ALLOWED", "Required field is missing"),
)


async def database_exception_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    """Constraint violations that slipped past service validation (e.g. a SKU race)."""
    driver_message = str(exc.orig if exc.orig is not None else exc)
    logger.error(
        "Integrity error on %s: %s", request.url.path, driver_message,
        extra=_request_context(request),
    )
    lowered = driver_message.lower()
    for needle, code, message in _INTEGRITY_CODES:
        if needle in lowered:
            break
    else:
        code, message = "INTEGRITY_ERROR", "Database constraint violation"
    return create_error_response(status.HTTP_422_UNPROCESSABLE_ENTITY, message, code)


async def operational_exception_handler(request: Request, exc: OperationalError) -> JSONResponse:
    logger.error(
        "Database unavailable on %s: %s", request.url.path, exc,
        extra=_request_context(request),
    )
    unavailable = StorageError()
    return create_error_response(
        unavailable.status_code, unavailable.message, unavailable.error_code,
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception on %s", request.url.path, extra=_request_context(request))
    return create_error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "An unexpected error occurred. Please try again later.",
        "INTERNAL_SERVER_ERROR",
    )


def register_exception_handlers(app):
    """Register the envelope handlers on the FastAPI app.

    FastAPI's HTTPException subclasses Starlette's, so one registration
    covers both.
    """
    app.add_exception_handler(RoasteryException, roastery_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(IntegrityError, database_exception_handler)
    app.add_exception_handler(OperationalError, operational_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
