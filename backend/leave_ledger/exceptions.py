from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response schema."""

    error: str
    detail: str | None = None
    status_code: int


class AppError(Exception):
    """Base application exception."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class ValidationError(AppError):
    """Malformed input, rejected before any state change."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND


class PermissionDeniedError(AppError):
    status_code = status.HTTP_403_FORBIDDEN


class ConflictError(AppError):
    """A concurrent mutation was detected. The caller should retry the whole operation."""

    status_code = status.HTTP_409_CONFLICT


class IllegalTransitionError(ConflictError):
    """The requested status change is not allowed from the request's current status."""


class EligibilityError(AppError):
    """Tenure or eligibility criteria for an entitlement are not met."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class EntitlementRuleNotFoundError(AppError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class CalendarNotFoundError(AppError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class InsufficientBalanceError(AppError):
    """A debit would drive a balance negative and the leave type does not allow it."""

    status_code = status.HTTP_409_CONFLICT


class IntegrationDeliveryError(AppError):
    """Raised by integration clients; recovered by the sync worker's retry loop."""

    status_code = status.HTTP_502_BAD_GATEWAY


class AuditWriteFailure(AppError):
    """An audit record could not be persisted after its business change committed."""


AUDIT_WRITE_FAILED_WARNING = "audit_write_failed"


async def _app_exception_handler(request: Request, exc: AppError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=type(exc).__name__,
            detail=exc.message,
            status_code=exc.status_code,
        ).model_dump(),
    )


async def _validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=ErrorResponse(
            error="ValidationError",
            detail=str(exc.errors()),
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        ).model_dump(),
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register exception handlers on the application."""
    app.add_exception_handler(AppError, _app_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)  # type: ignore[arg-type]
