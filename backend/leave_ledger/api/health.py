import logging
from typing import Literal

from fastapi import APIRouter
from pydantic import BaseModel
from sqlalchemy import func, select, text
from sqlmodel import col

from leave_ledger.config import get_settings
from leave_ledger.db import SessionDep
from leave_ledger.models.enums import IntegrationStatus
from leave_ledger.models.integration import IntegrationLog

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: Literal["ok", "degraded", "error"]
    version: str
    environment: str
    exhausted_integration_logs: int | None = None


@router.get("/health", response_model=HealthResponse)
async def health(session: SessionDep) -> HealthResponse:
    """Return the health status of the API service.

    Integration logs that used up their retry budget need an operator and
    report the service as degraded.
    """
    settings = get_settings()
    status: Literal["ok", "degraded", "error"] = "ok"
    exhausted: int | None = None

    try:
        await session.execute(text("SELECT 1"))
        result = await session.execute(
            select(func.count())
            .select_from(IntegrationLog)
            .where(
                col(IntegrationLog.status) == IntegrationStatus.FAILED.value,
                col(IntegrationLog.attempts) >= col(IntegrationLog.max_attempts),
            )
        )
        exhausted = result.scalar_one()
    except Exception:
        logger.exception("Health check: database connectivity failed")
        status = "degraded"

    if exhausted:
        logger.warning("Health check: %d integration log(s) exhausted their retries", exhausted)
        status = "degraded"

    return HealthResponse(
        status=status,
        version=settings.app_version,
        environment=settings.environment,
        exhausted_integration_logs=exhausted,
    )
