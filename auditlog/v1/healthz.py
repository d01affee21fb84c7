import logging
from datetime import UTC, datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from auditlog.config.settings import Settings, SettingsDep
from auditlog.infra.database import get_session
from auditlog.v1.audits.schemas import AuditQueueStats
from auditlog.v1.audits.service import AuditService
from auditlog.v1.core.exceptions import create_success_response
from auditlog.v1.worker.policy import RetryPolicy

logger = logging.getLogger(__name__)

router = APIRouter()


class DatabaseHealth(BaseModel):
    """Database health status."""

    connected: bool
    response_time_ms: float | None = None
    error: str | None = None


@router.get("/healthz", response_model=dict)
async def health_check(
    settings: Settings = SettingsDep, session: AsyncSession = Depends(get_session)
):
    """Health check with database status and the worker's event backlog."""

    timestamp = datetime.now(UTC).isoformat()

    db_health = await _check_database_health(session)

    # Backlog counters are informational and never fail the check
    queue = None
    if db_health.connected:
        try:
            queue = await _check_event_queue(session, settings)
        except Exception:
            logger.warning("Event backlog check failed", exc_info=True)

    health_data = {
        "ok": db_health.connected,
        "version": settings.version,
        "environment": settings.environment,
        "timestamp": timestamp,
        "database": db_health.model_dump(),
        "events": queue.model_dump() if queue else None,
    }

    return create_success_response(data=health_data)


async def _check_database_health(session: AsyncSession) -> DatabaseHealth:
    """Check database connectivity and response time."""
    start_time = datetime.now(UTC)

    try:
        await session.execute(text("SELECT 1"))

        response_time_ms = (datetime.now(UTC) - start_time).total_seconds() * 1000
        return DatabaseHealth(
            connected=True, response_time_ms=round(response_time_ms, 2)
        )

    except Exception as e:
        return DatabaseHealth(connected=False, error=str(e))


async def _check_event_queue(
    session: AsyncSession, settings: Settings
) -> AuditQueueStats:
    return await AuditService(settings).queue_stats(
        session, RetryPolicy.from_settings(settings)
    )
