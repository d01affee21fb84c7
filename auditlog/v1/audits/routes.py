"""
Audit event API endpoints.

Lets domain code log events over HTTP and lets operators inspect and re-arm
events the worker could not process.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from auditlog.config.settings import Settings, SettingsDep
from auditlog.infra.database import get_session
from auditlog.v1.audits.schemas import AuditCreate, AuditListResponse, AuditResponse
from auditlog.v1.audits.service import AuditService
from auditlog.v1.core.exceptions import (
    ConflictError,
    NotFoundError,
    create_success_response,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/audits", tags=["audits"])


@router.post("", response_model=dict, status_code=201)
async def log_audit(
    audit_request: AuditCreate,
    session: AsyncSession = Depends(get_session),
    settings: Settings = SettingsDep,
) -> dict[str, Any]:
    """Log a new audit event."""

    audit_service = AuditService(settings)
    audit = await audit_service.log(
        session,
        audit_request.action,
        actor_id=audit_request.actor_id,
        actee_id=audit_request.actee_id,
        details=audit_request.details,
    )
    await session.commit()

    return create_success_response(
        data=AuditResponse.model_validate(audit).model_dump(mode="json")
    )


@router.get("", response_model=dict)
async def list_audits(
    action: str | None = Query(default=None, description="Filter by action"),
    failed: bool = Query(default=False, description="Only events with failures"),
    unprocessed: bool = Query(default=False, description="Only unprocessed events"),
    limit: int = Query(default=50, ge=1, le=1000, description="Maximum results"),
    offset: int = Query(default=0, ge=0, description="Results offset"),
    session: AsyncSession = Depends(get_session),
    settings: Settings = SettingsDep,
) -> dict[str, Any]:
    """List audit events, newest first."""

    audit_service = AuditService(settings)
    audits, total = await audit_service.list_audits(
        session,
        action=action,
        failed_only=failed,
        unprocessed_only=unprocessed,
        limit=limit,
        offset=offset,
    )

    response_data = AuditListResponse(
        audits=[AuditResponse.model_validate(audit) for audit in audits],
        total=total,
        limit=limit,
        offset=offset,
    )
    return create_success_response(data=response_data.model_dump(mode="json"))


@router.get("/{audit_id}", response_model=dict)
async def get_audit(
    audit_id: int,
    session: AsyncSession = Depends(get_session),
    settings: Settings = SettingsDep,
) -> dict[str, Any]:
    """Get a specific audit event by ID."""

    audit = await AuditService(settings).get_by_id(session, audit_id)
    if not audit:
        raise NotFoundError("Audit not found", details={"audit_id": audit_id})

    return create_success_response(
        data=AuditResponse.model_validate(audit).model_dump(mode="json")
    )


@router.post("/{audit_id}/retry", response_model=dict)
async def retry_audit(
    audit_id: int,
    session: AsyncSession = Depends(get_session),
    settings: Settings = SettingsDep,
) -> dict[str, Any]:
    """Reset the failure count of an unprocessed event so the worker picks it up again."""

    audit_service = AuditService(settings)
    audit = await audit_service.get_by_id(session, audit_id)
    if not audit:
        raise NotFoundError("Audit not found", details={"audit_id": audit_id})
    if audit.processed is not None:
        raise ConflictError(
            "Audit already processed", details={"audit_id": audit_id}
        )

    await audit_service.retry(session, audit_id)
    await session.commit()

    logger.info("Audit retried via API", extra={"audit_id": audit_id})

    return create_success_response(data={"success": True, "audit_id": audit_id})
