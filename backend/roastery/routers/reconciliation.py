"""Reconciliation router: manual trigger and alert triage.

Endpoints:
    POST  /api/reconciliation/run                Run all checks (?repair=true re-creates missing stock)
    GET   /api/reconciliation/alerts             List alerts with filters
    PATCH /api/reconciliation/alerts/{alert_id}  Acknowledge / resolve / dismiss

Reading alerts requires reports.read; running and triage require
reconciliation.run.
"""

from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from roastery.auth.deps import require_permission
from roastery.database import get_db
from roastery.middleware.exceptions import ResourceNotFoundError, ValidationError
from roastery.models.reconciliation_alert import ReconciliationAlert
from roastery.models.user import User
from roastery.schemas.reconciliation import AlertOut, AlertUpdate, RunSummary
from roastery.services.reconciliation import run_reconciliation

router = APIRouter()


@router.post("/run", response_model=RunSummary, status_code=status.HTTP_201_CREATED)
async def trigger_run(
    repair: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission("reconciliation.run")),
):
    """Run every check.  Earlier open alerts that no longer appear are
    auto-resolved."""
    summary = await run_reconciliation(db, user, repair=repair)
    return RunSummary(**summary)


@router.get("/alerts", response_model=list[AlertOut])
async def list_alerts(
    alert_type: str | None = Query(None, description="Filter by alert_type"),
    severity: str | None = Query(None, description="Filter by severity"),
    alert_status: str | None = Query(None, alias="status", description="Filter by status"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("reports.read")),
):
    stmt = select(ReconciliationAlert)
    if alert_type:
        stmt = stmt.where(ReconciliationAlert.alert_type == alert_type)
    if severity:
        stmt = stmt.where(ReconciliationAlert.severity == severity)
    if alert_status:
        stmt = stmt.where(ReconciliationAlert.status == alert_status)

    result = await db.execute(
        stmt.order_by(ReconciliationAlert.created_at.desc()).limit(limit).offset(offset)
    )
    return result.scalars().all()


@router.patch("/alerts/{alert_id}", response_model=AlertOut)
async def update_alert(
    alert_id: str,
    body: AlertUpdate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission("reconciliation.run")),
):
    valid_statuses = ("acknowledged", "resolved", "dismissed")
    if body.status not in valid_statuses:
        raise ValidationError(
            f"Status must be one of: {', '.join(valid_statuses)}",
            details={"field": "status"},
        )

    alert = (
        await db.execute(select(ReconciliationAlert).where(ReconciliationAlert.id == alert_id))
    ).scalar_one_or_none()
    if not alert:
        raise ResourceNotFoundError("Alert", alert_id)

    alert.status = body.status
    if body.resolution_note:
        alert.resolution_note = body.resolution_note
    if body.status in ("resolved", "dismissed"):
        alert.resolved_at = datetime.utcnow()
        alert.resolved_by = user.id

    await db.flush()
    return alert
