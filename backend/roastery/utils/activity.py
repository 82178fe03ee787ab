"""Audit trail helper.

    await log_activity(
        db, user, action="packaged", entity_type="batch",
        entity_id=batch.id, entity_code=batch.batch_code,
        location_id=location.id,
        summary="Packaged 24 units (6.00 kg) to Downtown",
    )

Pass ``user=None`` for unattended work; the entry is attributed to the
system actor.  Nothing is flushed here.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from roastery.models.activity_log import SYSTEM_ACTOR, ActivityLog
from roastery.models.user import User


async def log_activity(
    db: AsyncSession,
    user: User | None,
    *,
    action: str,
    entity_type: str,
    entity_id: str | None = None,
    entity_code: str | None = None,
    location_id: str | None = None,
    summary: str | None = None,
    details: dict | None = None,
) -> ActivityLog:
    entry = ActivityLog(
        user_id=user.id if user is not None else None,
        user_name=user.full_name if user is not None else SYSTEM_ACTOR,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        entity_code=entity_code,
        location_id=location_id,
        summary=summary,
        details=details,
    )
    db.add(entry)
    return entry
