"""Reconciliation engine: detect drift between packaging records and stock.

Checks:
  1. packaging_without_stock  a packaging unit whose SKU has no inventory row
                              (an interrupted packaging run); repairable
  2. over_allocated_batch     Σ packaged weight exceeds the batch output
  3. packaged_weight_drift    the batch's cached packaged weight disagrees
                              with its packaging units

Each run auto-resolves open alerts from earlier runs, then records the
mismatches it still sees as new ReconciliationAlert rows.
"""

import logging
import uuid
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from roastery.config import settings
from roastery.models.inventory import InventoryItem
from roastery.models.reconciliation_alert import ReconciliationAlert
from roastery.models.roasting_batch import BatchStatus, PackagingUnit, RoastingBatch
from roastery.models.user import User
from roastery.services.allocation import build_inventory_item
from roastery.utils.activity import log_activity
from roastery.utils.persistence import flush_or_raise

logger = logging.getLogger("roastery.reconciliation")


def _severity(variance_pct: float) -> str:
    """Map variance percentage to severity level."""
    abs_pct = abs(variance_pct) if variance_pct else 0
    if abs_pct >= 20:
        return "critical"
    if abs_pct >= 10:
        return "high"
    if abs_pct >= 5:
        return "medium"
    return "low"


def _safe_pct(expected: float, actual: float) -> float:
    if not expected:
        return 100.0 if actual else 0.0
    return round(abs(actual - expected) / abs(expected) * 100, 2)


# ─────────────────────────────────────────────────────────────
# CHECK 1:  packaging unit  without  its inventory row
# ─────────────────────────────────────────────────────────────

async def check_packaging_without_stock(
    db: AsyncSession,
    run_id: str,
    repair: bool = False,
) -> tuple[list[ReconciliationAlert], int]:
    """Find units whose SKU never reached inventory; optionally re-create the rows."""
    stocked = select(InventoryItem.sku).where(InventoryItem.sku.is_not(None))
    result = await db.execute(
        select(PackagingUnit)
        .where(PackagingUnit.sku.not_in(stocked))
        .options(
            selectinload(PackagingUnit.batch),
            selectinload(PackagingUnit.product),
            selectinload(PackagingUnit.template),
        )
    )

    alerts: list[ReconciliationAlert] = []
    repaired = 0
    for unit in result.scalars().all():
        if repair:
            db.add(build_inventory_item(unit.batch, unit, unit.product, unit.template))
            repaired += 1
            logger.warning(
                "Repaired missing inventory for %s (batch %s, %d units)",
                unit.sku, unit.batch.batch_code, unit.quantity,
            )
            continue

        alerts.append(ReconciliationAlert(
            alert_type="packaging_without_stock",
            severity="high",
            title=f"{unit.sku}: packaged but not in stock",
            description=(
                f"Batch {unit.batch.batch_code} packaged {unit.quantity} × "
                f"{unit.size_label or 'unit'} as {unit.sku} but no inventory row "
                "carries that SKU."
            ),
            expected_value=float(unit.quantity),
            actual_value=0.0,
            variance=-float(unit.quantity),
            variance_pct=100.0,
            unit="units",
            entity_refs={
                "batch_id": unit.batch_id,
                "packaging_unit_id": unit.id,
                "sku": unit.sku,
                "location_id": unit.location_id,
            },
            run_id=run_id,
        ))

    if repaired:
        await flush_or_raise(db, "reconciliation repair")
    return alerts, repaired


# ─────────────────────────────────────────────────────────────
# CHECK 2 + 3:  batch output  vs  packaged weight
# ─────────────────────────────────────────────────────────────

async def check_batch_weights(db: AsyncSession, run_id: str) -> list[ReconciliationAlert]:
    """Compare each completed batch's output and cache against its packaging units."""
    unit_totals = (
        select(
            PackagingUnit.batch_id,
            func.coalesce(
                func.sum(PackagingUnit.quantity * PackagingUnit.unit_weight_kg), 0
            ).label("packaged_kg"),
        )
        .group_by(PackagingUnit.batch_id)
        .subquery()
    )
    result = await db.execute(
        select(
            RoastingBatch.id,
            RoastingBatch.batch_code,
            RoastingBatch.post_weight_kg,
            RoastingBatch.packaged_weight_kg,
            unit_totals.c.packaged_kg,
        )
        .outerjoin(unit_totals, RoastingBatch.id == unit_totals.c.batch_id)
        .where(RoastingBatch.status == BatchStatus.COMPLETED.value)
    )

    eps = settings.weight_epsilon_kg
    alerts: list[ReconciliationAlert] = []
    for row in result.all():
        output = row.post_weight_kg or 0.0
        packaged = float(row.packaged_kg or 0.0)
        cached = row.packaged_weight_kg or 0.0
        refs = {"batch_id": row.id, "batch_code": row.batch_code}

        if packaged > output + eps:
            pct = _safe_pct(output, packaged)
            alerts.append(ReconciliationAlert(
                alert_type="over_allocated_batch",
                severity="critical",
                title=f"Batch {row.batch_code}: packaged more than roasted",
                description=(
                    f"Batch {row.batch_code} roasted {output:.3f} kg but "
                    f"packaging units total {packaged:.3f} kg."
                ),
                expected_value=output,
                actual_value=packaged,
                variance=round(packaged - output, 3),
                variance_pct=pct,
                unit="kg",
                entity_refs=refs,
                run_id=run_id,
            ))

        if abs(cached - packaged) > eps:
            pct = _safe_pct(packaged, cached)
            alerts.append(ReconciliationAlert(
                alert_type="packaged_weight_drift",
                severity=_severity(pct),
                title=f"Batch {row.batch_code}: packaged weight cache out of date",
                description=(
                    f"Batch {row.batch_code} records {cached:.3f} kg packaged but "
                    f"its packaging units total {packaged:.3f} kg."
                ),
                expected_value=packaged,
                actual_value=cached,
                variance=round(cached - packaged, 3),
                variance_pct=pct,
                unit="kg",
                entity_refs=refs,
                run_id=run_id,
            ))

    return alerts


async def run_reconciliation(
    db: AsyncSession,
    user: User | None = None,
    repair: bool = False,
) -> dict:
    """Execute all checks, persist alerts, return a summary.

    Returns:
        {
            "run_id": "...",
            "ran_at": "...",
            "total_alerts": int,
            "repaired": int,
            "by_type": {"over_allocated_batch": int, ...},
            "by_severity": {"critical": int, ...},
        }
    """
    run_id = str(uuid.uuid4())

    # Auto-resolve open alerts from previous runs; anything still wrong is
    # raised again below.
    old_open = await db.execute(
        select(ReconciliationAlert).where(ReconciliationAlert.status == "open")
    )
    for old_alert in old_open.scalars().all():
        old_alert.status = "resolved"
        old_alert.resolution_note = "Auto-resolved: mismatch no longer detected"
        old_alert.resolved_at = datetime.utcnow()
    await flush_or_raise(db, "reconciliation")

    all_alerts, repaired = await check_packaging_without_stock(db, run_id, repair=repair)
    all_alerts.extend(await check_batch_weights(db, run_id))

    for alert in all_alerts:
        db.add(alert)
    await flush_or_raise(db, "reconciliation")

    by_type: dict[str, int] = {}
    by_severity: dict[str, int] = {}
    for a in all_alerts:
        by_type[a.alert_type] = by_type.get(a.alert_type, 0) + 1
        by_severity[a.severity] = by_severity.get(a.severity, 0) + 1

    if repaired:
        await log_activity(
            db, user, action="repaired", entity_type="inventory_item",
            summary=f"Reconciliation re-created {repaired} missing inventory row(s)",
            details={"run_id": run_id},
        )

    logger.info(
        "Reconciliation run %s: %d alert(s), %d repair(s)", run_id, len(all_alerts), repaired,
    )
    return {
        "run_id": run_id,
        "ran_at": datetime.utcnow().isoformat(),
        "total_alerts": len(all_alerts),
        "repaired": repaired,
        "by_type": by_type,
        "by_severity": by_severity,
    }
