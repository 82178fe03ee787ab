"""Code generation for batches, packaging SKUs and invoices.

Formats:
  batch:    B-{YYYYMM}-{seq:4}    sequence resets monthly
  invoice:  INV-{YYYYMMDD}-{seq:4} sequence resets daily
  sku:      {sku_prefix}-{batch suffix}-{4 random digits}

Sequences are derived by counting existing codes with the same prefix, so
two concurrent creations can pick the same number; the unique constraint
on the code column turns that into an IntegrityError for the loser.
"""

import logging
import random
from datetime import date

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from roastery.middleware.exceptions import StorageError
from roastery.models.roasting_batch import PackagingUnit, RoastingBatch
from roastery.models.sale import SaleTransaction

logger = logging.getLogger("roastery.numbering")

MAX_SKU_ATTEMPTS = 50


async def generate_batch_code(db: AsyncSession, on: date | None = None) -> str:
    """Return the next B-YYYYMM-NNNN code for the month of ``on``."""
    prefix = f"B-{(on or date.today()).strftime('%Y%m')}-"
    result = await db.execute(
        select(func.count(RoastingBatch.id)).where(
            RoastingBatch.batch_code.like(f"{prefix}%")
        )
    )
    count = result.scalar() or 0
    return f"{prefix}{count + 1:04d}"


async def generate_invoice_number(db: AsyncSession, on: date | None = None) -> str:
    """Return the next INV-YYYYMMDD-NNNN invoice number."""
    prefix = f"INV-{(on or date.today()).strftime('%Y%m%d')}-"
    result = await db.execute(
        select(func.count(SaleTransaction.id)).where(
            SaleTransaction.invoice_number.like(f"{prefix}%")
        )
    )
    count = result.scalar() or 0
    return f"{prefix}{count + 1:04d}"


async def generate_skus(
    db: AsyncSession,
    sku_prefixes: list[str],
    batch_code: str,
) -> list[str]:
    """Generate one unique SKU per prefix for a packaging run.

    SKUs are unique within the run and against every SKU already stored.
    Each prefix+suffix pair has only 9000 codes, so after
    ``MAX_SKU_ATTEMPTS`` collisions the run fails with StorageError.
    """
    suffix = batch_code.split("-")[-1]
    taken: set[str] = set()
    skus: list[str] = []

    for prefix in sku_prefixes:
        for _ in range(MAX_SKU_ATTEMPTS):
            candidate = f"{prefix}-{suffix}-{random.randint(1000, 9999)}"
            if candidate in taken:
                continue
            exists = (
                await db.execute(
                    select(PackagingUnit.id).where(PackagingUnit.sku == candidate)
                )
            ).first()
            if exists is None:
                break
            taken.add(candidate)
        else:
            logger.error(
                "No free SKU for %s-%s after %d attempts", prefix, suffix, MAX_SKU_ATTEMPTS,
            )
            raise StorageError(f"Could not generate a unique SKU for {prefix}-{suffix}")
        taken.add(candidate)
        skus.append(candidate)

    return skus
