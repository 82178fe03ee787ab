"""Flush helper that maps SQLAlchemy failures onto domain exceptions.

Services call ``flush_or_raise`` at the end of a write so that version
conflicts and storage outages surface as typed errors while the request's
transaction is still open and can be rolled back as a whole.
"""

import logging

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from roastery.middleware.exceptions import ConcurrencyConflictError, StorageError

logger = logging.getLogger("roastery.persistence")


async def flush_or_raise(db: AsyncSession, context: str) -> None:
    """Flush pending writes, translating stale versions and driver errors.

    IntegrityError is left alone for the global handler (duplicate codes).
    """
    try:
        await db.flush()
    except StaleDataError as exc:
        logger.warning("Version conflict during %s: %s", context, exc)
        raise ConcurrencyConflictError() from exc
    except IntegrityError:
        raise
    except DBAPIError as exc:
        logger.error("Storage failure during %s: %s", context, exc)
        raise StorageError() from exc
