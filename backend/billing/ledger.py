"""Free-download entitlement counter.

The only mutation is try_consume(), a single conditional UPDATE. The
database serialises concurrent updates of the same row, so no in-process
lock is needed to stop two requests spending the same credit.
"""

import logging
import uuid

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from models import Profile

logger = logging.getLogger(__name__)


async def get_or_create_profile(db: AsyncSession, user_id: uuid.UUID) -> Profile:
    """Get the user's profile, creating it with the free grant if missing."""
    result = await db.execute(select(Profile).where(Profile.id == user_id))
    profile = result.scalar_one_or_none()
    if profile is None:
        db.add(Profile(id=user_id))
        try:
            await db.commit()
        except IntegrityError:
            # Created concurrently by another request
            await db.rollback()
        result = await db.execute(select(Profile).where(Profile.id == user_id))
        profile = result.scalar_one()
    return profile


async def get_balance(db: AsyncSession, user_id: uuid.UUID) -> int:
    result = await db.execute(
        select(Profile.free_downloads_remaining).where(Profile.id == user_id)
    )
    return result.scalar_one_or_none() or 0


async def try_consume(db: AsyncSession, user_id: uuid.UUID) -> bool:
    """Spend one free download if any remain.

    Does not commit: the decrement joins the caller's transaction so it is
    undone if the download fails later.

    Returns:
        True if a credit was spent, False if none were available.
    """
    result = await db.execute(
        update(Profile)
        .where(Profile.id == user_id, Profile.free_downloads_remaining > 0)
        .values(free_downloads_remaining=Profile.free_downloads_remaining - 1)
        .execution_options(synchronize_session=False)
    )
    consumed = result.rowcount == 1
    logger.info("Free download consume for %s: %s", user_id, "ok" if consumed else "none left")
    return consumed
