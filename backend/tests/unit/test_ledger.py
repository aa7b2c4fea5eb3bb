"""Tests for billing.ledger: the free-download counter."""

import asyncio
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from billing.ledger import get_balance, get_or_create_profile, try_consume
from config import settings
from models import Base, Profile


class TestGetOrCreateProfile:
    async def test_creates_with_free_grant(self, db_session):
        uid = uuid.uuid4()
        profile = await get_or_create_profile(db_session, uid)
        assert profile.id == uid
        assert profile.free_downloads_remaining == settings.free_download_grant

    async def test_existing_profile_untouched(self, db_session):
        uid = uuid.uuid4()
        db_session.add(Profile(id=uid, free_downloads_remaining=1))
        await db_session.commit()

        profile = await get_or_create_profile(db_session, uid)
        assert profile.free_downloads_remaining == 1


class TestTryConsume:
    async def test_spends_exactly_available_credits(self, db_session):
        uid = uuid.uuid4()
        db_session.add(Profile(id=uid, free_downloads_remaining=1))
        await db_session.commit()

        assert await try_consume(db_session, uid) is True
        assert await try_consume(db_session, uid) is False
        await db_session.commit()

        assert await get_balance(db_session, uid) == 0

    async def test_never_goes_negative(self, db_session):
        uid = uuid.uuid4()
        db_session.add(Profile(id=uid, free_downloads_remaining=0))
        await db_session.commit()

        assert await try_consume(db_session, uid) is False
        result = await db_session.execute(
            select(Profile.free_downloads_remaining).where(Profile.id == uid)
        )
        assert result.scalar_one() == 0

    async def test_rollback_restores_credit(self, db_session):
        uid = uuid.uuid4()
        db_session.add(Profile(id=uid, free_downloads_remaining=2))
        await db_session.commit()

        assert await try_consume(db_session, uid) is True
        assert await get_balance(db_session, uid) == 1
        await db_session.rollback()

        assert await get_balance(db_session, uid) == 2

    async def test_unknown_user(self, db_session):
        uid = uuid.uuid4()
        assert await try_consume(db_session, uid) is False
        assert await get_balance(db_session, uid) == 0


class TestConcurrentConsume:
    """Two requests racing for the last credit on separate connections."""

    async def test_last_credit_spent_once(self, tmp_path):
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
        sessions = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            uid = uuid.uuid4()
            async with sessions() as db:
                db.add(Profile(id=uid, free_downloads_remaining=1))
                await db.commit()

            async def download() -> bool:
                async with sessions() as db:
                    balance = await get_balance(db, uid)
                    consumed = balance > 0 and await try_consume(db, uid)
                    await db.commit()
                    return consumed

            outcomes = await asyncio.gather(download(), download())

            assert sorted(outcomes) == [False, True]
            async with sessions() as db:
                assert await get_balance(db, uid) == 0
        finally:
            await engine.dispose()
