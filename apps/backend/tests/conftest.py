"""Shared fixtures: file-backed SQLite storage, fake LLM, API client."""

import os

# Must be set before jobfeed.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from jobfeed.context import RequestContext
from jobfeed.models import AdvancedMatching, Base, Job, JobStatus, Profile
from jobfeed.services.llm import ChatCompletion
from jobfeed.services.usage import UsageMeter

BASE_TIME = datetime(2026, 1, 1, tzinfo=timezone.utc)


class FakeLLM:
    """Chat client returning a canned answer and recording every call."""

    def __init__(self, answer: str = "No", input_tokens: int = 120, output_tokens: int = 1):
        self.answer = answer
        self.input_tokens = input_tokens
        self.output_tokens = output_tokens
        self.calls: list[dict] = []

    async def complete(self, system: str, user: str, **params) -> ChatCompletion:
        self.calls.append({"system": system, "user": user, **params})
        return ChatCompletion(
            content=self.answer,
            input_tokens=self.input_tokens,
            output_tokens=self.output_tokens,
        )


@pytest_asyncio.fixture
async def engine(tmp_path):
    # One connection per session, like a real pool; usage writes run concurrently
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'jobfeed.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def user_id():
    return uuid4()


@pytest.fixture
def ctx(db, user_id):
    return RequestContext(user_id=user_id, db=db)


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def add_jobs(db, user_id):
    """Insert jobs with explicit updated_at offsets (seconds after BASE_TIME)."""

    async def _add(*offsets, status=JobStatus.NEW, owner=None, **fields):
        jobs = []
        for offset in offsets:
            n = uuid4().hex[:8]
            job = Job(
                user_id=owner or user_id,
                site_id=fields.get("site_id", 1),
                external_id=f"ext-{n}",
                external_url=f"https://jobs.example.com/{n}",
                title=fields.get("title", f"Engineer {n}"),
                company_name=fields.get("company_name", "Initech"),
                description=fields.get("description"),
                status=status.value,
                created_at=BASE_TIME,
                updated_at=BASE_TIME + timedelta(seconds=offset),
            )
            db.add(job)
            jobs.append(job)
        await db.commit()
        return jobs

    return _add


@pytest.fixture
def add_matching_inputs(db, user_id):
    """Insert a profile and (optionally) an advanced matching config."""

    async def _add(
        tier="pro",
        ends_in=timedelta(days=30),
        prompt="Exclude anything that requires Java.",
        blacklisted=("Acme",),
        with_config=True,
    ):
        db.add(
            Profile(
                user_id=user_id,
                subscription_tier=tier,
                subscription_end_date=datetime.now(timezone.utc) + ends_in,
            )
        )
        if with_config:
            db.add(
                AdvancedMatching(
                    user_id=user_id,
                    chatgpt_prompt=prompt,
                    blacklisted_companies=list(blacklisted),
                )
            )
        await db.commit()

    return _add


@pytest.fixture
def usage_meter(session_factory):
    return UsageMeter(session_factory)


@pytest_asyncio.fixture
async def api_client(session_factory, fake_llm, usage_meter):
    """httpx client bound to the FastAPI app with test storage and LLM."""
    from jobfeed.database import get_db
    from jobfeed.dependencies import get_llm_client, get_usage_meter
    from main import app

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_llm_client] = lambda: fake_llm
    app.dependency_overrides[get_usage_meter] = lambda: usage_meter

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    await usage_meter.drain()
    app.dependency_overrides.clear()
