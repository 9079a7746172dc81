"""Shared fixtures: a throwaway SQLite database per test."""

from typing import List

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from offer_scout.db.models import Base, Search
from offer_scout.db.searches import create_search
from offer_scout.ingest.base import ImageRecord, OfferRecord


@pytest.fixture
async def session_factory(tmp_path):
    """Session factory bound to a fresh file-backed SQLite database."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
async def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        await session.close()


@pytest.fixture
async def search(db_session) -> Search:
    return await create_search(
        db_session,
        title="Quiet luxury knitwear",
        search_prompt="Muted, logo-free knitwear in natural fibres",
        example_images=["https://example.com/ref-1.jpg", "https://example.com/ref-2.jpg"],
        search_terms=["vintage denim"],
    )


def _make_offer(search_id, external_id: str = "1234567", **overrides) -> OfferRecord:
    values = {
        "source": "sellpy",
        "external_id": external_id,
        "search_term": "vintage denim",
        "url": f"https://www.sellpy.de/item/{external_id}",
        "title": "Levi's 501 jeans",
        "brand": "Levi's",
        "raw_metadata": {"json_ld": []},
        "search_id": search_id,
    }
    values.update(overrides)
    return OfferRecord(**values)


def _make_images(*urls: str) -> List[ImageRecord]:
    return [ImageRecord(position=i, image_url=url) for i, url in enumerate(urls)]


@pytest.fixture
def make_offer():
    """Factory for offer records ready to upsert."""
    return _make_offer


@pytest.fixture
def make_images():
    """Factory for positional image records."""
    return _make_images
