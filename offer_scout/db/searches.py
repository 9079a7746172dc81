"""Search lookups used by the poll loops and the CLI."""

import uuid
from typing import Any, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from offer_scout.db.models import Search


def parse_string_list(value: Any) -> List[str]:
    """Trimmed, non-empty strings from a JSON array column; anything else gives []."""
    if not isinstance(value, list):
        return []
    return [str(entry).strip() for entry in value if entry is not None and str(entry).strip()]


async def list_active_searches(db: AsyncSession) -> List[Search]:
    """Searches that are active and not soft-deleted."""
    result = await db.execute(
        select(Search)
        .where(Search.is_active.is_(True), Search.is_deleted.is_(False))
        .order_by(Search.created_at)
    )
    return list(result.scalars().all())


async def get_search(db: AsyncSession, search_id: uuid.UUID) -> Optional[Search]:
    """Search by id, or None."""
    return await db.get(Search, search_id)


async def create_search(
    db: AsyncSession,
    title: str,
    search_prompt: str,
    example_images: List[str],
    search_terms: Optional[List[str]] = None,
    is_active: bool = True,
) -> Search:
    """Insert a new active search and return it."""
    search = Search(
        title=title,
        search_prompt=search_prompt,
        example_images=list(example_images),
        search_terms=list(search_terms or []),
        is_active=is_active,
        is_deleted=False,
    )
    db.add(search)
    await db.commit()
    await db.refresh(search)
    return search
