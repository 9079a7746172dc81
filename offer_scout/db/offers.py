"""Offer persistence: idempotent upsert and evaluation-batch queries."""

import logging
import uuid
from dataclasses import asdict
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import delete, exists, insert, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from offer_scout.db.models import Offer, OfferImage, OfferSearchEvaluation
from offer_scout.ingest.base import ImageRecord, OfferRecord

logger = logging.getLogger(__name__)

OFFER_KEY = ("source", "external_id", "search_id")


def dialect_insert(db: AsyncSession, table):
    """INSERT construct supporting ON CONFLICT for the session's dialect."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(table)
    if dialect == "sqlite":
        return sqlite.insert(table)
    raise NotImplementedError(f"Upserts are not supported on {dialect}")


async def upsert_offer(
    db: AsyncSession,
    offer: OfferRecord,
    images: List[ImageRecord],
) -> tuple[uuid.UUID, bool]:
    """
    Insert or update an offer keyed on (source, external_id, search_id).

    Every column is overwritten (None where absent) and scraped_at is
    refreshed. The offer's images are then deleted and re-inserted from
    the given list, so the stored set always equals the latest crawl.

    Returns:
        (offer id, whether the offer was newly created)
    """
    if offer.search_id is None:
        raise ValueError("offer.search_id must be set before upserting")

    existing_id = await db.scalar(
        select(Offer.id).where(
            Offer.source == offer.source,
            Offer.external_id == offer.external_id,
            Offer.search_id == offer.search_id,
        ).limit(1)
    )
    is_new = existing_id is None
    offer_id = existing_id or uuid.uuid4()

    values = asdict(offer)
    values["raw_metadata"] = values.get("raw_metadata") or {}
    values["scraped_at"] = datetime.utcnow()

    stmt = dialect_insert(db, Offer).values(id=offer_id, **values)
    stmt = stmt.on_conflict_do_update(
        index_elements=list(OFFER_KEY),
        set_={key: value for key, value in values.items() if key not in ("source", "external_id")},
    )
    await db.execute(stmt)

    await db.execute(delete(OfferImage).where(OfferImage.offer_id == offer_id))
    if images:
        now = datetime.utcnow()
        await db.execute(
            insert(OfferImage),
            [
                {
                    "id": uuid.uuid4(),
                    "offer_id": offer_id,
                    "created_at": now,
                    **asdict(image),
                }
                for image in images
            ],
        )

    await db.commit()
    logger.debug(f"Upserted offer {offer.external_id} ({'new' if is_new else 'updated'}), {len(images)} images")
    return offer_id, is_new


async def fetch_offers_for_search(
    db: AsyncSession,
    search_id: uuid.UUID,
    batch_size: int,
    force: bool = False,
    exclude_ids: Optional[Iterable[uuid.UUID]] = None,
) -> List[Offer]:
    """
    Offers of a search that can be evaluated, with images loaded.

    Only offers with a title and at least one image qualify. Unless force
    is set, offers already evaluated for this search are excluded, as are
    any offers listed in exclude_ids.
    """
    has_images = exists().where(OfferImage.offer_id == Offer.id)
    query = (
        select(Offer)
        .where(
            Offer.search_id == search_id,
            Offer.title.is_not(None),
            has_images,
        )
        .options(selectinload(Offer.images))
        .order_by(Offer.scraped_at, Offer.id)
        .limit(batch_size)
    )
    if not force:
        evaluated = exists().where(
            OfferSearchEvaluation.offer_id == Offer.id,
            OfferSearchEvaluation.search_id == search_id,
        )
        query = query.where(~evaluated)
    if exclude_ids:
        query = query.where(Offer.id.not_in(list(exclude_ids)))

    result = await db.execute(query)
    return list(result.scalars().all())


async def fetch_offer_by_id(db: AsyncSession, offer_id: uuid.UUID) -> Optional[Offer]:
    """Single offer with its images, or None."""
    result = await db.execute(
        select(Offer).where(Offer.id == offer_id).options(selectinload(Offer.images))
    )
    return result.scalar_one_or_none()
