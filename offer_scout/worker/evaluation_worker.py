"""Batch judgment loop: evaluate a search's offers and store the verdicts."""

import asyncio
import logging
import traceback
import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from offer_scout.ai.evaluator import (
    OfferInput,
    StyleTarget,
    evaluate_offer,
    offer_to_input,
)
from offer_scout.ai.judgment_client import JudgmentClient
from offer_scout.config import settings
from offer_scout.db.evaluations import (
    DECISION_ERROR,
    DECISION_MATCH,
    EvaluationRecord,
    upsert_evaluation,
)
from offer_scout.db.offers import fetch_offer_by_id, fetch_offers_for_search
from offer_scout.db.searches import get_search, parse_string_list
from offer_scout.db.session import AsyncSessionLocal
from offer_scout.logging_config import get_logger
from offer_scout.metrics import record_evaluation

logger = logging.getLogger(__name__)


@dataclass
class EvaluationOptions:
    """Parameters of one evaluation run."""

    search_id: uuid.UUID
    batch_size: int = 50
    concurrency: int = 5
    min_score: float = 0.7
    strictness: str = "medium"
    dry_run: bool = False
    force: bool = False
    offer_id: Optional[uuid.UUID] = None
    max_offers: Optional[int] = None

    @classmethod
    def from_settings(cls, search_id: uuid.UUID, **overrides) -> "EvaluationOptions":
        """Options for a search with defaults taken from settings."""
        values = {
            "batch_size": settings.match_batch_size,
            "concurrency": settings.judgment_concurrency,
            "min_score": settings.match_min_score,
            "strictness": settings.match_strictness,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(search_id=search_id, **values)


@dataclass
class EvaluationSummary:
    """Counts for one evaluation run."""

    processed: int = 0
    matched: int = 0
    failed: int = 0
    skipped: int = 0


class EvaluationWorker:
    """
    Evaluates offers of one search in batches.

    Each batch is fetched with a fresh session; offers inside a batch are
    judged with bounded concurrency and every verdict is written with its own
    session. Judgment failures become ERROR rows instead of exceptions.
    """

    def __init__(
        self,
        client: JudgmentClient,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ):
        self.client = client
        self.session_factory = session_factory or AsyncSessionLocal

    async def _save(self, record: EvaluationRecord) -> None:
        async with self.session_factory() as db:
            await upsert_evaluation(db, record)
        record_evaluation(record.decision)

    async def _record_failure(self, offer: OfferInput, search_id: uuid.UUID, error: Exception) -> None:
        """Store an ERROR verdict; a failure here is logged and dropped."""
        record = EvaluationRecord(
            offer_id=offer.id,
            search_id=search_id,
            decision=DECISION_ERROR,
            style_score=None,
            confidence=None,
            raw_model_output={
                "error": str(error) or type(error).__name__,
                "type": type(error).__name__,
                "traceback": "".join(traceback.format_exception(type(error), error, error.__traceback__)),
            },
            model_name=self.client.model,
        )
        try:
            await self._save(record)
        except Exception as e:
            logger.error(f"Failed to record evaluation error for offer {offer.id}: {e}")

    async def handle_offer(
        self,
        offer: OfferInput,
        target: StyleTarget,
        options: EvaluationOptions,
        summary: EvaluationSummary,
    ) -> None:
        """Judge one offer and persist the outcome."""
        log = get_logger(__name__, offer_id=str(offer.id), search_id=str(options.search_id))

        if not offer.images or not offer.summary.title:
            log.warning("Skipping offer with insufficient metadata or images")
            summary.skipped += 1
            return

        try:
            result = await evaluate_offer(
                self.client,
                offer,
                target,
                min_score=options.min_score,
                strictness=options.strictness,
            )
        except Exception as e:
            summary.failed += 1
            log.error(f"Failed to evaluate offer {offer.id}: {type(e).__name__}: {e}")
            if not options.dry_run:
                await self._record_failure(offer, options.search_id, e)
            return

        summary.processed += 1
        if result.decision == DECISION_MATCH:
            summary.matched += 1

        log.info(
            f"Evaluated offer {offer.id}: {result.decision} "
            f"(score={result.output.style_score:.2f}, confidence={result.output.confidence:.2f})"
        )

        if options.dry_run:
            return

        record = EvaluationRecord(
            offer_id=offer.id,
            search_id=options.search_id,
            decision=result.decision,
            style_score=result.output.style_score,
            confidence=result.output.confidence,
            match_reasons=result.output.match_reasons,
            mismatch_reasons=result.output.mismatch_reasons,
            tags=result.output.tags,
            raw_model_output=result.raw,
            model_name=result.model,
        )
        try:
            await self._save(record)
        except Exception as e:
            summary.failed += 1
            log.error(f"Failed to store evaluation for offer {offer.id}: {e}")

    async def _load_target(self, search_id: uuid.UUID) -> StyleTarget:
        async with self.session_factory() as db:
            search = await get_search(db, search_id)
            if search is None:
                raise ValueError(f"Search not found: {search_id}")
            return StyleTarget(
                style_prompt=search.search_prompt,
                example_images=parse_string_list(search.example_images),
            )

    async def _next_batch(self, options: EvaluationOptions, seen: set, limit: int) -> list[OfferInput]:
        async with self.session_factory() as db:
            offers = await fetch_offers_for_search(
                db,
                options.search_id,
                limit,
                force=options.force,
                exclude_ids=seen,
            )
            return [offer_to_input(offer) for offer in offers]

    async def run(self, options: EvaluationOptions) -> EvaluationSummary:
        """
        Evaluate offers until a batch comes back empty or max_offers is reached.

        With offer_id set, only that offer is evaluated.
        """
        target = await self._load_target(options.search_id)
        summary = EvaluationSummary()
        semaphore = asyncio.Semaphore(max(1, options.concurrency))

        async def bounded(offer: OfferInput):
            async with semaphore:
                await self.handle_offer(offer, target, options, summary)

        if options.offer_id is not None:
            async with self.session_factory() as db:
                offer = await fetch_offer_by_id(db, options.offer_id)
                offer_input = offer_to_input(offer) if offer is not None else None
            if offer_input is None:
                logger.warning(f"Offer not found: {options.offer_id}")
            else:
                await self.handle_offer(offer_input, target, options, summary)
        else:
            # Offers already handed out this run, so skipped, failed or
            # dry-run offers are not picked up again.
            seen: set = set()
            while True:
                limit = options.batch_size
                if options.max_offers:
                    limit = min(limit, options.max_offers - len(seen))
                    if limit <= 0:
                        break

                batch = await self._next_batch(options, seen, limit)
                if not batch:
                    break
                seen.update(offer.id for offer in batch)
                await asyncio.gather(*(bounded(offer) for offer in batch))

        logger.info(
            f"Evaluation summary for search {options.search_id}: "
            f"{summary.processed} processed, {summary.matched} matched, "
            f"{summary.failed} failed, {summary.skipped} skipped"
        )
        return summary
