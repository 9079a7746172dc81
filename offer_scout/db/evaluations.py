"""Evaluation persistence."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from offer_scout.db.models import OfferSearchEvaluation
from offer_scout.db.offers import dialect_insert

DECISION_MATCH = "MATCH"
DECISION_NO_MATCH = "NO_MATCH"
DECISION_ERROR = "ERROR"  # judgment call failed; not part of the model's vocabulary


@dataclass
class EvaluationRecord:
    """Verdict to store for an (offer, search) pair."""

    offer_id: uuid.UUID
    search_id: uuid.UUID
    decision: str
    style_score: Optional[float]
    confidence: Optional[float]
    raw_model_output: Any
    model_name: str
    match_reasons: List[str] = field(default_factory=list)
    mismatch_reasons: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    model_version: Optional[str] = None


async def upsert_evaluation(db: AsyncSession, record: EvaluationRecord) -> None:
    """Write an evaluation, replacing any earlier one for the same offer and search."""
    values = {
        "decision": record.decision,
        "style_score": record.style_score,
        "confidence": record.confidence,
        "match_reasons": record.match_reasons,
        "mismatch_reasons": record.mismatch_reasons,
        "tags": record.tags,
        "raw_model_output": record.raw_model_output,
        "model_name": record.model_name,
        "model_version": record.model_version,
        "evaluated_at": datetime.utcnow(),
    }
    stmt = dialect_insert(db, OfferSearchEvaluation).values(
        id=uuid.uuid4(),
        offer_id=record.offer_id,
        search_id=record.search_id,
        **values,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["offer_id", "search_id"],
        set_=values,
    )
    await db.execute(stmt)
    await db.commit()
