"""Tests for the batch evaluation worker."""

import asyncio
import json
import uuid

import pytest
from sqlalchemy import select

from offer_scout.ai.judgment_client import JudgmentResponse
from offer_scout.config import settings
from offer_scout.db.models import OfferSearchEvaluation
from offer_scout.db.offers import upsert_offer
from offer_scout.worker.evaluation_worker import EvaluationOptions, EvaluationWorker


def verdict(decision="MATCH", score=0.9, confidence=0.8, **extra) -> dict:
    payload = {
        "decision": decision,
        "style_score": score,
        "confidence": confidence,
        "match_reasons": ["muted oatmeal palette"],
        "mismatch_reasons": [],
        "tags": ["knit"],
    }
    payload.update(extra)
    return payload


class FakeJudgmentClient:
    """Replays canned responses (or raises canned errors) in call order."""

    model = "test/vision-model"

    def __init__(self, *responses):
        self.responses = list(responses)
        self.messages = []

    async def chat(self, messages):
        self.messages.append(messages)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, BaseException):
            raise response
        content = response if isinstance(response, str) else json.dumps(response)
        return JudgmentResponse(content=content, model=self.model)


async def seed_offers(session_factory, search, make_offer, make_images, count=1):
    ids = []
    for i in range(count):
        async with session_factory() as db:
            offer_id, _ = await upsert_offer(
                db,
                make_offer(search.id, external_id=str(2000000 + i)),
                make_images(f"https://images.sellpy.de/{i}.jpg"),
            )
        ids.append(offer_id)
    return ids


async def evaluations(session_factory):
    async with session_factory() as db:
        result = await db.execute(select(OfferSearchEvaluation))
        return list(result.scalars().all())


def options_for(search, **overrides) -> EvaluationOptions:
    values = {"batch_size": 10, "concurrency": 2, "min_score": 0.7, "strictness": "medium"}
    values.update(overrides)
    return EvaluationOptions(search_id=search.id, **values)


@pytest.mark.asyncio
async def test_match_is_stored(session_factory, search, make_offer, make_images):
    [offer_id] = await seed_offers(session_factory, search, make_offer, make_images)
    client = FakeJudgmentClient(verdict())
    worker = EvaluationWorker(client, session_factory=session_factory)

    summary = await worker.run(options_for(search))

    assert (summary.processed, summary.matched, summary.failed) == (1, 1, 0)
    [row] = await evaluations(session_factory)
    assert row.offer_id == offer_id
    assert row.decision == "MATCH"
    assert float(row.style_score) == pytest.approx(0.9)
    assert row.match_reasons == ["muted oatmeal palette"]
    assert row.raw_model_output == verdict()
    assert row.model_name == "test/vision-model"


@pytest.mark.asyncio
async def test_request_carries_reference_and_offer_images(session_factory, search, make_offer, make_images):
    await seed_offers(session_factory, search, make_offer, make_images)
    client = FakeJudgmentClient(verdict())

    await EvaluationWorker(client, session_factory=session_factory).run(options_for(search))

    [messages] = client.messages
    assert messages[0]["role"] == "system"
    content = messages[1]["content"]
    assert content[0] == {"type": "text", "text": "Style reference images:"}
    image_urls = [part["image_url"]["url"] for part in content if part["type"] == "image_url"]
    assert image_urls == [
        "https://example.com/ref-1.jpg",
        "https://example.com/ref-2.jpg",
        "https://images.sellpy.de/0.jpg",
    ]
    assert "Muted, logo-free knitwear" in content[-1]["text"]


@pytest.mark.asyncio
async def test_prose_around_json_is_tolerated(session_factory, search, make_offer, make_images):
    await seed_offers(session_factory, search, make_offer, make_images)
    client = FakeJudgmentClient("Here is my verdict:\n" + json.dumps(verdict()) + "\nThanks!")

    summary = await EvaluationWorker(client, session_factory=session_factory).run(options_for(search))

    assert summary.matched == 1
    [row] = await evaluations(session_factory)
    assert row.decision == "MATCH"


@pytest.mark.asyncio
async def test_low_score_match_is_downgraded(session_factory, search, make_offer, make_images):
    await seed_offers(session_factory, search, make_offer, make_images)
    client = FakeJudgmentClient(verdict(score=0.5))

    summary = await EvaluationWorker(client, session_factory=session_factory).run(options_for(search))

    assert (summary.processed, summary.matched) == (1, 0)
    [row] = await evaluations(session_factory)
    assert row.decision == "NO_MATCH"
    assert row.raw_model_output["decision"] == "MATCH"


@pytest.mark.asyncio
async def test_timeout_becomes_error_row_and_is_not_retried(session_factory, search, make_offer, make_images):
    await seed_offers(session_factory, search, make_offer, make_images)
    worker = EvaluationWorker(FakeJudgmentClient(asyncio.TimeoutError()), session_factory=session_factory)

    summary = await worker.run(options_for(search))

    assert (summary.processed, summary.failed) == (0, 1)
    [row] = await evaluations(session_factory)
    assert row.decision == "ERROR"
    assert row.style_score is None
    assert row.confidence is None
    assert row.raw_model_output["type"] == "TimeoutError"
    assert "Traceback" in row.raw_model_output["traceback"]
    assert row.model_name == "test/vision-model"

    rerun = await worker.run(options_for(search))
    assert (rerun.processed, rerun.failed) == (0, 0)


@pytest.mark.asyncio
async def test_schema_violation_is_an_error(session_factory, search, make_offer, make_images):
    await seed_offers(session_factory, search, make_offer, make_images)
    client = FakeJudgmentClient(verdict(decision="MAYBE"))

    summary = await EvaluationWorker(client, session_factory=session_factory).run(options_for(search))

    assert summary.failed == 1
    [row] = await evaluations(session_factory)
    assert row.decision == "ERROR"
    assert row.raw_model_output["type"] == "JudgmentError"


@pytest.mark.asyncio
async def test_dry_run_writes_nothing_and_terminates(session_factory, search, make_offer, make_images):
    await seed_offers(session_factory, search, make_offer, make_images, count=3)
    client = FakeJudgmentClient(verdict())

    summary = await EvaluationWorker(client, session_factory=session_factory).run(
        options_for(search, dry_run=True, batch_size=2)
    )

    assert summary.processed == 3
    assert len(client.messages) == 3
    assert await evaluations(session_factory) == []


@pytest.mark.asyncio
async def test_force_reevaluates(session_factory, search, make_offer, make_images):
    await seed_offers(session_factory, search, make_offer, make_images, count=2)
    worker = EvaluationWorker(FakeJudgmentClient(verdict()), session_factory=session_factory)
    await worker.run(options_for(search))

    worker.client = FakeJudgmentClient(verdict(decision="NO_MATCH", score=0.2))
    skipped = await worker.run(options_for(search))
    forced = await worker.run(options_for(search, force=True))

    assert skipped.processed == 0
    assert forced.processed == 2
    rows = await evaluations(session_factory)
    assert len(rows) == 2
    assert {row.decision for row in rows} == {"NO_MATCH"}


@pytest.mark.asyncio
async def test_max_offers_and_single_offer(session_factory, search, make_offer, make_images):
    ids = await seed_offers(session_factory, search, make_offer, make_images, count=3)
    worker = EvaluationWorker(FakeJudgmentClient(verdict()), session_factory=session_factory)

    limited = await worker.run(options_for(search, max_offers=2, batch_size=1))
    assert limited.processed == 2

    single = await worker.run(options_for(search, offer_id=ids[0], force=True))
    assert single.processed == 1
    assert len(await evaluations(session_factory)) == 2


@pytest.mark.asyncio
async def test_unknown_search_is_rejected(session_factory):
    worker = EvaluationWorker(FakeJudgmentClient(verdict()), session_factory=session_factory)
    with pytest.raises(ValueError, match="Search not found"):
        await worker.run(EvaluationOptions(search_id=uuid.uuid4()))


def test_options_from_settings_ignore_missing_overrides(monkeypatch):
    monkeypatch.setattr(settings, "match_batch_size", 25)
    options = EvaluationOptions.from_settings("search", batch_size=None, min_score=0.8)

    assert options.batch_size == 25
    assert options.min_score == 0.8
