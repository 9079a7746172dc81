"""Judge one offer against one search's style intent."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from offer_scout.ai.image_cache import prepare_image
from offer_scout.ai.judgment_client import JudgmentClient, JudgmentError, extract_json
from offer_scout.ai.prompts import SYSTEM_PROMPT, OfferSummary, StyleMatchPrompt, get_tier
from offer_scout.ai.schemas import ModelOutput
from offer_scout.db.evaluations import DECISION_MATCH, DECISION_NO_MATCH

logger = logging.getLogger(__name__)


@dataclass
class OfferInput:
    """Offer fields and resolved image references handed to the evaluator."""

    id: Any
    summary: OfferSummary
    images: List[str] = field(default_factory=list)


@dataclass
class StyleTarget:
    """What the offer is judged against."""

    style_prompt: str
    example_images: List[str]


@dataclass
class EvaluationResult:
    """Validated verdict, the worker's final decision and the raw payload."""

    output: ModelOutput
    decision: str
    raw: Any
    model: str


def image_reference(image) -> Optional[str]:
    """
    Best reference for a stored offer image.

    Inline data wins, then the full-size URL, the plain URL and the thumbnail.
    """
    if image.image_data:
        return f"data:{image.image_mime or 'image/png'};base64,{image.image_data}"
    return image.image_url_full or image.image_url or image.image_url_thumb


def offer_to_input(offer) -> OfferInput:
    """Build evaluator input from a stored offer with its images loaded."""
    images = [ref for ref in (image_reference(img) for img in offer.images) if ref]
    summary = OfferSummary(
        title=offer.title,
        description=offer.description,
        brand=offer.brand,
        category=offer.category,
        subcategory=offer.subcategory,
        size=offer.size,
        color=offer.color,
        material=offer.material,
        condition=offer.condition,
        price_amount=str(offer.price_amount) if offer.price_amount is not None else None,
        price_currency=offer.price_currency,
    )
    return OfferInput(id=offer.id, summary=summary, images=images)


def final_decision(output: ModelOutput, min_score: float, strictness: str) -> str:
    """
    Model decision after threshold checks.

    A MATCH below the score or confidence floor becomes NO_MATCH; the rest
    of the rubric is left to the model.
    """
    if output.decision != DECISION_MATCH:
        return DECISION_NO_MATCH
    if output.style_score < min_score:
        return DECISION_NO_MATCH
    if output.confidence < get_tier(strictness).min_confidence:
        return DECISION_NO_MATCH
    return DECISION_MATCH


async def build_messages(
    offer: OfferInput,
    target: StyleTarget,
    min_score: float,
    strictness: str,
) -> List[Dict[str, Any]]:
    """System + user messages: reference images, offer images, then instructions."""
    user_prompt = StyleMatchPrompt(
        style_prompt=target.style_prompt,
        min_score_to_match=min_score,
        strictness=get_tier(strictness).name,
        offer=offer.summary,
    ).to_prompt()

    reference_urls = [await prepare_image(image) for image in target.example_images]
    offer_urls = [await prepare_image(image) for image in offer.images]

    content: List[Dict[str, Any]] = [{"type": "text", "text": "Style reference images:"}]
    content.extend({"type": "image_url", "image_url": {"url": url}} for url in reference_urls)
    content.append({"type": "text", "text": "Offer images:"})
    content.extend({"type": "image_url", "image_url": {"url": url}} for url in offer_urls)
    content.append({"type": "text", "text": user_prompt})

    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": content},
    ]


async def evaluate_offer(
    client: JudgmentClient,
    offer: OfferInput,
    target: StyleTarget,
    min_score: float,
    strictness: str,
) -> EvaluationResult:
    """
    Ask the judgment API whether an offer matches a style target.

    Raises:
        JudgmentError: If the output is not JSON or violates the schema
    """
    messages = await build_messages(offer, target, min_score, strictness)
    response = await client.chat(messages)

    raw = extract_json(response.content)
    try:
        output = ModelOutput.model_validate(raw)
    except ValidationError as e:
        raise JudgmentError(f"Model output violates schema: {e}") from e

    return EvaluationResult(
        output=output,
        decision=final_decision(output, min_score, strictness),
        raw=raw,
        model=response.model,
    )
