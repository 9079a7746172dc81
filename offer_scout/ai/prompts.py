"""Prompt templates for style-match judgments."""

import json
from typing import Dict, Literal, Optional

from pydantic import BaseModel

Strictness = Literal["low", "medium", "high"]


class StrictnessTier(BaseModel):
    """Thresholds a strictness level asks the model to apply."""

    name: Strictness
    min_confidence: float
    rules: str

    def describe(self) -> str:
        return f"{self.name}: min_confidence={self.min_confidence:.2f}; {self.rules}"


STRICTNESS_TIERS: Dict[str, StrictnessTier] = {
    "low": StrictnessTier(
        name="low",
        min_confidence=0.55,
        rules="allow up to 1 weak dimension (<0.35) if overall vibe is consistent.",
    ),
    "medium": StrictnessTier(
        name="medium",
        min_confidence=0.60,
        rules="no dimension may be <0.35.",
    ),
    "high": StrictnessTier(
        name="high",
        min_confidence=0.70,
        rules="silhouette>=0.70 AND material>=0.60 AND no dimension <0.45.",
    ),
}


def get_tier(strictness: str) -> StrictnessTier:
    """Tier for a strictness name; unknown names fall back to medium."""
    return STRICTNESS_TIERS.get((strictness or "").lower(), STRICTNESS_TIERS["medium"])


SYSTEM_PROMPT = " ".join([
    "You are a strict style matching classifier for second-hand fashion items.",
    "Output ONLY valid JSON that conforms to the provided schema. No markdown, no extra text.",
    "Base every judgment on observable evidence from the images and the offer metadata; avoid vague statements.",
    "Score these dimensions from 0 to 1: palette, silhouette, material/texture, pattern/print, details, condition suitability.",
    "style_score is a weighted combination of the dimensions in which silhouette and material carry the most weight.",
    "Hard mismatch rule: when the garment type or category is incompatible with the target, or a strongly "
    "conflicting trait is present (for example a loud logo against a logo-free target, or a busy print against "
    "solid neutrals), the decision MUST be NO_MATCH.",
    "Insufficient evidence rule: when silhouette or material/texture cannot be assessed because the images are "
    "unclear and the metadata is missing, set confidence to 0.45 or lower and return NO_MATCH with the mismatch "
    "reason 'insufficient evidence'.",
])


class OfferSummary(BaseModel):
    """Structured offer fields shown to the model next to its images."""

    title: Optional[str] = None
    description: Optional[str] = None
    brand: Optional[str] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None
    size: Optional[str] = None
    color: Optional[str] = None
    material: Optional[str] = None
    condition: Optional[str] = None
    price_amount: Optional[str] = None
    price_currency: Optional[str] = None

    def to_prompt(self) -> str:
        """Convert to prompt text."""
        lines = [
            f"Title: {self.title or ''}",
            f"Description: {self.description or ''}",
            f"Brand: {self.brand or ''}",
            f"Category: {self.category or ''}",
            f"Subcategory: {self.subcategory or ''}",
            f"Size: {self.size or ''}",
            f"Color: {self.color or ''}",
            f"Material: {self.material or ''}",
            f"Condition: {self.condition or ''}",
            f"Price: {self.price_amount or ''} {self.price_currency or ''}".rstrip(),
        ]
        return "\n".join(lines)


class StyleMatchPrompt(BaseModel):
    """User instruction for one offer against one search."""

    style_prompt: str
    min_score_to_match: float
    strictness: Strictness = "medium"
    offer: OfferSummary

    def to_prompt(self) -> str:
        """Convert to prompt text."""
        tier = get_tier(self.strictness)
        example_output = {
            "decision": "MATCH",
            "style_score": 0.0,
            "confidence": 0.0,
            "match_reasons": [],
            "mismatch_reasons": [],
            "tags": [],
        }
        return "\n".join([
            f"Target style prompt: {self.style_prompt}",
            f"Strictness: {tier.name}. {tier.describe()}",
            f"Decision rule: MATCH only if style_score >= {self.min_score_to_match} "
            f"AND confidence >= min_confidence AND no hard mismatches.",
            "Reason rules:",
            "- Every match_reasons/mismatch_reasons entry must name at least one observable attribute: "
            "color, silhouette, material/texture, pattern/print, or details.",
            "- When uncertain, say so and lower confidence instead of guessing.",
            "Offer metadata:",
            self.offer.to_prompt(),
            "Output JSON only, following this schema:",
            json.dumps(example_output),
        ])


# Response schema for structured output
STYLE_MATCH_SCHEMA = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "decision": {"type": "string", "enum": ["MATCH", "NO_MATCH"]},
        "style_score": {"type": "number", "minimum": 0, "maximum": 1},
        "confidence": {"type": "number", "minimum": 0, "maximum": 1},
        "match_reasons": {"type": "array", "items": {"type": "string"}},
        "mismatch_reasons": {"type": "array", "items": {"type": "string"}},
        "tags": {"type": "array", "items": {"type": "string"}},
    },
    "required": [
        "decision",
        "style_score",
        "confidence",
        "match_reasons",
        "mismatch_reasons",
        "tags",
    ],
}

STYLE_MATCH_RESPONSE_FORMAT = {
    "type": "json_schema",
    "json_schema": {
        "name": "style_match_decision",
        "strict": True,
        "schema": STYLE_MATCH_SCHEMA,
    },
}
