"""Validated shape of a judgment model response."""

from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field


class ModelOutput(BaseModel):
    """Style-match verdict as returned by the judgment model."""

    model_config = ConfigDict(extra="forbid")

    decision: Literal["MATCH", "NO_MATCH"]
    style_score: float = Field(ge=0.0, le=1.0)
    confidence: float = Field(ge=0.0, le=1.0)
    match_reasons: List[str] = Field(default_factory=list)
    mismatch_reasons: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
