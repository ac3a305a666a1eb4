"""Confidence Result — how much to trust a generated rule configuration."""

from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ConfidenceThreshold(str, Enum):
    AUTO_APPLY = "auto-apply"                   # overall >= 85
    REVIEW_RECOMMENDED = "review-recommended"   # overall >= 65
    MANUAL_REVIEW = "manual-review"             # below 65


class ConfidenceFactors(BaseModel):
    """The six independent sub-scores, each 0-100."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    data_quality: float = Field(ge=0, le=100)
    pattern_match: float = Field(ge=0, le=100)
    rule_complexity: float = Field(ge=0, le=100)
    context_clarity: float = Field(ge=0, le=100)
    validation_pass: float = Field(ge=0, le=100)
    historical_success: float = Field(ge=0, le=100)


class ConfidenceResult(BaseModel):
    """Weighted overall score with explanation and recommended actions."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    overall: int = Field(ge=0, le=100)
    factors: ConfidenceFactors
    explanation: str
    recommendations: List[str]
    threshold: ConfidenceThreshold
