"""Rule Generation — natural-language input turned into a candidate rule."""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from alchemist_kernel.models.confidence import ConfidenceResult
from alchemist_kernel.models.rules import BusinessRule, RuleType


class GenerationSource(str, Enum):
    AI = "ai"
    RULE_BASED = "rule_based"


class ParsedRule(BaseModel):
    """A rule interpretation produced by a parser (AI or rule-based)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    rule_type: RuleType
    rule_name: str
    rule_description: Optional[str] = None
    rule_config: Dict[str, Any]
    confidence: float = Field(ge=0, le=100, default=0)
    explanation: str = ""
    suggestions: List[str] = []
    warnings: List[str] = []


class RuleGenerationResult(BaseModel):
    """Outcome of generating a rule from natural language."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool
    source: Optional[GenerationSource] = None
    confidence: int = 0
    confidence_result: Optional[ConfidenceResult] = None
    rule: Optional[BusinessRule] = None
    explanation: Optional[str] = None
    suggestions: List[str] = []
    warnings: List[str] = []
    error: Optional[str] = None


class RuleTemplate(BaseModel):
    type: RuleType
    pattern: str
    example: str
    description: str


class SuggestionPriority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class SuggestionEntities(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    clients: List[str] = []
    workers: List[str] = []
    tasks: List[str] = []


class SuggestionMetrics(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    workload_reduction: Optional[int] = None
    efficiency_gain: Optional[int] = None
    capacity_utilization: Optional[int] = None


class RuleSuggestion(BaseModel):
    """A rule proposed from patterns in the uploaded dataset.

    ``suggested_rule`` is a camelCase partial rule, inactive by default, that
    can be posted to the rules store once the user accepts it.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    type: RuleType
    title: str
    description: str
    reason: str
    confidence: int = Field(ge=0, le=100)
    priority: SuggestionPriority
    category: str
    impact: str
    benefits: List[str] = []
    risks: List[str] = []
    suggested_rule: Dict[str, Any]
    affected_entities: SuggestionEntities = SuggestionEntities()
    metrics: Optional[SuggestionMetrics] = None


class SuggestionStats(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    total: int
    by_priority: Dict[str, int]
    by_category: Dict[str, int]
    average_confidence: int
    workload_reduction: int
    efficiency_gain: int
