"""Prioritization weights and the outputs of the weight derivation methods."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


CRITERIA = (
    "fairness",
    "priority_level",
    "task_fulfillment",
    "worker_utilization",
    "constraints",
)


class PriorityMethod(str, Enum):
    SLIDERS = "sliders"
    RANKING = "ranking"
    AHP = "ahp"
    PRESETS = "presets"


class PresetProfile(str, Enum):
    MAXIMIZE_FULFILLMENT = "maximizeFulfillment"
    FAIR_DISTRIBUTION = "fairDistribution"
    MINIMIZE_WORKLOAD = "minimizeWorkload"
    CONSTRAINT_STRICT = "constraintStrict"
    BALANCED_APPROACH = "balancedApproach"
    PRIORITY_DRIVEN = "priorityDriven"
    CUSTOM = "custom"


class ConsistencyStatus(str, Enum):
    ACCEPTABLE = "acceptable"   # CR <= 0.10
    MARGINAL = "marginal"       # 0.10 < CR <= 0.20
    POOR = "poor"               # CR > 0.20


class PriorityWeights(BaseModel):
    """
    The five-criterion weight vector.

    Used on two scales: the 0-10 UI scale produced by sliders, ranking and AHP,
    and the normalized scale (sum 1.0) consumed downstream. Conversion between
    them is explicit, see ``alchemist_kernel.weights.engine.normalize_weights``.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    fairness: float = Field(ge=0)
    priority_level: float = Field(ge=0)
    task_fulfillment: float = Field(ge=0)
    worker_utilization: float = Field(ge=0)
    constraints: float = Field(ge=0)

    def as_list(self) -> List[float]:
        """Values in canonical criterion order."""
        return [getattr(self, key) for key in CRITERIA]

    @classmethod
    def from_list(cls, values: List[float]) -> "PriorityWeights":
        if len(values) != len(CRITERIA):
            raise ValueError(f"expected {len(CRITERIA)} weights, got {len(values)}")
        return cls(**dict(zip(CRITERIA, values)))

    def total(self) -> float:
        return sum(self.as_list())


class AHPResult(BaseModel):
    """Weights derived from a pairwise comparison matrix, with its consistency."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    normalized_weights: List[float]         # Geometric-mean weights, sum 1.0
    priority_weights: PriorityWeights       # 0-10 scale, top criterion == 10
    lambda_max: float
    consistency_index: float
    consistency_ratio: float
    consistency_status: ConsistencyStatus
    warning: Optional[str] = None


class PresetDefinition(BaseModel):
    """A named, pre-configured weight profile on the 0-10 scale."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: PresetProfile
    name: str
    description: str
    weights: PriorityWeights
    use_case: str
    benefits: List[str] = []
    considerations: List[str] = []


class WeightDifference(BaseModel):
    criterion: str
    diff: float
    direction: str                          # "higher" | "lower"
