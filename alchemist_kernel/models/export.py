"""Rules Configuration — the rules.json document for the downstream allocation engine."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from alchemist_kernel.models.weights import PresetProfile, PriorityMethod, PriorityWeights


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProductionRuleMetadata(_CamelModel):
    created_at: str
    updated_at: str
    source: str                             # "user" | "ai" | "template"
    confidence: Optional[float] = None


class ProductionRule(_CamelModel):
    id: str
    name: str
    description: Optional[str] = None
    type: str
    is_active: bool
    priority: int = 1
    config: Dict[str, Any] = {}
    metadata: ProductionRuleMetadata


class PriorityCriterion(_CamelModel):
    weight: float
    description: str
    algorithm: str
    parameters: Dict[str, Any] = {}


class PrioritizationConfig(_CamelModel):
    method: PriorityMethod
    weights: PriorityWeights
    preset_profile: PresetProfile
    normalized_weights: PriorityWeights     # Sums to 1.0
    criteria: Dict[str, PriorityCriterion]


class DataContextEntities(_CamelModel):
    clients: int
    workers: int
    tasks: int


class DataContextSummary(_CamelModel):
    total_priority_levels: List[int] = []
    skill_coverage: List[str] = []
    phase_distribution: List[int] = []
    workload_distribution: Dict[str, int] = {}


class DataContextValidation(_CamelModel):
    cross_references: bool
    circular_dependencies: bool
    capacity_feasibility: bool
    skill_coverage: bool


class DataContext(_CamelModel):
    entities: DataContextEntities
    summary: DataContextSummary
    validation: DataContextValidation


class ConflictResolution(_CamelModel):
    conflict_id: str
    affected_rules: List[str]
    resolution: str                         # "prioritize" | "merge" | "disable"
    reason: str


class RulesStatistics(_CamelModel):
    total_rules: int
    active_rules: int
    rules_by_type: Dict[str, int] = {}
    conflict_resolution: List[ConflictResolution] = []


class ConfigurationBody(_CamelModel):
    rules: List[ProductionRule]
    prioritization: PrioritizationConfig
    data_context: DataContext


class Compatibility(_CamelModel):
    allocation_engine: str = "data-alchemist-v1"
    schema_version: str = "1.0"
    required_features: List[str] = [
        "constraint-satisfaction",
        "priority-weighting",
        "cross-entity-validation",
        "phase-based-allocation",
    ]


class RulesConfiguration(_CamelModel):
    version: str = "1.0.0"
    generated_at: str
    configuration: ConfigurationBody
    statistics: RulesStatistics
    compatibility: Compatibility = Compatibility()


class ConfigurationValidation(_CamelModel):
    """Pre-export check of a rule set against the uploaded dataset."""

    is_valid: bool
    errors: List[str] = []
    warnings: List[str] = []
    total_rules: int = 0
    active_rules: int = 0
    disabled_rules: int = 0
    conflict_count: int = 0
