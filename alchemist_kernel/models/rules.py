"""Business rules — the tagged union the allocation engine consumes.

Every rule variant is discriminated by its ``type`` field. Variants share
common fields only; all behaviour (validation, scoring, conflict checks,
export) lives in per-type registries keyed by ``RuleType``.

Rules serialise with camelCase keys (``isActive``, ``taskIds``...) and
ISO-8601 timestamps so that snapshots and rules.json round-trip.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel


class RuleType(str, Enum):
    CO_RUN = "coRun"
    SLOT_RESTRICTION = "slotRestriction"
    LOAD_LIMIT = "loadLimit"
    PHASE_WINDOW = "phaseWindow"
    PATTERN_MATCH = "patternMatch"
    PRECEDENCE_OVERRIDE = "precedenceOverride"


COMMON_RULE_FIELDS = ("id", "name", "description", "isActive", "createdAt", "updatedAt", "type")


class RuleBase(BaseModel):
    """Fields every rule carries."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    name: str
    description: Optional[str] = None
    is_active: bool = True
    created_at: datetime
    updated_at: datetime


class CoRunRule(RuleBase):
    """A fixed set of tasks that must always be scheduled together."""

    type: Literal["coRun"] = "coRun"
    task_ids: List[str] = []


class SlotRestrictionRule(RuleBase):
    """Minimum common availability for a client or worker group."""

    type: Literal["slotRestriction"] = "slotRestriction"
    target_type: Literal["client", "worker"] = "client"
    group_tag: str = ""
    min_common_slots: int = 1


class LoadLimitRule(RuleBase):
    """Cap on task-slots per phase for a worker group."""

    type: Literal["loadLimit"] = "loadLimit"
    worker_group: str = ""
    max_slots_per_phase: int = 1


class PhaseWindowRule(RuleBase):
    """Restricts a task to a subset of phases 1-5."""

    type: Literal["phaseWindow"] = "phaseWindow"
    task_id: str = ""
    allowed_phases: List[int] = []


class PatternMatchRule(RuleBase):
    """Applies a template to entities whose text matches a regex."""

    type: Literal["patternMatch"] = "patternMatch"
    regex: str = ""
    template: str = ""
    parameters: Dict[str, Any] = {}


class PrecedenceOverrideRule(RuleBase):
    """Places other rules in a priority hierarchy."""

    type: Literal["precedenceOverride"] = "precedenceOverride"
    override_type: str = ""
    target_rule_ids: List[str] = []
    priority: int = 1
    conditions: Dict[str, Any] = {}


BusinessRule = Annotated[
    Union[
        CoRunRule,
        SlotRestrictionRule,
        LoadLimitRule,
        PhaseWindowRule,
        PatternMatchRule,
        PrecedenceOverrideRule,
    ],
    Field(discriminator="type"),
]

BUSINESS_RULE_ADAPTER: TypeAdapter = TypeAdapter(BusinessRule)
BUSINESS_RULE_LIST_ADAPTER: TypeAdapter = TypeAdapter(List[BusinessRule])


def parse_rule(data: dict) -> BusinessRule:
    """Validate a plain-data rule (camelCase or snake_case keys) into its variant."""
    return BUSINESS_RULE_ADAPTER.validate_python(data)


def dump_rule(rule: BusinessRule) -> dict:
    """Serialise a rule to JSON-compatible camelCase data."""
    return rule.model_dump(mode="json", by_alias=True)


def rule_config(rule: BusinessRule) -> dict:
    """The type-specific part of a rule, as the scorer and validators expect it."""
    data = rule.model_dump(mode="json", by_alias=True)
    return {k: v for k, v in data.items() if k not in COMMON_RULE_FIELDS}


class ConflictType(str, Enum):
    CIRCULAR = "circular"
    CONTRADICTORY = "contradictory"
    OVERLAPPING = "overlapping"


class ConflictSeverity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class RuleConflict(BaseModel):
    """A conflict between active rules. Derived on demand, never stored."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    rule_ids: List[str] = Field(min_length=1)
    type: ConflictType
    severity: ConflictSeverity
    message: str


class RuleValidation(BaseModel):
    """Outcome of validating a single rule."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    is_valid: bool
    errors: List[str] = []


class ValidationIssue(BaseModel):
    """Errors accumulated for one field (or one rule) of a configuration."""

    field: str
    errors: List[str]
