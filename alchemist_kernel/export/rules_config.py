"""
Rules Configuration Assembler — builds the rules.json document.

The document carries the rules in production form (type-specific config
plus enforcement hints), the prioritization block with normalized weights
and per-criterion algorithm metadata, a summary of the dataset, and the
conflict resolutions the allocation engine should apply.
"""

import json
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Set

from alchemist_kernel.conflicts.detector import detect_conflicts
from alchemist_kernel.models.entities import Client, Task, Worker, split_list
from alchemist_kernel.models.export import (
    ConfigurationBody,
    ConflictResolution,
    DataContext,
    DataContextEntities,
    DataContextSummary,
    DataContextValidation,
    PrioritizationConfig,
    PriorityCriterion,
    ProductionRule,
    ProductionRuleMetadata,
    RulesConfiguration,
    RulesStatistics,
)
from alchemist_kernel.models.rules import (
    BusinessRule,
    ConflictType,
    RuleConflict,
    RuleType,
    rule_config,
)
from alchemist_kernel.models.weights import PresetProfile, PriorityMethod, PriorityWeights
from alchemist_kernel.rules.validation import validate_rules_configuration
from alchemist_kernel.weights.engine import normalize_weights

PHASE_COUNT = 5

ENFORCEMENT: Dict[str, Dict[str, Any]] = {
    RuleType.CO_RUN.value: {"enforcement": "strict", "allowPartial": False},
    RuleType.SLOT_RESTRICTION.value: {"enforcement": "soft"},
    RuleType.LOAD_LIMIT.value: {"enforcement": "strict", "overloadPenalty": "high"},
    RuleType.PHASE_WINDOW.value: {"enforcement": "strict", "fallbackBehavior": "defer"},
    RuleType.PATTERN_MATCH.value: {"enforcement": "conditional", "caseSensitive": False},
    RuleType.PRECEDENCE_OVERRIDE.value: {"enforcement": "override"},
}

CRITERIA_METADATA: Dict[str, Dict[str, Any]] = {
    "fairness": {
        "description": "Ensure equitable distribution of work across workers and clients",
        "algorithm": "gini_coefficient",
        "parameters": {"penaltyFunction": "exponential", "threshold": 0.3},
    },
    "priority_level": {
        "description": "Respect client priority levels (1-5) in allocation decisions",
        "algorithm": "weighted_priority",
        "parameters": {"scalingFunction": "linear", "boostHighPriority": True},
    },
    "task_fulfillment": {
        "description": "Maximize the number of successfully allocated tasks",
        "algorithm": "fulfillment_rate",
        "parameters": {"partialCredit": 0.5, "timeWindowPenalty": 0.2},
    },
    "worker_utilization": {
        "description": "Optimize worker capacity utilization across phases",
        "algorithm": "utilization_balance",
        "parameters": {"targetUtilization": 0.85, "underutilizationPenalty": 0.1},
    },
    "constraints": {
        "description": "Enforce hard and soft constraints from business rules",
        "algorithm": "constraint_satisfaction",
        "parameters": {"hardConstraintPenalty": 1000, "softConstraintPenalty": 10},
    },
}

_CRITERION_ALIASES = {
    "fairness": "fairness",
    "priority_level": "priorityLevel",
    "task_fulfillment": "taskFulfillment",
    "worker_utilization": "workerUtilization",
    "constraints": "constraints",
}

_RESOLUTIONS: Dict[ConflictType, Dict[str, str]] = {
    ConflictType.CIRCULAR: {
        "resolution": "merge",
        "reason": "Co-run rules sharing tasks merged into one co-run group",
    },
    ConflictType.CONTRADICTORY: {
        "resolution": "prioritize",
        "reason": "Resolved by applying the most restrictive rule",
    },
    ConflictType.OVERLAPPING: {
        "resolution": "merge",
        "reason": "Overlapping rules merged into their common window",
    },
}


def iso_timestamp(moment: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision and a ``Z`` suffix."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def rule_source(rule: BusinessRule) -> str:
    if rule.id.startswith("ai-"):
        return "ai"
    if rule.id.startswith("nl-"):
        return "template"
    return "user"


def to_production_rule(rule: BusinessRule) -> ProductionRule:
    config = rule_config(rule)
    config.update(ENFORCEMENT.get(rule.type, {}))
    priority = rule.priority if rule.type == RuleType.PRECEDENCE_OVERRIDE.value else 1
    return ProductionRule(
        id=rule.id,
        name=rule.name,
        description=rule.description or None,
        type=rule.type,
        is_active=rule.is_active,
        priority=priority,
        config=config,
        metadata=ProductionRuleMetadata(
            created_at=iso_timestamp(rule.created_at),
            updated_at=iso_timestamp(rule.updated_at),
            source=rule_source(rule),
        ),
    )


def build_prioritization_config(
    weights: PriorityWeights,
    method: PriorityMethod,
    preset_profile: PresetProfile,
) -> PrioritizationConfig:
    """Prioritization block; an all-zero vector normalizes to equal shares."""
    if weights.total() > 0:
        normalized = normalize_weights(weights)
    else:
        normalized = PriorityWeights.from_list([1 / len(CRITERIA_METADATA)] * len(CRITERIA_METADATA))
    criteria = {
        _CRITERION_ALIASES[key]: PriorityCriterion(weight=getattr(normalized, key), **meta)
        for key, meta in CRITERIA_METADATA.items()
    }
    return PrioritizationConfig(
        method=method,
        weights=weights,
        preset_profile=preset_profile,
        normalized_weights=normalized,
        criteria=criteria,
    )


def parse_preferred_phases(value: Optional[str]) -> List[int]:
    """Phases from a PreferredPhases cell: a JSON list, a ``2-4`` range or ``1,3``."""
    if not value:
        return []
    text = value.strip()
    try:
        parsed = json.loads(text)
    except ValueError:
        parsed = None
    if isinstance(parsed, list):
        return [p for p in parsed if isinstance(p, int) and not isinstance(p, bool)]
    if isinstance(parsed, int):
        return [parsed]

    inner = text.strip("[]")
    if "-" in inner:
        start, _, end = inner.partition("-")
        try:
            low, high = int(start), int(end)
        except ValueError:
            return []
        return list(range(low, high + 1))
    phases = []
    for item in split_list(inner):
        try:
            phases.append(int(item))
        except ValueError:
            continue
    return phases


def build_data_context(
    clients: List[Client],
    workers: List[Worker],
    tasks: List[Task],
    rules: List[BusinessRule],
    conflicts: List[RuleConflict],
) -> DataContext:
    priority_levels = sorted({c.priority_level for c in clients if c.priority_level is not None})

    skills: List[str] = []
    for skill in [s for w in workers for s in w.skill_list] + [s for t in tasks for s in t.required_skill_list]:
        if skill not in skills:
            skills.append(skill)

    phase_distribution = [0] * PHASE_COUNT
    for task in tasks:
        for phase in parse_preferred_phases(task.preferred_phases):
            if 1 <= phase <= PHASE_COUNT:
                phase_distribution[phase - 1] += 1

    workload: Dict[str, int] = {}
    for worker in workers:
        group = worker.worker_group or "default"
        workload[group] = workload.get(group, 0) + worker.max_load_per_phase

    offered: Set[str] = {s for w in workers for s in w.skill_list}
    required: Set[str] = {s for t in tasks for s in t.required_skill_list}
    total_capacity = sum(w.max_load_per_phase for w in workers)

    return DataContext(
        entities=DataContextEntities(clients=len(clients), workers=len(workers), tasks=len(tasks)),
        summary=DataContextSummary(
            total_priority_levels=priority_levels,
            skill_coverage=skills,
            phase_distribution=phase_distribution,
            workload_distribution=workload,
        ),
        validation=DataContextValidation(
            cross_references=validate_rules_configuration(rules, clients, workers, tasks).is_valid,
            circular_dependencies=any(c.type == ConflictType.CIRCULAR for c in conflicts),
            capacity_feasibility=total_capacity > 0 or not tasks,
            skill_coverage=required <= offered,
        ),
    )


def _co_run_overlaps(rules: List[BusinessRule], covered: Set[frozenset]) -> List[ConflictResolution]:
    co_run = [r for r in rules if r.is_active and r.type == RuleType.CO_RUN.value]
    resolutions = []
    for i, first in enumerate(co_run):
        for second in co_run[i + 1:]:
            if frozenset((first.id, second.id)) in covered:
                continue
            if set(first.task_ids) & set(second.task_ids):
                resolutions.append(ConflictResolution(
                    conflict_id=f"corun-overlap-{first.id}-{second.id}",
                    affected_rules=[first.id, second.id],
                    resolution="merge",
                    reason="Overlapping co-run rules merged to avoid conflicts",
                ))
    return resolutions


def _competing_precedence(rules: List[BusinessRule]) -> List[ConflictResolution]:
    overrides = [r for r in rules if r.is_active and r.type == RuleType.PRECEDENCE_OVERRIDE.value]
    resolutions = []
    for rule in overrides:
        targets = set(rule.target_rule_ids)
        competing = [
            other.id for other in overrides
            if other.id != rule.id and targets & set(other.target_rule_ids)
        ]
        if competing:
            resolutions.append(ConflictResolution(
                conflict_id=f"precedence-conflict-{rule.id}",
                affected_rules=[rule.id] + competing,
                resolution="prioritize",
                reason="Resolved by rule priority ordering",
            ))
    return resolutions


def build_conflict_resolutions(
    rules: List[BusinessRule],
    conflicts: List[RuleConflict],
) -> List[ConflictResolution]:
    resolutions = []
    covered: Set[frozenset] = set()
    for conflict in conflicts:
        resolutions.append(ConflictResolution(
            conflict_id=conflict.id,
            affected_rules=list(conflict.rule_ids),
            **_RESOLUTIONS[conflict.type],
        ))
        if conflict.type == ConflictType.CIRCULAR:
            covered.add(frozenset(conflict.rule_ids))
    resolutions.extend(_co_run_overlaps(rules, covered))
    resolutions.extend(_competing_precedence(rules))
    return resolutions


def build_statistics(rules: List[BusinessRule], resolutions: List[ConflictResolution]) -> RulesStatistics:
    by_type: Dict[str, int] = {}
    for rule in rules:
        by_type[rule.type] = by_type.get(rule.type, 0) + 1
    return RulesStatistics(
        total_rules=len(rules),
        active_rules=sum(1 for r in rules if r.is_active),
        rules_by_type=by_type,
        conflict_resolution=resolutions,
    )


def generate_rules_configuration(
    rules: List[BusinessRule],
    priority_weights: PriorityWeights,
    priority_method: PriorityMethod,
    preset_profile: PresetProfile,
    clients: List[Client],
    workers: List[Worker],
    tasks: List[Task],
    clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
) -> RulesConfiguration:
    """Assemble the complete rules.json document for the allocation engine."""
    conflicts = detect_conflicts([r for r in rules if r.is_active])
    resolutions = build_conflict_resolutions(rules, conflicts)
    return RulesConfiguration(
        generated_at=iso_timestamp(clock()),
        configuration=ConfigurationBody(
            rules=[to_production_rule(r) for r in rules],
            prioritization=build_prioritization_config(priority_weights, priority_method, preset_profile),
            data_context=build_data_context(clients, workers, tasks, rules, conflicts),
        ),
        statistics=build_statistics(rules, resolutions),
    )


def export_rules_json(configuration: RulesConfiguration, indent: int = 2) -> str:
    return configuration.model_dump_json(by_alias=True, indent=indent)
