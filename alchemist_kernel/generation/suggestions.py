"""
Data-driven rule suggestions.

Scans the uploaded dataset for patterns and proposes inactive rules:
  - loadLimit for worker groups with a capacity imbalance or a high load cap
  - coRun for tasks of one category that need the same skills
  - slotRestriction for VIP / premium / enterprise client groups
  - precedenceOverride for clients at priority level 4 or higher
  - phaseWindow for tasks sharing a narrow phase preference

Suggestions that duplicate an existing rule are dropped. The rest are sorted
by priority, then confidence.
"""

import logging
from collections import OrderedDict
from typing import Dict, List, Optional

from alchemist_kernel.export.rules_config import parse_preferred_phases
from alchemist_kernel.models.entities import Client, Task, Worker
from alchemist_kernel.models.generation import (
    RuleSuggestion,
    SuggestionEntities,
    SuggestionMetrics,
    SuggestionPriority,
    SuggestionStats,
)
from alchemist_kernel.models.rules import BusinessRule, RuleType


logger = logging.getLogger(__name__)

DEFAULT_AVAILABLE_SLOTS = 5
DEFAULT_MAX_LOAD = 3
HIGH_PRIORITY_LEVEL = 4
VIP_MARKERS = ("vip", "premium", "enterprise")

_PRIORITY_ORDER = {
    SuggestionPriority.HIGH: 3,
    SuggestionPriority.MEDIUM: 2,
    SuggestionPriority.LOW: 1,
}


def _slot_count(worker: Worker) -> int:
    slots = worker.available_slots
    if isinstance(slots, list):
        count = len(slots)
    else:
        count = len(parse_preferred_phases(slots))
    return count or DEFAULT_AVAILABLE_SLOTS


def _group_by(items, key) -> Dict[str, list]:
    groups: Dict[str, list] = OrderedDict()
    for item in items:
        groups.setdefault(key(item), []).append(item)
    return groups


def analyze_workload_patterns(workers: List[Worker]) -> List[RuleSuggestion]:
    suggestions = []
    for group_name, group_workers in _group_by(workers, lambda w: w.worker_group or "default").items():
        if len(group_workers) < 2:
            continue

        capacities = [_slot_count(w) for w in group_workers]
        avg_capacity = sum(capacities) / len(capacities)
        avg_max_load = sum(w.max_load_per_phase or DEFAULT_MAX_LOAD for w in group_workers) / len(group_workers)
        imbalanced = any(c > avg_capacity * 1.5 for c in capacities)
        if not imbalanced and avg_max_load <= 5:
            continue

        limit = max(2, int(avg_max_load * 0.8))
        suggestions.append(RuleSuggestion(
            id=f"workload-{group_name}",
            type=RuleType.LOAD_LIMIT,
            title=f"Workload Limit for {group_name}",
            description=f"Limit {group_name} workers to {limit} tasks per phase to prevent overload",
            reason=f"Analysis shows potential capacity imbalance in {group_name} group",
            confidence=85,
            priority=SuggestionPriority.HIGH if avg_max_load > 6 else SuggestionPriority.MEDIUM,
            category="Workload Management",
            impact=f"Affects {len(group_workers)} workers in {group_name} group",
            benefits=[
                "Prevents worker burnout and overload",
                "Maintains consistent service quality",
                "Enables predictable capacity planning",
            ],
            risks=[
                "May delay some tasks during peak demand",
                "Could require additional resources",
            ],
            suggested_rule={
                "type": RuleType.LOAD_LIMIT.value,
                "name": f"{group_name} Workload Limit",
                "description": f"Limit {group_name} workers to maximum {limit} tasks per phase",
                "workerGroup": group_name,
                "maxSlotsPerPhase": limit,
                "isActive": False,
            },
            affected_entities=SuggestionEntities(workers=[w.worker_id for w in group_workers]),
            metrics=SuggestionMetrics(
                workload_reduction=round((avg_max_load - limit) / avg_max_load * 100),
                capacity_utilization=round(avg_capacity / 10 * 100),
            ),
        ))
    return suggestions


def analyze_task_patterns(tasks: List[Task]) -> List[RuleSuggestion]:
    suggestions = []
    for category, category_tasks in _group_by(tasks, lambda t: t.category or "uncategorized").items():
        if len(category_tasks) < 2:
            continue
        skill_groups = _group_by(category_tasks, lambda t: ",".join(t.required_skill_list).lower())
        for skill_set, skill_tasks in skill_groups.items():
            if not skill_set or len(skill_tasks) < 2:
                continue
            task_ids = [t.task_id for t in skill_tasks]
            suggestions.append(RuleSuggestion(
                id=f"corun-{category}-{task_ids[0]}",
                type=RuleType.CO_RUN,
                title=f"Coordinate {category} Tasks",
                description=f"Run {' and '.join(task_ids[:2])} together for better efficiency",
                reason=f"Tasks share similar skill requirements: {skill_set}",
                confidence=75,
                priority=SuggestionPriority.MEDIUM if len(skill_tasks) > 3 else SuggestionPriority.LOW,
                category="Task Coordination",
                impact=f"Affects {len(skill_tasks)} tasks in {category} category",
                benefits=[
                    "Reduces context switching for workers",
                    "Improves task coordination",
                ],
                risks=[
                    "May reduce scheduling flexibility",
                    "Could create resource bottlenecks",
                ],
                suggested_rule={
                    "type": RuleType.CO_RUN.value,
                    "name": f"{category} Task Coordination",
                    "description": f"Coordinate execution of related {category} tasks",
                    "taskIds": task_ids[:3],
                    "isActive": False,
                },
                affected_entities=SuggestionEntities(tasks=task_ids),
                metrics=SuggestionMetrics(efficiency_gain=min(25, len(skill_tasks) * 5)),
            ))
    return suggestions


def analyze_client_patterns(clients: List[Client], workers: List[Worker]) -> List[RuleSuggestion]:
    suggestions = []
    vip_clients = [
        c for c in clients
        if c.group_tag and any(marker in c.group_tag.lower() for marker in VIP_MARKERS)
    ]
    high_priority = [c for c in clients if (c.priority_level or 1) >= HIGH_PRIORITY_LEVEL]

    if vip_clients and workers:
        slots = max(1, int(len(workers) * 0.2))
        suggestions.append(RuleSuggestion(
            id="vip-slots",
            type=RuleType.SLOT_RESTRICTION,
            title="VIP Client Priority Access",
            description=f"Reserve {slots} worker slots for VIP clients",
            reason=f"Found {len(vip_clients)} VIP clients requiring priority service",
            confidence=90,
            priority=SuggestionPriority.HIGH,
            category="Client Prioritization",
            impact=f"Guarantees service for {len(vip_clients)} VIP clients",
            benefits=[
                "Ensures premium service quality",
                "Protects revenue from high-value clients",
            ],
            risks=[
                "Reduces capacity for regular clients",
                "May increase overall resource requirements",
            ],
            suggested_rule={
                "type": RuleType.SLOT_RESTRICTION.value,
                "name": "VIP Client Priority Access",
                "description": f"Reserve minimum {slots} slots for VIP clients",
                "targetType": "client",
                "groupTag": vip_clients[0].group_tag,
                "minCommonSlots": slots,
                "isActive": False,
            },
            affected_entities=SuggestionEntities(
                clients=[c.client_id for c in vip_clients],
                workers=[w.worker_id for w in workers[:slots]],
            ),
            metrics=SuggestionMetrics(capacity_utilization=round(slots / len(workers) * 100)),
        ))

    if high_priority:
        suggestions.append(RuleSuggestion(
            id="priority-escalation",
            type=RuleType.PRECEDENCE_OVERRIDE,
            title="High Priority Escalation",
            description=f"Override capacity limits for priority {HIGH_PRIORITY_LEVEL}+ clients",
            reason=f"{len(high_priority)} clients have priority level {HIGH_PRIORITY_LEVEL} or higher",
            confidence=80,
            priority=SuggestionPriority.MEDIUM,
            category="Priority Management",
            impact=f"Enables escalation for {len(high_priority)} high-priority clients",
            benefits=[
                "Ensures critical requests get immediate attention",
                "Maintains service level agreements",
            ],
            risks=[
                "Can disrupt normal workflow",
                "May impact other client service",
            ],
            suggested_rule={
                "type": RuleType.PRECEDENCE_OVERRIDE.value,
                "name": "High Priority Escalation",
                "description": f"Override capacity rules for priority {HIGH_PRIORITY_LEVEL}+ requests",
                "overrideType": "capacity",
                "priority": HIGH_PRIORITY_LEVEL,
                "targetRuleIds": [],
                "conditions": {"minPriority": HIGH_PRIORITY_LEVEL},
                "isActive": False,
            },
            affected_entities=SuggestionEntities(clients=[c.client_id for c in high_priority]),
        ))
    return suggestions


def analyze_phase_patterns(tasks: List[Task]) -> List[RuleSuggestion]:
    """Phase windows for tasks that share a preference of at most two phases; three per group."""
    by_phases: Dict[tuple, List[Task]] = OrderedDict()
    for task in tasks:
        phases = tuple(sorted(set(parse_preferred_phases(task.preferred_phases))))
        if phases:
            by_phases.setdefault(phases, []).append(task)

    suggestions = []
    for phases, phase_tasks in by_phases.items():
        if len(phase_tasks) < 2 or len(phases) > 2:
            continue
        phase_text = ", ".join(str(p) for p in phases)
        for task in phase_tasks[:3]:
            suggestions.append(RuleSuggestion(
                id=f"phase-{task.task_id}",
                type=RuleType.PHASE_WINDOW,
                title=f"Phase Restriction for {task.task_id}",
                description=f"Restrict {task.task_id} to phases {phase_text}",
                reason="Task has specific phase preferences that should be enforced",
                confidence=70,
                priority=SuggestionPriority.LOW,
                category="Phase Management",
                impact=f"Ensures proper timing for {task.task_id}",
                benefits=["Ensures proper project phase alignment"],
                risks=["May limit scheduling flexibility"],
                suggested_rule={
                    "type": RuleType.PHASE_WINDOW.value,
                    "name": f"{task.task_id} Phase Restriction",
                    "description": f"Restrict {task.task_id} to phases {phase_text}",
                    "taskId": task.task_id,
                    "allowedPhases": list(phases),
                    "isActive": False,
                },
                affected_entities=SuggestionEntities(tasks=[task.task_id]),
            ))
    return suggestions


def _already_covered(suggestion: RuleSuggestion, rule: BusinessRule) -> bool:
    if RuleType(rule.type) != suggestion.type:
        return False
    proposed = suggestion.suggested_rule
    if suggestion.type == RuleType.LOAD_LIMIT:
        return rule.worker_group == proposed["workerGroup"]
    if suggestion.type == RuleType.CO_RUN:
        return any(task_id in proposed["taskIds"] for task_id in rule.task_ids)
    if suggestion.type == RuleType.SLOT_RESTRICTION:
        return rule.group_tag == proposed["groupTag"]
    if suggestion.type == RuleType.PHASE_WINDOW:
        return rule.task_id == proposed["taskId"]
    return False


def generate_rule_suggestions(
    clients: List[Client],
    workers: List[Worker],
    tasks: List[Task],
    existing_rules: Optional[List[BusinessRule]] = None,
) -> List[RuleSuggestion]:
    """Suggestions for the dataset, or an empty list when any entity collection is empty."""
    if not clients or not workers or not tasks:
        return []

    suggestions = (
        analyze_workload_patterns(workers)
        + analyze_task_patterns(tasks)
        + analyze_client_patterns(clients, workers)
        + analyze_phase_patterns(tasks)
    )
    existing_rules = existing_rules or []
    fresh = [s for s in suggestions if not any(_already_covered(s, r) for r in existing_rules)]
    logger.debug("Generated %d rule suggestions (%d already covered)", len(fresh), len(suggestions) - len(fresh))
    return sorted(fresh, key=lambda s: (-_PRIORITY_ORDER[s.priority], -s.confidence))


def _average(values: List[int]) -> int:
    return round(sum(values) / max(1, len(values)))


def get_suggestion_stats(suggestions: List[RuleSuggestion]) -> SuggestionStats:
    by_category: Dict[str, int] = {}
    for suggestion in suggestions:
        by_category[suggestion.category] = by_category.get(suggestion.category, 0) + 1
    metrics = [s.metrics for s in suggestions if s.metrics]
    return SuggestionStats(
        total=len(suggestions),
        by_priority={p.value: sum(1 for s in suggestions if s.priority == p) for p in SuggestionPriority},
        by_category=by_category,
        average_confidence=_average([s.confidence for s in suggestions]),
        workload_reduction=_average([m.workload_reduction for m in metrics if m.workload_reduction]),
        efficiency_gain=_average([m.efficiency_gain for m in metrics if m.efficiency_gain]),
    )
