"""
Rule Conflict Detector.

Finds contradictions between active business rules before they reach the
allocation engine.

Behavioral Contract:
- Accepts the active rule subset (inactive rules are ignored if passed)
- Pure: never mutates rules, never raises on well-formed rules
- Returns RuleConflict records regenerated from scratch on every call;
  conflict ids are derived from the conflict content, so repeated calls over
  the same rules return identical results
- An empty rule set yields an empty conflict list

Checks:
- coRun: two rules that both pin the same pair of tasks together are a
  circular conflict (error). Longer cycles that thread through three or more
  coRun rules are reported as circular warnings.
- loadLimit: several rules on one worker group with different caps are
  contradictory (warning).
- phaseWindow: several windows on one task with no common phase are
  contradictory (warning); windows that merely differ are overlapping (warning).
"""

import hashlib
import logging
from typing import Callable, Dict, Hashable, List, Sequence, Set, Tuple

from alchemist_kernel.models.rules import (
    BusinessRule,
    ConflictSeverity,
    ConflictType,
    CoRunRule,
    LoadLimitRule,
    PhaseWindowRule,
    RuleConflict,
    RuleType,
)

logger = logging.getLogger(__name__)

_GRAY = 1
_BLACK = 2


def _conflict_id(conflict_type: ConflictType, rule_ids: Sequence[str], key: str = "") -> str:
    """Stable id for a conflict, derived from what it is about."""
    material = "|".join([conflict_type.value, ",".join(sorted(rule_ids)), key])
    return f"conflict_{hashlib.sha256(material.encode()).hexdigest()[:12]}"


def _ordered_unique(values: Sequence[str]) -> List[str]:
    seen: Set[str] = set()
    result = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


def _detect_direct_co_run_overlaps(rules: List[CoRunRule]) -> List[RuleConflict]:
    """One circular conflict per pair of coRun rules sharing two or more tasks."""
    conflicts = []
    for i, first in enumerate(rules):
        first_tasks = _ordered_unique(first.task_ids)
        for second in rules[i + 1:]:
            second_tasks = set(second.task_ids)
            shared = [t for t in first_tasks if t in second_tasks]
            if len(shared) < 2:
                continue
            rule_ids = [first.id, second.id]
            conflicts.append(RuleConflict(
                id=_conflict_id(ConflictType.CIRCULAR, rule_ids, ",".join(shared)),
                rule_ids=rule_ids,
                type=ConflictType.CIRCULAR,
                severity=ConflictSeverity.ERROR,
                message=(
                    f"Circular co-run dependency detected between tasks "
                    f"{' and '.join(shared) if len(shared) == 2 else ', '.join(shared)}"
                ),
            ))
    return conflicts


def _build_co_run_graph(rules: List[CoRunRule]) -> Dict[Hashable, List[Hashable]]:
    """Bipartite rule/task graph: every rule node links to each of its tasks."""
    graph: Dict[Hashable, List[Hashable]] = {}
    for rule in rules:
        rule_node = ("rule", rule.id)
        graph.setdefault(rule_node, [])
        for task_id in _ordered_unique(rule.task_ids):
            task_node = ("task", task_id)
            graph[rule_node].append(task_node)
            graph.setdefault(task_node, []).append(rule_node)
    return graph


def _find_cycles(graph: Dict[Hashable, List[Hashable]]) -> List[List[Hashable]]:
    """Fundamental cycles of an undirected graph, via iterative DFS with a recursion stack."""
    color: Dict[Hashable, int] = {}
    parent: Dict[Hashable, Hashable] = {}
    cycles = []

    for start in graph:
        if start in color:
            continue
        color[start] = _GRAY
        parent[start] = None
        stack = [(start, iter(graph[start]))]
        while stack:
            node, neighbours = stack[-1]
            advanced = False
            for nxt in neighbours:
                if nxt == parent[node]:
                    continue
                state = color.get(nxt)
                if state is None:
                    color[nxt] = _GRAY
                    parent[nxt] = node
                    stack.append((nxt, iter(graph[nxt])))
                    advanced = True
                    break
                if state == _GRAY:
                    cycle = [node]
                    walk = node
                    while walk != nxt:
                        walk = parent[walk]
                        cycle.append(walk)
                    cycles.append(cycle)
            if not advanced:
                color[node] = _BLACK
                stack.pop()
    return cycles


def _detect_long_co_run_cycles(rules: List[CoRunRule]) -> List[RuleConflict]:
    """Cycles that pass through three or more distinct coRun rules."""
    conflicts = []
    reported: Set[frozenset] = set()
    for cycle in _find_cycles(_build_co_run_graph(rules)):
        rule_ids = [ident for kind, ident in cycle if kind == "rule"]
        task_ids = [ident for kind, ident in cycle if kind == "task"]
        key = frozenset(rule_ids)
        if len(key) < 3 or key in reported:
            continue
        reported.add(key)
        ordered_ids = [r.id for r in rules if r.id in key]
        conflicts.append(RuleConflict(
            id=_conflict_id(ConflictType.CIRCULAR, ordered_ids, ",".join(sorted(task_ids))),
            rule_ids=ordered_ids,
            type=ConflictType.CIRCULAR,
            severity=ConflictSeverity.WARNING,
            message=(
                f"Co-run rules form a dependency cycle through tasks "
                f"{', '.join(sorted(task_ids))}"
            ),
        ))
    return conflicts


def detect_co_run_conflicts(
    rules: List[BusinessRule],
    include_long_cycles: bool = True,
) -> List[RuleConflict]:
    co_run = [r for r in rules if r.type == RuleType.CO_RUN.value]
    conflicts = _detect_direct_co_run_overlaps(co_run)
    if include_long_cycles:
        conflicts.extend(_detect_long_co_run_cycles(co_run))
    return conflicts


def detect_load_limit_conflicts(rules: List[BusinessRule]) -> List[RuleConflict]:
    """Contradictory caps on the same worker group."""
    groups: Dict[str, List[LoadLimitRule]] = {}
    for rule in rules:
        if rule.type == RuleType.LOAD_LIMIT.value:
            groups.setdefault(rule.worker_group, []).append(rule)

    conflicts = []
    for worker_group, group_rules in groups.items():
        if len(group_rules) < 2:
            continue
        limits = {r.max_slots_per_phase for r in group_rules}
        if len(limits) > 1:
            rule_ids = [r.id for r in group_rules]
            conflicts.append(RuleConflict(
                id=_conflict_id(ConflictType.CONTRADICTORY, rule_ids, worker_group),
                rule_ids=rule_ids,
                type=ConflictType.CONTRADICTORY,
                severity=ConflictSeverity.WARNING,
                message=f"Multiple different load limits for worker group {worker_group}",
            ))
    return conflicts


def detect_phase_window_conflicts(rules: List[BusinessRule]) -> List[RuleConflict]:
    """Phase windows on the same task that cannot, or only partly, be satisfied together."""
    by_task: Dict[str, List[PhaseWindowRule]] = {}
    for rule in rules:
        if rule.type == RuleType.PHASE_WINDOW.value:
            by_task.setdefault(rule.task_id, []).append(rule)

    conflicts = []
    for task_id, task_rules in by_task.items():
        if len(task_rules) < 2:
            continue
        windows = [set(r.allowed_phases) for r in task_rules]
        if all(w == windows[0] for w in windows):
            continue
        rule_ids = [r.id for r in task_rules]
        common = set.intersection(*windows)
        if not common:
            conflicts.append(RuleConflict(
                id=_conflict_id(ConflictType.CONTRADICTORY, rule_ids, task_id),
                rule_ids=rule_ids,
                type=ConflictType.CONTRADICTORY,
                severity=ConflictSeverity.WARNING,
                message=f"Phase windows for task {task_id} have no phase in common",
            ))
        else:
            conflicts.append(RuleConflict(
                id=_conflict_id(ConflictType.OVERLAPPING, rule_ids, task_id),
                rule_ids=rule_ids,
                type=ConflictType.OVERLAPPING,
                severity=ConflictSeverity.WARNING,
                message=(
                    f"Phase windows for task {task_id} overlap; effective window is "
                    f"phases {', '.join(str(p) for p in sorted(common))}"
                ),
            ))
    return conflicts


_DETECTORS: Tuple[Callable[[List[BusinessRule]], List[RuleConflict]], ...] = (
    detect_co_run_conflicts,
    detect_load_limit_conflicts,
    detect_phase_window_conflicts,
)


def detect_conflicts(active_rules: List[BusinessRule]) -> List[RuleConflict]:
    """Run every conflict check over the active rules."""
    rules = [r for r in active_rules if r.is_active]
    conflicts: List[RuleConflict] = []
    for detector in _DETECTORS:
        conflicts.extend(detector(rules))
    logger.debug("Detected %d conflicts across %d active rules", len(conflicts), len(rules))
    return conflicts
