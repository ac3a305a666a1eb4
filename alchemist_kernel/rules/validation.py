"""
Rule validation.

Three levels, all of which report problems as data and never raise:

- ``validate_rule``: structural checks on one rule
- ``validate_rule_config``: checks on a raw, parser-produced config dict,
  grouped per config field
- ``validate_rules_configuration``: a rule set checked against the uploaded
  dataset before export
"""

import re
from typing import Any, Callable, Dict, List

from alchemist_kernel.conflicts.detector import detect_conflicts
from alchemist_kernel.models.entities import Client, Task, Worker
from alchemist_kernel.models.export import ConfigurationValidation
from alchemist_kernel.models.rules import (
    BusinessRule,
    RuleType,
    RuleValidation,
    ValidationIssue,
)


MIN_PHASE = 1
MAX_PHASE = 5


def regex_compiles(pattern: str) -> bool:
    """True when ``pattern`` compiles; oversized repeats and deep nesting count as failures."""
    try:
        re.compile(pattern)
    except (re.error, TypeError, OverflowError, RecursionError):
        return False
    return True


def _check_co_run(rule: BusinessRule) -> List[str]:
    if len(rule.task_ids) < 2:
        return ["Co-run rule must include at least 2 tasks"]
    return []


def _check_slot_restriction(rule: BusinessRule) -> List[str]:
    if rule.min_common_slots < 1:
        return ["Minimum common slots must be at least 1"]
    return []


def _check_load_limit(rule: BusinessRule) -> List[str]:
    if rule.max_slots_per_phase < 1:
        return ["Maximum slots per phase must be at least 1"]
    return []


def _check_phase_window(rule: BusinessRule) -> List[str]:
    errors = []
    if not rule.allowed_phases:
        errors.append("Phase window must specify at least one allowed phase")
    if any(p < MIN_PHASE or p > MAX_PHASE for p in rule.allowed_phases):
        errors.append(f"Phase numbers must be between {MIN_PHASE} and {MAX_PHASE}")
    return errors


def _check_pattern_match(rule: BusinessRule) -> List[str]:
    if not regex_compiles(rule.regex):
        return ["Invalid regular expression"]
    return []


def _check_precedence_override(rule: BusinessRule) -> List[str]:
    errors = []
    if rule.priority < 1 or rule.priority > 10:
        errors.append("Priority must be between 1 and 10")
    if not rule.override_type:
        errors.append("Override type is required")
    if not rule.target_rule_ids:
        errors.append("At least one target rule must be specified")
    return errors


_RULE_CHECKS: Dict[str, Callable[[BusinessRule], List[str]]] = {
    RuleType.CO_RUN.value: _check_co_run,
    RuleType.SLOT_RESTRICTION.value: _check_slot_restriction,
    RuleType.LOAD_LIMIT.value: _check_load_limit,
    RuleType.PHASE_WINDOW.value: _check_phase_window,
    RuleType.PATTERN_MATCH.value: _check_pattern_match,
    RuleType.PRECEDENCE_OVERRIDE.value: _check_precedence_override,
}


def validate_rule(rule: BusinessRule) -> RuleValidation:
    errors = []
    if not rule.name or not rule.name.strip():
        errors.append("Rule name is required")
    check = _RULE_CHECKS.get(rule.type)
    if check:
        errors.extend(check(rule))
    return RuleValidation(is_valid=not errors, errors=errors)


def validate_rules(rules: List[BusinessRule]) -> List[ValidationIssue]:
    """One issue per invalid rule, keyed by rule id, so callers can show them all at once."""
    issues = []
    for rule in rules:
        result = validate_rule(rule)
        if not result.is_valid:
            issues.append(ValidationIssue(field=rule.id, errors=result.errors))
    return issues


# ---------------------------------------------------------------------------
# Raw config validation (parser output)
# ---------------------------------------------------------------------------

def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _config_co_run(config: Dict[str, Any]) -> Dict[str, List[str]]:
    task_ids = config.get("taskIds")
    if not isinstance(task_ids, list) or len(task_ids) < 2:
        return {"taskIds": ["Co-run rules require at least 2 task IDs"]}
    if not all(isinstance(task_id, str) for task_id in task_ids):
        return {"taskIds": ["Task IDs must be strings"]}
    return {}


def _config_load_limit(config: Dict[str, Any]) -> Dict[str, List[str]]:
    problems: Dict[str, List[str]] = {}
    group = config.get("workerGroup")
    if not group or not isinstance(group, str):
        problems["workerGroup"] = ["Load limit rules require a worker group"]
    cap = config.get("maxSlotsPerPhase")
    if not _is_number(cap) or cap <= 0:
        problems["maxSlotsPerPhase"] = ["Load limit rules require a positive maximum slots value"]
    return problems


def _config_slot_restriction(config: Dict[str, Any]) -> Dict[str, List[str]]:
    problems: Dict[str, List[str]] = {}
    if config.get("targetType") not in ("client", "worker"):
        problems["targetType"] = ['Slot restriction rules require targetType of "client" or "worker"']
    group = config.get("groupTag")
    if not group or not isinstance(group, str):
        problems["groupTag"] = ["Slot restriction rules require a group tag"]
    slots = config.get("minCommonSlots")
    if not _is_number(slots) or slots <= 0:
        problems["minCommonSlots"] = ["Slot restriction rules require a positive minimum common slots value"]
    return problems


def _config_phase_window(config: Dict[str, Any]) -> Dict[str, List[str]]:
    problems: Dict[str, List[str]] = {}
    task_id = config.get("taskId")
    if not task_id or not isinstance(task_id, str):
        problems["taskId"] = ["Phase window rules require a task ID"]
    phases = config.get("allowedPhases")
    phase_errors = []
    if not isinstance(phases, list) or not phases:
        phase_errors.append("Phase window rules require at least one allowed phase")
    elif any(not _is_number(p) or p < MIN_PHASE or p > MAX_PHASE for p in phases):
        phase_errors.append(f"Phase numbers must be between {MIN_PHASE} and {MAX_PHASE}")
    if phase_errors:
        problems["allowedPhases"] = phase_errors
    return problems


def _config_pattern_match(config: Dict[str, Any]) -> Dict[str, List[str]]:
    problems: Dict[str, List[str]] = {}
    regex = config.get("regex")
    if not regex or not isinstance(regex, str):
        problems["regex"] = ["Pattern match rules require a regex pattern"]
    elif not regex_compiles(regex):
        problems["regex"] = ["Invalid regular expression"]
    template = config.get("template")
    if not template or not isinstance(template, str):
        problems["template"] = ["Pattern match rules require a template"]
    return problems


def _config_precedence_override(config: Dict[str, Any]) -> Dict[str, List[str]]:
    problems: Dict[str, List[str]] = {}
    override_type = config.get("overrideType")
    if not override_type or not isinstance(override_type, str):
        problems["overrideType"] = ["Precedence override rules require an override type"]
    if not _is_number(config.get("priority")) or not config.get("priority"):
        problems["priority"] = ["Precedence override rules require a numeric priority"]
    if not isinstance(config.get("targetRuleIds"), list):
        problems["targetRuleIds"] = ["Precedence override rules require target rule IDs array"]
    return problems


_CONFIG_CHECKS: Dict[str, Callable[[Dict[str, Any]], Dict[str, List[str]]]] = {
    RuleType.CO_RUN.value: _config_co_run,
    RuleType.LOAD_LIMIT.value: _config_load_limit,
    RuleType.SLOT_RESTRICTION.value: _config_slot_restriction,
    RuleType.PHASE_WINDOW.value: _config_phase_window,
    RuleType.PATTERN_MATCH.value: _config_pattern_match,
    RuleType.PRECEDENCE_OVERRIDE.value: _config_precedence_override,
}


def validate_rule_config(rule_type: RuleType, config: Dict[str, Any]) -> List[ValidationIssue]:
    """Check a camelCase config dict for the given rule type. Empty list means valid."""
    check = _CONFIG_CHECKS.get(RuleType(rule_type).value)
    problems = check(config or {}) if check else {}
    return [ValidationIssue(field=name, errors=errors) for name, errors in problems.items()]


# ---------------------------------------------------------------------------
# Rule set against dataset
# ---------------------------------------------------------------------------

def validate_rules_configuration(
    rules: List[BusinessRule],
    clients: List[Client],
    workers: List[Worker],
    tasks: List[Task],
) -> ConfigurationValidation:
    errors: List[str] = []
    warnings: List[str] = []

    task_ids = {t.task_id for t in tasks}
    client_groups = {c.group_tag for c in clients if c.group_tag}
    worker_groups = {w.worker_group for w in workers if w.worker_group}

    for rule in rules:
        if rule.type == RuleType.CO_RUN.value:
            for task_id in rule.task_ids:
                if task_id not in task_ids:
                    errors.append(f'Co-run rule "{rule.name}": Task {task_id} does not exist')
            if len(rule.task_ids) < 2:
                errors.append(f'Co-run rule "{rule.name}": Must specify at least 2 tasks')
        elif rule.type == RuleType.SLOT_RESTRICTION.value:
            if rule.target_type == "client" and rule.group_tag not in client_groups:
                errors.append(
                    f'Slot restriction rule "{rule.name}": Client group {rule.group_tag} does not exist'
                )
            if rule.target_type == "worker" and rule.group_tag not in worker_groups:
                errors.append(
                    f'Slot restriction rule "{rule.name}": Worker group {rule.group_tag} does not exist'
                )
        elif rule.type == RuleType.LOAD_LIMIT.value:
            if rule.worker_group not in worker_groups:
                errors.append(
                    f'Load limit rule "{rule.name}": Worker group {rule.worker_group} does not exist'
                )
        elif rule.type == RuleType.PHASE_WINDOW.value:
            if rule.task_id not in task_ids:
                errors.append(f'Phase window rule "{rule.name}": Task {rule.task_id} does not exist')

        if not rule.is_active:
            warnings.append(f'Rule "{rule.name}" is disabled and will not be exported')

    active = [r for r in rules if r.is_active]
    return ConfigurationValidation(
        is_valid=not errors,
        errors=errors,
        warnings=warnings,
        total_rules=len(rules),
        active_rules=len(active),
        disabled_rules=len(rules) - len(active),
        conflict_count=len(detect_conflicts(active)),
    )
