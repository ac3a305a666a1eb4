"""
Confidence Scorer.

Rates how far a generated rule configuration can be trusted, from six
independent sub-scores (each 0-100) combined with fixed weights.

Behavioral Contract:
- Pure and deterministic: the same input, rule type, config and dataset
  always produce the same ConfidenceResult
- Never raises on malformed configs; missing fields and bad regexes lower
  the score instead
- ``overall`` is always an integer in [0, 100]
- The factor weights sum to exactly 1.0
"""

import math
import re
from typing import Any, Callable, Dict, List, Optional, Union

from alchemist_kernel.models.confidence import (
    ConfidenceFactors,
    ConfidenceResult,
    ConfidenceThreshold,
)
from alchemist_kernel.models.entities import AvailableData, Client, Task, Worker
from alchemist_kernel.models.rules import RuleType
from alchemist_kernel.rules.validation import regex_compiles


AUTO_APPLY_THRESHOLD = 85
REVIEW_RECOMMENDED_THRESHOLD = 65

FACTOR_WEIGHTS: Dict[str, float] = {
    "data_quality": 0.15,
    "pattern_match": 0.20,
    "rule_complexity": 0.15,
    "context_clarity": 0.20,
    "validation_pass": 0.25,
    "historical_success": 0.05,
}

# Minimum collection sizes for a dataset to count as "enough" data
MIN_DATA_VOLUME = {"clients": 5, "workers": 3, "tasks": 5}

PATTERN_BANKS: Dict[str, List[re.Pattern]] = {
    RuleType.LOAD_LIMIT.value: [
        re.compile(r"\b(limit|max|maximum|at most|no more than)\b.*\b(tasks?|slots?|load|capacity)\b", re.I),
        re.compile(r"\b(team|group|workers?)\b.*\b(\d+)\b.*\b(tasks?|slots?)\b", re.I),
        re.compile(r"\b(prevent|avoid)\b.*\b(overload|burnout)\b", re.I),
    ],
    RuleType.CO_RUN.value: [
        re.compile(r"\b(together|simultaneous|same time|co-?run)\b", re.I),
        re.compile(r"\b(run|execute|process)\b.*\b(together|simultaneous)\b", re.I),
        re.compile(r"\bT\d+\b.*\band\b.*\bT\d+\b", re.I),
    ],
    RuleType.SLOT_RESTRICTION.value: [
        re.compile(r"\b(reserve|dedicated|minimum|at least)\b.*\b(slots?|capacity)\b", re.I),
        re.compile(r"\b(VIP|premium|priority)\b.*\b(slots?|access)\b", re.I),
        re.compile(r"\b(common|shared)\b.*\b(slots?|availability)\b", re.I),
    ],
    RuleType.PHASE_WINDOW.value: [
        re.compile(r"\b(phase|phases?|stage|stages?)\b.*\b(\d+)\b", re.I),
        re.compile(r"\b(during|in|only)\b.*\b(phase|stage)\b", re.I),
        re.compile(r"\b(restrict|limit)\b.*\b(phase|timing)\b", re.I),
    ],
    RuleType.PATTERN_MATCH.value: [
        re.compile(r"\b(contains?|matches?|pattern|regex|like)\b", re.I),
        re.compile(r"\b(tasks?|names?)\b.*\b(containing|matching|with)\b", re.I),
        re.compile(r"[\"'].*[\"']", re.I),
    ],
    RuleType.PRECEDENCE_OVERRIDE.value: [
        re.compile(r"\b(override|priority|precedence|emergency|urgent)\b", re.I),
        re.compile(r"\b(takes? precedence|more important|higher priority)\b", re.I),
        re.compile(r"\b(emergency|critical|urgent)\b.*\b(rules?|limits?)\b", re.I),
    ],
}

_DIGIT = re.compile(r"\b\d+\b")
_ENTITY_KEYWORD = re.compile(r"\b(T\d+|team|group|client|worker|task)\b", re.I)
_ACTION_VERB = re.compile(r"\b(should|must|need|require|limit|restrict|allow)\b", re.I)
_REGEX_METACHARACTERS = re.compile(r"[+*?{}\[\]()^$]")

CLARITY_ACTION_WORDS = ("should", "must", "limit", "restrict", "allow", "prevent", "ensure")

BASE_SUCCESS_RATES = {
    RuleType.LOAD_LIMIT.value: 85,
    RuleType.CO_RUN.value: 75,
    RuleType.SLOT_RESTRICTION.value: 90,
    RuleType.PHASE_WINDOW.value: 80,
    RuleType.PATTERN_MATCH.value: 70,
    RuleType.PRECEDENCE_OVERRIDE.value: 65,
}
DEFAULT_SUCCESS_RATE = 70


def _type_tag(rule_type: Union[RuleType, str]) -> str:
    return rule_type.value if isinstance(rule_type, RuleType) else str(rule_type)


def _number(value: Any) -> Optional[float]:
    """Numeric view of a config value; None when absent or not a number."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_list(value: Any) -> List[Any]:
    return list(value) if isinstance(value, (list, tuple)) else []


def _js_round(value: float) -> int:
    """Round half up, so that x.5 always goes to the next integer."""
    return int(math.floor(value + 0.5))


# ---------------------------------------------------------------------------
# dataQuality
# ---------------------------------------------------------------------------

def analyze_data_quality(clients: List[Client], workers: List[Worker], tasks: List[Task]) -> float:
    """Average of completeness, volume sufficiency and cross-reference presence."""
    def completeness(records: list, fields: Callable[[Any], tuple]) -> float:
        if not records:
            return 0.0
        filled = sum(sum(1 for value in fields(r) if value) for r in records)
        return filled / (len(records) * 2)

    client_completeness = completeness(clients, lambda c: (c.client_name, c.priority_level))
    worker_completeness = completeness(workers, lambda w: (w.worker_name, w.skills))
    task_completeness = completeness(tasks, lambda t: (t.task_name, t.required_skills))
    completeness_score = (client_completeness + worker_completeness + task_completeness) / 3 * 100

    volume_score = min(
        len(clients) / MIN_DATA_VOLUME["clients"],
        len(workers) / MIN_DATA_VOLUME["workers"],
        len(tasks) / MIN_DATA_VOLUME["tasks"],
    ) * 100
    volume_score = min(volume_score, 100)

    has_client_tasks = any(c.requested_task_ids for c in clients)
    has_worker_skills = any(w.skills for w in workers)
    has_task_requirements = any(t.required_skills for t in tasks)
    relationship_score = (has_client_tasks + has_worker_skills + has_task_requirements) / 3 * 100

    return (completeness_score + volume_score + relationship_score) / 3


# ---------------------------------------------------------------------------
# patternMatch
# ---------------------------------------------------------------------------

def calculate_pattern_match(user_input: str, rule_type: Union[RuleType, str]) -> float:
    patterns = PATTERN_BANKS.get(_type_tag(rule_type), [])
    match_score = 0.0
    for pattern in patterns:
        if pattern.search(user_input):
            match_score += 100 / len(patterns)

    signals = (
        bool(_DIGIT.search(user_input))
        + bool(_ENTITY_KEYWORD.search(user_input))
        + bool(_ACTION_VERB.search(user_input))
    )
    bonus = signals / 3 * 20
    return min(match_score + bonus, 100.0)


# ---------------------------------------------------------------------------
# ruleComplexity
# ---------------------------------------------------------------------------

def _co_run_complexity(config: Dict[str, Any]) -> int:
    count = len(_as_list(config.get("taskIds")))
    if count > 5:
        return -20
    if count > 3:
        return -10
    return 0


def _load_limit_complexity(config: Dict[str, Any]) -> int:
    cap = _number(config.get("maxSlotsPerPhase")) or 0
    if cap > 10:
        return -15
    if cap < 2:
        return -10
    return 0


def _slot_restriction_complexity(config: Dict[str, Any]) -> int:
    slots = _number(config.get("minCommonSlots")) or 0
    return -15 if slots > 5 else 0


def _phase_window_complexity(config: Dict[str, Any]) -> int:
    count = len(_as_list(config.get("allowedPhases")))
    if count == 1:
        return -15
    if count == 2:
        return -10
    return 0


def _pattern_match_complexity(config: Dict[str, Any]) -> int:
    regex = config.get("regex") or ""
    regex = regex if isinstance(regex, str) else str(regex)
    penalty = 0
    if len(regex) > 20:
        penalty -= 20
    if _REGEX_METACHARACTERS.search(regex):
        penalty -= 10
    return penalty


def _precedence_override_complexity(config: Dict[str, Any]) -> int:
    penalty = -10
    if config.get("overrideType") == "all":
        penalty -= 15
    return penalty


_COMPLEXITY_PENALTIES: Dict[str, Callable[[Dict[str, Any]], int]] = {
    RuleType.CO_RUN.value: _co_run_complexity,
    RuleType.LOAD_LIMIT.value: _load_limit_complexity,
    RuleType.SLOT_RESTRICTION.value: _slot_restriction_complexity,
    RuleType.PHASE_WINDOW.value: _phase_window_complexity,
    RuleType.PATTERN_MATCH.value: _pattern_match_complexity,
    RuleType.PRECEDENCE_OVERRIDE.value: _precedence_override_complexity,
}


def calculate_rule_complexity(rule_config: Dict[str, Any], rule_type: Union[RuleType, str]) -> float:
    """Starts at 80 and loses points for risky configuration shapes. Floor 30."""
    penalty_fn = _COMPLEXITY_PENALTIES.get(_type_tag(rule_type))
    score = 80 + (penalty_fn(rule_config) if penalty_fn else 0)
    return float(max(score, 30))


# ---------------------------------------------------------------------------
# contextClarity
# ---------------------------------------------------------------------------

def calculate_context_clarity(user_input: str, available_data: AvailableData) -> float:
    lowered = user_input.lower()
    score = 50

    if any(group.lower() in lowered for group in available_data.worker_groups):
        score += 15
    if any(group.lower() in lowered for group in available_data.client_groups):
        score += 15
    if any(task_id in user_input for task_id in available_data.task_ids):
        score += 15
    if any(skill.lower() in lowered for skill in available_data.skills):
        score += 10

    if _DIGIT.search(user_input):
        score += 10
    if any(word in lowered for word in CLARITY_ACTION_WORDS):
        score += 10

    word_count = len(user_input.split())
    if word_count < 5:
        score -= 15
    elif word_count > 30:
        score -= 10
    elif 8 <= word_count <= 20:
        score += 10

    return float(min(max(score, 0), 100))


# ---------------------------------------------------------------------------
# validationPass
# ---------------------------------------------------------------------------

def _validate_load_limit(config: Dict[str, Any], data: AvailableData) -> int:
    deduction = 0
    if config.get("workerGroup") not in data.worker_groups:
        deduction += 30
    cap = _number(config.get("maxSlotsPerPhase"))
    if not cap or cap <= 0:
        deduction += 40
    return deduction


def _validate_co_run(config: Dict[str, Any], data: AvailableData) -> int:
    task_ids = _as_list(config.get("taskIds"))
    known = set(data.task_ids)
    deduction = 20 * sum(1 for task_id in task_ids if not isinstance(task_id, str) or task_id not in known)
    if len(task_ids) < 2:
        deduction += 40
    return deduction


def _validate_slot_restriction(config: Dict[str, Any], data: AvailableData) -> int:
    deduction = 0
    group = config.get("groupTag")
    if group not in data.client_groups and group not in data.worker_groups:
        deduction += 30
    slots = _number(config.get("minCommonSlots"))
    if not slots or slots <= 0:
        deduction += 30
    return deduction


def _validate_phase_window(config: Dict[str, Any], data: AvailableData) -> int:
    deduction = 0
    if config.get("taskId") not in data.task_ids:
        deduction += 40
    phases = _as_list(config.get("allowedPhases"))
    if not phases:
        deduction += 30
    for phase in phases:
        value = _number(phase)
        if value is None or value < 1 or value > 5:
            deduction += 15
    return deduction


def _validate_pattern_match(config: Dict[str, Any], data: AvailableData) -> int:
    regex = config.get("regex")
    if not regex:
        return 50
    if not regex_compiles(str(regex)):
        return 40
    return 0


def _validate_precedence_override(config: Dict[str, Any], data: AvailableData) -> int:
    deduction = 0
    priority = _number(config.get("priority"))
    if not priority or priority <= 0:
        deduction += 30
    if not config.get("overrideType"):
        deduction += 20
    return deduction


_VALIDATION_DEDUCTIONS: Dict[str, Callable[[Dict[str, Any], AvailableData], int]] = {
    RuleType.LOAD_LIMIT.value: _validate_load_limit,
    RuleType.CO_RUN.value: _validate_co_run,
    RuleType.SLOT_RESTRICTION.value: _validate_slot_restriction,
    RuleType.PHASE_WINDOW.value: _validate_phase_window,
    RuleType.PATTERN_MATCH.value: _validate_pattern_match,
    RuleType.PRECEDENCE_OVERRIDE.value: _validate_precedence_override,
}


def calculate_validation_pass(
    rule_config: Dict[str, Any],
    rule_type: Union[RuleType, str],
    available_data: AvailableData,
) -> float:
    """Starts at 100; structural problems against the dataset deduct points. Floor 0."""
    check = _VALIDATION_DEDUCTIONS.get(_type_tag(rule_type))
    deduction = check(rule_config, available_data) if check else 0
    return float(max(100 - deduction, 0))


# ---------------------------------------------------------------------------
# historicalSuccess
# ---------------------------------------------------------------------------

def calculate_historical_success(rule_type: Union[RuleType, str], rule_config: Dict[str, Any]) -> float:
    tag = _type_tag(rule_type)
    score = BASE_SUCCESS_RATES.get(tag, DEFAULT_SUCCESS_RATE)

    if tag == RuleType.LOAD_LIMIT.value:
        cap = _number(rule_config.get("maxSlotsPerPhase")) or 0
        if 3 <= cap <= 6:
            score += 10
    elif tag == RuleType.CO_RUN.value:
        count = len(_as_list(rule_config.get("taskIds")))
        if count in (2, 3):
            score += 10
        elif count > 4:
            score -= 15
    elif tag == RuleType.SLOT_RESTRICTION.value:
        slots = _number(rule_config.get("minCommonSlots")) or 0
        if 2 <= slots <= 4:
            score += 10

    return float(min(score, 100))


# ---------------------------------------------------------------------------
# Explanation, recommendations, threshold
# ---------------------------------------------------------------------------

def determine_threshold(overall: int) -> ConfidenceThreshold:
    if overall >= AUTO_APPLY_THRESHOLD:
        return ConfidenceThreshold.AUTO_APPLY
    if overall >= REVIEW_RECOMMENDED_THRESHOLD:
        return ConfidenceThreshold.REVIEW_RECOMMENDED
    return ConfidenceThreshold.MANUAL_REVIEW


def build_explanation(factors: ConfidenceFactors, overall: int) -> str:
    parts = []
    if factors.data_quality < 70:
        parts.append("Data quality could be improved with more complete information")
    if factors.pattern_match > 80:
        parts.append("Input matches known patterns very well")
    elif factors.pattern_match < 60:
        parts.append("Input doesn't clearly match expected patterns")
    if factors.rule_complexity < 60:
        parts.append("Generated rule is complex and may need careful review")
    if factors.context_clarity > 80:
        parts.append("Input is clear and specific")
    elif factors.context_clarity < 60:
        parts.append("Input could be more specific for better results")
    if factors.validation_pass < 70:
        parts.append("Rule configuration has validation concerns")
    if factors.historical_success > 80:
        parts.append("Similar rules have been successful in the past")

    if overall >= AUTO_APPLY_THRESHOLD:
        headline = "High confidence - rule appears well-formed and safe to apply"
    elif overall >= REVIEW_RECOMMENDED_THRESHOLD:
        headline = "Moderate confidence - review recommended before applying"
    else:
        headline = "Low confidence - manual review strongly recommended"
    return ". ".join([headline] + parts)


def build_recommendations(factors: ConfidenceFactors) -> List[str]:
    recommendations = []
    if factors.data_quality < 70:
        recommendations.append("Add more complete client, worker, and task data for better accuracy")
    if factors.pattern_match < 60:
        recommendations.append("Try rephrasing your request with more specific terms")
    if factors.context_clarity < 60:
        recommendations.append("Include specific entity names (groups, tasks, skills) in your request")
        recommendations.append("Use clear action words like 'limit', 'restrict', or 'ensure'")
    if factors.rule_complexity < 60:
        recommendations.append("Consider simplifying the rule or breaking it into multiple simpler rules")
    if factors.validation_pass < 70:
        recommendations.append("Check that referenced entities exist in your data")

    if not recommendations:
        recommendations.append("Rule looks good - consider applying it")
    return recommendations


def calculate_confidence_score(
    user_input: str,
    rule_type: Union[RuleType, str],
    rule_config: Dict[str, Any],
    available_data: AvailableData,
) -> ConfidenceResult:
    """
    Score a candidate rule configuration.

    ``rule_config`` holds the type-specific fields with camelCase keys
    (``workerGroup``, ``maxSlotsPerPhase``...), as produced by
    ``alchemist_kernel.models.rules.rule_config`` or a rule parser.
    """
    rule_config = rule_config or {}
    factors = ConfidenceFactors(
        data_quality=analyze_data_quality(
            available_data.clients, available_data.workers, available_data.tasks
        ),
        pattern_match=calculate_pattern_match(user_input, rule_type),
        rule_complexity=calculate_rule_complexity(rule_config, rule_type),
        context_clarity=calculate_context_clarity(user_input, available_data),
        validation_pass=calculate_validation_pass(rule_config, rule_type, available_data),
        historical_success=calculate_historical_success(rule_type, rule_config),
    )

    weighted = sum(getattr(factors, name) * weight for name, weight in FACTOR_WEIGHTS.items())
    overall = min(max(_js_round(weighted), 0), 100)

    return ConfidenceResult(
        overall=overall,
        factors=factors,
        explanation=build_explanation(factors, overall),
        recommendations=build_recommendations(factors),
        threshold=determine_threshold(overall),
    )
