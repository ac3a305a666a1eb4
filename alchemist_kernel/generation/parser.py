"""
Rule parsers — turn a natural-language request into a ParsedRule.

``RuleBasedRuleParser`` is the deterministic path used whenever the AI
parser is unavailable or untrustworthy. It picks the rule type with the
confidence scorer's pattern banks plus the rule templates, then pulls the
configuration out of the request with regexes and the dataset lookups.
"""

import re
from typing import Any, Dict, List, Optional, Protocol, Tuple

from alchemist_kernel.generation.templates import template_matches
from alchemist_kernel.models.entities import AvailableData
from alchemist_kernel.models.generation import ParsedRule
from alchemist_kernel.models.rules import RuleType
from alchemist_kernel.scoring.confidence import PATTERN_BANKS


class RuleParseError(Exception):
    """The request could not be mapped onto any rule type."""


class RuleParser(Protocol):
    """Protocol for rule parsing — pluggable backend."""

    def parse(self, user_input: str, available_data: AvailableData) -> ParsedRule: ...


# Tie-break order when two rule types score the same
TYPE_ORDER = [
    RuleType.CO_RUN,
    RuleType.LOAD_LIMIT,
    RuleType.SLOT_RESTRICTION,
    RuleType.PHASE_WINDOW,
    RuleType.PATTERN_MATCH,
    RuleType.PRECEDENCE_OVERRIDE,
]

TEMPLATE_BONUS = 10.0

TYPE_LABELS = {
    RuleType.CO_RUN: "co-run",
    RuleType.LOAD_LIMIT: "load limit",
    RuleType.SLOT_RESTRICTION: "slot restriction",
    RuleType.PHASE_WINDOW: "phase window",
    RuleType.PATTERN_MATCH: "pattern match",
    RuleType.PRECEDENCE_OVERRIDE: "precedence override",
}

_TASK_ID = re.compile(r"\bT\d+\b", re.I)
_NUMBER = re.compile(r"(?<![A-Za-z\d])(\d+)(?!\d)")
_PHASE_KEYWORD = re.compile(r"\b(?:phases?|stages?)\b", re.I)
_PHASE_RANGE = re.compile(r"(\d+)\s*(?:-|to|through)\s*(\d+)", re.I)
_QUOTED = re.compile(r"[\"']([^\"']+)[\"']")
_PATTERN_WORD = re.compile(r"\b(?:containing|contains?|matching|matches?|with|like|pattern)\s+(\S+)", re.I)
_GROUP_BEFORE_WORKERS = re.compile(r"\b([A-Za-z][\w-]*)\s+(?:workers?|team|group|staff|members?)\b", re.I)
_GROUP_BEFORE_CLIENTS = re.compile(r"\b([A-Za-z][\w-]*)\s+clients?\b", re.I)
_OVERRIDE_ALL = re.compile(r"\ball\b", re.I)
_URGENCY_WORDS = re.compile(r"\b(emergency|urgent|critical|vip|priority)\b", re.I)

_STOP_WORDS = {"the", "all", "any", "each", "every", "our", "their", "some", "and", "or"}


def score_rule_types(user_input: str) -> Dict[RuleType, float]:
    """Pattern-bank share per rule type, plus a bonus when its template matches."""
    scores = {}
    for rule_type in TYPE_ORDER:
        bank = PATTERN_BANKS[rule_type.value]
        hits = sum(1 for pattern in bank if pattern.search(user_input))
        score = hits * 100 / len(bank)
        if template_matches(rule_type, user_input):
            score += TEMPLATE_BONUS
        scores[rule_type] = score
    return scores


def _mentioned(candidates: List[str], text: str) -> Optional[str]:
    """First candidate that appears as a whole word in ``text`` (case-insensitive)."""
    for candidate in candidates:
        if re.search(rf"(?<!\w){re.escape(candidate)}(?!\w)", text, re.I):
            return candidate
    return None


def _task_ids(text: str, data: AvailableData) -> List[str]:
    found: List[str] = []
    known = {t.upper(): t for t in data.task_ids}
    for match in _TASK_ID.finditer(text):
        task_id = known.get(match.group(0).upper(), match.group(0).upper())
        if task_id not in found:
            found.append(task_id)
    for task_id in data.task_ids:
        if task_id not in found and re.search(rf"(?<!\w){re.escape(task_id)}(?!\w)", text):
            found.append(task_id)
    return found


def _numbers(text: str) -> List[int]:
    without_ids = _TASK_ID.sub(" ", text)
    return [int(n) for n in _NUMBER.findall(without_ids)]


def _phases(text: str) -> List[int]:
    keyword = _PHASE_KEYWORD.search(text)
    if not keyword:
        return []
    tail = _TASK_ID.sub(" ", text[keyword.end():])
    phases: List[int] = []
    for start, end in _PHASE_RANGE.findall(tail):
        low, high = sorted((int(start), int(end)))
        phases.extend(range(low, high + 1))
    tail = _PHASE_RANGE.sub(" ", tail)
    phases.extend(int(n) for n in _NUMBER.findall(tail))
    return sorted(set(phases))


def _guess_group(pattern: re.Pattern, text: str) -> Optional[str]:
    for match in pattern.finditer(text):
        word = match.group(1)
        if word.lower() not in _STOP_WORDS:
            return word
    return None


class RuleBasedRuleParser:
    """
    Deterministic parser for the fallback path.
    Same input and dataset always produce the same ParsedRule.
    """

    def __init__(self):
        self._extractors = {
            RuleType.CO_RUN: self._extract_co_run,
            RuleType.LOAD_LIMIT: self._extract_load_limit,
            RuleType.SLOT_RESTRICTION: self._extract_slot_restriction,
            RuleType.PHASE_WINDOW: self._extract_phase_window,
            RuleType.PATTERN_MATCH: self._extract_pattern_match,
            RuleType.PRECEDENCE_OVERRIDE: self._extract_precedence_override,
        }

    def identify_rule_type(self, user_input: str) -> Tuple[RuleType, float, List[RuleType]]:
        """Best rule type, its score, and the runner-up types that also matched."""
        scores = score_rule_types(user_input)
        ranked = sorted(TYPE_ORDER, key=lambda t: (-scores[t], TYPE_ORDER.index(t)))
        best = ranked[0]
        if scores[best] <= 0:
            raise RuleParseError(
                "Could not identify a rule type. Try one of the example phrasings, "
                "e.g. 'Tasks T1 and T2 should run together'."
            )
        alternatives = [t for t in ranked[1:] if scores[t] > 0]
        return best, min(scores[best], 100.0), alternatives

    def parse(self, user_input: str, available_data: AvailableData) -> ParsedRule:
        rule_type, score, alternatives = self.identify_rule_type(user_input)
        config, name, warnings = self._extractors[rule_type](user_input, available_data)
        label = TYPE_LABELS[rule_type]
        return ParsedRule(
            rule_type=rule_type,
            rule_name=name,
            rule_description=user_input.strip(),
            rule_config=config,
            confidence=round(score, 2),
            explanation=f"Interpreted as a {label} rule from the wording of the request",
            suggestions=[f"Could also be read as a {TYPE_LABELS[t]} rule" for t in alternatives[:2]],
            warnings=warnings,
        )

    # -- Per-type extraction ------------------------------------------------

    def _extract_co_run(self, text: str, data: AvailableData) -> Tuple[Dict[str, Any], str, List[str]]:
        task_ids = _task_ids(text, data)
        warnings = []
        unknown = [t for t in task_ids if data.task_ids and t not in data.task_ids]
        if unknown:
            warnings.append(f"Unknown task IDs: {', '.join(unknown)}")
        if len(task_ids) < 2:
            warnings.append("A co-run rule needs at least two task IDs")
        name = f"Co-run {' + '.join(task_ids)}" if task_ids else "Co-run rule"
        return {"taskIds": task_ids}, name, warnings

    def _extract_load_limit(self, text: str, data: AvailableData) -> Tuple[Dict[str, Any], str, List[str]]:
        warnings = []
        group = _mentioned(data.worker_groups, text)
        if group is None:
            group = _guess_group(_GROUP_BEFORE_WORKERS, text)
            if group is not None:
                warnings.append(f"Worker group '{group}' was not found in the worker data")
        numbers = _numbers(text)
        config: Dict[str, Any] = {"workerGroup": group or ""}
        if numbers:
            config["maxSlotsPerPhase"] = numbers[0]
        else:
            warnings.append("No slot limit found in the request")
        name = f"Load limit for {group}" if group else "Load limit rule"
        return config, name, warnings

    def _extract_slot_restriction(self, text: str, data: AvailableData) -> Tuple[Dict[str, Any], str, List[str]]:
        warnings = []
        target_type = "client"
        group = _mentioned(data.client_groups, text)
        if group is None:
            group = _mentioned(data.worker_groups, text)
            if group is not None:
                target_type = "worker"
        if group is None:
            group = _guess_group(_GROUP_BEFORE_CLIENTS, text)
            if group is None:
                group = _guess_group(_GROUP_BEFORE_WORKERS, text)
                target_type = "worker" if group else "client"
            if group is not None:
                warnings.append(f"Group '{group}' was not found in the uploaded data")
        numbers = _numbers(text)
        min_slots = numbers[0] if numbers else 1
        if not numbers:
            warnings.append("No slot count found; defaulting to 1 common slot")
        config = {"targetType": target_type, "groupTag": group or "", "minCommonSlots": min_slots}
        name = f"Slot restriction for {group}" if group else "Slot restriction rule"
        return config, name, warnings

    def _extract_phase_window(self, text: str, data: AvailableData) -> Tuple[Dict[str, Any], str, List[str]]:
        warnings = []
        task_ids = _task_ids(text, data)
        task_id = task_ids[0] if task_ids else ""
        if not task_id:
            warnings.append("No task ID found in the request")
        elif data.task_ids and task_id not in data.task_ids:
            warnings.append(f"Unknown task ID: {task_id}")
        phases = _phases(text)
        out_of_range = [p for p in phases if p < 1 or p > 5]
        if out_of_range:
            warnings.append(f"Phases outside 1-5: {', '.join(str(p) for p in out_of_range)}")
        name = f"Phase window for {task_id}" if task_id else "Phase window rule"
        return {"taskId": task_id, "allowedPhases": phases}, name, warnings

    def _extract_pattern_match(self, text: str, data: AvailableData) -> Tuple[Dict[str, Any], str, List[str]]:
        warnings = []
        quoted = _QUOTED.search(text)
        if quoted:
            regex = quoted.group(1)
        else:
            word = _PATTERN_WORD.search(text)
            regex = re.escape(word.group(1).strip(".,;")) if word else ""
            if regex:
                warnings.append("No quoted pattern found; using the word after the match keyword")
        lowered = text.lower()
        if "priority" in lowered or "urgent" in lowered:
            template = "priority"
        elif "workflow" in lowered:
            template = "workflow"
        else:
            template = "special-handling"
        name = f"Pattern match '{regex}'" if regex else "Pattern match rule"
        return {"regex": regex, "template": template, "parameters": {}}, name, warnings

    def _extract_precedence_override(self, text: str, data: AvailableData) -> Tuple[Dict[str, Any], str, List[str]]:
        override_type = "all" if _OVERRIDE_ALL.search(text) else "priority"
        priorities = [n for n in _numbers(text) if 1 <= n <= 10]
        keywords = sorted({m.lower() for m in _URGENCY_WORDS.findall(text)})
        config = {
            "overrideType": override_type,
            "targetRuleIds": [],
            "priority": priorities[0] if priorities else 1,
            "conditions": {"keywords": keywords} if keywords else {},
        }
        warnings = ["Select the rules this override applies to before activating it"]
        name = f"Precedence override ({override_type})"
        return config, name, warnings
