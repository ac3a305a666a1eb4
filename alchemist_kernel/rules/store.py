"""
Rules Store — explicit state holder for business rules and prioritization.

Mutated by: API handlers, rule generation (after user acceptance), backup restore
Queried by: Conflict detection, export, snapshot persistence

Behavioral Contract:
- Every mutation runs under a single re-entrant lock, so readers always see a
  consistent rule set and weight vector
- ``id`` and ``createdAt`` never change after a rule is added; ``type`` is
  fixed as well since the variant fields depend on it
- ``updatedAt`` is refreshed on every field mutation
- Every mutation marks the store modified and schedules an auto-save when a
  scheduler is attached
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol, Union
from uuid import uuid4

from alchemist_kernel.conflicts.detector import detect_conflicts
from alchemist_kernel.models.rules import (
    BusinessRule,
    RuleConflict,
    RuleType,
    RuleValidation,
    dump_rule,
    parse_rule,
)
from alchemist_kernel.models.snapshot import SnapshotData
from alchemist_kernel.models.weights import PresetProfile, PriorityMethod, PriorityWeights
from alchemist_kernel.rules.validation import validate_rule
from alchemist_kernel.weights.presets import get_preset

logger = logging.getLogger(__name__)

DEFAULT_PRIORITY_WEIGHTS = PriorityWeights(
    fairness=0.2,
    priority_level=0.3,
    task_fulfillment=0.25,
    worker_utilization=0.15,
    constraints=0.1,
)

IMMUTABLE_RULE_FIELDS = ("id", "createdAt", "type")


class SaveScheduler(Protocol):
    """Anything that can be told the store changed (see persistence.autosave)."""

    def schedule(self) -> None:
        ...


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _to_camel(key: str) -> str:
    head, *rest = key.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def _camel_keys(data: Dict[str, Any]) -> Dict[str, Any]:
    """Accept snake_case or camelCase field names; camelCase passes through."""
    return {_to_camel(key): value for key, value in data.items()}


class RulesStore:
    """
    In-memory rules state, passed explicitly to whoever needs it.
    """

    def __init__(self, auto_saver: Optional[SaveScheduler] = None):
        self._lock = threading.RLock()
        self._rules: List[BusinessRule] = []
        self._priority_weights = DEFAULT_PRIORITY_WEIGHTS
        self._priority_method = PriorityMethod.SLIDERS
        self._preset_profile = PresetProfile.CUSTOM
        self._is_modified = False
        self._revision = 0
        self._snapshot_revision: Optional[int] = None
        self._last_saved_at: Optional[datetime] = None
        self._auto_saver = auto_saver

    def attach_auto_saver(self, auto_saver: Optional[SaveScheduler]) -> None:
        self._auto_saver = auto_saver

    def _touch(self) -> None:
        """Record a mutation. Caller holds the lock."""
        self._is_modified = True
        self._revision += 1
        if self._auto_saver is not None:
            self._auto_saver.schedule()

    def _index_of(self, rule_id: str) -> Optional[int]:
        for index, rule in enumerate(self._rules):
            if rule.id == rule_id:
                return index
        return None

    # -- Rule management -----------------------------------------------------

    def add_rule(self, data: Union[Dict[str, Any], BusinessRule]) -> BusinessRule:
        """Add a rule, assigning a fresh id and timestamps."""
        if not isinstance(data, dict):
            data = dump_rule(data)
        payload = _camel_keys(data)
        now = _now()
        payload.update({"id": str(uuid4()), "createdAt": now, "updatedAt": now})
        rule = parse_rule(payload)

        with self._lock:
            self._rules.append(rule)
            self._touch()
        logger.debug("Added %s rule %s", rule.type, rule.id)
        return rule

    def accept_rule(self, rule: BusinessRule) -> BusinessRule:
        """Store a complete rule as-is (a generated rule keeps its origin id)."""
        with self._lock:
            if self._index_of(rule.id) is not None:
                raise ValueError(f"Rule {rule.id} already exists")
            self._rules.append(rule)
            self._touch()
        return rule

    def update_rule(self, rule_id: str, updates: Dict[str, Any]) -> Optional[BusinessRule]:
        """Merge ``updates`` into a rule. Returns None for an unknown id."""
        with self._lock:
            index = self._index_of(rule_id)
            if index is None:
                return None
            merged = dump_rule(self._rules[index])
            for key, value in _camel_keys(updates).items():
                if key in IMMUTABLE_RULE_FIELDS:
                    continue
                merged[key] = value
            merged["updatedAt"] = _now()
            rule = parse_rule(merged)
            self._rules[index] = rule
            self._touch()
            return rule

    def delete_rule(self, rule_id: str) -> bool:
        with self._lock:
            index = self._index_of(rule_id)
            if index is None:
                return False
            del self._rules[index]
            self._touch()
            return True

    def toggle_rule_active(self, rule_id: str) -> Optional[BusinessRule]:
        with self._lock:
            rule = self.get_rule(rule_id)
            if rule is None:
                return None
            return self.update_rule(rule_id, {"isActive": not rule.is_active})

    def duplicate_rule(self, rule_id: str) -> Optional[BusinessRule]:
        """Copy a rule under a new id, with " (Copy)" appended to its name."""
        with self._lock:
            original = self.get_rule(rule_id)
            if original is None:
                return None
            data = dump_rule(original)
            data["name"] = f"{original.name} (Copy)"
            return self.add_rule(data)

    # -- Queries -------------------------------------------------------------

    @property
    def rules(self) -> List[BusinessRule]:
        with self._lock:
            return list(self._rules)

    def get_rule(self, rule_id: str) -> Optional[BusinessRule]:
        with self._lock:
            index = self._index_of(rule_id)
            return self._rules[index] if index is not None else None

    def get_rules_by_type(self, rule_type: Union[RuleType, str]) -> List[BusinessRule]:
        tag = RuleType(rule_type).value
        with self._lock:
            return [r for r in self._rules if r.type == tag]

    def get_active_rules(self) -> List[BusinessRule]:
        with self._lock:
            return [r for r in self._rules if r.is_active]

    def get_conflicts(self) -> List[RuleConflict]:
        """Conflicts across the active rules, taken from one consistent view."""
        with self._lock:
            active = [r for r in self._rules if r.is_active]
        return detect_conflicts(active)

    def validate_rule(self, rule: Union[str, BusinessRule]) -> Optional[RuleValidation]:
        if isinstance(rule, str):
            rule = self.get_rule(rule)
            if rule is None:
                return None
        return validate_rule(rule)

    def has_unsaved_changes(self) -> bool:
        with self._lock:
            return self._is_modified

    # -- Prioritization ------------------------------------------------------

    @property
    def priority_weights(self) -> PriorityWeights:
        with self._lock:
            return self._priority_weights

    @property
    def priority_method(self) -> PriorityMethod:
        with self._lock:
            return self._priority_method

    @property
    def preset_profile(self) -> PresetProfile:
        with self._lock:
            return self._preset_profile

    @property
    def last_saved_at(self) -> Optional[datetime]:
        with self._lock:
            return self._last_saved_at

    def set_priority_weights(self, weights: PriorityWeights) -> None:
        """Replace the weights; any hand-set vector counts as a custom profile."""
        with self._lock:
            self._priority_weights = weights
            self._preset_profile = PresetProfile.CUSTOM
            self._touch()

    def set_priority_method(self, method: PriorityMethod) -> None:
        with self._lock:
            self._priority_method = PriorityMethod(method)
            self._touch()

    def set_preset_profile(self, profile: PresetProfile) -> PriorityWeights:
        """Apply a named preset. ``custom`` keeps the current weights."""
        profile = PresetProfile(profile)
        with self._lock:
            if profile != PresetProfile.CUSTOM:
                self._priority_weights = get_preset(profile).weights
                self._priority_method = PriorityMethod.PRESETS
            self._preset_profile = profile
            self._touch()
            return self._priority_weights

    def reset_priority_weights(self) -> None:
        with self._lock:
            self._priority_weights = DEFAULT_PRIORITY_WEIGHTS
            self._preset_profile = PresetProfile.CUSTOM
            self._touch()

    # -- Export & persistence ------------------------------------------------

    def export_rules_config(self) -> Dict[str, Any]:
        """Active rules with the prioritization settings, as plain data."""
        with self._lock:
            return {
                "rules": [dump_rule(r) for r in self._rules if r.is_active],
                "priorityWeights": self._priority_weights.model_dump(by_alias=True),
                "priorityMethod": self._priority_method.value,
                "presetProfile": self._preset_profile.value,
                "exportedAt": _now().isoformat(),
            }

    def to_snapshot_data(self) -> SnapshotData:
        with self._lock:
            self._snapshot_revision = self._revision
            return SnapshotData(
                rules=list(self._rules),
                priority_weights=self._priority_weights,
                priority_method=self._priority_method,
                preset_profile=self._preset_profile,
                last_saved_at=_now(),
            )

    def mark_saved(self, saved_at: Optional[datetime] = None) -> None:
        """
        Record a completed save.

        The modified flag is only cleared when nothing changed after the last
        snapshot was taken; an edit made while the save was running stays
        unsaved.
        """
        with self._lock:
            self._last_saved_at = saved_at or _now()
            if self._snapshot_revision is None or self._snapshot_revision == self._revision:
                self._is_modified = False
            self._snapshot_revision = None

    def load_from_backup(self, data: Optional[SnapshotData]) -> bool:
        """Replace the whole state with a snapshot. False when there is nothing to load."""
        if data is None:
            return False
        with self._lock:
            self._rules = list(data.rules)
            self._priority_weights = data.priority_weights
            self._priority_method = data.priority_method
            self._preset_profile = data.preset_profile
            self._last_saved_at = data.last_saved_at
            self._is_modified = False
            self._snapshot_revision = None
        logger.info("Restored %d rules from backup", len(data.rules))
        return True
