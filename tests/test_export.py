"""Tests for the rules.json assembler."""

import json
from datetime import datetime, timezone

import pytest

from alchemist_kernel.export.rules_config import (
    build_conflict_resolutions,
    export_rules_json,
    generate_rules_configuration,
    iso_timestamp,
    parse_preferred_phases,
    rule_source,
    to_production_rule,
)
from alchemist_kernel.models.entities import Client, Task, Worker
from alchemist_kernel.models.rules import parse_rule
from alchemist_kernel.models.weights import PresetProfile, PriorityMethod, PriorityWeights

FIXED_NOW = datetime(2026, 4, 2, 12, 0, 0, 123000, tzinfo=timezone.utc)


def _make_rule(rule_id: str, rule_type: str, active: bool = True, **config):
    now = datetime(2026, 4, 1, 8, 0, tzinfo=timezone.utc)
    return parse_rule({
        "id": rule_id,
        "type": rule_type,
        "name": f"Rule {rule_id}",
        "isActive": active,
        "createdAt": now,
        "updatedAt": now,
        **config,
    })


def _make_dataset():
    clients = [
        Client(client_id="C1", priority_level=5, group_tag="VIP"),
        Client(client_id="C2", priority_level=2),
        Client(client_id="C3", priority_level=5),
        Client(client_id="C4"),
    ]
    workers = [
        Worker(worker_id="W1", worker_group="Sales", skills="crm,negotiation", max_load_per_phase=2),
        Worker(worker_id="W2", worker_group="Sales", skills="crm", max_load_per_phase=3),
        Worker(worker_id="W3", skills="sql", max_load_per_phase=1),
    ]
    tasks = [
        Task(task_id="T1", required_skills="crm", preferred_phases="[1, 2]"),
        Task(task_id="T2", required_skills="sql", preferred_phases="2-4"),
        Task(task_id="T3", required_skills="crm", preferred_phases="5"),
    ]
    return clients, workers, tasks


def _make_configuration(rules, weights=None, **kwargs):
    clients, workers, tasks = _make_dataset()
    return generate_rules_configuration(
        rules,
        weights or PriorityWeights.from_list([2, 3, 2.5, 1.5, 1]),
        kwargs.get("method", PriorityMethod.SLIDERS),
        kwargs.get("preset", PresetProfile.CUSTOM),
        clients,
        workers,
        tasks,
        clock=lambda: FIXED_NOW,
    )


class TestProductionRules:
    def test_enforcement_merged_into_config(self):
        production = to_production_rule(_make_rule("r1", "loadLimit", workerGroup="Sales", maxSlotsPerPhase=3))
        assert production.config == {
            "workerGroup": "Sales",
            "maxSlotsPerPhase": 3,
            "enforcement": "strict",
            "overloadPenalty": "high",
        }
        assert production.priority == 1
        assert production.metadata.created_at == "2026-04-01T08:00:00.000Z"

    def test_precedence_priority_carried(self):
        production = to_production_rule(_make_rule(
            "r1", "precedenceOverride", overrideType="priority", targetRuleIds=["x"], priority=7,
        ))
        assert production.priority == 7
        assert production.config["enforcement"] == "override"

    @pytest.mark.parametrize("rule_id, source", [
        ("ai-rule-abc", "ai"),
        ("nl-rule-abc", "template"),
        ("3f2b-uuid", "user"),
    ])
    def test_source_from_id(self, rule_id, source):
        assert rule_source(_make_rule(rule_id, "coRun", taskIds=["T1", "T2"])) == source


class TestDataContext:
    def test_summary(self):
        context = _make_configuration([]).configuration.data_context
        assert context.entities.clients == 4
        assert context.summary.total_priority_levels == [2, 5]
        assert context.summary.skill_coverage == ["crm", "negotiation", "sql"]
        assert context.summary.phase_distribution == [1, 2, 1, 1, 1]
        assert context.summary.workload_distribution == {"Sales": 5, "default": 1}

    def test_validation_flags(self):
        validation = _make_configuration([]).configuration.data_context.validation
        assert validation.cross_references
        assert not validation.circular_dependencies
        assert validation.capacity_feasibility
        assert validation.skill_coverage

    def test_broken_references_and_cycles_flagged(self):
        validation = _make_configuration([
            _make_rule("a", "coRun", taskIds=["T1", "T2"]),
            _make_rule("b", "coRun", taskIds=["T2", "T1"]),
            _make_rule("c", "phaseWindow", taskId="T9", allowedPhases=[1]),
        ]).configuration.data_context.validation
        assert not validation.cross_references
        assert validation.circular_dependencies

    @pytest.mark.parametrize("value, phases", [
        ("[1, 3]", [1, 3]),
        ("2-4", [2, 3, 4]),
        ("1,3", [1, 3]),
        ("4", [4]),
        ("", []),
        (None, []),
        ("soon", []),
    ])
    def test_preferred_phases(self, value, phases):
        assert parse_preferred_phases(value) == phases


class TestPrioritization:
    def test_normalized_weights_sum_to_one(self):
        prioritization = _make_configuration([]).configuration.prioritization
        assert prioritization.normalized_weights.total() == pytest.approx(1.0)
        assert prioritization.normalized_weights.priority_level == pytest.approx(0.3)

    def test_all_zero_weights_normalize_to_equal_shares(self):
        prioritization = _make_configuration([], weights=PriorityWeights.from_list([0, 0, 0, 0, 0])).configuration.prioritization
        assert prioritization.normalized_weights.as_list() == pytest.approx([0.2] * 5)
        assert prioritization.weights.total() == 0

    def test_criteria_metadata(self):
        criteria = _make_configuration([]).configuration.prioritization.criteria
        assert set(criteria) == {"fairness", "priorityLevel", "taskFulfillment", "workerUtilization", "constraints"}
        assert criteria["fairness"].algorithm == "gini_coefficient"
        assert criteria["constraints"].parameters["hardConstraintPenalty"] == 1000
        assert criteria["workerUtilization"].weight == pytest.approx(0.15)


class TestConflictResolutions:
    def test_circular_conflict_merged_once(self):
        rules = [
            _make_rule("a", "coRun", taskIds=["T1", "T2"]),
            _make_rule("b", "coRun", taskIds=["T2", "T1"]),
        ]
        configuration = _make_configuration(rules)
        resolutions = configuration.statistics.conflict_resolution
        assert len(resolutions) == 1
        assert resolutions[0].resolution == "merge"
        assert set(resolutions[0].affected_rules) == {"a", "b"}

    def test_single_task_overlap_recorded(self):
        resolutions = build_conflict_resolutions(
            [
                _make_rule("a", "coRun", taskIds=["T1", "T2"]),
                _make_rule("b", "coRun", taskIds=["T2", "T3"]),
            ],
            [],
        )
        assert [r.conflict_id for r in resolutions] == ["corun-overlap-a-b"]

    def test_competing_precedence_overrides(self):
        resolutions = build_conflict_resolutions(
            [
                _make_rule("p1", "precedenceOverride", overrideType="priority", targetRuleIds=["x"], priority=1),
                _make_rule("p2", "precedenceOverride", overrideType="priority", targetRuleIds=["x", "y"], priority=2),
            ],
            [],
        )
        assert [r.conflict_id for r in resolutions] == ["precedence-conflict-p1", "precedence-conflict-p2"]
        assert all(r.resolution == "prioritize" for r in resolutions)

    def test_contradictory_limits_prioritized(self):
        configuration = _make_configuration([
            _make_rule("a", "loadLimit", workerGroup="Sales", maxSlotsPerPhase=3),
            _make_rule("b", "loadLimit", workerGroup="Sales", maxSlotsPerPhase=5),
        ])
        assert [r.resolution for r in configuration.statistics.conflict_resolution] == ["prioritize"]


class TestDocument:
    def test_statistics(self):
        configuration = _make_configuration([
            _make_rule("a", "coRun", taskIds=["T1", "T2"]),
            _make_rule("b", "loadLimit", active=False, workerGroup="Sales", maxSlotsPerPhase=3),
        ])
        assert configuration.statistics.total_rules == 2
        assert configuration.statistics.active_rules == 1
        assert configuration.statistics.rules_by_type == {"coRun": 1, "loadLimit": 1}

    def test_json_uses_camel_case(self):
        document = json.loads(export_rules_json(_make_configuration([_make_rule("a", "coRun", taskIds=["T1", "T2"])])))
        assert document["version"] == "1.0.0"
        assert document["generatedAt"] == "2026-04-02T12:00:00.123Z"
        assert document["configuration"]["rules"][0]["isActive"] is True
        assert "dataContext" in document["configuration"]
        assert "normalizedWeights" in document["configuration"]["prioritization"]
        assert "presetProfile" in document["configuration"]["prioritization"]
        assert document["compatibility"]["allocationEngine"] == "data-alchemist-v1"

    def test_naive_timestamps_treated_as_utc(self):
        assert iso_timestamp(datetime(2026, 1, 1, 0, 0)) == "2026-01-01T00:00:00.000Z"
