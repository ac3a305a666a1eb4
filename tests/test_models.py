"""Tests for the data models."""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from alchemist_kernel.models import (
    AvailableData,
    Client,
    CoRunRule,
    LoadLimitRule,
    ParsedRule,
    PriorityWeights,
    RuleConflict,
    RuleType,
    Task,
    Worker,
)
from alchemist_kernel.models.entities import split_list
from alchemist_kernel.models.rules import dump_rule, parse_rule, rule_config


def _make_rule_data(rule_type: str = "coRun", **fields) -> dict:
    now = datetime(2026, 1, 15, 9, 30, tzinfo=timezone.utc)
    data = {
        "id": "rule-1",
        "type": rule_type,
        "name": "Test rule",
        "isActive": True,
        "createdAt": now,
        "updatedAt": now,
    }
    data.update(fields)
    return data


class TestEntities:
    def test_client_from_spreadsheet_headers(self):
        client = Client.model_validate({
            "ClientID": "C1",
            "ClientName": "Acme",
            "PriorityLevel": 3,
            "RequestedTaskIDs": "T1, T2,T3",
            "GroupTag": "VIP",
        })
        assert client.client_id == "C1"
        assert client.requested_tasks == ["T1", "T2", "T3"]
        assert client.group_tag == "VIP"

    def test_entities_are_immutable(self):
        worker = Worker(worker_id="W1", worker_group="Sales", max_load_per_phase=2)
        with pytest.raises(ValidationError):
            worker.max_load_per_phase = 5

    def test_negative_load_rejected(self):
        with pytest.raises(ValidationError):
            Worker(worker_id="W1", max_load_per_phase=-1)

    def test_split_list_drops_blanks(self):
        assert split_list(" a, ,b ,") == ["a", "b"]
        assert split_list(None) == []

    def test_available_data_lookup_lists(self):
        data = AvailableData.from_entities(
            clients=[
                Client(client_id="C1", group_tag="VIP"),
                Client(client_id="C2", group_tag="VIP"),
                Client(client_id="C3"),
            ],
            workers=[
                Worker(worker_id="W1", worker_group="Sales", skills="crm,negotiation"),
                Worker(worker_id="W2", worker_group="Ops", skills="crm"),
            ],
            tasks=[Task(task_id="T1"), Task(task_id="T2")],
        )
        assert data.client_groups == ["VIP"]
        assert data.worker_groups == ["Sales", "Ops"]
        assert data.task_ids == ["T1", "T2"]
        assert data.skills == ["crm", "negotiation"]


class TestBusinessRules:
    def test_discriminated_by_type(self):
        rule = parse_rule(_make_rule_data("loadLimit", workerGroup="Sales", maxSlotsPerPhase=3))
        assert isinstance(rule, LoadLimitRule)
        assert rule.worker_group == "Sales"
        assert rule.max_slots_per_phase == 3

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            parse_rule(_make_rule_data("teleport"))

    def test_dump_uses_camel_case(self):
        rule = parse_rule(_make_rule_data("coRun", taskIds=["T1", "T2"]))
        data = dump_rule(rule)
        assert data["taskIds"] == ["T1", "T2"]
        assert data["isActive"] is True
        assert data["createdAt"].startswith("2026-01-15T09:30:00")

    def test_dump_parse_keeps_variant(self):
        rule = parse_rule(_make_rule_data("coRun", taskIds=["T1", "T2"]))
        again = parse_rule(dump_rule(rule))
        assert isinstance(again, CoRunRule)
        assert again == rule

    def test_rule_config_excludes_common_fields(self):
        rule = parse_rule(_make_rule_data("phaseWindow", taskId="T5", allowedPhases=[2, 3]))
        assert rule_config(rule) == {"taskId": "T5", "allowedPhases": [2, 3]}

    def test_conflict_needs_a_rule(self):
        with pytest.raises(ValidationError):
            RuleConflict(id="c", rule_ids=[], type="circular", severity="error", message="m")


class TestWeightsAndParsedRule:
    def test_weights_list_order(self):
        weights = PriorityWeights.from_list([1, 2, 3, 4, 5])
        assert weights.priority_level == 2
        assert weights.as_list() == [1, 2, 3, 4, 5]
        assert weights.total() == 15

    def test_weights_wrong_length(self):
        with pytest.raises(ValueError):
            PriorityWeights.from_list([1, 2, 3])

    def test_weights_camel_aliases(self):
        weights = PriorityWeights.model_validate({
            "fairness": 1, "priorityLevel": 2, "taskFulfillment": 3,
            "workerUtilization": 4, "constraints": 5,
        })
        assert weights.worker_utilization == 4
        assert "priorityLevel" in weights.model_dump(by_alias=True)

    def test_parsed_rule_from_ai_json(self):
        parsed = ParsedRule.model_validate({
            "ruleType": "coRun",
            "ruleName": "Pair",
            "ruleConfig": {"taskIds": ["T1", "T2"]},
            "confidence": 90,
        })
        assert parsed.rule_type == RuleType.CO_RUN
        assert parsed.suggestions == []

    def test_parsed_rule_confidence_bounded(self):
        with pytest.raises(ValidationError):
            ParsedRule(rule_type="coRun", rule_name="x", rule_config={}, confidence=120)
