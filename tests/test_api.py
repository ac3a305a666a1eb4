"""Tests for the FastAPI API endpoints."""

import json

import pytest
from fastapi.testclient import TestClient

from alchemist_kernel.api.app import create_app
from alchemist_kernel.config.settings import KernelSettings
from alchemist_kernel.models.weights import PriorityWeights
from alchemist_kernel.persistence.snapshot_store import SQLiteSnapshotStore
from alchemist_kernel.rules.store import RulesStore


DATASET = {
    "clients": [
        {"ClientID": "C1", "ClientName": "Acme", "PriorityLevel": 5, "RequestedTaskIDs": "T1,T2", "GroupTag": "VIP"},
        {"ClientID": "C2", "ClientName": "Globex", "PriorityLevel": 2, "RequestedTaskIDs": "T3", "GroupTag": "Standard"},
    ],
    "workers": [
        {"WorkerID": "W1", "WorkerName": "Ann", "Skills": "crm", "MaxLoadPerPhase": 2, "WorkerGroup": "Sales"},
        {"WorkerID": "W2", "WorkerName": "Bob", "Skills": "crm,sql", "MaxLoadPerPhase": 3, "WorkerGroup": "Sales"},
    ],
    "tasks": [
        {"TaskID": "T1", "TaskName": "Onboard", "RequiredSkills": "crm", "PreferredPhases": "[1, 2]"},
        {"TaskID": "T2", "TaskName": "Report", "RequiredSkills": "sql", "PreferredPhases": "2-4"},
        {"TaskID": "T3", "TaskName": "Review", "RequiredSkills": "crm"},
    ],
}


@pytest.fixture
def client():
    """Create a test client with fresh components and no background saves."""
    app = create_app(
        settings=KernelSettings(gemini_api_key=None, log_level="WARNING"),
        snapshot_store=SQLiteSnapshotStore(),
        enable_autosave=False,
    )
    return TestClient(app)


def _make_co_run(client, *task_ids, name="Pair"):
    response = client.post("/rules", json={"type": "coRun", "name": name, "taskIds": list(task_ids)})
    assert response.status_code == 201
    return response.json()


class TestRuleEndpoints:
    def test_create_rule(self, client):
        rule = _make_co_run(client, "T1", "T2")
        assert rule["id"]
        assert rule["taskIds"] == ["T1", "T2"]
        assert rule["isActive"] is True

    def test_create_invalid_rule(self, client):
        response = client.post("/rules", json={"type": "teleport", "name": "x"})
        assert response.status_code == 422

    def test_list_and_filter(self, client):
        _make_co_run(client, "T1", "T2")
        client.post("/rules", json={"type": "loadLimit", "name": "Cap", "workerGroup": "Sales", "maxSlotsPerPhase": 2})

        assert len(client.get("/rules").json()) == 2
        load_limits = client.get("/rules", params={"type": "loadLimit"}).json()
        assert [r["name"] for r in load_limits] == ["Cap"]

    def test_get_rule_with_validation(self, client):
        rule = _make_co_run(client, "T1")
        data = client.get(f"/rules/{rule['id']}").json()
        assert data["rule"]["id"] == rule["id"]
        assert data["validation"]["isValid"] is False

    def test_unknown_rule(self, client):
        assert client.get("/rules/missing").status_code == 404
        assert client.patch("/rules/missing", json={"name": "x"}).status_code == 404
        assert client.delete("/rules/missing").status_code == 404
        assert client.post("/rules/missing/toggle").status_code == 404
        assert client.post("/rules/missing/duplicate").status_code == 404

    def test_update_rule(self, client):
        rule = _make_co_run(client, "T1", "T2")
        response = client.patch(f"/rules/{rule['id']}", json={"name": "Renamed", "type": "loadLimit"})
        assert response.status_code == 200
        assert response.json()["name"] == "Renamed"
        assert response.json()["type"] == "coRun"

    def test_toggle_duplicate_delete(self, client):
        rule = _make_co_run(client, "T1", "T2")
        assert client.post(f"/rules/{rule['id']}/toggle").json()["isActive"] is False
        assert len(client.get("/rules", params={"active": True}).json()) == 0

        copy = client.post(f"/rules/{rule['id']}/duplicate")
        assert copy.status_code == 201
        assert copy.json()["name"] == "Pair (Copy)"

        response = client.delete(f"/rules/{rule['id']}")
        assert response.json() == {"status": "deleted", "rule_id": rule["id"]}
        assert len(client.get("/rules").json()) == 1

    def test_conflicts(self, client):
        _make_co_run(client, "T1", "T2")
        _make_co_run(client, "T2", "T1", name="Reverse")
        conflicts = client.get("/rules/conflicts").json()
        assert len(conflicts) == 1
        assert conflicts[0]["type"] == "circular"
        assert conflicts[0]["severity"] == "error"

    def test_validate_against_dataset(self, client):
        client.put("/data", json=DATASET)
        _make_co_run(client, "T1", "T9")
        result = client.get("/rules/validate").json()
        assert result["isValid"] is False
        assert result["errors"] == ['Co-run rule "Pair": Task T9 does not exist']

    def test_suggestions(self, client):
        types = [s["type"] for s in client.get("/rules/suggestions", params={"input": "run together"}).json()]
        assert "coRun" in types

    def test_data_suggestions(self, client):
        assert client.get("/rules/suggestions/data").json()["suggestions"] == []

        client.put("/data", json=DATASET)
        data = client.get("/rules/suggestions/data").json()
        assert [s["id"] for s in data["suggestions"]] == ["vip-slots", "priority-escalation", "corun-uncategorized-T1"]
        assert data["suggestions"][0]["suggestedRule"]["groupTag"] == "VIP"
        assert data["stats"]["total"] == 3

        _make_co_run(client, "T1", "T2")
        ids = [s["id"] for s in client.get("/rules/suggestions/data").json()["suggestions"]]
        assert "corun-uncategorized-T1" not in ids


class TestDataEndpoints:
    def test_upload_and_summary(self, client):
        summary = client.put("/data", json=DATASET).json()
        assert summary["tasks"] == 3
        assert summary["workerGroups"] == ["Sales"]
        assert client.get("/data/summary").json() == summary

    def test_partial_upload_keeps_other_collections(self, client):
        client.put("/data", json=DATASET)
        summary = client.put("/data", json={"tasks": [{"TaskID": "T9"}]}).json()
        assert summary["tasks"] == 1
        assert summary["workers"] == 2


class TestConfidenceAndGeneration:
    def test_confidence(self, client):
        client.put("/data", json=DATASET)
        response = client.post("/confidence", json={
            "input": "Sales workers should handle at most 2 tasks per phase",
            "ruleType": "loadLimit",
            "ruleConfig": {"workerGroup": "Sales", "maxSlotsPerPhase": 2},
        })
        assert response.status_code == 200
        data = response.json()
        assert 0 <= data["overall"] <= 100
        assert data["threshold"] in {"auto-apply", "review-recommended", "manual-review"}

    def test_generate_preview_only(self, client):
        client.put("/data", json=DATASET)
        data = client.post("/rules/generate", json={"userInput": "Tasks T1 and T2 should run together"}).json()
        assert data["success"] is True
        assert data["source"] == "rule_based"
        assert data["rule"]["taskIds"] == ["T1", "T2"]
        assert client.get("/rules").json() == []

    def test_generate_and_accept(self, client):
        client.put("/data", json=DATASET)
        data = client.post("/rules/generate", json={
            "userInput": "Tasks T1 and T2 should run together",
            "accept": True,
        }).json()
        rules = client.get("/rules").json()
        assert [r["id"] for r in rules] == [data["rule"]["id"]]
        assert rules[0]["id"].startswith("nl-rule-")

    def test_generate_failure(self, client):
        data = client.post("/rules/generate", json={"userInput": "hello world", "accept": True}).json()
        assert data["success"] is False
        assert client.get("/rules").json() == []


class TestWeightEndpoints:
    def test_defaults(self, client):
        data = client.get("/weights").json()
        assert data["priorityMethod"] == "sliders"
        assert data["presetProfile"] == "custom"
        assert sum(data["normalizedWeights"].values()) == pytest.approx(1.0)

    def test_sliders(self, client):
        data = client.put("/weights", json={"weights": {
            "fairness": 10, "priorityLevel": 5, "taskFulfillment": 5, "workerUtilization": 0, "constraints": 0,
        }}).json()
        assert data["priorityWeights"]["fairness"] == 10
        assert data["normalizedWeights"]["fairness"] == pytest.approx(0.5)
        assert data["ranking"][0] == "fairness"

    def test_all_zero_sliders_rejected(self, client):
        response = client.put("/weights", json={"weights": {
            "fairness": 0, "priorityLevel": 0, "taskFulfillment": 0, "workerUtilization": 0, "constraints": 0,
        }})
        assert response.status_code == 422
        assert client.get("/export/rules.json").status_code == 200

    def test_slider_out_of_range(self, client):
        response = client.put("/weights", json={"weights": {
            "fairness": 11, "priorityLevel": 5, "taskFulfillment": 5, "workerUtilization": 0, "constraints": 0,
        }})
        assert response.status_code == 422

    def test_ranking(self, client):
        data = client.post("/weights/ranking", json={"ranking": [
            "constraints", "fairness", "priority_level", "task_fulfillment", "worker_utilization",
        ]}).json()
        assert data["priorityMethod"] == "ranking"
        assert data["priorityWeights"]["constraints"] == 10
        assert data["priorityWeights"]["workerUtilization"] == 2

    def test_ranking_must_be_permutation(self, client):
        assert client.post("/weights/ranking", json={"ranking": ["fairness"]}).status_code == 422

    def test_ranking_presets(self, client):
        presets = client.get("/weights/ranking/presets").json()
        assert presets[0]["name"] == "Balanced Priority"

    def test_ahp(self, client):
        matrix = [[1.0] * 5 for _ in range(5)]
        data = client.post("/weights/ahp", json={"matrix": matrix}).json()
        assert data["priorityMethod"] == "ahp"
        assert data["ahp"]["consistencyStatus"] == "acceptable"
        assert data["priorityWeights"]["fairness"] == 10

    def test_ahp_wrong_size(self, client):
        assert client.post("/weights/ahp", json={"matrix": [[1.0]]}).status_code == 422

    def test_presets(self, client):
        presets = client.get("/weights/presets").json()
        assert "balancedApproach" in [p["id"] for p in presets]

        data = client.post("/weights/presets/balancedApproach").json()
        assert data["presetProfile"] == "balancedApproach"
        assert data["priorityMethod"] == "presets"
        assert data["matchingPreset"] == "balancedApproach"

    def test_unknown_preset(self, client):
        assert client.post("/weights/presets/fastest").status_code == 422

    def test_reset(self, client):
        client.post("/weights/presets/priorityDriven")
        data = client.post("/weights/reset").json()
        assert data["priorityWeights"]["priorityLevel"] == 0.3
        assert data["presetProfile"] == "custom"


class TestExportEndpoint:
    def test_rules_json(self, client):
        client.put("/data", json=DATASET)
        _make_co_run(client, "T1", "T2")
        response = client.get("/export/rules.json")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/json")
        assert "rules.json" in response.headers["content-disposition"]

        document = json.loads(response.text)
        assert document["version"] == "1.0.0"
        assert document["configuration"]["rules"][0]["config"]["enforcement"] == "strict"
        assert document["configuration"]["dataContext"]["entities"]["tasks"] == 3
        assert document["statistics"]["totalRules"] == 1

    def test_zero_weights_still_export(self):
        rules_store = RulesStore()
        rules_store.set_priority_weights(PriorityWeights.from_list([0, 0, 0, 0, 0]))
        app = create_app(
            settings=KernelSettings(gemini_api_key=None, log_level="WARNING"),
            rules_store=rules_store,
            snapshot_store=SQLiteSnapshotStore(),
            enable_autosave=False,
        )
        response = TestClient(app).get("/export/rules.json")
        assert response.status_code == 200
        normalized = json.loads(response.text)["configuration"]["prioritization"]["normalizedWeights"]
        assert sum(normalized.values()) == pytest.approx(1.0)


class TestSnapshotEndpoints:
    def test_restore_without_backup(self, client):
        response = client.post("/snapshot/restore")
        assert response.status_code == 404

    def test_save_and_restore(self, client):
        rule = _make_co_run(client, "T1", "T2")
        client.post("/weights/presets/fairDistribution")
        saved = client.post("/snapshot/save").json()
        assert saved["success"] is True

        status = client.get("/snapshot/status").json()
        assert status["status"] == "saved"
        assert status["hasUnsavedChanges"] is False

        client.delete(f"/rules/{rule['id']}")
        client.post("/weights/reset")
        assert client.get("/snapshot/status").json()["hasUnsavedChanges"] is True

        restored = client.post("/snapshot/restore").json()
        assert restored["status"] == "restored"
        assert restored["rules"] == 1
        assert restored["presetProfile"] == "fairDistribution"
        assert client.get(f"/rules/{rule['id']}").status_code == 200

    def test_clear(self, client):
        _make_co_run(client, "T1", "T2")
        client.post("/snapshot/save")
        assert client.delete("/snapshot").json() == {"status": "cleared"}
        assert client.post("/snapshot/restore").status_code == 404
