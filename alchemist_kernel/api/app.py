"""
Data Alchemist Kernel API — FastAPI endpoints.

Exposes the rules kernel via a REST API for:
- Rule management and conflict inspection
- Dataset upload
- Confidence scoring and natural-language rule generation
- Prioritization weights (sliders, ranking, AHP, presets)
- rules.json export
- Snapshot save / restore
"""

from typing import Any, Dict, List, Optional

from fastapi import Body, FastAPI, HTTPException, Response
from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from alchemist_kernel.config.settings import KernelSettings, get_settings
from alchemist_kernel.dataset.store import DatasetStore
from alchemist_kernel.export.rules_config import export_rules_json, generate_rules_configuration
from alchemist_kernel.generation.ai_client import GeminiRuleParser
from alchemist_kernel.generation.generator import RuleGenerator
from alchemist_kernel.generation.suggestions import generate_rule_suggestions, get_suggestion_stats
from alchemist_kernel.generation.templates import get_rule_type_suggestions
from alchemist_kernel.models.entities import Client, Task, Worker
from alchemist_kernel.models.rules import RuleType, dump_rule
from alchemist_kernel.models.weights import PresetProfile, PriorityMethod
from alchemist_kernel.observability.logging import configure_logging
from alchemist_kernel.persistence.autosave import AutoSaver
from alchemist_kernel.persistence.snapshot_store import SnapshotStore, SQLiteSnapshotStore
from alchemist_kernel.rules.store import RulesStore
from alchemist_kernel.rules.validation import validate_rules_configuration
from alchemist_kernel.scoring.confidence import calculate_confidence_score
from alchemist_kernel.weights.engine import (
    derive_ahp_weights,
    normalize_weights,
    ranking_from_weights,
    to_percentages,
    weights_from_ranking,
    weights_from_sliders,
)
from alchemist_kernel.weights.presets import RANKING_PRESETS, list_presets, match_preset


# --- Request/Response Models ---

class _CamelRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DataUploadRequest(BaseModel):
    clients: Optional[List[Client]] = None
    workers: Optional[List[Worker]] = None
    tasks: Optional[List[Task]] = None


class ConfidenceRequest(_CamelRequest):
    input: str
    rule_type: RuleType
    rule_config: Dict[str, Any] = {}


class GenerateRequest(_CamelRequest):
    user_input: str
    accept: bool = False


class SliderWeightsRequest(_CamelRequest):
    weights: Dict[str, float]
    method: PriorityMethod = PriorityMethod.SLIDERS


class RankingRequest(_CamelRequest):
    ranking: List[str]


class AHPRequest(_CamelRequest):
    matrix: List[List[float]]


def _validation_detail(exc: ValidationError) -> List[str]:
    return [f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}" for e in exc.errors()]


# --- Application Factory ---

def create_app(
    settings: Optional[KernelSettings] = None,
    rules_store: Optional[RulesStore] = None,
    dataset_store: Optional[DatasetStore] = None,
    generator: Optional[RuleGenerator] = None,
    snapshot_store: Optional[SnapshotStore] = None,
    enable_autosave: bool = True,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    settings = settings or get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title=f"{settings.app_name} Kernel API",
        description="Business rules, prioritization and rules.json export",
        version=settings.app_version,
    )

    # Initialize components
    rs = rules_store or RulesStore()
    ds = dataset_store or DatasetStore()
    ss = snapshot_store or SQLiteSnapshotStore(settings.snapshot_path)
    if generator is None:
        ai_parser = GeminiRuleParser(settings) if settings.ai_enabled else None
        generator = RuleGenerator(ai_parser=ai_parser, min_ai_confidence=settings.ai_min_confidence)

    auto_saver = AutoSaver(
        snapshot_source=rs.to_snapshot_data,
        snapshot_store=ss,
        debounce_seconds=settings.autosave_debounce_seconds,
        on_saved=rs.mark_saved,
    )
    if enable_autosave:
        rs.attach_auto_saver(auto_saver)

    # Store components on app state for access in endpoints
    app.state.settings = settings
    app.state.rules_store = rs
    app.state.dataset_store = ds
    app.state.snapshot_store = ss
    app.state.generator = generator
    app.state.auto_saver = auto_saver

    def _weights_view() -> Dict[str, Any]:
        weights = rs.priority_weights
        has_weight = weights.total() > 0
        return {
            "priorityWeights": weights.model_dump(by_alias=True),
            "priorityMethod": rs.priority_method.value,
            "presetProfile": rs.preset_profile.value,
            "normalizedWeights": normalize_weights(weights).model_dump(by_alias=True) if has_weight else None,
            "percentages": to_percentages(weights) if has_weight else None,
            "ranking": ranking_from_weights(weights),
            "matchingPreset": match_preset(weights),
        }

    # === RULES ===

    @app.get("/rules")
    def list_rules(type: Optional[RuleType] = None, active: Optional[bool] = None):
        """All rules, optionally filtered by type and active flag."""
        rules = rs.get_rules_by_type(type) if type else rs.rules
        if active is not None:
            rules = [r for r in rules if r.is_active == active]
        return [dump_rule(r) for r in rules]

    @app.post("/rules", status_code=201)
    def create_rule(payload: Dict[str, Any] = Body(...)):
        """Add a rule; id and timestamps are assigned by the store."""
        try:
            rule = rs.add_rule(payload)
        except ValidationError as exc:
            raise HTTPException(422, _validation_detail(exc))
        return dump_rule(rule)

    @app.get("/rules/conflicts")
    def get_conflicts():
        """Conflicts among the active rules."""
        return [c.model_dump(mode="json", by_alias=True) for c in rs.get_conflicts()]

    @app.get("/rules/validate")
    def validate_rules():
        """Check the rule set against the uploaded dataset."""
        result = validate_rules_configuration(rs.rules, ds.clients, ds.workers, ds.tasks)
        return result.model_dump(by_alias=True)

    @app.get("/rules/suggestions")
    def rule_suggestions(input: str = ""):
        """Rule templates that fit a partially typed request."""
        return [t.model_dump(mode="json") for t in get_rule_type_suggestions(input)]

    @app.get("/rules/suggestions/data")
    def data_rule_suggestions():
        """Rules proposed from patterns in the uploaded dataset, minus ones already covered."""
        suggestions = generate_rule_suggestions(ds.clients, ds.workers, ds.tasks, rs.rules)
        return {
            "suggestions": [s.model_dump(mode="json", by_alias=True) for s in suggestions],
            "stats": get_suggestion_stats(suggestions).model_dump(by_alias=True),
        }

    @app.post("/rules/generate")
    def generate_rule(req: GenerateRequest):
        """Turn a natural-language request into a candidate rule."""
        result = generator.generate(req.user_input, ds.available_data())
        if req.accept and result.success and result.rule is not None:
            rs.accept_rule(result.rule)
        return result.model_dump(mode="json", by_alias=True)

    @app.get("/rules/{rule_id}")
    def get_rule(rule_id: str):
        rule = rs.get_rule(rule_id)
        if rule is None:
            raise HTTPException(404, "Rule not found")
        validation = rs.validate_rule(rule)
        return {"rule": dump_rule(rule), "validation": validation.model_dump(by_alias=True)}

    @app.patch("/rules/{rule_id}")
    def update_rule(rule_id: str, updates: Dict[str, Any] = Body(...)):
        """Merge fields into a rule. id, createdAt and type cannot change."""
        try:
            rule = rs.update_rule(rule_id, updates)
        except ValidationError as exc:
            raise HTTPException(422, _validation_detail(exc))
        if rule is None:
            raise HTTPException(404, "Rule not found")
        return dump_rule(rule)

    @app.delete("/rules/{rule_id}")
    def delete_rule(rule_id: str):
        if not rs.delete_rule(rule_id):
            raise HTTPException(404, "Rule not found")
        return {"status": "deleted", "rule_id": rule_id}

    @app.post("/rules/{rule_id}/toggle")
    def toggle_rule(rule_id: str):
        rule = rs.toggle_rule_active(rule_id)
        if rule is None:
            raise HTTPException(404, "Rule not found")
        return dump_rule(rule)

    @app.post("/rules/{rule_id}/duplicate", status_code=201)
    def duplicate_rule(rule_id: str):
        rule = rs.duplicate_rule(rule_id)
        if rule is None:
            raise HTTPException(404, "Rule not found")
        return dump_rule(rule)

    # === DATASET ===

    @app.put("/data")
    def upload_data(req: DataUploadRequest):
        """Replace the uploaded collections. Omitted collections are kept."""
        ds.replace(clients=req.clients, workers=req.workers, tasks=req.tasks)
        return ds.summary()

    @app.get("/data/summary")
    def data_summary():
        return ds.summary()

    # === CONFIDENCE ===

    @app.post("/confidence")
    def score_confidence(req: ConfidenceRequest):
        """Score a candidate rule configuration against the dataset."""
        result = calculate_confidence_score(req.input, req.rule_type, req.rule_config, ds.available_data())
        return result.model_dump(mode="json", by_alias=True)

    # === WEIGHTS ===

    @app.get("/weights")
    def get_weights():
        return _weights_view()

    @app.put("/weights")
    def set_weights(req: SliderWeightsRequest):
        """Set weights from 0-10 slider values."""
        try:
            weights = weights_from_sliders(req.weights)
        except ValueError as exc:
            raise HTTPException(422, str(exc))
        rs.set_priority_weights(weights)
        rs.set_priority_method(req.method)
        return _weights_view()

    @app.post("/weights/ranking")
    def set_weights_from_ranking(req: RankingRequest):
        """Set weights from a most-to-least important ordering."""
        try:
            weights = weights_from_ranking(req.ranking)
        except ValueError as exc:
            raise HTTPException(422, str(exc))
        rs.set_priority_weights(weights)
        rs.set_priority_method(PriorityMethod.RANKING)
        return _weights_view()

    @app.get("/weights/ranking/presets")
    def get_ranking_presets():
        return RANKING_PRESETS

    @app.post("/weights/ahp")
    def set_weights_from_ahp(req: AHPRequest):
        """Derive weights from a pairwise comparison matrix."""
        try:
            result = derive_ahp_weights(req.matrix)
        except ValueError as exc:
            raise HTTPException(422, str(exc))
        rs.set_priority_weights(result.priority_weights)
        rs.set_priority_method(PriorityMethod.AHP)
        return {"ahp": result.model_dump(mode="json", by_alias=True), **_weights_view()}

    @app.get("/weights/presets")
    def get_presets():
        return [p.model_dump(mode="json", by_alias=True) for p in list_presets()]

    @app.post("/weights/presets/{profile}")
    def apply_preset(profile: PresetProfile):
        rs.set_preset_profile(profile)
        return _weights_view()

    @app.post("/weights/reset")
    def reset_weights():
        rs.reset_priority_weights()
        return _weights_view()

    # === EXPORT ===

    @app.get("/export/rules.json")
    def export_rules():
        """The rules.json document for the allocation engine."""
        configuration = generate_rules_configuration(
            rs.rules,
            rs.priority_weights,
            rs.priority_method,
            rs.preset_profile,
            ds.clients,
            ds.workers,
            ds.tasks,
        )
        return Response(
            content=export_rules_json(configuration),
            media_type="application/json",
            headers={"Content-Disposition": 'attachment; filename="rules.json"'},
        )

    # === SNAPSHOT ===

    @app.get("/snapshot/status")
    def snapshot_status():
        last = auto_saver.last_result
        return {
            "status": auto_saver.status.value,
            "pending": auto_saver.pending,
            "hasUnsavedChanges": rs.has_unsaved_changes(),
            "lastSavedAt": rs.last_saved_at.isoformat() if rs.last_saved_at else None,
            "lastError": last.error if last and not last.success else None,
        }

    @app.post("/snapshot/save")
    def save_snapshot():
        """Save the rules state now, replacing any pending auto-save."""
        auto_saver.cancel()
        result = auto_saver.save_now()
        if not result.success:
            raise HTTPException(500, result.error or "Snapshot save failed")
        return result.model_dump(mode="json")

    @app.post("/snapshot/restore")
    def restore_snapshot():
        """Replace the rules state with the last valid snapshot."""
        auto_saver.cancel()
        if not rs.load_from_backup(ss.load()):
            raise HTTPException(404, "No valid backup found")
        return {"status": "restored", "rules": len(rs.rules), **_weights_view()}

    @app.delete("/snapshot")
    def clear_snapshot():
        ss.clear()
        return {"status": "cleared"}

    return app
