"""Data Alchemist kernel data models."""

from alchemist_kernel.models.confidence import (
    ConfidenceFactors,
    ConfidenceResult,
    ConfidenceThreshold,
)
from alchemist_kernel.models.entities import AvailableData, Client, Task, Worker
from alchemist_kernel.models.export import (
    ConfigurationValidation,
    ConflictResolution,
    PrioritizationConfig,
    ProductionRule,
    RulesConfiguration,
)
from alchemist_kernel.models.generation import (
    GenerationSource,
    ParsedRule,
    RuleGenerationResult,
    RuleSuggestion,
    RuleTemplate,
    SuggestionPriority,
)
from alchemist_kernel.models.rules import (
    BusinessRule,
    ConflictSeverity,
    ConflictType,
    CoRunRule,
    LoadLimitRule,
    PatternMatchRule,
    PhaseWindowRule,
    PrecedenceOverrideRule,
    RuleConflict,
    RuleType,
    RuleValidation,
    SlotRestrictionRule,
    ValidationIssue,
)
from alchemist_kernel.models.snapshot import (
    AutoSaveStatus,
    RulesSnapshot,
    SaveResult,
    SnapshotData,
)
from alchemist_kernel.models.weights import (
    AHPResult,
    ConsistencyStatus,
    PresetDefinition,
    PresetProfile,
    PriorityMethod,
    PriorityWeights,
)

__all__ = [
    "AHPResult",
    "AutoSaveStatus",
    "AvailableData",
    "BusinessRule",
    "Client",
    "ConfidenceFactors",
    "ConfidenceResult",
    "ConfidenceThreshold",
    "ConfigurationValidation",
    "ConflictResolution",
    "ConflictSeverity",
    "ConflictType",
    "ConsistencyStatus",
    "CoRunRule",
    "GenerationSource",
    "LoadLimitRule",
    "ParsedRule",
    "PatternMatchRule",
    "PhaseWindowRule",
    "PrecedenceOverrideRule",
    "PresetDefinition",
    "PresetProfile",
    "PrioritizationConfig",
    "PriorityMethod",
    "PriorityWeights",
    "ProductionRule",
    "RuleConflict",
    "RuleGenerationResult",
    "RuleSuggestion",
    "RuleTemplate",
    "RulesConfiguration",
    "RulesSnapshot",
    "RuleType",
    "RuleValidation",
    "SaveResult",
    "SlotRestrictionRule",
    "SnapshotData",
    "SuggestionPriority",
    "Task",
    "ValidationIssue",
    "Worker",
]
