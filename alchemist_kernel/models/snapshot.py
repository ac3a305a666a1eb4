"""Rules Snapshot — the versioned, checksummed backup used for crash recovery."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from alchemist_kernel.models.rules import BusinessRule
from alchemist_kernel.models.weights import PresetProfile, PriorityMethod, PriorityWeights


SNAPSHOT_VERSION = "1.0"


class AutoSaveStatus(str, Enum):
    IDLE = "idle"
    SAVING = "saving"
    SAVED = "saved"
    ERROR = "error"


class SnapshotData(BaseModel):
    """The rules-store state captured by a snapshot."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    rules: List[BusinessRule] = []
    priority_weights: PriorityWeights
    priority_method: PriorityMethod = PriorityMethod.SLIDERS
    preset_profile: PresetProfile = PresetProfile.CUSTOM
    last_saved_at: Optional[datetime] = None


class RulesSnapshot(BaseModel):
    """Envelope persisted by a snapshot store."""

    version: str = SNAPSHOT_VERSION
    timestamp: int                          # Milliseconds since the epoch
    data: SnapshotData
    checksum: str


class SaveResult(BaseModel):
    success: bool
    saved_at: Optional[datetime] = None
    error: Optional[str] = None
