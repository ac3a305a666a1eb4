"""Entity Model — the uploaded client, worker and task records.

Entities arrive from the spreadsheet layer with their original column headers
(``ClientID``, ``RequestedTaskIDs``...). They are read-only inputs to the
kernel and are never mutated by it.
"""

from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


def split_list(value: Optional[str]) -> List[str]:
    """Split a comma-separated cell into trimmed, non-empty items."""
    if not value:
        return []
    return [item.strip() for item in str(value).split(",") if item.strip()]


class Client(BaseModel):
    """A client requesting tasks."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    client_id: str = Field(alias="ClientID")
    client_name: str = Field(default="", alias="ClientName")
    priority_level: Optional[int] = Field(default=None, alias="PriorityLevel")
    requested_task_ids: str = Field(default="", alias="RequestedTaskIDs")
    group_tag: Optional[str] = Field(default=None, alias="GroupTag")
    attributes_json: Optional[str] = Field(default=None, alias="AttributesJSON")

    @property
    def requested_tasks(self) -> List[str]:
        return split_list(self.requested_task_ids)


class Worker(BaseModel):
    """A worker who can be allocated to task slots."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    worker_id: str = Field(alias="WorkerID")
    worker_name: str = Field(default="", alias="WorkerName")
    skills: str = Field(default="", alias="Skills")
    available_slots: Union[str, List[int], None] = Field(default=None, alias="AvailableSlots")
    max_load_per_phase: int = Field(default=0, ge=0, alias="MaxLoadPerPhase")
    worker_group: Optional[str] = Field(default=None, alias="WorkerGroup")
    qualification_level: Union[int, str, None] = Field(default=None, alias="QualificationLevel")

    @property
    def skill_list(self) -> List[str]:
        return split_list(self.skills)


class Task(BaseModel):
    """A unit of work requested by clients."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    task_id: str = Field(alias="TaskID")
    task_name: str = Field(default="", alias="TaskName")
    category: Optional[str] = Field(default=None, alias="Category")
    duration: int = Field(default=1, ge=0, alias="Duration")
    required_skills: str = Field(default="", alias="RequiredSkills")
    preferred_phases: Optional[str] = Field(default=None, alias="PreferredPhases")
    max_concurrent: int = Field(default=1, ge=1, alias="MaxConcurrent")

    @property
    def required_skill_list(self) -> List[str]:
        return split_list(self.required_skills)


def _unique(values: List[str]) -> List[str]:
    seen = set()
    ordered = []
    for value in values:
        if value and value not in seen:
            seen.add(value)
            ordered.append(value)
    return ordered


class AvailableData(BaseModel):
    """
    Dataset view consumed by confidence scoring and rule generation.

    Carries the raw entity collections together with the lookup lists
    (groups, task ids, skills) derived from them.
    """

    clients: List[Client] = []
    workers: List[Worker] = []
    tasks: List[Task] = []
    client_groups: List[str] = []
    worker_groups: List[str] = []
    task_ids: List[str] = []
    skills: List[str] = []

    @classmethod
    def from_entities(
        cls,
        clients: List[Client],
        workers: List[Worker],
        tasks: List[Task],
    ) -> "AvailableData":
        """Derive the lookup lists from the entity collections."""
        return cls(
            clients=list(clients),
            workers=list(workers),
            tasks=list(tasks),
            client_groups=_unique([c.group_tag for c in clients if c.group_tag]),
            worker_groups=_unique([w.worker_group for w in workers if w.worker_group]),
            task_ids=[t.task_id for t in tasks],
            skills=_unique([s for w in workers for s in w.skill_list]),
        )
