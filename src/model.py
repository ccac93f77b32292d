"""
model.py

Domain models for the Project Status Tracker.

Entities
--------
- Milestone
- Stage
- ProjectSnapshot
- Project
- ChangeRecord
- ProjectLogEntry

All models use Python dataclasses for clean, framework-agnostic definitions.
Calendar dates are carried as ISO-8601 strings (YYYY-MM-DD) with "" meaning
"not set", the same shape the edit form sends and receives.
Timestamps are always stored in UTC.
"""

from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Tuple


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class StageStatus(str, Enum):
    """Lifecycle status of an individual project stage."""
    YET_TO_START = "Yet to Start"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    DELAYED = "Delayed"


class ProjectStatus(str, Enum):
    """Manually maintained project status shown on the project card."""
    WORK_IN_PROGRESS = "Work in Progress"
    COMPLETED = "Completed"
    ON_HOLD = "On Hold"
    DELAY = "Delay"


class Priority(str, Enum):
    P1 = "P1"
    P2 = "P2"
    P3 = "P3"


class UserRole(str, Enum):
    """
    Caller-supplied role flag.

    ADMIN – full access.
    HOD   – Head of Department; may view projects and logs but not edit.
    """
    ADMIN = "admin"
    HOD = "hod"


class OverallStatus(str, Enum):
    """Project status derived from its stages (dashboard filter)."""
    DELAYED = "Delayed"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    YET_TO_START = "Yet to Start"


# Location tag used by change records that belong to the project itself
PROJECT_LEVEL = "N/A"

# Placeholder shown for empty values in the change log
EMPTY_VALUE = "(empty)"

# Placeholder new value of a "Milestone Deleted" record
DELETED_VALUE = "(deleted)"


# ---------------------------------------------------------------------------
# Stage Entities
# ---------------------------------------------------------------------------


@dataclass
class Milestone:
    """
    A checkpoint inside a stage.

    `stage_name` is the milestone's own free-text sub-label; it is NOT the
    name of the parent stage.  Milestones are identified by `id`, which is
    unique only within the parent stage.
    """
    id: int = 0
    title: str = ""
    stage_name: str = ""
    owner: str = ""
    remarks: str = ""


@dataclass
class Stage:
    """
    A weighted slice of a project's schedule.

    The stage name doubles as its identity when two snapshots are compared.
    Planned dates are normally produced by the phase date allocator; actual
    dates are entered by the stage owner.
    """
    name: str = ""
    weight: float = 0.0             # 0 – 100; project total must not exceed 100
    start_date: str = ""            # planned
    end_date: str = ""              # planned
    actual_start_date: str = ""
    actual_end_date: str = ""
    status: StageStatus = StageStatus.YET_TO_START
    stage_owner: str = ""
    remarks: str = ""
    milestones: List[Milestone] = field(default_factory=list)


DEFAULT_STAGE_TEMPLATE: Tuple[Tuple[str, float], ...] = (
    ("Concept", 10),
    ("Business case approval", 5),
    ("IT Infra and security", 15),
    ("Vendor onboarding", 5),
    ("Execution & Delivery", 55),
    ("UAT", 5),
    ("Go-Live and support", 5),
)


def default_stages() -> List[Stage]:
    """Fresh stage list every new project starts with."""
    return [Stage(name=name, weight=weight) for name, weight in DEFAULT_STAGE_TEMPLATE]


# ---------------------------------------------------------------------------
# Project Entities
# ---------------------------------------------------------------------------


@dataclass
class ProjectSnapshot:
    """
    The editable fields of a project at one point in an edit session.

    An edit session holds two of these: the initial snapshot captured when the
    project is loaded, and the working snapshot mutated by every edit.
    """
    start_date: str = ""
    end_date: str = ""
    priority: Priority = Priority.P3
    overall_project_summary: str = ""
    stages: List[Stage] = field(default_factory=list)

    def copy(self) -> "ProjectSnapshot":
        """Deep copy; stages and milestones are never shared between snapshots."""
        return copy.deepcopy(self)


@dataclass
class Project:
    """
    Top-level tracked project.

    `id` is the storage key; `project_id` is the human-facing sequence code
    (PRJ001, PRJ002, ...).
    """
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    project_id: str = ""
    project_name: str = ""
    objectives: str = ""
    department: str = ""
    tech_department: str = ""
    project_status: ProjectStatus = ProjectStatus.WORK_IN_PROGRESS

    # Ownership
    project_owner: str = ""
    project_owner_primary_email: str = ""
    project_owner_primary_contact: str = ""
    project_owner_alternate_email: str = ""
    business_owner: str = ""
    business_owner_primary_email: str = ""
    business_owner_primary_contact: str = ""
    business_owner_alternate_email: str = ""

    # Editable status fields (see ProjectSnapshot)
    start_date: str = ""
    end_date: str = ""
    priority: Priority = Priority.P3
    overall_project_summary: str = ""
    stages: List[Stage] = field(default_factory=list)

    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def snapshot(self) -> ProjectSnapshot:
        return ProjectSnapshot(
            start_date=self.start_date,
            end_date=self.end_date,
            priority=self.priority,
            overall_project_summary=self.overall_project_summary,
            stages=copy.deepcopy(self.stages),
        )

    def apply_snapshot(self, snapshot: ProjectSnapshot) -> None:
        self.start_date = snapshot.start_date
        self.end_date = snapshot.end_date
        self.priority = snapshot.priority
        self.overall_project_summary = snapshot.overall_project_summary
        self.stages = copy.deepcopy(snapshot.stages)
        self.updated_at = datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Change Log Entities
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChangeRecord:
    """
    One field-level change produced by an edit session.

    `stage_name` is the location of the change: PROJECT_LEVEL for project
    fields, the stage name for stage fields and "<stage> - <milestone title>"
    for milestone fields.  Records are never mutated after creation.
    """
    field_name: str
    previous_value: str
    new_value: str
    stage_name: str = PROJECT_LEVEL

    @property
    def key(self) -> Tuple[str, str, str, str]:
        """Deduplication key."""
        return (self.field_name, self.stage_name, self.previous_value, self.new_value)


@dataclass
class ProjectLogEntry:
    """
    Immutable, append-only log row written when a change batch is saved.
    Carries the change record plus who made it and when.
    """
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    project_id: uuid.UUID = field(default_factory=uuid.uuid4)    # FK → Project.id
    stage_name: str = PROJECT_LEVEL
    field_changed: str = ""
    old_value: str = ""
    new_value: str = ""
    changed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    changed_by: str = "System"
