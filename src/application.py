"""
application.py

Application layer for the Project Status Tracker.

Overview
--------
The application layer sits between the presentation layer (API / UI) and the
domain / service layer.  It is responsible for:

  1. Defining clean output DTOs (dataclasses) that carry only the data the
     presentation layer needs; domain objects never leave this module.
  2. Declaring abstract Repository interfaces so that the application layer
     remains fully persistence-agnostic (implementations live in
     infrastructure.py).
  3. Declaring the UnitOfWork abstraction so that the project write and the
     change log append of a save land together.
  4. Implementing Use Case handlers, one class per user-facing operation,
     that orchestrate service calls and repository reads/writes.

Structure
---------
DTOs
    MilestoneDTO, StageDTO, ProjectDTO, ProjectSummaryDTO
    ChangeRecordDTO, ProjectLogDTO, SaveResultDTO
    StagePlanDTO, MilestoneRangeDTO, DashboardDTO, DepartmentRowDTO

Repository interfaces
    AbstractProjectRepository
    AbstractProjectLogRepository

Unit of Work
    AbstractUnitOfWork

Use Cases
    --- Project management ---
    CreateProjectUseCase
    GetProjectUseCase
    ListProjectsUseCase
    DeleteProjectUseCase

    --- Status editing ---
    SaveProjectStatusUseCase
    UpdateProjectPriorityUseCase
    CalculateStageDatesUseCase

    --- Change log ---
    GetProjectLogsUseCase

    --- Dashboard ---
    GetDashboardUseCase
    GetDepartmentBreakdownUseCase

Design notes
------------
- Use cases receive commands and return DTOs; no domain objects cross the
  application boundary.
- Each use case accepts a UnitOfWork as its sole dependency.
- Mutating use cases take the caller-supplied UserRole; HOD is view only.
- All timestamps flowing out are ISO-8601 strings (UTC).
- Errors bubble up as ApplicationError (business) or ValueError (validation).
"""

from __future__ import annotations

import abc
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from config import settings
from model import (
    ChangeRecord,
    Milestone,
    Priority,
    Project,
    ProjectLogEntry,
    ProjectSnapshot,
    Stage,
    UserRole,
)
from service import (
    ChangeLogService,
    DashboardService,
    ProjectService,
    ScheduleService,
)

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class ApplicationError(Exception):
    """Raised when a use case cannot complete due to a business rule violation."""


class NotFoundError(ApplicationError):
    """Raised when a requested entity does not exist."""


class AuthorizationError(ApplicationError):
    """Raised when the acting user lacks the required role."""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _fmt(dt: Optional[datetime]) -> Optional[str]:
    """Convert a datetime to an ISO-8601 UTC string, or None."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.isoformat()


def _require_editor(role: UserRole) -> None:
    if UserRole(role) != UserRole.ADMIN:
        raise AuthorizationError("Head of Department accounts have view-only access.")


# ===========================================================================
# DTO DEFINITIONS
# ===========================================================================

# ---------------------------------------------------------------------------
# Stage DTOs
# ---------------------------------------------------------------------------

@dataclass
class MilestoneDTO:
    id: int
    title: str
    stage_name: str
    owner: str
    remarks: str


@dataclass
class StageDTO:
    name: str
    weight: float
    start_date: str
    end_date: str
    actual_start_date: str
    actual_end_date: str
    status: str
    stage_owner: str
    remarks: str
    milestones: List[MilestoneDTO]


@dataclass
class MilestoneRangeDTO:
    start_date: str
    end_date: str
    days: int
    percentage: float


@dataclass
class StagePlanDTO:
    """Allocator preview for one stage."""
    name: str
    weight: float
    start_date: str
    end_date: str
    days: Optional[int]
    milestone_ranges: List[Optional[MilestoneRangeDTO]] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Project DTOs
# ---------------------------------------------------------------------------

@dataclass
class ProjectDTO:
    id: str
    project_id: str
    project_name: str
    objectives: str
    department: str
    tech_department: str
    project_status: str
    project_owner: str
    project_owner_primary_email: str
    project_owner_primary_contact: str
    project_owner_alternate_email: str
    business_owner: str
    business_owner_primary_email: str
    business_owner_primary_contact: str
    business_owner_alternate_email: str
    start_date: str
    end_date: str
    priority: str
    overall_project_summary: str
    stages: List[StageDTO]
    progress: int
    status_summary: str
    overall_status: str
    created_at: str
    updated_at: str


@dataclass
class ProjectSummaryDTO:
    """Compact row for the project table."""
    id: str
    project_id: str
    project_name: str
    department: str
    project_owner: str
    priority: str
    progress: int
    status_summary: str
    overall_status: str


# ---------------------------------------------------------------------------
# Change log DTOs
# ---------------------------------------------------------------------------

@dataclass
class ChangeRecordDTO:
    field_name: str
    previous_value: str
    new_value: str
    stage_name: str


@dataclass
class ProjectLogDTO:
    id: str
    project_name: str
    stage_name: str
    field_name: str
    previous_value: str
    new_value: str
    changed_at: str
    changed_by: str


@dataclass
class SaveResultDTO:
    project: ProjectDTO
    changes: List[ChangeRecordDTO]


# ---------------------------------------------------------------------------
# Dashboard DTOs
# ---------------------------------------------------------------------------

@dataclass
class DashboardDTO:
    total: int
    completed: int
    in_progress: int
    delayed: int
    yet_to_start: int


@dataclass
class DepartmentRowDTO:
    department: str
    owner: str
    project_count: int
    is_first_in_department: bool


# ===========================================================================
# DTO ASSEMBLERS
# ===========================================================================

class _Assembler:
    """Converts domain model instances into DTOs."""

    @staticmethod
    def milestone(m: Milestone) -> MilestoneDTO:
        return MilestoneDTO(
            id=m.id,
            title=m.title,
            stage_name=m.stage_name,
            owner=m.owner,
            remarks=m.remarks,
        )

    @staticmethod
    def stage(s: Stage) -> StageDTO:
        return StageDTO(
            name=s.name,
            weight=s.weight,
            start_date=s.start_date,
            end_date=s.end_date,
            actual_start_date=s.actual_start_date,
            actual_end_date=s.actual_end_date,
            status=s.status.value,
            stage_owner=s.stage_owner,
            remarks=s.remarks,
            milestones=[_Assembler.milestone(m) for m in s.milestones],
        )

    @staticmethod
    def project(p: Project) -> ProjectDTO:
        return ProjectDTO(
            id=str(p.id),
            project_id=p.project_id,
            project_name=p.project_name,
            objectives=p.objectives,
            department=p.department,
            tech_department=p.tech_department,
            project_status=p.project_status.value,
            project_owner=p.project_owner,
            project_owner_primary_email=p.project_owner_primary_email,
            project_owner_primary_contact=p.project_owner_primary_contact,
            project_owner_alternate_email=p.project_owner_alternate_email,
            business_owner=p.business_owner,
            business_owner_primary_email=p.business_owner_primary_email,
            business_owner_primary_contact=p.business_owner_primary_contact,
            business_owner_alternate_email=p.business_owner_alternate_email,
            start_date=p.start_date,
            end_date=p.end_date,
            priority=p.priority.value,
            overall_project_summary=p.overall_project_summary,
            stages=[_Assembler.stage(s) for s in p.stages],
            progress=_project_svc.progress(p.stages),
            status_summary=_project_svc.status_summary(p.stages),
            overall_status=_project_svc.overall_status(p.stages).value,
            created_at=_fmt(p.created_at),
            updated_at=_fmt(p.updated_at),
        )

    @staticmethod
    def project_summary(p: Project) -> ProjectSummaryDTO:
        return ProjectSummaryDTO(
            id=str(p.id),
            project_id=p.project_id,
            project_name=p.project_name,
            department=p.department,
            project_owner=p.project_owner,
            priority=p.priority.value,
            progress=_project_svc.progress(p.stages),
            status_summary=_project_svc.status_summary(p.stages),
            overall_status=_project_svc.overall_status(p.stages).value,
        )

    @staticmethod
    def change(r: ChangeRecord) -> ChangeRecordDTO:
        return ChangeRecordDTO(
            field_name=r.field_name,
            previous_value=r.previous_value,
            new_value=r.new_value,
            stage_name=r.stage_name,
        )

    @staticmethod
    def log_entry(e: ProjectLogEntry, project_name: str) -> ProjectLogDTO:
        return ProjectLogDTO(
            id=str(e.id),
            project_name=project_name,
            stage_name=e.stage_name,
            field_name=e.field_changed,
            previous_value=_change_log_svc.format_log_value(e.old_value),
            new_value=_change_log_svc.format_log_value(e.new_value),
            changed_at=_fmt(e.changed_at),
            changed_by=e.changed_by,
        )


# ===========================================================================
# REPOSITORY INTERFACES
# ===========================================================================

class AbstractProjectRepository(abc.ABC):
    @abc.abstractmethod
    def get(self, project_id: uuid.UUID) -> Optional[Project]: ...
    @abc.abstractmethod
    def get_by_code(self, code: str) -> Optional[Project]: ...
    @abc.abstractmethod
    def list_all(self) -> List[Project]: ...
    @abc.abstractmethod
    def save(self, project: Project) -> None: ...
    @abc.abstractmethod
    def delete(self, project_id: uuid.UUID) -> None: ...


class AbstractProjectLogRepository(abc.ABC):
    @abc.abstractmethod
    def list_for_project(self, project_id: uuid.UUID, limit: int) -> List[ProjectLogEntry]: ...
    @abc.abstractmethod
    def add_many(self, entries: List[ProjectLogEntry]) -> None: ...
    @abc.abstractmethod
    def delete_for_project(self, project_id: uuid.UUID) -> None: ...


# ===========================================================================
# UNIT OF WORK
# ===========================================================================

class AbstractUnitOfWork(abc.ABC):
    """
    Groups all repositories under a single transactional boundary.
    Use as a context manager:

        with uow:
            uow.projects.save(project)
            uow.project_logs.add_many(entries)
    """
    projects: AbstractProjectRepository
    project_logs: AbstractProjectLogRepository

    def __enter__(self) -> "AbstractUnitOfWork":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if exc_type:
            self.rollback()
        else:
            self.commit()

    @abc.abstractmethod
    def commit(self) -> None: ...

    @abc.abstractmethod
    def rollback(self) -> None: ...


# ===========================================================================
# SERVICE SINGLETONS (shared across use cases)
# ===========================================================================

_project_svc = ProjectService()
_schedule_svc = ScheduleService()
_change_log_svc = ChangeLogService()
_dashboard_svc = DashboardService(_project_svc)


# ===========================================================================
# USE CASE HELPERS
# ===========================================================================

def _get_project_or_raise(uow: AbstractUnitOfWork, project_id: uuid.UUID) -> Project:
    project = uow.projects.get(project_id)
    if project is None:
        raise NotFoundError(f"Project {project_id} not found.")
    return project


def _save_snapshot(
    uow: AbstractUnitOfWork,
    project: Project,
    working: ProjectSnapshot,
    incremental_changes: Sequence[ChangeRecord],
    changed_by: str,
) -> List[ChangeRecord]:
    """
    Diff the stored project against the working snapshot, write the snapshot
    back and append the resulting change batch to the project log.
    """
    _project_svc.validate_weights(working.stages)
    records = _change_log_svc.diff(project.snapshot(), working, incremental_changes)

    with uow:
        project.apply_snapshot(working)
        uow.projects.save(project)
        if records:
            uow.project_logs.add_many(
                _change_log_svc.stamp(records, project.id, changed_by=changed_by)
            )

    log.info(
        "Saved project %s: %d change record(s) appended by %s.",
        project.project_id,
        len(records),
        changed_by,
    )
    return records


# ===========================================================================
# USE CASES: PROJECT MANAGEMENT
# ===========================================================================

@dataclass
class CreateProjectCommand:
    project_name: str
    department: str
    tech_department: str
    project_owner: str
    business_owner: str
    objectives: str = ""
    start_date: str = ""
    end_date: str = ""
    project_status: Optional[str] = None
    priority: Priority = Priority.P3
    overall_project_summary: str = ""
    contacts: Dict[str, str] = field(default_factory=dict)
    role: UserRole = UserRole.ADMIN


class CreateProjectUseCase:
    """
    Creates a project with the next PRJ code and the default stage template.
    """

    def execute(self, cmd: CreateProjectCommand, uow: AbstractUnitOfWork) -> ProjectDTO:
        _require_editor(cmd.role)
        code = _project_svc.next_project_id(p.project_id for p in uow.projects.list_all())
        if uow.projects.get_by_code(code) is not None:
            raise ApplicationError(f"Project code {code} is already in use.")
        project = _project_svc.create_project(
            project_id=code,
            project_name=cmd.project_name,
            department=cmd.department,
            tech_department=cmd.tech_department,
            project_owner=cmd.project_owner,
            business_owner=cmd.business_owner,
            objectives=cmd.objectives,
            start_date=cmd.start_date,
            end_date=cmd.end_date,
            project_status=cmd.project_status,
            priority=cmd.priority,
            overall_project_summary=cmd.overall_project_summary,
            contacts=cmd.contacts,
        )
        with uow:
            uow.projects.save(project)
        log.info("Created project %s (%s).", project.project_id, project.id)
        return _Assembler.project(project)


class GetProjectUseCase:
    def execute(self, project_id: uuid.UUID, uow: AbstractUnitOfWork) -> ProjectDTO:
        return _Assembler.project(_get_project_or_raise(uow, project_id))


class ListProjectsUseCase:
    def execute(
        self,
        uow: AbstractUnitOfWork,
        status_filter: str = "all",
        search: str = "",
    ) -> List[ProjectSummaryDTO]:
        """Newest first, optionally narrowed by overall status and search text."""
        projects = sorted(uow.projects.list_all(), key=lambda p: p.created_at, reverse=True)
        projects = _dashboard_svc.filter_projects(projects, status_filter, search)
        return [_Assembler.project_summary(p) for p in projects]


@dataclass
class DeleteProjectCommand:
    project_id: uuid.UUID
    role: UserRole = UserRole.ADMIN


class DeleteProjectUseCase:
    def execute(self, cmd: DeleteProjectCommand, uow: AbstractUnitOfWork) -> ProjectSummaryDTO:
        _require_editor(cmd.role)
        project = _get_project_or_raise(uow, cmd.project_id)
        with uow:
            uow.projects.delete(project.id)
            uow.project_logs.delete_for_project(project.id)
        log.info("Deleted project %s (%s).", project.project_id, project.id)
        return _Assembler.project_summary(project)


# ===========================================================================
# USE CASES: STATUS EDITING
# ===========================================================================

@dataclass
class SaveProjectStatusCommand:
    project_id: uuid.UUID
    working: ProjectSnapshot
    incremental_changes: List[ChangeRecord] = field(default_factory=list)
    changed_by: str = ""
    role: UserRole = UserRole.ADMIN


class SaveProjectStatusUseCase:
    """
    Persists an edit session: the stored project is the initial snapshot,
    the submitted snapshot is the working one.  The merged change batch is
    appended to the project log, attributed to the acting user.  A working
    snapshot without a priority keeps the stored one.
    """

    def execute(self, cmd: SaveProjectStatusCommand, uow: AbstractUnitOfWork) -> SaveResultDTO:
        _require_editor(cmd.role)
        project = _get_project_or_raise(uow, cmd.project_id)
        if cmd.working.priority is None:
            cmd.working.priority = project.priority
        records = _save_snapshot(
            uow,
            project,
            cmd.working,
            cmd.incremental_changes,
            cmd.changed_by or settings.default_actor,
        )
        return SaveResultDTO(
            project=_Assembler.project(project),
            changes=[_Assembler.change(r) for r in records],
        )


@dataclass
class UpdateProjectPriorityCommand:
    project_id: uuid.UUID
    priority: Priority
    changed_by: str = ""
    role: UserRole = UserRole.ADMIN


class UpdateProjectPriorityUseCase:
    def execute(self, cmd: UpdateProjectPriorityCommand, uow: AbstractUnitOfWork) -> SaveResultDTO:
        _require_editor(cmd.role)
        project = _get_project_or_raise(uow, cmd.project_id)
        working = project.snapshot()
        working.priority = Priority(cmd.priority)
        records = _save_snapshot(
            uow, project, working, [], cmd.changed_by or settings.default_actor
        )
        return SaveResultDTO(
            project=_Assembler.project(project),
            changes=[_Assembler.change(r) for r in records],
        )


@dataclass
class CalculateStageDatesCommand:
    project_id: uuid.UUID
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    weights: Optional[Dict[str, float]] = None


class CalculateStageDatesUseCase:
    """
    Preview of the phase date allocator for a stored project.  Optional
    overrides for the project range and per-stage weights (by stage name)
    let a form show the outcome before anything is saved.  Each stage also
    carries its planned split into milestone slices.
    """

    def execute(self, cmd: CalculateStageDatesCommand, uow: AbstractUnitOfWork) -> List[StagePlanDTO]:
        project = _get_project_or_raise(uow, cmd.project_id)
        snapshot = project.snapshot()
        start = cmd.start_date or snapshot.start_date
        end = cmd.end_date or snapshot.end_date
        for stage in snapshot.stages:
            if cmd.weights and stage.name in cmd.weights:
                stage.weight = cmd.weights[stage.name]
        _project_svc.validate_weights(snapshot.stages)

        if not _schedule_svc.validate_date_range(start, end):
            raise ApplicationError(
                "Planned Start Date and Planned End Date must both be set, "
                "with the start on or before the end."
            )
        planned = _schedule_svc.allocate(start, end, snapshot.stages)
        return [
            StagePlanDTO(
                name=s.name,
                weight=s.weight,
                start_date=s.start_date,
                end_date=s.end_date,
                days=_day_span(s.start_date, s.end_date),
                milestone_ranges=[
                    MilestoneRangeDTO(r.start, r.end, r.days, r.percentage) if r else None
                    for r in _schedule_svc.milestone_ranges(s)
                ],
            )
            for s in planned
        ]


def _day_span(start: str, end: str) -> Optional[int]:
    if not _schedule_svc.validate_date_range(start, end):
        return None
    return (datetime.fromisoformat(end) - datetime.fromisoformat(start)).days + 1


# ===========================================================================
# USE CASES: CHANGE LOG
# ===========================================================================

class GetProjectLogsUseCase:
    def execute(
        self,
        project_id: uuid.UUID,
        uow: AbstractUnitOfWork,
        limit: Optional[int] = None,
    ) -> List[ProjectLogDTO]:
        """Most recent first, capped at the configured log limit."""
        project = _get_project_or_raise(uow, project_id)
        entries = uow.project_logs.list_for_project(project.id, limit or settings.log_limit)
        return [_Assembler.log_entry(e, project.project_name) for e in entries]


# ===========================================================================
# USE CASES: DASHBOARD
# ===========================================================================

class GetDashboardUseCase:
    def execute(self, uow: AbstractUnitOfWork) -> DashboardDTO:
        return DashboardDTO(**_dashboard_svc.stats(uow.projects.list_all()))


class GetDepartmentBreakdownUseCase:
    def execute(self, uow: AbstractUnitOfWork) -> List[DepartmentRowDTO]:
        rows = _dashboard_svc.department_breakdown(uow.projects.list_all())
        return [DepartmentRowDTO(**row) for row in rows]
