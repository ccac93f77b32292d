"""
service.py

Service layer for the Project Status Tracker.

Responsibilities
----------------
Each service class encapsulates the business logic for its domain.
Services receive and return domain model instances (from model.py).
No persistence is handled here; callers are responsible for storing
and retrieving models via a repository layer of their choosing.

Services
--------
- ScheduleService    – Phase date allocation across weighted stages,
                       milestone sub-ranges, date range validation
- ChangeLogService   – Change diff / audit log builder, log value formatting
- ProjectService     – Project creation, weight validation, progress and
                       status summaries, project code sequence
- DashboardService   – Dashboard counters, filtering and department breakdown

Design notes
------------
- ScheduleService.allocate and ChangeLogService.diff are pure: they never
  mutate their arguments and never raise on incomplete or malformed input.
  "Not enough information yet" is reported as an unchanged result.
- Every other business rule violation raises a ValueError with a
  descriptive message.
- Dates travel as ISO-8601 strings (YYYY-MM-DD); "" means not set.
"""

from __future__ import annotations

import copy
import logging
import math
import re
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union

from model import (
    DELETED_VALUE,
    EMPTY_VALUE,
    PROJECT_LEVEL,
    ChangeRecord,
    OverallStatus,
    Priority,
    Project,
    ProjectLogEntry,
    ProjectSnapshot,
    ProjectStatus,
    Stage,
    StageStatus,
    default_stages,
)

log = logging.getLogger(__name__)

DateLike = Union[date, str, None]


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_date(value: DateLike) -> Optional[date]:
    """Return a date for a date object or ISO string; None when empty or unparseable."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value:
        return None
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        return None


def parse_weight(value) -> float:
    """Weights arrive as numbers or numeric strings; anything else counts as 0."""
    if value is None or value == "":
        return 0.0
    try:
        number = float(str(value).replace("%", "").strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        return 0.0
    # NaN and infinities count as 0 too
    return number if math.isfinite(number) else 0.0


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _raw(value) -> str:
    """Underlying comparable value of a text / enum / date field."""
    if value is None:
        return ""
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


def format_weight(weight) -> str:
    """50 -> '50%', 12.5 -> '12.5%'."""
    number = parse_weight(weight)
    text = str(int(number)) if number.is_integer() else repr(number)
    return f"{text}%"


# ---------------------------------------------------------------------------
# ScheduleService
# ---------------------------------------------------------------------------

# Default split of a stage into five equal milestones
DEVELOPMENT_MILESTONE_SPLIT: Tuple[float, ...] = (20, 20, 20, 20, 20)


@dataclass
class MilestoneRange:
    """Planned sub-range of a stage belonging to one milestone slice."""
    start: str
    end: str
    days: int
    percentage: float


class ScheduleService:
    """
    Calendar arithmetic for stage planning.

    The phase date allocator partitions a project's overall range into
    contiguous, gapless stage ranges proportional to stage weight.
    """

    def validate_date_range(self, start: DateLike, end: DateLike) -> bool:
        """True when both dates are present, parseable and start <= end."""
        start_d = _parse_date(start)
        end_d = _parse_date(end)
        return start_d is not None and end_d is not None and start_d <= end_d

    def allocate(
        self,
        overall_start: DateLike,
        overall_end: DateLike,
        stages: List[Stage],
    ) -> List[Stage]:
        """
        Distribute [overall_start, overall_end] (inclusive) across `stages`.

        Each stage first gets floor(weight / total_weight * total_days) days,
        never fewer than one.  Days left over by the flooring go one each to
        the heaviest stages (ties keep their original order).  Stages are
        then laid out back to back, each end clamped to the overall end, and
        the last stage always ends exactly on the overall end date.

        Returns new Stage copies with ISO start_date / end_date set.  When the
        range is missing or invalid, there are no stages, or the total weight
        is zero, the input list is returned unchanged.
        """
        if not overall_start or not overall_end or not stages:
            return stages

        start = _parse_date(overall_start)
        end = _parse_date(overall_end)
        if start is None or end is None or start > end:
            log.warning(
                "Invalid date range %r .. %r; stage dates left unchanged.",
                overall_start,
                overall_end,
            )
            return stages

        total_days = (end - start).days + 1
        weights = [parse_weight(stage.weight) for stage in stages]
        total_weight = sum(weights)
        if total_weight == 0:
            log.warning("Total stage weight is zero; stage dates left unchanged.")
            return stages

        # First pass: floor, at least one day per stage
        allocation = [
            max(1, math.floor(weight / total_weight * total_days)) for weight in weights
        ]

        # Leftover days go to the heaviest stages first
        remaining = total_days - sum(allocation)
        if remaining > 0:
            by_weight = sorted(range(len(stages)), key=lambda i: -weights[i])
            for index in by_weight[:remaining]:
                allocation[index] += 1

        # Second pass: lay the stages out back to back
        updated: List[Stage] = []
        current = start
        for stage, days in zip(stages, allocation):
            stage_end = min(current + timedelta(days=days - 1), end)
            placed = copy.deepcopy(stage)
            placed.start_date = current.isoformat()
            placed.end_date = stage_end.isoformat()
            updated.append(placed)
            current = stage_end + timedelta(days=1)

        updated[-1].end_date = end.isoformat()
        return updated

    def milestone_ranges(
        self,
        stage: Stage,
        percentages: Sequence[float] = DEVELOPMENT_MILESTONE_SPLIT,
    ) -> List[Optional[MilestoneRange]]:
        """
        Split a stage's planned range into consecutive milestone slices.

        Every slice but the last gets round(total_days * pct / 100) days,
        capped so later slices keep at least a day each where possible; the
        last slice takes whatever is left and ends on the stage end date.
        Returns None for every slice when the stage has no valid range.
        """
        start = _parse_date(stage.start_date)
        end = _parse_date(stage.end_date)
        if start is None or end is None or end < start:
            return [None for _ in percentages]

        total_days = (end - start).days + 1
        count = len(percentages)
        used = 0
        ranges: List[Optional[MilestoneRange]] = []

        for idx, pct in enumerate(percentages):
            is_last = idx == count - 1
            slices_after = count - idx - 1
            remaining_days = total_days - used

            if is_last:
                days = max(0, remaining_days)
            else:
                days = max(0, _round_half_up(total_days * (pct / 100)))
                if days > remaining_days:
                    days = max(0, remaining_days - slices_after)
                if days == 0 and remaining_days > slices_after:
                    days = 1

            slice_start = start + timedelta(days=used)
            slice_end = slice_start + timedelta(days=days - 1) if days > 0 else slice_start
            if slice_end > end:
                slice_end = end
                days = (slice_end - slice_start).days + 1

            used += max(days, 0)
            if is_last:
                slice_end = end
                used = total_days
                days = max(days, (slice_end - slice_start).days + 1)

            ranges.append(
                MilestoneRange(
                    start=slice_start.isoformat(),
                    end=slice_end.isoformat() if days > 0 else slice_start.isoformat(),
                    days=max(days, 0),
                    percentage=pct,
                )
            )
        return ranges


# ---------------------------------------------------------------------------
# ChangeLogService
# ---------------------------------------------------------------------------

class FieldScope(str, Enum):
    PROJECT = "project"
    STAGE = "stage"
    MILESTONE = "milestone"


class TrackedField(Enum):
    """
    Every field the change log knows about.

    Value: (scope, attribute, display label, compared by snapshot diffing).
    Fields that are not snapshot-compared only reach the log through
    incremental records (weight edits and allocator output).
    """
    PROJECT_START_DATE = (FieldScope.PROJECT, "start_date", "Planned Start Date", True)
    PROJECT_END_DATE = (FieldScope.PROJECT, "end_date", "Planned End Date", True)
    OVERALL_PROJECT_SUMMARY = (FieldScope.PROJECT, "overall_project_summary", "Overall Project Summary", True)
    PRIORITY = (FieldScope.PROJECT, "priority", "Priority", True)

    STATUS = (FieldScope.STAGE, "status", "Status", True)
    STAGE_OWNER = (FieldScope.STAGE, "stage_owner", "Stage Owner", True)
    ACTUAL_START_DATE = (FieldScope.STAGE, "actual_start_date", "Actual Start Date", True)
    ACTUAL_END_DATE = (FieldScope.STAGE, "actual_end_date", "Actual End Date", True)
    REMARKS = (FieldScope.STAGE, "remarks", "Remarks", True)
    WEIGHT = (FieldScope.STAGE, "weight", "Weight", False)
    STAGE_START_DATE = (FieldScope.STAGE, "start_date", "Planned Start Date", False)
    STAGE_END_DATE = (FieldScope.STAGE, "end_date", "Planned End Date", False)

    MILESTONE_STAGE_NAME = (FieldScope.MILESTONE, "stage_name", "Milestone Stage Name", True)
    MILESTONE_OWNER = (FieldScope.MILESTONE, "owner", "Milestone Owner", True)
    MILESTONE_REMARKS = (FieldScope.MILESTONE, "remarks", "Milestone Remarks", True)

    def __init__(self, scope: FieldScope, attribute: str, label: str, snapshot_compared: bool):
        self.scope = scope
        self.attribute = attribute
        self.label = label
        self.snapshot_compared = snapshot_compared

    @classmethod
    def for_scope(cls, scope: FieldScope) -> List["TrackedField"]:
        return [f for f in cls if f.scope == scope]

    @classmethod
    def lookup(cls, scope: FieldScope, key: str) -> Optional["TrackedField"]:
        """Find a field of `scope` by attribute name or display label."""
        for f in cls.for_scope(scope):
            if key in (f.attribute, f.label):
                return f
        return None


MILESTONE_DELETED = "Milestone Deleted"
MILESTONE_ADDED = "Milestone Added"

# Tracked field whose stage or milestone no longer exists
_UNTRACEABLE = object()

_ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")


def milestone_location(stage_name: str, milestone_title: str) -> str:
    return f"{stage_name} - {milestone_title}"


def _first_by_name(stages: Iterable[Stage]) -> Dict[str, Stage]:
    """Index stages by name; the first stage carrying a name wins."""
    index: Dict[str, Stage] = {}
    for stage in stages:
        index.setdefault(stage.name, stage)
    return index


class ChangeLogService:
    """
    Builds the audit trail of an edit session.

    Changes reach the log two ways: incremental records appended while the
    user edits, and a full diff of the initial vs. working snapshot at save
    time.  diff() merges both into one deduplicated batch.
    """

    # --- Value handling -----------------------------------------------------

    @staticmethod
    def display(tracked: TrackedField, value) -> str:
        """Value as written to the log ("(empty)" for empty values)."""
        if tracked is TrackedField.WEIGHT:
            return format_weight(value)
        raw = _raw(value)
        return raw if raw != "" else EMPTY_VALUE

    @staticmethod
    def same(tracked: TrackedField, before, after) -> bool:
        """Compare underlying values, not display strings."""
        if tracked is TrackedField.WEIGHT:
            return parse_weight(before) == parse_weight(after)
        return _raw(before) == _raw(after)

    def _record(self, tracked: TrackedField, before, after, location: str) -> ChangeRecord:
        return ChangeRecord(
            field_name=tracked.label,
            previous_value=self.display(tracked, before),
            new_value=self.display(tracked, after),
            stage_name=location,
        )

    # --- Diff ---------------------------------------------------------------

    def diff(
        self,
        initial: ProjectSnapshot,
        working: ProjectSnapshot,
        incremental_changes: Sequence[ChangeRecord] = (),
    ) -> List[ChangeRecord]:
        """
        Merge incremental records with a snapshot diff.

        Incremental records come first.  Each one that can be traced back to a
        tracked field is re-checked against the snapshots: it is dropped when
        the field is back at its initial value or its stage or milestone is
        gone, otherwise its values are taken from the snapshots.  Records
        with a label the log does not track pass through as given.

        The snapshot diff then adds project fields, stage fields (stages
        matched by name) and milestone fields (matched by id within the
        stage), including deleted and added milestones.  Duplicates by
        (field, location, previous, new) collapse to the first occurrence.
        """
        batch: List[ChangeRecord] = []
        seen: Set[Tuple[str, str, str, str]] = set()

        def emit(record: ChangeRecord) -> None:
            if record.key not in seen:
                seen.add(record.key)
                batch.append(record)

        for pending in incremental_changes:
            resolved = self._resolve(pending, initial, working)
            if resolved is None:
                emit(pending)
                continue
            if resolved is _UNTRACEABLE:
                continue
            tracked, before, after = resolved
            if not self.same(tracked, before, after):
                emit(self._record(tracked, before, after, pending.stage_name))

        for tracked in TrackedField.for_scope(FieldScope.PROJECT):
            before = getattr(initial, tracked.attribute, "")
            after = getattr(working, tracked.attribute, "")
            if not self.same(tracked, before, after):
                emit(self._record(tracked, before, after, PROJECT_LEVEL))

        initial_stages = _first_by_name(initial.stages)
        for stage in working.stages:
            before_stage = initial_stages.get(stage.name)
            if before_stage is None:
                continue
            for tracked in TrackedField.for_scope(FieldScope.STAGE):
                if not tracked.snapshot_compared:
                    continue
                before = getattr(before_stage, tracked.attribute, "")
                after = getattr(stage, tracked.attribute, "")
                if not self.same(tracked, before, after):
                    emit(self._record(tracked, before, after, stage.name))
            for record in self._diff_milestones(before_stage, stage):
                emit(record)

        return batch

    def _diff_milestones(self, before_stage: Stage, after_stage: Stage) -> List[ChangeRecord]:
        records: List[ChangeRecord] = []
        before_by_id = {m.id: m for m in before_stage.milestones}
        after_ids = {m.id for m in after_stage.milestones}

        for milestone in after_stage.milestones:
            location = milestone_location(after_stage.name, milestone.title)
            previous = before_by_id.get(milestone.id)
            if previous is None:
                records.append(
                    ChangeRecord(MILESTONE_ADDED, EMPTY_VALUE, milestone.title or EMPTY_VALUE, location)
                )
                continue
            for tracked in TrackedField.for_scope(FieldScope.MILESTONE):
                before = getattr(previous, tracked.attribute, "")
                after = getattr(milestone, tracked.attribute, "")
                if not self.same(tracked, before, after):
                    records.append(self._record(tracked, before, after, location))

        for milestone in before_stage.milestones:
            if milestone.id not in after_ids:
                records.append(
                    ChangeRecord(
                        MILESTONE_DELETED,
                        milestone.title or EMPTY_VALUE,
                        DELETED_VALUE,
                        milestone_location(before_stage.name, milestone.title),
                    )
                )
        return records

    def _resolve(
        self,
        record: ChangeRecord,
        initial: ProjectSnapshot,
        working: ProjectSnapshot,
    ):
        """
        Trace an incremental record back to (field, initial value, working value).

        Returns None for a label the log does not track, and _UNTRACEABLE for
        a tracked field whose stage or milestone is no longer in the snapshots.
        """
        if record.stage_name == PROJECT_LEVEL:
            tracked = TrackedField.lookup(FieldScope.PROJECT, record.field_name)
            if tracked is None:
                return None
            return (
                tracked,
                getattr(initial, tracked.attribute, ""),
                getattr(working, tracked.attribute, ""),
            )

        working_stages = _first_by_name(working.stages)
        initial_stages = _first_by_name(initial.stages)

        stage_field = TrackedField.lookup(FieldScope.STAGE, record.field_name)
        if stage_field is not None and record.stage_name in working_stages:
            before_stage = initial_stages.get(record.stage_name)
            if before_stage is None:
                return _UNTRACEABLE
            return (
                stage_field,
                getattr(before_stage, stage_field.attribute, ""),
                getattr(working_stages[record.stage_name], stage_field.attribute, ""),
            )

        milestone_field = TrackedField.lookup(FieldScope.MILESTONE, record.field_name)
        if milestone_field is not None:
            for stage in working.stages:
                for milestone in stage.milestones:
                    if milestone_location(stage.name, milestone.title) != record.stage_name:
                        continue
                    before_stage = initial_stages.get(stage.name)
                    previous = None
                    if before_stage is not None:
                        previous = next(
                            (m for m in before_stage.milestones if m.id == milestone.id), None
                        )
                    before = getattr(previous, milestone_field.attribute, "") if previous else ""
                    return milestone_field, before, getattr(milestone, milestone_field.attribute, "")

        if stage_field is not None or milestone_field is not None:
            return _UNTRACEABLE
        return None

    # --- Log hand-off -------------------------------------------------------

    def stamp(
        self,
        records: Sequence[ChangeRecord],
        project_id: uuid.UUID,
        changed_by: str = "System",
        changed_at: Optional[datetime] = None,
    ) -> List[ProjectLogEntry]:
        """Turn a change batch into log entries attributed to one actor and time."""
        when = changed_at or _utcnow()
        return [
            ProjectLogEntry(
                project_id=project_id,
                stage_name=record.stage_name or PROJECT_LEVEL,
                field_changed=record.field_name,
                old_value=record.previous_value,
                new_value=record.new_value,
                changed_at=when,
                changed_by=changed_by or "System",
            )
            for record in records
        ]

    @staticmethod
    def format_log_value(value: Optional[str]) -> str:
        """Empty -> "(empty)"; YYYY-MM-DD -> DD-MM-YYYY; anything else as is."""
        if not value or value == EMPTY_VALUE:
            return EMPTY_VALUE
        match = _ISO_DATE.match(value)
        if match:
            year, month, day = match.groups()
            return f"{day}-{month}-{year}"
        return value

    def changed_field_keys(
        self,
        records: Iterable[ChangeRecord],
        stages: Sequence[Stage],
    ) -> Set[str]:
        """
        Keys of the form fields touched by a saved batch, used to highlight
        them: "<stage index>-<attribute>" or "project-<attribute>".
        """
        keys: Set[str] = set()
        for record in records:
            if record.stage_name == PROJECT_LEVEL:
                tracked = TrackedField.lookup(FieldScope.PROJECT, record.field_name)
                if tracked is not None:
                    keys.add(f"project-{tracked.attribute}")
                continue
            index = next(
                (i for i, s in enumerate(stages) if s.name == record.stage_name), None
            )
            if index is None:
                continue
            tracked = TrackedField.lookup(FieldScope.STAGE, record.field_name)
            attribute = tracked.attribute if tracked else record.field_name
            keys.add(f"{index}-{attribute}")
        return keys


# ---------------------------------------------------------------------------
# ProjectService
# ---------------------------------------------------------------------------

_PROJECT_CODE = re.compile(r"^PRJ(\d+)$")


class ProjectService:
    """
    Manages project creation and the summary figures shown for a project.
    """

    def next_project_id(self, existing_ids: Iterable[str]) -> str:
        """PRJ001 for the first project, otherwise highest number + 1."""
        numbers = [
            int(match.group(1))
            for match in (_PROJECT_CODE.match(code or "") for code in existing_ids)
            if match
        ]
        if not numbers:
            return "PRJ001"
        return f"PRJ{max(numbers) + 1:03d}"

    def create_project(
        self,
        project_id: str,
        project_name: str,
        department: str,
        tech_department: str,
        project_owner: str,
        business_owner: str,
        objectives: str = "",
        start_date: str = "",
        end_date: str = "",
        project_status: Optional[str] = None,
        priority: Priority = Priority.P3,
        overall_project_summary: str = "",
        contacts: Optional[Dict[str, str]] = None,
    ) -> Project:
        """
        Create and return a new Project (unsaved) seeded with the default
        stage template.  `contacts` may carry the owner e-mail / phone fields.
        """
        required = {
            "project_name": project_name,
            "department": department,
            "tech_department": tech_department,
            "project_owner": project_owner,
            "business_owner": business_owner,
        }
        missing = [name for name, value in required.items() if not (value or "").strip()]
        if missing:
            raise ValueError(f"Missing required field(s): {', '.join(missing)}.")

        for label, value in (("start_date", start_date), ("end_date", end_date)):
            if value and _parse_date(value) is None:
                raise ValueError(f"{label} must be an ISO date (YYYY-MM-DD).")
        if start_date and end_date and _parse_date(end_date) < _parse_date(start_date):
            raise ValueError("end_date must not be before start_date.")

        try:
            status = ProjectStatus(project_status) if project_status else ProjectStatus.WORK_IN_PROGRESS
        except ValueError:
            status = ProjectStatus.WORK_IN_PROGRESS

        project = Project(
            project_id=project_id,
            project_name=project_name.strip(),
            objectives=objectives,
            department=department.strip(),
            tech_department=tech_department.strip(),
            project_status=status,
            project_owner=project_owner.strip(),
            business_owner=business_owner.strip(),
            start_date=start_date or "",
            end_date=end_date or "",
            priority=Priority(priority),
            overall_project_summary=overall_project_summary,
            stages=default_stages(),
            created_at=_utcnow(),
            updated_at=_utcnow(),
        )
        for name, value in (contacts or {}).items():
            if hasattr(project, name) and name.endswith(("_email", "_contact")):
                setattr(project, name, value or "")
        return project

    def validate_weights(self, stages: Sequence[Stage]) -> None:
        """Raise ValueError for a non-finite or negative weight, or a total above 100."""
        for stage in stages:
            if isinstance(stage.weight, float) and not math.isfinite(stage.weight):
                raise ValueError(f"Stage '{stage.name}' weight must be a number.")
            if parse_weight(stage.weight) < 0:
                raise ValueError(f"Stage '{stage.name}' has a negative weight.")
        total = sum(parse_weight(stage.weight) for stage in stages)
        if total > 100:
            raise ValueError(f"Total stage weight cannot exceed 100% (got {format_weight(total)}).")

    def progress(self, stages: Sequence[Stage]) -> int:
        """Completed weight as a whole percentage of total weight."""
        if not stages:
            return 0
        total_weight = sum(parse_weight(s.weight) for s in stages)
        completed_weight = sum(
            parse_weight(s.weight) for s in stages if s.status == StageStatus.COMPLETED
        )
        if total_weight <= 0:
            return 0
        return _round_half_up(completed_weight / total_weight * 100)

    def status_summary(self, stages: Sequence[Stage]) -> str:
        completed = sum(1 for s in stages if s.status == StageStatus.COMPLETED)
        return f"{completed}/{len(stages)} Completed"

    def overall_status(self, stages: Sequence[Stage]) -> OverallStatus:
        """
        Delayed beats In Progress; a project is Completed only when every
        stage is (which includes a project without stages).
        """
        statuses = [StageStatus(s.status) for s in stages]
        if StageStatus.DELAYED in statuses:
            return OverallStatus.DELAYED
        if StageStatus.IN_PROGRESS in statuses:
            return OverallStatus.IN_PROGRESS
        if all(s == StageStatus.COMPLETED for s in statuses):
            return OverallStatus.COMPLETED
        return OverallStatus.YET_TO_START


# ---------------------------------------------------------------------------
# DashboardService
# ---------------------------------------------------------------------------

class DashboardService:
    """
    Landing page figures: counters per overall status, filtering and the
    department / owner breakdown.
    """

    FILTERS: Dict[str, Optional[OverallStatus]] = {
        "all": None,
        "completed": OverallStatus.COMPLETED,
        "inProgress": OverallStatus.IN_PROGRESS,
        "delayed": OverallStatus.DELAYED,
    }

    def __init__(self, project_service: Optional[ProjectService] = None):
        self._projects = project_service or ProjectService()

    def stats(self, projects: Sequence[Project]) -> Dict[str, int]:
        counts = {status: 0 for status in OverallStatus}
        for project in projects:
            counts[self._projects.overall_status(project.stages)] += 1
        return {
            "total": len(projects),
            "completed": counts[OverallStatus.COMPLETED],
            "in_progress": counts[OverallStatus.IN_PROGRESS],
            "delayed": counts[OverallStatus.DELAYED],
            "yet_to_start": counts[OverallStatus.YET_TO_START],
        }

    def filter_projects(
        self,
        projects: Sequence[Project],
        status_filter: str = "all",
        search: str = "",
    ) -> List[Project]:
        """Filter by overall status, then by case-insensitive code / name search."""
        if status_filter not in self.FILTERS:
            raise ValueError(f"status filter must be one of: {sorted(self.FILTERS)}")
        wanted = self.FILTERS[status_filter]
        selected = [
            p for p in projects
            if wanted is None or self._projects.overall_status(p.stages) == wanted
        ]
        if search:
            needle = search.lower()
            selected = [
                p for p in selected
                if needle in p.project_id.lower() or needle in p.project_name.lower()
            ]
        return selected

    def department_breakdown(self, projects: Sequence[Project]) -> List[Dict]:
        """
        Project counts per department and owner, sorted by department then
        owner.  Projects without a department or owner are left out.
        """
        counts: Dict[str, Dict[str, int]] = {}
        for project in projects:
            if not project.department or not project.project_owner:
                continue
            department = project.department.strip()
            owner = project.project_owner.strip()
            owners = counts.setdefault(department, {})
            owners[owner] = owners.get(owner, 0) + 1

        rows: List[Dict] = []
        for department in sorted(counts):
            for position, owner in enumerate(sorted(counts[department])):
                rows.append(
                    {
                        "department": department,
                        "owner": owner,
                        "project_count": counts[department][owner],
                        "is_first_in_department": position == 0,
                    }
                )
        return rows
