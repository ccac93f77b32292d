"""
session.py

Edit session for the project status form.

An EditSession is an explicit value object holding everything one edit of
one project needs: the immutable initial snapshot captured when the project
is opened, the working snapshot mutated by every edit, the pending
(incremental) change records and the small amount of view state the form
keeps (expanded stages, highlighted fields).

Sessions are never shared: each caller opens its own, mutates it one edit
at a time and discards it after saving or cancelling.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Set

from model import (
    PROJECT_LEVEL,
    ChangeRecord,
    Milestone,
    Priority,
    Project,
    ProjectSnapshot,
    Stage,
    StageStatus,
)
from service import (
    ChangeLogService,
    FieldScope,
    ProjectService,
    ScheduleService,
    TrackedField,
    milestone_location,
    parse_weight,
)

log = logging.getLogger(__name__)

_schedule_svc = ScheduleService()
_change_log_svc = ChangeLogService()
_project_svc = ProjectService()


@dataclass
class EditSession:
    initial: ProjectSnapshot
    working: ProjectSnapshot
    pending: List[ChangeRecord] = field(default_factory=list)
    expanded_stages: Set[int] = field(default_factory=set)
    highlighted_fields: Set[str] = field(default_factory=set)

    @classmethod
    def open(cls, project: Project) -> "EditSession":
        snapshot = project.snapshot()
        return cls(initial=snapshot.copy(), working=snapshot.copy())

    # --- Pending records ----------------------------------------------------

    def _track(self, label: str, previous: str, new: str, location: str = PROJECT_LEVEL) -> None:
        """
        Add a pending record, or update the new value of the pending record
        already held for the same field and location.
        """
        for i, existing in enumerate(self.pending):
            if existing.field_name == label and existing.stage_name == location:
                self.pending[i] = ChangeRecord(label, existing.previous_value, new, location)
                return
        self.pending.append(ChangeRecord(label, previous, new, location))

    def _untrack(self, label: str, location: str) -> None:
        self.pending = [
            r for r in self.pending
            if not (r.field_name == label and r.stage_name == location)
        ]

    def _track_or_untrack(self, tracked: TrackedField, before, after, location: str) -> None:
        if _change_log_svc.same(tracked, before, after):
            self._untrack(tracked.label, location)
        else:
            self._track(
                tracked.label,
                _change_log_svc.display(tracked, before),
                _change_log_svc.display(tracked, after),
                location,
            )

    def _initial_stage(self, index: int) -> Stage:
        """Initial counterpart of working stage `index`, matched by name."""
        name = self.working.stages[index].name
        for stage in self.initial.stages:
            if stage.name == name:
                return stage
        return self.working.stages[index]

    # --- Project fields -----------------------------------------------------

    def set_project_field(self, attribute: str, value) -> None:
        """Edit start_date, end_date, overall_project_summary or priority."""
        tracked = TrackedField.lookup(FieldScope.PROJECT, attribute)
        if tracked is None:
            raise ValueError(f"'{attribute}' is not an editable project field.")
        if tracked is TrackedField.PRIORITY:
            value = Priority(value)
        setattr(self.working, tracked.attribute, value if value is not None else "")

    # --- Stage fields -------------------------------------------------------

    def update_stage_field(self, index: int, attribute: str, value) -> None:
        """Edit status, stage_owner, actual_start_date, actual_end_date or remarks."""
        tracked = TrackedField.lookup(FieldScope.STAGE, attribute)
        if tracked is None or not tracked.snapshot_compared:
            raise ValueError(f"'{attribute}' is not an editable stage field.")
        if tracked is TrackedField.STATUS:
            value = StageStatus(value)

        stage = self.working.stages[index]
        setattr(stage, tracked.attribute, value if value is not None else "")
        before = getattr(self._initial_stage(index), tracked.attribute, "")
        self._track_or_untrack(tracked, before, value, stage.name)

    def update_stage_weight(self, index: int, weight) -> None:
        """
        Change a stage weight.  Rejects negative or non-numeric values and a
        project total above 100.  When the project dates form a valid range
        all planned stage dates are recalculated and the moved dates recorded.
        """
        try:
            numeric = float(str(weight).replace("%", "").strip())
        except ValueError:
            raise ValueError(f"Weight must be a number, got {weight!r}.") from None
        if not math.isfinite(numeric):
            raise ValueError(f"Weight must be a number, got {weight!r}.")
        if numeric < 0:
            raise ValueError("Weight must not be negative.")

        others = sum(
            parse_weight(s.weight) for i, s in enumerate(self.working.stages) if i != index
        )
        if others + numeric > 100:
            raise ValueError("Total stage weight cannot exceed 100%.")

        stage = self.working.stages[index]
        stage.weight = numeric
        self._track_or_untrack(
            TrackedField.WEIGHT, self._initial_stage(index).weight, numeric, stage.name
        )

        if _schedule_svc.validate_date_range(self.working.start_date, self.working.end_date):
            self._reallocate()

    def auto_calculate_dates(self) -> bool:
        """
        Recalculate every planned stage date from the project range and the
        weights.  Returns True when at least one planned date moved.
        """
        if not self.working.start_date or not self.working.end_date:
            raise ValueError("Enter both Planned Start Date and Planned End Date first.")
        if not _schedule_svc.validate_date_range(self.working.start_date, self.working.end_date):
            raise ValueError("Invalid date range: start date must be on or before end date.")
        if not self.working.stages:
            raise ValueError("No stages found to calculate dates for.")
        return self._reallocate()

    def _reallocate(self) -> bool:
        calculated = _schedule_svc.allocate(
            self.working.start_date, self.working.end_date, self.working.stages
        )
        moved = False
        for index, stage in enumerate(calculated):
            current = self.working.stages[index]
            if (current.start_date, current.end_date) != (stage.start_date, stage.end_date):
                moved = True
            initial = self._initial_stage(index)
            for tracked in (TrackedField.STAGE_START_DATE, TrackedField.STAGE_END_DATE):
                self._track_or_untrack(
                    tracked,
                    getattr(initial, tracked.attribute),
                    getattr(stage, tracked.attribute),
                    stage.name,
                )
        self.working.stages = calculated
        log.debug("Reallocated stage dates (moved=%s).", moved)
        return moved

    def toggle_stage_expansion(self, index: int) -> None:
        if index in self.expanded_stages:
            self.expanded_stages.discard(index)
        else:
            self.expanded_stages.add(index)

    # --- Milestones ---------------------------------------------------------

    def _find_milestone(self, stages: List[Stage], stage_name: str, milestone_id: int) -> Optional[Milestone]:
        for stage in stages:
            if stage.name == stage_name:
                return next((m for m in stage.milestones if m.id == milestone_id), None)
        return None

    def add_milestone(
        self,
        stage_index: int,
        title: str,
        stage_name: str = "",
        owner: str = "",
        remarks: str = "",
    ) -> Milestone:
        """Append a milestone with the next free id of its stage."""
        stage = self.working.stages[stage_index]
        next_id = max((m.id for m in stage.milestones), default=0) + 1
        milestone = Milestone(id=next_id, title=title, stage_name=stage_name, owner=owner, remarks=remarks)
        stage.milestones.append(milestone)
        return milestone

    def update_milestone_field(self, stage_index: int, milestone_id: int, attribute: str, value) -> None:
        """Edit a milestone's stage_name, owner or remarks."""
        tracked = TrackedField.lookup(FieldScope.MILESTONE, attribute)
        if tracked is None:
            raise ValueError(f"'{attribute}' is not an editable milestone field.")
        stage = self.working.stages[stage_index]
        milestone = next((m for m in stage.milestones if m.id == milestone_id), None)
        if milestone is None:
            raise ValueError(f"Stage '{stage.name}' has no milestone {milestone_id}.")

        setattr(milestone, tracked.attribute, value or "")
        previous = self._find_milestone(self.initial.stages, stage.name, milestone_id)
        before = getattr(previous, tracked.attribute, "") if previous else ""
        self._track_or_untrack(
            tracked, before, value, milestone_location(stage.name, milestone.title)
        )

    def remove_milestone(self, stage_index: int, milestone_id: int) -> None:
        """Drop a milestone; its pending field records go with it."""
        stage = self.working.stages[stage_index]
        milestone = next((m for m in stage.milestones if m.id == milestone_id), None)
        if milestone is None:
            return
        stage.milestones.remove(milestone)
        location = milestone_location(stage.name, milestone.title)
        self.pending = [r for r in self.pending if r.stage_name != location]

    # --- Save ---------------------------------------------------------------

    def collect_changes(self) -> List[ChangeRecord]:
        return _change_log_svc.diff(self.initial, self.working, self.pending)

    def validate(self) -> None:
        _project_svc.validate_weights(self.working.stages)

    def mark_saved(self, records: List[ChangeRecord]) -> None:
        """The batch is persisted: the working state becomes the new baseline."""
        self.highlighted_fields = _change_log_svc.changed_field_keys(records, self.working.stages)
        self.initial = self.working.copy()
        self.pending = []
