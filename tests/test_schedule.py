"""Tests for phase date allocation, date range validation and milestone slices."""

from datetime import date, timedelta

from model import Stage, default_stages
from service import ScheduleService

svc = ScheduleService()


def _stages(*weights):
    return [Stage(name=f"Stage {i + 1}", weight=w) for i, w in enumerate(weights)]


def _ranges(stages):
    return [(s.start_date, s.end_date) for s in stages]


class TestAllocate:
    def test_proportional_split(self):
        result = svc.allocate("2025-01-01", "2025-01-10", _stages(50, 30, 20))
        assert _ranges(result) == [
            ("2025-01-01", "2025-01-05"),
            ("2025-01-06", "2025-01-08"),
            ("2025-01-09", "2025-01-10"),
        ]

    def test_remainder_goes_to_heaviest_stage(self):
        result = svc.allocate("2025-01-01", "2025-01-10", _stages(34, 33, 33))
        assert _ranges(result) == [
            ("2025-01-01", "2025-01-04"),
            ("2025-01-05", "2025-01-07"),
            ("2025-01-08", "2025-01-10"),
        ]

    def test_remainder_ties_keep_original_order(self):
        result = svc.allocate("2025-01-01", "2025-01-07", _stages(1, 1, 1))
        assert _ranges(result) == [
            ("2025-01-01", "2025-01-03"),
            ("2025-01-04", "2025-01-05"),
            ("2025-01-06", "2025-01-07"),
        ]

    def test_accepts_date_objects(self):
        result = svc.allocate(date(2025, 1, 1), date(2025, 1, 10), _stages(50, 30, 20))
        assert result[0].start_date == "2025-01-01"
        assert result[-1].end_date == "2025-01-10"

    def test_weights_given_as_text(self):
        stages = [Stage(name="A", weight="50"), Stage(name="B", weight="50%")]
        result = svc.allocate("2025-01-01", "2025-01-10", stages)
        assert _ranges(result) == [
            ("2025-01-01", "2025-01-05"),
            ("2025-01-06", "2025-01-10"),
        ]

    def test_zero_weight_stage_still_gets_a_day(self):
        result = svc.allocate("2025-01-01", "2025-01-10", _stages(0, 100))
        assert _ranges(result) == [
            ("2025-01-01", "2025-01-01"),
            ("2025-01-02", "2025-01-10"),
        ]

    def test_nan_weight_counts_as_zero(self):
        result = svc.allocate("2025-01-01", "2025-01-10", _stages(float("nan"), 50))
        assert _ranges(result) == [
            ("2025-01-01", "2025-01-01"),
            ("2025-01-02", "2025-01-10"),
        ]

    def test_default_template_over_hundred_days(self):
        result = svc.allocate("2025-01-01", "2025-04-10", default_stages())
        days = [
            (date.fromisoformat(s.end_date) - date.fromisoformat(s.start_date)).days + 1
            for s in result
        ]
        assert days == [10, 5, 15, 5, 55, 5, 5]

    def test_covers_every_day_exactly_once(self):
        start, end = date(2025, 2, 3), date(2025, 5, 29)
        result = svc.allocate(start, end, _stages(7, 13, 29, 3, 48))

        assert result[0].start_date == start.isoformat()
        assert result[-1].end_date == end.isoformat()
        for previous, current in zip(result, result[1:]):
            expected = date.fromisoformat(previous.end_date) + timedelta(days=1)
            assert current.start_date == expected.isoformat()

    def test_every_stage_gets_at_least_one_day(self):
        result = svc.allocate("2025-01-01", "2025-04-10", _stages(95, 1, 1, 1, 1, 0))
        for stage in result:
            assert stage.start_date <= stage.end_date
        assert result[-1].start_date == result[-1].end_date == "2025-04-10"

    def test_last_stage_forced_to_overall_end(self):
        # More stages than days: the last stage keeps the overall end date
        # even though its computed start lies past it.
        result = svc.allocate("2025-01-01", "2025-01-02", _stages(1, 1, 1))
        assert result[-1].end_date == "2025-01-02"
        assert result[-1].start_date == "2025-01-03"

    def test_is_deterministic(self):
        stages = _stages(12, 40, 8, 40)
        first = svc.allocate("2025-03-01", "2025-06-30", stages)
        second = svc.allocate("2025-03-01", "2025-06-30", stages)
        assert _ranges(first) == _ranges(second)

    def test_does_not_mutate_input(self):
        stages = _stages(50, 50)
        result = svc.allocate("2025-01-01", "2025-01-10", stages)
        assert stages[0].start_date == ""
        assert result[0] is not stages[0]

    def test_keeps_other_stage_fields(self):
        stages = [Stage(name="Build", weight=100, stage_owner="Asha", remarks="on track")]
        result = svc.allocate("2025-01-01", "2025-01-10", stages)
        assert result[0].stage_owner == "Asha"
        assert result[0].remarks == "on track"


class TestAllocateNoOp:
    def test_missing_start(self):
        stages = _stages(50, 50)
        assert svc.allocate("", "2025-01-10", stages) is stages

    def test_missing_end(self):
        stages = _stages(50, 50)
        assert svc.allocate("2025-01-01", None, stages) is stages

    def test_start_after_end(self):
        stages = _stages(50, 50)
        assert svc.allocate("2025-02-01", "2025-01-10", stages) is stages

    def test_unparseable_date(self):
        stages = _stages(50, 50)
        assert svc.allocate("not-a-date", "2025-01-10", stages) is stages

    def test_zero_total_weight(self):
        stages = _stages(0, 0)
        assert svc.allocate("2025-01-01", "2025-01-10", stages) is stages

    def test_no_stages(self):
        assert svc.allocate("2025-01-01", "2025-01-10", []) == []

    def test_non_finite_weights_only(self):
        stages = _stages(float("nan"), float("inf"))
        assert svc.allocate("2025-01-01", "2025-01-10", stages) is stages


class TestValidateDateRange:
    def test_valid(self):
        assert svc.validate_date_range("2025-01-01", "2025-01-10") is True

    def test_same_day(self):
        assert svc.validate_date_range("2025-01-01", "2025-01-01") is True

    def test_reversed(self):
        assert svc.validate_date_range("2025-01-10", "2025-01-01") is False

    def test_missing(self):
        assert svc.validate_date_range("", "2025-01-01") is False

    def test_garbage(self):
        assert svc.validate_date_range("2025-13-45", "2025-12-01") is False


class TestMilestoneRanges:
    def test_even_split(self):
        stage = Stage(name="Build", start_date="2025-01-01", end_date="2025-01-10")
        ranges = svc.milestone_ranges(stage)
        assert [(r.start, r.end, r.days) for r in ranges] == [
            ("2025-01-01", "2025-01-02", 2),
            ("2025-01-03", "2025-01-04", 2),
            ("2025-01-05", "2025-01-06", 2),
            ("2025-01-07", "2025-01-08", 2),
            ("2025-01-09", "2025-01-10", 2),
        ]

    def test_last_slice_takes_the_rest(self):
        stage = Stage(name="Build", start_date="2025-01-01", end_date="2025-01-07")
        ranges = svc.milestone_ranges(stage)
        assert [r.days for r in ranges] == [1, 1, 1, 1, 3]
        assert ranges[-1].start == "2025-01-05"
        assert ranges[-1].end == "2025-01-07"

    def test_custom_percentages(self):
        stage = Stage(name="Build", start_date="2025-01-01", end_date="2025-01-10")
        ranges = svc.milestone_ranges(stage, percentages=(50, 50))
        assert [(r.start, r.end, r.percentage) for r in ranges] == [
            ("2025-01-01", "2025-01-05", 50),
            ("2025-01-06", "2025-01-10", 50),
        ]

    def test_stage_without_dates(self):
        assert svc.milestone_ranges(Stage(name="Build")) == [None] * 5
