"""Tests for week arithmetic and the continuation rule."""

import datetime as dt

from bson import ObjectId

from planner.core.utils import add_weeks, day_of_week, minutes_between, same_day, week_end, week_start
from planner.models.instance import ScheduleInstance
from planner.models.template import RepeatRules, ScheduleTemplate
from planner.services.rollover.weekly_rollover_engine import continuation_reason


def _instance(week: int) -> ScheduleInstance:
    first = dt.datetime(2025, 3, 3)
    start = add_weeks(first, week - 1)
    return ScheduleInstance(
        _id=ObjectId(),
        template_id=ObjectId(),
        learner_id="learner-1",
        assigned_by="pro-1",
        current_week_number=week,
        first_week_start_date=first,
        current_week_start_date=start,
        current_week_end_date=week_end(start),
    )


def _template(max_repetitions=None, end_date=None) -> ScheduleTemplate:
    return ScheduleTemplate(
        _id=ObjectId(),
        owner_id="pro-1",
        name="Plan",
        active_days=[0],
        start_date=dt.datetime(2025, 3, 3),
        end_date=end_date,
        repeat_rules=RepeatRules(max_repetitions=max_repetitions),
    )


class TestWeekBounds:
    def test_week_start_is_monday_midnight(self):
        wednesday = dt.datetime(2025, 3, 5, 15, 30)
        assert week_start(wednesday) == dt.datetime(2025, 3, 3)
        assert day_of_week(week_start(wednesday)) == 0

    def test_week_end_is_sunday_last_millisecond(self):
        end = week_end(dt.datetime(2025, 3, 3, 0, 0))
        assert end == dt.datetime(2025, 3, 9, 23, 59, 59, 999000)
        assert day_of_week(end) == 6

    def test_sunday_belongs_to_the_same_week(self):
        assert week_start(dt.datetime(2025, 3, 9, 23, 0)) == dt.datetime(2025, 3, 3)

    def test_same_day_compares_calendar_days_only(self):
        scheduled = dt.datetime(2025, 3, 4)
        assert same_day(dt.datetime(2025, 3, 4, 23, 59), scheduled)
        # juste après minuit : jour différent, pas d'arrondi
        assert not same_day(dt.datetime(2025, 3, 5, 0, 1), scheduled)
        assert not same_day(None, scheduled)

    def test_minutes_between(self):
        start = dt.datetime(2025, 3, 3, 9, 0)
        assert minutes_between(start, start + dt.timedelta(minutes=10, seconds=59)) == 10


class TestContinuationReason:
    def test_unbounded_template_continues(self):
        assert continuation_reason(_instance(12), _template()) is None

    def test_max_repetitions_reached(self):
        assert continuation_reason(_instance(3), _template(max_repetitions=4)) is None
        assert continuation_reason(_instance(4), _template(max_repetitions=4)) == "max_repetitions"

    def test_end_date_before_next_week(self):
        template = _template(end_date=dt.datetime(2025, 3, 16))
        # semaine 1 -> la semaine 2 commence le 10/03, avant la fin
        assert continuation_reason(_instance(1), template) is None
        # semaine 2 -> la semaine 3 commence le 17/03, après la fin
        assert continuation_reason(_instance(2), template) == "end_date"

    def test_end_date_on_next_week_start_continues(self):
        template = _template(end_date=dt.datetime(2025, 3, 10))
        assert continuation_reason(_instance(1), template) is None
