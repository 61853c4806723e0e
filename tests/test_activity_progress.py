"""Tests for week materialization and learner actions on progress items."""

import datetime as dt

import pytest

from conftest import MONDAY, QUIZ_CONFIG, make_definition
from planner.core.errors import StateError, ValidationError
from planner.models.instance import Customizations
from planner.models.progress import CompletionData, DraftData, QuizSubmission, SkipData
from planner.shared.constants import PROGRESS


async def _week_items(tracker, caller, instance_id, week=None):
    return await tracker.get_week_items(caller, instance_id, week)


class TestMaterialization:
    @pytest.mark.asyncio
    async def test_three_days_two_activities_gives_six_items(self, assign, tracker, learner):
        instance_id = await assign(make_definition(active_days=(1, 3, 5), per_day=2))

        items = await _week_items(tracker, learner, instance_id)

        assert len(items) == 6
        for item in items:
            assert item.week_number == 1
            assert item.status == "pending"
            assert item.scheduled_date == dt.datetime(2025, 3, 3) + dt.timedelta(days=item.day_of_week)
            assert item.due_date == item.scheduled_date.replace(hour=23, minute=59, second=59, microsecond=999000)
        assert sorted({i.scheduled_date.day for i in items}) == [4, 6, 8]

    @pytest.mark.asyncio
    async def test_materialize_twice_is_idempotent(self, assign, tracker, db, learner):
        instance_id = await assign()

        created_again = await tracker.materialize_week(instance_id, 1)

        assert created_again == 0
        assert await db[PROGRESS].count_documents({"instance_id": instance_id, "week_number": 1}) == 6

    @pytest.mark.asyncio
    async def test_materialize_later_week_uses_week_offset(self, assign, tracker, learner):
        instance_id = await assign(make_definition(active_days=(0,), per_day=1))

        assert await tracker.materialize_week(instance_id, 3) == 1
        items = await _week_items(tracker, learner, instance_id, 3)
        assert items[0].scheduled_date == dt.datetime(2025, 3, 17)

    @pytest.mark.asyncio
    async def test_customizations_are_applied(self, catalog, lifecycle, tracker, professional, learner):
        created = await catalog.create(professional, make_definition(active_days=(1,), per_day=3))
        excluded, adjusted, custom = (str(i) for i in created.activity_ids)
        result = await lifecycle.assign(
            professional,
            created.template_id,
            [learner.id],
            customizations=Customizations(
                excluded_activity_ids=[excluded],
                adjusted_deadlines={adjusted: 2},
                custom_instructions={custom: "Take your time"},
            ),
        )
        instance_id = result.successful[0].instance_id

        items = {str(i.activity_id): i for i in await _week_items(tracker, learner, instance_id)}

        assert excluded not in items
        assert result.successful[0].items_created == 2
        assert items[adjusted].due_date.date() == dt.date(2025, 3, 6)
        assert items[custom].activity_snapshot.instructions == "Take your time"
        assert items[adjusted].activity_snapshot.instructions == "Do it"

    @pytest.mark.asyncio
    async def test_template_edit_does_not_touch_frozen_items(self, assign, catalog, tracker, professional, learner):
        instance_id = await assign()
        items = await _week_items(tracker, learner, instance_id)
        template_id = items[0].activity_snapshot.template_id

        from planner.models.template import TemplateChanges

        activities = [a.model_dump() for a in await catalog.get_template_activities(template_id)]
        for activity in activities:
            activity["title"] = "Renamed"
        await catalog.update(professional, template_id, TemplateChanges(activities=activities))

        again = await _week_items(tracker, learner, instance_id)
        assert {i.activity_snapshot.title for i in again} != {"Renamed"}
        assert all(i.activity_snapshot.template_id == template_id for i in again)


class TestLearnerActions:
    @pytest.mark.asyncio
    async def test_start_then_complete_with_bonuses(self, assign, tracker, learner, clock):
        instance_id = await assign()
        item = (await _week_items(tracker, learner, instance_id))[0]

        clock.set(dt.datetime(2025, 3, 4, 8, 0))
        started = await tracker.start_item(learner, item.id)
        assert started.status == "in_progress"
        assert started.started_at == dt.datetime(2025, 3, 4, 8, 0)

        clock.advance(minutes=10)
        done = await tracker.complete_item(
            learner, item.id, CompletionData(affect={"before": 2, "after": 5}, notes="fine")
        )

        assert done.status == "completed"
        assert done.execution_data.time_spent == 10
        # base 10 + bonus temps 2 + bonus ressenti 1
        assert done.scoring.points_earned == 10
        assert done.scoring.bonus_points == 3
        assert done.scoring.total_points == 13
        assert "time bonus" in done.scoring.feedback
        assert "affect bonus" in done.scoring.feedback

    @pytest.mark.asyncio
    async def test_late_completion_is_penalized(self, assign, tracker, learner, clock):
        instance_id = await assign()
        item = (await _week_items(tracker, learner, instance_id))[0]  # mardi

        await tracker.start_item(learner, item.id)
        clock.set(dt.datetime(2025, 3, 5, 10, 0))
        done = await tracker.complete_item(learner, item.id, CompletionData(time_spent=45))

        assert done.scoring.bonus_points == 0
        assert done.scoring.penalty_points == 3
        assert done.scoring.total_points == 7

    @pytest.mark.asyncio
    async def test_invalid_transitions_raise_state_error(self, assign, tracker, learner):
        instance_id = await assign()
        first, second = (await _week_items(tracker, learner, instance_id))[:2]

        with pytest.raises(StateError):
            await tracker.complete_item(learner, first.id, CompletionData())

        skipped = await tracker.skip_item(learner, second.id, SkipData(reason="tired"))
        assert skipped.status == "skipped"
        assert skipped.execution_data.skip_reason == "tired"
        with pytest.raises(StateError) as exc_info:
            await tracker.start_item(learner, second.id)
        assert exc_info.value.current == "skipped"
        with pytest.raises(StateError):
            await tracker.complete_item(learner, second.id, CompletionData())
        with pytest.raises(StateError):
            await tracker.skip_item(learner, second.id, SkipData())

    @pytest.mark.asyncio
    async def test_draft_keeps_status(self, assign, tracker, learner, clock):
        instance_id = await assign()
        item = (await _week_items(tracker, learner, instance_id))[0]

        saved = await tracker.save_draft(learner, item.id, DraftData(draft={"text": "half"}))

        assert saved.status == "pending"
        assert saved.execution_data.draft == {"text": "half"}
        assert saved.execution_data.last_saved_at == clock()

    @pytest.mark.asyncio
    async def test_other_learner_is_forbidden(self, assign, tracker, learner):
        instance_id = await assign()
        item = (await _week_items(tracker, learner, instance_id))[0]
        intruder = learner.model_copy(update={"id": "learner-2"})

        with pytest.raises(PermissionError):
            await tracker.start_item(intruder, item.id)
        with pytest.raises(PermissionError):
            await tracker.get_week_items(intruder, instance_id)

    @pytest.mark.asyncio
    async def test_today_items(self, assign, tracker, learner, clock):
        await assign()
        assert await tracker.get_today_items(learner.id) == []  # lundi : rien de prévu

        clock.set(dt.datetime(2025, 3, 6, 7, 0))
        today = await tracker.get_today_items(learner.id)
        assert len(today) == 2
        assert all(i.day_of_week == 3 for i in today)


class TestQuizAttempts:
    @pytest.mark.asyncio
    async def test_failed_then_passed_attempt(self, assign, tracker, learner):
        instance_id = await assign(make_definition(active_days=(0,), per_day=1, config=QUIZ_CONFIG))
        item = (await _week_items(tracker, learner, instance_id))[0]

        first = await tracker.submit_quiz_attempt(learner, item.id, QuizSubmission(answers={"q1": "3"}))
        assert first.passed is False
        assert first.score == 0
        assert first.attempts_left == 1
        assert first.item.status == "in_progress"

        second = await tracker.submit_quiz_attempt(
            learner, item.id, QuizSubmission(answers={"q1": "4", "q2": "True"}, time_spent=5)
        )
        assert second.passed is True
        assert second.score == 100
        assert second.attempt_number == 2
        assert second.item.status == "completed"
        assert len(second.item.attempts) == 2
        # sans-faute : bonus de l'activité en plus du bonus temps
        assert second.item.scoring.total_points == 10 + 2 + 5

        with pytest.raises(StateError):
            await tracker.submit_quiz_attempt(learner, item.id, QuizSubmission(answers={}))

    @pytest.mark.asyncio
    async def test_attempts_exhausted(self, assign, tracker, learner):
        config = {**QUIZ_CONFIG, "max_attempts": 1}
        instance_id = await assign(make_definition(active_days=(0,), per_day=1, config=config))
        item = (await _week_items(tracker, learner, instance_id))[0]

        result = await tracker.submit_quiz_attempt(learner, item.id, QuizSubmission(answers={"q1": "4"}))
        assert result.passed is False
        assert result.attempts_left == 0

        with pytest.raises(StateError):
            await tracker.submit_quiz_attempt(learner, item.id, QuizSubmission(answers={"q1": "4", "q2": "true"}))

    @pytest.mark.asyncio
    async def test_non_quiz_item_rejected(self, assign, tracker, learner):
        instance_id = await assign()
        item = (await _week_items(tracker, learner, instance_id))[0]
        with pytest.raises(ValidationError):
            await tracker.submit_quiz_attempt(learner, item.id, QuizSubmission(answers={"q1": "4"}))


class TestProgressCacheAfterMutations:
    @pytest.mark.asyncio
    async def test_cache_tracks_completions(self, assign, tracker, lifecycle, learner, clock):
        instance_id = await assign()
        instance = await lifecycle.load(instance_id)
        assert instance.progress_cache.total_activities == 6
        assert instance.progress_cache.completed_activities == 0

        item = (await _week_items(tracker, learner, instance_id))[0]
        clock.set(dt.datetime(2025, 3, 4, 8, 0))
        await tracker.start_item(learner, item.id)
        await tracker.complete_item(learner, item.id, CompletionData(time_spent=40))

        cache = (await lifecycle.load(instance_id)).progress_cache
        assert cache.completed_activities == 1
        assert cache.completion_percentage == round(1 / 6 * 100, 2)
        assert cache.week_points == 10
        assert cache.lifetime_completed == 1
        assert cache.streak_days == 1
        assert cache.last_updated_at == clock()


def test_monday_fixture_is_a_monday():
    assert MONDAY.weekday() == 0
