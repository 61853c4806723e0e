"""Tests for the weekly rollover engine and its batch runner."""

import asyncio
import datetime as dt

import pytest
from pymongo.errors import AutoReconnect, OperationFailure

from conftest import make_definition
from planner.core.retry import RetryPolicy, is_transient
from planner.db.repositories import Repository
from planner.models.template import RepeatRules
from planner.services.rollover.batch_runner import BatchRunner
from planner.shared.constants import PROGRESS, ROLLOVER_RUNS, SNAPSHOTS


def _after_week(n: int) -> dt.datetime:
    """Lundi 01:00 suivant la fin de la semaine `n` (semaine 1 = 03/03/2025)."""
    return dt.datetime(2025, 3, 3, 1, 0) + dt.timedelta(weeks=n)


class TestWeeklyReset:
    @pytest.mark.asyncio
    async def test_week_not_finished_is_not_due(self, assign, engine, lifecycle, clock):
        instance_id = await assign()
        clock.set(dt.datetime(2025, 3, 9, 23, 0))

        report = await engine.process_weekly_reset()

        assert report.summary.total == 0
        assert (await lifecycle.load(instance_id)).current_week_number == 1

    @pytest.mark.asyncio
    async def test_advances_exactly_one_week(self, assign, engine, lifecycle, db, clock):
        instance_id = await assign()
        clock.set(_after_week(1))

        report = await engine.process_weekly_reset()

        assert report.summary.total == 1
        assert report.summary.successful == 1
        assert report.summary.snapshots_generated == 1
        result = report.results[0]
        assert (result.old_week_number, result.new_week_number) == (1, 2)
        assert result.items_created == 6
        assert result.snapshot_generated is True

        instance = await lifecycle.load(instance_id)
        assert instance.current_week_number == 2
        assert instance.current_week_start_date == dt.datetime(2025, 3, 10)
        assert instance.current_week_end_date == dt.datetime(2025, 3, 16, 23, 59, 59, 999000)
        assert instance.progress_cache.total_activities == 6
        assert instance.progress_cache.completed_activities == 0
        assert await db[PROGRESS].count_documents({"instance_id": instance_id, "week_number": 2}) == 6
        assert await db[SNAPSHOTS].count_documents({"instance_id": instance_id, "week_number": 1}) == 1

    @pytest.mark.asyncio
    async def test_rerun_is_idempotent(self, assign, engine, lifecycle, db, clock):
        instance_id = await assign()
        clock.set(_after_week(1))
        await engine.process_weekly_reset()

        again = await engine.process_weekly_reset()

        assert again.summary.total == 0
        assert (await lifecycle.load(instance_id)).current_week_number == 2
        assert await db[PROGRESS].count_documents({"instance_id": instance_id}) == 12

    @pytest.mark.asyncio
    async def test_several_missed_weeks_advance_one_per_run(self, assign, engine, lifecycle, clock):
        instance_id = await assign()
        clock.set(_after_week(3))

        await engine.process_weekly_reset()
        assert (await lifecycle.load(instance_id)).current_week_number == 2
        await engine.process_weekly_reset()
        assert (await lifecycle.load(instance_id)).current_week_number == 3

    @pytest.mark.asyncio
    async def test_max_repetitions_completes_without_week_five(self, assign, engine, lifecycle, db, clock):
        instance_id = await assign(make_definition(repeat_rules=RepeatRules(max_repetitions=4)))
        for week in (1, 2, 3):
            clock.set(_after_week(week))
            await engine.process_weekly_reset()
        assert (await lifecycle.load(instance_id)).current_week_number == 4

        clock.set(_after_week(4))
        report = await engine.process_weekly_reset()

        result = report.results[0]
        assert result.completed is True
        assert result.reason == "completed: max_repetitions"
        assert report.summary.completed_instances == 1
        instance = await lifecycle.load(instance_id)
        assert instance.status == "completed"
        assert instance.completion_reason == "max_repetitions"
        assert instance.current_week_number == 4
        assert await db[PROGRESS].count_documents({"instance_id": instance_id, "week_number": 5}) == 0
        # le bilan de la dernière semaine est quand même produit
        assert await db[SNAPSHOTS].count_documents({"instance_id": instance_id, "week_number": 4}) == 1

        clock.set(_after_week(5))
        assert (await engine.process_weekly_reset()).summary.total == 0

    @pytest.mark.asyncio
    async def test_end_date_completes_instance(self, assign, engine, lifecycle, clock):
        instance_id = await assign(make_definition(end_date=dt.date(2025, 3, 16)))
        clock.set(_after_week(1))
        await engine.process_weekly_reset()
        clock.set(_after_week(2))
        await engine.process_weekly_reset()

        instance = await lifecycle.load(instance_id)
        assert instance.status == "completed"
        assert instance.completion_reason == "end_date"
        assert instance.current_week_number == 2

    @pytest.mark.asyncio
    async def test_existing_snapshot_is_kept_and_week_advances(self, assign, engine, snapshots, lifecycle, db, clock):
        instance_id = await assign()
        clock.set(_after_week(1))
        await engine.process_weekly_reset()
        clock.set(dt.datetime(2025, 3, 15, 18, 0))
        existing = await snapshots.generate_snapshot(instance_id, 2)

        clock.set(_after_week(2))
        report = await engine.process_weekly_reset()

        result = report.results[0]
        assert result.snapshot_generated is False
        assert result.snapshot_id == existing.id
        assert result.new_week_number == 3
        assert report.summary.snapshots_generated == 0
        assert await db[SNAPSHOTS].count_documents({"instance_id": instance_id, "week_number": 2}) == 1
        assert (await lifecycle.load(instance_id)).current_week_number == 3

    @pytest.mark.asyncio
    async def test_paused_instance_still_rolls_over(self, assign, engine, lifecycle, professional, clock):
        instance_id = await assign()
        await lifecycle.pause(professional, instance_id)
        clock.set(_after_week(1))

        await engine.process_weekly_reset()

        instance = await lifecycle.load(instance_id)
        assert instance.status == "paused"
        assert instance.current_week_number == 2

    @pytest.mark.asyncio
    async def test_dry_run_writes_nothing(self, assign, engine, lifecycle, db, clock):
        instance_id = await assign()
        clock.set(_after_week(1))

        report = await engine.process_weekly_reset(dry_run=True)

        assert report.summary.dry_run is True
        assert report.summary.total == 1
        assert report.results[0].reason == "dry run: would advance to week 2"
        assert (await lifecycle.load(instance_id)).current_week_number == 1
        assert await db[SNAPSHOTS].count_documents({}) == 0
        assert await db[PROGRESS].count_documents({"week_number": 2}) == 0

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_the_batch(self, assign, engine, lifecycle, db, clock):
        ok_id = await assign(learner_id="l-ok")
        broken_id = await assign(make_definition(name="Broken plan"), learner_id="l-broken")
        broken = await lifecycle.load(broken_id)
        await db["schedule_templates"].delete_one({"_id": broken.template_id})
        clock.set(_after_week(1))

        report = await engine.process_weekly_reset(batch_size=1)

        by_id = {r.instance_id: r for r in report.results}
        assert by_id[ok_id].status == "success"
        assert by_id[broken_id].status == "error"
        assert by_id[broken_id].error_code == "NOT_FOUND"
        assert report.summary.failed == 1
        assert report.summary.successful == 1
        assert (await lifecycle.load(ok_id)).current_week_number == 2
        assert (await lifecycle.load(broken_id)).current_week_number == 1

    @pytest.mark.asyncio
    async def test_failed_item_write_keeps_pointer_and_next_run_completes(
        self, assign, engine, lifecycle, db, clock, monkeypatch
    ):
        instance_id = await assign()
        clock.set(_after_week(1))
        original_write_many = Repository.write_many

        async def failing_write_many(self, operations, **kwargs):
            if self.collection_name == PROGRESS:
                raise OperationFailure("disk full")
            return await original_write_many(self, operations, **kwargs)

        monkeypatch.setattr(Repository, "write_many", failing_write_many)
        report = await engine.process_weekly_reset()
        monkeypatch.undo()

        assert report.results[0].status == "error"
        instance = await lifecycle.load(instance_id)
        assert instance.current_week_number == 1
        assert await db[PROGRESS].count_documents({"instance_id": instance_id, "week_number": 2}) == 0

        retried = await engine.process_weekly_reset()

        assert retried.results[0].status == "success"
        assert retried.results[0].new_week_number == 2
        assert (await lifecycle.load(instance_id)).current_week_number == 2
        assert await db[PROGRESS].count_documents({"instance_id": instance_id, "week_number": 2}) == 6
        # le bilan écrit au premier passage est réutilisé
        assert await db[SNAPSHOTS].count_documents({"instance_id": instance_id, "week_number": 1}) == 1

    @pytest.mark.asyncio
    async def test_force_reset_requires_closed_week(self, assign, engine, lifecycle, clock):
        instance_id = await assign()

        early = await engine.force_reset_instance(instance_id)
        assert early.status == "skipped"
        assert early.reason == "week not finished"

        clock.set(_after_week(1))
        forced = await engine.force_reset_instance(instance_id)
        assert forced.status == "success"
        assert (await lifecycle.load(instance_id)).current_week_number == 2


class TestResetStatus:
    @pytest.mark.asyncio
    async def test_no_run_and_nothing_pending_is_healthy(self, engine):
        status = await engine.get_reset_status()

        assert status.last_reset_at is None
        assert status.instances_pending_reset == 0
        assert status.system_status == "healthy"
        # lundi 03/03 09:00 -> lundi suivant 00:01
        assert status.next_reset_at == dt.datetime(2025, 3, 10, 0, 1)

    @pytest.mark.asyncio
    async def test_pending_instances_without_run_is_warning(self, assign, engine, clock):
        await assign()
        clock.set(_after_week(1))

        status = await engine.get_reset_status()

        assert status.instances_pending_reset == 1
        assert status.system_status == "warning"
        assert status.next_reset_at == dt.datetime(2025, 3, 17, 0, 1)

    @pytest.mark.asyncio
    async def test_run_is_recorded(self, assign, engine, db, clock):
        await assign()
        clock.set(_after_week(1))
        await engine.process_weekly_reset(dry_run=True)
        assert await db[ROLLOVER_RUNS].count_documents({}) == 0

        await engine.process_weekly_reset()
        status = await engine.get_reset_status()

        assert status.last_reset_at == _after_week(1)
        assert status.last_summary.successful == 1
        assert status.instances_pending_reset == 0
        assert status.system_status == "healthy"

    @pytest.mark.asyncio
    async def test_stale_last_run(self, engine, clock):
        await engine.process_weekly_reset()

        clock.advance(days=7)
        assert (await engine.get_reset_status()).system_status == "warning"
        clock.advance(days=2)
        assert (await engine.get_reset_status()).system_status == "error"

    @pytest.mark.asyncio
    async def test_failed_instances_in_last_run_is_warning(self, assign, engine, lifecycle, db, clock):
        instance_id = await assign()
        instance = await lifecycle.load(instance_id)
        await db["schedule_templates"].delete_one({"_id": instance.template_id})
        clock.set(_after_week(1))
        await engine.process_weekly_reset()

        status = await engine.get_reset_status()

        assert status.last_summary.failed == 1
        assert status.system_status == "warning"


class TestBatchRunner:
    @pytest.mark.asyncio
    async def test_transient_errors_are_retried(self):
        calls = {"a": 0}

        async def worker(item):
            calls[item] += 1
            if calls[item] == 1:
                raise AutoReconnect("primary stepped down")
            return item.upper()

        runner = BatchRunner(batch_size=5, timeout_s=1, retry=RetryPolicy(max_attempts=3, base_delay=0, max_delay=0))
        [outcome] = await runner.run(["a"], worker)

        assert outcome.ok
        assert outcome.value == "A"
        assert outcome.attempts == 2

    @pytest.mark.asyncio
    async def test_non_transient_errors_are_not_retried(self):
        async def worker(item):
            raise ValueError(item)

        runner = BatchRunner(batch_size=5, timeout_s=1, retry=RetryPolicy(max_attempts=3, base_delay=0, max_delay=0))
        [outcome] = await runner.run(["x"], worker)

        assert not outcome.ok
        assert isinstance(outcome.error, ValueError)
        assert outcome.attempts == 1

    @pytest.mark.asyncio
    async def test_timeout_is_isolated(self):
        async def worker(item):
            if item == "slow":
                await asyncio.sleep(1)
            return item

        runner = BatchRunner(batch_size=2, timeout_s=0.05, retry=RetryPolicy(max_attempts=1))
        outcomes = await runner.run(["fast", "slow", "other"], worker)

        assert [o.ok for o in outcomes] == [True, False, True]
        assert isinstance(outcomes[1].error, asyncio.TimeoutError)

    def test_invalid_batch_size(self):
        with pytest.raises(ValueError):
            BatchRunner(batch_size=0, timeout_s=None, retry=RetryPolicy())


class TestRetryPolicy:
    def test_backoff_is_exponential_and_capped(self):
        policy = RetryPolicy(max_attempts=5, base_delay=0.5, max_delay=3)
        assert [policy.delay_for(n) for n in (1, 2, 3, 4)] == [0.5, 1.0, 2.0, 3]

    def test_is_transient(self):
        assert is_transient(AutoReconnect("x"))
        assert not is_transient(ValueError("x"))
