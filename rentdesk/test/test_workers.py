import asyncio
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from dramatiq.brokers.stub import StubBroker

from rentdesk.core.database import db_manager
from rentdesk.core.scheduler_decorators import SCHEDULED_TASKS, parse_cron, run_cron
from rentdesk.workers import broker
from rentdesk.workers.scheduler import build_scheduler
from rentdesk.workers.tasks import REPORTS_QUEUE, monthly_summary_report, run_monthly_summary_report


def _client():
    client = MagicMock()
    client.server_info = AsyncMock(return_value={"version": "7.0"})
    client.__getitem__.return_value.__getitem__.return_value.create_index = AsyncMock()
    return client


class TestCronDecorator:

    def test_parse_cron_fields(self):
        assert parse_cron("0 8 1 * *") == {
            "minute": "0", "hour": "8", "day": "1", "month": "*", "day_of_week": "*",
        }

    @pytest.mark.parametrize("expr", ["", "0 8 1 *", "0 8 1 * * *"])
    def test_parse_cron_rejects_wrong_field_count(self, expr):
        with pytest.raises(ValueError):
            parse_cron(expr)

    def test_run_cron_registers_task(self):
        before = len(SCHEDULED_TASKS)

        @run_cron("30 2 * * 1")
        def weekly():
            pass

        try:
            task = SCHEDULED_TASKS[-1]
            assert len(SCHEDULED_TASKS) == before + 1
            assert task["func"] is weekly
            assert task["trigger"] == "cron"
            assert task["trigger_args"]["day_of_week"] == "1"
            assert task["trigger_args"]["timezone"] == "UTC"
        finally:
            SCHEDULED_TASKS.pop()


class TestMonthlyActor:

    def test_actor_bound_to_stub_broker(self):
        assert isinstance(broker, StubBroker)
        assert monthly_summary_report.actor_name == "monthly_summary_report"
        assert monthly_summary_report.queue_name == REPORTS_QUEUE
        assert monthly_summary_report.options["max_retries"] == 0

    def test_scheduled_first_of_month(self):
        task = next(t for t in SCHEDULED_TASKS if t["func"] is monthly_summary_report)
        assert task["trigger"] == "cron"
        assert task["trigger_args"]["day"] == "1"
        assert task["trigger_args"]["hour"] == "8"
        assert task["trigger_args"]["minute"] == "0"

    def test_send_enqueues_message(self):
        broker.flush_all()
        message = monthly_summary_report.send("2024-03-01")
        assert message.args == ("2024-03-01",)
        assert broker.queues[REPORTS_QUEUE].qsize() == 1
        broker.flush_all()

    @pytest.mark.asyncio
    async def test_run_opens_and_closes_its_own_client(self):
        client = _client()

        with patch("rentdesk.core.database.create_client", return_value=client), \
             patch("rentdesk.workers.tasks.send_monthly_summary_report", AsyncMock(return_value=None)) as send:
            await run_monthly_summary_report("2024-03-01")

        client.close.assert_called_once()
        assert send.await_args.kwargs["reference"] == datetime(2024, 3, 1)
        assert send.await_args.kwargs["db"] is client.__getitem__.return_value
        assert not db_manager.is_initialized

    @pytest.mark.asyncio
    async def test_overlapping_runs_do_not_share_a_client(self):
        clients = [_client(), _client()]
        both_started = asyncio.Event()
        started = []

        async def send(reference=None, db=None):
            started.append(db)
            if len(started) == 2:
                both_started.set()
            await both_started.wait()
            # neither client is closed while the other run is still going
            assert not any(c.close.called for c in clients)

        with patch("rentdesk.core.database.create_client", side_effect=clients), \
             patch("rentdesk.workers.tasks.send_monthly_summary_report", side_effect=send):
            await asyncio.gather(run_monthly_summary_report(), run_monthly_summary_report("2024-03-01"))

        assert started[0] is not started[1]
        assert {id(db) for db in started} == {id(c.__getitem__.return_value) for c in clients}
        for client in clients:
            client.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_client_closed_when_run_raises(self):
        client = _client()

        with patch("rentdesk.core.database.create_client", return_value=client), \
             patch("rentdesk.workers.tasks.send_monthly_summary_report", AsyncMock(side_effect=RuntimeError("boom"))):
            with pytest.raises(RuntimeError):
                await run_monthly_summary_report()

        client.close.assert_called_once()


def test_build_scheduler_registers_monthly_job():
    scheduler = build_scheduler()

    job = next(j for j in scheduler.get_jobs() if j.id == "monthly_summary_report")
    assert job.coalesce is True
    assert job.max_instances == 1
    assert job.misfire_grace_time == 600
    assert str(job.trigger.timezone) == "UTC"
