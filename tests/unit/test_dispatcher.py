"""Dispatch batch processor against a real SQLite store and a fake gateway."""

from datetime import timedelta

import pytest

from roadside.db import crud
from roadside.errors import GatewayConfigError, TrackingFinished, TrackingNotFound
from roadside.models.base import utcnow
from roadside.services.tracking import start_dispatch

from tests.factories import FakeGateway, make_mechanics


@pytest.fixture
def start(tracking, queue, seed_ticket):
    async def _start(ticket_id, n, seed=True, **kwargs):
        if seed:
            await seed_ticket(ticket_id)
        return await start_dispatch(tracking, queue, ticket_id, make_mechanics(n), **kwargs)
    return _start


async def test_small_ticket_completes_in_one_batch(make_processor, start, tracking, queue, gateway):
    await start("T1", 3)
    result = await make_processor().run_batch_cycle()

    assert result.processed == 1
    assert result.calls_made == 3
    assert len(gateway.calls) == 3
    record = await tracking.get("T1")
    assert record.called_mechanics == 3
    assert record.batch_index == 1
    assert record.call_finished is not None
    assert await queue.count("T1") == 0


async def test_exact_multiple_finishes_without_extra_cycle(make_processor, start, tracking, gateway):
    await start("T1", 10)
    processor = make_processor()
    await processor.run_batch_cycle()

    record = await tracking.get("T1")
    assert record.called_mechanics == 10
    assert record.call_finished is not None

    second = await processor.run_batch_cycle()
    assert second.total_found == 0
    assert len(gateway.calls) == 10


async def test_large_ticket_is_called_in_batches(make_processor, start, tracking, gateway):
    await start("T1", 25)
    processor = make_processor()

    seen = []
    for _ in range(3):
        result = await processor.run_batch_cycle()
        seen.append(result.results[0].attempted)
        record = await tracking.get("T1")
        if len(seen) < 3:
            assert record.call_finished is None

    assert seen == [10, 10, 5]
    record = await tracking.get("T1")
    assert record.called_mechanics == 25
    assert record.batch_index == 3
    assert record.call_finished is not None
    assert len({number for number, _ in gateway.calls}) == 25


async def test_failed_calls_still_count_toward_progress(make_processor, start, tracking, queue):
    mechanics = make_mechanics(8)
    failing = {mechanics[1].international_phone_number, mechanics[4].international_phone_number}
    gateway = FakeGateway(fail=failing)
    await start("T1", 8)

    result = await make_processor(gateway_override=gateway, batch_size=5).run_batch_cycle()
    ticket = result.results[0]
    assert (ticket.attempted, ticket.succeeded, ticket.failed) == (5, 3, 2)
    assert result.calls_made == 3

    record = await tracking.get("T1")
    assert record.called_mechanics == 5
    assert record.call_finished is None
    # the three answered calls leave the queue, the failures stay for a retry
    assert await queue.count("T1") == 5


async def test_gateway_exception_is_treated_as_failed_call(make_processor, start, tracking):
    number = make_mechanics(3)[0].international_phone_number
    gateway = FakeGateway(explode={number})
    await start("T1", 3)

    result = await make_processor(gateway_override=gateway).run_batch_cycle()
    ticket = result.results[0]
    assert ticket.failed == 1
    assert ticket.succeeded == 2
    assert "socket closed" in next(c.error for c in ticket.calls if not c.success)
    assert (await tracking.get("T1")).call_finished is not None


async def test_expired_interest_window_stops_calls(make_processor, start, tracking, gateway):
    await start("T1", 12)
    await tracking.mark_interest("T1", now=utcnow() - timedelta(minutes=15))

    result = await make_processor().run_batch_cycle()
    assert result.skipped == 1
    assert result.results[0].reason == "window_expired"
    assert gateway.calls == []

    record = await tracking.get("T1")
    assert record.call_finished is not None
    assert record.called_mechanics == 0
    assert record.cleanup_reason is None


async def test_recent_interest_keeps_calling(make_processor, start, tracking, gateway):
    await start("T1", 12)
    await tracking.mark_interest("T1", now=utcnow() - timedelta(minutes=2))

    result = await make_processor().run_batch_cycle()
    assert result.processed == 1
    assert len(gateway.calls) == 10
    assert (await tracking.get("T1")).called_mechanics == 10


async def test_emptied_queue_completes_ticket(make_processor, start, tracking, queue, gateway):
    mechanics = make_mechanics(4)
    await start("T1", 4)
    await queue.dequeue("T1", [m.international_phone_number for m in mechanics])

    result = await make_processor().run_batch_cycle()
    assert result.completed == 1
    assert result.results[0].reason == "no_more_mechanics"
    assert gateway.calls == []
    assert (await tracking.get("T1")).call_finished is not None


async def test_finished_ticket_is_never_touched_again(make_processor, start, tracking, gateway):
    await start("T1", 20)
    processor = make_processor()
    await processor.run_batch_cycle()
    await tracking.finish("T1", reason="manual stop")
    before = await tracking.get("T1")

    result = await processor.run_batch_cycle()
    assert result.total_found == 0
    after = await tracking.get("T1")
    assert after.called_mechanics == before.called_mechanics == 10
    assert after.batch_index == before.batch_index
    assert after.call_finished == before.call_finished


async def test_stale_record_is_not_counted(make_processor, start, tracking):
    await start("T1", 20)
    stale = await tracking.get("T1")
    await tracking.finish("T1")

    result = await make_processor().process_one(stale)
    assert result.stale is True
    record = await tracking.get("T1")
    assert record.called_mechanics == 0
    assert record.batch_index == 0


async def test_counters_never_exceed_total(make_processor, start, tracking, queue):
    mechanics = make_mechanics(13)
    gateway = FakeGateway(fail={m.international_phone_number for m in mechanics[::3]})
    await start("T1", 13)
    processor = make_processor(gateway_override=gateway, batch_size=4)

    last = -1
    for _ in range(6):
        await processor.run_batch_cycle()
        record = await tracking.get("T1")
        assert last <= record.called_mechanics <= record.total_mechanics
        last = record.called_mechanics

    assert record.called_mechanics == 13
    assert record.call_finished is not None


async def test_missing_ticket_does_not_block_other_tickets(make_processor, start, tracking, gateway):
    await start("orphan", 3, seed=False)
    await start("T2", 3)

    result = await make_processor().run_batch_cycle()
    assert result.total_found == 2
    assert result.processed == 1
    assert result.errors == 1
    assert result.error_details[0].ticket_id == "orphan"
    assert result.error_details[0].step == "load_ticket"
    assert {ticket for _, ticket in gateway.calls} == {"T2"}
    # not counted, so it is retried on the next cycle
    assert (await tracking.get("orphan")).called_mechanics == 0


async def test_processing_error_is_isolated(make_processor, start, tracking, gateway, monkeypatch):
    await start("T1", 3)
    await start("T2", 3)
    processor = make_processor()
    real_process_one = processor.process_one

    async def _flaky(record):
        if record.ticket_id == "T1":
            raise RuntimeError("database is locked")
        return await real_process_one(record)

    monkeypatch.setattr(processor, "process_one", _flaky)
    result = await processor.run_batch_cycle()
    assert result.errors == 1
    assert result.error_details[0].step == "process_ticket"
    assert result.error_details[0].error == "database is locked"
    assert result.processed == 1


async def test_snapshot_mode_slices_stored_list(make_processor, start, tracking, gateway):
    await start("T1", 4, snapshot_limit=10)
    result = await make_processor(mechanic_source="snapshot", batch_size=3).run_batch_cycle()
    assert result.results[0].attempted == 3

    result = await make_processor(mechanic_source="snapshot", batch_size=3).run_batch_cycle()
    assert result.results[0].attempted == 1
    record = await tracking.get("T1")
    assert record.called_mechanics == 4
    assert record.call_finished is not None
    assert len({number for number, _ in gateway.calls}) == 4


async def test_busy_gateway_pauses_cycle(make_processor, start, tracking):
    await start("T1", 3)
    gateway = FakeGateway(busy=True)

    result = await make_processor(gateway_override=gateway, pause_when_busy=True).run_batch_cycle()
    assert result.status == "paused"
    assert result.reason == "gateway_busy"
    assert gateway.calls == []
    assert (await tracking.get("T1")).called_mechanics == 0


async def test_busy_probe_failure_does_not_pause(make_processor, start):
    await start("T1", 3)
    gateway = FakeGateway(busy=RuntimeError("vapi unreachable"))

    result = await make_processor(gateway_override=gateway, pause_when_busy=True).run_batch_cycle()
    assert result.status == "ok"
    assert result.processed == 1


async def test_call_activity_recorded_for_answered_calls(make_processor, start, session_factory):
    mechanics = make_mechanics(3)
    gateway = FakeGateway(fail={mechanics[0].international_phone_number})
    await start("T1", 3)

    result = await make_processor(gateway_override=gateway).run_batch_cycle()
    steps = {s.step: s.ok for s in result.results[0].post_commit}
    assert steps == {"update_queue": True, "record_call_activity": True}

    async with session_factory() as db:
        activities = await crud.list_call_activities(db, "T1")
    assert len(activities) == 2
    assert all(a.organization_id == "org-1" and a.call_type == "outbound" for a in activities)


async def test_post_commit_failure_keeps_the_batch(make_processor, start, tracking):
    class Broken:
        name = "notify_owner"

        async def __call__(self, context, outcomes):
            raise RuntimeError("smtp down")

    await start("T1", 3)
    result = await make_processor(post_commit=[Broken()]).run_batch_cycle()

    step = result.results[0].post_commit[1]
    assert (step.step, step.ok, step.error) == ("notify_owner", False, "smtp down")
    assert result.errors == 0
    assert (await tracking.get("T1")).called_mechanics == 3


async def test_organization_call_config_is_used(make_processor, start, session_factory):
    captured = []

    class Capturing(FakeGateway):
        async def place_call(self, mechanic, context):
            captured.append(context)
            return await super().place_call(mechanic, context)

    async with session_factory() as db:
        await crud.create_call_config(db, "org-1", company_name="Acme Fleet", phone_number="+15557770000")
    await start("T1", 1)
    await make_processor(gateway_override=Capturing()).run_batch_cycle()

    context = captured[0]
    assert context.company_name == "Acme Fleet"
    assert context.phone_number == "+15557770000"
    assert context.breakdown_address == "I-80 Exit 112, Des Moines, IA"
    assert context.vehicle_info == "white 2019 Freightliner Cascadia"


async def test_process_ticket_rejects_missing_and_finished(make_processor, start, tracking):
    processor = make_processor()
    with pytest.raises(TrackingNotFound):
        await processor.process_ticket("nope")

    await start("T1", 3)
    await tracking.finish("T1")
    with pytest.raises(TrackingFinished):
        await processor.process_ticket("T1")


async def test_process_ticket_runs_one_batch(make_processor, start, tracking):
    await start("T1", 15)
    result = await make_processor().process_ticket("T1")
    assert result.status == "processed"
    assert result.called_mechanics == 10
    assert result.batch_index == 1


async def test_failed_dequeue_does_not_redial_mechanics(make_processor, start, tracking, queue, gateway, monkeypatch):
    await start("T1", 15)
    real_dequeue = queue.dequeue
    failures = []

    async def _dequeue_once_locked(ticket_id, numbers):
        if not failures:
            failures.append(ticket_id)
            raise RuntimeError("database is locked")
        return await real_dequeue(ticket_id, numbers)

    monkeypatch.setattr(queue, "dequeue", _dequeue_once_locked)
    processor = make_processor()

    first = await processor.run_batch_cycle()
    ticket = first.results[0]
    assert first.errors == 0
    assert ticket.called_mechanics == 10
    assert ticket.post_commit[0].step == "update_queue"
    assert ticket.post_commit[0].ok is False
    assert ticket.post_commit[0].error == "database is locked"

    await processor.run_batch_cycle()
    await processor.run_batch_cycle()

    dialled = [number for number, _ in gateway.calls]
    assert len(dialled) == 15
    assert len(set(dialled)) == 15
    record = await tracking.get("T1")
    assert record.called_mechanics == 15
    assert record.call_finished is not None


async def test_failed_queue_purge_still_counts_batch(make_processor, start, tracking, queue, gateway, monkeypatch):
    async def _locked(ticket_ids):
        raise RuntimeError("database is locked")

    monkeypatch.setattr(queue, "purge", _locked)
    await start("T1", 3)
    processor = make_processor()

    result = await processor.run_batch_cycle()
    assert result.results[0].post_commit[0].ok is False
    assert (await tracking.get("T1")).called_mechanics == 3

    await processor.run_batch_cycle()
    assert len(gateway.calls) == 3


async def test_config_error_on_one_call_still_counts_batch(make_processor, start, tracking):
    class Misconfigured(FakeGateway):
        async def place_call(self, mechanic, context):
            if mechanic.international_phone_number.endswith("0001"):
                self.calls.append((mechanic.international_phone_number, context.ticket_id))
                raise GatewayConfigError("VAPI_API_KEY is not set")
            return await super().place_call(mechanic, context)

    gateway = Misconfigured()
    await start("T1", 12)
    processor = make_processor(gateway_override=gateway)

    first = await processor.run_batch_cycle()
    second = await processor.run_batch_cycle()
    tickets = first.results + second.results
    assert [t.attempted for t in tickets] == [10, 2]
    assert sum(t.failed for t in tickets) == 1
    assert sum(t.succeeded for t in tickets) == 11
    assert (await tracking.get("T1")).called_mechanics == 12

    dialled = [number for number, _ in gateway.calls]
    assert len(dialled) == 12
    assert len(set(dialled)) == 12


async def test_finished_ticket_queue_is_purged(make_processor, start, tracking, queue):
    mechanics = make_mechanics(4)
    await start("T1", 4)
    gateway = FakeGateway(fail={mechanics[0].international_phone_number})

    await make_processor(gateway_override=gateway).run_batch_cycle()
    assert (await tracking.get("T1")).call_finished is not None
    assert await queue.count("T1") == 0


async def test_expired_window_purges_leftover_queue(make_processor, start, tracking, queue):
    await start("T1", 12)
    await tracking.mark_interest("T1", now=utcnow() - timedelta(minutes=15))

    result = await make_processor().run_batch_cycle()
    assert result.results[0].post_commit[0].step == "update_queue"
    assert await queue.count("T1") == 0
