from datetime import timedelta

import pytest

from roadside.models.base import utcnow
from roadside.services.cleanup import EXPIRED_REASON, CleanupSweeper

from tests.factories import make_mechanics


@pytest.fixture
def sweeper(tracking, queue):
    return CleanupSweeper(tracking, queue, window_minutes=10)


async def test_sweep_finishes_expired_records(tracking, sweeper):
    now = utcnow()
    await tracking.create("old", 10)
    await tracking.create("fresh", 10)
    await tracking.create("quiet", 10)
    await tracking.mark_interest("old", now=now - timedelta(minutes=15))
    await tracking.mark_interest("fresh", now=now - timedelta(minutes=3))

    result = await sweeper.sweep_expired()
    assert (result.found, result.cleaned) == (1, 1)

    old = await tracking.get("old")
    assert old.call_finished is not None
    assert old.cleanup_reason == EXPIRED_REASON
    assert (await tracking.get("fresh")).call_finished is None
    assert (await tracking.get("quiet")).call_finished is None


async def test_sweep_is_idempotent(tracking, sweeper):
    await tracking.create("old", 10)
    await tracking.mark_interest("old", now=utcnow() - timedelta(minutes=30))

    first = await sweeper.sweep_expired()
    finished_at = (await tracking.get("old")).call_finished
    second = await sweeper.sweep_expired()

    assert first.cleaned == 1
    assert (second.found, second.cleaned) == (0, 0)
    assert (await tracking.get("old")).call_finished == finished_at


async def test_already_finished_records_are_left_alone(tracking, sweeper):
    await tracking.create("done", 10)
    await tracking.mark_interest("done", now=utcnow() - timedelta(minutes=30))
    await tracking.finish("done", reason="manual")

    result = await sweeper.sweep_expired()
    assert result.found == 0
    assert (await tracking.get("done")).cleanup_reason == "manual"


async def test_window_override(tracking, sweeper):
    await tracking.create("T1", 10)
    await tracking.mark_interest("T1", now=utcnow() - timedelta(minutes=5))

    assert (await sweeper.sweep_expired()).found == 0
    assert (await sweeper.sweep_expired(window_minutes=2)).cleaned == 1


async def test_uses_injected_clock(tracking):
    await tracking.create("T1", 10)
    await tracking.mark_interest("T1")
    later = CleanupSweeper(tracking, window_minutes=10, clock=lambda: utcnow() + timedelta(hours=1))

    assert (await later.sweep_expired()).cleaned == 1


async def test_sweep_purges_queue_of_expired_tickets(tracking, queue, sweeper):
    await tracking.create("old", 3)
    await tracking.create("fresh", 2)
    await queue.enqueue_batch("old", make_mechanics(3))
    await queue.enqueue_batch("fresh", make_mechanics(2))
    await tracking.mark_interest("old", now=utcnow() - timedelta(minutes=20))

    result = await sweeper.sweep_expired()
    assert (result.found, result.cleaned, result.purged) == (1, 1, 3)
    assert await queue.count("old") == 0
    assert await queue.count("fresh") == 2


async def test_purge_failure_keeps_cleanup_result(tracking, queue, sweeper, monkeypatch):
    async def _locked(ticket_ids):
        raise RuntimeError("database is locked")

    monkeypatch.setattr(queue, "purge", _locked)
    await tracking.create("old", 3)
    await tracking.mark_interest("old", now=utcnow() - timedelta(minutes=20))

    result = await sweeper.sweep_expired()
    assert (result.found, result.cleaned, result.purged) == (1, 1, 0)
    assert (await tracking.get("old")).cleanup_reason == EXPIRED_REASON
