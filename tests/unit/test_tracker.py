"""Tests for the stake tracker."""
import asyncio
from unittest.mock import AsyncMock, MagicMock

import httpx

from geostake.core.errors import PersistenceError
from geostake.core.status import StakeStatus
from geostake.core.store import StakeStore
from geostake.core.tracker import StakeTracker
from tests.conftest import CLAIMER, STAKER


def _tracker(stakes, clock, **kwargs):
    store = MagicMock()
    store.get_active_stakes = AsyncMock(return_value=stakes)
    store.get_stakes_in_area = AsyncMock(return_value=stakes)
    tracker = StakeTracker(store, viewer_address=CLAIMER, clock=clock, **kwargs)
    listener = MagicMock()
    tracker.add_listener(listener)
    return tracker, store, listener


def test_refresh_notifies_once_per_change(stake, clock):
    tracker, store, listener = _tracker([stake], clock)

    assert asyncio.run(tracker.refresh()) is True
    assert listener.call_count == 1
    view = tracker.get_view(7)
    assert view.status is StakeStatus.ACTIVE
    assert view.can_claim

    assert asyncio.run(tracker.refresh()) is False
    assert listener.call_count == 1


def test_refresh_detects_settlement(stake, make_stake, clock):
    tracker, store, listener = _tracker([stake], clock)
    asyncio.run(tracker.refresh())

    store.get_active_stakes.return_value = [make_stake(claimed=True, claimed_by=CLAIMER.lower())]
    assert asyncio.run(tracker.refresh()) is True
    assert tracker.get_view(7).status is StakeStatus.CLAIMED
    assert tracker.active_views == []
    assert listener.call_count == 2


def test_refresh_failure_keeps_stale_data(stake, clock):
    tracker, store, listener = _tracker([stake], clock)
    asyncio.run(tracker.refresh())

    store.get_active_stakes.side_effect = PersistenceError("offline")
    assert asyncio.run(tracker.refresh()) is False
    assert tracker.last_error == "offline"
    assert [v.stake_id for v in tracker.views] == [7]

    store.get_active_stakes.side_effect = None
    asyncio.run(tracker.refresh())
    assert tracker.last_error is None


def test_recompute_follows_the_clock(stake, clock):
    tracker, store, listener = _tracker([stake], clock)
    asyncio.run(tracker.refresh())

    clock.advance(hours=1)
    assert tracker.recompute() is False
    assert listener.call_count == 1

    clock.advance(hours=23)
    assert tracker.recompute() is True
    assert tracker.get_view(7).status is StakeStatus.EXPIRED
    assert not tracker.get_view(7).can_claim
    assert listener.call_count == 2
    store.get_active_stakes.assert_awaited_once()


def test_own_views(make_stake, clock):
    mine = make_stake(stake_id=1, staker_address=CLAIMER.lower())
    theirs = make_stake(stake_id=2, staker_address=STAKER.lower())
    tracker, _, _ = _tracker([mine, theirs], clock)
    asyncio.run(tracker.refresh())

    assert [v.stake_id for v in tracker.own_views()] == [1]
    assert tracker.get_view(1).can_claim is False
    assert tracker.get_view(2).can_claim is True
    assert tracker.get_view(3) is None


def test_area_fetch(stake, clock):
    tracker, store, _ = _tracker([stake], clock, area=(40.0, 41.0, -75.0, -73.0))
    asyncio.run(tracker.refresh())
    store.get_stakes_in_area.assert_awaited_once_with(40.0, 41.0, -75.0, -73.0)
    store.get_active_stakes.assert_not_awaited()


def test_start_and_stop(stake, clock):
    tracker, store, listener = _tracker([stake], clock, status_interval=0.01,
                                        refresh_interval=0.01)

    async def run():
        await tracker.start()
        await asyncio.sleep(0.05)
        await tracker.stop()

    asyncio.run(run())
    assert store.get_active_stakes.await_count >= 2
    assert listener.call_count == 1
    assert tracker._tasks == []


def test_refresh_skips_invalid_rows(config, stake_row, clock):
    bad_row = dict(stake_row, id=2, stake_id=8, claimed=True, refunded=True)

    def handler(request):
        return httpx.Response(200, json=[stake_row, bad_row])

    async def run():
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        async with StakeStore(config, client=client) as store:
            tracker = StakeTracker(store, viewer_address=CLAIMER, clock=clock)
            return tracker, await tracker.refresh()

    tracker, changed = asyncio.run(run())
    assert changed is True
    assert [v.stake_id for v in tracker.views] == [7]
    assert tracker.last_error is None


def test_refresh_loop_survives_unexpected_errors(stake, clock):
    tracker, store, listener = _tracker([stake], clock, status_interval=60,
                                        refresh_interval=0.01)
    calls = []

    def fetch():
        calls.append(1)
        if len(calls) == 2:
            raise RuntimeError("bad row")
        return [stake]

    store.get_active_stakes.side_effect = fetch

    async def run():
        await tracker.start()
        await asyncio.sleep(0.05)
        await tracker.stop()

    asyncio.run(run())
    assert store.get_active_stakes.await_count >= 3
    assert [v.stake_id for v in tracker.views] == [7]
