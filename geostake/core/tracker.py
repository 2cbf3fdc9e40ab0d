"""Keeps a viewer's list of stakes current."""
import asyncio
from datetime import datetime
from typing import Awaitable, Callable, FrozenSet, List, Optional, Tuple

from loguru import logger

from .eligibility import Eligibility, evaluate, same_address
from .errors import PersistenceError
from .stake import Stake
from .status import StakeStatus
from .store import StakeStore
from .timing import utcnow

BoundingBox = Tuple[float, float, float, float]
Listener = Callable[[List[Eligibility]], None]


class StakeTracker:
    """Tracks stakes for one viewer on two independent cadences.

    The status loop re-evaluates already fetched stakes against the clock
    without any I/O. The refresh loop re-fetches stakes from the database and
    only recomputes when a claimed/refunded/expiry field actually changed.
    """

    def __init__(self, store: StakeStore, viewer_address: Optional[str] = None,
                 status_interval: float = 10, refresh_interval: float = 30,
                 area: Optional[BoundingBox] = None,
                 clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.viewer_address = viewer_address
        self.status_interval = status_interval
        self.refresh_interval = refresh_interval
        self.area = area
        self._clock = clock
        self.stakes: List[Stake] = []
        self.views: List[Eligibility] = []
        self.last_error: Optional[str] = None
        self._signature: Optional[FrozenSet[Tuple]] = None
        self._view_key: Optional[Tuple] = None
        self._listeners: List[Listener] = []
        self._tasks: List[asyncio.Task] = []

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    @property
    def active_views(self) -> List[Eligibility]:
        """Stakes that can currently be claimed by someone (what the map shows)."""
        return [v for v in self.views if v.status is StakeStatus.ACTIVE]

    def get_view(self, stake_id: int) -> Optional[Eligibility]:
        return next((v for v in self.views if v.stake_id == stake_id), None)

    def own_views(self) -> List[Eligibility]:
        return [v for v in self.views if same_address(v.stake.staker_address, self.viewer_address)]

    def _fetch(self) -> Awaitable[List[Stake]]:
        if self.area:
            return self.store.get_stakes_in_area(*self.area)
        return self.store.get_active_stakes()

    async def refresh(self) -> bool:
        """Re-fetch stakes from the database.

        On failure the previously fetched stakes are kept.

        Returns:
            True if the fetched data differed from what was held
        """
        try:
            stakes = await self._fetch()
        except PersistenceError as e:
            self.last_error = str(e)
            logger.error(f"Failed to refresh stakes, keeping {len(self.stakes)} cached: {e}")
            return False

        self.last_error = None
        signature = frozenset(s.change_signature() for s in stakes)
        if signature == self._signature:
            logger.debug("Stake refresh found no changes")
            return False

        self.stakes = stakes
        self._signature = signature
        self.recompute(force=True)
        return True

    def recompute(self, now: Optional[datetime] = None, force: bool = False) -> bool:
        """Re-evaluate status and eligibility of held stakes.

        Listeners are only notified when a derived field changed.

        Returns:
            True if any status or eligibility flag changed
        """
        now = now or self._clock()
        views = [evaluate(stake, self.viewer_address, now) for stake in self.stakes]
        key = tuple((v.stake_id, v.status, v.can_claim, v.can_refund) for v in views)
        self.views = views
        if key == self._view_key and not force:
            return False
        self._view_key = key
        for listener in self._listeners:
            listener(views)
        return True

    async def _status_loop(self) -> None:
        while True:
            await asyncio.sleep(self.status_interval)
            try:
                self.recompute()
            except Exception as e:
                logger.exception(f"Status recompute failed: {e}")

    async def _refresh_loop(self) -> None:
        while True:
            await asyncio.sleep(self.refresh_interval)
            try:
                await self.refresh()
            except Exception as e:
                self.last_error = str(e)
                logger.exception(f"Stake refresh failed, keeping {len(self.stakes)} cached: {e}")

    async def start(self) -> None:
        """Fetch once, then keep both loops running in the background."""
        if self._tasks:
            return
        await self.refresh()
        self._tasks = [
            asyncio.create_task(self._status_loop()),
            asyncio.create_task(self._refresh_loop()),
        ]

    async def stop(self) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
