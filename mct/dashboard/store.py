"""
Client-side cache of the signed-in user's concepts.

Three things change the list, in no particular order:

* change notifications from the gateway feed, applied immediately as patches;
* reconciliation fetches, which replace the whole list with a fresh snapshot;
* nothing else. Local actions go to the gateway and come back through one of
  the two paths above.

Patches give fast feedback; the snapshot is the source of truth. Every
notification schedules a reconciliation shortly afterwards, and so does every
local mutation. Fetches are numbered when issued and a response older than
the last applied one is dropped, so the newest fetch wins even when responses
arrive out of order.
"""

import asyncio
import logging
from typing import Callable, List, Optional, Sequence, Set

from mct.app.models.concept import ChangeNotification, Concept
from mct.dashboard.gateway import GatewayClient, GatewayError

logger = logging.getLogger(__name__)


class ConceptStore:
    def __init__(
        self,
        gateway: GatewayClient,
        *,
        change_reconcile_delay: float = 1.0,
        mutation_reconcile_delay: float = 0.5,
        initial: Sequence[Concept] = (),
    ):
        self.gateway = gateway
        self.change_reconcile_delay = change_reconcile_delay
        self.mutation_reconcile_delay = mutation_reconcile_delay
        self._concepts: List[Concept] = list(initial)
        self._issued_seq = 0
        self._applied_seq = 0
        self._timers: Set[asyncio.Task] = set()
        self._fetches: Set[asyncio.Task] = set()
        self._feed_task: Optional[asyncio.Task] = None
        self._listeners: List[Callable[[], None]] = []
        self.live = False

    @property
    def concepts(self) -> List[Concept]:
        return list(self._concepts)

    @property
    def is_refreshing(self) -> bool:
        return any(not task.done() for task in self._fetches)

    def __len__(self) -> int:
        return len(self._concepts)

    def add_listener(self, listener: Callable[[], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _notify(self):
        for listener in list(self._listeners):
            listener()

    def seed(self, concepts: Sequence[Concept]) -> None:
        self._concepts = list(concepts)
        self._notify()

    # Change notifications

    def _index_of(self, concept_id: str) -> int:
        for index, concept in enumerate(self._concepts):
            if concept.id == concept_id:
                return index
        return -1

    def apply_change(self, notification: ChangeNotification, *, reconcile: bool = True) -> None:
        """
        insert: prepend unless already present; update: replace in place;
        delete: remove. Unknown ids are ignored for update/delete.
        """
        index = self._index_of(notification.record_id)
        if notification.event == "INSERT":
            if index == -1 and notification.record is not None:
                self._concepts.insert(0, notification.record)
        elif notification.event == "UPDATE":
            if index != -1 and notification.record is not None:
                self._concepts[index] = notification.record
        elif notification.event == "DELETE":
            if index != -1:
                del self._concepts[index]

        logger.debug("Applied %s for %s", notification.event, notification.record_id)
        self._notify()
        if reconcile:
            self.schedule_reconcile(self.change_reconcile_delay)

    # Reconciliation

    async def reconcile(self) -> bool:
        """Fetch a fresh snapshot. Returns True if it was applied."""
        self._issued_seq += 1
        task = asyncio.ensure_future(self._fetch(self._issued_seq))
        self._fetches.add(task)
        task.add_done_callback(self._fetches.discard)
        return await task

    async def _fetch(self, seq: int) -> bool:
        try:
            snapshot = await self.gateway.list_concepts()
        except GatewayError as exc:
            logger.warning(
                "Reconciliation #%d failed, keeping %d cached concepts: %s",
                seq, len(self._concepts), exc,
            )
            return False

        if seq <= self._applied_seq:
            logger.debug("Discarding reconciliation #%d, #%d already applied", seq, self._applied_seq)
            return False

        self._applied_seq = seq
        self._concepts = list(snapshot)
        logger.debug("Reconciliation #%d applied (%d concepts)", seq, len(snapshot))
        self._notify()
        return True

    def schedule_reconcile(self, delay: float) -> asyncio.Task:
        async def later():
            await asyncio.sleep(delay)
            await self.reconcile()

        task = asyncio.get_running_loop().create_task(later())
        self._timers.add(task)
        task.add_done_callback(self._timers.discard)
        return task

    def after_local_mutation(self) -> asyncio.Task:
        return self.schedule_reconcile(self.mutation_reconcile_delay)

    async def settle(self) -> None:
        """Wait until no reconciliation is scheduled or in flight."""
        while True:
            pending = [task for task in self._timers | self._fetches if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    # Change feed

    def start(self) -> None:
        if self._feed_task is None or self._feed_task.done():
            self._feed_task = asyncio.get_running_loop().create_task(self._consume_feed())

    async def _consume_feed(self) -> None:
        self.live = True
        try:
            async for notification in self.gateway.subscribe_changes():
                self.apply_change(notification)
            logger.info("Change feed closed by the gateway; relying on reconciliation")
        except GatewayError as exc:
            logger.warning("Change feed unavailable, relying on reconciliation only: %s", exc)
        finally:
            self.live = False

    async def close(self) -> None:
        """Tear down the feed and anything scheduled. Called when the view unmounts."""
        tasks = [task for task in (self._feed_task, *self._timers, *self._fetches) if task is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._feed_task = None
        self.live = False
