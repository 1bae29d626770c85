"""
In-process change feed for the concepts collection.

Writers publish one ChangeNotification per insert/update/delete; every live
subscription of the same owner receives it. Delivery is best effort: a
subscriber whose queue is full loses the notification, and nothing is
replayed. Clients are expected to reconcile with a full fetch.
"""
import asyncio
import logging
from collections import defaultdict
from typing import Dict, Set

from mct.app.models.concept import ChangeNotification

logger = logging.getLogger(__name__)


class Subscription:
    def __init__(self, feed: "ChangeFeed", owner: str, max_pending: int):
        self.feed = feed
        self.owner = owner
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=max_pending)
        self.closed = False

    def offer(self, notification: ChangeNotification) -> bool:
        try:
            self.queue.put_nowait(notification)
            return True
        except asyncio.QueueFull:
            return False

    async def get(self) -> ChangeNotification:
        return await self.queue.get()

    def close(self):
        if not self.closed:
            self.closed = True
            self.feed._remove(self)

    def __aiter__(self):
        return self

    async def __anext__(self) -> ChangeNotification:
        if self.closed:
            raise StopAsyncIteration
        return await self.get()

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, *exc_info):
        self.close()


class ChangeFeed:
    def __init__(self, max_pending: int = 100):
        self.max_pending = max_pending
        self._subscriptions: Dict[str, Set[Subscription]] = defaultdict(set)

    def subscribe(self, owner: str) -> Subscription:
        subscription = Subscription(self, owner, self.max_pending)
        self._subscriptions[owner].add(subscription)
        logger.debug("Change feed subscription opened for %s (%d live)", owner, len(self._subscriptions[owner]))
        return subscription

    def publish(self, owner: str, notification: ChangeNotification) -> int:
        """Returns how many subscriptions accepted the notification."""
        delivered = 0
        for subscription in list(self._subscriptions.get(owner, ())):
            if subscription.offer(notification):
                delivered += 1
            else:
                logger.warning(
                    "Dropping %s notification for %s: subscriber queue is full",
                    notification.event, notification.record_id,
                )
        return delivered

    def subscriber_count(self, owner: str) -> int:
        return len(self._subscriptions.get(owner, ()))

    def _remove(self, subscription: Subscription):
        subs = self._subscriptions.get(subscription.owner)
        if subs is None:
            return
        subs.discard(subscription)
        if not subs:
            del self._subscriptions[subscription.owner]
        logger.debug("Change feed subscription closed for %s", subscription.owner)


change_feed = ChangeFeed()
