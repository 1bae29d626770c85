"""
Typed command/event channel owned by the dashboard coordinator.

Producers publish event instances; consumers subscribe per event type. Async
handlers run as tasks so publishing never blocks the caller.
"""

import asyncio
import inspect
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Set, Type, TypeVar, Union

from mct.app.models.concept import Concept

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OpenConceptForm:
    pass


@dataclass(frozen=True)
class RefreshConcepts:
    reason: str = "manual"


@dataclass(frozen=True)
class ConceptCreated:
    concept: Optional[Concept] = None


DashboardEvent = Union[OpenConceptForm, RefreshConcepts, ConceptCreated]
E = TypeVar("E")


class EventChannel:
    def __init__(self):
        self._handlers: Dict[type, List[Callable[[Any], Any]]] = defaultdict(list)
        self._tasks: Set[asyncio.Task] = set()

    def subscribe(self, event_type: Type[E], handler: Callable[[E], Any]) -> Callable[[], None]:
        """Returns a callable that removes the subscription."""
        self._handlers[event_type].append(handler)

        def unsubscribe():
            if handler in self._handlers.get(event_type, []):
                self._handlers[event_type].remove(handler)

        return unsubscribe

    def publish(self, event: DashboardEvent) -> None:
        for handler in list(self._handlers.get(type(event), ())):
            result = handler(event)
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._tasks.add(task)
                task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Event handler failed", exc_info=task.exception())

    async def drain(self) -> None:
        """Wait for every async handler started so far."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
