import datetime
import inspect
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Union

from mct.app.models.concept import ConceptUpdate, Status
from mct.dashboard.events import EventChannel, OpenConceptForm
from mct.dashboard.gateway import GatewayClient, GatewayError
from mct.dashboard.store import ConceptStore

logger = logging.getLogger(__name__)

DELETE_PROMPT = "Are you sure you want to delete this concept?"

STATUS_ACTIONS = [
    (Status.PENDING, "Mark as Pending"),
    (Status.IN_PROGRESS, "Mark as In Progress"),
    (Status.COMPLETED, "Mark as Completed"),
    (Status.CANCELLED, "Mark as Cancelled"),
]

Confirm = Callable[[str], Union[bool, Awaitable[bool]]]


def time_ago(moment: datetime.datetime, now: Optional[datetime.datetime] = None) -> str:
    now = now or datetime.datetime.now(datetime.UTC)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=datetime.UTC)
    seconds = max(0, int((now - moment).total_seconds()))

    for unit, size in (("year", 365 * 86400), ("month", 30 * 86400), ("day", 86400), ("hour", 3600), ("minute", 60)):
        count = seconds // size
        if count:
            return f"{count} {unit}{'s' if count != 1 else ''} ago"
    return "less than a minute ago"


@dataclass(frozen=True)
class ConceptRow:
    id: str
    title: str
    description: Optional[str]
    category: str
    priority: str
    status: str
    due: Optional[str]
    created: str


class ConceptListView:
    """
    Per-concept status and delete actions. The view never edits the list
    itself; results show up through the store's reconciliation.
    """

    def __init__(self, gateway: GatewayClient, store: ConceptStore, channel: EventChannel, confirm: Confirm):
        self.gateway = gateway
        self.store = store
        self.channel = channel
        self.confirm = confirm

    @property
    def is_empty(self) -> bool:
        return len(self.store) == 0

    def rows(self, now: Optional[datetime.datetime] = None) -> List[ConceptRow]:
        return [
            ConceptRow(
                id=concept.id,
                title=concept.title,
                description=concept.description,
                category=concept.category.value,
                priority=concept.priority.value,
                status=concept.status.value.replace("_", " "),
                due=f"Due {concept.due_date:%b %d, %Y}" if concept.due_date else None,
                created=time_ago(concept.created_at, now),
            )
            for concept in self.store.concepts
        ]

    async def set_status(self, concept_id: str, status: Status) -> bool:
        logger.info("Updating concept %s to %s", concept_id, status.value)
        try:
            await self.gateway.update_concept(concept_id, ConceptUpdate(status=status))
        except GatewayError as exc:
            logger.error("Error updating concept %s: %s", concept_id, exc)
            return False
        self.store.after_local_mutation()
        return True

    async def delete(self, concept_id: str) -> bool:
        confirmed = self.confirm(DELETE_PROMPT)
        if inspect.isawaitable(confirmed):
            confirmed = await confirmed
        if not confirmed:
            return False

        logger.info("Deleting concept %s", concept_id)
        try:
            await self.gateway.delete_concept(concept_id)
        except GatewayError as exc:
            logger.error("Error deleting concept %s: %s", concept_id, exc)
            return False
        self.store.after_local_mutation()
        return True

    async def refresh(self) -> bool:
        return await self.store.reconcile()

    def request_create(self) -> None:
        self.channel.publish(OpenConceptForm())
