"""
Dashboard composition root.

Owns the event channel and wires the components together:

    RefreshConcepts / ConceptCreated  ->  ConceptStore.reconcile()
    OpenConceptForm                   ->  ConceptForm.open()
"""

import logging
from typing import Callable, List, Optional

from mct.app.models.user import User
from mct.dashboard.assistant import AssistantPanel
from mct.dashboard.config import DashboardSettings
from mct.dashboard.events import ConceptCreated, EventChannel, OpenConceptForm, RefreshConcepts
from mct.dashboard.form import ConceptForm
from mct.dashboard.gateway import GatewayClient, GatewayError
from mct.dashboard.list_view import Confirm, ConceptListView
from mct.dashboard.stats import ConceptStats, compute_stats
from mct.dashboard.store import ConceptStore

logger = logging.getLogger(__name__)


class NotSignedIn(Exception):
    """No valid session; the caller should send the user to sign-in."""


def initials(user: User) -> str:
    if user.full_name and user.full_name.strip():
        return "".join(part[0] for part in user.full_name.split()).upper()
    return user.email[:1].upper()


class Dashboard:
    def __init__(self, gateway: GatewayClient, settings: DashboardSettings, confirm: Confirm):
        self.gateway = gateway
        self.settings = settings
        self.channel = EventChannel()
        self.store = ConceptStore(
            gateway,
            change_reconcile_delay=settings.CHANGE_RECONCILE_DELAY,
            mutation_reconcile_delay=settings.MUTATION_RECONCILE_DELAY,
        )
        self.list_view = ConceptListView(gateway, self.store, self.channel, confirm)
        self.form = ConceptForm(gateway, self.channel)
        self.assistant: Optional[AssistantPanel] = None
        self.user: Optional[User] = None
        self._unsubscribers: List[Callable[[], None]] = []

    @classmethod
    async def open(cls, gateway: GatewayClient, settings: DashboardSettings, confirm: Confirm) -> "Dashboard":
        dashboard = cls(gateway, settings, confirm)
        await dashboard.load()
        return dashboard

    async def load(self) -> None:
        self.user = await self.gateway.get_user()
        if self.user is None:
            raise NotSignedIn("No signed-in user")

        try:
            initial = await self.gateway.list_concepts()
        except GatewayError as exc:
            logger.error("Initial concept fetch failed, starting empty: %s", exc)
            initial = []
        self.store.seed(initial)
        logger.info("Dashboard loaded for %s with %d concepts", self.user.id, len(initial))

        self.assistant = AssistantPanel(
            self.gateway,
            self.store,
            self.channel,
            user_id=self.user.id,
            context_limit=self.settings.CHAT_CONTEXT_LIMIT,
        )
        self._wire()
        self.store.start()

    def _wire(self) -> None:
        self._unsubscribers = [
            self.channel.subscribe(RefreshConcepts, self._reconcile),
            self.channel.subscribe(ConceptCreated, self._reconcile),
            self.channel.subscribe(OpenConceptForm, lambda _event: self.form.open()),
        ]

    async def _reconcile(self, _event) -> None:
        await self.store.reconcile()

    def refresh(self) -> None:
        self.channel.publish(RefreshConcepts())

    @property
    def stats(self) -> ConceptStats:
        return compute_stats(self.store.concepts)

    @property
    def initials(self) -> str:
        return initials(self.user) if self.user else ""

    async def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        await self.channel.drain()
        await self.store.close()

    async def sign_out(self) -> None:
        await self.close()
        await self.gateway.sign_out()
        self.user = None
