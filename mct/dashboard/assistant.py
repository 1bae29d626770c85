import datetime
import logging
import uuid
from dataclasses import dataclass, field
from typing import Callable, List, Literal, Optional, Tuple

from mct.dashboard.events import EventChannel, OpenConceptForm
from mct.dashboard.gateway import GatewayClient, GatewayError
from mct.dashboard.store import ConceptStore

logger = logging.getLogger(__name__)

GREETING = (
    "Hi! I'm your MCT assistant. I can help you organize concepts, suggest priorities, "
    "create new concepts, and provide productivity tips. What would you like to work on today?"
)
GREETING_SUGGESTIONS = ["Create a new concept", "Review my priorities", "Get productivity tips", "Organize my concepts"]
FOLLOW_UPS = ["Create this concept", "Tell me more", "What's next?"]
CREATE_SUGGESTIONS = {"Create a new concept", "Create this concept"}
APOLOGY = "Sorry, I'm having trouble responding right now. Please try again later."
TIPS_PROMPT = "Give me productivity tips for managing concepts"


@dataclass
class ChatMessage:
    role: Literal["user", "assistant"]
    content: str
    suggestions: List[str] = field(default_factory=list)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: datetime.datetime = field(default_factory=lambda: datetime.datetime.now(datetime.UTC))


class AssistantPanel:
    def __init__(
        self,
        gateway: GatewayClient,
        store: ConceptStore,
        channel: EventChannel,
        *,
        user_id: Optional[str] = None,
        context_limit: int = 10,
    ):
        self.gateway = gateway
        self.store = store
        self.channel = channel
        self.user_id = user_id
        self.context_limit = context_limit
        self.messages: List[ChatMessage] = [
            ChatMessage(role="assistant", content=GREETING, suggestions=list(GREETING_SUGGESTIONS))
        ]
        self.draft = ""
        self.is_loading = False
        self._listeners: List[Callable[[], None]] = []

    def add_listener(self, listener: Callable[[], None]) -> None:
        self._listeners.append(listener)

    def _notify(self):
        for listener in list(self._listeners):
            listener()

    @property
    def quick_actions(self) -> List[Tuple[str, Callable[[], None]]]:
        return [
            ("New Concept", lambda: self.channel.publish(OpenConceptForm())),
            ("Get Tips", lambda: self.set_draft(TIPS_PROMPT)),
        ]

    def set_draft(self, text: str) -> None:
        self.draft = text
        self._notify()

    def choose_suggestion(self, suggestion: str) -> None:
        if suggestion in CREATE_SUGGESTIONS:
            self.channel.publish(OpenConceptForm())
        else:
            self.set_draft(suggestion)

    async def send(self, text: Optional[str] = None) -> Optional[ChatMessage]:
        """
        Sends one turn and grows the reply as chunks arrive. Returns the
        assistant message, or None when there was nothing to send.
        """
        text = self.draft if text is None else text
        if not text.strip() or self.is_loading:
            return None

        self.messages.append(ChatMessage(role="user", content=text))
        self.draft = ""
        self.is_loading = True
        self._notify()

        summaries = [concept.summary() for concept in self.store.concepts[: self.context_limit]]
        reply: Optional[ChatMessage] = None
        try:
            async for chunk in self.gateway.stream_chat(text, summaries, self.user_id):
                if reply is None:
                    reply = ChatMessage(role="assistant", content="")
                    self.messages.append(reply)
                reply.content += chunk
                self._notify()
        except GatewayError as exc:
            logger.error("Error sending message: %s", exc)
            apology = ChatMessage(role="assistant", content=APOLOGY)
            self.messages.append(apology)
            return apology
        finally:
            self.is_loading = False
            self._notify()

        if reply is None:
            reply = ChatMessage(role="assistant", content="")
            self.messages.append(reply)

        lowered = reply.content.lower()
        if "create" in lowered and "concept" in lowered:
            reply.suggestions = list(FOLLOW_UPS)
            self._notify()
        return reply
