import json
import logging
from typing import Any, AsyncIterator, List, Optional, Sequence

from langchain_core.messages import HumanMessage, SystemMessage
from pydantic import BaseModel

from mct.app.core.prompts import PromptLoader, prompts
from mct.app.models.concept import Category, ConceptSummary

logger = logging.getLogger(__name__)

NO_CONCEPTS = "User has no concepts yet."


class ChatRequestError(ValueError):
    """The inbound chat body is unusable. Never forwarded to the provider."""


def _summary_value(value: Any) -> Optional[str]:
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def parse_concepts(raw: Any) -> List[ConceptSummary]:
    """
    Browser-supplied summaries; anything that isn't a list counts as none.
    Each field falls back on its own, so one odd value keeps the rest.
    """
    if not isinstance(raw, list):
        return []
    summaries = []
    for item in raw:
        if not isinstance(item, dict):
            summaries.append(ConceptSummary())
            continue
        summaries.append(ConceptSummary(**{
            name: _summary_value(item.get(name)) for name in ConceptSummary.model_fields
        }))
    return summaries


class ChatRequest(BaseModel):
    message: str
    concepts: List[ConceptSummary] = []
    user_id: Optional[str] = None


def parse_chat_request(body: bytes) -> ChatRequest:
    """
    Validates the raw body by hand so malformed input maps to a plain
    `{"error": ...}` 400 rather than a schema error.
    """
    try:
        payload = json.loads(body)
    except ValueError as exc:
        raise ChatRequestError("Invalid JSON body") from exc

    if not isinstance(payload, dict):
        payload = {}
    message = payload.get("message")
    if not message or not isinstance(message, str):
        raise ChatRequestError("Missing 'message' string")

    user_id = payload.get("userId")
    return ChatRequest(
        message=message,
        concepts=parse_concepts(payload.get("concepts")),
        user_id=user_id if isinstance(user_id, str) else None,
    )


def build_concept_context(concepts: Sequence[ConceptSummary]) -> str:
    if not concepts:
        return NO_CONCEPTS
    lines = "\n".join(concept.describe() for concept in concepts)
    return f"User's current concepts:\n{lines}"


class ChatRelay:
    """Embeds the caller's concepts in the system instruction and streams the reply back."""

    def __init__(self, llm, prompt_loader: Optional[PromptLoader] = None):
        self.llm = llm
        self.prompts = prompt_loader or prompts

    def system_instruction(self, concepts: Sequence[ConceptSummary]) -> str:
        return self.prompts.render(
            "assistant_system",
            categories=", ".join(category.value for category in Category),
            concept_context=build_concept_context(concepts),
        )

    async def stream_reply(self, message: str, concepts: Sequence[ConceptSummary]) -> AsyncIterator[str]:
        logger.debug("Relaying chat turn with %d concepts in context", len(concepts))
        messages = [
            SystemMessage(content=self.system_instruction(concepts)),
            HumanMessage(content=message),
        ]
        async for chunk in self.llm.astream(messages):
            text = chunk.content if isinstance(chunk.content, str) else ""
            if text:
                yield text
