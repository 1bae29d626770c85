from langchain_openai import ChatOpenAI
from mct.app.core.config import settings


def get_llm(model: str | None = None):
    """
    Returns a streaming LangChain ChatModel for any OpenAI-compatible endpoint
    (Groq by default). Raises ConfigurationError when no provider key is set.
    """
    settings.require("Chat relay", "CHAT_API_KEY")
    return ChatOpenAI(
        base_url=settings.CHAT_BASE_URL,
        api_key=settings.CHAT_API_KEY,
        model=model or settings.CHAT_MODEL,
        temperature=settings.CHAT_TEMPERATURE,
        streaming=True,
        max_retries=0,
    )
