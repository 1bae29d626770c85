import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse

from mct.app.api.deps import get_chat_relay
from mct.app.services.chat import ChatRelay, ChatRequestError, parse_chat_request

logger = logging.getLogger(__name__)

router = APIRouter()

GENERIC_FAILURE = "Failed to process message"


@router.post("")
async def chat(request: Request, relay: ChatRelay = Depends(get_chat_relay)):
    """
    Relays one chat turn to the LLM provider and streams the reply back as
    plain text, chunk by chunk.

    The first chunk is awaited before answering so that a provider failure can
    still become a 500. Once text is flowing a failure can only end the stream.
    """
    try:
        chat_request = parse_chat_request(await request.body())
    except ChatRequestError as e:
        return JSONResponse({"error": str(e)}, status_code=400)

    logger.info(
        "Chat turn from %s with %d concepts",
        chat_request.user_id or "anonymous", len(chat_request.concepts),
    )

    stream = relay.stream_reply(chat_request.message, chat_request.concepts)
    try:
        first = await anext(stream)
    except StopAsyncIteration:
        first = ""
    except Exception:
        logger.exception("Chat provider failed before streaming")
        await stream.aclose()
        return JSONResponse({"error": GENERIC_FAILURE}, status_code=500)

    async def relay_stream():
        try:
            if first:
                yield first
            async for text in stream:
                yield text
        except Exception:
            logger.exception("Chat stream interrupted")
        finally:
            await stream.aclose()

    return StreamingResponse(relay_stream(), media_type="text/plain; charset=utf-8")
