"""Chat endpoint.

POST /chat runs one user turn. In polling mode the reply is JSON
(``{message, threadId}``); in streaming mode the body is plain text
written as the assistant produces it, with the thread handle in the
``X-Thread-ID`` header so the client can continue the conversation.
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from deliverychat.api.deps import get_orchestrator, get_settings
from deliverychat.api.schemas import ChatRequest, ChatResponse, ErrorResponse
from deliverychat.config import Settings
from deliverychat.orchestrator.conversation import ConversationOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(tags=["chat"])

THREAD_HEADER = "X-Thread-ID"


@router.post(
    "/chat",
    response_model=ChatResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def chat(
    body: ChatRequest,
    settings: Settings = Depends(get_settings),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
):
    """Send a message to the assistant.

    Args:
        body: The user message and optional thread handle.
        settings: Service settings (selects polling or streaming).
        orchestrator: Conversation orchestrator from app state.

    Returns:
        ChatResponse in polling mode, a streamed text body otherwise.

    Raises:
        DeliveryChatError: Mapped to ``{error, details}`` by the app
            exception handler (404 unknown thread, 409 busy thread, 500
            run failures).
    """
    logger.info("Chat request (thread=%s, mode=%s)", body.thread_id, settings.chat_mode)

    if settings.chat_mode == "streaming":
        turn = await orchestrator.start_stream(body.message, body.thread_id)
        return StreamingResponse(
            turn.chunks,
            media_type="text/plain; charset=utf-8",
            headers={THREAD_HEADER: turn.thread_id},
        )

    reply = await orchestrator.ask(body.message, body.thread_id)
    return ChatResponse(message=reply.message, thread_id=reply.thread_id)
