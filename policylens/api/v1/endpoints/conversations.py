import json
from typing import Annotated, AsyncIterator
from uuid import UUID

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import StreamingResponse

from policylens.api.dependencies import get_chat_service, get_tenant_context
from policylens.core.exceptions import AppError
from policylens.models.chat import ChatStreamEvent, CreateConversationRequest, SendMessageRequest
from policylens.models.documents import TenantContext
from policylens.services.chat.chat_service import ChatService
from policylens.utils.logging import get_logger
from policylens.utils.responses import ApiResponse, create_api_response

LOGGER = get_logger(__name__)

router = APIRouter()


def format_sse(event: ChatStreamEvent) -> str:
    payload = event.model_dump(mode="json", exclude_none=True)
    return f"event: {event.type.value}\ndata: {json.dumps(payload)}\n\n"


@router.post(
    "",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a conversation",
    operation_id="create_conversation",
)
async def create_conversation(
    request: Request,
    body: CreateConversationRequest,
    tenant: Annotated[TenantContext, Depends(get_tenant_context)],
    chat_service: Annotated[ChatService, Depends(get_chat_service)],
) -> ApiResponse:
    conversation = await chat_service.create_conversation(tenant, body)
    return create_api_response(
        data=conversation,
        message="Conversation created successfully",
        request=request
    )


@router.get(
    "/{conversation_id}",
    response_model=ApiResponse,
    summary="Get a conversation with its messages",
    operation_id="get_conversation",
)
async def get_conversation(
    request: Request,
    conversation_id: UUID,
    tenant: Annotated[TenantContext, Depends(get_tenant_context)],
    chat_service: Annotated[ChatService, Depends(get_chat_service)],
) -> ApiResponse:
    conversation = await chat_service.get_conversation(tenant, conversation_id)
    return create_api_response(
        data=conversation,
        message="Conversation retrieved successfully",
        request=request
    )


@router.post(
    "/{conversation_id}/messages",
    response_model=ApiResponse,
    summary="Send a message and wait for the full answer",
    operation_id="send_message",
)
async def send_message(
    request: Request,
    conversation_id: UUID,
    body: SendMessageRequest,
    tenant: Annotated[TenantContext, Depends(get_tenant_context)],
    chat_service: Annotated[ChatService, Depends(get_chat_service)],
) -> ApiResponse:
    response = await chat_service.send_message(tenant, conversation_id, body.content)
    return create_api_response(
        data=response,
        message="Message answered",
        request=request
    )


@router.post(
    "/{conversation_id}/messages/stream",
    summary="Send a message and stream the answer via SSE",
    operation_id="stream_message",
)
async def stream_message(
    conversation_id: UUID,
    body: SendMessageRequest,
    tenant: Annotated[TenantContext, Depends(get_tenant_context)],
    chat_service: Annotated[ChatService, Depends(get_chat_service)],
) -> StreamingResponse:
    """Stream token, warning, usage and done events.

    Input and lookup errors surface as regular HTTP errors because the first
    event is awaited before the response starts.
    """
    events = chat_service.stream_message(tenant, conversation_id, body.content)
    try:
        first = await events.__anext__()
    except StopAsyncIteration:
        first = None

    async def event_stream() -> AsyncIterator[str]:
        if first is None:
            return
        yield format_sse(first)
        try:
            async for event in events:
                yield format_sse(event)
        except AppError as e:
            LOGGER.error(f"Chat stream failed for conversation {conversation_id}: {e}", exc_info=True)
            yield f"event: error\ndata: {json.dumps({'error': e.message})}\n\n"

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable proxy buffering (Nginx)
        },
    )
