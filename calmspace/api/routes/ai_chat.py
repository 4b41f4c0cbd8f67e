import logging

from fastapi import APIRouter, Depends, HTTPException

from calmspace.api.dependencies import get_ai_chat_service
from calmspace.api.security import get_current_user
from calmspace.models.user import User
from calmspace.schemas.ai_chat_schema import (
    ConversationResponse,
    ConversationSummary,
    CreateMessageRequest,
    MessageResponse,
    SendMessageResponse,
)
from calmspace.services.ai_chat_service import AiChatService
from calmspace.services.errors import ConversationNotFoundError

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/conversations", response_model=list[ConversationSummary])
def list_conversations(
    user: User = Depends(get_current_user),
    service: AiChatService = Depends(get_ai_chat_service),
):
    items = []
    for conv, latest in service.list_conversations(user.id):
        items.append(
            ConversationSummary(
                id=conv.id,
                user_id=conv.user_id,
                title=conv.title,
                last_activity_at=conv.last_activity_at,
                created_at=conv.created_at,
                messages=[MessageResponse.model_validate(latest)] if latest is not None else [],
            )
        )
    return items


@router.post("/conversations", response_model=ConversationResponse, status_code=201)
def create_conversation(
    user: User = Depends(get_current_user),
    service: AiChatService = Depends(get_ai_chat_service),
):
    conv = service.create_conversation(user.id)
    return ConversationResponse.model_validate(conv)


@router.get("/conversations/{conversation_id}", response_model=ConversationResponse)
def get_conversation(
    conversation_id: int,
    user: User = Depends(get_current_user),
    service: AiChatService = Depends(get_ai_chat_service),
):
    try:
        conv = service.get_conversation(user.id, conversation_id)
    except ConversationNotFoundError:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return ConversationResponse.model_validate(conv)


@router.post("/conversations/{conversation_id}/message", response_model=SendMessageResponse, status_code=201)
async def send_message(
    conversation_id: int,
    request: CreateMessageRequest,
    user: User = Depends(get_current_user),
    service: AiChatService = Depends(get_ai_chat_service),
):
    try:
        result = await service.process_user_message(user.id, conversation_id, request.content)
    except ConversationNotFoundError:
        raise HTTPException(status_code=404, detail="Conversation not found")

    return SendMessageResponse(
        user_message=MessageResponse.model_validate(result.user_message),
        ai_message=MessageResponse.model_validate(result.ai_message),
        analysis=result.analysis,
    )
