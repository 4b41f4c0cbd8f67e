from datetime import datetime
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from calmspace.models.message import Sender


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class CreateMessageRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=1000, description="Message content")


class AnalysisResult(_CamelModel):
    """Risk analysis of one user message. Transient: returned to the client, never stored."""

    emotional_state: str = Field(..., description="e.g. anxious, hopeless, calm")
    themes: List[str] = Field(default_factory=list)
    # Not range-checked: whatever the model returns is fed to the safety policy.
    risk_level: Union[int, float] = Field(..., description="Risk level from 0 to 10")
    recommended_approach: str


class MessageResponse(_CamelModel):
    id: int
    conversation_id: int
    sender: Sender
    content: str
    created_at: datetime


class ConversationResponse(_CamelModel):
    id: int
    user_id: int
    title: Optional[str] = None
    last_activity_at: datetime
    created_at: datetime
    messages: List[MessageResponse] = Field(default_factory=list)


class ConversationSummary(ConversationResponse):
    """Conversation list item; `messages` holds at most the latest message as a preview."""


class SendMessageResponse(_CamelModel):
    user_message: MessageResponse
    ai_message: MessageResponse
    analysis: AnalysisResult
