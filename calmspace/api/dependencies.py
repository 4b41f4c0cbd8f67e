from functools import lru_cache
from typing import Generator

from fastapi import Depends
from sqlalchemy.orm import Session

from calmspace.core.config import settings
from calmspace.core.database import SessionLocal
from calmspace.services.ai_chat_service import AiChatService, ConversationLocks
from calmspace.services.conversation_store import ConversationStore
from calmspace.services.model_pool import ModelClientPool


def get_db() -> Generator:
    """
    Dependency Injection function to get a database session.
    It ensures the database connection is closed after the request is finished.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@lru_cache(maxsize=1)
def get_model_pool() -> ModelClientPool:
    """Process-wide pool; its key cursor is shared by every request."""
    return ModelClientPool.from_settings(settings)


@lru_cache(maxsize=1)
def get_conversation_locks() -> ConversationLocks:
    return ConversationLocks()


def get_ai_chat_service(
    db: Session = Depends(get_db),
    pool: ModelClientPool = Depends(get_model_pool),
    locks: ConversationLocks = Depends(get_conversation_locks),
) -> AiChatService:
    return AiChatService(ConversationStore(db), pool, locks=locks)
