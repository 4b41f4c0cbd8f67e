from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session, selectinload

from calmspace.models.conversation import Conversation
from calmspace.models.message import Message, Sender


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConversationStore:
    """SQLAlchemy persistence for AI conversations and their messages."""

    def __init__(self, db: Session):
        self.db = db

    def find_conversation(self, conversation_id: int, owner_id: int) -> Optional[Conversation]:
        """Load a conversation scoped to its owner, messages in ascending order."""
        return (
            self.db.query(Conversation)
            .options(selectinload(Conversation.messages))
            .filter(Conversation.id == conversation_id, Conversation.user_id == owner_id)
            .first()
        )

    def create_conversation(self, owner_id: int, now: Optional[datetime] = None) -> Conversation:
        conv = Conversation(user_id=owner_id, last_activity_at=now or utcnow())
        self.db.add(conv)
        self.db.commit()
        self.db.refresh(conv)
        return conv

    def list_conversations(self, owner_id: int) -> List[Tuple[Conversation, Optional[Message]]]:
        """Owner's conversations, most recently active first, each with its latest message."""
        convs = (
            self.db.query(Conversation)
            .filter(Conversation.user_id == owner_id)
            .order_by(Conversation.last_activity_at.desc(), Conversation.id.desc())
            .all()
        )
        result = []
        for conv in convs:
            latest = (
                self.db.query(Message)
                .filter(Message.conversation_id == conv.id)
                .order_by(Message.created_at.desc(), Message.id.desc())
                .first()
            )
            result.append((conv, latest))
        return result

    def create_message(self, conversation_id: int, sender: Sender, content: str) -> Message:
        msg = Message(conversation_id=conversation_id, sender=sender, content=content)
        self.db.add(msg)
        self.db.commit()
        self.db.refresh(msg)
        return msg

    def update_conversation_title(self, conversation_id: int, title: str) -> bool:
        """Set the title only if none has been written yet. Returns True if this call wrote it."""
        updated = (
            self.db.query(Conversation)
            .filter(Conversation.id == conversation_id, Conversation.title.is_(None))
            .update({Conversation.title: title}, synchronize_session=False)
        )
        self.db.commit()
        return bool(updated)

    def touch_conversation(self, conversation_id: int, now: Optional[datetime] = None) -> None:
        (
            self.db.query(Conversation)
            .filter(Conversation.id == conversation_id)
            .update({Conversation.last_activity_at: now or utcnow()}, synchronize_session=False)
        )
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()
