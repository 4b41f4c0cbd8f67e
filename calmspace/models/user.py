from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from calmspace.core.database import Base


class User(Base):
    """Platform account as seen by the AI listener: an owner for conversations.

    Accounts and credentials are managed by the platform's auth service; this
    table only needs the id carried in access tokens.
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(128), unique=True, index=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    conversations = relationship("Conversation", back_populates="owner", cascade="all, delete-orphan")
