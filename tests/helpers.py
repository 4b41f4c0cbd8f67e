import asyncio

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import calmspace.models  # noqa: F401
from calmspace.core.database import Base
from calmspace.models.user import User
from calmspace.services.access_tokens import create_access_token


def make_session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def make_user(db, username: str) -> User:
    user = User(username=username)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def auth_headers(user_id: int) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


class StatusError(Exception):
    """Model error carrying an HTTP-like status, like the Gemini client errors."""

    def __init__(self, status_code: int, message: str = "model error"):
        super().__init__(message)
        self.status_code = status_code


class FakeHandle:
    """Stands in for ModelHandle; replies (text or exceptions) are consumed in call order."""

    def __init__(self, *replies, label: str = "fake"):
        self.replies = list(replies)
        self.calls = []
        self.label = label

    async def ainvoke(self, prompt, variables):
        self.calls.append(variables)
        if not self.replies:
            raise AssertionError("unexpected model call")
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return reply

    async def generate_text(self, prompt):
        return await self.ainvoke(None, {"prompt": prompt})


class SlowHandle(FakeHandle):
    async def ainvoke(self, prompt, variables):
        self.calls.append(variables)
        await asyncio.sleep(5)
        return "too late"
