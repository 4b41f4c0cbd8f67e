"""AI listener chat pipeline.

One user message runs through a strictly sequential pass:

    load & authorize -> persist user message -> title (first message only)
    -> touch activity -> analyze -> generate -> safety policy -> persist AI message

Only a missing/foreign conversation or a failed message write fails the
request. Title, analysis and generation failures degrade to fixed fallbacks,
recorded as ``Fallback`` outcomes so the cause is logged but never returned.
"""
from __future__ import annotations

import asyncio
import logging
import weakref
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Generic, List, Optional, Sequence, Tuple, TypeVar, Union

from sqlalchemy.exc import SQLAlchemyError

from calmspace.models.conversation import Conversation
from calmspace.models.message import Message, Sender
from calmspace.schemas.ai_chat_schema import AnalysisResult
from calmspace.services.conversation_store import ConversationStore, utcnow
from calmspace.services.errors import (
    AnalysisError,
    ConversationNotFoundError,
    GenerationError,
    TitleGenerationError,
)
from calmspace.services.model_pool import ModelClientPool
from calmspace.services.response_generator import ResponseGenerator
from calmspace.services.risk_analyzer import RiskAnalyzer
from calmspace.services.safety_policy import apply_safety_policy
from calmspace.services.title_service import TitleService, fallback_title

logger = logging.getLogger(__name__)

T = TypeVar("T")

FALLBACK_REPLY = "I'm having trouble responding right now. Please try again."


def fallback_analysis() -> AnalysisResult:
    return AnalysisResult(
        emotional_state="unknown",
        themes=[],
        risk_level=0,
        recommended_approach="listen",
    )


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Fallback(Generic[T]):
    value: T
    cause: BaseException


Outcome = Union[Ok[T], Fallback[T]]


@dataclass
class SendMessageResult:
    user_message: Message
    ai_message: Message
    analysis: AnalysisResult
    # Names of pipeline steps that fell back; internal telemetry only.
    fallbacks: List[str] = field(default_factory=list)


class ConversationLocks:
    """One asyncio.Lock per conversation id, dropped once nobody holds or awaits it."""

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[int, asyncio.Lock]" = weakref.WeakValueDictionary()

    def for_conversation(self, conversation_id: int) -> asyncio.Lock:
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[conversation_id] = lock
        return lock


class AiChatService:
    def __init__(
        self,
        store: ConversationStore,
        pool: ModelClientPool,
        *,
        locks: Optional[ConversationLocks] = None,
        analyzer: Optional[RiskAnalyzer] = None,
        generator: Optional[ResponseGenerator] = None,
        titles: Optional[TitleService] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.locks = locks or ConversationLocks()
        self.analyzer = analyzer or RiskAnalyzer(pool)
        self.generator = generator or ResponseGenerator(pool)
        self.titles = titles or TitleService(pool)
        self.clock = clock

    # ── Conversation queries ──────────────────────────────────────────────────

    def create_conversation(self, user_id: int) -> Conversation:
        conv = self.store.create_conversation(user_id, now=self.clock())
        logger.info("User %s started conversation %s", user_id, conv.id)
        return conv

    def list_conversations(self, user_id: int) -> List[Tuple[Conversation, Optional[Message]]]:
        return self.store.list_conversations(user_id)

    def get_conversation(self, user_id: int, conversation_id: int) -> Conversation:
        conv = self.store.find_conversation(conversation_id, user_id)
        if conv is None:
            raise ConversationNotFoundError(conversation_id)
        return conv

    # ── Message pipeline ──────────────────────────────────────────────────────

    async def process_user_message(self, user_id: int, conversation_id: int, content: str) -> SendMessageResult:
        # Serialized per conversation so the "first message" check and the
        # title write cannot race between concurrent requests.
        async with self.locks.for_conversation(conversation_id):
            return await self._process(user_id, conversation_id, content)

    async def _process(self, user_id: int, conversation_id: int, content: str) -> SendMessageResult:
        # 1. Load & authorize (ownership is part of the lookup).
        conversation = self.get_conversation(user_id, conversation_id)
        history: List[Message] = list(conversation.messages)
        fallbacks: List[str] = []

        # 2. Persist user message.
        user_message = self.store.create_message(conversation_id, Sender.USER, content)

        # 3. Title on the first message only.
        if not history:
            title = await self._title(content)
            if isinstance(title, Fallback):
                fallbacks.append("title")
            self._best_effort("title", lambda: self.store.update_conversation_title(conversation_id, title.value))

        # 4. Touch activity.
        self._best_effort("touch", lambda: self.store.touch_conversation(conversation_id, self.clock()))

        # 5. Analyze against the history before this message.
        analysis = await self._analyze(content, history)
        if isinstance(analysis, Fallback):
            fallbacks.append("analysis")

        # 6. Generate reply.
        draft = await self._generate(content, analysis.value, history)
        if isinstance(draft, Fallback):
            fallbacks.append("generation")

        # 7. Safety policy, applied to whichever draft we ended up with.
        reply = apply_safety_policy(analysis.value.risk_level, draft.value)

        # 8. Persist AI message.
        ai_message = self.store.create_message(conversation_id, Sender.AI, reply)

        if fallbacks:
            logger.warning("Conversation %s answered with fallbacks: %s", conversation_id, ", ".join(fallbacks))

        return SendMessageResult(
            user_message=user_message,
            ai_message=ai_message,
            analysis=analysis.value,
            fallbacks=fallbacks,
        )

    async def _title(self, content: str) -> Outcome[str]:
        try:
            return Ok(await self.titles.generate(content))
        except TitleGenerationError as e:
            logger.error("Title generation failed: %s (cause: %r)", e, e.__cause__)
            return Fallback(fallback_title(content), e)

    async def _analyze(self, content: str, history: Sequence[Message]) -> Outcome[AnalysisResult]:
        try:
            return Ok(await self.analyzer.analyze(content, history))
        except AnalysisError as e:
            logger.error("Analysis failed: %s (cause: %r)", e, e.__cause__)
            return Fallback(fallback_analysis(), e)

    async def _generate(self, content: str, analysis: AnalysisResult, history: Sequence[Message]) -> Outcome[str]:
        try:
            return Ok(await self.generator.generate(content, analysis, history))
        except GenerationError as e:
            logger.error("Response generation failed: %s (cause: %r)", e, e.__cause__)
            return Fallback(FALLBACK_REPLY, e)

    def _best_effort(self, step: str, write: Callable[[], object]) -> None:
        # Conversation metadata writes must not fail the request.
        try:
            write()
        except SQLAlchemyError:
            logger.exception("Conversation %s write failed; continuing", step)
            self.store.rollback()
