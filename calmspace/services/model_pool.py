from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Sequence, TypeVar

from langchain_core.output_parsers import StrOutputParser
from langchain_core.prompts import ChatPromptTemplate

from calmspace.core.config import Settings
from calmspace.services.errors import ModelPoolConfigError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_RAW_PROMPT = ChatPromptTemplate.from_messages([("human", "{prompt}")])


class ModelHandle:
    """One Gemini API key bound to one model name."""

    def __init__(
        self,
        api_key: str,
        model_name: str,
        *,
        temperature: float = 0.7,
        max_output_tokens: int = 1024,
    ):
        self.api_key = api_key
        self.model_name = model_name
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self._llm: Any = None

    @property
    def label(self) -> str:
        # Never log the whole key.
        return f"{self.model_name}/...{self.api_key[-4:]}"

    def _chat_llm(self) -> Any:
        if self._llm is None:
            from langchain_google_genai import ChatGoogleGenerativeAI

            # Retries and timeouts are owned by ModelClientPool, so the client makes a single attempt.
            self._llm = ChatGoogleGenerativeAI(
                model=self.model_name,
                google_api_key=self.api_key,
                temperature=self.temperature,
                max_output_tokens=self.max_output_tokens,
                max_retries=1,
            )
        return self._llm

    async def ainvoke(self, prompt: ChatPromptTemplate, variables: dict) -> str:
        chain = prompt | self._chat_llm() | StrOutputParser()
        return await chain.ainvoke(variables)

    async def generate_text(self, prompt: str) -> str:
        return await self.ainvoke(_RAW_PROMPT, {"prompt": prompt})


@dataclass
class PoolState:
    """Process-wide pointer at the last known-good handle.

    Shared by every request; concurrent callers may rotate it twice or skip a
    handle, which is tolerated.
    """

    current_index: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def current(self, size: int) -> int:
        with self._lock:
            return self.current_index % size

    def rotate_from(self, index: int, size: int) -> int:
        with self._lock:
            self.current_index = (index + 1) % size
            return self.current_index


def parse_api_keys(raw: Optional[str]) -> list[str]:
    return [key.strip() for key in (raw or "").split(",") if key.strip()]


def error_status(exc: BaseException) -> Optional[int]:
    """Find an HTTP-like status on an exception or anything it was raised from."""
    seen: set[int] = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        for attr in ("status_code", "code", "status"):
            value = getattr(current, attr, None)
            if isinstance(value, int) and not isinstance(value, bool):
                return value
        response = getattr(current, "response", None)
        status = getattr(response, "status_code", None)
        if isinstance(status, int) and not isinstance(status, bool):
            return status
        current = current.__cause__ or current.__context__
    return None


def is_retryable(exc: BaseException) -> bool:
    status = error_status(exc)
    if status is None:
        # Network failure or timeout.
        return True
    return status == 429 or status >= 500


class ModelClientPool:
    """Runs model calls against a rotating list of API keys.

    A retryable failure (no status, 429, 5xx) moves the shared cursor to the
    next handle and tries again until every handle has been tried once. Any
    other status aborts immediately.
    """

    def __init__(
        self,
        handles: Sequence[ModelHandle],
        *,
        state: Optional[PoolState] = None,
        timeout: Optional[float] = None,
    ):
        if not handles:
            raise ModelPoolConfigError("At least one Gemini API key is required (GEMINI_API_KEYS).")
        self.handles = list(handles)
        self.state = state or PoolState()
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings, *, state: Optional[PoolState] = None) -> "ModelClientPool":
        keys = parse_api_keys(settings.GEMINI_API_KEYS)
        handles = [
            ModelHandle(
                key,
                settings.GEMINI_MODEL,
                temperature=settings.LLM_TEMPERATURE,
                max_output_tokens=settings.LLM_MAX_OUTPUT_TOKENS,
            )
            for key in keys
        ]
        pool = cls(handles, state=state, timeout=settings.LLM_REQUEST_TIMEOUT_SECONDS)
        logger.info("Model pool ready: %d key(s) for model %s", len(handles), settings.GEMINI_MODEL)
        return pool

    @property
    def size(self) -> int:
        return len(self.handles)

    async def _attempt(self, handle: ModelHandle, operation: Callable[[ModelHandle], Awaitable[T]]) -> T:
        if self.timeout is None:
            return await operation(handle)
        return await asyncio.wait_for(operation(handle), timeout=self.timeout)

    async def execute(self, operation: Callable[[ModelHandle], Awaitable[T]]) -> T:
        index = self.state.current(self.size)
        last_err: Optional[BaseException] = None

        for attempt in range(self.size):
            handle = self.handles[index]
            try:
                return await self._attempt(handle, operation)
            except Exception as e:
                last_err = e
                if not is_retryable(e):
                    logger.error(
                        "Model call failed with non-retryable status %s on %s: %s",
                        error_status(e), handle.label, e,
                    )
                    raise
                index = self.state.rotate_from(index, self.size)
                logger.warning(
                    "Model call failed on %s (attempt %d/%d, status=%s); rotating to key #%d. error=%s",
                    handle.label, attempt + 1, self.size, error_status(e), index, str(e) or type(e).__name__,
                )

        logger.error("All %d model key(s) failed", self.size)
        if last_err is None:
            raise RuntimeError("Model pool has no handles")
        raise last_err

    async def invoke(self, prompt: ChatPromptTemplate, variables: dict) -> str:
        return await self.execute(lambda handle: handle.ainvoke(prompt, variables))

    async def generate_text(self, prompt: str) -> str:
        return await self.execute(lambda handle: handle.generate_text(prompt))
