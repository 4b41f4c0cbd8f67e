from __future__ import annotations

from langchain_core.prompts import ChatPromptTemplate

from calmspace.services.errors import TitleGenerationError
from calmspace.services.model_pool import ModelClientPool

FALLBACK_TITLE_LENGTH = 30

_TITLE_PROMPT = ChatPromptTemplate.from_messages(
    [
        (
            "human",
            "Summarize this message into a short conversation title "
            "(3-8 words, natural and empathetic): '{message}'",
        ),
    ]
)


def clean_title(raw: str) -> str:
    # Models tend to wrap the title in quotes.
    title = raw.strip()
    if title[:1] in ("'", '"'):
        title = title[1:]
    if title[-1:] in ("'", '"'):
        title = title[:-1]
    return title.strip()


def fallback_title(content: str) -> str:
    if len(content) > FALLBACK_TITLE_LENGTH:
        return content[:FALLBACK_TITLE_LENGTH] + "..."
    return content


class TitleService:
    def __init__(self, pool: ModelClientPool):
        self.pool = pool

    async def generate(self, first_message: str) -> str:
        try:
            raw = await self.pool.invoke(_TITLE_PROMPT, {"message": first_message})
        except Exception as e:
            raise TitleGenerationError("Title request failed") from e

        title = clean_title(raw)
        if not title:
            raise TitleGenerationError("Model returned an empty title")
        return title[:255]
