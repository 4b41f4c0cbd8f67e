import logging
from typing import Sequence

from langchain_core.prompts import ChatPromptTemplate

from calmspace.models.message import Message
from calmspace.schemas.ai_chat_schema import AnalysisResult
from calmspace.services.errors import GenerationError
from calmspace.services.model_pool import ModelClientPool
from calmspace.services.prompt_utils import format_history

logger = logging.getLogger(__name__)

HISTORY_WINDOW = 5

# ── shared system prompt ──────────────────────────────────────────────────────
SYSTEM_PROMPT = """You are a compassionate, non-judgmental AI listener for students facing mental health challenges.
Your role is to:

Listen empathetically and validate feelings
Use open-ended questions and reflective statements
Encourage self-reflection and coping strategies
NEVER diagnose, prescribe medication, or give medical advice
If riskLevel is high (7+), gently suggest professional help
Always prioritize safety and well-being"""

_CONTEXT_PROMPT = """Current User Analysis:
- Emotional State: {emotional_state}
- Themes: {themes}
- Risk Level: {risk_level}
- Recommended Approach: {recommended_approach}

Conversation History (last 5 messages):
{history}

User's Latest Message: "{content}"

Draft a compassionate, short, and supportive response."""


def _build_prompt() -> ChatPromptTemplate:
    return ChatPromptTemplate.from_messages([
        ("system", SYSTEM_PROMPT),
        ("human", _CONTEXT_PROMPT),
    ])


class ResponseGenerator:
    def __init__(self, pool: ModelClientPool):
        self.pool = pool
        self.prompt = _build_prompt()

    async def generate(self, content: str, analysis: AnalysisResult, history: Sequence[Message]) -> str:
        """Return the model's reply verbatim; the safety policy is applied by the caller."""
        variables = {
            "emotional_state": analysis.emotional_state,
            "themes": ", ".join(analysis.themes),
            "risk_level": analysis.risk_level,
            "recommended_approach": analysis.recommended_approach,
            "history": format_history(history, HISTORY_WINDOW),
            "content": content,
        }
        try:
            response = await self.pool.invoke(self.prompt, variables)
        except Exception as e:
            raise GenerationError("Response generation failed") from e

        logger.info("Generated reply (length=%d chars)", len(response))
        return response
