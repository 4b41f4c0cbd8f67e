"""
Risk Analyzer
Asks the model for a structured mental-health reading of a user message:
emotional state, themes, a 0-10 risk level and a suggested approach.
"""
import json
import logging
from typing import Sequence

from langchain_core.prompts import ChatPromptTemplate
from pydantic import ValidationError

from calmspace.models.message import Message
from calmspace.schemas.ai_chat_schema import AnalysisResult
from calmspace.services.errors import AnalysisError
from calmspace.services.model_pool import ModelClientPool
from calmspace.services.prompt_utils import format_history, strip_code_fences

logger = logging.getLogger(__name__)

HISTORY_WINDOW = 3

_ANALYSIS_PROMPT = """Analyze the following message and conversation history from a mental health perspective.
Return ONLY a raw JSON object (no markdown formatting) with the following structure:
{{
  "emotionalState": string (e.g., "anxious", "hopeless", "calm"),
  "themes": string[] (array of key themes),
  "riskLevel": number (0-10, where 10 is immediate danger),
  "recommendedApproach": string (brief suggestion for the responder)
}}

User Message: "{content}"

Previous Context (last 3 messages):
{history}"""


def parse_analysis(text: str) -> AnalysisResult:
    """Parse the model's verdict. No repair is attempted."""
    clean = strip_code_fences(text)
    try:
        return AnalysisResult.model_validate(json.loads(clean))
    except (json.JSONDecodeError, ValidationError) as e:
        logger.error("Failed to parse analysis JSON: %.120s", clean)
        raise AnalysisError("Model returned an invalid analysis") from e


class RiskAnalyzer:
    def __init__(self, pool: ModelClientPool):
        self.pool = pool
        self.prompt = ChatPromptTemplate.from_messages([("human", _ANALYSIS_PROMPT)])

    async def analyze(self, content: str, history: Sequence[Message]) -> AnalysisResult:
        variables = {"content": content, "history": format_history(history, HISTORY_WINDOW)}
        try:
            text = await self.pool.invoke(self.prompt, variables)
        except Exception as e:
            raise AnalysisError("Analysis request failed") from e

        analysis = parse_analysis(text)
        logger.debug(
            "Analysis: state=%s risk=%s themes=%s",
            analysis.emotional_state, analysis.risk_level, analysis.themes,
        )
        return analysis
