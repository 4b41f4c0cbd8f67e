"""
Safety Policy
Appends fixed safety guidance to AI replies for high-risk messages.
Pure function, no I/O: the threshold and wording are constants.
"""
import logging

logger = logging.getLogger(__name__)

HIGH_RISK_THRESHOLD = 7

SAFETY_MESSAGE = (
    "\n\nIf you're going through a difficult time, please consider reaching out to a "
    "trusted adult or a mental health professional. You don't have to face this alone."
)


def requires_safety_message(risk_level: float) -> bool:
    return risk_level >= HIGH_RISK_THRESHOLD


def apply_safety_policy(risk_level: float, draft: str) -> str:
    """
    Returns the draft with SAFETY_MESSAGE appended when risk_level >= HIGH_RISK_THRESHOLD,
    otherwise the draft unchanged. The draft itself is never replaced.
    """
    if not requires_safety_message(risk_level):
        return draft

    logger.info("Safety policy: risk level %s >= %d, appending safety guidance", risk_level, HIGH_RISK_THRESHOLD)
    return draft + SAFETY_MESSAGE
