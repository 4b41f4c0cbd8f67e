"""Error types raised by the AI chat services.

Only ``ConversationNotFoundError`` is meant to reach the HTTP layer; the
analysis, generation and title errors are absorbed by the chat pipeline.
"""


class ConversationNotFoundError(LookupError):
    """Conversation does not exist or is not owned by the caller."""

    def __init__(self, conversation_id: int):
        super().__init__(f"Conversation {conversation_id} not found")
        self.conversation_id = conversation_id


class ModelPoolConfigError(RuntimeError):
    """No usable Gemini API key was configured."""


class AnalysisError(RuntimeError):
    """Risk analysis failed or returned an unparseable verdict."""


class GenerationError(RuntimeError):
    """The listener reply could not be generated."""


class TitleGenerationError(RuntimeError):
    """The conversation title could not be generated."""
