from calmspace.models.user import User
from calmspace.models.conversation import Conversation
from calmspace.models.message import Message, Sender

__all__ = ["User", "Conversation", "Message", "Sender"]
