from smile_api.models.message import Message, MessageRole
from smile_api.models.user import User

__all__ = [
    "User",
    "Message",
    "MessageRole",
]
