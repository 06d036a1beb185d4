from datetime import datetime, timezone
from typing import List
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from smile_api.errors import PersistenceError
from smile_api.models import Message, MessageRole, User

VALID_ROLES = {role.value for role in MessageRole}


def save_message(db: Session, user_id: UUID, role: str, content: str) -> Message:
    """Append one turn to the user's conversation log."""
    role_value = role.value if isinstance(role, MessageRole) else role
    if role_value not in VALID_ROLES:
        raise PersistenceError(f"Invalid role: {role_value!r}")
    if not content or not content.strip():
        raise PersistenceError("Message content is empty")

    try:
        if db.get(User, user_id) is None:
            raise PersistenceError(f"User {user_id} does not exist")

        message = Message(
            user_id=user_id,
            role=role_value,
            content=content,
            created_at=datetime.now(timezone.utc),
        )
        db.add(message)
        db.flush()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError(f"Failed to save message: {e}") from e
    return message


def get_recent_history(db: Session, user_id: UUID, limit: int) -> List[dict]:
    """Get the `limit` most recent turns, oldest first."""
    if not isinstance(limit, int) or isinstance(limit, bool) or limit < 1:
        raise ValueError(f"limit must be a positive integer, got {limit!r}")

    try:
        messages = (
            db.query(Message)
            .filter(Message.user_id == user_id)
            .order_by(Message.created_at.desc(), Message.id.desc())
            .limit(limit)
            .all()
        )
    except SQLAlchemyError as e:
        raise PersistenceError(f"Failed to load history: {e}") from e

    # Reverse to get chronological order
    messages = list(reversed(messages))

    return [{"role": msg.role, "content": msg.content} for msg in messages]
