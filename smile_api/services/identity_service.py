from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from smile_api.errors import MalformedInputError, PersistenceError
from smile_api.logging_config import get_logger
from smile_api.models import User

logger = get_logger("identity_service")


def _find_user(db: Session, channel: str, external_user_id: str) -> Optional[User]:
    return (
        db.query(User)
        .filter(User.channel == channel, User.external_user_id == external_user_id)
        .first()
    )


def resolve_user_id(db: Session, channel: str, external_user_id: str) -> UUID:
    """
    Find user by (channel, external_user_id) or create a new one.

    Must run before any other pending write in the session: a lost
    first-contact race rolls the session back and re-reads the winner's row.
    """
    channel = (channel or "").strip()
    external_user_id = (external_user_id or "").strip()
    if not channel or not external_user_id:
        raise MalformedInputError("channel and external_user_id are required")

    try:
        user = _find_user(db, channel, external_user_id)
        if user:
            return user.id

        user = User(channel=channel, external_user_id=external_user_id, created_at=datetime.now(timezone.utc))
        db.add(user)
        db.flush()
        logger.info(
            "User created",
            extra={"context": {"user_id": str(user.id), "channel": channel}},
        )
        return user.id
    except IntegrityError:
        db.rollback()
        logger.info(
            "Concurrent first contact, re-reading user",
            extra={"context": {"channel": channel}},
        )
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError(f"User lookup failed: {e}") from e

    try:
        user = _find_user(db, channel, external_user_id)
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError(f"User lookup failed: {e}") from e
    if not user:
        raise PersistenceError(f"User for {channel} vanished after unique violation")
    return user.id
