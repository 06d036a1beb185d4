import uuid

from sqlalchemy import Column, DateTime, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from smile_api.database import Base


class User(Base):
    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("channel", "external_user_id", name="uq_users_channel_external_user_id"),)

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    channel = Column(Text, nullable=False)  # whatsapp
    external_user_id = Column(Text, nullable=False)  # e.g. whatsapp:+393331234567
    created_at = Column(DateTime(timezone=True), nullable=False)

    messages = relationship(
        "Message",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
