from sqlalchemy import ForeignKey, String, DateTime, Index, JSON
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from datetime import datetime, timezone
from typing import Any, List


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class User(Base):
    """ Per-user record: identity, display name and the conversation index """
    __tablename__ = "users"

    identity_key: Mapped[str] = mapped_column(String(320), primary_key=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, index=True)
    display_name: Mapped[str] = mapped_column(String(100))
    conversations: Mapped[List[dict[str, Any]]] = mapped_column(JSON, default=list)
    index_version: Mapped[int] = mapped_column(default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class Conversation(Base):
    """ Per-conversation message log header holding the sequence counter """
    __tablename__ = "conversations"

    id: Mapped[str] = mapped_column(String(512), primary_key=True)
    last_seq: Mapped[int] = mapped_column(default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    messages: Mapped[List["Message"]] = relationship(
        "Message",
        back_populates="conversation",
        order_by="Message.seq"
    )


class Message(Base):
    __tablename__ = "messages"

    __table_args__ = (
        Index('ix_messages_conversation_seq', 'conversation_id', 'seq', unique=True),
        Index('ix_messages_conversation_message', 'conversation_id', 'message_id', unique=True),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    conversation_id: Mapped[str] = mapped_column(ForeignKey("conversations.id"))
    seq: Mapped[int]
    message_id: Mapped[str] = mapped_column(String(512))
    record: Mapped[dict[str, Any]] = mapped_column(JSON)
    appended_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    conversation: Mapped["Conversation"] = relationship(
        "Conversation",
        back_populates="messages"
    )
