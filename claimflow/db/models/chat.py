"""Claim chat messages and their @mentions."""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, ForeignKey, Integer, Text, Uuid
from sqlalchemy.orm import relationship

from claimflow.db.base import Base


class ChatMessage(Base):
    """
    A message posted on a claim's discussion thread.

    Being mentioned grants read-only "expert" access to the claim.
    """
    __tablename__ = "chat_messages"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    unique_number = Column(String(64), nullable=False, index=True)
    author = Column(String(255), nullable=False)
    text = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    mention_rows = relationship(
        "ChatMention",
        back_populates="message",
        order_by="ChatMention.position",
        cascade="all, delete-orphan",
    )

    @property
    def mentions(self) -> list[str]:
        return [m.identity for m in self.mention_rows]

    def __repr__(self) -> str:
        return f"<ChatMessage {self.unique_number} by {self.author}>"


class ChatMention(Base):
    """One lowercased identity addressed with ``@`` in a message."""
    __tablename__ = "chat_mentions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    message_id = Column(Uuid(as_uuid=True), ForeignKey("chat_messages.id", ondelete="CASCADE"), nullable=False, index=True)
    unique_number = Column(String(64), nullable=False, index=True)
    identity = Column(String(255), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)

    message = relationship("ChatMessage", back_populates="mention_rows")
