import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Uuid

from claimflow.db.base import Base


class UsedToken(Base):
    """Registry of redeemed one-click mail tokens, keyed by JWT ID."""
    __tablename__ = "used_tokens"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    jti = Column(String(64), unique=True, nullable=False, index=True)  # JWT ID claim
    unique_number = Column(String(64), nullable=False)
    approver = Column(String(255), nullable=False)
    action = Column(String(20), nullable=False)
    used_at = Column(DateTime, default=datetime.utcnow)
    expires_at = Column(DateTime, nullable=False, index=True)
