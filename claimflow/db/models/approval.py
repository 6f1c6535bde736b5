"""Approval database models.

Stores claims, their ordered approver chain and the audit trail of every
change made to a chain.
"""

import uuid
from datetime import datetime
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.ext.orderinglist import ordering_list
from sqlalchemy.orm import relationship

from claimflow.db.base import Base


class Approval(Base):
    """
    A reimbursement claim and its approval chain.

    Drafts keep a free-form approver list; submission replaces it with the
    fixed manager -> HR -> Accounts chain.
    """
    __tablename__ = "approvals"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    unique_number = Column(String(64), nullable=False, unique=True, index=True)
    is_draft = Column(Boolean, nullable=False, default=False, index=True)

    # Claim payload
    budget = Column(Numeric(14, 2), nullable=False, default=0)
    reimbursement_type = Column(String(100), nullable=False, default="")
    purpose = Column(Text, nullable=False, default="")
    details = Column(Text, nullable=True)
    department = Column(String(255), nullable=True)

    # Requester
    created_by = Column(String(255), nullable=False, index=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    approvers = relationship(
        "ApproverStep",
        back_populates="approval",
        order_by="ApproverStep.position",
        collection_class=ordering_list("position"),
        cascade="all, delete-orphan",
    )
    events = relationship("ApprovalEvent", back_populates="approval", order_by="ApprovalEvent.created_at")

    def __repr__(self) -> str:
        return f"<Approval {self.unique_number} draft={self.is_draft}>"


class ApproverStep(Base):
    """One position in an approval chain."""
    __tablename__ = "approver_steps"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    approval_id = Column(Uuid(as_uuid=True), ForeignKey("approvals.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False)

    name = Column(String(255), nullable=False, index=True)  # lowercased email
    status = Column(String(20), nullable=False, default="Pending", index=True)
    comment = Column(Text, nullable=False, default="")
    updated_at = Column(DateTime, nullable=True)

    approval = relationship("Approval", back_populates="approvers")

    def __repr__(self) -> str:
        return f"<ApproverStep {self.position}:{self.name} [{self.status}]>"


class ApprovalEvent(Base):
    """
    Records every change to a chain: submissions, decisions and the
    privileged override/reset/reassign/delete operations.

    Events outlive a deleted approval; ``unique_number`` keeps them findable.
    """
    __tablename__ = "approval_events"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    approval_id = Column(Uuid(as_uuid=True), ForeignKey("approvals.id", ondelete="SET NULL"), nullable=True, index=True)
    unique_number = Column(String(64), nullable=False, index=True)

    kind = Column(String(50), nullable=False)
    actor = Column(String(255), nullable=False)

    # Step-level details (decision / override)
    step_position = Column(Integer, nullable=True)
    from_status = Column(String(20), nullable=True)
    to_status = Column(String(20), nullable=True)
    comment = Column(Text, nullable=True)

    extra_data = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    approval = relationship("Approval", back_populates="events")

    def __repr__(self) -> str:
        return f"<ApprovalEvent {self.unique_number} {self.kind} by {self.actor}>"
