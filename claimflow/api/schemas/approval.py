"""Request and response schemas for claims and their approval chains."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field

from claimflow.core.approval.states import StepStatus, derive_chain_status, next_pending_step


class ApproverStepRead(BaseModel):
    name: str
    status: str
    comment: str = ""
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ApprovalRead(BaseModel):
    unique_number: str
    is_draft: bool
    budget: float = 0
    reimbursement_type: str = ""
    purpose: str = ""
    details: Optional[str] = None
    department: Optional[str] = None
    created_by: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    approvers: List[ApproverStepRead] = []
    status: str = ""
    current_approver: Optional[str] = None

    class Config:
        from_attributes = True

    @classmethod
    def from_approval(cls, approval: Any) -> "ApprovalRead":
        """Serialize an approval with its derived chain status."""
        read = cls.model_validate(approval)
        read.status = derive_chain_status(approval).value
        if not approval.is_draft and read.status == StepStatus.PENDING.value:
            step = next_pending_step(approval.approvers)
            read.current_approver = step.name if step is not None else None
        return read


# An approver may be sent as a plain identity or as {"name": ...}
ApproverEntry = Union[str, Dict[str, Any]]


class ClaimFields(BaseModel):
    budget: Optional[Decimal] = Field(None, ge=0)
    reimbursement_type: Optional[str] = None
    purpose: Optional[str] = None
    details: Optional[str] = None
    department: Optional[str] = None

    def claim_fields(self) -> Dict[str, Any]:
        return self.model_dump(include={"budget", "reimbursement_type", "purpose", "details", "department"})


class DraftCreate(ClaimFields):
    unique_number: Optional[str] = None
    approvers: List[ApproverEntry] = []


class ApprovalCreate(ClaimFields):
    unique_number: Optional[str] = None
    reimbursement_type: str = Field(..., min_length=1)
    approvers: List[ApproverEntry] = Field(..., min_length=1)


class DecisionRequest(BaseModel):
    status: str = Field(..., description="Accepted or Rejected")
    comment: Optional[str] = None


class NextIdResponse(BaseModel):
    unique_number: str


class ApprovalEventRead(BaseModel):
    id: UUID
    unique_number: str
    kind: str
    actor: str
    step_position: Optional[int] = None
    from_status: Optional[str] = None
    to_status: Optional[str] = None
    comment: Optional[str] = None
    extra_data: Optional[Dict[str, Any]] = None
    created_at: datetime

    class Config:
        from_attributes = True


class OverrideRequest(BaseModel):
    approver: str
    status: str
    reason: Optional[str] = None


class ResetRequest(BaseModel):
    reason: Optional[str] = None


class ReassignRequest(BaseModel):
    approvers: List[str] = Field(..., min_length=1)
    reason: Optional[str] = None
