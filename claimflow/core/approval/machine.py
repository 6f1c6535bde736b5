"""Approval chain state machine.

Validates and applies approver decisions against an in-memory chain. The
persistence layer (:mod:`claimflow.core.approval.service`) re-reads the chain,
asks the machine which step may move, and then performs a conditional update
so that two concurrent callers can never both succeed.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from .errors import TurnViolation, TurnViolationReason, ValidationError
from .states import (
    ChainStatus,
    DecisionAction,
    derive_chain_status,
    exact_step_index,
    first_pending_index,
    is_my_turn,
    parse_action,
)
from claimflow.core.identity import normalize_email


@dataclass
class DecisionRecord:
    """What a successful decision changed."""
    position: int
    approver: str
    action: DecisionAction
    comment: str
    updated_at: datetime


class ApprovalChainMachine:
    """
    Sequential, single-turn approval semantics over an ordered step list.

    The wrapped approval only needs ``approvers`` (steps with ``name``,
    ``status``, ``comment``, ``updated_at``), ``is_draft`` and optionally
    ``unique_number``.
    """

    def __init__(self, approval: Any):
        self.approval = approval

    @property
    def steps(self) -> list:
        return list(getattr(self.approval, "approvers", None) or [])

    @property
    def status(self) -> ChainStatus:
        return derive_chain_status(self.approval)

    @property
    def current_index(self) -> int:
        """Index of the step holding the turn, -1 when none can act."""
        if self.status != ChainStatus.PENDING:
            return -1
        return first_pending_index(self.steps)

    def can_act(self, identity: str) -> bool:
        return is_my_turn(self.approval, identity)

    def validate_decision(self, identity: str, action: Any) -> int:
        """
        Check every precondition of a decision without mutating anything.

        Returns:
            Index of the step the identity may decide

        Raises:
            ValidationError: Bad action value, or the approval is a draft
            TurnViolation: Identity is not on the chain, or not its turn
        """
        unique_number = getattr(self.approval, "unique_number", None)

        if parse_action(action) is None:
            raise ValidationError(f"Invalid status: {action!r}")
        if getattr(self.approval, "is_draft", False):
            raise ValidationError("Drafts cannot be approved or rejected")

        index = exact_step_index(self.steps, identity)
        if index == -1:
            raise TurnViolation(TurnViolationReason.NOT_AN_APPROVER, identity, unique_number)

        if not self.can_act(identity) or index != self.current_index:
            raise TurnViolation(TurnViolationReason.NOT_YOUR_TURN, identity, unique_number)

        return index

    def apply_decision(
        self,
        identity: str,
        action: Any,
        comment: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> DecisionRecord:
        """
        Record a decision on the identity's step.

        Only the decided step changes: its status, comment and timestamp.
        """
        index = self.validate_decision(identity, action)
        decision = parse_action(action)
        step = self.steps[index]

        step.status = decision.value
        step.comment = comment or ""
        step.updated_at = now or datetime.utcnow()

        return DecisionRecord(
            position=index,
            approver=normalize_email(step.name),
            action=decision,
            comment=step.comment,
            updated_at=step.updated_at,
        )
