"""Errors raised by the approval chain."""

from enum import Enum
from typing import Optional


class ApprovalError(Exception):
    """Base class for approval workflow errors."""


class ValidationError(ApprovalError):
    """Malformed input: bad action, missing manager, decision on a draft."""


class TurnViolationReason(str, Enum):
    NOT_AN_APPROVER = "not_an_approver"
    NOT_YOUR_TURN = "not_your_turn"


class TurnViolation(ApprovalError):
    """Raised when the actor is not the approver currently holding the turn."""

    def __init__(self, reason: TurnViolationReason, identity: str, unique_number: Optional[str] = None):
        if reason == TurnViolationReason.NOT_AN_APPROVER:
            message = "Not your approval to act on"
        else:
            message = "Not your turn"
        super().__init__(message)
        self.reason = reason
        self.identity = identity
        self.unique_number = unique_number


class ApprovalNotFoundError(ApprovalError):
    """Raised when no approval exists for a unique number."""

    def __init__(self, unique_number: str):
        super().__init__(f"Approval {unique_number} not found")
        self.unique_number = unique_number


class AccessDeniedError(ApprovalError):
    """Raised when the caller may not see or change an approval."""
