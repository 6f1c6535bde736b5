"""Approval chain module for ClaimFlow.

Implements the sequential manager -> HR -> Accounts approval chain, its turn
rules and the persistence-backed service around it.
"""

from .states import StepStatus, DecisionAction, ChainStatus, is_my_turn, derive_chain_status
from .errors import ApprovalError, ValidationError, TurnViolation, TurnViolationReason
from .machine import ApprovalChainMachine
from .service import ApprovalService, DecisionOutcome

__all__ = [
    "StepStatus",
    "DecisionAction",
    "ChainStatus",
    "is_my_turn",
    "derive_chain_status",
    "ApprovalError",
    "ValidationError",
    "TurnViolation",
    "TurnViolationReason",
    "ApprovalChainMachine",
    "ApprovalService",
    "DecisionOutcome",
]
