"""Approval chain states and turn computation.

A claim carries an ordered chain of approver steps. Each step moves at most
once, from PENDING to ACCEPTED or REJECTED:

    step[0] ──► step[1] ──► step[2]
    manager      HR          Accounts

    ┌─────────┐  accept   ┌──────────┐
    │ PENDING │──────────►│ ACCEPTED │
    └────┬────┘           └──────────┘
         │ reject         ┌──────────┐
         └───────────────►│ REJECTED │
                          └──────────┘

The "current" step is the first PENDING one. Only its approver may act, and
only while the claim is not a draft. A REJECTED step halts the chain: the
first pending step after it never becomes actionable because the chain-level
status is already terminal.

The functions here take any objects exposing ``name``/``status`` (steps) and
``approvers``/``is_draft`` (approvals), so they work on ORM rows and API
schemas alike.
"""

from enum import Enum
from typing import Any, Optional, Sequence, Set

from claimflow.core.identity import identity_matches, normalize_email


class StepStatus(str, Enum):
    """Status of one approver step."""

    PENDING = "Pending"
    ACCEPTED = "Accepted"
    REJECTED = "Rejected"


class DecisionAction(str, Enum):
    """Decisions an approver can take on their step."""

    ACCEPTED = "Accepted"
    REJECTED = "Rejected"


class ChainStatus(str, Enum):
    """Derived status of a whole chain (never stored)."""

    DRAFT = "Draft"
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


# Chain statuses after which no approver can act
TERMINAL_CHAIN_STATUSES: Set[ChainStatus] = {
    ChainStatus.APPROVED,
    ChainStatus.REJECTED,
}


def _status(step: Any) -> str:
    status = getattr(step, "status", None)
    return status.value if isinstance(status, Enum) else str(status or "")


def parse_action(value: Any) -> Optional[DecisionAction]:
    """Return the decision for an exact action value, or None."""
    if isinstance(value, DecisionAction):
        return value
    try:
        return DecisionAction(value)
    except ValueError:
        return None


def first_pending_index(steps: Sequence[Any]) -> int:
    """Index of the first PENDING step, -1 if none."""
    for index, step in enumerate(steps or []):
        if _status(step) == StepStatus.PENDING.value:
            return index
    return -1


def find_step_index(steps: Sequence[Any], identity: str) -> int:
    """Index of the first step that refers to ``identity`` (tolerant), -1 if none."""
    for index, step in enumerate(steps or []):
        if identity_matches(getattr(step, "name", None), identity):
            return index
    return -1


def exact_step_index(steps: Sequence[Any], identity: str) -> int:
    """Index of the step whose name equals ``identity`` exactly, -1 if none."""
    wanted = normalize_email(identity)
    if not wanted:
        return -1
    for index, step in enumerate(steps or []):
        if normalize_email(getattr(step, "name", None)) == wanted:
            return index
    return -1


def next_pending_step(steps: Sequence[Any]) -> Optional[Any]:
    """The step currently holding the turn, if any."""
    index = first_pending_index(steps)
    return steps[index] if index != -1 else None


def derive_chain_status(approval: Any) -> ChainStatus:
    """Compute the chain-level status shown on dashboards."""
    if getattr(approval, "is_draft", False):
        return ChainStatus.DRAFT

    steps = list(getattr(approval, "approvers", None) or [])
    statuses = [_status(step) for step in steps]
    if StepStatus.REJECTED.value in statuses:
        return ChainStatus.REJECTED
    if steps and all(s == StepStatus.ACCEPTED.value for s in statuses):
        return ChainStatus.APPROVED
    return ChainStatus.PENDING


def is_my_turn(approval: Any, identity: str) -> bool:
    """Check whether ``identity`` is the approver who must act next."""
    if getattr(approval, "is_draft", False):
        return False
    if derive_chain_status(approval) in TERMINAL_CHAIN_STATUSES:
        return False

    steps = list(getattr(approval, "approvers", None) or [])
    first_pending = first_pending_index(steps)
    my_index = find_step_index(steps, identity)
    return first_pending != -1 and my_index == first_pending
