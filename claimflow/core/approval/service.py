"""Approval service for managing claim approval chains.

Provides the persistence-backed API around the chain state machine: drafts,
submission, decisions with storage-level conditional updates, dashboard
listings and the privileged override operations. Methods flush but never
commit; the caller owns the transaction.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import and_, update
from sqlalchemy.orm import Session

from claimflow.core.config import Settings, get_settings
from claimflow.core.identity import normalize_email
from claimflow.db.models import Approval, ApprovalEvent, ApproverStep, ChatMention
from claimflow.services.directory import DirectoryLookup
from .chain import ChainBuilder, pending_step, proposed_name
from .errors import (
    AccessDeniedError,
    ApprovalNotFoundError,
    TurnViolation,
    TurnViolationReason,
    ValidationError,
)
from .machine import ApprovalChainMachine
from .states import DecisionAction, StepStatus, is_my_turn, parse_action

# Roles allowed to see every claim and to use the override operations
PRIVILEGED_ROLES = {"hr", "master"}

# Claim payload fields a requester may set
CLAIM_FIELDS = ("budget", "reimbursement_type", "purpose", "details", "department")


class EventKind(str, Enum):
    """Kinds of audit events recorded against a chain."""
    DRAFT_SAVED = "draft_saved"
    SUBMITTED = "submitted"
    CREATED = "created"
    DECISION = "decision"
    OVERRIDE = "override"
    RESET = "reset"
    REASSIGN = "reassign"
    DELETED = "deleted"
    MIGRATED = "migrated"
    BACKFILLED = "backfilled"


@dataclass
class DecisionOutcome:
    """A committed-to-be decision, enough to drive notifications."""
    approval: Approval
    position: int
    approver: str
    action: DecisionAction
    comment: str


def is_privileged(role: Optional[str]) -> bool:
    return str(role or "").lower() in PRIVILEGED_ROLES


class ApprovalService:
    """
    High-level service for claim approval chains.

    Handles:
    - Drafts and submission with the fixed chain
    - Approver decisions (sequential, single-turn)
    - Dashboard queries
    - Audited administrative overrides
    """

    def __init__(
        self,
        db: Session,
        settings: Optional[Settings] = None,
        directory: Optional[DirectoryLookup] = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.directory = directory or DirectoryLookup(db)
        self.chain_builder = ChainBuilder(self.directory, self.settings)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def find(self, unique_number: str) -> Optional[Approval]:
        return self.db.query(Approval).filter(Approval.unique_number == unique_number).first()

    def get(self, unique_number: str) -> Approval:
        approval = self.find(unique_number)
        if not approval:
            raise ApprovalNotFoundError(unique_number)
        return approval

    def _get_for_update(self, unique_number: str) -> Approval:
        approval = self.db.query(Approval).filter(
            Approval.unique_number == unique_number
        ).populate_existing().with_for_update().first()
        if not approval:
            raise ApprovalNotFoundError(unique_number)
        return approval

    def next_unique_number(self, year: Optional[int] = None) -> str:
        """Next sequential claim number, e.g. ``ZFL202601``."""
        year = year or datetime.utcnow().year
        prefix = f"{self.settings.unique_number_prefix}{year}"

        existing = self.db.query(Approval.unique_number).filter(
            Approval.unique_number.like(f"{prefix}%")
        ).all()

        highest = 0
        for (number,) in existing:
            suffix = number[len(prefix):]
            if suffix.isdigit():
                highest = max(highest, int(suffix))

        return f"{prefix}{highest + 1:02d}"

    # ------------------------------------------------------------------
    # Drafts and submission
    # ------------------------------------------------------------------

    def save_draft(
        self,
        created_by: str,
        fields: Dict[str, Any],
        approvers: Sequence[Any] = (),
        unique_number: Optional[str] = None,
    ) -> Approval:
        """
        Create or update a draft owned by ``created_by``.

        Draft approver lists stay free-form; entries are resolved to emails
        where the directory knows them.
        """
        created_by = normalize_email(created_by)
        unique_number = unique_number or self.next_unique_number()

        approval = self.find(unique_number)
        if approval is None:
            approval = Approval(unique_number=unique_number, created_by=created_by, is_draft=True)
            self.db.add(approval)
        elif not approval.is_draft:
            raise ValidationError(f"Claim {unique_number} was already submitted")
        elif approval.created_by != created_by:
            raise AccessDeniedError("Draft belongs to another requester")

        self._apply_fields(approval, fields)
        approval.approvers = [
            ApproverStep(**pending_step(self.directory.resolve(name) or name))
            for name in (proposed_name(a) for a in approvers)
            if name.strip()
        ]

        self._record_event(approval, EventKind.DRAFT_SAVED, created_by)
        self.db.flush()
        return approval

    def submit_draft(self, unique_number: str, actor: str, role: Optional[str] = None) -> Approval:
        """
        Turn a draft into a live claim with the fixed chain.

        Nothing changes when the manager cannot be resolved.
        """
        actor = normalize_email(actor)
        approval = self._get_for_update(unique_number)
        if not approval.is_draft:
            raise ApprovalNotFoundError(unique_number)
        if approval.created_by != actor and not is_privileged(role):
            raise AccessDeniedError("Only the requester can submit this draft")

        chain = self.chain_builder.build(list(approval.approvers))

        approval.approvers = [ApproverStep(**step) for step in chain]
        approval.is_draft = False
        self._record_event(approval, EventKind.SUBMITTED, actor)
        self.db.flush()
        return approval

    def create_approval(
        self,
        created_by: str,
        fields: Dict[str, Any],
        approvers: Sequence[Any],
        unique_number: Optional[str] = None,
    ) -> Approval:
        """Create a submitted claim directly, skipping the draft stage."""
        if not str(fields.get("reimbursement_type") or "").strip():
            raise ValidationError("reimbursement_type is required")
        if not approvers:
            raise ValidationError("approvers list is required")

        unique_number = unique_number or self.next_unique_number()
        if self.find(unique_number):
            raise ValidationError(f"Claim {unique_number} already exists")

        chain = self.chain_builder.build(list(approvers))

        approval = Approval(
            unique_number=unique_number,
            created_by=normalize_email(created_by),
            is_draft=False,
        )
        self._apply_fields(approval, fields)
        approval.approvers = [ApproverStep(**step) for step in chain]
        self.db.add(approval)

        self._record_event(approval, EventKind.CREATED, approval.created_by)
        self.db.flush()
        return approval

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def apply_decision(
        self,
        unique_number: str,
        identity: str,
        action: Any,
        comment: Optional[str] = None,
    ) -> DecisionOutcome:
        """
        Accept or reject the identity's step.

        The chain is re-read under a row lock and the step is written with a
        conditional update that only matches while it is still Pending, so a
        one-click link and an in-app click racing each other cannot both win.

        Raises:
            ApprovalNotFoundError: Unknown claim
            ValidationError: Bad action, or the claim is a draft
            TurnViolation: Not an approver, or not their turn
        """
        identity = normalize_email(identity)
        approval = self._get_for_update(unique_number)
        machine = ApprovalChainMachine(approval)
        index = machine.validate_decision(identity, action)

        decision = parse_action(action)
        step = approval.approvers[index]
        comment = comment or ""

        result = self.db.execute(
            update(ApproverStep)
            .where(
                and_(
                    ApproverStep.id == step.id,
                    ApproverStep.status == StepStatus.PENDING.value,
                )
            )
            .values(status=decision.value, comment=comment, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise TurnViolation(TurnViolationReason.NOT_YOUR_TURN, identity, unique_number)

        self.db.refresh(step)
        self._record_event(
            approval,
            EventKind.DECISION,
            identity,
            step_position=index,
            from_status=StepStatus.PENDING.value,
            to_status=decision.value,
            comment=comment or None,
        )
        self.db.flush()

        return DecisionOutcome(
            approval=approval,
            position=index,
            approver=step.name,
            action=decision,
            comment=comment,
        )

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    def list_all(self) -> List[Approval]:
        return self.db.query(Approval).order_by(Approval.created_at.desc()).all()

    def list_created_by(self, identity: str, drafts: Optional[bool] = None) -> List[Approval]:
        query = self.db.query(Approval).filter(Approval.created_by == normalize_email(identity))
        if drafts is not None:
            query = query.filter(Approval.is_draft == drafts)
        return query.order_by(Approval.created_at.desc()).all()

    def list_for_approver(self, identity: str) -> List[Approval]:
        """Claims whose chain lists the identity, whatever the status."""
        return self.db.query(Approval).join(Approval.approvers).filter(
            ApproverStep.name == normalize_email(identity)
        ).distinct().order_by(Approval.created_at.desc()).all()

    def list_needs_action(self, identity: str) -> List[Approval]:
        """Submitted claims where the identity currently holds the turn."""
        candidates = [normalize_email(identity)]
        display = self.directory.display_name(identity)
        if display:
            candidates.append(display)

        pending = self.db.query(Approval).join(Approval.approvers).filter(
            and_(
                Approval.is_draft.is_(False),
                ApproverStep.status == StepStatus.PENDING.value,
            )
        ).distinct().order_by(Approval.created_at.desc()).all()

        return [ap for ap in pending if any(is_my_turn(ap, c) for c in candidates)]

    def list_decided_by(self, identity: str, status: Any) -> List[Approval]:
        decision = parse_action(status)
        if decision is None:
            raise ValidationError(f"Invalid status: {status!r}")
        return self.db.query(Approval).join(Approval.approvers).filter(
            and_(
                ApproverStep.name == normalize_email(identity),
                ApproverStep.status == decision.value,
            )
        ).distinct().order_by(Approval.created_at.desc()).all()

    def list_mentioned(self, identity: str, limit: int = 300) -> List[Approval]:
        """Claims the identity was @mentioned on without being requester or approver."""
        me = normalize_email(identity)
        numbers = [
            n for (n,) in self.db.query(ChatMention.unique_number).filter(
                ChatMention.identity == me
            ).distinct().limit(limit).all()
        ]
        if not numbers:
            return []

        approvals = self.db.query(Approval).filter(
            and_(
                Approval.unique_number.in_(numbers),
                Approval.created_by != me,
            )
        ).order_by(Approval.created_at.desc()).all()
        return [ap for ap in approvals if all(step.name != me for step in ap.approvers)]

    def is_mentioned(self, unique_number: str, identity: str) -> bool:
        return self.db.query(ChatMention.id).filter(
            and_(
                ChatMention.unique_number == unique_number,
                ChatMention.identity == normalize_email(identity),
            )
        ).first() is not None

    def get_for_viewer(self, unique_number: str, identity: str, role: Optional[str] = None) -> Approval:
        """Load a claim if the caller is its requester, an approver, a mentioned expert or hr/master."""
        approval = self.get(unique_number)
        me = normalize_email(identity)

        if approval.created_by == me:
            return approval
        if any(step.name == me for step in approval.approvers):
            return approval
        if self.is_mentioned(unique_number, me) or is_privileged(role):
            return approval

        raise AccessDeniedError("Forbidden")

    def history(self, unique_number: str) -> List[ApprovalEvent]:
        return self.db.query(ApprovalEvent).filter(
            ApprovalEvent.unique_number == unique_number
        ).order_by(ApprovalEvent.created_at.asc()).all()

    # ------------------------------------------------------------------
    # Privileged overrides (outside the normal chain-advance protocol)
    # ------------------------------------------------------------------

    def override_step(
        self,
        unique_number: str,
        approver: str,
        status: Any,
        *,
        actor: str,
        reason: Optional[str] = None,
    ) -> Approval:
        """Force one step to any status."""
        try:
            new_status = StepStatus(status)
        except ValueError:
            raise ValidationError(f"Invalid status: {status!r}")

        approval = self._get_for_update(unique_number)
        index = next(
            (i for i, s in enumerate(approval.approvers) if s.name == normalize_email(approver)),
            -1,
        )
        if index == -1:
            raise ValidationError("Approver not found")

        step = approval.approvers[index]
        old_status = step.status
        step.status = new_status.value
        step.updated_at = None if new_status == StepStatus.PENDING else datetime.utcnow()

        self._record_event(
            approval,
            EventKind.OVERRIDE,
            actor,
            step_position=index,
            from_status=old_status,
            to_status=new_status.value,
            comment=reason,
        )
        self.db.flush()
        return approval

    def reset_chain(self, unique_number: str, *, actor: str, reason: Optional[str] = None) -> Approval:
        """Put every step back to Pending."""
        approval = self._get_for_update(unique_number)
        previous = [s.status for s in approval.approvers]
        for step in approval.approvers:
            step.status = StepStatus.PENDING.value
            step.comment = ""
            step.updated_at = None

        self._record_event(
            approval, EventKind.RESET, actor, comment=reason,
            extra_data={"previous_statuses": previous},
        )
        self.db.flush()
        return approval

    def reassign(
        self,
        unique_number: str,
        approvers: Iterable[str],
        *,
        actor: str,
        reason: Optional[str] = None,
    ) -> Approval:
        """Replace the chain with new approvers, all Pending."""
        names = [str(a or "").strip() for a in approvers]
        if not names or not all(names):
            raise ValidationError("Invalid approvers list")

        approval = self._get_for_update(unique_number)
        previous = [s.name for s in approval.approvers]
        approval.approvers = [
            ApproverStep(**pending_step(self.directory.resolve(name) or name)) for name in names
        ]

        self._record_event(
            approval, EventKind.REASSIGN, actor, comment=reason,
            extra_data={"previous": previous, "current": [s.name for s in approval.approvers]},
        )
        self.db.flush()
        return approval

    def delete(self, unique_number: str, *, actor: str, reason: Optional[str] = None) -> None:
        """Delete a claim; its audit trail is kept."""
        approval = self._get_for_update(unique_number)
        self.db.add(ApprovalEvent(
            approval_id=None,
            unique_number=unique_number,
            kind=EventKind.DELETED.value,
            actor=normalize_email(actor),
            comment=reason,
            extra_data={"approvers": [s.name for s in approval.approvers]},
        ))
        self.db.delete(approval)
        self.db.flush()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _apply_fields(self, approval: Approval, fields: Dict[str, Any]) -> None:
        for name in CLAIM_FIELDS:
            if name in fields and fields[name] is not None:
                setattr(approval, name, fields[name])
        if approval.budget is None:
            approval.budget = 0
        if approval.reimbursement_type is None:
            approval.reimbursement_type = ""
        if approval.purpose is None:
            approval.purpose = ""

    def _record_event(
        self,
        approval: Approval,
        kind: EventKind,
        actor: str,
        *,
        step_position: Optional[int] = None,
        from_status: Optional[str] = None,
        to_status: Optional[str] = None,
        comment: Optional[str] = None,
        extra_data: Optional[Dict[str, Any]] = None,
    ) -> ApprovalEvent:
        event = ApprovalEvent(
            unique_number=approval.unique_number,
            kind=kind.value,
            actor=normalize_email(actor),
            step_position=step_position,
            from_status=from_status,
            to_status=to_status,
            comment=comment,
            extra_data=extra_data or {},
        )
        event.approval = approval
        self.db.add(event)
        return event
