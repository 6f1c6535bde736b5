"""Batch repair operations over stored approval chains.

Both operations are idempotent: a second run finds nothing to change. Each
changed approval gets an audit event. Nothing is committed here.
"""

import logging
from typing import Dict

from sqlalchemy.orm import Session

from claimflow.core.approval.chain import pending_step
from claimflow.core.approval.service import EventKind
from claimflow.core.approval.states import StepStatus
from claimflow.core.config import Settings
from claimflow.core.identity import is_email, normalize_email
from claimflow.db.models import Approval, ApprovalEvent, ApproverStep
from claimflow.services.directory import DirectoryLookup

logger = logging.getLogger(__name__)


def migrate_approvers_to_email(
    db: Session,
    directory: DirectoryLookup,
    actor: str,
    dry_run: bool = False,
) -> Dict[str, int]:
    """
    Rewrite step identities stored as display names to directory emails.

    Steps whose name cannot be resolved are left untouched.

    Returns:
        ``{"inspected": approvals looked at, "changed": approvals rewritten}``
    """
    inspected = changed = 0

    for approval in db.query(Approval).order_by(Approval.created_at.asc()).all():
        inspected += 1
        rewrites = []
        for step in approval.approvers:
            if is_email(step.name):
                continue
            email = directory.resolve(step.name)
            if email and email != step.name:
                rewrites.append((step, email))

        if not rewrites:
            continue
        changed += 1
        if dry_run:
            continue

        mapping = {}
        for step, email in rewrites:
            mapping[step.name] = email
            step.name = email
        db.add(ApprovalEvent(
            approval=approval,
            unique_number=approval.unique_number,
            kind=EventKind.MIGRATED.value,
            actor=normalize_email(actor),
            extra_data={"renamed": mapping},
        ))

    if not dry_run:
        db.flush()
    logger.info(
        "Approver migration%s: inspected=%d changed=%d",
        " (dry run)" if dry_run else "", inspected, changed,
    )
    return {"inspected": inspected, "changed": changed}


def backfill_fixed_chain(
    db: Session,
    settings: Settings,
    actor: str,
    dry_run: bool = False,
) -> Dict[str, int]:
    """
    Complete chains created before HR and Accounts were part of every claim.

    Applies to submitted claims whose first step is Accepted; the missing
    HR/Accounts steps are appended as Pending, in that order.

    Returns:
        ``{"inspected": approvals looked at, "updated": approvals extended}``
    """
    inspected = updated = 0
    required = [settings.hr_email, settings.accounts_email]

    approvals = db.query(Approval).filter(Approval.is_draft.is_(False)).order_by(Approval.created_at.asc()).all()
    for approval in approvals:
        inspected += 1
        steps = approval.approvers
        if not steps or steps[0].status != StepStatus.ACCEPTED.value:
            continue

        present = {step.name for step in steps}
        missing = [email for email in required if email not in present]
        if not missing:
            continue
        updated += 1
        if dry_run:
            continue

        for email in missing:
            approval.approvers.append(ApproverStep(**pending_step(email)))
        db.add(ApprovalEvent(
            approval=approval,
            unique_number=approval.unique_number,
            kind=EventKind.BACKFILLED.value,
            actor=normalize_email(actor),
            extra_data={"appended": missing},
        ))

    if not dry_run:
        db.flush()
    logger.info(
        "Chain backfill%s: inspected=%d updated=%d",
        " (dry run)" if dry_run else "", inspected, updated,
    )
    return {"inspected": inspected, "updated": updated}
