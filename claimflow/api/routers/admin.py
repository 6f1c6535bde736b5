"""Privileged (hr/master) endpoints outside the normal chain protocol.

Every change made here is recorded in the claim's audit trail.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from claimflow.api.deps import get_db, get_settings_dep, require_role
from claimflow.api.errors import http_error
from claimflow.api.schemas.approval import ApprovalRead, OverrideRequest, ReassignRequest, ResetRequest
from claimflow.api.schemas.common import MaintenanceReport, SuccessResponse
from claimflow.core.approval import ApprovalError, ApprovalService
from claimflow.core.config import Settings
from claimflow.core.maintenance import backfill_fixed_chain, migrate_approvers_to_email
from claimflow.core.one_click import OneClickTokenService
from claimflow.core.security import CurrentUser
from claimflow.services.directory import DirectoryLookup

logger = logging.getLogger(__name__)

router = APIRouter(tags=["admin"])

require_admin = require_role("hr", "master")


@router.patch("/approvals/{unique_number}/master/override", response_model=ApprovalRead)
async def override_step(
    unique_number: str,
    payload: OverrideRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
    current_user: CurrentUser = Depends(require_admin),
):
    """Force one step to any status."""
    try:
        approval = ApprovalService(db, settings).override_step(
            unique_number, payload.approver, payload.status,
            actor=current_user.identity, reason=payload.reason,
        )
        db.commit()
    except ApprovalError as e:
        db.rollback()
        raise http_error(e)
    logger.warning("Step override on %s by %s", unique_number, current_user.identity)
    return ApprovalRead.from_approval(approval)


@router.patch("/approvals/{unique_number}/master/reset", response_model=ApprovalRead)
async def reset_chain(
    unique_number: str,
    payload: ResetRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
    current_user: CurrentUser = Depends(require_admin),
):
    """Put every step back to Pending."""
    try:
        approval = ApprovalService(db, settings).reset_chain(
            unique_number, actor=current_user.identity, reason=payload.reason,
        )
        db.commit()
    except ApprovalError as e:
        db.rollback()
        raise http_error(e)
    logger.warning("Chain reset on %s by %s", unique_number, current_user.identity)
    return ApprovalRead.from_approval(approval)


@router.patch("/approvals/{unique_number}/master/reassign", response_model=ApprovalRead)
async def reassign(
    unique_number: str,
    payload: ReassignRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
    current_user: CurrentUser = Depends(require_admin),
):
    """Replace the chain with a new approver list, all Pending."""
    try:
        approval = ApprovalService(db, settings).reassign(
            unique_number, payload.approvers,
            actor=current_user.identity, reason=payload.reason,
        )
        db.commit()
    except ApprovalError as e:
        db.rollback()
        raise http_error(e)
    logger.warning("Chain reassigned on %s by %s", unique_number, current_user.identity)
    return ApprovalRead.from_approval(approval)


@router.delete("/approvals/{unique_number}", response_model=SuccessResponse)
async def delete_approval(
    unique_number: str,
    reason: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
    current_user: CurrentUser = Depends(require_admin),
):
    try:
        ApprovalService(db, settings).delete(unique_number, actor=current_user.identity, reason=reason)
        db.commit()
    except ApprovalError as e:
        db.rollback()
        raise http_error(e)
    logger.warning("Claim %s deleted by %s", unique_number, current_user.identity)
    return SuccessResponse(message=f"Claim {unique_number} deleted")


@router.post("/admin/migrate-approvers", response_model=MaintenanceReport)
async def migrate_approvers(
    dry_run: bool = Query(False),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
):
    """Rewrite display-name approvers to directory emails."""
    report = migrate_approvers_to_email(db, DirectoryLookup(db), current_user.identity, dry_run=dry_run)
    if dry_run:
        db.rollback()
    else:
        db.commit()
    return MaintenanceReport(inspected=report["inspected"], changed=report["changed"], dry_run=dry_run)


@router.post("/admin/backfill-chain", response_model=MaintenanceReport)
async def backfill_chain(
    dry_run: bool = Query(False),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
    current_user: CurrentUser = Depends(require_admin),
):
    """Append missing HR/Accounts steps to manager-approved legacy chains."""
    report = backfill_fixed_chain(db, settings, current_user.identity, dry_run=dry_run)
    if dry_run:
        db.rollback()
    else:
        db.commit()
    return MaintenanceReport(inspected=report["inspected"], changed=report["updated"], dry_run=dry_run)


@router.post("/admin/purge-used-tokens", response_model=SuccessResponse, status_code=status.HTTP_200_OK)
async def purge_used_tokens(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
    current_user: CurrentUser = Depends(require_admin),
):
    """Drop used one-click tokens past their retention window."""
    count = OneClickTokenService(db, settings).purge_expired()
    db.commit()
    return SuccessResponse(message=f"Purged {count} used token(s)", data={"purged": count})
