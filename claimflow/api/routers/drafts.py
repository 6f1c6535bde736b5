"""Draft claim endpoints."""

from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session

from claimflow.api.deps import get_current_user, get_db, get_dispatcher, get_settings_dep
from claimflow.api.errors import http_error
from claimflow.api.schemas.approval import ApprovalRead, DraftCreate
from claimflow.core.approval import ApprovalError, ApprovalService
from claimflow.core.config import Settings
from claimflow.core.security import CurrentUser
from claimflow.services.notifications import NotificationDispatcher

router = APIRouter(prefix="/drafts", tags=["drafts"])


@router.post("", response_model=ApprovalRead)
async def save_draft(
    payload: DraftCreate,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Create a draft, or update one the caller owns. Drafts send no mail."""
    try:
        approval = ApprovalService(db, settings).save_draft(
            current_user.identity,
            payload.claim_fields(),
            payload.approvers,
            unique_number=payload.unique_number,
        )
        db.commit()
    except ApprovalError as e:
        db.rollback()
        raise http_error(e)
    return ApprovalRead.from_approval(approval)


@router.get("", response_model=List[ApprovalRead])
async def list_drafts(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
    current_user: CurrentUser = Depends(get_current_user),
):
    approvals = ApprovalService(db, settings).list_created_by(current_user.identity, drafts=True)
    return [ApprovalRead.from_approval(a) for a in approvals]


@router.patch("/{unique_number}/submit", response_model=ApprovalRead)
async def submit_draft(
    unique_number: str,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Submit a draft; the first approver of the fixed chain is notified."""
    try:
        approval = ApprovalService(db, settings).submit_draft(
            unique_number, current_user.identity, current_user.role,
        )
        db.commit()
    except ApprovalError as e:
        db.rollback()
        raise http_error(e)

    messages = dispatcher.render_all(dispatcher.plan_submission(approval))
    background_tasks.add_task(dispatcher.deliver, messages)
    return ApprovalRead.from_approval(approval)
