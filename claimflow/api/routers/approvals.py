"""Claim approval API endpoints."""

import logging
from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.orm import Session

from claimflow.api.deps import get_current_user, get_db, get_dispatcher, get_settings_dep, require_role
from claimflow.api.errors import http_error
from claimflow.api.schemas.approval import (
    ApprovalCreate,
    ApprovalEventRead,
    ApprovalRead,
    DecisionRequest,
    NextIdResponse,
)
from claimflow.core.approval import ApprovalError, ApprovalService
from claimflow.core.config import Settings
from claimflow.core.security import CurrentUser
from claimflow.services.notifications import NotificationDispatcher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/approvals", tags=["approvals"])


def _read_all(approvals) -> List[ApprovalRead]:
    return [ApprovalRead.from_approval(a) for a in approvals]


@router.get("/next-id", response_model=NextIdResponse)
async def next_unique_number(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Preview the next free claim number."""
    return NextIdResponse(unique_number=ApprovalService(db, settings).next_unique_number())


@router.post("", response_model=ApprovalRead, status_code=status.HTTP_201_CREATED)
async def create_approval(
    payload: ApprovalCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Create a submitted claim with the fixed manager -> HR -> Accounts chain."""
    service = ApprovalService(db, settings)
    try:
        approval = service.create_approval(
            current_user.identity,
            payload.claim_fields(),
            payload.approvers,
            unique_number=payload.unique_number,
        )
        db.commit()
    except ApprovalError as e:
        db.rollback()
        raise http_error(e)

    messages = dispatcher.render_all(dispatcher.plan_submission(approval))
    background_tasks.add_task(dispatcher.deliver, messages)
    return ApprovalRead.from_approval(approval)


@router.get("", response_model=List[ApprovalRead])
async def list_approvals(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
    current_user: CurrentUser = Depends(require_role("hr", "master")),
):
    """List every claim (HR and master only)."""
    return _read_all(ApprovalService(db, settings).list_all())


@router.get("/mine", response_model=List[ApprovalRead])
async def list_my_claims(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Submitted claims raised by the caller."""
    return _read_all(ApprovalService(db, settings).list_created_by(current_user.identity, drafts=False))


@router.get("/actor", response_model=List[ApprovalRead])
async def list_as_approver(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Claims whose chain includes the caller."""
    return _read_all(ApprovalService(db, settings).list_for_approver(current_user.identity))


@router.get("/needs-my-action", response_model=List[ApprovalRead])
async def list_needs_my_action(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Claims where it is the caller's turn."""
    return _read_all(ApprovalService(db, settings).list_needs_action(current_user.identity))


@router.get("/by-me", response_model=List[ApprovalRead])
async def list_decided_by_me(
    status_filter: str = Query(..., alias="status"),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Claims the caller has Accepted or Rejected."""
    try:
        approvals = ApprovalService(db, settings).list_decided_by(current_user.identity, status_filter)
    except ApprovalError as e:
        raise http_error(e)
    return _read_all(approvals)


@router.get("/expert", response_model=List[ApprovalRead])
async def list_mentioned(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Claims the caller was consulted on through a chat mention."""
    return _read_all(ApprovalService(db, settings).list_mentioned(current_user.identity))


@router.get("/{unique_number}", response_model=ApprovalRead)
async def get_approval(
    unique_number: str,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Get one claim, if the caller is allowed to see it."""
    try:
        approval = ApprovalService(db, settings).get_for_viewer(
            unique_number, current_user.identity, current_user.role,
        )
    except ApprovalError as e:
        raise http_error(e)
    return ApprovalRead.from_approval(approval)


@router.get("/{unique_number}/history", response_model=List[ApprovalEventRead])
async def get_approval_history(
    unique_number: str,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Audit trail of a claim, oldest first."""
    service = ApprovalService(db, settings)
    try:
        service.get_for_viewer(unique_number, current_user.identity, current_user.role)
    except ApprovalError as e:
        raise http_error(e)
    return [ApprovalEventRead.model_validate(ev) for ev in service.history(unique_number)]


@router.patch("/{unique_number}/decision", response_model=ApprovalRead)
async def decide(
    unique_number: str,
    decision: DecisionRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Accept or reject the caller's step; only the approver holding the turn may act."""
    service = ApprovalService(db, settings)
    try:
        outcome = service.apply_decision(
            unique_number, current_user.identity, decision.status, decision.comment,
        )
        db.commit()
    except ApprovalError as e:
        db.rollback()
        logger.info("Decision refused on %s for %s: %s", unique_number, current_user.identity, e)
        raise http_error(e)

    messages = dispatcher.render_all(dispatcher.plan_decision(outcome))
    background_tasks.add_task(dispatcher.deliver, messages)
    return ApprovalRead.from_approval(outcome.approval)
