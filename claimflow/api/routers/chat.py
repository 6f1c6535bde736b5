"""Claim chat endpoints."""

from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.orm import Session

from claimflow.api.deps import get_current_user, get_db, get_dispatcher, get_settings_dep
from claimflow.api.errors import http_error
from claimflow.api.schemas.chat import ChatMessageCreate, ChatMessageRead
from claimflow.core.approval import ApprovalError, ApprovalService
from claimflow.core.config import Settings
from claimflow.core.security import CurrentUser
from claimflow.services.chat import ChatService
from claimflow.services.notifications import NotificationDispatcher

router = APIRouter(prefix="/approvals", tags=["chat"])


@router.get("/{unique_number}/chat", response_model=List[ChatMessageRead])
async def list_messages(
    unique_number: str,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        ApprovalService(db, settings).get_for_viewer(unique_number, current_user.identity, current_user.role)
    except ApprovalError as e:
        raise http_error(e)
    return [ChatMessageRead.model_validate(m) for m in ChatService(db).list(unique_number)]


@router.post("/{unique_number}/chat", response_model=ChatMessageRead, status_code=status.HTTP_201_CREATED)
async def post_message(
    unique_number: str,
    payload: ChatMessageCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Post a message; everyone @mentioned (except the author) gets an email."""
    approvals = ApprovalService(db, settings)
    try:
        approval = approvals.get_for_viewer(unique_number, current_user.identity, current_user.role)
        message, recipients = ChatService(db).post(unique_number, current_user.identity, payload.text)
        db.commit()
    except ApprovalError as e:
        db.rollback()
        raise http_error(e)

    notices = dispatcher.plan_mentions(approval, current_user.identity, recipients, message.text)
    background_tasks.add_task(dispatcher.deliver, dispatcher.render_all(notices))
    return ChatMessageRead.model_validate(message)
