"""Pages behind the links in approval emails.

``/mail-oneclick/{token}`` applies the token's action immediately.
``/mail-action/{token}`` shows a small form so the approver can add a comment
(and pick Accept or Reject) before the token is redeemed.
"""

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Form
from fastapi.responses import HTMLResponse
from jinja2 import DictLoader, Environment, select_autoescape
from sqlalchemy.orm import Session

from claimflow.api.deps import get_db, get_dispatcher, get_settings_dep
from claimflow.api.errors import TOKEN_ERROR_STATUS
from claimflow.core.config import Settings
from claimflow.core.one_click import OneClickTokenService, RedeemResult, TokenError
from claimflow.services.notifications import NotificationDispatcher

logger = logging.getLogger(__name__)

router = APIRouter(tags=["mail"])

PAGES = {
    "base.html": """<!doctype html>
<html><head><meta charset="utf-8"><meta name="viewport" content="width=device-width, initial-scale=1">
<title>{{ title }}</title></head>
<body style="font-family:Segoe UI, Roboto, Helvetica, Arial, sans-serif; background:#f8fafc; color:#0f172a;">
<div style="max-width:560px; margin:40px auto; background:#fff; border:1px solid #e6edf8; border-radius:10px; padding:20px;">
{% block content %}{% endblock %}
</div></body></html>""",
    "done.html": """{% extends "base.html" %}{% block content %}
<h2 style="margin-top:0;">Claim {{ unique_number }} {{ action }}</h2>
<p>Your decision was recorded. You may close this window.</p>
{% endblock %}""",
    "error.html": """{% extends "base.html" %}{% block content %}
<h2 style="margin-top:0; color:#dc2626;">Unable to complete action</h2>
<p>{{ message }}</p>
{% endblock %}""",
    "comment.html": """{% extends "base.html" %}{% block content %}
<h2 style="margin-top:0;">Claim {{ unique_number }}</h2>
<p>Purpose: {{ purpose or '-' }}</p>
<form method="post">
  <label for="comment">Comment (optional)</label><br>
  <textarea id="comment" name="comment" rows="4" style="width:100%;"></textarea>
  <div style="margin-top:12px;">
    <button type="submit" name="action" value="Accepted" {% if action == 'Accepted' %}autofocus{% endif %}
      style="padding:10px 14px; background:#16a34a; color:#fff; border:0; border-radius:8px;">Approve</button>
    <button type="submit" name="action" value="Rejected" {% if action == 'Rejected' %}autofocus{% endif %}
      style="padding:10px 14px; background:#dc2626; color:#fff; border:0; border-radius:8px;">Reject</button>
  </div>
</form>
{% endblock %}""",
}

_env = Environment(loader=DictLoader(PAGES), autoescape=select_autoescape(enabled_extensions=("html",)))


def _page(name: str, status_code: int = 200, **context) -> HTMLResponse:
    context.setdefault("title", "Claim approval")
    return HTMLResponse(_env.get_template(name).render(**context), status_code=status_code)


def _error_page(error: TokenError) -> HTMLResponse:
    return _page("error.html", status_code=TOKEN_ERROR_STATUS[error.kind], message=str(error))


def _finish(
    result: RedeemResult,
    dispatcher: NotificationDispatcher,
    background_tasks: BackgroundTasks,
) -> HTMLResponse:
    """Notify exactly as an in-app decision would, then show the outcome."""
    if not result.success:
        return _error_page(result.error)

    outcome = result.outcome
    messages = dispatcher.render_all(dispatcher.plan_decision(outcome))
    background_tasks.add_task(dispatcher.deliver, messages)
    return _page("done.html", unique_number=outcome.approval.unique_number, action=outcome.action.value)


@router.get("/mail-oneclick/{token}", response_class=HTMLResponse)
async def one_click(
    token: str,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """Apply the action carried by the token."""
    result = OneClickTokenService(db, settings).redeem(token)
    return _finish(result, dispatcher, background_tasks)


@router.get("/mail-action/{token}", response_class=HTMLResponse)
async def comment_form(
    token: str,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
):
    try:
        payload, approval = OneClickTokenService(db, settings).preview(token)
    except TokenError as e:
        return _error_page(e)
    return _page(
        "comment.html",
        unique_number=approval.unique_number,
        purpose=approval.purpose,
        action=payload["action"],
    )


@router.post("/mail-action/{token}", response_class=HTMLResponse)
async def comment_submit(
    token: str,
    background_tasks: BackgroundTasks,
    action: Optional[str] = Form(None),
    comment: Optional[str] = Form(None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """Redeem the token with the action and comment chosen on the page."""
    result = OneClickTokenService(db, settings).redeem_with_comment(token, action, (comment or "").strip())
    return _finish(result, dispatcher, background_tasks)
