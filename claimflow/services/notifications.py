"""Notification dispatch for approval chain transitions.

Rules:

    Trigger                               Recipient            Action links
    claim submitted / created             first chain step     yes
    step accepted, next step pending      next pending step    yes
    step accepted, chain complete         requester            no
    step rejected                         requester            no
    chat @mention of X (X != author)      X                    no

Notices are planned and rendered while the request still holds its database
session; delivery happens afterwards (a FastAPI background task) and a failed
send is logged and dropped. The decision that triggered it stays committed.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import quote

from jinja2 import DictLoader, Environment, select_autoescape

from claimflow.core.approval.service import DecisionOutcome
from claimflow.core.approval.states import DecisionAction, is_my_turn, next_pending_step
from claimflow.core.config import Settings, get_settings
from claimflow.core.identity import normalize_email
from claimflow.core.one_click import issue_token
from claimflow.db.models import Approval
from claimflow.services.mailer import Mailer

logger = logging.getLogger(__name__)


class NotificationEvent(str, Enum):
    """Events that trigger an email."""
    CLAIM_SUBMITTED = "claim_submitted"
    AWAITING_APPROVAL = "awaiting_approval"
    CLAIM_APPROVED = "claim_approved"
    CLAIM_REJECTED = "claim_rejected"
    MENTIONED = "mentioned"


SUBJECTS = {
    NotificationEvent.CLAIM_SUBMITTED: "Claim {unique_number} needs your approval",
    NotificationEvent.AWAITING_APPROVAL: "Claim {unique_number} is awaiting your approval",
    NotificationEvent.CLAIM_APPROVED: "Claim {unique_number} Approved",
    NotificationEvent.CLAIM_REJECTED: "Claim {unique_number} was Rejected by {approver}",
    NotificationEvent.MENTIONED: "You were mentioned on Claim {unique_number}",
}

TEMPLATES = {
    "intro/claim_submitted.html": (
        "A Claim was submitted by <strong>{{ claim.created_by }}</strong> "
        "and is awaiting your action."
    ),
    "intro/awaiting_approval.html": (
        "The previous step was approved by <strong>{{ approver }}</strong>. "
        "The request is now awaiting your action."
    ),
    "intro/claim_approved.html": "All approvers have accepted your Claim.",
    "intro/claim_rejected.html": (
        "Your Claim was <strong>rejected</strong> by <strong>{{ approver }}</strong>"
        "{% if comment %} with comment: <em>{{ comment }}</em>{% endif %}."
    ),
    "intro/mentioned.html": (
        "<strong>{{ author }}</strong> mentioned you in the request chat:<br>"
        "<blockquote style=\"border-left:3px solid #e5e7eb; margin:8px 0; padding:6px 10px;\">"
        "{{ message }}</blockquote>"
    ),
    "claim.html": """
<div style="font-family:Segoe UI, Roboto, Helvetica, Arial, sans-serif; color:#0f172a; max-width:700px; margin:0 auto; padding:18px;">
  <div style="font-size:16px; font-weight:700; color:#0b3a8c; margin-bottom:14px;">{{ title }}</div>
  <div style="background:#fff; border:1px solid #e6edf8; border-radius:10px; padding:12px; margin-bottom:14px;">
    <p style="margin:0 0 8px;">{% include intro_template %}</p>
    <table style="width:100%; border-collapse:collapse; font-size:14px;">
      <tr><td style="padding:8px 10px; font-weight:600;">Unique #</td><td style="padding:8px 10px;">{{ claim.unique_number }}</td></tr>
      <tr><td style="padding:8px 10px; font-weight:600;">Budget</td><td style="padding:8px 10px;">{{ claim.budget | money }}</td></tr>
      <tr><td style="padding:8px 10px; font-weight:600;">Reimbursement Type</td><td style="padding:8px 10px;">{{ claim.reimbursement_type or '-' }}</td></tr>
      <tr><td style="padding:8px 10px; font-weight:600;">Purpose</td><td style="padding:8px 10px;">{{ claim.purpose or '-' }}</td></tr>
    </table>
  </div>
  {% if actions %}
  <div style="margin:16px 0 8px;">
    <a href="{{ actions.approve_url }}" style="display:inline-block; padding:10px 14px; background:#16a34a; color:#fff; border-radius:8px; text-decoration:none; font-weight:600; margin-right:8px;">Approve</a>
    <a href="{{ actions.reject_url }}" style="display:inline-block; padding:10px 14px; background:#dc2626; color:#fff; border-radius:8px; text-decoration:none; font-weight:600;">Reject</a>
  </div>
  <div style="margin-top:6px;"><a href="{{ actions.comment_url }}" style="font-size:12px; color:#2563eb;">Add a comment (optional)</a></div>
  <p style="font-size:12px; color:#6b7280; margin:6px 0 0;">Approve/Reject is one-click. Comments open a small page.</p>
  {% endif %}
  <div style="margin-top:12px;"><a href="{{ open_url }}" style="display:inline-block; padding:10px 14px; background:#2563eb; color:#fff; text-decoration:none; border-radius:8px; font-weight:600;">Open in browser</a></div>
  <div style="font-size:11px; color:#94a3b8; margin-top:12px;">This is an automated message.</div>
</div>
""",
    "claim.txt": """{{ title }}

Unique #: {{ claim.unique_number }}
Budget: {{ claim.budget | money }}
Reimbursement Type: {{ claim.reimbursement_type or '-' }}
Purpose: {{ claim.purpose or '-' }}
{% if actions %}
Approve: {{ actions.approve_url }}
Reject: {{ actions.reject_url }}
Comment: {{ actions.comment_url }}
{% endif %}
Open: {{ open_url }}
""",
}


def _money(value: Any) -> str:
    try:
        return f"₹ {float(value or 0):,.2f}"
    except (TypeError, ValueError):
        return f"₹ {value}"


_env = Environment(
    loader=DictLoader(TEMPLATES),
    autoescape=select_autoescape(enabled_extensions=("html",), default_for_string=False),
)
_env.filters["money"] = _money


@dataclass
class Notice:
    """One message to one recipient."""
    event: NotificationEvent
    recipient: str
    approval: Approval
    include_actions: bool = False
    context: Dict[str, Any] = field(default_factory=dict)


@dataclass
class OutboundMessage:
    to: str
    subject: str
    html: str
    text: str
    event: NotificationEvent
    has_actions: bool = False


class NotificationDispatcher:
    """Turns chain transitions into emails and hands them to a mailer."""

    def __init__(self, mailer: Mailer, settings: Optional[Settings] = None):
        self.mailer = mailer
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def plan_submission(self, approval: Approval) -> List[Notice]:
        """Notify the first approver of a newly submitted claim."""
        if not approval.approvers:
            logger.warning("No first approver to notify for %s", approval.unique_number)
            return []
        first = approval.approvers[0].name
        return [Notice(NotificationEvent.CLAIM_SUBMITTED, first, approval, include_actions=True)]

    def plan_decision(self, outcome: DecisionOutcome) -> List[Notice]:
        """Notify whoever is affected by an approver's decision."""
        approval = outcome.approval
        context = {"approver": outcome.approver, "comment": outcome.comment}

        if outcome.action == DecisionAction.REJECTED:
            return [Notice(NotificationEvent.CLAIM_REJECTED, approval.created_by, approval, context=context)]

        following = next_pending_step(approval.approvers)
        if following is not None:
            return [Notice(
                NotificationEvent.AWAITING_APPROVAL,
                following.name,
                approval,
                include_actions=True,
                context=context,
            )]

        return [Notice(NotificationEvent.CLAIM_APPROVED, approval.created_by, approval, context=context)]

    def plan_mentions(
        self,
        approval: Approval,
        author: str,
        mentions: Iterable[str],
        message: str,
    ) -> List[Notice]:
        """Notify everyone mentioned in a chat message except its author."""
        author = normalize_email(author)
        notices = []
        for mention in mentions:
            recipient = normalize_email(mention)
            if not recipient or recipient == author:
                continue
            notices.append(Notice(
                NotificationEvent.MENTIONED,
                recipient,
                approval,
                context={"author": author, "message": message},
            ))
        return notices

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def render(self, notice: Notice) -> OutboundMessage:
        approval = notice.approval
        recipient = normalize_email(notice.recipient)
        subject = SUBJECTS[notice.event].format(
            unique_number=approval.unique_number,
            approver=notice.context.get("approver", ""),
        )

        actions = None
        # the turn may have moved on since the notice was planned
        if notice.include_actions and is_my_turn(approval, recipient):
            actions = self._action_links(approval.unique_number, recipient)

        context = dict(notice.context)
        context.update({
            "title": subject,
            "claim": approval,
            "actions": actions,
            "open_url": f"{self.settings.base_url}/index.html?uniqueNumber={quote(approval.unique_number)}",
            "intro_template": f"intro/{notice.event.value}.html",
        })

        return OutboundMessage(
            to=recipient,
            subject=subject,
            html=_env.get_template("claim.html").render(**context),
            text=_env.get_template("claim.txt").render(**context),
            event=notice.event,
            has_actions=actions is not None,
        )

    def render_all(self, notices: Iterable[Notice]) -> List[OutboundMessage]:
        return [self.render(n) for n in notices]

    def _action_links(self, unique_number: str, recipient: str) -> Dict[str, str]:
        approve = issue_token(unique_number, recipient, DecisionAction.ACCEPTED, self.settings)
        reject = issue_token(unique_number, recipient, DecisionAction.REJECTED, self.settings)
        base = self.settings.base_url
        return {
            "approve_url": f"{base}/mail-oneclick/{approve}",
            "reject_url": f"{base}/mail-oneclick/{reject}",
            "comment_url": f"{base}/mail-action/{approve}",
        }

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    async def deliver(self, messages: Iterable[OutboundMessage]) -> List[str]:
        """
        Send each message once.

        Returns:
            Recipients whose message was handed to the mailer successfully
        """
        delivered = []
        for message in messages:
            try:
                sent = await self.mailer.send(message.to, message.subject, message.html, message.text)
            except Exception:
                logger.exception("Failed to send %s mail to %s", message.event.value, message.to)
                continue
            if not sent:
                logger.warning(
                    "[MAIL] %s to %s skipped: no mail transport configured",
                    message.event.value, message.to,
                )
                continue
            logger.info("[MAIL] %s sent to %s", message.event.value, message.to)
            delivered.append(message.to)
        return delivered

    async def dispatch(self, notices: Iterable[Notice]) -> List[str]:
        """Render and deliver in one step (for callers already outside a request)."""
        return await self.deliver(self.render_all(notices))
