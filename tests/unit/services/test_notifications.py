"""Tests for notification planning, rendering and delivery."""

import asyncio
import logging
import re

from claimflow.core.approval.service import DecisionOutcome
from claimflow.core.approval.states import DecisionAction
from claimflow.core.one_click import decode_token
from claimflow.services.mailer import SmtpMailer
from claimflow.services.notifications import NotificationDispatcher, NotificationEvent, Notice

MANAGER = "dana.manager@corp.com"


def outcome_for(approval, position, action, comment=""):
    return DecisionOutcome(
        approval=approval,
        position=position,
        approver=approval.approvers[position].name,
        action=action,
        comment=comment,
    )


def tokens_in(html):
    return re.findall(r"/mail-oneclick/([^\"]+)\"", html)


class TestPlanning:

    def test_submission_goes_to_first_step(self, dispatcher, approval_factory):
        approval = approval_factory()
        (notice,) = dispatcher.plan_submission(approval)
        assert notice.recipient == MANAGER
        assert notice.event == NotificationEvent.CLAIM_SUBMITTED
        assert notice.include_actions

    def test_accept_with_next_step(self, dispatcher, approval_factory, hr):
        approval = approval_factory(statuses=["Accepted"])
        (notice,) = dispatcher.plan_decision(outcome_for(approval, 0, DecisionAction.ACCEPTED))
        assert notice.recipient == hr
        assert notice.event == NotificationEvent.AWAITING_APPROVAL
        assert notice.include_actions

    def test_accept_completing_chain(self, dispatcher, approval_factory):
        approval = approval_factory(statuses=["Accepted"] * 3)
        (notice,) = dispatcher.plan_decision(outcome_for(approval, 2, DecisionAction.ACCEPTED))
        assert notice.recipient == "riya@corp.com"
        assert notice.event == NotificationEvent.CLAIM_APPROVED
        assert not notice.include_actions

    def test_reject_notifies_requester(self, dispatcher, approval_factory):
        approval = approval_factory(statuses=["Accepted", "Rejected"])
        (notice,) = dispatcher.plan_decision(outcome_for(approval, 1, DecisionAction.REJECTED, "no receipt"))
        assert notice.recipient == "riya@corp.com"
        assert notice.event == NotificationEvent.CLAIM_REJECTED
        assert notice.context["comment"] == "no receipt"

    def test_mentions_skip_author(self, dispatcher, approval_factory):
        approval = approval_factory()
        notices = dispatcher.plan_mentions(approval, "Riya@corp.com", ["riya@corp.com", "expert@corp.com"], "hi")
        assert [n.recipient for n in notices] == ["expert@corp.com"]
        assert not notices[0].include_actions


class TestRendering:

    def test_action_links_for_turn_holder(self, dispatcher, approval_factory, settings):
        approval = approval_factory()
        message = dispatcher.render(dispatcher.plan_submission(approval)[0])

        assert message.subject == f"Claim {approval.unique_number} needs your approval"
        assert message.has_actions
        accept, reject = tokens_in(message.html)
        assert decode_token(accept, settings)["action"] == "Accepted"
        assert decode_token(reject, settings)["action"] == "Rejected"
        assert decode_token(accept, settings)["approver"] == MANAGER
        assert f"/mail-action/{accept}" in message.html
        assert f"index.html?uniqueNumber={approval.unique_number}" in message.html

    def test_no_links_when_turn_moved_on(self, dispatcher, approval_factory):
        approval = approval_factory()
        notice = dispatcher.plan_submission(approval)[0]
        approval.approvers[0].status = "Accepted"

        message = dispatcher.render(notice)
        assert not message.has_actions
        assert "/mail-oneclick/" not in message.html

    def test_rejection_subject_and_comment(self, dispatcher, approval_factory):
        approval = approval_factory(statuses=["Rejected"])
        notice = dispatcher.plan_decision(outcome_for(approval, 0, DecisionAction.REJECTED, "<b>missing</b>"))[0]
        message = dispatcher.render(notice)
        assert message.subject == f"Claim {approval.unique_number} was Rejected by {MANAGER}"
        assert "&lt;b&gt;missing&lt;/b&gt;" in message.html

    def test_mention_quotes_message(self, dispatcher, approval_factory):
        approval = approval_factory()
        notice = dispatcher.plan_mentions(approval, "riya@corp.com", ["expert@corp.com"], "please look")[0]
        message = dispatcher.render(notice)
        assert message.subject == f"You were mentioned on Claim {approval.unique_number}"
        assert "please look" in message.html
        assert not message.has_actions

    def test_text_body(self, dispatcher, approval_factory):
        approval = approval_factory(budget=1234.5)
        message = dispatcher.render(dispatcher.plan_submission(approval)[0])
        assert "Budget: ₹ 1,234.50" in message.text
        assert "Approve: http://testserver/mail-oneclick/" in message.text


class TestDelivery:

    def test_failure_is_logged_and_swallowed(self, dispatcher, mailer, approval_factory, caplog):
        approval = approval_factory()
        mailer.fail_for.add("bad@corp.com")
        notices = [
            Notice(NotificationEvent.MENTIONED, "bad@corp.com", approval, context={"author": "a", "message": "m"}),
            Notice(NotificationEvent.MENTIONED, "good@corp.com", approval, context={"author": "a", "message": "m"}),
        ]

        delivered = asyncio.run(dispatcher.dispatch(notices))

        assert delivered == ["good@corp.com"]
        assert [m["to"] for m in mailer.sent] == ["good@corp.com"]
        assert "Failed to send mentioned mail to bad@corp.com" in caplog.text

    def test_unconfigured_transport_is_not_counted_as_sent(self, settings, approval_factory, caplog):
        caplog.set_level(logging.INFO)
        dispatcher = NotificationDispatcher(SmtpMailer(settings), settings)
        notice = Notice(NotificationEvent.MENTIONED, "good@corp.com", approval_factory(),
                        context={"author": "a", "message": "m"})

        delivered = asyncio.run(dispatcher.dispatch([notice]))

        assert delivered == []
        assert "mentioned to good@corp.com skipped" in caplog.text
        assert "sent to good@corp.com" not in caplog.text
