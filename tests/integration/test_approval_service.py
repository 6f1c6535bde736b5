"""Tests for the persistence-backed approval service."""

import pytest
from sqlalchemy import update

from claimflow.core.approval.errors import (
    AccessDeniedError,
    ApprovalNotFoundError,
    TurnViolation,
    TurnViolationReason,
    ValidationError,
)
from claimflow.core.approval.service import ApprovalService, EventKind
from claimflow.core.approval.states import ChainStatus, DecisionAction, derive_chain_status, is_my_turn
from claimflow.db.models import Approval, ApprovalEvent, ApproverStep
from tests import factories

MANAGER = "dana.manager@corp.com"
REQUESTER = "riya@corp.com"


@pytest.fixture
def service(db_session, settings):
    return ApprovalService(db_session, settings)


def statuses(approval):
    return [s.status for s in approval.approvers]


class TestScenarios:

    def test_a_manager_accepts(self, service, db_session, dispatcher, approval_factory, hr):
        approval = approval_factory()

        outcome = service.apply_decision(approval.unique_number, MANAGER, "Accepted")
        db_session.commit()

        assert statuses(approval) == ["Accepted", "Pending", "Pending"]
        assert is_my_turn(approval, hr)
        assert not is_my_turn(approval, MANAGER)

        (message,) = dispatcher.render_all(dispatcher.plan_decision(outcome))
        assert message.to == hr
        assert message.has_actions

    def test_b_hr_rejects_and_chain_halts(self, service, db_session, dispatcher, approval_factory, hr, accounts):
        approval = approval_factory(statuses=["Accepted"])

        outcome = service.apply_decision(approval.unique_number, hr, "Rejected", "missing receipt")
        db_session.commit()

        assert statuses(approval) == ["Accepted", "Rejected", "Pending"]
        assert approval.approvers[1].comment == "missing receipt"
        assert not any(is_my_turn(approval, who) for who in (MANAGER, hr, accounts, REQUESTER))

        (message,) = dispatcher.render_all(dispatcher.plan_decision(outcome))
        assert message.to == REQUESTER
        assert not message.has_actions

        with pytest.raises(TurnViolation):
            service.apply_decision(approval.unique_number, accounts, "Accepted")

    def test_c_accounts_completes_chain(self, service, db_session, dispatcher, approval_factory, accounts):
        approval = approval_factory(statuses=["Accepted", "Accepted"])

        outcome = service.apply_decision(approval.unique_number, accounts, "Accepted")
        db_session.commit()

        assert statuses(approval) == ["Accepted"] * 3
        assert derive_chain_status(approval) == ChainStatus.APPROVED

        (message,) = dispatcher.render_all(dispatcher.plan_decision(outcome))
        assert message.to == REQUESTER
        assert message.subject == f"Claim {approval.unique_number} Approved"
        assert not message.has_actions

    def test_e_draft_submission_resolves_manager(self, service, db_session, settings):
        factories.create_directory_entry(db_session, name="Jane Doe", email="jane.doe@example.com")
        draft = service.save_draft(REQUESTER, {"reimbursement_type": "Travel"}, ["Jane Doe", "intruder@x.com"])
        db_session.commit()

        approval = service.submit_draft(draft.unique_number, REQUESTER)
        db_session.commit()

        assert not approval.is_draft
        assert [(s.name, s.status) for s in approval.approvers] == [
            ("jane.doe@example.com", "Pending"),
            (settings.hr_email, "Pending"),
            (settings.accounts_email, "Pending"),
        ]


class TestDecisions:

    def test_decision_sets_timestamp_and_event(self, service, db_session, approval_factory):
        approval = approval_factory()
        outcome = service.apply_decision(approval.unique_number, "Dana.Manager@Corp.com", DecisionAction.ACCEPTED, "fine")
        db_session.commit()

        step = approval.approvers[0]
        assert step.updated_at is not None
        assert outcome.approver == MANAGER
        assert outcome.position == 0

        (event,) = [e for e in service.history(approval.unique_number) if e.kind == EventKind.DECISION.value]
        assert (event.from_status, event.to_status, event.comment) == ("Pending", "Accepted", "fine")

    def test_not_an_approver(self, service, approval_factory):
        approval = approval_factory()
        with pytest.raises(TurnViolation) as exc:
            service.apply_decision(approval.unique_number, "stranger@corp.com", "Accepted")
        assert exc.value.reason == TurnViolationReason.NOT_AN_APPROVER

    def test_out_of_turn(self, service, approval_factory, accounts):
        approval = approval_factory()
        with pytest.raises(TurnViolation) as exc:
            service.apply_decision(approval.unique_number, accounts, "Accepted")
        assert exc.value.reason == TurnViolationReason.NOT_YOUR_TURN

    def test_invalid_action(self, service, approval_factory):
        approval = approval_factory()
        with pytest.raises(ValidationError):
            service.apply_decision(approval.unique_number, MANAGER, "Maybe")

    def test_draft(self, service, approval_factory):
        approval = approval_factory(is_draft=True)
        with pytest.raises(ValidationError):
            service.apply_decision(approval.unique_number, MANAGER, "Accepted")

    def test_unknown_claim(self, service):
        with pytest.raises(ApprovalNotFoundError):
            service.apply_decision("ZFL000000", MANAGER, "Accepted")

    def test_lost_race_at_conditional_update(self, service, db_session, approval_factory):
        approval = approval_factory()
        step_id = approval.approvers[0].id

        # another writer decides the step behind this session's back
        db_session.execute(
            update(ApproverStep).where(ApproverStep.id == step_id).values(status="Rejected"),
            execution_options={"synchronize_session": False},
        )

        with pytest.raises(TurnViolation):
            service.apply_decision(approval.unique_number, MANAGER, "Accepted")

        db_session.rollback()
        status = db_session.query(ApproverStep.status).filter(ApproverStep.id == step_id).scalar()
        assert status == "Pending"

    def test_decided_step_is_final(self, service, db_session, approval_factory):
        approval = approval_factory()
        service.apply_decision(approval.unique_number, MANAGER, "Accepted")
        db_session.commit()

        with pytest.raises(TurnViolation):
            service.apply_decision(approval.unique_number, MANAGER, "Rejected")
        assert approval.approvers[0].status == "Accepted"


class TestDraftsAndCreation:

    def test_next_unique_number(self, service, approval_factory):
        assert service.next_unique_number(2031) == "ZFL203101"
        approval_factory(unique_number="ZFL203107")
        assert service.next_unique_number(2031) == "ZFL203108"

    def test_save_draft_keeps_free_form_approvers(self, service, db_session):
        draft = service.save_draft(REQUESTER, {"purpose": "Conference"}, ["Unknown Person"], unique_number="ZFL209901")
        db_session.commit()
        assert draft.is_draft
        assert [s.name for s in draft.approvers] == ["unknown person"]

    def test_update_draft(self, service, db_session):
        service.save_draft(REQUESTER, {"purpose": "One"}, [], unique_number="ZFL209902")
        draft = service.save_draft(REQUESTER, {"purpose": "Two"}, [MANAGER], unique_number="ZFL209902")
        db_session.commit()
        assert draft.purpose == "Two"
        assert db_session.query(Approval).filter(Approval.unique_number == "ZFL209902").count() == 1

    def test_other_users_draft(self, service, db_session):
        service.save_draft(REQUESTER, {}, [], unique_number="ZFL209903")
        with pytest.raises(AccessDeniedError):
            service.save_draft("mallory@corp.com", {}, [], unique_number="ZFL209903")

    def test_submit_unresolvable_manager_changes_nothing(self, service, db_session):
        draft = service.save_draft(REQUESTER, {}, ["Nobody Known"], unique_number="ZFL209904")
        db_session.commit()

        with pytest.raises(ValidationError):
            service.submit_draft(draft.unique_number, REQUESTER)
        db_session.rollback()

        draft = service.get("ZFL209904")
        assert draft.is_draft
        assert [s.name for s in draft.approvers] == ["nobody known"]

    def test_submit_requires_owner(self, service, db_session):
        draft = service.save_draft(REQUESTER, {}, [MANAGER], unique_number="ZFL209905")
        db_session.commit()
        with pytest.raises(AccessDeniedError):
            service.submit_draft(draft.unique_number, "mallory@corp.com", "user")

    def test_create_approval_builds_fixed_chain(self, service, db_session, settings):
        approval = service.create_approval(
            REQUESTER,
            {"reimbursement_type": "Travel", "budget": 900},
            [{"name": MANAGER}, {"name": "extra@corp.com"}],
        )
        db_session.commit()
        assert [s.name for s in approval.approvers] == [MANAGER, settings.hr_email, settings.accounts_email]
        assert approval.created_by == REQUESTER

    def test_hr_as_manager_is_not_stuck(self, service, db_session, hr, accounts):
        approval = service.create_approval(REQUESTER, {"reimbursement_type": "Travel"}, [hr.upper()])
        db_session.commit()
        assert [s.name for s in approval.approvers] == [hr, accounts]

        service.apply_decision(approval.unique_number, hr, "Accepted")
        db_session.commit()

        assert is_my_turn(approval, accounts)
        service.apply_decision(approval.unique_number, accounts, "Accepted")
        db_session.commit()
        assert derive_chain_status(approval) == ChainStatus.APPROVED

    def test_create_requires_reimbursement_type(self, service):
        with pytest.raises(ValidationError):
            service.create_approval(REQUESTER, {}, [MANAGER])

    def test_create_requires_approvers(self, service):
        with pytest.raises(ValidationError):
            service.create_approval(REQUESTER, {"reimbursement_type": "Travel"}, [])


class TestListings:

    def test_needs_action_only_for_turn_holder(self, service, approval_factory, hr):
        first = approval_factory()
        second = approval_factory(statuses=["Accepted"])
        approval_factory(statuses=["Rejected"])
        approval_factory(is_draft=True)

        assert [a.unique_number for a in service.list_needs_action(MANAGER)] == [first.unique_number]
        assert [a.unique_number for a in service.list_needs_action(hr)] == [second.unique_number]

    def test_needs_action_matches_directory_display_name(self, service, db_session, approval_factory):
        factories.create_directory_entry(db_session, name="Omar Lead", email="omar.lead@corp.com")
        approval = approval_factory(approvers=["Omar Lead", "hr@x.com", "acc@x.com"])
        assert [a.unique_number for a in service.list_needs_action("omar.lead@corp.com")] == [approval.unique_number]

    def test_decided_by(self, service, approval_factory):
        accepted = approval_factory(statuses=["Accepted"])
        rejected = approval_factory(statuses=["Rejected"])
        assert [a.unique_number for a in service.list_decided_by(MANAGER, "Accepted")] == [accepted.unique_number]
        assert [a.unique_number for a in service.list_decided_by(MANAGER, "Rejected")] == [rejected.unique_number]
        with pytest.raises(ValidationError):
            service.list_decided_by(MANAGER, "Pending")

    def test_created_by_and_for_approver(self, service, approval_factory):
        mine = approval_factory(created_by="me@corp.com")
        approval_factory(created_by="me@corp.com", is_draft=True)
        assert [a.unique_number for a in service.list_created_by("ME@corp.com", drafts=False)] == [mine.unique_number]
        assert len(service.list_created_by("me@corp.com")) == 2
        assert len(service.list_for_approver(MANAGER)) == 2

    def test_mentioned_expert_view(self, service, db_session, approval_factory):
        approval = approval_factory()
        factories.create_chat_message(db_session, unique_number=approval.unique_number, mentions=["expert@corp.com", MANAGER])
        db_session.commit()

        assert [a.unique_number for a in service.list_mentioned("expert@corp.com")] == [approval.unique_number]
        assert service.list_mentioned(MANAGER) == []
        assert service.get_for_viewer(approval.unique_number, "expert@corp.com") is approval

    def test_viewer_access(self, service, approval_factory):
        approval = approval_factory()
        assert service.get_for_viewer(approval.unique_number, REQUESTER)
        assert service.get_for_viewer(approval.unique_number, MANAGER)
        assert service.get_for_viewer(approval.unique_number, "boss@corp.com", "master")
        with pytest.raises(AccessDeniedError):
            service.get_for_viewer(approval.unique_number, "stranger@corp.com", "user")


class TestPrivilegedOperations:

    def test_override_step(self, service, db_session, approval_factory):
        approval = approval_factory()
        service.override_step(approval.unique_number, MANAGER, "Accepted", actor="boss@corp.com", reason="verbal ok")
        db_session.commit()

        assert approval.approvers[0].status == "Accepted"
        assert approval.approvers[0].updated_at is not None
        (event,) = [e for e in service.history(approval.unique_number) if e.kind == EventKind.OVERRIDE.value]
        assert (event.actor, event.from_status, event.to_status, event.comment) == (
            "boss@corp.com", "Pending", "Accepted", "verbal ok",
        )

    def test_override_invalid(self, service, approval_factory):
        approval = approval_factory()
        with pytest.raises(ValidationError):
            service.override_step(approval.unique_number, MANAGER, "Done", actor="boss@corp.com")
        with pytest.raises(ValidationError):
            service.override_step(approval.unique_number, "nobody@corp.com", "Accepted", actor="boss@corp.com")

    def test_reset_chain(self, service, db_session, approval_factory):
        approval = approval_factory(statuses=["Accepted", "Rejected"])
        service.reset_chain(approval.unique_number, actor="boss@corp.com")
        db_session.commit()

        assert statuses(approval) == ["Pending"] * 3
        assert all(s.updated_at is None for s in approval.approvers)
        (event,) = [e for e in service.history(approval.unique_number) if e.kind == EventKind.RESET.value]
        assert event.extra_data["previous_statuses"] == ["Accepted", "Rejected", "Pending"]

    def test_reassign(self, service, db_session, approval_factory):
        factories.create_directory_entry(db_session, name="Omar Lead", email="omar.lead@corp.com")
        approval = approval_factory(statuses=["Accepted"])
        service.reassign(approval.unique_number, ["Omar Lead", "hr2@corp.com"], actor="boss@corp.com")
        db_session.commit()

        db_session.expire_all()
        approval = service.get(approval.unique_number)
        assert [(s.name, s.status, s.position) for s in approval.approvers] == [
            ("omar.lead@corp.com", "Pending", 0),
            ("hr2@corp.com", "Pending", 1),
        ]

    def test_reassign_rejects_blank(self, service, approval_factory):
        approval = approval_factory()
        with pytest.raises(ValidationError):
            service.reassign(approval.unique_number, ["ok@corp.com", " "], actor="boss@corp.com")

    def test_delete_keeps_audit_trail(self, service, db_session, approval_factory):
        approval = approval_factory()
        number = approval.unique_number
        service.apply_decision(number, MANAGER, "Accepted")
        db_session.commit()

        service.delete(number, actor="boss@corp.com", reason="duplicate")
        db_session.commit()

        assert service.find(number) is None
        assert db_session.query(ApproverStep).count() == 0
        kinds = [e.kind for e in db_session.query(ApprovalEvent).filter(ApprovalEvent.unique_number == number)]
        assert EventKind.DECISION.value in kinds
        assert EventKind.DELETED.value in kinds
