"""
Tests for the campaign lifecycle.

Each test verifies one transition rule or one of its side effects.
"""
from datetime import datetime

import pytest

from access_review.models.audit import AuditAction, AuditEvent, CAMPAIGN_TARGET_TYPE
from access_review.models.enums import (
    CampaignStatus,
    DataClassification,
    DecisionType,
    EmploymentType,
    PrivilegeLevel,
    RemediationStatus,
    SecondLevelDecision,
    SubjectStatus,
)
from access_review.services.errors import NotFoundError, StateConflictError, ValidationError
from access_review.services.rules import validate_for_submission, validate_item_decision
from access_review.api.schemas import CampaignUpdate

TENANT = "tenant-a"
ACTOR = "reviewer@example.com"
PERIOD_END = datetime(2026, 3, 31)


def submit(sm, campaign, attestation=True):
    return sm.submit(
        campaign.tenant_id,
        campaign.id,
        reviewer_attestation=attestation,
        reviewer_name="Riley Reviewer",
        reviewer_email="Riley@Example.com",
        actor_email=ACTOR,
    )


def approve(sm, campaign, decision=SecondLevelDecision.APPROVED):
    return sm.record_approval(
        campaign.tenant_id,
        campaign.id,
        decision=decision,
        approver_name="Sam Security",
        approver_email="sam@example.com",
        notes="Reviewed admin grants",
        actor_email="sam@example.com",
    )


def complete(sm, campaign):
    return sm.complete(campaign.tenant_id, campaign.id, verified_by="Sam Security", notes=None, actor_email=ACTOR)


def audit_actions(db_session, campaign):
    events = db_session.query(AuditEvent).filter(
        AuditEvent.target_type == CAMPAIGN_TARGET_TYPE,
        AuditEvent.target_id == str(campaign.id),
    ).order_by(AuditEvent.id).all()
    return [event.action for event in events]


class TestCreateAndUpdate:
    """Campaign authoring."""

    def test_new_campaign_is_draft_with_pending_items(self, create_campaign):
        campaign = create_campaign()

        assert campaign.status == CampaignStatus.DRAFT
        assert campaign.version == 1
        item = campaign.subjects[0].items[0]
        assert item.decision.decision_type == DecisionType.PENDING
        assert item.is_privileged is False
        assert campaign.subjects[0].status == SubjectStatus.PENDING
        assert campaign.subjects[0].email == "user1@example.com"

    def test_due_date_defaults_to_period_end(self, create_campaign):
        campaign = create_campaign()

        assert campaign.workflow.due_date == PERIOD_END
        assert campaign.workflow.escalation_level == 0

    def test_contractor_without_end_date_is_rejected(self, create_campaign, make_subject, db_session):
        """
        INVARIANT: subject-level validation rejects a CONTRACTOR with no end date on create.
        """
        with pytest.raises(ValidationError) as exc_info:
            create_campaign([make_subject(employment_type=EmploymentType.CONTRACTOR)])

        assert "end date is required" in exc_info.value.errors[0]
        assert db_session.query(AuditEvent).count() == 0

    def test_contractor_without_end_date_is_rejected_on_update(self, sm, create_campaign, make_subject):
        campaign = create_campaign()
        update = CampaignUpdate(subjects=[make_subject(employment_type=EmploymentType.CONTRACTOR)])

        with pytest.raises(ValidationError):
            sm.update_campaign(TENANT, campaign.id, ACTOR, update)

    def test_update_replaces_subjects_and_moves_to_in_review(self, sm, create_campaign, make_subject, make_item):
        campaign = create_campaign()
        update = CampaignUpdate(
            name="Q1 review (rescoped)",
            status=CampaignStatus.IN_REVIEW,
            subjects=[make_subject(items=[make_item(), make_item()]), make_subject()],
        )

        campaign = sm.update_campaign(TENANT, campaign.id, ACTOR, update)

        assert campaign.name == "Q1 review (rescoped)"
        assert campaign.status == CampaignStatus.IN_REVIEW
        assert [len(s.items) for s in campaign.subjects] == [2, 1]
        assert campaign.version == 2

    def test_update_cannot_jump_to_submitted(self, sm, create_campaign):
        campaign = create_campaign()

        with pytest.raises(StateConflictError):
            sm.update_campaign(TENANT, campaign.id, ACTOR, CampaignUpdate(status=CampaignStatus.SUBMITTED))

    def test_period_rule_applies_to_partial_update(self, sm, create_campaign):
        campaign = create_campaign()

        with pytest.raises(ValidationError) as exc_info:
            sm.update_campaign(TENANT, campaign.id, ACTOR, CampaignUpdate(period_end=campaign.period_start))

        assert exc_info.value.errors == ["period end must be after period start"]


class TestItemDecisions:
    """Single item decisions."""

    def test_decision_is_stamped_and_subject_progresses(self, sm, create_campaign, make_subject, make_item, make_decision):
        campaign = create_campaign([make_subject(items=[make_item(), make_item()])])
        first, second = campaign.subjects[0].items

        campaign = sm.decide_item(TENANT, campaign.id, first.id, make_decision(), ACTOR)
        assert first.decision.decided_by == ACTOR
        assert first.decision.decided_at is not None
        assert campaign.subjects[0].status == SubjectStatus.IN_PROGRESS

        campaign = sm.decide_item(TENANT, campaign.id, second.id, make_decision(), ACTOR)
        assert campaign.subjects[0].status == SubjectStatus.COMPLETED

    def test_invalid_decision_is_refused_with_every_error(self, sm, create_campaign, make_subject, make_item, make_decision):
        campaign = create_campaign([
            make_subject(items=[make_item(data_classification=DataClassification.RESTRICTED)]),
        ])
        item_id = campaign.subjects[0].items[0].id

        with pytest.raises(ValidationError) as exc_info:
            sm.decide_item(TENANT, campaign.id, item_id, make_decision(DecisionType.REVOKE), ACTOR)

        assert len(exc_info.value.errors) == 2
        assert campaign.subjects[0].items[0].decision.decision_type == DecisionType.PENDING

    def test_unknown_item_is_not_found(self, sm, create_campaign, make_decision):
        campaign = create_campaign()

        with pytest.raises(NotFoundError):
            sm.decide_item(TENANT, campaign.id, 99999, make_decision(), ACTOR)

    def test_saved_decision_revalidates_clean(self, sm, db_session, create_campaign, make_subject, make_item, make_decision):
        """
        INVARIANT: a valid decision, saved and reloaded, still validates.
        """
        campaign = create_campaign([
            make_subject(items=[make_item(data_classification=DataClassification.RESTRICTED)]),
        ])
        item_id = campaign.subjects[0].items[0].id
        decision = make_decision(DecisionType.REVOKE, comments="Moved teams", evidence_link="https://ticket/42")
        sm.decide_item(TENANT, campaign.id, item_id, decision, ACTOR)

        db_session.expire_all()
        reloaded = sm.get_campaign(TENANT, campaign.id)
        item = reloaded.subjects[0].items[0]

        assert validate_item_decision(item, item.decision).valid
        assert validate_for_submission(reloaded).valid


class TestSubmit:
    """DRAFT / IN_REVIEW -> SUBMITTED."""

    def test_submit_requires_attestation(self, sm, decided_campaign):
        campaign = decided_campaign()

        with pytest.raises(ValidationError):
            submit(sm, campaign, attestation=False)
        assert campaign.status == CampaignStatus.DRAFT

    def test_submit_refused_with_pending_items(self, sm, create_campaign):
        campaign = create_campaign()

        with pytest.raises(ValidationError) as exc_info:
            submit(sm, campaign)

        assert exc_info.value.errors == ["Item 1 is missing a decision"]
        assert campaign.status == CampaignStatus.DRAFT

    def test_submit_refused_without_subjects(self, sm, create_campaign):
        campaign = create_campaign(subjects=[])

        with pytest.raises(ValidationError):
            submit(sm, campaign)

    def test_submit_side_effects(self, sm, decided_campaign):
        campaign = submit(sm, decided_campaign())

        assert campaign.status == CampaignStatus.SUBMITTED
        assert campaign.submitted_at is not None
        assert all(s.status == SubjectStatus.COMPLETED for s in campaign.subjects)
        assert all(s.reviewed_at == campaign.submitted_at for s in campaign.subjects)
        assert campaign.approvals.reviewer_email == "riley@example.com"
        assert campaign.approvals.second_level_required is False
        assert campaign.workflow.remediation_status == RemediationStatus.NOT_REQUIRED

    def test_submitted_campaign_is_read_only(self, sm, decided_campaign, make_decision):
        campaign = submit(sm, decided_campaign())
        item_id = campaign.subjects[0].items[0].id

        with pytest.raises(StateConflictError):
            sm.decide_item(TENANT, campaign.id, item_id, make_decision(), ACTOR)
        with pytest.raises(StateConflictError):
            sm.update_campaign(TENANT, campaign.id, ACTOR, CampaignUpdate(name="Renamed"))
        with pytest.raises(StateConflictError):
            submit(sm, campaign)


class TestSecondLevelApproval:
    """Routing to an escalated approver."""

    def test_complete_refused_until_second_level_approved(self, sm, decided_campaign):
        """
        INVARIANT: complete() with second level required and no decision is a state conflict;
        after APPROVED it succeeds and stamps verifiedAt.
        """
        campaign = submit(sm, decided_campaign(PrivilegeLevel.ADMIN))
        assert campaign.approvals.second_level_required is True
        assert campaign.approvals.second_decision is None

        with pytest.raises(StateConflictError):
            complete(sm, campaign)

        campaign = approve(sm, campaign)
        assert campaign.approved_at is not None
        assert campaign.workflow.remediation_status == RemediationStatus.NOT_REQUIRED

        campaign = complete(sm, campaign)
        assert campaign.status == CampaignStatus.COMPLETED
        assert campaign.workflow.verified_at is not None
        assert campaign.workflow.verified_by == "Sam Security"

    def test_approval_on_campaign_without_second_level_is_refused(self, sm, decided_campaign):
        campaign = submit(sm, decided_campaign())

        with pytest.raises(StateConflictError):
            approve(sm, campaign)

    def test_approval_only_while_submitted(self, sm, decided_campaign):
        campaign = decided_campaign(PrivilegeLevel.ADMIN)

        with pytest.raises(StateConflictError):
            approve(sm, campaign)

    def test_second_decision_is_not_overwritten(self, sm, decided_campaign):
        campaign = approve(sm, submit(sm, decided_campaign(PrivilegeLevel.SUPER_ADMIN)))

        with pytest.raises(StateConflictError):
            approve(sm, campaign, SecondLevelDecision.REJECTED)
        assert campaign.approvals.second_decision == SecondLevelDecision.APPROVED

    def test_rejection_returns_campaign_for_rework(self, sm, decided_campaign, make_decision):
        campaign = submit(sm, decided_campaign(PrivilegeLevel.ADMIN))

        campaign = approve(sm, campaign, SecondLevelDecision.REJECTED)
        assert campaign.status == CampaignStatus.IN_REVIEW
        assert campaign.approvals.second_decision == SecondLevelDecision.REJECTED

        # Editable again, and resubmission starts a fresh approval round
        item_id = campaign.subjects[1].items[0].id
        sm.decide_item(TENANT, campaign.id, item_id, make_decision(DecisionType.REVOKE, comments="Not needed"), ACTOR)
        campaign = submit(sm, campaign)
        assert campaign.status == CampaignStatus.SUBMITTED
        assert campaign.approvals.second_decision is None


class TestRemediationAndCompletion:
    """Closing out a campaign."""

    def test_revocations_need_completed_remediation(self, sm, decided_campaign, make_decision):
        campaign = submit(sm, decided_campaign(decision=make_decision(DecisionType.REVOKE, comments="Left")))
        assert campaign.workflow.remediation_status == RemediationStatus.PENDING

        with pytest.raises(StateConflictError):
            complete(sm, campaign)

        campaign = sm.record_remediation(TENANT, campaign.id, "CHG-1001", RemediationStatus.IN_PROGRESS, None, ACTOR)
        assert campaign.workflow.remediation_ticket_created is True
        assert campaign.workflow.remediation_completed_at is None
        with pytest.raises(StateConflictError):
            complete(sm, campaign)

        campaign = sm.record_remediation(TENANT, campaign.id, "CHG-1001", RemediationStatus.COMPLETED, "Done", ACTOR)
        assert campaign.workflow.remediation_completed_at is not None

        campaign = complete(sm, campaign)
        assert campaign.status == CampaignStatus.COMPLETED
        assert campaign.completed_at is not None

    def test_remediation_waits_for_second_level(self, sm, decided_campaign):
        campaign = submit(sm, decided_campaign(PrivilegeLevel.ADMIN))

        with pytest.raises(StateConflictError):
            sm.record_remediation(TENANT, campaign.id, "CHG-7", RemediationStatus.COMPLETED, None, ACTOR)

    def test_complete_only_from_submitted(self, sm, decided_campaign):
        campaign = decided_campaign()

        with pytest.raises(StateConflictError):
            complete(sm, campaign)

    def test_completed_campaign_is_final(self, sm, decided_campaign):
        campaign = complete(sm, submit(sm, decided_campaign()))

        with pytest.raises(StateConflictError):
            complete(sm, campaign)
        with pytest.raises(StateConflictError):
            sm.delete_campaign(TENANT, campaign.id, ACTOR)


class TestDeleteAndTenancy:
    """Soft delete and tenant scoping."""

    def test_deleted_campaign_is_hidden(self, sm, create_campaign):
        campaign = create_campaign()

        sm.delete_campaign(TENANT, campaign.id, ACTOR)

        with pytest.raises(NotFoundError):
            sm.get_campaign(TENANT, campaign.id)
        assert sm.store.list_campaigns(TENANT) == ([], 0)

    def test_other_tenant_cannot_see_campaign(self, sm, create_campaign):
        campaign = create_campaign()

        with pytest.raises(NotFoundError):
            sm.get_campaign("tenant-b", campaign.id)


class TestAuditTrail:
    """Every state change writes exactly one audit event; refusals write none."""

    def test_one_event_per_operation(self, sm, db_session, decided_campaign):
        campaign = decided_campaign(PrivilegeLevel.ADMIN)
        campaign = submit(sm, campaign)
        campaign = approve(sm, campaign)
        campaign = complete(sm, campaign)

        assert audit_actions(db_session, campaign) == [
            AuditAction.CAMPAIGN_CREATED,
            AuditAction.CAMPAIGN_SUBMITTED,
            AuditAction.CAMPAIGN_APPROVED,
            AuditAction.CAMPAIGN_COMPLETED,
        ]

    def test_refused_operation_writes_nothing(self, sm, db_session, create_campaign):
        campaign = create_campaign()

        with pytest.raises(ValidationError):
            submit(sm, campaign)
        with pytest.raises(StateConflictError):
            complete(sm, campaign)

        assert audit_actions(db_session, campaign) == [AuditAction.CAMPAIGN_CREATED]

    def test_event_records_actor_and_transition(self, sm, decided_campaign):
        campaign = submit(sm, decided_campaign())

        events = sm.audit_trail(TENANT, campaign.id)
        submitted = events[-1]

        assert submitted.actor_email == ACTOR
        assert submitted.before_json == {"status": "DRAFT"}
        assert submitted.after_json["status"] == "SUBMITTED"
        assert submitted.after_json["second_level_required"] is False
