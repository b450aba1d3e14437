"""
Campaign state machine.

This is the core enforcement mechanism - every campaign change goes through
here. Lifecycle:

    DRAFT / IN_REVIEW  --submit-->  SUBMITTED  --complete-->  COMPLETED
                                       |
                          second-level REJECTED --> IN_REVIEW

Each public method loads the campaign, applies one transition in memory,
writes one audit event and commits once through the CampaignStore.
"""
import logging
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from sqlalchemy.orm import Session

from access_review.models.audit import AuditAction, AuditEvent, CAMPAIGN_TARGET_TYPE
from access_review.models.domain import (
    Approvals,
    Campaign,
    Item,
    ItemDecision,
    Subject,
    Workflow,
    utcnow,
)
from access_review.models.enums import (
    CampaignStatus,
    DecisionType,
    EDITABLE_STATUSES,
    SecondLevelDecision,
    SubjectStatus,
)
from access_review.services import approval, bulk, remediation
from access_review.services.errors import NotFoundError, StateConflictError, ValidationError
from access_review.services.rules import (
    SubmissionReport,
    derive_subject_status,
    is_privileged_level,
    iter_items,
    validate_campaign_definition,
    validate_for_submission,
    validate_item_decision,
    validate_period,
)
from access_review.services.store import CampaignStore

logger = logging.getLogger(__name__)

# Header fields copied straight from create/update payloads
CAMPAIGN_HEADER_FIELDS = (
    "name",
    "description",
    "system_name",
    "environment",
    "business_unit",
    "review_type",
    "trigger_reason",
    "period_start",
    "period_end",
    "reviewer_type",
    "assigned_reviewer_email",
)
NULLABLE_HEADER_FIELDS = ("description", "business_unit", "trigger_reason", "assigned_reviewer_email")


def ensure_editable(campaign: Campaign, action: str) -> None:
    """Subjects, items and decisions only change while DRAFT or IN_REVIEW."""
    if campaign.status not in EDITABLE_STATUSES:
        raise StateConflictError(
            f"Cannot {action}: campaign is {campaign.status.value}; "
            f"only DRAFT or IN_REVIEW campaigns can be changed"
        )


def find_item(campaign: Campaign, item_id: int) -> Item:
    for _, item in iter_items(campaign):
        if item.id == item_id:
            return item
    raise NotFoundError(f"Item {item_id} not found in campaign")


def submit_campaign(
    campaign: Campaign,
    reviewer_attestation: bool,
    reviewer_name: str,
    reviewer_email: str,
    reviewed_by: Optional[str],
    now: datetime,
) -> SubmissionReport:
    """
    DRAFT / IN_REVIEW -> SUBMITTED.

    Guards: editable status, attestation given, reviewer identified, at least
    one subject, and a clean submission gate. On success every subject is
    marked reviewed and the approvals record is rebuilt from this submission.
    """
    ensure_editable(campaign, "submit campaign")

    if reviewer_attestation is not True:
        raise ValidationError("Reviewer attestation is required to submit")
    if not reviewer_name or not reviewer_email:
        raise ValidationError("Reviewer name and email are required to submit")
    if not campaign.subjects:
        raise ValidationError("Campaign must have at least one subject")

    report = validate_for_submission(campaign)
    if not report.valid:
        raise ValidationError("Campaign validation failed", report.errors)

    campaign.status = CampaignStatus.SUBMITTED
    campaign.submitted_at = now
    campaign.approved_at = None

    # Update in place; one approvals row per campaign
    approvals = campaign.approvals
    if approvals is None:
        approvals = campaign.approvals = Approvals()
    approvals.reviewer_name = reviewer_name
    approvals.reviewer_email = reviewer_email.lower()
    approvals.reviewer_attestation = True
    approvals.reviewer_attested_at = now
    approvals.second_level_required = report.requires_second_level
    approvals.second_approver_name = None
    approvals.second_approver_email = None
    approvals.second_decision = None
    approvals.second_decision_notes = None
    approvals.second_decided_at = None

    if not report.requires_second_level:
        approval.set_initial_remediation_status(campaign, now)

    for subject in campaign.subjects:
        subject.status = SubjectStatus.COMPLETED
        subject.reviewed_at = now
        subject.reviewed_by = reviewed_by

    return report


def _build_decision(payload, decided_by: Optional[str], now: datetime) -> ItemDecision:
    if payload is None:
        return ItemDecision(decision_type=DecisionType.PENDING)
    decision = ItemDecision(**payload.model_dump(exclude={"requested_change"}))
    if payload.requested_change is not None:
        decision.requested_change = payload.requested_change.model_dump(mode="json", exclude_none=True)
    if decision.decision_type != DecisionType.PENDING:
        decision.decided_by = decided_by
        decision.decided_at = now
    return decision


def _build_item(payload, position: int, decided_by: Optional[str], now: datetime) -> Item:
    item = Item(**payload.model_dump(exclude={"decision", "regulated_flags"}))
    item.position = position
    if payload.regulated_flags is not None:
        item.regulated_flags = [flag.value for flag in payload.regulated_flags]
    item.is_privileged = is_privileged_level(payload.privilege_level)
    item.decision = _build_decision(payload.decision, decided_by, now)
    return item


def _build_subject(payload, position: int, decided_by: Optional[str], now: datetime) -> Subject:
    subject = Subject(**payload.model_dump(exclude={"items"}))
    subject.position = position
    subject.email = payload.email.lower()
    if payload.manager_email:
        subject.manager_email = payload.manager_email.lower()
    subject.items = [
        _build_item(item, index, decided_by, now)
        for index, item in enumerate(payload.items)
    ]
    subject.status = derive_subject_status(subject)
    return subject


def _write_item_decision(item: Item, payload, decided_by: Optional[str], now: datetime) -> None:
    new_decision = _build_decision(payload, decided_by, now)
    if item.decision is None:
        item.decision = new_decision
        return
    for name in (
        "decision_type",
        "reason_code",
        "comments",
        "effective_date",
        "requested_change",
        "evidence_provided",
        "evidence_link",
        "decided_by",
        "decided_at",
    ):
        setattr(item.decision, name, getattr(new_decision, name))


def _snapshot(campaign: Campaign, *fields: str) -> dict:
    """JSON-safe view of a few campaign attributes for the audit trail."""
    data = {}
    for name in fields:
        value = getattr(campaign, name)
        if isinstance(value, datetime):
            value = value.isoformat()
        elif hasattr(value, "value"):
            value = value.value
        data[name] = value
    return data


class CampaignStateMachine:
    """Enforces campaign transitions and business rules against the database."""

    def __init__(self, db: Session, store: Optional[CampaignStore] = None, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.store = store or CampaignStore(db)
        self.clock = clock

    # -- audit -------------------------------------------------------------

    def _audit(
        self,
        campaign: Campaign,
        action: str,
        actor_email: Optional[str],
        summary: str,
        before: Optional[dict] = None,
        after: Optional[dict] = None,
    ) -> AuditEvent:
        event = AuditEvent(
            tenant_id=campaign.tenant_id,
            action=action,
            actor_email=actor_email,
            target_type=CAMPAIGN_TARGET_TYPE,
            target_id=str(campaign.id),
            summary=summary,
            before_json=before,
            after_json=after,
            created_at=self.clock(),
        )
        self.db.add(event)
        return event

    # -- reads ---------------------------------------------------------------

    def get_campaign(self, tenant_id: str, campaign_id: int) -> Campaign:
        return self.store.load(tenant_id, campaign_id)

    def check_submission(self, tenant_id: str, campaign_id: int) -> SubmissionReport:
        """Dry-run of the submission gate; changes nothing."""
        return validate_for_submission(self.store.load(tenant_id, campaign_id))

    def audit_trail(self, tenant_id: str, campaign_id: int) -> List[AuditEvent]:
        self.store.load(tenant_id, campaign_id)
        return self.db.query(AuditEvent).filter(
            AuditEvent.tenant_id == tenant_id,
            AuditEvent.target_type == CAMPAIGN_TARGET_TYPE,
            AuditEvent.target_id == str(campaign_id),
        ).order_by(AuditEvent.created_at, AuditEvent.id).all()

    # -- authoring -----------------------------------------------------------

    def create_campaign(self, tenant_id: str, actor_email: Optional[str], data) -> Campaign:
        """
        Create a DRAFT campaign from data handed over by the entitlement source.

        Every item starts with a PENDING decision unless one is supplied.
        The workflow due date defaults to the end of the review period.
        """
        result = validate_campaign_definition(data.period_start, data.period_end, data.subjects)
        if not result.valid:
            raise ValidationError("Campaign validation failed", result.errors)

        now = self.clock()
        campaign = Campaign(**data.model_dump(include=set(CAMPAIGN_HEADER_FIELDS)))
        campaign.status = CampaignStatus.DRAFT
        campaign.created_by_email = actor_email.lower() if actor_email else None
        campaign.subjects = [
            _build_subject(subject, position, actor_email, now)
            for position, subject in enumerate(data.subjects)
        ]
        campaign.workflow = Workflow(
            due_date=data.workflow.due_date if data.workflow else data.period_end,
            escalation_level=0,
            notifications_sent_at=[],
            remediation_ticket_created=False,
        )

        self.store.add(tenant_id, campaign)
        self._audit(
            campaign,
            AuditAction.CAMPAIGN_CREATED,
            actor_email,
            f"Created access review campaign: {campaign.name}",
            after=_snapshot(campaign, "name", "system_name", "status"),
        )
        # A fresh row starts at version 1; no touch needed
        self.db.commit()
        self.db.refresh(campaign)
        logger.info("Campaign %s created for tenant %s", campaign.id, tenant_id)
        return campaign

    def update_campaign(
        self,
        tenant_id: str,
        campaign_id: int,
        actor_email: Optional[str],
        data,
        expected_version: Optional[int] = None,
    ) -> Campaign:
        """
        Edit header fields and/or replace the subject list.

        Only while DRAFT or IN_REVIEW. `status` may move between those two.
        """
        changes = data.model_dump(exclude_unset=True, include=set(CAMPAIGN_HEADER_FIELDS))
        # Required columns cannot be cleared
        changes = {
            name: value for name, value in changes.items()
            if value is not None or name in NULLABLE_HEADER_FIELDS
        }

        def mutate(campaign: Campaign):
            ensure_editable(campaign, "update campaign")
            before = _snapshot(campaign, "name", "system_name", "status")

            period = validate_period(
                changes.get("period_start", campaign.period_start),
                changes.get("period_end", campaign.period_end),
            )
            errors = list(period.errors)
            if data.subjects is not None:
                errors.extend(validate_campaign_definition(None, None, data.subjects).errors)
            if errors:
                raise ValidationError("Campaign validation failed", errors)

            if data.status is not None:
                if data.status not in EDITABLE_STATUSES:
                    raise StateConflictError(
                        f"Status {data.status.value} can only be reached through its transition"
                    )
                campaign.status = data.status

            for name, value in changes.items():
                setattr(campaign, name, value)

            now = self.clock()
            if data.subjects is not None:
                campaign.subjects = [
                    _build_subject(subject, position, actor_email, now)
                    for position, subject in enumerate(data.subjects)
                ]
            if data.workflow is not None:
                approval.ensure_workflow(campaign, now).due_date = data.workflow.due_date

            self._audit(
                campaign,
                AuditAction.CAMPAIGN_UPDATED,
                actor_email,
                f"Updated access review campaign: {campaign.name}",
                before=before,
                after=_snapshot(campaign, "name", "system_name", "status"),
            )

        campaign, _ = self.store.update_campaign(tenant_id, campaign_id, mutate, expected_version)
        return campaign

    def delete_campaign(
        self,
        tenant_id: str,
        campaign_id: int,
        actor_email: Optional[str],
        expected_version: Optional[int] = None,
    ) -> Campaign:
        """Soft-delete; the row stays for the audit trail."""
        def mutate(campaign: Campaign):
            ensure_editable(campaign, "delete campaign")
            campaign.deleted_at = self.clock()
            campaign.deleted_by = actor_email
            self._audit(
                campaign,
                AuditAction.CAMPAIGN_DELETED,
                actor_email,
                f"Deleted access review campaign: {campaign.name}",
                before=_snapshot(campaign, "status"),
            )

        campaign, _ = self.store.update_campaign(tenant_id, campaign_id, mutate, expected_version)
        logger.info("Campaign %s soft-deleted by %s", campaign_id, actor_email)
        return campaign

    # -- decisions -----------------------------------------------------------

    def decide_item(
        self,
        tenant_id: str,
        campaign_id: int,
        item_id: int,
        decision,
        actor_email: Optional[str],
        expected_version: Optional[int] = None,
    ) -> Campaign:
        """Record a reviewer's decision on one item after running the decision validator."""
        def mutate(campaign: Campaign):
            ensure_editable(campaign, "change decisions")
            item = find_item(campaign, item_id)

            result = validate_item_decision(item, decision)
            if not result.valid:
                raise ValidationError("Decision validation failed", result.errors)

            previous = item.decision.decision_type.value if item.decision else DecisionType.PENDING.value
            _write_item_decision(item, decision, actor_email, self.clock())
            item.subject.status = derive_subject_status(item.subject)

            self._audit(
                campaign,
                AuditAction.CAMPAIGN_ITEM_DECIDED,
                actor_email,
                f"Decision {decision.decision_type.value} on item {item_id} in campaign: {campaign.name}",
                before={"item_id": item_id, "decision_type": previous},
                after={"item_id": item_id, "decision_type": decision.decision_type.value},
            )

        campaign, _ = self.store.update_campaign(tenant_id, campaign_id, mutate, expected_version)
        return campaign

    def apply_bulk_decision(
        self,
        tenant_id: str,
        campaign_id: int,
        request,
        actor_email: Optional[str],
        expected_version: Optional[int] = None,
    ) -> Tuple[Campaign, bulk.BulkDecisionReport]:
        """
        Apply one decision across many items as a single write.

        Per-item refusals are part of the report; only request-level problems
        (wrong status, empty selection) raise.
        """
        def mutate(campaign: Campaign):
            ensure_editable(campaign, "apply bulk decisions")
            report = bulk.apply_bulk_decision(campaign, request, actor_email, self.clock())
            for subject in campaign.subjects:
                subject.status = derive_subject_status(subject)

            self._audit(
                campaign,
                AuditAction.CAMPAIGN_BULK_DECISION,
                actor_email,
                f"Bulk decision applied to {report.successful} items in campaign: {campaign.name}",
                after={
                    "bulk_decision": request.decision.decision_type.value,
                    "target_type": request.target_type.value,
                    "total_processed": report.total_processed,
                    "successful": report.successful,
                    "skipped": report.skipped,
                    "failed": report.failed,
                },
            )
            return report

        campaign, report = self.store.update_campaign(tenant_id, campaign_id, mutate, expected_version)
        logger.info(
            "Bulk decision on campaign %s: %d ok, %d skipped, %d failed",
            campaign_id, report.successful, report.skipped, report.failed,
        )
        return campaign, report

    # -- transitions ---------------------------------------------------------

    def submit(
        self,
        tenant_id: str,
        campaign_id: int,
        reviewer_attestation: bool,
        reviewer_name: str,
        reviewer_email: str,
        actor_email: Optional[str],
        expected_version: Optional[int] = None,
    ) -> Campaign:
        def mutate(campaign: Campaign):
            before = _snapshot(campaign, "status")
            report = submit_campaign(
                campaign,
                reviewer_attestation,
                reviewer_name,
                reviewer_email,
                actor_email,
                self.clock(),
            )
            self._audit(
                campaign,
                AuditAction.CAMPAIGN_SUBMITTED,
                actor_email,
                f"Submitted access review campaign: {campaign.name}",
                before=before,
                after=dict(
                    _snapshot(campaign, "status", "submitted_at"),
                    second_level_required=report.requires_second_level,
                ),
            )
            return report

        campaign, report = self.store.update_campaign(tenant_id, campaign_id, mutate, expected_version)
        logger.info(
            "Campaign %s submitted (second-level approval %s)",
            campaign_id, "required" if report.requires_second_level else "not required",
        )
        return campaign

    def record_approval(
        self,
        tenant_id: str,
        campaign_id: int,
        decision: SecondLevelDecision,
        approver_name: str,
        approver_email: str,
        notes: Optional[str],
        actor_email: Optional[str],
        expected_version: Optional[int] = None,
    ) -> Campaign:
        def mutate(campaign: Campaign):
            before = _snapshot(campaign, "status")
            approval.record_approval(campaign, decision, approver_name, approver_email, notes, self.clock())
            approved = SecondLevelDecision(decision) == SecondLevelDecision.APPROVED
            self._audit(
                campaign,
                AuditAction.CAMPAIGN_APPROVED if approved else AuditAction.CAMPAIGN_REJECTED,
                actor_email,
                f"{'Approved' if approved else 'Rejected'} access review campaign: {campaign.name}",
                before=before,
                after=dict(_snapshot(campaign, "status"), decision=SecondLevelDecision(decision).value),
            )

        campaign, _ = self.store.update_campaign(tenant_id, campaign_id, mutate, expected_version)
        logger.info("Second-level decision %s recorded on campaign %s", SecondLevelDecision(decision).value, campaign_id)
        return campaign

    def record_remediation(
        self,
        tenant_id: str,
        campaign_id: int,
        ticket_id: str,
        status,
        notes: Optional[str],
        actor_email: Optional[str],
        expected_version: Optional[int] = None,
    ) -> Campaign:
        def mutate(campaign: Campaign):
            workflow = campaign.workflow
            before = {
                "remediation_status": workflow.remediation_status.value if workflow and workflow.remediation_status else None,
                "remediation_ticket_id": workflow.remediation_ticket_id if workflow else None,
            }
            workflow = remediation.record_remediation(campaign, ticket_id, status, notes, self.clock())
            self._audit(
                campaign,
                AuditAction.CAMPAIGN_REMEDIATION_UPDATED,
                actor_email,
                f"Remediation {workflow.remediation_status.value} for campaign: {campaign.name}",
                before=before,
                after={
                    "remediation_status": workflow.remediation_status.value,
                    "remediation_ticket_id": workflow.remediation_ticket_id,
                    "notes": notes,
                },
            )

        campaign, _ = self.store.update_campaign(tenant_id, campaign_id, mutate, expected_version)
        return campaign

    def complete(
        self,
        tenant_id: str,
        campaign_id: int,
        verified_by: str,
        notes: Optional[str],
        actor_email: Optional[str],
        expected_version: Optional[int] = None,
    ) -> Campaign:
        def mutate(campaign: Campaign):
            before = _snapshot(campaign, "status")
            remediation.complete_campaign(campaign, verified_by, notes, self.clock())
            self._audit(
                campaign,
                AuditAction.CAMPAIGN_COMPLETED,
                actor_email,
                f"Completed access review campaign: {campaign.name}",
                before=before,
                after=dict(_snapshot(campaign, "status", "completed_at"), verified_by=verified_by, notes=notes),
            )

        campaign, _ = self.store.update_campaign(tenant_id, campaign_id, mutate, expected_version)
        logger.info("Campaign %s completed, verified by %s", campaign_id, verified_by)
        return campaign
