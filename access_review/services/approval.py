"""
Second-level approval routing.

A campaign that contains ADMIN or SUPER_ADMIN access needs an escalated
approver after submission. The router records that approver's outcome; it
does not complete the campaign.

Policy:
- REJECTED sends the campaign back to IN_REVIEW for rework. The rejection
  stays on the approvals record until the next submission rebuilds it.
- A second decision is recorded once. Calling again while one is set is a
  state conflict, never an overwrite.
"""
from datetime import datetime
from typing import Optional

from access_review.models.domain import Approvals, Workflow
from access_review.models.enums import (
    CampaignStatus,
    RemediationStatus,
    SecondLevelDecision,
)
from access_review.services.errors import StateConflictError, ValidationError
from access_review.services.rules import needs_remediation, requires_second_level

__all__ = [
    "ensure_second_level_cleared",
    "ensure_workflow",
    "record_approval",
    "requires_second_level",
    "second_level_pending",
    "set_initial_remediation_status",
]


def second_level_pending(campaign) -> bool:
    """True while an escalated approval is required and not yet APPROVED."""
    approvals = campaign.approvals
    if approvals is None or not approvals.second_level_required:
        return False
    return approvals.second_decision != SecondLevelDecision.APPROVED


def ensure_second_level_cleared(campaign, action: str) -> None:
    if second_level_pending(campaign):
        raise StateConflictError(
            f"Cannot {action}: second-level approval is required and has not been granted"
        )


def ensure_workflow(campaign, now: datetime) -> Workflow:
    """The campaign's workflow record, created with due date = period end if missing."""
    if campaign.workflow is None:
        campaign.workflow = Workflow(
            due_date=campaign.period_end or now,
            escalation_level=0,
            notifications_sent_at=[],
            remediation_ticket_created=False,
        )
    return campaign.workflow


def set_initial_remediation_status(campaign, now: datetime) -> None:
    """Remediation is PENDING when any access is revoked or modified, NOT_REQUIRED otherwise."""
    ensure_workflow(campaign, now)
    if needs_remediation(campaign):
        campaign.workflow.remediation_status = RemediationStatus.PENDING
    else:
        campaign.workflow.remediation_status = RemediationStatus.NOT_REQUIRED


def record_approval(
    campaign,
    decision: SecondLevelDecision,
    approver_name: str,
    approver_email: str,
    notes: Optional[str],
    now: datetime,
) -> Approvals:
    """
    Record the second-level approver's decision on a SUBMITTED campaign.

    Refusals:
    - campaign not SUBMITTED
    - campaign does not require second-level approval
    - a second decision is already recorded
    """
    if campaign.status != CampaignStatus.SUBMITTED:
        raise StateConflictError("Can only approve campaigns in SUBMITTED status")

    approvals = campaign.approvals
    if approvals is None or not approvals.second_level_required:
        raise StateConflictError("This campaign does not require second-level approval")

    if approvals.second_decision is not None:
        raise StateConflictError(
            f"Second-level decision already recorded ({approvals.second_decision.value})"
        )

    if not approver_name or not approver_email:
        raise ValidationError("Approver name and email are required")

    decision = SecondLevelDecision(decision)
    approvals.second_approver_name = approver_name
    approvals.second_approver_email = approver_email.lower()
    approvals.second_decision = decision
    approvals.second_decision_notes = notes
    approvals.second_decided_at = now

    if decision == SecondLevelDecision.APPROVED:
        campaign.approved_at = now
        set_initial_remediation_status(campaign, now)
    else:
        campaign.status = CampaignStatus.IN_REVIEW

    return approvals
