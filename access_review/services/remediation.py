"""Remediation tracking and campaign completion."""
from datetime import datetime
from typing import Optional

from access_review.models.domain import Workflow
from access_review.models.enums import (
    CampaignStatus,
    REMEDIATION_CLOSED,
    RemediationStatus,
)
from access_review.services.approval import ensure_second_level_cleared, ensure_workflow
from access_review.services.errors import StateConflictError, ValidationError
from access_review.services.rules import needs_remediation


def record_remediation(
    campaign,
    ticket_id: str,
    status: RemediationStatus,
    notes: Optional[str],
    now: datetime,
) -> Workflow:
    """
    Record the downstream ticket that carries out revocations and changes.

    Only for SUBMITTED campaigns whose second-level approval (if any) was
    granted. A COMPLETED status stamps remediation_completed_at.
    """
    if campaign.status != CampaignStatus.SUBMITTED:
        raise StateConflictError("Can only remediate campaigns in SUBMITTED status")
    ensure_second_level_cleared(campaign, "record remediation")

    if not ticket_id or not ticket_id.strip():
        raise ValidationError("Remediation ticket id is required")

    status = RemediationStatus(status)
    workflow = ensure_workflow(campaign, now)
    workflow.remediation_ticket_created = True
    workflow.remediation_ticket_id = ticket_id.strip()
    workflow.remediation_status = status
    workflow.remediation_notes = notes
    if status == RemediationStatus.COMPLETED:
        workflow.remediation_completed_at = now
    else:
        workflow.remediation_completed_at = None
    return workflow


def complete_campaign(campaign, verified_by: str, notes: Optional[str], now: datetime):
    """
    Close a SUBMITTED campaign.

    Refusals:
    - campaign not SUBMITTED
    - second-level approval required and not APPROVED
    - revocations/changes exist and remediation is not COMPLETED
    - remediation recorded in a state other than NOT_REQUIRED/COMPLETED
    """
    if campaign.status != CampaignStatus.SUBMITTED:
        raise StateConflictError("Can only complete campaigns in SUBMITTED status")
    ensure_second_level_cleared(campaign, "complete campaign")

    if not verified_by or not verified_by.strip():
        raise ValidationError("verifiedBy is required to complete a campaign")

    workflow = ensure_workflow(campaign, now)
    remediation = workflow.remediation_status
    if needs_remediation(campaign) and remediation != RemediationStatus.COMPLETED:
        raise StateConflictError(
            "Remediation must be completed before marking campaign as complete"
        )
    if remediation is not None and remediation not in REMEDIATION_CLOSED:
        raise StateConflictError(
            "Remediation must be completed before marking campaign as complete"
        )

    campaign.status = CampaignStatus.COMPLETED
    campaign.completed_at = now
    workflow.verified_by = verified_by.strip()
    workflow.verified_at = now
    workflow.completion_notes = notes
    return campaign
