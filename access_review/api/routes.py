"""API routes for access review campaigns. Every path is scoped to one tenant."""
import math
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Query, Response, status
from sqlalchemy.orm import Session

from access_review import config
from access_review.database import get_db
from access_review.models.domain import Campaign
from access_review.models.enums import CampaignStatus, EnvironmentType, ReviewType
from access_review.services.errors import ValidationError
from access_review.services.rules import campaign_stats
from access_review.services.state_machine import CampaignStateMachine
from access_review.services.store import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, SORTABLE_FIELDS
from access_review.services.suggestions import suggest_decisions
from access_review.api.schemas import (
    ApproveRequest,
    AuditEventResponse,
    BulkDecisionRequest,
    BulkDecisionResponse,
    CampaignCreate,
    CampaignListResponse,
    CampaignResponse,
    CampaignSummaryResponse,
    CampaignUpdate,
    CompleteRequest,
    DecisionIn,
    Pagination,
    RemediateRequest,
    SubmissionCheckResponse,
    SubmitRequest,
    SuggestionsResponse,
    UtcDatetime,
)

router = APIRouter()

CAMPAIGNS = "/tenants/{tenant_id}/access-review-campaigns"
SORT_BY_PATTERN = "^(" + "|".join(SORTABLE_FIELDS) + ")$"


def campaign_response(campaign: Campaign, detail: bool = True):
    """Serialize a campaign with its progress counters."""
    model = CampaignResponse if detail else CampaignSummaryResponse
    return model.model_validate(campaign).model_copy(update=campaign_stats(campaign))


def parse_if_match(if_match: Optional[str]) -> Optional[int]:
    """`If-Match: 3`, `If-Match: "3"` and `If-Match: W/"3"` all pin version 3."""
    if if_match is None or if_match.strip() in ("", "*"):
        return None
    raw = if_match.strip()
    if raw.startswith("W/"):
        raw = raw[2:]
    raw = raw.strip('"')
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"If-Match must be a campaign version number, got {if_match!r}")


# Campaign endpoints
@router.post(CAMPAIGNS, response_model=CampaignResponse, status_code=status.HTTP_201_CREATED)
def create_campaign(
    tenant_id: str,
    data: CampaignCreate,
    x_actor_email: Optional[str] = Header(None),
    db: Session = Depends(get_db),
):
    """Create a DRAFT campaign from subjects and items supplied by the entitlement source."""
    sm = CampaignStateMachine(db)
    campaign = sm.create_campaign(tenant_id, x_actor_email, data)
    return campaign_response(campaign)


@router.get(CAMPAIGNS, response_model=CampaignListResponse)
def list_campaigns(
    tenant_id: str,
    status_filter: Optional[CampaignStatus] = Query(None, alias="status"),
    system_name: Optional[str] = Query(None, alias="systemName"),
    environment: Optional[EnvironmentType] = None,
    review_type: Optional[ReviewType] = Query(None, alias="reviewType"),
    period_end_from: Optional[UtcDatetime] = Query(None, alias="periodEndFrom"),
    period_end_to: Optional[UtcDatetime] = Query(None, alias="periodEndTo"),
    search: Optional[str] = None,
    sort_by: str = Query("createdAt", alias="sortBy", pattern=SORT_BY_PATTERN),
    sort_order: str = Query("desc", alias="sortOrder", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
):
    """List live campaigns of the tenant with filters, sorting and pagination."""
    sm = CampaignStateMachine(db)
    campaigns, total = sm.store.list_campaigns(
        tenant_id,
        status=status_filter,
        system_name=system_name,
        environment=environment,
        review_type=review_type,
        period_end_from=period_end_from,
        period_end_to=period_end_to,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )
    total_pages = math.ceil(total / limit) if total else 0
    return CampaignListResponse(
        data=[campaign_response(c, detail=False) for c in campaigns],
        pagination=Pagination(
            page=page,
            limit=limit,
            total=total,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_prev=page > 1,
        ),
    )


@router.get(CAMPAIGNS + "/{campaign_id}", response_model=CampaignResponse)
def get_campaign(tenant_id: str, campaign_id: int, db: Session = Depends(get_db)):
    sm = CampaignStateMachine(db)
    return campaign_response(sm.get_campaign(tenant_id, campaign_id))


@router.patch(CAMPAIGNS + "/{campaign_id}", response_model=CampaignResponse)
def update_campaign(
    tenant_id: str,
    campaign_id: int,
    data: CampaignUpdate,
    x_actor_email: Optional[str] = Header(None),
    if_match: Optional[str] = Header(None),
    db: Session = Depends(get_db),
):
    """
    Edit header fields, replace subjects, or move DRAFT <-> IN_REVIEW.
    Refused once the campaign is SUBMITTED or COMPLETED.
    """
    sm = CampaignStateMachine(db)
    campaign = sm.update_campaign(tenant_id, campaign_id, x_actor_email, data, parse_if_match(if_match))
    return campaign_response(campaign)


@router.delete(CAMPAIGNS + "/{campaign_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_campaign(
    tenant_id: str,
    campaign_id: int,
    x_actor_email: Optional[str] = Header(None),
    if_match: Optional[str] = Header(None),
    db: Session = Depends(get_db),
):
    """Soft-delete a DRAFT or IN_REVIEW campaign."""
    sm = CampaignStateMachine(db)
    sm.delete_campaign(tenant_id, campaign_id, x_actor_email, parse_if_match(if_match))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Decision endpoints
@router.put(CAMPAIGNS + "/{campaign_id}/items/{item_id}/decision", response_model=CampaignResponse)
def decide_item(
    tenant_id: str,
    campaign_id: int,
    item_id: int,
    decision: DecisionIn,
    x_actor_email: Optional[str] = Header(None),
    if_match: Optional[str] = Header(None),
    db: Session = Depends(get_db),
):
    """Record a decision on one item. Returns 400 with every violated rule."""
    sm = CampaignStateMachine(db)
    campaign = sm.decide_item(tenant_id, campaign_id, item_id, decision, x_actor_email, parse_if_match(if_match))
    return campaign_response(campaign)


@router.post(CAMPAIGNS + "/{campaign_id}/bulk-decision", response_model=BulkDecisionResponse)
def bulk_decision(
    tenant_id: str,
    campaign_id: int,
    request: BulkDecisionRequest,
    x_actor_email: Optional[str] = Header(None),
    if_match: Optional[str] = Header(None),
    db: Session = Depends(get_db),
):
    """
    Apply one decision to all, filtered or selected items.
    Partial success is normal: skipped and failed items are reported, not raised.
    """
    sm = CampaignStateMachine(db)
    _, report = sm.apply_bulk_decision(tenant_id, campaign_id, request, x_actor_email, parse_if_match(if_match))

    response = BulkDecisionResponse.model_validate(report)
    limit = config.BULK_SKIPPED_ITEMS_LIMIT
    if limit > 0 and len(response.skipped_items) > limit:
        response = response.model_copy(update={"skipped_items": response.skipped_items[:limit]})
    return response


@router.get(CAMPAIGNS + "/{campaign_id}/suggestions", response_model=SuggestionsResponse)
def get_suggestions(tenant_id: str, campaign_id: int, db: Session = Depends(get_db)):
    """Risk-scored suggestions for every item; nothing is written."""
    sm = CampaignStateMachine(db)
    return SuggestionsResponse.model_validate(suggest_decisions(sm.get_campaign(tenant_id, campaign_id)))


# Lifecycle endpoints
@router.get(CAMPAIGNS + "/{campaign_id}/submission-check", response_model=SubmissionCheckResponse)
def check_submission(tenant_id: str, campaign_id: int, db: Session = Depends(get_db)):
    """Dry-run of the submission gate."""
    sm = CampaignStateMachine(db)
    return SubmissionCheckResponse.model_validate(sm.check_submission(tenant_id, campaign_id))


@router.post(CAMPAIGNS + "/{campaign_id}/submit", response_model=CampaignResponse)
def submit_campaign(
    tenant_id: str,
    campaign_id: int,
    data: SubmitRequest,
    x_actor_email: Optional[str] = Header(None),
    if_match: Optional[str] = Header(None),
    db: Session = Depends(get_db),
):
    """
    Submit a campaign for approval.
    Refused unless every item has a valid decision and the reviewer attests.
    """
    sm = CampaignStateMachine(db)
    campaign = sm.submit(
        tenant_id,
        campaign_id,
        reviewer_attestation=data.reviewer_attestation,
        reviewer_name=data.reviewer_name,
        reviewer_email=data.reviewer_email,
        actor_email=x_actor_email,
        expected_version=parse_if_match(if_match),
    )
    return campaign_response(campaign)


@router.post(CAMPAIGNS + "/{campaign_id}/approve", response_model=CampaignResponse)
def approve_campaign(
    tenant_id: str,
    campaign_id: int,
    data: ApproveRequest,
    x_actor_email: Optional[str] = Header(None),
    if_match: Optional[str] = Header(None),
    db: Session = Depends(get_db),
):
    """Record the second-level approver's APPROVED or REJECTED decision."""
    sm = CampaignStateMachine(db)
    campaign = sm.record_approval(
        tenant_id,
        campaign_id,
        decision=data.decision,
        approver_name=data.approver_name,
        approver_email=data.approver_email,
        notes=data.notes,
        actor_email=x_actor_email,
        expected_version=parse_if_match(if_match),
    )
    return campaign_response(campaign)


@router.post(CAMPAIGNS + "/{campaign_id}/remediate", response_model=CampaignResponse)
def remediate_campaign(
    tenant_id: str,
    campaign_id: int,
    data: RemediateRequest,
    x_actor_email: Optional[str] = Header(None),
    if_match: Optional[str] = Header(None),
    db: Session = Depends(get_db),
):
    sm = CampaignStateMachine(db)
    campaign = sm.record_remediation(
        tenant_id,
        campaign_id,
        ticket_id=data.remediation_ticket_id,
        status=data.remediation_status,
        notes=data.notes,
        actor_email=x_actor_email,
        expected_version=parse_if_match(if_match),
    )
    return campaign_response(campaign)


@router.post(CAMPAIGNS + "/{campaign_id}/complete", response_model=CampaignResponse)
def complete_campaign(
    tenant_id: str,
    campaign_id: int,
    data: CompleteRequest,
    x_actor_email: Optional[str] = Header(None),
    if_match: Optional[str] = Header(None),
    db: Session = Depends(get_db),
):
    """Close the campaign once approval and remediation are settled."""
    sm = CampaignStateMachine(db)
    campaign = sm.complete(
        tenant_id,
        campaign_id,
        verified_by=data.verified_by,
        notes=data.notes,
        actor_email=x_actor_email,
        expected_version=parse_if_match(if_match),
    )
    return campaign_response(campaign)


# Audit trail
@router.get(CAMPAIGNS + "/{campaign_id}/audit-events", response_model=List[AuditEventResponse])
def list_audit_events(tenant_id: str, campaign_id: int, db: Session = Depends(get_db)):
    """Audit events for one campaign, oldest first."""
    sm = CampaignStateMachine(db)
    return [AuditEventResponse.model_validate(event) for event in sm.audit_trail(tenant_id, campaign_id)]
