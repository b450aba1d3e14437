"""Pydantic schemas for request/response validation. JSON field names are camelCase."""
from datetime import datetime
from typing import Annotated, List, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from access_review.models.domain import to_naive_utc
from access_review.models.enums import (
    BulkTargetType,
    CampaignStatus,
    DataClassification,
    DecisionReasonCode,
    DecisionType,
    EmploymentType,
    EntitlementType,
    EnvironmentType,
    GrantMethod,
    PrivilegeLevel,
    RegulatedFlag,
    RemediationStatus,
    ReviewerType,
    ReviewType,
    SecondLevelDecision,
    SodConcern,
    SubjectStatus,
)


# Store and compare everything as naive UTC
UtcDatetime = Annotated[datetime, AfterValidator(to_naive_utc)]


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# Decision schemas
class RequestedChange(CamelModel):
    new_role_name: Optional[str] = Field(None, max_length=200)
    new_permissions: Optional[List[str]] = None
    new_scope: Optional[str] = Field(None, max_length=200)
    expiration_date: Optional[UtcDatetime] = None
    notes: Optional[str] = Field(None, max_length=500)


class DecisionIn(CamelModel):
    decision_type: DecisionType
    reason_code: Optional[DecisionReasonCode] = None
    comments: Optional[str] = Field(None, max_length=2000)
    effective_date: Optional[UtcDatetime] = None
    requested_change: Optional[RequestedChange] = None
    evidence_provided: Optional[bool] = None
    evidence_link: Optional[str] = Field(None, max_length=500)


class DecisionResponse(CamelModel):
    decision_type: DecisionType
    reason_code: Optional[DecisionReasonCode] = None
    comments: Optional[str] = None
    effective_date: Optional[datetime] = None
    requested_change: Optional[dict] = None
    evidence_provided: Optional[bool] = None
    evidence_link: Optional[str] = None
    decided_by: Optional[str] = None
    decided_at: Optional[datetime] = None


# Item schemas
class ItemIn(CamelModel):
    application: str = Field(..., min_length=1, max_length=200)
    environment: EnvironmentType
    role_name: str = Field(..., min_length=1, max_length=200)
    role_description: Optional[str] = Field(None, max_length=500)
    entitlement_name: Optional[str] = Field(None, max_length=200)
    entitlement_type: EntitlementType
    privilege_level: PrivilegeLevel
    scope: Optional[str] = Field(None, max_length=200)
    granted_date: Optional[UtcDatetime] = None
    granted_by: Optional[str] = Field(None, max_length=200)
    grant_method: GrantMethod
    last_used_date: Optional[UtcDatetime] = None
    auth_method: Optional[str] = Field(None, max_length=100)
    mfa_enabled: Optional[bool] = None
    justification_on_file: Optional[str] = Field(None, max_length=1000)
    ticket_id: Optional[str] = Field(None, max_length=100)
    support_link: Optional[str] = Field(None, max_length=500)
    data_classification: DataClassification
    regulated_flags: Optional[List[RegulatedFlag]] = None
    sod_concern: Optional[SodConcern] = None
    compensating_controls: Optional[str] = Field(None, max_length=1000)
    decision: Optional[DecisionIn] = None


class ItemResponse(CamelModel):
    id: int
    application: str
    environment: EnvironmentType
    role_name: str
    role_description: Optional[str] = None
    entitlement_name: Optional[str] = None
    entitlement_type: EntitlementType
    privilege_level: PrivilegeLevel
    scope: Optional[str] = None
    granted_date: Optional[datetime] = None
    granted_by: Optional[str] = None
    grant_method: GrantMethod
    last_used_date: Optional[datetime] = None
    auth_method: Optional[str] = None
    mfa_enabled: Optional[bool] = None
    justification_on_file: Optional[str] = None
    ticket_id: Optional[str] = None
    support_link: Optional[str] = None
    data_classification: DataClassification
    regulated_flags: Optional[List[RegulatedFlag]] = None
    is_privileged: bool
    sod_concern: Optional[SodConcern] = None
    compensating_controls: Optional[str] = None
    decision: Optional[DecisionResponse] = None


# Subject schemas
class SubjectIn(CamelModel):
    subject_id: str = Field(..., min_length=1)
    full_name: str = Field(..., min_length=1, max_length=200)
    email: str = Field(..., min_length=3, max_length=254)
    employee_id: Optional[str] = Field(None, max_length=50)
    job_title: Optional[str] = Field(None, max_length=200)
    department: Optional[str] = Field(None, max_length=200)
    manager_name: Optional[str] = Field(None, max_length=200)
    manager_email: Optional[str] = Field(None, max_length=254)
    location: Optional[str] = Field(None, max_length=200)
    start_date: Optional[UtcDatetime] = None
    end_date: Optional[UtcDatetime] = None
    employment_type: EmploymentType
    # Emptiness is reported by the subject rules, not here
    items: List[ItemIn] = []


class SubjectResponse(CamelModel):
    id: int
    subject_id: str
    full_name: str
    email: str
    employee_id: Optional[str] = None
    job_title: Optional[str] = None
    department: Optional[str] = None
    manager_name: Optional[str] = None
    manager_email: Optional[str] = None
    location: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    employment_type: EmploymentType
    status: SubjectStatus
    reviewed_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None
    items: List[ItemResponse] = []


# Approvals / workflow
class ApprovalsResponse(CamelModel):
    reviewer_name: str
    reviewer_email: str
    reviewer_attestation: bool
    reviewer_attested_at: Optional[datetime] = None
    second_level_required: bool
    second_approver_name: Optional[str] = None
    second_approver_email: Optional[str] = None
    second_decision: Optional[SecondLevelDecision] = None
    second_decision_notes: Optional[str] = None
    second_decided_at: Optional[datetime] = None


class WorkflowIn(CamelModel):
    due_date: UtcDatetime


class WorkflowResponse(CamelModel):
    due_date: datetime
    escalation_level: int
    notifications_sent_at: Optional[List[str]] = None
    remediation_ticket_created: bool
    remediation_ticket_id: Optional[str] = None
    remediation_status: Optional[RemediationStatus] = None
    remediation_notes: Optional[str] = None
    remediation_completed_at: Optional[datetime] = None
    verified_by: Optional[str] = None
    verified_at: Optional[datetime] = None
    completion_notes: Optional[str] = None


# Campaign schemas
class CampaignCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    system_name: str = Field(..., min_length=1, max_length=200)
    environment: EnvironmentType
    business_unit: Optional[str] = Field(None, max_length=200)
    review_type: ReviewType
    trigger_reason: Optional[str] = Field(None, max_length=500)
    period_start: UtcDatetime
    period_end: UtcDatetime
    reviewer_type: ReviewerType = ReviewerType.MANAGER
    assigned_reviewer_email: Optional[str] = Field(None, max_length=254)
    subjects: List[SubjectIn] = []
    workflow: Optional[WorkflowIn] = None


class CampaignUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    system_name: Optional[str] = Field(None, min_length=1, max_length=200)
    environment: Optional[EnvironmentType] = None
    business_unit: Optional[str] = Field(None, max_length=200)
    review_type: Optional[ReviewType] = None
    trigger_reason: Optional[str] = Field(None, max_length=500)
    period_start: Optional[UtcDatetime] = None
    period_end: Optional[UtcDatetime] = None
    reviewer_type: Optional[ReviewerType] = None
    assigned_reviewer_email: Optional[str] = Field(None, max_length=254)
    # Only DRAFT <-> IN_REVIEW; everything else goes through the transition endpoints
    status: Optional[CampaignStatus] = None
    subjects: Optional[List[SubjectIn]] = None
    workflow: Optional[WorkflowIn] = None


class CampaignSummaryResponse(CamelModel):
    id: int
    tenant_id: str
    name: str
    description: Optional[str] = None
    system_name: str
    environment: EnvironmentType
    business_unit: Optional[str] = None
    review_type: ReviewType
    trigger_reason: Optional[str] = None
    period_start: datetime
    period_end: datetime
    status: CampaignStatus
    created_by_email: Optional[str] = None
    reviewer_type: ReviewerType
    assigned_reviewer_email: Optional[str] = None
    submitted_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    version: int
    created_at: datetime
    updated_at: datetime

    # Filled in from campaign_stats()
    total_subjects: int = 0
    completed_subjects: int = 0
    total_items: int = 0
    completed_items: int = 0
    completion_percentage: int = 0


class CampaignResponse(CampaignSummaryResponse):
    subjects: List[SubjectResponse] = []
    approvals: Optional[ApprovalsResponse] = None
    workflow: Optional[WorkflowResponse] = None


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class CampaignListResponse(CamelModel):
    data: List[CampaignSummaryResponse]
    pagination: Pagination


# Transition requests
class SubmitRequest(CamelModel):
    reviewer_attestation: bool
    reviewer_name: str = Field(..., min_length=1, max_length=200)
    reviewer_email: str = Field(..., min_length=3, max_length=254)


class ApproveRequest(CamelModel):
    decision: SecondLevelDecision
    notes: Optional[str] = Field(None, max_length=2000)
    approver_name: str = Field(..., min_length=1, max_length=200)
    approver_email: str = Field(..., min_length=3, max_length=254)


class RemediateRequest(CamelModel):
    remediation_ticket_id: str = Field(..., min_length=1, max_length=100)
    remediation_status: RemediationStatus
    notes: Optional[str] = Field(None, max_length=2000)


class CompleteRequest(CamelModel):
    verified_by: str = Field(..., min_length=1, max_length=200)
    notes: Optional[str] = Field(None, max_length=2000)


class SubmissionCheckResponse(CamelModel):
    valid: bool
    errors: List[str]
    requires_second_level: bool


# Bulk decision schemas
class BulkFilter(CamelModel):
    privilege_level: Optional[PrivilegeLevel] = None
    entitlement_type: Optional[EntitlementType] = None
    data_classification: Optional[DataClassification] = None


class BulkDecisionPayload(CamelModel):
    decision_type: DecisionType
    reason_code: Optional[DecisionReasonCode] = None
    comments: Optional[str] = Field(None, max_length=2000)


class BulkDecisionRequest(CamelModel):
    target_type: BulkTargetType
    item_ids: Optional[List[int]] = None
    filter: Optional[BulkFilter] = None
    decision: BulkDecisionPayload
    skip_high_risk: bool = True
    skip_decided: bool = False


class SkippedItemResponse(CamelModel):
    item_id: Optional[int] = None
    reason: str


class BulkDecisionResponse(CamelModel):
    total_processed: int
    successful: int
    skipped: int
    failed: int
    skipped_items: List[SkippedItemResponse]


# Suggestions
class SuggestionResponse(CamelModel):
    item_id: int
    subject_id: str
    suggested_decision: DecisionType
    confidence: str
    reasons: List[str]
    requires_manual_review: bool
    risk_score: int


class SuggestionSummary(CamelModel):
    total_items: int
    high_confidence: int
    medium_confidence: int
    low_confidence: int
    require_manual_review: int
    average_risk_score: int
    high_risk_items: int


class SuggestionsResponse(CamelModel):
    suggestions: List[SuggestionResponse]
    summary: SuggestionSummary


# Audit trail
class AuditEventResponse(CamelModel):
    id: int
    action: str
    actor_email: Optional[str] = None
    target_type: str
    target_id: str
    summary: Optional[str] = None
    before: Optional[dict] = Field(None, validation_alias="before_json")
    after: Optional[dict] = Field(None, validation_alias="after_json")
    created_at: datetime


# Error response
class ErrorResponse(CamelModel):
    """Body of every refused request."""
    code: str
    message: str
    errors: List[str] = []
