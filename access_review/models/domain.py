"""Domain models - the campaign aggregate and its embedded records."""
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    JSON,
    String,
)
from sqlalchemy.orm import relationship

from access_review.database import Base
from access_review.models.enums import (
    CampaignStatus,
    DataClassification,
    DecisionReasonCode,
    DecisionType,
    EmploymentType,
    EntitlementType,
    EnvironmentType,
    GrantMethod,
    PrivilegeLevel,
    RemediationStatus,
    ReviewerType,
    ReviewType,
    SecondLevelDecision,
    SodConcern,
    SubjectStatus,
)


def utcnow() -> datetime:
    """Naive UTC timestamp; every DateTime column stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value):
    """Convert an offset-aware datetime to naive UTC; naive values pass through."""
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class Campaign(Base):
    """
    Aggregate root. Owns subjects (and through them items), approvals and workflow.

    Invariants enforced in the service layer:
    - period_end is strictly after period_start
    - subjects/items only change while status is DRAFT or IN_REVIEW
    - SUBMITTED requires a decision on every item and evidence on RESTRICTED items
    - COMPLETED requires an APPROVED second decision when one is required

    `version` is the optimistic-lock counter; SQLAlchemy refuses a flush that
    was computed against an older version.
    """
    __tablename__ = "access_review_campaigns"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    tenant_id = Column(String, nullable=False, index=True)

    name = Column(String(200), nullable=False)
    description = Column(String(2000), nullable=True)
    system_name = Column(String(200), nullable=False, index=True)
    environment = Column(SQLEnum(EnvironmentType), nullable=False)
    business_unit = Column(String(200), nullable=True)
    review_type = Column(SQLEnum(ReviewType), nullable=False)
    trigger_reason = Column(String(500), nullable=True)
    period_start = Column(DateTime, nullable=False)
    period_end = Column(DateTime, nullable=False, index=True)

    status = Column(SQLEnum(CampaignStatus), nullable=False, default=CampaignStatus.DRAFT, index=True)

    created_by_email = Column(String(254), nullable=True)
    reviewer_type = Column(SQLEnum(ReviewerType), nullable=False, default=ReviewerType.MANAGER)
    assigned_reviewer_email = Column(String(254), nullable=True)

    submitted_at = Column(DateTime, nullable=True)
    approved_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    # Soft delete only; audit events keep pointing at the row
    deleted_at = Column(DateTime, nullable=True)
    deleted_by = Column(String(254), nullable=True)

    version = Column(Integer, nullable=False)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    subjects = relationship(
        "Subject",
        back_populates="campaign",
        cascade="all, delete-orphan",
        order_by="Subject.position",
    )
    approvals = relationship("Approvals", back_populates="campaign", uselist=False, cascade="all, delete-orphan")
    workflow = relationship("Workflow", back_populates="campaign", uselist=False, cascade="all, delete-orphan")

    __mapper_args__ = {"version_id_col": version}


class Subject(Base):
    """
    One reviewed identity within a campaign.

    Invariants:
    - CONTRACTOR and VENDOR subjects carry an end_date
    - at least one item
    """
    __tablename__ = "access_review_subjects"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    campaign_id = Column(Integer, ForeignKey("access_review_campaigns.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)  # display order

    # Identity as supplied by the entitlement source (not a local FK)
    subject_id = Column(String, nullable=False, index=True)
    full_name = Column(String(200), nullable=False)
    email = Column(String(254), nullable=False)
    employee_id = Column(String(50), nullable=True)
    job_title = Column(String(200), nullable=True)
    department = Column(String(200), nullable=True)
    manager_name = Column(String(200), nullable=True)
    manager_email = Column(String(254), nullable=True)
    location = Column(String(200), nullable=True)
    start_date = Column(DateTime, nullable=True)
    end_date = Column(DateTime, nullable=True)
    employment_type = Column(SQLEnum(EmploymentType), nullable=False)

    status = Column(SQLEnum(SubjectStatus), nullable=False, default=SubjectStatus.PENDING)
    reviewed_at = Column(DateTime, nullable=True)
    reviewed_by = Column(String(254), nullable=True)

    campaign = relationship("Campaign", back_populates="subjects")
    items = relationship(
        "Item",
        back_populates="subject",
        cascade="all, delete-orphan",
        order_by="Item.position",
    )


class Item(Base):
    """
    One access entitlement held by a subject.

    is_privileged is derived from privilege_level (ADMIN / SUPER_ADMIN) when
    the item is stored.
    """
    __tablename__ = "access_review_items"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    subject_pk = Column(Integer, ForeignKey("access_review_subjects.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)

    application = Column(String(200), nullable=False)
    environment = Column(SQLEnum(EnvironmentType), nullable=False)
    role_name = Column(String(200), nullable=False)
    role_description = Column(String(500), nullable=True)
    entitlement_name = Column(String(200), nullable=True)
    entitlement_type = Column(SQLEnum(EntitlementType), nullable=False)
    privilege_level = Column(SQLEnum(PrivilegeLevel), nullable=False)
    scope = Column(String(200), nullable=True)

    granted_date = Column(DateTime, nullable=True)
    granted_by = Column(String(200), nullable=True)
    grant_method = Column(SQLEnum(GrantMethod), nullable=False)

    last_used_date = Column(DateTime, nullable=True)
    auth_method = Column(String(100), nullable=True)
    mfa_enabled = Column(Boolean, nullable=True)

    justification_on_file = Column(String(1000), nullable=True)
    ticket_id = Column(String(100), nullable=True)
    support_link = Column(String(500), nullable=True)

    data_classification = Column(SQLEnum(DataClassification), nullable=False)
    regulated_flags = Column(JSON, nullable=True)  # list of RegulatedFlag values
    is_privileged = Column(Boolean, nullable=False, default=False)
    sod_concern = Column(SQLEnum(SodConcern), nullable=True)
    compensating_controls = Column(String(1000), nullable=True)

    subject = relationship("Subject", back_populates="items")
    decision = relationship("ItemDecision", back_populates="item", uselist=False, cascade="all, delete-orphan")


class ItemDecision(Base):
    """
    The reviewer's determination for one item. Starts PENDING.

    Invariants (checked by the decision validator, not the table):
    - REVOKE / MODIFY need comments
    - MODIFY needs requested_change
    - RESTRICTED items need evidence_provided or evidence_link
    """
    __tablename__ = "access_review_decisions"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    item_id = Column(Integer, ForeignKey("access_review_items.id"), nullable=False, unique=True)

    decision_type = Column(SQLEnum(DecisionType), nullable=False, default=DecisionType.PENDING)
    reason_code = Column(SQLEnum(DecisionReasonCode), nullable=True)
    comments = Column(String(2000), nullable=True)
    effective_date = Column(DateTime, nullable=True)
    # {newRoleName, newPermissions, newScope, expirationDate, notes}
    requested_change = Column(JSON, nullable=True)
    evidence_provided = Column(Boolean, nullable=True)
    evidence_link = Column(String(500), nullable=True)

    decided_by = Column(String(254), nullable=True)
    decided_at = Column(DateTime, nullable=True)

    item = relationship("Item", back_populates="decision")


class Approvals(Base):
    """Reviewer attestation plus the second-level (escalated) approval outcome."""
    __tablename__ = "access_review_approvals"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    campaign_id = Column(Integer, ForeignKey("access_review_campaigns.id"), nullable=False, unique=True)

    reviewer_name = Column(String(200), nullable=False)
    reviewer_email = Column(String(254), nullable=False)
    reviewer_attestation = Column(Boolean, nullable=False, default=False)
    reviewer_attested_at = Column(DateTime, nullable=True)

    second_level_required = Column(Boolean, nullable=False, default=False)
    second_approver_name = Column(String(200), nullable=True)
    second_approver_email = Column(String(254), nullable=True)
    second_decision = Column(SQLEnum(SecondLevelDecision), nullable=True)
    second_decision_notes = Column(String(2000), nullable=True)
    second_decided_at = Column(DateTime, nullable=True)

    campaign = relationship("Campaign", back_populates="approvals")


class Workflow(Base):
    """Operational tracking: due date, escalation, remediation and verification."""
    __tablename__ = "access_review_workflows"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    campaign_id = Column(Integer, ForeignKey("access_review_campaigns.id"), nullable=False, unique=True)

    due_date = Column(DateTime, nullable=False, index=True)
    escalation_level = Column(Integer, nullable=False, default=0)
    notifications_sent_at = Column(JSON, nullable=True)  # ISO-8601 strings, oldest first

    remediation_ticket_created = Column(Boolean, nullable=False, default=False)
    remediation_ticket_id = Column(String(100), nullable=True)
    remediation_status = Column(SQLEnum(RemediationStatus), nullable=True)
    remediation_notes = Column(String(2000), nullable=True)
    remediation_completed_at = Column(DateTime, nullable=True)

    verified_by = Column(String(200), nullable=True)
    verified_at = Column(DateTime, nullable=True)
    completion_notes = Column(String(2000), nullable=True)

    campaign = relationship("Campaign", back_populates="workflow")
