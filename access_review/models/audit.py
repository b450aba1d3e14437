"""
Audit trail model.

Every state-changing campaign operation writes exactly one row here, inside
the same transaction as the change it describes.
"""
from sqlalchemy import Column, DateTime, Integer, JSON, String

from access_review.database import Base
from access_review.models.domain import utcnow


class AuditEvent(Base):
    """
    Immutable audit event.

    Invariants:
    - Once written, never edited or deleted
    - Append-only
    """
    __tablename__ = "audit_events"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    tenant_id = Column(String, nullable=False, index=True)
    action = Column(String, nullable=False, index=True)  # e.g. "CAMPAIGN_SUBMITTED"
    actor_email = Column(String, nullable=True)  # Nullable for system events
    target_type = Column(String, nullable=False)  # "AccessReviewCampaign"
    target_id = Column(String, nullable=False, index=True)
    summary = Column(String, nullable=True)
    before_json = Column(JSON, nullable=True)
    after_json = Column(JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)


class AuditAction:
    """Audit action names for campaign operations."""
    CAMPAIGN_CREATED = "CAMPAIGN_CREATED"
    CAMPAIGN_UPDATED = "CAMPAIGN_UPDATED"
    CAMPAIGN_DELETED = "CAMPAIGN_DELETED"
    CAMPAIGN_ITEM_DECIDED = "CAMPAIGN_ITEM_DECIDED"
    CAMPAIGN_BULK_DECISION = "CAMPAIGN_BULK_DECISION"

    CAMPAIGN_SUBMITTED = "CAMPAIGN_SUBMITTED"
    CAMPAIGN_APPROVED = "CAMPAIGN_APPROVED"
    CAMPAIGN_REJECTED = "CAMPAIGN_REJECTED"
    CAMPAIGN_REMEDIATION_UPDATED = "CAMPAIGN_REMEDIATION_UPDATED"
    CAMPAIGN_COMPLETED = "CAMPAIGN_COMPLETED"

    # System actions (scheduler)
    CAMPAIGN_ESCALATED = "CAMPAIGN_ESCALATED"


CAMPAIGN_TARGET_TYPE = "AccessReviewCampaign"
