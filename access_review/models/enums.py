"""Enums for access review campaigns. Values are part of the wire contract."""
from enum import Enum


class CampaignStatus(str, Enum):
    """Top-level campaign status. Escalation and remediation live in approvals/workflow."""
    DRAFT = "DRAFT"
    IN_REVIEW = "IN_REVIEW"
    SUBMITTED = "SUBMITTED"
    COMPLETED = "COMPLETED"


# Subjects and items may only be edited in these states
EDITABLE_STATUSES = (CampaignStatus.DRAFT, CampaignStatus.IN_REVIEW)


class DecisionType(str, Enum):
    PENDING = "PENDING"
    APPROVE = "APPROVE"
    REVOKE = "REVOKE"
    MODIFY = "MODIFY"
    ESCALATE = "ESCALATE"


class SecondLevelDecision(str, Enum):
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class PrivilegeLevel(str, Enum):
    READ_ONLY = "READ_ONLY"
    STANDARD = "STANDARD"
    ELEVATED = "ELEVATED"
    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"


# Presence of any of these forces second-level approval
PRIVILEGED_LEVELS = (PrivilegeLevel.ADMIN, PrivilegeLevel.SUPER_ADMIN)


class EmploymentType(str, Enum):
    EMPLOYEE = "EMPLOYEE"
    CONTRACTOR = "CONTRACTOR"
    VENDOR = "VENDOR"
    INTERN = "INTERN"
    SERVICE_ACCOUNT = "SERVICE_ACCOUNT"


# Fixed-term relationships: end date is mandatory
FIXED_TERM_EMPLOYMENT = (EmploymentType.CONTRACTOR, EmploymentType.VENDOR)


class EnvironmentType(str, Enum):
    PRODUCTION = "PRODUCTION"
    STAGING = "STAGING"
    TEST = "TEST"
    DEVELOPMENT = "DEVELOPMENT"


class DataClassification(str, Enum):
    PUBLIC = "PUBLIC"
    INTERNAL = "INTERNAL"
    CONFIDENTIAL = "CONFIDENTIAL"
    RESTRICTED = "RESTRICTED"


class EntitlementType(str, Enum):
    ROLE = "ROLE"
    GROUP = "GROUP"
    PERMISSION = "PERMISSION"
    ACCOUNT = "ACCOUNT"
    LICENSE = "LICENSE"


class GrantMethod(str, Enum):
    MANUAL = "MANUAL"
    REQUEST = "REQUEST"
    AUTOMATIC = "AUTOMATIC"
    INHERITED = "INHERITED"


class SodConcern(str, Enum):
    NONE = "NONE"
    POTENTIAL = "POTENTIAL"
    CONFIRMED = "CONFIRMED"


class ReviewType(str, Enum):
    PERIODIC = "PERIODIC"
    EVENT_DRIVEN = "EVENT_DRIVEN"
    PRIVILEGED = "PRIVILEGED"
    AD_HOC = "AD_HOC"


class ReviewerType(str, Enum):
    MANAGER = "MANAGER"
    APPLICATION_OWNER = "APPLICATION_OWNER"
    SECURITY = "SECURITY"
    OTHER = "OTHER"


class RemediationStatus(str, Enum):
    NOT_REQUIRED = "NOT_REQUIRED"
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


# Remediation states that allow the campaign to be closed
REMEDIATION_CLOSED = (RemediationStatus.NOT_REQUIRED, RemediationStatus.COMPLETED)


class SubjectStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class DecisionReasonCode(str, Enum):
    JOB_REQUIRED = "JOB_REQUIRED"
    ROLE_CHANGE = "ROLE_CHANGE"
    NO_LONGER_NEEDED = "NO_LONGER_NEEDED"
    EXCESSIVE_ACCESS = "EXCESSIVE_ACCESS"
    SOD_CONFLICT = "SOD_CONFLICT"
    TERMINATED = "TERMINATED"
    INACTIVE = "INACTIVE"
    OTHER = "OTHER"


class RegulatedFlag(str, Enum):
    SOX = "SOX"
    PCI = "PCI"
    HIPAA = "HIPAA"
    GDPR = "GDPR"
    SOC2 = "SOC2"


class BulkTargetType(str, Enum):
    ALL = "ALL"
    FILTERED = "FILTERED"
    SELECTED = "SELECTED"
