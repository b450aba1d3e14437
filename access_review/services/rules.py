"""
Business rules for access review campaigns.

Everything here is a pure function over attribute-bearing objects: ORM rows,
pydantic payloads and transient decisions all validate the same way. Nothing
here touches the session or logs.
"""
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterator, List, Optional, Protocol, Sequence, Tuple

from access_review.models.enums import (
    DataClassification,
    DecisionType,
    FIXED_TERM_EMPLOYMENT,
    PRIVILEGED_LEVELS,
    PrivilegeLevel,
    SubjectStatus,
)


class DecisionLike(Protocol):
    """An ItemDecision row or a DecisionIn payload."""
    decision_type: Optional[DecisionType]
    comments: Optional[str]
    requested_change: Any
    evidence_provided: Optional[bool]
    evidence_link: Optional[str]


class ItemLike(Protocol):
    privilege_level: Optional[PrivilegeLevel]
    data_classification: DataClassification
    is_privileged: Optional[bool]


class SubjectLike(Protocol):
    employment_type: Any
    end_date: Optional[datetime]
    items: Sequence[Any]


class CampaignLike(Protocol):
    subjects: Sequence[Any]


COMMENTS_REQUIRED = "comments required for REVOKE or MODIFY decisions"
REQUESTED_CHANGE_REQUIRED = "requested change required for MODIFY decisions"
EVIDENCE_REQUIRED = "evidence required for RESTRICTED classification"


@dataclass
class ValidationResult:
    valid: bool
    errors: List[str] = field(default_factory=list)


@dataclass
class SubmissionReport:
    """Outcome of the submission gate. requires_second_level is informational only."""
    valid: bool
    errors: List[str]
    requires_second_level: bool


def _result(errors: List[str]) -> ValidationResult:
    return ValidationResult(valid=not errors, errors=errors)


def _blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


def _has_content(payload) -> bool:
    """A requested change counts only if at least one of its fields is filled in."""
    if payload is None:
        return False
    if hasattr(payload, "model_dump"):
        payload = payload.model_dump()
    if not isinstance(payload, dict):
        return bool(payload)
    return any(value not in (None, "", [], {}) for value in payload.values())


def decision_type_of(decision: Optional[DecisionLike]) -> DecisionType:
    """PENDING for a missing decision, otherwise the decision's type as an enum."""
    if decision is None or decision.decision_type is None:
        return DecisionType.PENDING
    return DecisionType(decision.decision_type)


def has_evidence(decision: Optional[DecisionLike]) -> bool:
    if decision is None:
        return False
    return decision.evidence_provided is True or not _blank(decision.evidence_link)


def is_restricted(item: ItemLike) -> bool:
    return DataClassification(item.data_classification) == DataClassification.RESTRICTED


def is_privileged_level(privilege_level: Optional[PrivilegeLevel]) -> bool:
    return privilege_level is not None and privilege_level in PRIVILEGED_LEVELS


def is_high_risk(item: ItemLike) -> bool:
    """Items a bulk action must leave for manual review."""
    return is_privileged_level(item.privilege_level) or bool(item.is_privileged)


# =============================================================================
# Decision validator
# =============================================================================

def _require_comments(decision: DecisionLike) -> Optional[str]:
    if _blank(decision.comments):
        return COMMENTS_REQUIRED
    return None


def _require_requested_change(decision: DecisionLike) -> Optional[str]:
    if not _has_content(decision.requested_change):
        return REQUESTED_CHANGE_REQUIRED
    return None


# Per decision type, the rules that apply to the decision itself.
_DECISION_RULES = {
    DecisionType.PENDING: (),
    DecisionType.APPROVE: (),
    DecisionType.REVOKE: (_require_comments,),
    DecisionType.MODIFY: (_require_comments, _require_requested_change),
    DecisionType.ESCALATE: (),
}

_unhandled = set(DecisionType) - set(_DECISION_RULES)
if _unhandled:
    raise RuntimeError(f"No decision rules registered for: {sorted(t.value for t in _unhandled)}")


def validate_item_decision(item: ItemLike, decision: Optional[DecisionLike]) -> ValidationResult:
    """
    Check one proposed decision against the item it applies to.

    Rules are evaluated independently and every violation is collected:
    - REVOKE / MODIFY need comments
    - MODIFY needs a populated requested change
    - RESTRICTED items need evidence, whatever the decision type
    """
    errors = []
    if decision is not None:
        for rule in _DECISION_RULES[decision_type_of(decision)]:
            error = rule(decision)
            if error:
                errors.append(error)
    if is_restricted(item) and not has_evidence(decision):
        errors.append(EVIDENCE_REQUIRED)
    return _result(errors)


# =============================================================================
# Subject and campaign definition
# =============================================================================

def validate_subject(subject: SubjectLike, position: Optional[int] = None) -> ValidationResult:
    """
    Fixed-term subjects need an end date; every subject needs at least one item.
    Decisions supplied up front (anything but PENDING) must already be valid.
    """
    label = f"Subject {position}" if position is not None else "Subject"
    errors = []
    if subject.employment_type in FIXED_TERM_EMPLOYMENT and subject.end_date is None:
        errors.append(f"{label}: end date is required for contractors and vendors")
    if not subject.items:
        errors.append(f"{label}: at least one access item is required")
    for index, item in enumerate(subject.items or [], start=1):
        decision = getattr(item, "decision", None)
        if decision_type_of(decision) == DecisionType.PENDING:
            continue
        for error in validate_item_decision(item, decision).errors:
            errors.append(f"{label} item {index}: {error}")
    return _result(errors)


def validate_period(period_start: Optional[datetime], period_end: Optional[datetime]) -> ValidationResult:
    if period_start is not None and period_end is not None and period_end <= period_start:
        return _result(["period end must be after period start"])
    return _result([])


def validate_campaign_definition(
    period_start: Optional[datetime],
    period_end: Optional[datetime],
    subjects: Optional[Sequence[SubjectLike]],
) -> ValidationResult:
    """Header and subject rules applied on create and update."""
    errors = list(validate_period(period_start, period_end).errors)
    for position, subject in enumerate(subjects or [], start=1):
        errors.extend(validate_subject(subject, position).errors)
    return _result(errors)


# =============================================================================
# Campaign-wide checks
# =============================================================================

def iter_items(campaign: CampaignLike) -> Iterator[Tuple[Any, Any]]:
    """(subject, item) pairs in subject order, then item order."""
    for subject in campaign.subjects:
        for item in subject.items:
            yield subject, item


def validate_for_submission(campaign: CampaignLike) -> SubmissionReport:
    """
    Aggregate check run before a campaign leaves the editable states.

    Item numbers are 1-based across the whole campaign and are not reset per
    subject. Decided items are also run through the decision validator so a
    decision stored before a rule changed cannot slip through.
    """
    errors = []
    for index, (_subject, item) in enumerate(iter_items(campaign), start=1):
        decision = item.decision
        if decision_type_of(decision) == DecisionType.PENDING:
            errors.append(f"Item {index} is missing a decision")
        else:
            for error in validate_item_decision(item, decision).errors:
                if error != EVIDENCE_REQUIRED:
                    errors.append(f"Item {index}: {error}")
        if is_restricted(item) and not has_evidence(decision):
            errors.append(f"Item {index} requires evidence for RESTRICTED classification")

    return SubmissionReport(
        valid=not errors,
        errors=errors,
        requires_second_level=requires_second_level(campaign),
    )


def requires_second_level(campaign: CampaignLike) -> bool:
    """True iff any item across any subject is ADMIN or SUPER_ADMIN."""
    return any(is_privileged_level(item.privilege_level) for _, item in iter_items(campaign))


def needs_remediation(campaign: CampaignLike) -> bool:
    """Any REVOKE or MODIFY decision means access has to change downstream."""
    return any(
        decision_type_of(item.decision) in (DecisionType.REVOKE, DecisionType.MODIFY)
        for _, item in iter_items(campaign)
    )


def derive_subject_status(subject: SubjectLike) -> SubjectStatus:
    pending = sum(1 for item in subject.items if decision_type_of(item.decision) == DecisionType.PENDING)
    if pending == 0 and subject.items:
        return SubjectStatus.COMPLETED
    if pending < len(subject.items):
        return SubjectStatus.IN_PROGRESS
    return SubjectStatus.PENDING


def _percentage(part: int, whole: int) -> int:
    if whole == 0:
        return 0
    return int(math.floor(part * 100 / whole + 0.5))


def campaign_stats(campaign: CampaignLike) -> dict:
    """Progress counters shown with every campaign."""
    subjects = list(campaign.subjects)
    total_items = 0
    completed_items = 0
    for _, item in iter_items(campaign):
        total_items += 1
        if decision_type_of(item.decision) != DecisionType.PENDING:
            completed_items += 1
    completed_subjects = sum(1 for s in subjects if s.status == SubjectStatus.COMPLETED)
    return {
        "total_subjects": len(subjects),
        "completed_subjects": completed_subjects,
        "total_items": total_items,
        "completed_items": completed_items,
        "completion_percentage": _percentage(completed_items, total_items),
    }
