"""
Bulk decision processor.

Applies one decision to a slice of the subject x item matrix. Each targeted
item is checked on its own; items that fail are reported, never retried.
The whole batch is computed in memory against the loaded campaign so the
caller persists it with a single write.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

from access_review.api.schemas import BulkDecisionPayload, BulkDecisionRequest, BulkFilter
from access_review.models.domain import Campaign, Item, ItemDecision
from access_review.models.enums import BulkTargetType, DecisionType
from access_review.services.errors import ValidationError
from access_review.services.rules import (
    decision_type_of,
    is_high_risk,
    iter_items,
    validate_item_decision,
)

HIGH_RISK_REASON = "high risk, manual review required"
ALREADY_DECIDED_REASON = "already has a decision"
NOT_FOUND_REASON = "item not found in campaign"

# Fields a bulk payload may set. Everything else on a decision belongs to the item.
BULK_FIELDS = ("decision_type", "reason_code", "comments")
ITEM_OWNED_FIELDS = ("effective_date", "requested_change", "evidence_provided", "evidence_link")

FILTER_FIELDS = ("privilege_level", "entitlement_type", "data_classification")


@dataclass
class SkippedItem:
    item_id: Optional[int]
    reason: str


@dataclass
class BulkDecisionReport:
    total_processed: int = 0
    successful: int = 0
    skipped: int = 0
    failed: int = 0
    skipped_items: List[SkippedItem] = field(default_factory=list)

    def record_skip(self, item_id: int, reason: str, failed: bool = False) -> None:
        if failed:
            self.failed += 1
        else:
            self.skipped += 1
        self.skipped_items.append(SkippedItem(item_id=item_id, reason=reason))


def merge_bulk_decision(current: Optional[ItemDecision], bulk: BulkDecisionPayload) -> ItemDecision:
    """
    Build the candidate decision for one item.

    decision_type, reason_code and comments come from the bulk payload;
    evidence, effective date and requested change are carried over from the
    item's current decision untouched. The result is transient.
    """
    candidate = ItemDecision()
    for name in BULK_FIELDS:
        setattr(candidate, name, getattr(bulk, name, None))
    if current is not None:
        for name in ITEM_OWNED_FIELDS:
            setattr(candidate, name, getattr(current, name))
    return candidate


def _matches_filter(item: Item, item_filter: BulkFilter) -> bool:
    for name in FILTER_FIELDS:
        wanted = getattr(item_filter, name, None)
        if wanted is not None and getattr(item, name) != wanted:
            return False
    return True


def resolve_targets(campaign: Campaign, request: BulkDecisionRequest) -> Tuple[List[Item], List[int]]:
    """
    Items addressed by the request, in campaign order.

    Returns (items, missing_ids) where missing_ids are SELECTED ids that do not
    exist in this campaign.
    """
    target_type = BulkTargetType(request.target_type)
    all_items = [item for _, item in iter_items(campaign)]

    if target_type == BulkTargetType.ALL:
        return all_items, []

    if target_type == BulkTargetType.FILTERED:
        item_filter = request.filter
        if item_filter is None or all(getattr(item_filter, name, None) is None for name in FILTER_FIELDS):
            raise ValidationError("FILTERED bulk decisions need at least one filter field")
        return [item for item in all_items if _matches_filter(item, item_filter)], []

    wanted_ids = list(request.item_ids or [])
    if not wanted_ids:
        raise ValidationError("SELECTED bulk decisions need at least one item id")
    wanted = set(wanted_ids)
    selected = [item for item in all_items if item.id in wanted]
    known = {item.id for item in selected}
    missing = []
    for item_id in wanted_ids:
        if item_id not in known and item_id not in missing:
            missing.append(item_id)
    return selected, missing


def _write_decision(item: Item, candidate: ItemDecision, decided_by: Optional[str], decided_at: datetime) -> None:
    if item.decision is None:
        item.decision = candidate
    else:
        # Update in place; swapping the row would trip the one-decision-per-item constraint
        for name in BULK_FIELDS:
            setattr(item.decision, name, getattr(candidate, name))
    item.decision.decided_by = decided_by
    item.decision.decided_at = decided_at


def apply_bulk_decision(
    campaign: Campaign,
    request: BulkDecisionRequest,
    decided_by: Optional[str],
    decided_at: datetime,
) -> BulkDecisionReport:
    """
    Apply request.decision to every targeted item that passes its checks.

    Per item, in campaign order:
    1. skip high-risk items when skip_high_risk is set
    2. skip already-decided items when skip_decided is set
    3. merge the bulk payload onto the item's decision and validate it;
       failures are counted as failed with the joined validation errors
    4. otherwise write the decision
    """
    if request.decision is None or request.decision.decision_type is None:
        raise ValidationError("bulk decision requires a decision type")
    if DecisionType(request.decision.decision_type) == DecisionType.PENDING:
        raise ValidationError("bulk decision cannot reset items to PENDING")

    targets, missing_ids = resolve_targets(campaign, request)
    report = BulkDecisionReport(total_processed=len(targets) + len(missing_ids))

    for item in targets:
        if request.skip_high_risk and is_high_risk(item):
            report.record_skip(item.id, HIGH_RISK_REASON)
            continue

        if getattr(request, "skip_decided", False) and decision_type_of(item.decision) != DecisionType.PENDING:
            report.record_skip(item.id, ALREADY_DECIDED_REASON)
            continue

        candidate = merge_bulk_decision(item.decision, request.decision)
        result = validate_item_decision(item, candidate)
        if not result.valid:
            report.record_skip(item.id, "; ".join(result.errors), failed=True)
            continue

        _write_decision(item, candidate, decided_by, decided_at)
        report.successful += 1

    for item_id in missing_ids:
        report.record_skip(item_id, NOT_FOUND_REASON, failed=True)

    return report
