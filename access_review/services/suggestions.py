"""Risk-scored review suggestions for the items of a campaign."""
from access_review.models.enums import (
    DataClassification,
    DecisionType,
    EmploymentType,
    EnvironmentType,
    GrantMethod,
    PrivilegeLevel,
)
from access_review.services.rules import iter_items

HIGH_RISK_THRESHOLD = 60
MAX_RISK_SCORE = 100

# classification -> (reason, score, confidence cap, manual review)
_CLASSIFICATION_RISK = {
    DataClassification.PUBLIC: ("Public data classification - minimal risk", 5, None, False),
    DataClassification.INTERNAL: ("Internal data - standard business access", 15, "medium", False),
    DataClassification.CONFIDENTIAL: ("Confidential data - elevated review needed", 40, "medium", False),
    DataClassification.RESTRICTED: ("Restricted data - high-sensitivity access", 70, "low", True),
}

_CONFIDENCE_RANK = {"high": 0, "medium": 1, "low": 2}


def _lower(confidence: str, cap: str) -> str:
    """Confidence only ever goes down."""
    if _CONFIDENCE_RANK[cap] > _CONFIDENCE_RANK[confidence]:
        return cap
    return confidence


def suggest_item(subject, item) -> dict:
    reasons = []
    confidence = "high"
    manual = False
    score = 0

    level = item.privilege_level
    if level in (PrivilegeLevel.STANDARD, PrivilegeLevel.READ_ONLY):
        reasons.append("Standard/read-only access level")
        score += 10
    elif level == PrivilegeLevel.ADMIN:
        reasons.append("Admin access requires careful review")
        manual, confidence = True, "low"
        score += 60
    elif level == PrivilegeLevel.SUPER_ADMIN:
        reasons.append("Super Admin access - highest risk level")
        manual, confidence = True, "low"
        score += 90

    reason, points, cap, needs_manual = _CLASSIFICATION_RISK[DataClassification(item.data_classification)]
    reasons.append(reason)
    score += points
    if cap:
        confidence = _lower(confidence, cap)
    manual = manual or needs_manual

    if subject.employment_type == EmploymentType.CONTRACTOR:
        reasons.append("External contractor - verify access necessity")
        confidence = _lower(confidence, "medium")
        score += 20
    elif subject.employment_type == EmploymentType.VENDOR:
        reasons.append("Vendor access - limited scope recommended")
        manual = True
        score += 30

    if item.grant_method == GrantMethod.AUTOMATIC:
        reasons.append("Automatically granted - review for appropriateness")
        confidence = _lower(confidence, "medium")

    if item.environment == EnvironmentType.PRODUCTION:
        reasons.append("Production environment access")
        score += 15

    return {
        "item_id": item.id,
        "subject_id": subject.subject_id,
        # Suggestions never propose a removal; a human makes that call
        "suggested_decision": DecisionType.APPROVE,
        "confidence": confidence,
        "reasons": reasons,
        "requires_manual_review": manual,
        "risk_score": min(score, MAX_RISK_SCORE),
    }


def suggest_decisions(campaign) -> dict:
    """Suggestions for every item, riskiest first, plus summary counts."""
    suggestions = [suggest_item(subject, item) for subject, item in iter_items(campaign)]
    suggestions.sort(key=lambda s: s["risk_score"], reverse=True)

    total = len(suggestions)
    summary = {
        "total_items": total,
        "high_confidence": sum(1 for s in suggestions if s["confidence"] == "high"),
        "medium_confidence": sum(1 for s in suggestions if s["confidence"] == "medium"),
        "low_confidence": sum(1 for s in suggestions if s["confidence"] == "low"),
        "require_manual_review": sum(1 for s in suggestions if s["requires_manual_review"]),
        "average_risk_score": round(sum(s["risk_score"] for s in suggestions) / total) if total else 0,
        "high_risk_items": sum(1 for s in suggestions if s["risk_score"] >= HIGH_RISK_THRESHOLD),
    }
    return {"suggestions": suggestions, "summary": summary}
