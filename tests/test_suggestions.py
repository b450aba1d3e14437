"""
Tests for risk-scored review suggestions.
"""
from datetime import datetime

from access_review.models.enums import (
    DataClassification,
    DecisionType,
    EmploymentType,
    EnvironmentType,
    GrantMethod,
    PrivilegeLevel,
)
from access_review.services.suggestions import suggest_decisions


class TestSuggestions:
    """Scores, confidence and ordering."""

    def test_standard_internal_production_item(self, create_campaign):
        campaign = create_campaign()

        suggestion = suggest_decisions(campaign)["suggestions"][0]

        assert suggestion["suggested_decision"] == DecisionType.APPROVE
        assert suggestion["risk_score"] == 40
        assert suggestion["confidence"] == "medium"
        assert suggestion["requires_manual_review"] is False

    def test_score_is_capped(self, create_campaign, make_subject, make_item):
        campaign = create_campaign([make_subject(
            employment_type=EmploymentType.VENDOR,
            end_date=datetime(2026, 12, 31),
            items=[make_item(
                privilege_level=PrivilegeLevel.SUPER_ADMIN,
                data_classification=DataClassification.RESTRICTED,
            )],
        )])

        suggestion = suggest_decisions(campaign)["suggestions"][0]

        assert suggestion["risk_score"] == 100
        assert suggestion["confidence"] == "low"
        assert suggestion["requires_manual_review"] is True

    def test_riskiest_first_with_summary(self, create_campaign, make_subject, make_item):
        campaign = create_campaign([make_subject(items=[
            make_item(
                environment=EnvironmentType.DEVELOPMENT,
                data_classification=DataClassification.PUBLIC,
                privilege_level=PrivilegeLevel.READ_ONLY,
            ),
            make_item(privilege_level=PrivilegeLevel.ADMIN, grant_method=GrantMethod.AUTOMATIC),
        ])])

        result = suggest_decisions(campaign)
        scores = [s["risk_score"] for s in result["suggestions"]]

        assert scores == [90, 15]
        assert result["summary"] == {
            "total_items": 2,
            "high_confidence": 1,
            "medium_confidence": 0,
            "low_confidence": 1,
            "require_manual_review": 1,
            "average_risk_score": 52,
            "high_risk_items": 1,
        }
