"""Pytest configuration and shared fixtures."""
import os

# Keep the app module from touching a file database or starting the sweeper
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ESCALATION_SWEEP_INTERVAL_SECONDS", "0")

from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from access_review.database import Base
from access_review.models.domain import Campaign, Subject, Item, ItemDecision, Approvals, Workflow  # noqa: F401
from access_review.models.audit import AuditEvent  # noqa: F401
from access_review.models.enums import (
    DataClassification,
    DecisionType,
    EmploymentType,
    EntitlementType,
    EnvironmentType,
    GrantMethod,
    PrivilegeLevel,
    ReviewType,
)
from access_review.services.state_machine import CampaignStateMachine
from access_review.api.schemas import CampaignCreate, DecisionIn, ItemIn, SubjectIn

TENANT = "tenant-a"
ACTOR = "reviewer@example.com"

PERIOD_START = datetime(2026, 1, 1)
PERIOD_END = datetime(2026, 3, 31)


@pytest.fixture
def db_session():
    """Create a fresh in-memory database for each test."""
    # In-memory SQLite for fast tests
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    # Default autoflush on; the store must still write each change exactly once
    TestingSessionLocal = sessionmaker(bind=engine)
    session = TestingSessionLocal()

    yield session

    session.close()


@pytest.fixture
def sm(db_session):
    return CampaignStateMachine(db_session)


@pytest.fixture
def make_decision():
    def build(decision_type=DecisionType.APPROVE, **overrides):
        return DecisionIn(decision_type=decision_type, **overrides)
    return build


@pytest.fixture
def make_item():
    """An item payload; a STANDARD internal role unless overridden."""
    def build(**overrides):
        data = dict(
            application="Payroll",
            environment=EnvironmentType.PRODUCTION,
            role_name="Payroll Clerk",
            entitlement_type=EntitlementType.ROLE,
            privilege_level=PrivilegeLevel.STANDARD,
            grant_method=GrantMethod.REQUEST,
            data_classification=DataClassification.INTERNAL,
        )
        data.update(overrides)
        return ItemIn(**data)
    return build


@pytest.fixture
def make_subject(make_item):
    """A subject payload; an employee with one item unless overridden."""
    counter = {"n": 0}

    def build(items=None, **overrides):
        counter["n"] += 1
        data = dict(
            subject_id=f"user-{counter['n']}",
            full_name=f"User {counter['n']}",
            email=f"User{counter['n']}@Example.com",
            employment_type=EmploymentType.EMPLOYEE,
            items=items if items is not None else [make_item()],
        )
        data.update(overrides)
        return SubjectIn(**data)
    return build


@pytest.fixture
def make_campaign_data(make_subject):
    def build(subjects=None, **overrides):
        data = dict(
            name="Q1 Payroll access review",
            system_name="Payroll",
            environment=EnvironmentType.PRODUCTION,
            review_type=ReviewType.PERIODIC,
            period_start=PERIOD_START,
            period_end=PERIOD_END,
            subjects=subjects if subjects is not None else [make_subject()],
        )
        data.update(overrides)
        return CampaignCreate(**data)
    return build


@pytest.fixture
def create_campaign(sm, make_campaign_data):
    """Store a DRAFT campaign for TENANT and return it."""
    def create(subjects=None, tenant_id=TENANT, **overrides):
        return sm.create_campaign(tenant_id, ACTOR, make_campaign_data(subjects, **overrides))
    return create


@pytest.fixture
def item_ids():
    """All item ids of a campaign in review order."""
    def collect(campaign):
        return [item.id for subject in campaign.subjects for item in subject.items]
    return collect


@pytest.fixture
def decided_campaign(create_campaign, make_item, make_subject, make_decision):
    """Two subjects with approved STANDARD items: ready to submit."""
    def create(privilege_level=PrivilegeLevel.STANDARD, decision=None):
        decision = decision or make_decision()
        subjects = [
            make_subject(items=[make_item(decision=decision)]),
            make_subject(items=[make_item(privilege_level=privilege_level, decision=decision)]),
        ]
        return create_campaign(subjects)
    return create
