"""
Tenant-scoped campaign persistence with optimistic concurrency.

A campaign is always read whole, changed in memory and written back with one
commit. The `version` column guards that commit: if another writer got there
first, SQLAlchemy raises StaleDataError and we surface a
ConcurrencyConflictError (or retry, inside update_campaign).
"""
import logging
from typing import Callable, List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError

from access_review import config
from access_review.models.domain import Campaign, to_naive_utc, utcnow
from access_review.services.errors import (
    ConcurrencyConflictError,
    NotFoundError,
)

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

SORTABLE_FIELDS = {
    "createdAt": Campaign.created_at,
    "name": Campaign.name,
    "systemName": Campaign.system_name,
    "status": Campaign.status,
    "periodEnd": Campaign.period_end,
}


class CampaignStore:
    """Load/save campaigns for one database session."""

    def __init__(self, db: Session, max_retries: Optional[int] = None):
        self.db = db
        self.max_retries = config.STORE_MAX_RETRIES if max_retries is None else max_retries

    def load(self, tenant_id: str, campaign_id: int, expected_version: Optional[int] = None) -> Campaign:
        """
        Fetch a live (not soft-deleted) campaign of this tenant.

        expected_version, when given, must match the stored version.
        """
        campaign = self.db.query(Campaign).filter(
            Campaign.id == campaign_id,
            Campaign.tenant_id == tenant_id,
            Campaign.deleted_at.is_(None),
        ).first()

        if campaign is None:
            raise NotFoundError("Campaign not found")

        if expected_version is not None and campaign.version != expected_version:
            raise ConcurrencyConflictError(
                f"Campaign {campaign_id} is at version {campaign.version}, "
                f"not {expected_version}. Reload and try again."
            )
        return campaign

    def add(self, tenant_id: str, campaign: Campaign) -> Campaign:
        """Stage a new campaign and assign its ids (no commit)."""
        campaign.tenant_id = tenant_id
        self.db.add(campaign)
        self.db.flush()
        return campaign

    def save(self, tenant_id: str, campaign: Campaign) -> Campaign:
        """Commit the campaign and everything staged alongside it (audit rows included)."""
        if campaign.tenant_id != tenant_id:
            raise NotFoundError("Campaign not found")

        # Child-only edits must still bump the campaign version
        campaign.updated_at = utcnow()
        flag_modified(campaign, "updated_at")

        try:
            self.db.commit()
        except StaleDataError:
            self.db.rollback()
            logger.warning("Stale write on campaign %s (tenant %s)", campaign.id, tenant_id)
            raise ConcurrencyConflictError(
                "Campaign was modified by someone else. Reload and try again."
            )

        self.db.refresh(campaign)
        return campaign

    def update_campaign(
        self,
        tenant_id: str,
        campaign_id: int,
        mutator: Callable[[Campaign], object],
        expected_version: Optional[int] = None,
    ) -> Tuple[Campaign, object]:
        """
        Load, mutate, save - retrying on optimistic-lock conflicts.

        The mutator runs again against freshly loaded state on every retry, so
        its guards are re-evaluated. When the caller pinned expected_version
        a conflict is returned straight away instead of retried. Anything
        raised by the mutator rolls the session back so no partial change
        survives.

        The mutator runs with autoflush off, so a lazy load inside it cannot
        write half a change early and bump the version a second time.

        Returns (campaign, whatever the mutator returned).
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                campaign = self.load(tenant_id, campaign_id, expected_version)
                with self.db.no_autoflush:
                    result = mutator(campaign)
            except Exception:
                self.db.rollback()
                raise

            try:
                self.save(tenant_id, campaign)
            except ConcurrencyConflictError:
                if expected_version is not None or attempt > self.max_retries:
                    raise
                logger.info("Retrying campaign %s after conflict (attempt %d)", campaign_id, attempt)
                continue
            return campaign, result

    def list_campaigns(
        self,
        tenant_id: str,
        status=None,
        system_name: Optional[str] = None,
        environment=None,
        review_type=None,
        period_end_from=None,
        period_end_to=None,
        search: Optional[str] = None,
        sort_by: str = "createdAt",
        sort_order: str = "desc",
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> Tuple[List[Campaign], int]:
        """Filtered, sorted page of live campaigns plus the total match count."""
        query = self.db.query(Campaign).filter(
            Campaign.tenant_id == tenant_id,
            Campaign.deleted_at.is_(None),
        )

        if status is not None:
            query = query.filter(Campaign.status == status)
        if system_name:
            query = query.filter(Campaign.system_name.ilike(f"%{system_name}%"))
        if environment is not None:
            query = query.filter(Campaign.environment == environment)
        if review_type is not None:
            query = query.filter(Campaign.review_type == review_type)
        if period_end_from is not None:
            query = query.filter(Campaign.period_end >= to_naive_utc(period_end_from))
        if period_end_to is not None:
            query = query.filter(Campaign.period_end <= to_naive_utc(period_end_to))
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(
                Campaign.name.ilike(pattern),
                Campaign.system_name.ilike(pattern),
                Campaign.description.ilike(pattern),
            ))

        total = query.count()

        column = SORTABLE_FIELDS.get(sort_by, Campaign.created_at)
        ordering = column.asc() if sort_order == "asc" else column.desc()
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)

        campaigns = query.order_by(ordering, Campaign.id.desc()).offset((page - 1) * limit).limit(limit).all()
        return campaigns, total
