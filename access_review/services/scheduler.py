"""
Overdue-campaign escalation.

escalate_overdue() is a plain function over a session so tests can call it
with a fixed clock. PeriodicRunner drives it (or anything else) on a
background thread with an explicit start/stop lifecycle.
"""
import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from access_review.models.audit import AuditAction, AuditEvent, CAMPAIGN_TARGET_TYPE
from access_review.models.domain import Campaign, Workflow, utcnow
from access_review.models.enums import EDITABLE_STATUSES
from access_review.services.errors import ConcurrencyConflictError
from access_review.services.store import CampaignStore

logger = logging.getLogger(__name__)

DEFAULT_RENOTIFY_AFTER = timedelta(hours=24)


def _last_notified(workflow: Workflow) -> Optional[datetime]:
    sent = workflow.notifications_sent_at or []
    if not sent:
        return None
    return datetime.fromisoformat(sent[-1])


def escalate_overdue(
    db: Session,
    now: Optional[datetime] = None,
    renotify_after: timedelta = DEFAULT_RENOTIFY_AFTER,
) -> List[int]:
    """
    Escalate every editable campaign whose due date has passed.

    A campaign is escalated at most once per renotify_after window: its
    escalation level goes up by one, `now` is appended to the notification
    log and one CAMPAIGN_ESCALATED audit event is written. Each campaign is
    committed on its own; a campaign that changed underneath the sweep is
    left for the next run.

    Returns the ids of the campaigns escalated.
    """
    now = now or utcnow()
    store = CampaignStore(db, max_retries=0)

    overdue = db.query(Campaign).join(Workflow).filter(
        Campaign.deleted_at.is_(None),
        Campaign.status.in_(EDITABLE_STATUSES),
        Workflow.due_date < now,
    ).order_by(Campaign.id).all()

    escalated = []
    for campaign in overdue:
        workflow = campaign.workflow
        last = _last_notified(workflow)
        if last is not None and now - last < renotify_after:
            continue

        before = {"escalation_level": workflow.escalation_level}
        workflow.escalation_level = (workflow.escalation_level or 0) + 1
        # Reassign so the JSON column is seen as changed
        workflow.notifications_sent_at = list(workflow.notifications_sent_at or []) + [now.isoformat()]

        db.add(AuditEvent(
            tenant_id=campaign.tenant_id,
            action=AuditAction.CAMPAIGN_ESCALATED,
            actor_email=None,
            target_type=CAMPAIGN_TARGET_TYPE,
            target_id=str(campaign.id),
            summary=f"Campaign overdue since {workflow.due_date.isoformat()}: {campaign.name}",
            before_json=before,
            after_json={"escalation_level": workflow.escalation_level},
            created_at=now,
        ))

        try:
            store.save(campaign.tenant_id, campaign)
        except ConcurrencyConflictError:
            logger.warning("Skipped escalation of campaign %s: modified concurrently", campaign.id)
            continue

        escalated.append(campaign.id)
        logger.info(
            "Campaign %s escalated to level %d (due %s)",
            campaign.id, workflow.escalation_level, workflow.due_date.isoformat(),
        )

    return escalated


class PeriodicRunner:
    """
    Run `task(now)` every `interval` seconds on a daemon thread.

    The clock is injectable; run_once() runs a single tick in the calling
    thread and is what the tests use.
    """

    def __init__(self, task: Callable[[datetime], object], interval: float, clock: Callable[[], datetime] = utcnow):
        self.task = task
        self.interval = interval
        self.clock = clock
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self):
        return self.task(self.clock())

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.run_once()
            except Exception:
                # Keep ticking; the next run may succeed
                logger.exception("Periodic task failed")
            self._stop.wait(self.interval)

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="periodic-runner", daemon=True)
        self._thread.start()
        logger.info("Periodic runner started (every %ss)", self.interval)

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Periodic runner stopped")


def escalation_task(session_factory: Callable[[], Session]) -> Callable[[datetime], List[int]]:
    """Bind escalate_overdue to a fresh session per tick."""
    def run(now: datetime) -> List[int]:
        db = session_factory()
        try:
            return escalate_overdue(db, now)
        finally:
            db.close()
    return run
