"""
Errors raised by campaign operations.

A refusal is not a bug - it's the system working correctly. Each subclass maps
to one HTTP status in access_review.main.
"""
from typing import List, Optional


class CampaignError(Exception):
    """Base class for every refusal raised by the campaign services."""
    code = "CAMPAIGN_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class ValidationError(CampaignError):
    """A decision or submission rule was violated. Carries every violation, not just the first."""
    code = "VALIDATION_ERROR"

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        self.errors = list(errors or [message])
        super().__init__(message)


class StateConflictError(CampaignError):
    """Operation is not allowed in the campaign's current status."""
    code = "INVALID_STATUS"


class NotFoundError(CampaignError):
    """Campaign, subject or item does not exist within the tenant."""
    code = "NOT_FOUND"


class ConcurrencyConflictError(CampaignError):
    """The campaign changed underneath us; reload and retry."""
    code = "CONCURRENCY_CONFLICT"
