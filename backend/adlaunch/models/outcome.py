"""Results of publish and lifecycle operations."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from adlaunch.models.ad import Advertisement
from adlaunch.models.validation import PublishDecision, ValidationError


class OutcomeStatus(str, Enum):
    OK = "ok"
    PUBLISHED = "published"
    VALIDATION_FAILED = "validation_failed"
    PRECONDITION_FAILED = "precondition_failed"
    INVALID_TRANSITION = "invalid_transition"
    CONFLICT = "conflict"
    PUBLISH_FAILED = "publish_failed"
    PLATFORM_FAILED = "platform_failed"
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    # reconcile
    RECONCILED = "reconciled"
    MARKED_FAILED = "marked_failed"
    IN_FLIGHT = "in_flight"
    NOTHING_TO_RECONCILE = "nothing_to_reconcile"
    UNKNOWN = "unknown"


SUCCESS_STATUSES = frozenset({
    OutcomeStatus.OK,
    OutcomeStatus.PUBLISHED,
    OutcomeStatus.RECONCILED,
    OutcomeStatus.MARKED_FAILED,
    OutcomeStatus.IN_FLIGHT,
    OutcomeStatus.NOTHING_TO_RECONCILE,
    OutcomeStatus.UNKNOWN,
})


class OperationResult(BaseModel):
    status: OutcomeStatus
    ad: Optional[Advertisement] = None
    errors: list[ValidationError] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status in SUCCESS_STATUSES


class PublishOutcome(OperationResult):
    decision: Optional[PublishDecision] = None
