"""Status transition policy for the advertisement lifecycle.

The transition table is the single source of truth; the permission
predicates (publishable, editable, ...) are thin checks on top of it and
the current status. Anything outside the table is refused with an ERROR
naming the current status and the attempted action.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from adlaunch.models.ad import AdStatus, Advertisement
from adlaunch.models.validation import ValidationError, error

logger = logging.getLogger(__name__)

S = AdStatus

TRANSITIONS: dict[AdStatus, frozenset[AdStatus]] = {
    S.DRAFT: frozenset({S.PENDING_REVIEW, S.ARCHIVED}),
    S.PENDING_REVIEW: frozenset({S.ACTIVE, S.REJECTED, S.FAILED, S.ARCHIVED}),
    S.ACTIVE: frozenset({S.PAUSED, S.LEARNING, S.ARCHIVED}),
    S.LEARNING: frozenset({S.ACTIVE, S.PAUSED, S.ARCHIVED}),
    S.PAUSED: frozenset({S.ACTIVE, S.ARCHIVED}),
    S.REJECTED: frozenset({S.DRAFT, S.PENDING_REVIEW, S.ARCHIVED}),
    S.FAILED: frozenset({S.DRAFT, S.PENDING_REVIEW, S.ARCHIVED}),
    S.ARCHIVED: frozenset(),
}

PUBLISHABLE = frozenset({S.DRAFT, S.REJECTED, S.FAILED})
EDITABLE = frozenset({S.DRAFT, S.REJECTED, S.PAUSED})
PAUSABLE = frozenset({S.ACTIVE, S.LEARNING})
RESUMABLE = frozenset({S.PAUSED})
DELETABLE = frozenset({S.DRAFT, S.REJECTED, S.ARCHIVED, S.PAUSED})

# Why an ad can't be published right now, by status.
PUBLISH_BLOCKERS: dict[AdStatus, str] = {
    S.PENDING_REVIEW: "Ad is already under review",
    S.ACTIVE: "Ad is already live; pause it first",
    S.LEARNING: "Ad is already live and in the learning phase; pause it first",
    S.PAUSED: "Ad was already published; resume it instead",
    S.ARCHIVED: "Ad is archived and cannot be published",
}

ACTION_LABELS: dict[tuple[AdStatus, AdStatus], str] = {
    (S.DRAFT, S.PENDING_REVIEW): "publish",
    (S.PENDING_REVIEW, S.ACTIVE): "approve",
    (S.PENDING_REVIEW, S.REJECTED): "reject",
    (S.PENDING_REVIEW, S.FAILED): "mark failed",
    (S.ACTIVE, S.PAUSED): "pause",
    (S.LEARNING, S.PAUSED): "pause",
    (S.PAUSED, S.ACTIVE): "resume",
    (S.REJECTED, S.PENDING_REVIEW): "resubmit",
    (S.REJECTED, S.DRAFT): "edit draft",
    (S.FAILED, S.PENDING_REVIEW): "retry publishing",
    (S.FAILED, S.DRAFT): "edit draft",
}


def can_transition(current: AdStatus, target: AdStatus) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def next_statuses(current: AdStatus) -> list[AdStatus]:
    return sorted(TRANSITIONS.get(current, frozenset()), key=lambda s: list(AdStatus).index(s))


def action_label(current: AdStatus, target: AdStatus) -> str:
    return ACTION_LABELS.get((current, target), f"move to {target.value}")


def is_final(status: AdStatus) -> bool:
    return not TRANSITIONS[status]


def is_live(status: AdStatus) -> bool:
    return status in (S.ACTIVE, S.LEARNING)


def invalid_transition(current: AdStatus, action: str) -> ValidationError:
    return error(
        "INVALID_TRANSITION",
        f"Cannot {action} an ad that is {current.value}",
        field="status",
    )


@dataclass
class TransitionResult:
    ad: Advertisement
    error: Optional[ValidationError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class StatusTransitionPolicy:
    """Applies the transition table to advertisements."""

    # ── Predicates ───────────────────────────────────────────────

    @staticmethod
    def publishable(status: AdStatus) -> bool:
        return status in PUBLISHABLE and can_transition(status, S.PENDING_REVIEW)

    @staticmethod
    def editable(status: AdStatus) -> bool:
        return status in EDITABLE and not is_final(status)

    @staticmethod
    def pausable(status: AdStatus) -> bool:
        return status in PAUSABLE and can_transition(status, S.PAUSED)

    @staticmethod
    def resumable(status: AdStatus) -> bool:
        return status in RESUMABLE and can_transition(status, S.ACTIVE)

    @staticmethod
    def deletable(status: AdStatus) -> bool:
        return status in DELETABLE

    def permissions(self, status: AdStatus) -> dict[str, Any]:
        return {
            "status": status.value,
            "can_publish": self.publishable(status),
            "can_edit": self.editable(status),
            "can_pause": self.pausable(status),
            "can_resume": self.resumable(status),
            "can_delete": self.deletable(status),
            "is_live": is_live(status),
            "is_final": is_final(status),
            "next_statuses": [s.value for s in next_statuses(status)],
        }

    # ── Checks ───────────────────────────────────────────────────

    def publish_blocker(self, ad: Advertisement) -> ValidationError | None:
        """ERROR explaining why the ad can't be published, or None."""
        if self.publishable(ad.status):
            return None
        reason = PUBLISH_BLOCKERS.get(ad.status, f"Ad status {ad.status.value} cannot be published")
        return error("NOT_PUBLISHABLE", reason, field="status")

    def check(self, current: AdStatus, target: AdStatus, action: str | None = None) -> ValidationError | None:
        if can_transition(current, target):
            return None
        return invalid_transition(current, action or action_label(current, target))

    def apply(
        self,
        ad: Advertisement,
        target: AdStatus,
        action: str | None = None,
        now: datetime | None = None,
        **changes: Any,
    ) -> TransitionResult:
        """Return a copy of ``ad`` in ``target`` status, or the unchanged ad plus an ERROR."""
        problem = self.check(ad.status, target, action)
        if problem is not None:
            logger.info("Refused %s -> %s for ad %s", ad.status.value, target.value, ad.id)
            return TransitionResult(ad=ad, error=problem)

        updated = ad.model_copy(update={
            **changes,
            "status": target,
            "updated_at": now or datetime.utcnow(),
        })
        logger.info("Ad %s: %s -> %s", ad.id, ad.status.value, target.value)
        return TransitionResult(ad=updated)
