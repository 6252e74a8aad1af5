"""Ad lifecycle operations after publishing: pause, resume, archive, delete, review."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable

from adlaunch.config import settings
from adlaunch.models.ad import AdStatus, Advertisement, ReviewStatus
from adlaunch.models.outcome import OperationResult, OutcomeStatus
from adlaunch.models.validation import error
from adlaunch.orchestrator.status_policy import (
    StatusTransitionPolicy,
    can_transition,
    invalid_transition,
)
from adlaunch.services.ad_publisher import AdPublisher, MetaAdPublisher, SimulatedAdPublisher
from adlaunch.services.meta_graph_service import GRAPH_ERRORS
from adlaunch.services.record_store import RecordStore, get_store

logger = logging.getLogger(__name__)


class AdLifecycleService:
    def __init__(
        self,
        store: RecordStore | None = None,
        publisher: AdPublisher | None = None,
        policy: StatusTransitionPolicy | None = None,
    ) -> None:
        self.store = store or get_store()
        self.publisher = publisher or (
            SimulatedAdPublisher() if settings.publish_simulation else MetaAdPublisher()
        )
        self.policy = policy or StatusTransitionPolicy()

    async def pause(self, ad_id: str) -> OperationResult:
        return await self._transition(ad_id, AdStatus.PAUSED, "pause", "PAUSED", self.policy.pausable)

    async def resume(self, ad_id: str) -> OperationResult:
        return await self._transition(ad_id, AdStatus.ACTIVE, "resume", "ACTIVE", self.policy.resumable)

    async def archive(self, ad_id: str) -> OperationResult:
        return await self._transition(
            ad_id,
            AdStatus.ARCHIVED,
            "archive",
            "ARCHIVED",
            lambda status: can_transition(status, AdStatus.ARCHIVED),
        )

    async def delete(self, ad_id: str) -> OperationResult:
        """Remove the ad record; a published ad is archived on Meta first."""
        ad = await self.store.get_ad(ad_id)
        if ad is None:
            return _not_found(ad_id)
        if not self.policy.deletable(ad.status):
            return _invalid(ad, "delete")

        if ad.status != AdStatus.ARCHIVED:
            failure = await self._push_status(ad, "ARCHIVED")
            if failure is not None:
                return failure

        await self.store.delete_ad(ad.id)
        logger.info("Deleted ad %s (%s)", ad.id, ad.status.value)
        return OperationResult(status=OutcomeStatus.OK, ad=ad)

    async def record_review(
        self, ad_id: str, approved: bool, now: datetime | None = None
    ) -> OperationResult:
        """Apply Meta's review verdict to a pending_review ad."""
        ad = await self.store.get_ad(ad_id)
        if ad is None:
            return _not_found(ad_id)
        now = now or datetime.utcnow()

        if approved:
            result = self.policy.apply(
                ad, AdStatus.ACTIVE, "approve", now=now,
                review_status=ReviewStatus.APPROVED, approved_at=now,
            )
        else:
            result = self.policy.apply(
                ad, AdStatus.REJECTED, "reject", now=now,
                review_status=ReviewStatus.REJECTED,
            )
        if not result.ok:
            return OperationResult(status=OutcomeStatus.INVALID_TRANSITION, ad=ad, errors=[result.error])
        return await self._commit(ad, result.ad)

    async def edit_check(self, ad_id: str) -> OperationResult:
        ad = await self.store.get_ad(ad_id)
        if ad is None:
            return _not_found(ad_id)
        if not self.policy.editable(ad.status):
            return _invalid(ad, "edit")
        return OperationResult(status=OutcomeStatus.OK, ad=ad)

    async def permissions(self, ad_id: str) -> dict[str, Any] | None:
        ad = await self.store.get_ad(ad_id)
        if ad is None:
            return None
        return {"ad_id": ad.id, **self.policy.permissions(ad.status)}

    # ── Internals ────────────────────────────────────────────────

    async def _transition(
        self,
        ad_id: str,
        target: AdStatus,
        action: str,
        platform_status: str,
        allowed: Callable[[AdStatus], bool],
    ) -> OperationResult:
        ad = await self.store.get_ad(ad_id)
        if ad is None:
            return _not_found(ad_id)
        if not allowed(ad.status):
            return _invalid(ad, action)

        result = self.policy.apply(ad, target, action)
        if not result.ok:
            return OperationResult(status=OutcomeStatus.INVALID_TRANSITION, ad=ad, errors=[result.error])

        failure = await self._push_status(ad, platform_status)
        if failure is not None:
            return failure
        return await self._commit(ad, result.ad)

    async def _push_status(self, ad: Advertisement, platform_status: str) -> OperationResult | None:
        """Mirror a status change on Meta. Returns a failure result, or None on success."""
        if not ad.platform_ad_id:
            return None

        connection = await self.store.get_connection(ad.campaign_id)
        if connection is None:
            return _platform_failed(ad, platform_status, "no Meta connection for this campaign")
        try:
            await self.publisher.set_status(ad, connection, platform_status)
        except GRAPH_ERRORS as e:
            logger.warning("Meta status %s failed for ad %s: %s", platform_status, ad.id, e)
            return _platform_failed(ad, platform_status, str(e) or e.__class__.__name__)
        return None

    async def _commit(self, before: Advertisement, after: Advertisement) -> OperationResult:
        if not await self.store.compare_and_set_ad(after, expected_status=before.status):
            current = await self.store.get_ad(before.id) or before
            return OperationResult(
                status=OutcomeStatus.CONFLICT,
                ad=current,
                errors=[error(
                    "STATUS_CHANGED",
                    f"Ad status changed to {current.status.value} in the meantime",
                    field="status",
                    suggested_fix="Reload the ad and try again",
                )],
            )
        return OperationResult(status=OutcomeStatus.OK, ad=after)


def _not_found(ad_id: str) -> OperationResult:
    return OperationResult(
        status=OutcomeStatus.NOT_FOUND,
        errors=[error("AD_NOT_FOUND", f"Ad {ad_id} not found")],
    )


def _invalid(ad: Advertisement, action: str) -> OperationResult:
    logger.info("Refused %s for ad %s in status %s", action, ad.id, ad.status.value)
    return OperationResult(
        status=OutcomeStatus.INVALID_TRANSITION,
        ad=ad,
        errors=[invalid_transition(ad.status, action)],
    )


def _platform_failed(ad: Advertisement, platform_status: str, reason: str) -> OperationResult:
    return OperationResult(
        status=OutcomeStatus.PLATFORM_FAILED,
        ad=ad,
        errors=[error(
            "PLATFORM_UPDATE_FAILED",
            f"Could not set the ad to {platform_status} on Meta: {reason}",
            suggested_fix="Check your Meta connection and try again",
        )],
    )
