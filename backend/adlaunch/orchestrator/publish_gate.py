"""Publish gate: decides whether an ad may go out, then sends it.

Flow of ``publish``:
  1. Status precondition (publishable: draft / rejected / failed)
  2. Campaign data, compliance, connection and funding checks, all errors concatenated
  3. Claim: compare-and-set the ad to pending_review
  4. External publish call
  5. Persist the platform id (simulation: straight to active)

A failed platform call moves the claimed ad to ``failed``. A crash between
steps 4 and 5 leaves a pending_review ad without a platform id;
``reconcile`` resolves it later by looking the ad up on the platform.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from adlaunch.config import settings
from adlaunch.models.ad import AdStatus, Advertisement, ReviewStatus
from adlaunch.models.campaign import CampaignSetupState
from adlaunch.models.connection import AdvertiserConnection
from adlaunch.models.outcome import OutcomeStatus, PublishOutcome
from adlaunch.models.validation import (
    PublishDecision,
    ValidationError,
    critical,
    error,
    has_critical,
    warning,
)
from adlaunch.orchestrator.status_policy import StatusTransitionPolicy
from adlaunch.services.ad_publisher import AdPublisher, MetaAdPublisher, SimulatedAdPublisher
from adlaunch.services.meta_graph_service import GRAPH_ERRORS
from adlaunch.services.record_store import RecordStore, get_store
from adlaunch.validation.campaign_data import CampaignDataValidator, completed_steps
from adlaunch.validation.compliance import ComplianceValidator
from adlaunch.validation.funding import FundingValidator

logger = logging.getLogger(__name__)


def connection_problems(
    connection: AdvertiserConnection | None, now: datetime | None = None
) -> list[ValidationError]:
    """Blocking problems with the connection itself; empty when funding can be queried."""
    if connection is None:
        return [critical(
            "NO_CONNECTION",
            "No Meta connection for this campaign",
            field="connection",
            suggested_fix="Connect your Facebook account",
        )]
    if not connection.publish_token:
        return [critical(
            "NO_TOKEN",
            "Meta access token missing",
            field="connection.token",
            suggested_fix="Reconnect your Facebook account",
        )]
    if connection.token_expired(now):
        return [critical(
            "TOKEN_EXPIRED",
            "Meta access token has expired",
            field="connection.token",
            suggested_fix="Reconnect your Facebook account",
        )]
    if not connection.selected_ad_account_id:
        return [critical(
            "NO_AD_ACCOUNT",
            "No ad account selected",
            field="connection.selected_ad_account_id",
            suggested_fix="Select an ad account",
        )]
    return []


def connection_notices(
    connection: AdvertiserConnection | None, now: datetime | None = None
) -> list[ValidationError]:
    """Connection findings that don't stop funding from being queried."""
    if connection is None:
        return []
    notices: list[ValidationError] = []
    if not connection.selected_page_id:
        notices.append(critical(
            "NO_PAGE",
            "Facebook Page not selected",
            field="connection.selected_page_id",
            suggested_fix="Complete Meta connection setup",
        ))

    now = now or datetime.utcnow()
    expiry = connection.token_expires_at()
    if connection.publish_token and expiry is not None and expiry > now:
        remaining = expiry - now
        if remaining < timedelta(days=settings.token_expiry_warning_days):
            notices.append(warning(
                "TOKEN_EXPIRING_SOON",
                f"Token expires in {remaining.days} days",
                field="connection.token",
                suggested_fix="Consider reconnecting soon to avoid interruption",
            ))
    return notices


class PublishGate:
    def __init__(
        self,
        store: RecordStore | None = None,
        compliance_validator: ComplianceValidator | None = None,
        publisher: AdPublisher | None = None,
        funding_validator: FundingValidator | None = None,
        campaign_validator: CampaignDataValidator | None = None,
        policy: StatusTransitionPolicy | None = None,
        reconcile_after: timedelta | None = None,
    ) -> None:
        self.store = store or get_store()
        self.publisher = publisher or (
            SimulatedAdPublisher() if settings.publish_simulation else MetaAdPublisher()
        )
        self.funding_validator = funding_validator or FundingValidator()
        self.campaign_validator = campaign_validator or CampaignDataValidator()
        self.policy = policy or StatusTransitionPolicy()
        self.compliance_validator = compliance_validator or ComplianceValidator()
        self.reconcile_after = reconcile_after or timedelta(
            seconds=settings.publish_reconcile_after_seconds
        )

    # ── Readiness ────────────────────────────────────────────────

    async def can_publish(
        self,
        ad: Advertisement,
        state: CampaignSetupState | None,
        connection: AdvertiserConnection | None,
        now: datetime | None = None,
    ) -> PublishDecision:
        """Readiness verdict without side effects."""
        blocker = self.policy.publish_blocker(ad)
        if blocker is not None:
            return PublishDecision(allowed=False, errors=[blocker], precondition_failed=True)

        errors: list[ValidationError] = []

        campaign = self.campaign_validator.validate(state)
        errors.extend(campaign.errors)

        copy = state.selected_copy(ad.selected_copy_index) if state else None
        compliance = self.compliance_validator.validate(copy, ad.website_url)
        errors.extend(compliance.errors)

        funding = None
        problems = connection_problems(connection, now)
        errors.extend(problems)
        errors.extend(connection_notices(connection, now))
        if not problems:
            assert connection is not None
            funding = await self.funding_validator.validate(
                connection.publish_token or "",
                connection.selected_ad_account_id or "",
                connection.payment_connected,
            )
            errors.extend(funding.errors)

        allowed = not has_critical(errors)
        logger.info(
            "Readiness ad=%s allowed=%s errors=%s",
            ad.id, allowed, [e.code for e in errors],
        )
        return PublishDecision(
            allowed=allowed,
            errors=errors,
            campaign=campaign,
            funding=funding,
            compliance=compliance,
        )

    async def readiness(self, ad_id: str) -> PublishOutcome:
        ad = await self.store.get_ad(ad_id)
        if ad is None:
            return _not_found(ad_id)
        state = await self.store.get_campaign_state(ad.campaign_id)
        connection = await self.store.get_connection(ad.campaign_id)
        decision = await self.can_publish(ad, state, connection)
        return PublishOutcome(status=OutcomeStatus.OK, ad=ad, errors=decision.errors, decision=decision)

    # ── Publish ──────────────────────────────────────────────────

    async def publish(
        self, ad_id: str, authorized: bool = True, now: datetime | None = None
    ) -> PublishOutcome:
        if not authorized:
            return PublishOutcome(
                status=OutcomeStatus.UNAUTHORIZED,
                errors=[error("UNAUTHORIZED", "Not allowed to publish this ad")],
            )

        ad = await self.store.get_ad(ad_id)
        if ad is None:
            return _not_found(ad_id)

        now = now or datetime.utcnow()
        state = await self.store.get_campaign_state(ad.campaign_id)
        connection = await self.store.get_connection(ad.campaign_id)

        decision = await self.can_publish(ad, state, connection, now)
        if decision.precondition_failed:
            return PublishOutcome(
                status=OutcomeStatus.PRECONDITION_FAILED, ad=ad, errors=decision.errors, decision=decision
            )
        if not decision.allowed:
            return PublishOutcome(
                status=OutcomeStatus.VALIDATION_FAILED, ad=ad, errors=decision.errors, decision=decision
            )
        assert connection is not None

        # Claim before the external call so a concurrent publish sees pending_review.
        steps = completed_steps(decision.campaign) if decision.campaign else ad.completed_steps
        claim = self.policy.apply(
            ad,
            AdStatus.PENDING_REVIEW,
            "publish",
            now=now,
            review_status=ReviewStatus.PENDING,
            completed_steps=steps,
            publish_started_at=now,
            publish_error=None,
        )
        if not claim.ok:
            return PublishOutcome(
                status=OutcomeStatus.PRECONDITION_FAILED, ad=ad, errors=[claim.error], decision=decision
            )
        if not await self.store.compare_and_set_ad(claim.ad, expected_status=ad.status):
            return _conflict(await self.store.get_ad(ad.id) or ad, decision)
        claimed = claim.ad
        logger.info("Publish claimed for ad %s", ad.id)

        try:
            platform_ad_id = await self.publisher.publish(claimed, state, connection)
        except GRAPH_ERRORS as e:
            return await self._mark_failed(claimed, decision, str(e) or e.__class__.__name__, now)

        published = claimed.model_copy(update={
            "platform_ad_id": platform_ad_id,
            "published_at": now,
            "updated_at": now,
        })
        if self.publisher.simulated:
            published = self.policy.apply(
                published,
                AdStatus.ACTIVE,
                "approve",
                now=now,
                review_status=ReviewStatus.APPROVED,
                approved_at=now,
            ).ad

        if not await self.store.compare_and_set_ad(published, expected_status=AdStatus.PENDING_REVIEW):
            # Someone moved the ad while the call was in flight; the platform id
            # is still recoverable through reconcile if it stayed pending.
            logger.warning("Ad %s changed during publish; platform id %s not stored", ad.id, platform_ad_id)
            return _conflict(await self.store.get_ad(ad.id) or claimed, decision)

        logger.info("Published ad %s as %s (%s)", ad.id, platform_ad_id, published.status.value)
        return PublishOutcome(
            status=OutcomeStatus.PUBLISHED, ad=published, errors=decision.errors, decision=decision
        )

    async def _mark_failed(
        self,
        claimed: Advertisement,
        decision: PublishDecision,
        reason: str,
        now: datetime,
    ) -> PublishOutcome:
        logger.warning("Publish failed for ad %s: %s", claimed.id, reason)
        failed = self.policy.apply(
            claimed,
            AdStatus.FAILED,
            "mark failed",
            now=now,
            review_status=ReviewStatus.NOT_SUBMITTED,
            publish_error=reason,
        ).ad
        if not await self.store.compare_and_set_ad(failed, expected_status=AdStatus.PENDING_REVIEW):
            logger.warning("Ad %s changed before it could be marked failed", claimed.id)
            failed = await self.store.get_ad(claimed.id) or failed
        return PublishOutcome(
            status=OutcomeStatus.PUBLISH_FAILED,
            ad=failed,
            errors=[*decision.errors, error(
                "PUBLISH_FAILED",
                f"Meta rejected the publish request: {reason}",
                suggested_fix="Check your Meta connection and retry publishing",
            )],
            decision=decision,
        )

    # ── Reconcile ────────────────────────────────────────────────

    async def reconcile(self, ad_id: str, now: datetime | None = None) -> PublishOutcome:
        """Resolve a pending_review ad whose publish outcome was never recorded."""
        ad = await self.store.get_ad(ad_id)
        if ad is None:
            return _not_found(ad_id)

        if ad.status != AdStatus.PENDING_REVIEW or ad.platform_ad_id:
            return PublishOutcome(status=OutcomeStatus.NOTHING_TO_RECONCILE, ad=ad)

        now = now or datetime.utcnow()
        started = ad.publish_started_at or ad.updated_at
        if now - started < self.reconcile_after:
            return PublishOutcome(status=OutcomeStatus.IN_FLIGHT, ad=ad)

        connection = await self.store.get_connection(ad.campaign_id)
        problems = connection_problems(connection, now)
        if problems:
            return PublishOutcome(status=OutcomeStatus.UNKNOWN, ad=ad, errors=problems)
        assert connection is not None

        try:
            platform_ad_id = await self.publisher.find(ad, connection)
        except GRAPH_ERRORS as e:
            logger.warning("Reconcile lookup failed for ad %s: %s", ad.id, e)
            return PublishOutcome(
                status=OutcomeStatus.UNKNOWN,
                ad=ad,
                errors=[error(
                    "RECONCILE_LOOKUP_FAILED",
                    f"Could not check Meta for this ad: {e}",
                    suggested_fix="Try again later",
                )],
            )

        if platform_ad_id:
            updated = ad.model_copy(update={
                "platform_ad_id": platform_ad_id,
                "published_at": ad.published_at or now,
                "updated_at": now,
            })
            status = OutcomeStatus.RECONCILED
        else:
            updated = self.policy.apply(
                ad,
                AdStatus.FAILED,
                "mark failed",
                now=now,
                review_status=ReviewStatus.NOT_SUBMITTED,
                publish_error="Publish did not complete; no matching ad on Meta",
            ).ad
            status = OutcomeStatus.MARKED_FAILED

        if not await self.store.compare_and_set_ad(updated, expected_status=AdStatus.PENDING_REVIEW):
            return _conflict(await self.store.get_ad(ad.id) or ad, None)

        logger.info("Reconciled ad %s: %s", ad.id, status.value)
        return PublishOutcome(status=status, ad=updated)


def _not_found(ad_id: str) -> PublishOutcome:
    return PublishOutcome(
        status=OutcomeStatus.NOT_FOUND,
        errors=[error("AD_NOT_FOUND", f"Ad {ad_id} not found")],
    )


def _conflict(ad: Advertisement, decision: PublishDecision | None) -> PublishOutcome:
    return PublishOutcome(
        status=OutcomeStatus.CONFLICT,
        ad=ad,
        errors=[error(
            "STATUS_CHANGED",
            f"Ad status changed to {ad.status.value} while publishing",
            field="status",
            suggested_fix="Reload the ad and try again",
        )],
        decision=decision,
    )
