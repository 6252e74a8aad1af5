"""PublishGate: readiness, publish claim/failure paths, idempotence and reconcile."""

import asyncio
import json
from datetime import datetime, timedelta
from urllib.parse import parse_qs

import httpx
import pytest

from adlaunch.models.ad import AdStatus, ReviewStatus
from adlaunch.models.campaign import AdCopySection, CopyVariation
from adlaunch.models.outcome import OutcomeStatus
from adlaunch.models.validation import Severity
from adlaunch.orchestrator.publish_gate import PublishGate
from adlaunch.services.ad_publisher import MetaAdPublisher, SimulatedAdPublisher
from adlaunch.validation.campaign_data import CampaignDataValidator
from adlaunch.validation.funding import FundingValidator

from conftest import (
    AD_ACCOUNT,
    FakePublisher,
    complete_state,
    funding_body,
    make_ad,
    make_connection,
)


def critical_codes(errors):
    return [e.code for e in errors if e.severity is Severity.CRITICAL]


def make_gate(store, graph, publisher=None):
    return PublishGate(
        store=store,
        publisher=publisher or MetaAdPublisher(graph.factory),
        funding_validator=FundingValidator(graph.factory, low_headroom_threshold=1000),
        campaign_validator=CampaignDataValidator(min_daily_budget=5),
        reconcile_after=timedelta(minutes=15),
    )


async def seed(store, ad=None, state="default", connection="default"):
    ad = ad or make_ad()
    await store.save_ad(ad)
    if state == "default":
        state = complete_state(ad.campaign_id)
    if state is not None:
        await store.save_campaign_state(state)
    if connection == "default":
        connection = make_connection(ad.campaign_id)
    if connection is not None:
        await store.save_connection(connection)
    return ad


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_ready_campaign_is_published_for_review(self, store, graph):
        graph.on("GET", AD_ACCOUNT, funding_body())
        graph.on("POST", f"{AD_ACCOUNT}/ads", {"id": "120210000000001"})
        ad = await seed(store)
        gate = make_gate(store, graph)

        decision = await gate.can_publish(ad, complete_state(), make_connection())
        assert decision.allowed is True
        assert critical_codes(decision.errors) == []

        outcome = await gate.publish(ad.id)

        assert outcome.status is OutcomeStatus.PUBLISHED
        stored = await store.get_ad(ad.id)
        assert stored.status is AdStatus.PENDING_REVIEW
        assert stored.review_status is ReviewStatus.PENDING
        assert stored.platform_ad_id == "120210000000001"
        assert stored.completed_steps == ["goal", "location", "budget", "copy", "creative", "destination"]

        create = [c for c in graph.calls if c.method == "POST"][0]
        form = parse_qs(create.content.decode())
        assert form["name"] == [ad.reference_name]
        creative = json.loads(form["creative"][0])
        link = creative["object_story_spec"]["link_data"]
        assert link["name"] == "Fresh hair, all day"
        assert link["picture"] == "https://cdn.example.com/a.png"
        assert link["call_to_action"] == {"type": "SIGN_UP"}

    @pytest.mark.asyncio
    async def test_no_payment_method_blocks_and_keeps_draft(self, store, graph):
        graph.on("GET", AD_ACCOUNT, funding_body())
        ad = await seed(store, connection=make_connection(payment_connected=False))
        gate = make_gate(store, graph)

        outcome = await gate.publish(ad.id)

        assert outcome.status is OutcomeStatus.VALIDATION_FAILED
        assert outcome.decision.allowed is False
        assert critical_codes(outcome.errors) == ["NO_PAYMENT_METHOD"]
        assert (await store.get_ad(ad.id)).status is AdStatus.DRAFT
        assert graph.paths("POST") == []


class TestCanPublish:
    @pytest.mark.asyncio
    async def test_all_errors_are_concatenated(self, store, graph):
        graph.on("GET", AD_ACCOUNT, funding_body(account_status=2))
        gate = make_gate(store, graph)
        state = complete_state(location=None, creative=None)

        decision = await gate.can_publish(make_ad(), state, make_connection(payment_connected=False))

        assert decision.allowed is False
        assert critical_codes(decision.errors) == [
            "MISSING_LOCATION",
            "MISSING_PREVIEW",
            "NO_PAYMENT_METHOD",
            "ACCOUNT_NOT_ACTIVE",
        ]
        assert decision.campaign.has_location is False
        assert decision.funding.account_active is False

    @pytest.mark.asyncio
    async def test_warnings_and_errors_do_not_block(self, store, graph):
        graph.on("GET", AD_ACCOUNT, funding_body(spend_cap="10000", amount_spent="9500"))
        gate = make_gate(store, graph)
        state = complete_state(creative=complete_state().creative.model_copy(
            update={"image_variations": ["https://cdn.example.com/a.png", ""]}
        ))
        state.budget.daily_budget = 3

        decision = await gate.can_publish(make_ad(), state, make_connection())

        assert decision.allowed is True
        assert sorted(e.code for e in decision.errors) == [
            "BUDGET_TOO_LOW", "INVALID_IMAGE_URL", "SPENDING_LIMIT_LOW",
        ]

    @pytest.mark.asyncio
    async def test_funding_lookup_failure_is_reported_not_raised(self, store, graph):
        graph.on("GET", AD_ACCOUNT, httpx.ConnectTimeout("connect timed out"))
        gate = make_gate(store, graph)

        decision = await gate.can_publish(make_ad(), complete_state(), make_connection())

        assert [e.code for e in decision.errors] == ["ACCOUNT_INFO_FAILED"]
        assert decision.funding.lookup_failed is True

    @pytest.mark.parametrize("status", [AdStatus.ACTIVE, AdStatus.PENDING_REVIEW, AdStatus.ARCHIVED])
    @pytest.mark.asyncio
    async def test_precondition_short_circuits(self, store, graph, status):
        gate = make_gate(store, graph)

        decision = await gate.can_publish(make_ad(status=status), None, None)

        assert decision.allowed is False
        assert decision.precondition_failed is True
        assert [e.code for e in decision.errors] == ["NOT_PUBLISHABLE"]
        assert decision.campaign is None
        assert graph.calls == []

    @pytest.mark.parametrize("status", [AdStatus.REJECTED, AdStatus.FAILED])
    @pytest.mark.asyncio
    async def test_rejected_and_failed_are_publishable(self, store, graph, status):
        graph.on("GET", AD_ACCOUNT, funding_body())
        gate = make_gate(store, graph)
        decision = await gate.can_publish(make_ad(status=status), complete_state(), make_connection())
        assert decision.allowed is True


class TestConnectionPrechecks:
    @pytest.mark.parametrize(
        "connection, code",
        [
            (None, "NO_CONNECTION"),
            (make_connection(user_app_token=None, long_lived_user_token=None), "NO_TOKEN"),
            (make_connection(long_lived_token_expires_at=datetime(2020, 1, 1)), "TOKEN_EXPIRED"),
            (make_connection(selected_ad_account_id=None), "NO_AD_ACCOUNT"),
        ],
    )
    @pytest.mark.asyncio
    async def test_connection_problem_skips_funding(self, store, graph, connection, code):
        gate = make_gate(store, graph)
        state = complete_state(goal=None)

        decision = await gate.can_publish(make_ad(), state, connection)

        assert decision.allowed is False
        assert critical_codes(decision.errors) == ["MISSING_GOAL", code]
        assert decision.funding is None
        assert graph.calls == []

    @pytest.mark.asyncio
    async def test_missing_page_blocks_but_funding_is_still_checked(self, store, graph):
        graph.on("GET", AD_ACCOUNT, funding_body())
        gate = make_gate(store, graph)

        decision = await gate.can_publish(
            make_ad(), complete_state(), make_connection(selected_page_id=None)
        )

        assert decision.allowed is False
        assert critical_codes(decision.errors) == ["NO_PAGE"]
        assert decision.funding is not None
        assert decision.funding.has_funding is True

    @pytest.mark.asyncio
    async def test_token_expiring_soon_is_a_warning(self, store, graph):
        graph.on("GET", AD_ACCOUNT, funding_body())
        gate = make_gate(store, graph)
        now = datetime(2026, 4, 1, 12, 0)
        connection = make_connection(long_lived_token_expires_at=now + timedelta(days=3))

        decision = await gate.can_publish(make_ad(), complete_state(), connection, now)

        assert decision.allowed is True
        assert [(e.code, e.severity) for e in decision.errors] == [
            ("TOKEN_EXPIRING_SOON", Severity.WARNING)
        ]
        assert decision.errors[0].message == "Token expires in 3 days"

    @pytest.mark.asyncio
    async def test_token_with_weeks_left_draws_no_warning(self, store, graph):
        graph.on("GET", AD_ACCOUNT, funding_body())
        gate = make_gate(store, graph)
        now = datetime(2026, 4, 1, 12, 0)
        connection = make_connection(long_lived_token_expires_at=now + timedelta(days=7))

        decision = await gate.can_publish(make_ad(), complete_state(), connection, now)

        assert decision.errors == []


class TestComplianceFindings:
    @pytest.mark.asyncio
    async def test_findings_are_reported_without_blocking(self, store, graph):
        graph.on("GET", AD_ACCOUNT, funding_body())
        gate = make_gate(store, graph)
        state = complete_state(ad_copy=AdCopySection(variations=[
            CopyVariation(headline="Spring sale", primary_text="Hurry, click here to book."),
        ]))
        ad = make_ad(website_url="http://example.com/spring")

        decision = await gate.can_publish(ad, state, make_connection())

        assert decision.allowed is True
        assert [e.code for e in decision.errors] == [
            "CLICKBAIT", "POLICY_WARNING", "INSECURE_URL"
        ]
        assert decision.compliance.destination_valid is True

    @pytest.mark.asyncio
    async def test_malformed_destination_is_an_error_only(self, store, graph):
        graph.on("GET", AD_ACCOUNT, funding_body())
        gate = make_gate(store, graph)

        decision = await gate.can_publish(
            make_ad(website_url="example.com/spring"), complete_state(), make_connection()
        )

        assert decision.allowed is True
        assert [(e.code, e.severity) for e in decision.errors] == [
            ("MALFORMED_URL", Severity.ERROR)
        ]
        assert decision.compliance.no_policy_violations is False


class TestPublish:
    @pytest.mark.asyncio
    async def test_second_publish_is_rejected_by_precondition(self, store, graph, publisher):
        graph.on("GET", AD_ACCOUNT, funding_body())
        ad = await seed(store)
        gate = make_gate(store, graph, publisher)

        first = await gate.publish(ad.id)
        second = await gate.publish(ad.id)

        assert first.status is OutcomeStatus.PUBLISHED
        assert second.status is OutcomeStatus.PRECONDITION_FAILED
        assert "already under review" in second.errors[0].message
        assert publisher.publish_calls == [ad.id]

    @pytest.mark.asyncio
    async def test_concurrent_publish_calls_platform_once(self, store, graph, publisher):
        graph.on("GET", AD_ACCOUNT, funding_body())
        ad = await seed(store)
        gate = make_gate(store, graph, publisher)

        outcomes = await asyncio.gather(gate.publish(ad.id), gate.publish(ad.id))

        statuses = sorted(o.status.value for o in outcomes)
        assert statuses == ["conflict", "published"] or statuses == ["precondition_failed", "published"]
        assert publisher.publish_calls == [ad.id]

    @pytest.mark.asyncio
    async def test_lost_claim_is_a_conflict(self, store, graph, publisher):
        graph.on("GET", AD_ACCOUNT, funding_body())
        ad = await seed(store)
        gate = make_gate(store, graph, publisher)

        real_cas = store.compare_and_set_ad

        async def archive_first(candidate, expected_status):
            # Another request archives the ad between the read and the claim.
            await store.save_ad(ad.model_copy(update={"status": AdStatus.ARCHIVED}))
            store.compare_and_set_ad = real_cas
            return await real_cas(candidate, expected_status)

        store.compare_and_set_ad = archive_first

        outcome = await gate.publish(ad.id)

        assert outcome.status is OutcomeStatus.CONFLICT
        assert outcome.errors[0].code == "STATUS_CHANGED"
        assert outcome.ad.status is AdStatus.ARCHIVED
        assert publisher.publish_calls == []

    @pytest.mark.asyncio
    async def test_platform_failure_marks_failed(self, store, graph, platform_down):
        graph.on("GET", AD_ACCOUNT, funding_body())
        ad = await seed(store)
        gate = make_gate(store, graph, FakePublisher(fail_with=platform_down))

        outcome = await gate.publish(ad.id)

        assert outcome.status is OutcomeStatus.PUBLISH_FAILED
        assert outcome.errors[-1].code == "PUBLISH_FAILED"
        assert outcome.decision.allowed is True
        stored = await store.get_ad(ad.id)
        assert stored.status is AdStatus.FAILED
        assert "Service temporarily unavailable" in stored.publish_error
        assert stored.platform_ad_id is None

    @pytest.mark.asyncio
    async def test_failed_ad_can_be_retried(self, store, graph, platform_down):
        graph.on("GET", AD_ACCOUNT, funding_body())
        ad = await seed(store)
        flaky = FakePublisher(fail_with=platform_down)
        gate = make_gate(store, graph, flaky)

        await gate.publish(ad.id)
        flaky.fail_with = None
        retry = await gate.publish(ad.id)

        assert retry.status is OutcomeStatus.PUBLISHED
        stored = await store.get_ad(ad.id)
        assert stored.status is AdStatus.PENDING_REVIEW
        assert stored.publish_error is None

    @pytest.mark.asyncio
    async def test_platform_http_error_marks_failed(self, store, graph):
        graph.on("GET", AD_ACCOUNT, funding_body())
        graph.on("POST", f"{AD_ACCOUNT}/ads", (400, {"error": {"message": "Invalid parameter"}}))
        ad = await seed(store)

        outcome = await make_gate(store, graph).publish(ad.id)

        assert outcome.status is OutcomeStatus.PUBLISH_FAILED
        assert (await store.get_ad(ad.id)).status is AdStatus.FAILED

    @pytest.mark.asyncio
    async def test_rejected_ad_is_resubmitted_in_place(self, store, graph):
        graph.on("GET", AD_ACCOUNT, funding_body())
        graph.on("POST", "meta_ad_7", {"success": True})
        ad = await seed(store, ad=make_ad(status=AdStatus.REJECTED, platform_ad_id="meta_ad_7"))

        outcome = await make_gate(store, graph).publish(ad.id)

        assert outcome.status is OutcomeStatus.PUBLISHED
        assert graph.paths("POST") == ["meta_ad_7"]
        assert (await store.get_ad(ad.id)).platform_ad_id == "meta_ad_7"

    @pytest.mark.asyncio
    async def test_simulation_goes_straight_to_active(self, store, graph):
        graph.on("GET", AD_ACCOUNT, funding_body())
        ad = await seed(store)

        outcome = await make_gate(store, graph, SimulatedAdPublisher()).publish(ad.id)

        assert outcome.status is OutcomeStatus.PUBLISHED
        stored = await store.get_ad(ad.id)
        assert stored.status is AdStatus.ACTIVE
        assert stored.review_status is ReviewStatus.APPROVED
        assert stored.platform_ad_id == f"sim_{ad.id}"
        assert graph.paths("POST") == []

    @pytest.mark.asyncio
    async def test_unauthorized_runs_nothing(self, store, graph, publisher):
        ad = await seed(store)
        outcome = await make_gate(store, graph, publisher).publish(ad.id, authorized=False)

        assert outcome.status is OutcomeStatus.UNAUTHORIZED
        assert outcome.errors[0].code == "UNAUTHORIZED"
        assert graph.calls == []
        assert publisher.publish_calls == []

    @pytest.mark.asyncio
    async def test_unknown_ad(self, store, graph):
        outcome = await make_gate(store, graph).publish("missing")
        assert outcome.status is OutcomeStatus.NOT_FOUND


class TestReconcile:
    async def stuck_ad(self, store, started_minutes_ago=30):
        now = datetime(2026, 4, 1, 12, 0)
        ad = make_ad(
            status=AdStatus.PENDING_REVIEW,
            review_status=ReviewStatus.PENDING,
            publish_started_at=now - timedelta(minutes=started_minutes_ago),
        )
        await seed(store, ad=ad)
        return ad, now

    @pytest.mark.asyncio
    async def test_found_on_platform_persists_id(self, store, graph):
        ad, now = await self.stuck_ad(store)
        graph.on("GET", f"{AD_ACCOUNT}/ads", {
            "data": [
                {"id": "meta_ad_99", "name": "Spring promo [adlaunch:other]"},
                {"id": "meta_ad_42", "name": ad.reference_name, "effective_status": "PENDING_REVIEW"},
            ]
        })

        outcome = await make_gate(store, graph).reconcile(ad.id, now=now)

        assert outcome.status is OutcomeStatus.RECONCILED
        stored = await store.get_ad(ad.id)
        assert stored.platform_ad_id == "meta_ad_42"
        assert stored.status is AdStatus.PENDING_REVIEW
        filtering = json.loads(graph.calls[0].url.params["filtering"])
        assert filtering == [{"field": "name", "operator": "CONTAIN", "value": f"[adlaunch:{ad.id}]"}]

    @pytest.mark.asyncio
    async def test_absent_on_platform_marks_failed(self, store, graph):
        graph.on("GET", f"{AD_ACCOUNT}/ads", {"data": []})
        ad, now = await self.stuck_ad(store)

        outcome = await make_gate(store, graph).reconcile(ad.id, now=now)

        assert outcome.status is OutcomeStatus.MARKED_FAILED
        stored = await store.get_ad(ad.id)
        assert stored.status is AdStatus.FAILED
        assert stored.publish_error

    @pytest.mark.asyncio
    async def test_lookup_failure_changes_nothing(self, store, graph):
        graph.on("GET", f"{AD_ACCOUNT}/ads", httpx.ReadTimeout("timed out"))
        ad, now = await self.stuck_ad(store)

        outcome = await make_gate(store, graph).reconcile(ad.id, now=now)

        assert outcome.status is OutcomeStatus.UNKNOWN
        assert outcome.errors[0].code == "RECONCILE_LOOKUP_FAILED"
        assert (await store.get_ad(ad.id)).status is AdStatus.PENDING_REVIEW

    @pytest.mark.asyncio
    async def test_recent_claim_is_left_alone(self, store, graph, publisher):
        ad, now = await self.stuck_ad(store, started_minutes_ago=2)

        outcome = await make_gate(store, graph, publisher).reconcile(ad.id, now=now)

        assert outcome.status is OutcomeStatus.IN_FLIGHT
        assert graph.calls == []

    @pytest.mark.asyncio
    async def test_published_ad_needs_nothing(self, store, graph):
        ad = await seed(store, ad=make_ad(status=AdStatus.PENDING_REVIEW, platform_ad_id="meta_ad_1"))
        outcome = await make_gate(store, graph).reconcile(ad.id)
        assert outcome.status is OutcomeStatus.NOTHING_TO_RECONCILE
