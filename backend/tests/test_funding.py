"""FundingValidator against a faked Graph API."""

import httpx
import pytest

from adlaunch.models.validation import Severity
from adlaunch.validation.funding import FundingValidator, has_funding

from conftest import AD_ACCOUNT, funding_body, graph_error


def critical_codes(check):
    return [e.code for e in check.errors if e.severity is Severity.CRITICAL]


def validator(graph):
    return FundingValidator(graph.factory, low_headroom_threshold=1000)


class TestFundable:
    @pytest.mark.asyncio
    async def test_active_funded_account(self, graph):
        graph.on("GET", AD_ACCOUNT, funding_body())

        check = await validator(graph).validate("tok", AD_ACCOUNT, True)

        assert check.has_funding is True
        assert check.account_active is True
        assert check.can_create_campaign is True
        assert check.account_status == 1
        assert check.errors == []

    @pytest.mark.asyncio
    async def test_prefix_is_normalized(self, graph):
        graph.on("GET", AD_ACCOUNT, funding_body())

        await validator(graph).validate("tok", "123", True)
        await validator(graph).validate("tok", "act_123", True)

        assert graph.paths() == [AD_ACCOUNT, AD_ACCOUNT]

    @pytest.mark.asyncio
    async def test_bearer_token_is_sent(self, graph):
        graph.on("GET", AD_ACCOUNT, funding_body())
        await validator(graph).validate("secret-token", AD_ACCOUNT, True)
        assert graph.calls[0].headers["Authorization"] == "Bearer secret-token"


class TestFlipOneCause:
    """Each cause alone turns has_funding off with exactly one new CRITICAL."""

    @pytest.mark.asyncio
    async def test_no_payment_method(self, graph):
        graph.on("GET", AD_ACCOUNT, funding_body())
        check = await validator(graph).validate("tok", AD_ACCOUNT, False)

        assert check.has_funding is False
        assert critical_codes(check) == ["NO_PAYMENT_METHOD"]
        # account is still inspected
        assert check.account_active is True

    @pytest.mark.asyncio
    async def test_inactive_account(self, graph):
        graph.on("GET", AD_ACCOUNT, funding_body(account_status=3))
        check = await validator(graph).validate("tok", AD_ACCOUNT, True)

        assert check.has_funding is False
        assert critical_codes(check) == ["ACCOUNT_NOT_ACTIVE"]
        assert "UNSETTLED" in check.errors[0].message

    @pytest.mark.asyncio
    async def test_missing_capability(self, graph):
        graph.on("GET", AD_ACCOUNT, funding_body(capabilities=["HAS_AVAILABLE_PAYMENT_METHODS"]))
        check = await validator(graph).validate("tok", AD_ACCOUNT, True)

        assert check.has_funding is False
        assert critical_codes(check) == ["CANNOT_CREATE_CAMPAIGNS"]

    @pytest.mark.asyncio
    async def test_inactive_account_does_not_also_report_capability(self, graph):
        graph.on("GET", AD_ACCOUNT, funding_body(account_status=2, capabilities=[]))
        check = await validator(graph).validate("tok", AD_ACCOUNT, True)
        assert critical_codes(check) == ["ACCOUNT_NOT_ACTIVE"]

    @pytest.mark.asyncio
    async def test_unknown_status_code_is_named(self, graph):
        graph.on("GET", AD_ACCOUNT, funding_body(account_status="55"))
        check = await validator(graph).validate("tok", AD_ACCOUNT, True)
        assert check.errors[0].message == "Ad account status: UNKNOWN (55)"


class TestDisableReasonAndSpendCap:
    @pytest.mark.asyncio
    async def test_disable_reason_co_occurs(self, graph):
        graph.on("GET", AD_ACCOUNT, funding_body(account_status=2, disable_reason=1))
        check = await validator(graph).validate("tok", AD_ACCOUNT, True)
        assert critical_codes(check) == ["ACCOUNT_NOT_ACTIVE", "ACCOUNT_DISABLED"]

    @pytest.mark.asyncio
    async def test_zero_disable_reason_is_ignored(self, graph):
        graph.on("GET", AD_ACCOUNT, funding_body(disable_reason="0"))
        check = await validator(graph).validate("tok", AD_ACCOUNT, True)
        assert check.errors == []

    @pytest.mark.asyncio
    async def test_spend_cap_reached(self, graph):
        graph.on("GET", AD_ACCOUNT, funding_body(spend_cap="50000", amount_spent="50000"))
        check = await validator(graph).validate("tok", AD_ACCOUNT, True)

        assert critical_codes(check) == ["SPENDING_LIMIT_REACHED"]
        assert check.has_spending_limit is False
        # reaching the cap doesn't change has_funding
        assert check.has_funding is True

    @pytest.mark.asyncio
    async def test_spend_cap_low_is_a_warning(self, graph):
        graph.on("GET", AD_ACCOUNT, funding_body(spend_cap="50000", amount_spent="49500"))
        check = await validator(graph).validate("tok", AD_ACCOUNT, True)

        assert [(e.code, e.severity) for e in check.errors] == [
            ("SPENDING_LIMIT_LOW", Severity.WARNING)
        ]
        assert check.has_spending_limit is True

    @pytest.mark.asyncio
    async def test_headroom_at_threshold_is_fine(self, graph):
        graph.on("GET", AD_ACCOUNT, funding_body(spend_cap="50000", amount_spent="49000"))
        check = await validator(graph).validate("tok", AD_ACCOUNT, True)
        assert check.errors == []

    @pytest.mark.asyncio
    async def test_no_spend_cap_skips_cap_checks(self, graph):
        graph.on("GET", AD_ACCOUNT, funding_body(amount_spent="999999"))
        check = await validator(graph).validate("tok", AD_ACCOUNT, True)
        assert check.errors == []

    @pytest.mark.asyncio
    async def test_zero_spend_cap_means_uncapped(self, graph):
        graph.on("GET", AD_ACCOUNT, funding_body(spend_cap="0", amount_spent="12345"))
        check = await validator(graph).validate("tok", AD_ACCOUNT, True)

        assert check.errors == []
        assert check.has_spending_limit is True


class TestLookupFailures:
    @pytest.mark.asyncio
    async def test_http_error_becomes_single_error(self, graph):
        graph.on("GET", AD_ACCOUNT, graph_error("Invalid OAuth access token", status=401))
        check = await validator(graph).validate("tok", AD_ACCOUNT, True)

        assert [(e.code, e.severity) for e in check.errors] == [("ACCOUNT_INFO_FAILED", Severity.ERROR)]
        assert "Invalid OAuth access token" in check.errors[0].message
        assert check.lookup_failed is True
        assert check.has_funding is False

    @pytest.mark.asyncio
    async def test_timeout_is_reported_like_any_failure(self, graph):
        graph.on("GET", AD_ACCOUNT, httpx.ReadTimeout("timed out"))
        check = await validator(graph).validate("tok", AD_ACCOUNT, False)

        assert [e.code for e in check.errors] == ["NO_PAYMENT_METHOD", "ACCOUNT_INFO_FAILED"]
        assert check.lookup_failed is True

    @pytest.mark.asyncio
    async def test_malformed_payload(self, graph):
        graph.on("GET", AD_ACCOUNT, lambda request: httpx.Response(200, text="<html>oops</html>"))
        check = await validator(graph).validate("tok", AD_ACCOUNT, True)
        assert [e.code for e in check.errors] == ["ACCOUNT_INFO_FAILED"]


class TestHasFundingHelper:
    @pytest.mark.asyncio
    async def test_helper(self, graph):
        graph.on("GET", AD_ACCOUNT, funding_body())
        assert await has_funding("tok", AD_ACCOUNT, True, graph.factory) is True
        assert await has_funding("tok", AD_ACCOUNT, False, graph.factory) is False
