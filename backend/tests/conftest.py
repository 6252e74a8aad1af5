"""Shared builders and fakes for the test suite.

Graph API traffic is served by ``FakeGraph`` through ``httpx.MockTransport``;
nothing here touches the network.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Callable

import httpx
import pytest

from adlaunch.models.ad import Advertisement
from adlaunch.models.campaign import (
    AdCopySection,
    BudgetSection,
    CampaignSetupState,
    CopyVariation,
    CreativeSection,
    GoalSection,
    LocationSection,
    TargetLocation,
)
from adlaunch.models.connection import AdvertiserConnection
from adlaunch.services.ad_publisher import AdPublisher
from adlaunch.services.meta_graph_service import MetaGraphError, MetaGraphService
from adlaunch.services.record_store import InMemoryRecordStore

GRAPH_BASE = "https://graph.test/v24.0"
AD_ACCOUNT = "act_123"
BUSINESS = "biz_1"
USER_ID = "u_1"

Route = Any  # dict body | (status, body) | Exception | Callable[[httpx.Request], httpx.Response]


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------
def complete_state(campaign_id: str = "camp_1", **overrides: Any) -> CampaignSetupState:
    sections: dict[str, Any] = {
        "goal": GoalSection(selected_goal="leads"),
        "location": LocationSection(locations=[TargetLocation(name="Austin, TX")]),
        "budget": BudgetSection(daily_budget=20, currency="USD"),
        "ad_copy": AdCopySection(variations=[
            CopyVariation(headline="Fresh hair, all day", primary_text="Try it for 30 days."),
        ]),
        "creative": CreativeSection(image_variations=["https://cdn.example.com/a.png"]),
    }
    sections.update(overrides)
    return CampaignSetupState(campaign_id=campaign_id, **sections)


def make_connection(campaign_id: str = "camp_1", **overrides: Any) -> AdvertiserConnection:
    fields: dict[str, Any] = {
        "campaign_id": campaign_id,
        "user_app_token": "user-token",
        "user_app_token_expires_at": datetime.utcnow() + timedelta(days=30),
        "long_lived_user_token": "long-token",
        "long_lived_token_expires_at": datetime.utcnow() + timedelta(days=60),
        "selected_business_id": BUSINESS,
        "selected_ad_account_id": AD_ACCOUNT,
        "selected_page_id": "page_1",
        "payment_connected": True,
    }
    fields.update(overrides)
    return AdvertiserConnection(**fields)


def make_ad(campaign_id: str = "camp_1", **overrides: Any) -> Advertisement:
    fields: dict[str, Any] = {"campaign_id": campaign_id, "name": "Spring promo"}
    fields.update(overrides)
    return Advertisement(**fields)


def funding_body(**overrides: Any) -> dict[str, Any]:
    body: dict[str, Any] = {
        "id": AD_ACCOUNT,
        "account_status": 1,
        "disable_reason": 0,
        "capabilities": ["CAN_CREATE_AD_CAMPAIGNS"],
    }
    body.update(overrides)
    return body


# ---------------------------------------------------------------------------
# Graph API fake
# ---------------------------------------------------------------------------
class FakeGraph:
    """Routes Graph requests by (method, path) to canned responses."""

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], Route] = {}
        self.calls: list[httpx.Request] = []

    def on(self, method: str, path: str, route: Route) -> "FakeGraph":
        self.routes[(method.upper(), path.strip("/"))] = route
        return self

    def paths(self, method: str | None = None) -> list[str]:
        return [
            _relative(r.url.path)
            for r in self.calls
            if method is None or r.method == method.upper()
        ]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        key = (request.method, _relative(request.url.path))
        route = self.routes.get(key)
        if route is None:
            return httpx.Response(404, json={"error": {"message": f"no route {key}"}})
        if isinstance(route, Exception):
            raise route
        if callable(route):
            return route(request)
        if isinstance(route, tuple):
            status, body = route
            return httpx.Response(status, json=body)
        return httpx.Response(200, json=route)

    def factory(self, token: str) -> MetaGraphService:
        return MetaGraphService(
            token, base_url=GRAPH_BASE, transport=httpx.MockTransport(self.handler)
        )


def _relative(path: str) -> str:
    prefix = httpx.URL(GRAPH_BASE).path
    return path[len(prefix):].strip("/") if path.startswith(prefix) else path.strip("/")


def graph_error(message: str = "Unsupported get request", status: int = 400) -> tuple[int, dict]:
    return status, {"error": {"message": message, "type": "GraphMethodException", "code": 100}}


# ---------------------------------------------------------------------------
# Publisher fake
# ---------------------------------------------------------------------------
class FakePublisher(AdPublisher):
    def __init__(
        self,
        platform_id: str = "meta_ad_1",
        fail_with: Exception | None = None,
        found: str | None = None,
        simulated: bool = False,
    ) -> None:
        self.platform_id = platform_id
        self.fail_with = fail_with
        self.found = found
        self.simulated = simulated
        self.publish_calls: list[str] = []
        self.status_calls: list[tuple[str, str]] = []
        self.find_error: Exception | None = None
        self.status_error: Exception | None = None
        self.on_publish: Callable[[], Any] | None = None

    async def publish(self, ad, state, connection) -> str:
        self.publish_calls.append(ad.id)
        if self.on_publish is not None:
            await self.on_publish()
        if self.fail_with is not None:
            raise self.fail_with
        return self.platform_id

    async def find(self, ad, connection) -> str | None:
        if self.find_error is not None:
            raise self.find_error
        return self.found

    async def set_status(self, ad, connection, platform_status: str) -> None:
        if self.status_error is not None:
            raise self.status_error
        self.status_calls.append((ad.id, platform_status))


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def graph() -> FakeGraph:
    return FakeGraph()


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def publisher() -> FakePublisher:
    return FakePublisher()


@pytest.fixture
def platform_down() -> MetaGraphError:
    return MetaGraphError("Graph error 500: Service temporarily unavailable", status_code=500)


