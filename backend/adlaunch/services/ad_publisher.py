"""Ad publishers: the single external write the publish flow makes.

``MetaAdPublisher`` creates (or, for a resubmission, updates) the ad through
the Graph API. ``SimulatedAdPublisher`` is the development/test path: it
never touches the network and the gate moves the ad straight to active.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable

from adlaunch.models.ad import Advertisement
from adlaunch.models.campaign import CampaignSetupState
from adlaunch.models.connection import AdvertiserConnection
from adlaunch.services.meta_graph_service import MetaGraphError, MetaGraphService

logger = logging.getLogger(__name__)

GraphFactory = Callable[[str], MetaGraphService]

GOAL_CTA = {
    "leads": "SIGN_UP",
    "website-visits": "LEARN_MORE",
    "calls": "CALL_NOW",
}


def build_ad_payload(
    ad: Advertisement,
    state: CampaignSetupState | None,
    connection: AdvertiserConnection,
) -> dict[str, Any]:
    """Minimal creative/copy mapping for the platform call.

    Ad set, targeting and bidding are assembled by the campaign CRUD layer;
    this only carries what the readiness checks already validated.
    """
    copy = state.selected_copy(ad.selected_copy_index) if state else None
    image = state.selected_image(ad.selected_creative_index) if state else None
    goal = state.goal.selected_goal if state and state.goal else None

    link_data: dict[str, Any] = {
        "message": copy.primary_text if copy else "",
        "name": copy.headline if copy else "",
        "picture": image,
    }
    if ad.website_url:
        link_data["link"] = ad.website_url
    if copy and copy.description:
        link_data["description"] = copy.description
    cta = (copy.cta if copy and copy.cta else None) or GOAL_CTA.get(goal or "")
    if cta:
        link_data["call_to_action"] = {"type": cta}

    return {
        "name": ad.reference_name,
        "status": "ACTIVE",
        "creative": {
            "object_story_spec": {
                "page_id": connection.selected_page_id,
                "link_data": link_data,
            }
        },
    }


class AdPublisher(ABC):
    #: When True the gate skips review and marks the ad active on success.
    simulated: bool = False

    @abstractmethod
    async def publish(
        self,
        ad: Advertisement,
        state: CampaignSetupState | None,
        connection: AdvertiserConnection,
    ) -> str:
        """Submit the ad and return its platform id. Raises GRAPH_ERRORS on failure."""

    @abstractmethod
    async def find(self, ad: Advertisement, connection: AdvertiserConnection) -> str | None:
        """Look the ad up on the platform by its reference name."""

    @abstractmethod
    async def set_status(
        self, ad: Advertisement, connection: AdvertiserConnection, platform_status: str
    ) -> None: ...


class MetaAdPublisher(AdPublisher):
    def __init__(self, graph_factory: GraphFactory = MetaGraphService) -> None:
        self.graph_factory = graph_factory

    def _graph(self, connection: AdvertiserConnection) -> MetaGraphService:
        if not connection.publish_token:
            raise MetaGraphError("No access token on the connection")
        return self.graph_factory(connection.publish_token)

    async def publish(
        self,
        ad: Advertisement,
        state: CampaignSetupState | None,
        connection: AdvertiserConnection,
    ) -> str:
        graph = self._graph(connection)
        payload = build_ad_payload(ad, state, connection)

        # A rejected/failed ad that already exists on the platform is resubmitted in place.
        if ad.platform_ad_id:
            await graph.update_ad(ad.platform_ad_id, payload)
            logger.info("Resubmitted Meta ad %s for ad %s", ad.platform_ad_id, ad.id)
            return ad.platform_ad_id

        return await graph.create_ad(connection.selected_ad_account_id or "", payload)

    async def find(self, ad: Advertisement, connection: AdvertiserConnection) -> str | None:
        graph = self._graph(connection)
        marker = f"[adlaunch:{ad.id}]"
        matches = await graph.find_ads_by_name(connection.selected_ad_account_id or "", marker)
        for match in matches:
            if marker in str(match.get("name", "")) and match.get("id"):
                return str(match["id"])
        return None

    async def set_status(
        self, ad: Advertisement, connection: AdvertiserConnection, platform_status: str
    ) -> None:
        if not ad.platform_ad_id:
            return
        await self._graph(connection).update_ad_status(ad.platform_ad_id, platform_status)


class SimulatedAdPublisher(AdPublisher):
    simulated = True

    async def publish(
        self,
        ad: Advertisement,
        state: CampaignSetupState | None,
        connection: AdvertiserConnection,
    ) -> str:
        platform_id = ad.platform_ad_id or f"sim_{ad.id}"
        logger.info("Simulated publish of ad %s as %s", ad.id, platform_id)
        return platform_id

    async def find(self, ad: Advertisement, connection: AdvertiserConnection) -> str | None:
        return ad.platform_ad_id

    async def set_status(
        self, ad: Advertisement, connection: AdvertiserConnection, platform_status: str
    ) -> None:
        logger.info("Simulated status %s for ad %s", platform_status, ad.id)
