"""Payment capability: can this user add or manage payment for the ad account?

Looks at three things independently and degrades each to null/False when
the platform won't say:
  - business role + finance_permission  (business_users?user=<id>)
  - ad-account tasks for the user       (assigned_users, MANAGE)
  - funding presence on the ad account  (funding_source)
"""

from __future__ import annotations

import logging
from typing import Any, Callable
from urllib.parse import quote

from adlaunch.models.validation import PaymentCapability
from adlaunch.services.meta_graph_service import GRAPH_ERRORS, MetaGraphService, act_id

logger = logging.getLogger(__name__)

GraphFactory = Callable[[str], MetaGraphService]


def has_finance_from(role: str | None, finance_permission: str | None) -> bool:
    return (role or "").upper() == "ADMIN" or (finance_permission or "").upper() == "FINANCE_EDITOR"


def includes_manage(tasks: Any) -> bool:
    return isinstance(tasks, list) and any(
        isinstance(t, str) and t.upper() == "MANAGE" for t in tasks
    )


class PaymentCapabilityResolver:
    def __init__(self, graph_factory: GraphFactory = MetaGraphService) -> None:
        self.graph_factory = graph_factory

    async def resolve(
        self, token: str, business_id: str, ad_account_id: str
    ) -> PaymentCapability:
        graph = self.graph_factory(token)
        capability = PaymentCapability(business_id=business_id, ad_account_id=ad_account_id)

        try:
            user_id = await graph.fetch_user_id()
        except GRAPH_ERRORS as e:
            logger.warning("Payment capability: user id lookup failed: %s", e)
            user_id = None

        if user_id:
            try:
                rows = await graph.list_edge(
                    business_id,
                    "business_users",
                    "role,finance_permission",
                    extra_params={"user": user_id},
                )
                row = rows[0] if rows else {}
                role = row.get("role")
                permission = row.get("finance_permission")
                capability.role = role if isinstance(role, str) else None
                capability.finance_permission = permission if isinstance(permission, str) else None
            except GRAPH_ERRORS as e:
                logger.debug("Payment capability: business role unavailable: %s", e)

            try:
                rows = await graph.list_edge(
                    act_id(ad_account_id),
                    "assigned_users",
                    "user{id},tasks",
                    extra_params={"business": business_id},
                    limit=5000,
                )
                me = next(
                    (r for r in rows if (r.get("user") or {}).get("id") == user_id), None
                )
                capability.has_manage = includes_manage((me or {}).get("tasks"))
            except GRAPH_ERRORS as e:
                logger.debug("Payment capability: ad account tasks unavailable: %s", e)

        try:
            account = await graph.get_ad_account(ad_account_id, ("funding_source",))
            capability.has_funding = bool(account.get("funding_source"))
        except GRAPH_ERRORS as e:
            logger.debug("Payment capability: funding source unavailable: %s", e)

        capability.has_finance = has_finance_from(capability.role, capability.finance_permission)
        return capability


def business_billing_url(business_id: str) -> str:
    return (
        "https://business.facebook.com/settings/payment-methods"
        f"?business_id={quote(business_id, safe='')}"
    )


def ad_account_billing_url(ad_account_id: str) -> str:
    return (
        "https://www.facebook.com/ads/manager/account_settings/account_billing/"
        f"?act={quote(act_id(ad_account_id), safe='')}"
    )
