"""Admin access resolver: does the connected user hold admin/finance roles?

Meta has no single members-with-roles endpoint that works for every kind of
business, so organization members are looked up through an ordered chain of
edges and the first non-empty answer wins. Ad-account members come back with
task lists instead of role strings; ACCOUNT_ADMIN or MANAGE counts as ADMIN.

Decision rule (asymmetric on purpose):
    ad_ok  = ad-account role contains ADMIN / FINANCE_EDITOR / FINANCE
    biz_ok = True when the business role is unknown, else the same match
    admin_connected = ad_ok and biz_ok
An unknown business role is tolerated; a known non-admin business role is not.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from adlaunch.models.connection import AdvertiserConnection
from adlaunch.models.validation import AdminAccessResult, AdminSnapshot, ValidationError, error
from adlaunch.services.meta_graph_service import (
    GRAPH_ERRORS,
    MetaGraphService,
    act_id,
)

logger = logging.getLogger(__name__)

ADMIN_TASKS = ("ACCOUNT_ADMIN", "MANAGE")
AD_ACCOUNT_DETAIL_FIELDS = (
    "account_status",
    "disable_reason",
    "capabilities",
    "funding_source",
    "funding_source_details",
    "business",
    "owner",
    "currency",
)

GraphFactory = Callable[[str], MetaGraphService]


def has_admin_or_finance(role: str | None) -> bool:
    if not role:
        return False
    r = role.upper()
    return "ADMIN" in r or "FINANCE_EDITOR" in r or "FINANCE" in r


def decide_admin(business_role: str | None, ad_account_role: str | None) -> bool:
    ad_ok = has_admin_or_finance(ad_account_role)
    biz_ok = True if business_role is None else has_admin_or_finance(business_role)
    return ad_ok and biz_ok


# ---------------------------------------------------------------------------
# Business member lookup chain
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class BusinessEdgeStrategy:
    """One way of listing a business's members with their roles."""

    edge: str
    fields: str = "id,role"

    async def fetch(self, graph: MetaGraphService, business_id: str) -> list[dict[str, Any]]:
        return await graph.list_edge(business_id, self.edge, self.fields)


BUSINESS_MEMBER_STRATEGIES: tuple[BusinessEdgeStrategy, ...] = (
    BusinessEdgeStrategy("users"),
    BusinessEdgeStrategy("people"),
    BusinessEdgeStrategy("assigned_users"),
    BusinessEdgeStrategy("business_users"),
)


async def fetch_business_members(
    graph: MetaGraphService,
    business_id: str,
    strategies: tuple[BusinessEdgeStrategy, ...] = BUSINESS_MEMBER_STRATEGIES,
) -> list[dict[str, Any]]:
    """Try each edge in order; return the first non-empty member list."""
    for strategy in strategies:
        try:
            members = await strategy.fetch(graph, business_id)
        except GRAPH_ERRORS as e:
            # Expected for many business types
            logger.debug("Business edge '%s' unavailable for %s: %s", strategy.edge, business_id, e)
            continue
        logger.debug("Business edge '%s' returned %d members", strategy.edge, len(members))
        if members:
            return members

    logger.debug("No business edge returned members for %s", business_id)
    return []


async def fetch_ad_account_members(
    graph: MetaGraphService, ad_account_id: str
) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
    """Return (members mapped to {id, role}, raw members with tasks).

    Only members holding an admin-equivalent task get a role; the rest are
    left out of the mapped list.
    """
    raw = await graph.list_edge(act_id(ad_account_id), "users", "id,tasks")
    mapped: list[dict[str, Any]] = []
    for member in raw:
        tasks = member.get("tasks") or []
        if member.get("id") and any(t in ADMIN_TASKS for t in tasks):
            mapped.append({"id": member["id"], "role": "ADMIN"})
    return mapped, raw


async def _ad_account_members_or_error(
    graph: MetaGraphService, ad_account_id: str
) -> tuple[list[dict[str, Any]], list[dict[str, Any]], str | None]:
    try:
        mapped, raw = await fetch_ad_account_members(graph, ad_account_id)
    except GRAPH_ERRORS as e:
        logger.warning("Admin check: ad account members lookup failed: %s", e)
        return [], [], str(e) or e.__class__.__name__
    return mapped, raw, None


def _role_of(members: list[dict[str, Any]], user_id: str) -> str | None:
    for member in members:
        if member.get("id") == user_id:
            role = member.get("role")
            return role if isinstance(role, str) and role else None
    return None


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------
class AdminAccessResolver:
    """Resolves business/ad-account roles for the token's user."""

    def __init__(self, graph_factory: GraphFactory = MetaGraphService) -> None:
        self.graph_factory = graph_factory

    async def verify_admin_access(
        self, token: str, business_id: str, ad_account_id: str
    ) -> AdminAccessResult:
        snapshot = await self._resolve(token, business_id, ad_account_id, with_detail=False)
        return AdminAccessResult(
            **snapshot.model_dump(
                include={
                    "admin_connected",
                    "business_role",
                    "ad_account_role",
                    "fb_user_id",
                    "business_users",
                    "ad_account_users",
                    "errors",
                }
            )
        )

    async def snapshot(self, token: str, business_id: str, ad_account_id: str) -> AdminSnapshot:
        """Same decision as verify_admin_access, plus raw payloads for audit."""
        return await self._resolve(token, business_id, ad_account_id, with_detail=True)

    async def _resolve(
        self,
        token: str,
        business_id: str,
        ad_account_id: str,
        with_detail: bool,
    ) -> AdminSnapshot:
        graph = self.graph_factory(token)
        errors: list[ValidationError] = []

        try:
            fb_user_id = await graph.fetch_user_id()
        except GRAPH_ERRORS as e:
            logger.warning("Admin check: user id lookup failed: %s", e)
            fb_user_id = None
        if not fb_user_id:
            errors.append(error(
                "USER_ID_UNRESOLVED",
                "Could not identify the Meta user behind this connection",
                suggested_fix="Reconnect with Facebook and try again",
            ))
            return AdminSnapshot(errors=errors)

        ad_account_raw: dict[str, Any] | None = None

        # Independent reads
        business_users, (ad_account_users, ad_account_raw_users, ad_error) = await asyncio.gather(
            fetch_business_members(graph, business_id),
            _ad_account_members_or_error(graph, ad_account_id),
        )
        if ad_error:
            errors.append(error(
                "AD_ACCOUNT_USERS_FAILED",
                f"Could not read ad account members: {ad_error}",
                suggested_fix="Check that the ad account is shared with your user",
            ))

        if with_detail:
            try:
                ad_account_raw = await graph.get_ad_account(ad_account_id, AD_ACCOUNT_DETAIL_FIELDS)
            except GRAPH_ERRORS as e:
                logger.debug("Admin snapshot: ad account detail unavailable: %s", e)

        business_role = _role_of(business_users, fb_user_id)
        ad_account_role = _role_of(ad_account_users, fb_user_id)
        admin_connected = decide_admin(business_role, ad_account_role)

        logger.info(
            "Admin check user=%s business_role=%s ad_account_role=%s -> admin_connected=%s",
            fb_user_id, business_role, ad_account_role, admin_connected,
        )

        return AdminSnapshot(
            admin_connected=admin_connected,
            business_role=business_role,
            ad_account_role=ad_account_role,
            fb_user_id=fb_user_id,
            business_users=business_users,
            ad_account_users=ad_account_users,
            errors=errors,
            ad_account_users_raw=ad_account_raw_users,
            ad_account_raw=ad_account_raw,
        )

    # ── Connection-level entry points ────────────────────────────

    async def verify_connection(
        self, connection: AdvertiserConnection, now: datetime | None = None
    ) -> tuple[AdminAccessResult, AdvertiserConnection]:
        """Verify using the user app token and return the refreshed connection."""
        now = now or datetime.utcnow()
        problems = _connection_problems(connection, now, require_user_token=True)
        if problems:
            return AdminAccessResult(errors=problems), connection

        result = await self.verify_admin_access(
            connection.user_app_token or "",
            connection.selected_business_id or "",
            connection.selected_ad_account_id or "",
        )
        return result, _apply(connection, result, now)

    async def snapshot_connection(
        self, connection: AdvertiserConnection, now: datetime | None = None
    ) -> tuple[AdminSnapshot, AdvertiserConnection]:
        now = now or datetime.utcnow()
        problems = _connection_problems(connection, now, require_user_token=False)
        if problems:
            return AdminSnapshot(errors=problems), connection

        result = await self.snapshot(
            connection.role_token or "",
            connection.selected_business_id or "",
            connection.selected_ad_account_id or "",
        )
        return result, _apply(connection, result, now)


def _connection_problems(
    connection: AdvertiserConnection, now: datetime, require_user_token: bool
) -> list[ValidationError]:
    token = connection.user_app_token if require_user_token else connection.role_token
    if not token:
        return [error(
            "ADMIN_TOKEN_MISSING",
            "User access token required for admin verification",
            suggested_fix='Complete "Login with Facebook (User Access)" first',
        )]
    expiry = connection.user_app_token_expires_at
    if require_user_token and expiry is not None and expiry <= now:
        return [error(
            "ADMIN_TOKEN_EXPIRED",
            "User access token has expired",
            suggested_fix='Reconnect via "Login with Facebook (User Access)"',
        )]
    if not connection.selected_business_id or not connection.selected_ad_account_id:
        return [error(
            "MISSING_ASSET_SELECTION",
            "Missing business or ad account selection",
            suggested_fix="Select a business and an ad account",
        )]
    return []


def _apply(
    connection: AdvertiserConnection, result: AdminAccessResult, now: datetime
) -> AdvertiserConnection:
    return connection.model_copy(update={
        "admin_connected": result.admin_connected,
        "admin_business_role": result.business_role,
        "admin_ad_account_role": result.ad_account_role,
        "admin_checked_at": now,
    })
