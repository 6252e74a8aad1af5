"""Meta Graph API client for ad-account, membership and ad endpoints.

Every instance is bound to a single access token. Reads used by the
readiness checks:
  - /act_{id}?fields=account_status,...   funding / capability state
  - /{business}/{edge}                    organization members (several edges)
  - /act_{id}/users?fields=id,tasks       ad-account members with tasks
  - /me?fields=id                          the token's own user id

Writes: create an ad under an ad account and change an ad's status.

Auth: ``Authorization: Bearer <token>`` header.
Base URL: https://graph.facebook.com/{version}
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from adlaunch.config import settings

logger = logging.getLogger(__name__)

ACCOUNT_STATUS_ACTIVE = 1

ACCOUNT_STATUS_NAMES: dict[int, str] = {
    1: "ACTIVE",
    2: "DISABLED",
    3: "UNSETTLED",
    7: "PENDING_RISK_REVIEW",
    8: "PENDING_SETTLEMENT",
    9: "IN_GRACE_PERIOD",
    100: "PENDING_CLOSURE",
    101: "CLOSED",
    201: "ANY_ACTIVE",
    202: "ANY_CLOSED",
}

FUNDING_FIELDS = ("account_status", "disable_reason", "spend_cap", "amount_spent", "capabilities")


class MetaGraphError(Exception):
    """Non-2xx or malformed response from the Graph API."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        payload: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload or {}


# Anything a Graph call can fail with: HTTP status, transport, timeout.
GRAPH_ERRORS = (MetaGraphError, httpx.HTTPError)


def normalize_ad_account_id(ad_account_id: str) -> str:
    """Strip the ``act_`` prefix: ``act_123`` and ``123`` both give ``123``."""
    value = (ad_account_id or "").strip()
    return value[4:] if value.startswith("act_") else value


def act_id(ad_account_id: str) -> str:
    return f"act_{normalize_ad_account_id(ad_account_id)}"


def account_status_name(status: int | None) -> str:
    if status is None:
        return "UNKNOWN"
    return ACCOUNT_STATUS_NAMES.get(status, f"UNKNOWN ({status})")


def _to_number(value: Any) -> float | None:
    # spend_cap / amount_spent arrive as numeric strings in minor units
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class MetaGraphService:
    """Thin async wrapper over the Graph endpoints the readiness checks use."""

    def __init__(
        self,
        token: str,
        *,
        timeout: float | None = None,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.token = token
        self.timeout = timeout if timeout is not None else settings.meta_graph_timeout_seconds
        self.base_url = base_url or settings.graph_url
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
        )

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        async with self._client() as client:
            resp = await client.request(
                method,
                f"/{path.lstrip('/')}",
                params=params,
                data=data,
                headers=self._headers(),
            )

        if resp.is_error:
            payload: dict[str, Any] = {}
            try:
                body = resp.json()
                if isinstance(body, dict):
                    payload = body.get("error", body)
            except ValueError:
                pass
            detail = payload.get("message") if payload else resp.text[:300]
            raise MetaGraphError(
                f"Graph error {resp.status_code}: {detail}",
                status_code=resp.status_code,
                payload=payload,
            )

        try:
            body = resp.json()
        except ValueError as e:
            raise MetaGraphError(f"Malformed Graph response for {path}", resp.status_code) from e
        if not isinstance(body, dict):
            raise MetaGraphError(f"Unexpected Graph payload for {path}", resp.status_code)
        return body

    # ── Identity ─────────────────────────────────────────────────

    async def fetch_user_id(self) -> str | None:
        """Return the platform user id behind the token, or None if it can't be resolved."""
        try:
            data = await self._request("GET", "me", params={"fields": "id"})
        except MetaGraphError as e:
            logger.debug("fetch_user_id failed: %s", e)
            return None
        user_id = data.get("id")
        return user_id if isinstance(user_id, str) and user_id else None

    # ── Ad accounts ──────────────────────────────────────────────

    async def get_ad_account(
        self, ad_account_id: str, fields: tuple[str, ...] | list[str]
    ) -> dict[str, Any]:
        return await self._request(
            "GET", act_id(ad_account_id), params={"fields": ",".join(fields)}
        )

    async def fetch_account_funding_info(self, ad_account_id: str) -> dict[str, Any]:
        """Account status, disable reason, spend cap/spent and capabilities.

        Numbers are coerced from the platform's string encoding; missing
        capabilities become an empty list.
        """
        data = await self.get_ad_account(ad_account_id, FUNDING_FIELDS)
        status = data.get("account_status")
        try:
            status = int(status) if status is not None else None
        except (TypeError, ValueError):
            raise MetaGraphError(f"Unexpected account_status {status!r}") from None

        capabilities = data.get("capabilities") or []
        if not isinstance(capabilities, list):
            capabilities = []

        disable_reason = data.get("disable_reason")
        # Meta reports 0 for "no reason"
        if disable_reason in (0, "0", "", None):
            disable_reason = None

        spend_cap = _to_number(data.get("spend_cap"))
        # Meta reports 0 for "no cap"
        if spend_cap is not None and spend_cap <= 0:
            spend_cap = None

        return {
            "account_status": status,
            "disable_reason": disable_reason,
            "spend_cap": spend_cap,
            "amount_spent": _to_number(data.get("amount_spent")) or 0.0,
            "capabilities": [str(c) for c in capabilities],
        }

    # ── Edges ────────────────────────────────────────────────────

    async def list_edge(
        self,
        node_id: str,
        edge: str,
        fields: str,
        extra_params: dict[str, Any] | None = None,
        limit: int = 500,
    ) -> list[dict[str, Any]]:
        """GET /{node}/{edge} and return the ``data`` array (first page)."""
        params: dict[str, Any] = {"fields": fields, "limit": limit}
        if extra_params:
            params.update(extra_params)
        data = await self._request("GET", f"{node_id}/{edge}", params=params)
        rows = data.get("data", [])
        if not isinstance(rows, list):
            return []
        return [r for r in rows if isinstance(r, dict)]

    # ── Ads ──────────────────────────────────────────────────────

    async def create_ad(self, ad_account_id: str, payload: dict[str, Any]) -> str:
        data = await self._request(
            "POST", f"{act_id(ad_account_id)}/ads", data=_form_encode(payload)
        )
        ad_id = data.get("id")
        if not ad_id:
            raise MetaGraphError("Graph create_ad returned no id", payload=data)
        logger.info("Created Meta ad %s under %s", ad_id, act_id(ad_account_id))
        return str(ad_id)

    async def update_ad(self, platform_ad_id: str, payload: dict[str, Any]) -> None:
        await self._request("POST", platform_ad_id, data=_form_encode(payload))

    async def update_ad_status(self, platform_ad_id: str, status: str) -> None:
        """Set the platform-side status: ACTIVE, PAUSED, ARCHIVED or DELETED."""
        await self.update_ad(platform_ad_id, {"status": status})
        logger.info("Meta ad %s status -> %s", platform_ad_id, status)

    async def find_ads_by_name(self, ad_account_id: str, fragment: str) -> list[dict[str, Any]]:
        filtering = [{"field": "name", "operator": "CONTAIN", "value": fragment}]
        return await self.list_edge(
            act_id(ad_account_id),
            "ads",
            fields="id,name,effective_status",
            extra_params={"filtering": json.dumps(filtering)},
            limit=25,
        )


def _form_encode(payload: dict[str, Any]) -> dict[str, str]:
    """Graph POSTs take form fields; nested values go in as JSON strings."""
    encoded: dict[str, str] = {}
    for key, value in payload.items():
        if value is None:
            continue
        if isinstance(value, (dict, list)):
            encoded[key] = json.dumps(value)
        else:
            encoded[key] = str(value)
    return encoded
