"""Connection monitor: periodic refresh of funding and admin flags.

Payment methods get removed and roles get revoked outside the app, so the
cached ``payment_connected`` / ``admin_connected`` flags are re-read from
Meta on a schedule.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable

from adlaunch.models.connection import AdvertiserConnection
from adlaunch.services.meta_graph_service import GRAPH_ERRORS, MetaGraphService
from adlaunch.services.record_store import RecordStore, get_store
from adlaunch.validation.admin_access import AdminAccessResolver

logger = logging.getLogger(__name__)

GraphFactory = Callable[[str], MetaGraphService]


class ConnectionMonitor:
    def __init__(
        self,
        store: RecordStore | None = None,
        graph_factory: GraphFactory = MetaGraphService,
        admin_resolver: AdminAccessResolver | None = None,
    ) -> None:
        self.store = store or get_store()
        self.graph_factory = graph_factory
        self.admin_resolver = admin_resolver or AdminAccessResolver(graph_factory)

    async def reverify_all(self, now: datetime | None = None) -> dict[str, Any]:
        now = now or datetime.utcnow()
        checked = 0
        changed = 0
        skipped = 0

        for connection in await self.store.list_connections():
            if not (connection.selected_ad_account_id and connection.publish_token):
                skipped += 1
                continue
            updated = await self.reverify(connection, now)
            checked += 1
            if updated != connection:
                changed += 1
            await self.store.save_connection(updated)

        logger.info(
            "Connection sweep: %d checked, %d changed, %d skipped", checked, changed, skipped
        )
        return {"checked": checked, "changed": changed, "skipped": skipped}

    async def reverify(
        self, connection: AdvertiserConnection, now: datetime | None = None
    ) -> AdvertiserConnection:
        """Re-read funding and admin state for one connection; keep old values on failure."""
        now = now or datetime.utcnow()
        updated = connection

        try:
            account = await self.graph_factory(connection.publish_token or "").get_ad_account(
                connection.selected_ad_account_id or "", ("funding_source",)
            )
            updated = updated.model_copy(
                update={"payment_connected": bool(account.get("funding_source"))}
            )
        except GRAPH_ERRORS as e:
            logger.warning(
                "Funding refresh failed for campaign %s: %s", connection.campaign_id, e
            )

        if updated.user_app_token and updated.selected_business_id:
            result, verified = await self.admin_resolver.verify_connection(updated, now)
            if result.errors:
                logger.info(
                    "Admin re-verification for campaign %s reported %s",
                    connection.campaign_id, [e.code for e in result.errors],
                )
            updated = verified

        return updated.model_copy(update={"status": updated.derive_status()})
