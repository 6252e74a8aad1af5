"""Record stores for ads, campaign setup state and advertiser connections.

Two backends share one interface:
  - InMemoryRecordStore: dicts behind an asyncio.Lock (dev/testing)
  - SqlRecordStore: SQLAlchemy async, JSON ``data`` column per row

The only write that has to be conditional is the ad status change used by
publishing: ``compare_and_set_ad`` succeeds only if the stored status still
equals the caller's expected status.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from adlaunch.config import settings
from adlaunch.models.ad import AdRow, AdStatus, Advertisement
from adlaunch.models.campaign import CampaignSetupState, CampaignStateRow
from adlaunch.models.connection import AdvertiserConnection, ConnectionRow

logger = logging.getLogger(__name__)


class RecordStore(ABC):
    # ── Ads ──
    @abstractmethod
    async def get_ad(self, ad_id: str) -> Advertisement | None: ...

    @abstractmethod
    async def save_ad(self, ad: Advertisement) -> Advertisement: ...

    @abstractmethod
    async def compare_and_set_ad(self, ad: Advertisement, expected_status: AdStatus) -> bool:
        """Write ``ad`` only if the stored status is still ``expected_status``."""

    @abstractmethod
    async def delete_ad(self, ad_id: str) -> bool: ...

    @abstractmethod
    async def list_ads(self, campaign_id: str) -> list[Advertisement]: ...

    # ── Campaign setup state ──
    @abstractmethod
    async def get_campaign_state(self, campaign_id: str) -> CampaignSetupState | None: ...

    @abstractmethod
    async def save_campaign_state(self, state: CampaignSetupState) -> CampaignSetupState: ...

    # ── Connections ──
    @abstractmethod
    async def get_connection(self, campaign_id: str) -> AdvertiserConnection | None: ...

    @abstractmethod
    async def save_connection(self, connection: AdvertiserConnection) -> AdvertiserConnection: ...

    @abstractmethod
    async def list_connections(self) -> list[AdvertiserConnection]: ...


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------
class InMemoryRecordStore(RecordStore):
    """Process-local store. Records are copied in and out so callers can't alias them."""

    def __init__(self) -> None:
        self._ads: dict[str, Advertisement] = {}
        self._states: dict[str, CampaignSetupState] = {}
        self._connections: dict[str, AdvertiserConnection] = {}
        self._lock = asyncio.Lock()

    async def get_ad(self, ad_id: str) -> Advertisement | None:
        ad = self._ads.get(ad_id)
        return ad.model_copy(deep=True) if ad else None

    async def save_ad(self, ad: Advertisement) -> Advertisement:
        async with self._lock:
            self._ads[ad.id] = ad.model_copy(deep=True)
        return ad

    async def compare_and_set_ad(self, ad: Advertisement, expected_status: AdStatus) -> bool:
        async with self._lock:
            current = self._ads.get(ad.id)
            if current is None or current.status != expected_status:
                return False
            self._ads[ad.id] = ad.model_copy(deep=True)
            return True

    async def delete_ad(self, ad_id: str) -> bool:
        async with self._lock:
            return self._ads.pop(ad_id, None) is not None

    async def list_ads(self, campaign_id: str) -> list[Advertisement]:
        return [
            ad.model_copy(deep=True)
            for ad in self._ads.values()
            if ad.campaign_id == campaign_id
        ]

    async def get_campaign_state(self, campaign_id: str) -> CampaignSetupState | None:
        state = self._states.get(campaign_id)
        return state.model_copy(deep=True) if state else None

    async def save_campaign_state(self, state: CampaignSetupState) -> CampaignSetupState:
        async with self._lock:
            self._states[state.campaign_id] = state.model_copy(deep=True)
        return state

    async def get_connection(self, campaign_id: str) -> AdvertiserConnection | None:
        connection = self._connections.get(campaign_id)
        return connection.model_copy(deep=True) if connection else None

    async def save_connection(self, connection: AdvertiserConnection) -> AdvertiserConnection:
        async with self._lock:
            self._connections[connection.campaign_id] = connection.model_copy(deep=True)
        return connection

    async def list_connections(self) -> list[AdvertiserConnection]:
        return [c.model_copy(deep=True) for c in self._connections.values()]


# ---------------------------------------------------------------------------
# SQL
# ---------------------------------------------------------------------------
def _ad_from_row(row: AdRow) -> Advertisement:
    data = dict(row.data or {})
    # The status column is authoritative; it's the one compare-and-set writes.
    data["status"] = row.status
    return Advertisement.model_validate(data)


class SqlRecordStore(RecordStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def get_ad(self, ad_id: str) -> Advertisement | None:
        async with self.session_factory() as session:
            row = await session.get(AdRow, ad_id)
            return _ad_from_row(row) if row else None

    async def save_ad(self, ad: Advertisement) -> Advertisement:
        async with self.session_factory() as session:
            row = await session.get(AdRow, ad.id)
            if row is None:
                row = AdRow(id=ad.id, campaign_id=ad.campaign_id)
                session.add(row)
            row.status = ad.status.value
            row.data = ad.model_dump(mode="json")
            row.updated_at = datetime.utcnow()
            await session.commit()
        return ad

    async def compare_and_set_ad(self, ad: Advertisement, expected_status: AdStatus) -> bool:
        async with self.session_factory() as session:
            result = await session.execute(
                update(AdRow)
                .where(AdRow.id == ad.id, AdRow.status == expected_status.value)
                .values(
                    status=ad.status.value,
                    data=ad.model_dump(mode="json"),
                    updated_at=datetime.utcnow(),
                )
            )
            await session.commit()
        swapped = result.rowcount == 1
        if not swapped:
            logger.info("Ad %s: status no longer %s, write skipped", ad.id, expected_status.value)
        return swapped

    async def delete_ad(self, ad_id: str) -> bool:
        async with self.session_factory() as session:
            result = await session.execute(delete(AdRow).where(AdRow.id == ad_id))
            await session.commit()
        return result.rowcount > 0

    async def list_ads(self, campaign_id: str) -> list[Advertisement]:
        async with self.session_factory() as session:
            rows = (
                await session.execute(select(AdRow).where(AdRow.campaign_id == campaign_id))
            ).scalars().all()
        return [_ad_from_row(r) for r in rows]

    async def get_campaign_state(self, campaign_id: str) -> CampaignSetupState | None:
        async with self.session_factory() as session:
            row = await session.get(CampaignStateRow, campaign_id)
            if row is None:
                return None
            return CampaignSetupState.model_validate({**(row.data or {}), "campaign_id": campaign_id})

    async def save_campaign_state(self, state: CampaignSetupState) -> CampaignSetupState:
        async with self.session_factory() as session:
            row = await session.get(CampaignStateRow, state.campaign_id)
            if row is None:
                row = CampaignStateRow(campaign_id=state.campaign_id)
                session.add(row)
            row.data = state.model_dump(mode="json")
            row.updated_at = datetime.utcnow()
            await session.commit()
        return state

    async def get_connection(self, campaign_id: str) -> AdvertiserConnection | None:
        async with self.session_factory() as session:
            row = await session.get(ConnectionRow, campaign_id)
            if row is None:
                return None
            return AdvertiserConnection.model_validate({**(row.data or {}), "campaign_id": campaign_id})

    async def save_connection(self, connection: AdvertiserConnection) -> AdvertiserConnection:
        async with self.session_factory() as session:
            row = await session.get(ConnectionRow, connection.campaign_id)
            if row is None:
                row = ConnectionRow(campaign_id=connection.campaign_id)
                session.add(row)
            row.data = connection.model_dump(mode="json")
            row.updated_at = datetime.utcnow()
            await session.commit()
        return connection

    async def list_connections(self) -> list[AdvertiserConnection]:
        async with self.session_factory() as session:
            rows = (await session.execute(select(ConnectionRow))).scalars().all()
        return [
            AdvertiserConnection.model_validate({**(r.data or {}), "campaign_id": r.campaign_id})
            for r in rows
        ]


# ---------------------------------------------------------------------------
# Process-wide store
# ---------------------------------------------------------------------------
_store: RecordStore | None = None


def get_store() -> RecordStore:
    """Return the configured store, creating it on first use."""
    global _store
    if _store is None:
        if settings.record_store_backend == "sql":
            from adlaunch.services.database import DatabaseService

            _store = SqlRecordStore(DatabaseService.sessionmaker())
        else:
            _store = InMemoryRecordStore()
        logger.info("Record store: %s", _store.__class__.__name__)
    return _store


def set_store(store: RecordStore | None) -> None:
    global _store
    _store = store
