"""Advertiser connection: tokens, selected platform assets, funding/admin flags."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel
from sqlalchemy import Column, String, DateTime, JSON

from adlaunch.models.campaign import Base


class ConnectionStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    SELECTED_ASSETS = "selected_assets"
    PAYMENT_LINKED = "payment_linked"


class ConnectionRow(Base):
    """campaign_meta_connections table (one per campaign)."""

    __tablename__ = "campaign_meta_connections"

    campaign_id = Column(String(64), primary_key=True)
    data = Column(JSON, nullable=False, default=dict)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class AdvertiserConnection(BaseModel):
    campaign_id: str

    # Tokens. The user app token is required for role checks; the long-lived
    # token is used for publishing and as a fallback elsewhere.
    user_app_token: Optional[str] = None
    user_app_token_expires_at: Optional[datetime] = None
    long_lived_user_token: Optional[str] = None
    long_lived_token_expires_at: Optional[datetime] = None

    selected_business_id: Optional[str] = None
    selected_business_name: Optional[str] = None
    selected_ad_account_id: Optional[str] = None
    selected_ad_account_name: Optional[str] = None
    selected_ad_account_currency: Optional[str] = None
    selected_page_id: Optional[str] = None
    selected_page_name: Optional[str] = None
    selected_ig_user_id: Optional[str] = None

    payment_connected: bool = False
    admin_connected: bool = False
    admin_business_role: Optional[str] = None
    admin_ad_account_role: Optional[str] = None
    admin_checked_at: Optional[datetime] = None

    status: ConnectionStatus = ConnectionStatus.DISCONNECTED

    model_config = {"from_attributes": True}

    @property
    def publish_token(self) -> str | None:
        return self.long_lived_user_token or self.user_app_token

    @property
    def role_token(self) -> str | None:
        return self.user_app_token or self.long_lived_user_token

    def token_expired(self, now: datetime | None = None) -> bool:
        """Whether the token used for publishing has passed its expiry."""
        now = now or datetime.utcnow()
        expiry = self.token_expires_at()
        return expiry is not None and expiry <= now

    def token_expires_at(self) -> datetime | None:
        if self.long_lived_user_token:
            return self.long_lived_token_expires_at
        return self.user_app_token_expires_at

    def derive_status(self) -> ConnectionStatus:
        if not self.publish_token:
            return ConnectionStatus.DISCONNECTED
        if not (self.selected_business_id and self.selected_ad_account_id):
            return ConnectionStatus.CONNECTED
        if not self.payment_connected:
            return ConnectionStatus.SELECTED_ASSETS
        return ConnectionStatus.PAYMENT_LINKED
