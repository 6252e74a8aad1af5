"""Advertisement lifecycle models (Pydantic + SQLAlchemy)."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field
from sqlalchemy import Column, String, DateTime, JSON, Index

from adlaunch.models.campaign import Base


class AdStatus(str, Enum):
    DRAFT = "draft"
    PENDING_REVIEW = "pending_review"
    ACTIVE = "active"
    LEARNING = "learning"
    PAUSED = "paused"
    REJECTED = "rejected"
    FAILED = "failed"
    ARCHIVED = "archived"


class ReviewStatus(str, Enum):
    NOT_SUBMITTED = "not_submitted"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CHANGES_REQUESTED = "changes_requested"


class AdRow(Base):
    """ads table. ``status`` is a real column so it can be compare-and-set."""

    __tablename__ = "ads"
    __table_args__ = (Index("ix_ads_campaign_id", "campaign_id"),)

    id = Column(String(64), primary_key=True)
    campaign_id = Column(String(64), nullable=False)
    status = Column(String(32), nullable=False, default=AdStatus.DRAFT.value)
    data = Column(JSON, nullable=False, default=dict)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Advertisement(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    campaign_id: str
    name: str = ""
    status: AdStatus = AdStatus.DRAFT
    review_status: ReviewStatus = ReviewStatus.NOT_SUBMITTED
    # At most one creative and one copy variation selected
    selected_creative_index: Optional[int] = None
    selected_copy_index: Optional[int] = None
    completed_steps: list[str] = Field(default_factory=list)
    # Landing page for website-visits ads; lead-form and call ads have none
    website_url: Optional[str] = None
    platform_ad_id: Optional[str] = None  # set on first successful publish
    publish_error: Optional[str] = None
    publish_started_at: Optional[datetime] = None
    published_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    model_config = {"from_attributes": True}

    @property
    def reference_name(self) -> str:
        """Name the ad carries on the platform; used to find it again."""
        label = self.name or "Ad"
        return f"{label} [adlaunch:{self.id}]"
