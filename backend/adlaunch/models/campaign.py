"""Campaign setup state (Pydantic sections + SQLAlchemy row)."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field
from sqlalchemy import Column, String, DateTime, JSON
from sqlalchemy.orm import DeclarativeBase


# ---------------------------------------------------------------------------
# SQLAlchemy base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    pass


class CampaignStateRow(Base):
    """One row per campaign; the sections live in ``data`` as JSON."""

    __tablename__ = "campaign_states"

    campaign_id = Column(String(64), primary_key=True)
    data = Column(JSON, nullable=False, default=dict)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------
class GoalType(str, Enum):
    LEADS = "leads"
    WEBSITE_VISITS = "website-visits"
    CALLS = "calls"


class GoalSection(BaseModel):
    # Kept as a plain string so an unknown tag stays representable and can be
    # reported instead of failing at parse time.
    selected_goal: Optional[str] = None


class LocationMode(str, Enum):
    INCLUDE = "include"
    EXCLUDE = "exclude"


class TargetLocation(BaseModel):
    name: str
    type: str = "city"  # city | region | country | zip | radius
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    radius_km: Optional[float] = None
    mode: LocationMode = LocationMode.INCLUDE


class LocationSection(BaseModel):
    locations: list[TargetLocation] = Field(default_factory=list)


class BudgetSection(BaseModel):
    daily_budget: Optional[float] = None
    currency: str = Field(default="USD", pattern=r"^[A-Z]{3}$")
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None


class CopyVariation(BaseModel):
    headline: str = ""
    primary_text: str = ""
    description: Optional[str] = None
    cta: Optional[str] = None


class AdCopySection(BaseModel):
    variations: list[CopyVariation] = Field(default_factory=list)


class CreativeSection(BaseModel):
    image_variations: list[str] = Field(default_factory=list)
    selected_index: int = 0


class CampaignSetupState(BaseModel):
    """Per-campaign aggregate of setup sections.

    A section that was never started is ``None``; a section that was started
    but is incomplete is present with empty/invalid content. The validator
    reports the two cases under different codes.
    """

    campaign_id: str
    goal: Optional[GoalSection] = None
    location: Optional[LocationSection] = None
    budget: Optional[BudgetSection] = None
    ad_copy: Optional[AdCopySection] = None
    creative: Optional[CreativeSection] = None

    def selected_copy(self, index: int | None) -> CopyVariation | None:
        if self.ad_copy is None or not self.ad_copy.variations:
            return None
        i = index if index is not None else 0
        if 0 <= i < len(self.ad_copy.variations):
            return self.ad_copy.variations[i]
        return None

    def selected_image(self, index: int | None) -> str | None:
        if self.creative is None or not self.creative.image_variations:
            return None
        i = index if index is not None else self.creative.selected_index
        if 0 <= i < len(self.creative.image_variations):
            return self.creative.image_variations[i]
        return None
