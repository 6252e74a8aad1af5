"""Validation findings and the result records produced by each check."""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, computed_field


class Severity(str, Enum):
    CRITICAL = "CRITICAL"  # blocks the operation
    ERROR = "ERROR"  # always reported, blocks only where the caller says so
    WARNING = "WARNING"  # advisory


class ValidationError(BaseModel):
    """A single finding. Not an exception: findings are collected, not raised."""

    code: str
    message: str
    severity: Severity
    field: Optional[str] = None
    suggested_fix: Optional[str] = None

    @property
    def blocking(self) -> bool:
        return self.severity is Severity.CRITICAL


def critical(code: str, message: str, **kwargs: Any) -> ValidationError:
    return ValidationError(code=code, message=message, severity=Severity.CRITICAL, **kwargs)


def error(code: str, message: str, **kwargs: Any) -> ValidationError:
    return ValidationError(code=code, message=message, severity=Severity.ERROR, **kwargs)


def warning(code: str, message: str, **kwargs: Any) -> ValidationError:
    return ValidationError(code=code, message=message, severity=Severity.WARNING, **kwargs)


def has_critical(errors: list[ValidationError]) -> bool:
    return any(e.blocking for e in errors)


class CampaignDataCheck(BaseModel):
    """Structural completeness of a campaign's setup sections."""

    has_goal: bool = False
    has_location: bool = False
    has_budget: bool = False
    has_ad_copy: bool = False
    has_images: bool = False
    has_destination: bool = False
    errors: list[ValidationError] = Field(default_factory=list)

    @computed_field
    @property
    def all_fields_complete(self) -> bool:
        return (
            self.has_goal
            and self.has_location
            and self.has_budget
            and self.has_ad_copy
            and self.has_images
            and self.has_destination
        )


class FundingCheck(BaseModel):
    """Best-effort funding state of an ad account.

    ``errors`` containing ``ACCOUNT_INFO_FAILED`` means the platform could not
    be reached, as opposed to the account being definitely unfundable.
    """

    has_payment_method: bool = False
    account_active: bool = False
    can_create_campaign: bool = False
    has_spending_limit: bool = True
    account_status: Optional[int] = None
    errors: list[ValidationError] = Field(default_factory=list)

    @computed_field
    @property
    def has_funding(self) -> bool:
        return self.has_payment_method and self.account_active and self.can_create_campaign

    @property
    def lookup_failed(self) -> bool:
        return any(e.code == "ACCOUNT_INFO_FAILED" for e in self.errors)


class AdminAccessResult(BaseModel):
    """Outcome of checking the platform user's roles on business + ad account."""

    admin_connected: bool = False
    business_role: Optional[str] = None
    ad_account_role: Optional[str] = None
    fb_user_id: Optional[str] = None
    business_users: list[dict[str, Any]] = Field(default_factory=list)
    ad_account_users: list[dict[str, Any]] = Field(default_factory=list)
    errors: list[ValidationError] = Field(default_factory=list)


class AdminSnapshot(AdminAccessResult):
    """Admin result plus raw payloads kept for audit/debugging."""

    ad_account_users_raw: list[dict[str, Any]] = Field(default_factory=list)
    ad_account_raw: Optional[dict[str, Any]] = None


class PaymentCapability(BaseModel):
    business_id: str
    ad_account_id: str
    role: Optional[str] = None
    finance_permission: Optional[str] = None
    has_finance: bool = False
    has_manage: bool = False
    has_funding: bool = False


class ComplianceCheck(BaseModel):
    """Ad text policy and destination URL findings. Never CRITICAL."""

    text_compliant: bool = True
    destination_valid: bool = True
    errors: list[ValidationError] = Field(default_factory=list)

    @computed_field
    @property
    def no_policy_violations(self) -> bool:
        return all(e.severity is Severity.WARNING for e in self.errors)


class PublishDecision(BaseModel):
    """Readiness verdict: allowed iff no CRITICAL finding."""

    allowed: bool
    errors: list[ValidationError] = Field(default_factory=list)
    campaign: Optional[CampaignDataCheck] = None
    funding: Optional[FundingCheck] = None
    compliance: Optional[ComplianceCheck] = None
    # Set when the status precondition short-circuited the checks
    precondition_failed: bool = False
