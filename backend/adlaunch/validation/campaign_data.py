"""Campaign data validator: structural completeness of setup sections.

Pure function over a CampaignSetupState: no I/O, no mutation. Each section
is checked on its own so the caller gets every problem in one pass.
"""

from __future__ import annotations

import math

from adlaunch.config import settings
from adlaunch.models.campaign import (
    AdCopySection,
    BudgetSection,
    CampaignSetupState,
    CreativeSection,
    GoalSection,
    GoalType,
    LocationSection,
)
from adlaunch.models.validation import (
    CampaignDataCheck,
    ValidationError,
    critical,
    error,
    warning,
)

VALID_GOALS = {g.value for g in GoalType}

STEP_FLAGS = (
    ("goal", "has_goal"),
    ("location", "has_location"),
    ("budget", "has_budget"),
    ("copy", "has_ad_copy"),
    ("creative", "has_images"),
    ("destination", "has_destination"),
)

SECTION_LABELS = (
    ("has_goal", "Goal"),
    ("has_location", "Location"),
    ("has_budget", "Budget"),
    ("has_ad_copy", "Ad Copy"),
    ("has_images", "Images"),
    ("has_destination", "Destination"),
)


class CampaignDataValidator:
    """Checks goal, location, budget, ad copy and creative sections."""

    def __init__(self, min_daily_budget: float | None = None) -> None:
        self.min_daily_budget = (
            min_daily_budget if min_daily_budget is not None else settings.min_daily_budget
        )

    def validate(self, state: CampaignSetupState | None) -> CampaignDataCheck:
        if state is None:
            return CampaignDataCheck(
                errors=[
                    critical(
                        "NO_CAMPAIGN_STATE",
                        "Campaign state data not found",
                        suggested_fix="Campaign setup incomplete",
                    )
                ]
            )

        errors: list[ValidationError] = []
        has_goal = self._check_goal(state.goal, errors)
        has_location = self._check_location(state.location, errors)
        has_budget = self._check_budget(state.budget, errors)
        has_ad_copy = self._check_ad_copy(state.ad_copy, errors)
        has_images = self._check_creative(state.creative, errors)

        # Destination is not modelled separately yet; it follows the goal.
        has_destination = has_goal

        return CampaignDataCheck(
            has_goal=has_goal,
            has_location=has_location,
            has_budget=has_budget,
            has_ad_copy=has_ad_copy,
            has_images=has_images,
            has_destination=has_destination,
            errors=errors,
        )

    # ── Sections ─────────────────────────────────────────────────

    def _check_goal(self, goal: GoalSection | None, errors: list[ValidationError]) -> bool:
        if goal is None:
            errors.append(critical(
                "MISSING_GOAL",
                "Campaign goal not set",
                field="goal",
                suggested_fix="Select a goal (Leads, Website Visits, or Calls)",
            ))
            return False

        if not goal.selected_goal:
            errors.append(critical(
                "NO_SELECTED_GOAL",
                "No goal selected",
                field="goal.selected_goal",
                suggested_fix="Select a campaign goal",
            ))
            return False

        if goal.selected_goal not in VALID_GOALS:
            errors.append(critical(
                "INVALID_GOAL",
                f"Invalid goal: {goal.selected_goal}",
                field="goal.selected_goal",
                suggested_fix="Select a valid goal",
            ))
            return False

        return True

    def _check_location(
        self, location: LocationSection | None, errors: list[ValidationError]
    ) -> bool:
        if location is None:
            errors.append(critical(
                "MISSING_LOCATION",
                "Location targeting not set",
                field="location",
                suggested_fix="Add at least one target location",
            ))
            return False

        if not location.locations:
            errors.append(critical(
                "NO_LOCATIONS",
                "No locations selected",
                field="location.locations",
                suggested_fix="Add at least one target location",
            ))
            return False

        return True

    def _check_budget(self, budget: BudgetSection | None, errors: list[ValidationError]) -> bool:
        if budget is None:
            errors.append(critical(
                "MISSING_BUDGET",
                "Budget not set",
                field="budget",
                suggested_fix="Set a daily budget",
            ))
            return False

        amount = budget.daily_budget
        if amount is None or not math.isfinite(amount) or amount <= 0:
            errors.append(critical(
                "INVALID_BUDGET",
                "Daily budget not set or invalid",
                field="budget.daily_budget",
                suggested_fix=f"Set a daily budget (minimum {self.min_daily_budget:g} {budget.currency})",
            ))
            return False

        # A valid budget can still be below the recommended floor.
        if amount < self.min_daily_budget:
            errors.append(warning(
                "BUDGET_TOO_LOW",
                f"Budget {amount:g} {budget.currency} is below recommended minimum "
                f"{self.min_daily_budget:g} {budget.currency}",
                field="budget.daily_budget",
                suggested_fix=f"Increase budget to at least {self.min_daily_budget:g} for better results",
            ))

        if budget.start_time and budget.end_time and budget.end_time <= budget.start_time:
            errors.append(error(
                "INVALID_SCHEDULE",
                "Budget end date is not after its start date",
                field="budget.end_time",
                suggested_fix="Pick an end date after the start date or remove it",
            ))

        return True

    def _check_ad_copy(self, ad_copy: AdCopySection | None, errors: list[ValidationError]) -> bool:
        if ad_copy is None:
            errors.append(critical(
                "MISSING_AD_COPY",
                "Ad copy not set",
                field="ad_copy",
                suggested_fix="Generate or enter ad copy",
            ))
            return False

        if not ad_copy.variations:
            errors.append(critical(
                "NO_COPY_VARIATIONS",
                "No ad copy variations available",
                field="ad_copy.variations",
                suggested_fix="Generate ad copy variations",
            ))
            return False

        # Per-variation gaps are reported but do not make the section incomplete.
        for i, variation in enumerate(ad_copy.variations):
            if not variation.primary_text.strip():
                errors.append(error(
                    "MISSING_PRIMARY_TEXT",
                    f"Variation {i + 1} missing primary text",
                    field=f"ad_copy.variations[{i}].primary_text",
                ))
            if not variation.headline.strip():
                errors.append(error(
                    "MISSING_HEADLINE",
                    f"Variation {i + 1} missing headline",
                    field=f"ad_copy.variations[{i}].headline",
                ))

        return True

    def _check_creative(
        self, creative: CreativeSection | None, errors: list[ValidationError]
    ) -> bool:
        if creative is None:
            errors.append(critical(
                "MISSING_PREVIEW",
                "Ad preview data not set",
                field="creative",
                suggested_fix="Generate ad images",
            ))
            return False

        if not creative.image_variations:
            errors.append(critical(
                "NO_IMAGES",
                "No ad images available",
                field="creative.image_variations",
                suggested_fix="Generate ad images",
            ))
            return False

        for i, url in enumerate(creative.image_variations):
            if not _is_image_url(url):
                errors.append(error(
                    "INVALID_IMAGE_URL",
                    f"Image {i + 1} URL is invalid",
                    field=f"creative.image_variations[{i}]",
                ))

        return True


def _is_image_url(url: str | None) -> bool:
    if not url or not url.strip():
        return False
    return url.strip().lower().startswith(("http://", "https://"))


# ── Helpers ───────────────────────────────────────────────────────


def is_campaign_data_complete(state: CampaignSetupState | None) -> bool:
    return CampaignDataValidator().validate(state).all_fields_complete


def missing_sections(state: CampaignSetupState | None) -> list[str]:
    """Human labels of the sections that still block publishing."""
    check = CampaignDataValidator().validate(state)
    return [label for flag, label in SECTION_LABELS if not getattr(check, flag)]


def completed_steps(check: CampaignDataCheck) -> list[str]:
    """Setup steps an ad can show as done, derived from a validation result."""
    return [step for step, flag in STEP_FLAGS if getattr(check, flag)]
