"""Funding validator: can the selected ad account actually spend?

One Graph read per call. Platform failures are folded into the result as an
``ACCOUNT_INFO_FAILED`` finding so callers can tell "not fundable" apart
from "couldn't determine".
"""

from __future__ import annotations

import logging
from typing import Callable

from adlaunch.config import settings
from adlaunch.models.validation import FundingCheck, ValidationError, critical, error, warning
from adlaunch.services.meta_graph_service import (
    ACCOUNT_STATUS_ACTIVE,
    GRAPH_ERRORS,
    MetaGraphService,
    account_status_name,
    normalize_ad_account_id,
)

logger = logging.getLogger(__name__)

CAN_CREATE_CAMPAIGNS = "CAN_CREATE_AD_CAMPAIGNS"

GraphFactory = Callable[[str], MetaGraphService]


class FundingValidator:
    """Checks payment method, account status, capabilities and spend cap."""

    def __init__(
        self,
        graph_factory: GraphFactory = MetaGraphService,
        low_headroom_threshold: int | None = None,
    ) -> None:
        self.graph_factory = graph_factory
        self.low_headroom_threshold = (
            low_headroom_threshold
            if low_headroom_threshold is not None
            else settings.spend_cap_low_threshold
        )

    async def validate(
        self,
        token: str,
        ad_account_id: str,
        has_payment_connected: bool,
    ) -> FundingCheck:
        errors: list[ValidationError] = []
        account_id = normalize_ad_account_id(ad_account_id)

        # Reported up front but the account is still inspected, so the user
        # sees every funding problem at once.
        if not has_payment_connected:
            errors.append(critical(
                "NO_PAYMENT_METHOD",
                "No payment method connected to ad account",
                suggested_fix="Add a payment method in Meta Business Manager",
            ))

        has_spending_limit = True

        try:
            info = await self.graph_factory(token).fetch_account_funding_info(account_id)
        except GRAPH_ERRORS as e:
            logger.warning("Funding lookup failed for act_%s: %s", account_id, e)
            errors.append(error(
                "ACCOUNT_INFO_FAILED",
                str(e) or "Failed to retrieve ad account information",
                suggested_fix="Check your Meta connection and try again",
            ))
            return FundingCheck(has_payment_method=has_payment_connected, errors=errors)

        status = info["account_status"]
        account_active = status == ACCOUNT_STATUS_ACTIVE
        if not account_active:
            errors.append(critical(
                "ACCOUNT_NOT_ACTIVE",
                f"Ad account status: {account_status_name(status)}",
                suggested_fix="Check ad account status in Meta Business Manager",
            ))

        can_create_campaign = CAN_CREATE_CAMPAIGNS in info["capabilities"]
        # An inactive account already explains why campaigns can't be created.
        if not can_create_campaign and account_active:
            errors.append(critical(
                "CANNOT_CREATE_CAMPAIGNS",
                "Ad account does not have permission to create campaigns",
                suggested_fix="Check account permissions or contact your Business Manager admin",
            ))

        if info["disable_reason"]:
            errors.append(critical(
                "ACCOUNT_DISABLED",
                f"Ad account disabled: {info['disable_reason']}",
                suggested_fix="Resolve the account issue in Meta Business Manager",
            ))

        spend_cap = info["spend_cap"]
        if spend_cap is not None:
            spent = info["amount_spent"]
            if spent >= spend_cap:
                has_spending_limit = False
                errors.append(critical(
                    "SPENDING_LIMIT_REACHED",
                    "Account spending limit reached",
                    suggested_fix="Increase spending limit or wait for limit reset",
                ))
            elif spend_cap - spent < self.low_headroom_threshold:
                errors.append(warning(
                    "SPENDING_LIMIT_LOW",
                    "Account spending limit almost reached",
                    suggested_fix="Consider increasing spending limit",
                ))

        logger.debug(
            "Funding check act_%s: active=%s can_create=%s payment=%s",
            account_id, account_active, can_create_campaign, has_payment_connected,
        )
        return FundingCheck(
            has_payment_method=has_payment_connected,
            account_active=account_active,
            can_create_campaign=can_create_campaign,
            has_spending_limit=has_spending_limit,
            account_status=status,
            errors=errors,
        )


async def has_funding(
    token: str,
    ad_account_id: str,
    has_payment_connected: bool,
    graph_factory: GraphFactory = MetaGraphService,
) -> bool:
    result = await FundingValidator(graph_factory).validate(
        token, ad_account_id, has_payment_connected
    )
    return result.has_funding
