"""Campaign validation and Meta connection check endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from adlaunch.api.deps import GraphFactory, get_graph_factory, get_record_store
from adlaunch.models.connection import AdvertiserConnection
from adlaunch.orchestrator.publish_gate import connection_problems
from adlaunch.services.record_store import RecordStore
from adlaunch.validation.admin_access import AdminAccessResolver
from adlaunch.validation.campaign_data import (
    CampaignDataValidator,
    completed_steps,
    missing_sections,
)
from adlaunch.validation.funding import FundingValidator
from adlaunch.validation.payment_capability import (
    PaymentCapabilityResolver,
    ad_account_billing_url,
    business_billing_url,
)

router = APIRouter(prefix="/campaigns", tags=["campaigns"])


async def _connection(store: RecordStore, campaign_id: str) -> AdvertiserConnection:
    connection = await store.get_connection(campaign_id)
    if connection is None:
        raise HTTPException(404, "No Meta connection for this campaign")
    return connection


@router.get("/{campaign_id}/validation")
async def validate_campaign(
    campaign_id: str, store: RecordStore = Depends(get_record_store)
):
    state = await store.get_campaign_state(campaign_id)
    check = CampaignDataValidator().validate(state)
    return {
        "campaign_id": campaign_id,
        **check.model_dump(mode="json"),
        "completed_steps": completed_steps(check),
        "missing_sections": missing_sections(state),
    }


# ── Connection checks ────────────────────────────────────────────────────────


@router.get("/{campaign_id}/connection/funding")
async def check_funding(
    campaign_id: str,
    store: RecordStore = Depends(get_record_store),
    graph_factory: GraphFactory = Depends(get_graph_factory),
):
    connection = await _connection(store, campaign_id)
    problems = connection_problems(connection)
    if problems:
        raise HTTPException(409, detail={"errors": [p.model_dump(mode="json") for p in problems]})

    result = await FundingValidator(graph_factory).validate(
        connection.publish_token or "",
        connection.selected_ad_account_id or "",
        connection.payment_connected,
    )
    return {"campaign_id": campaign_id, **result.model_dump(mode="json")}


@router.post("/{campaign_id}/connection/verify-admin")
async def verify_admin(
    campaign_id: str,
    store: RecordStore = Depends(get_record_store),
    graph_factory: GraphFactory = Depends(get_graph_factory),
):
    connection = await _connection(store, campaign_id)
    result, updated = await AdminAccessResolver(graph_factory).verify_connection(connection)
    if updated is connection:
        raise HTTPException(400, detail=result.model_dump(mode="json"))

    await store.save_connection(updated)
    return {"campaign_id": campaign_id, **result.model_dump(mode="json")}


@router.post("/{campaign_id}/connection/admin-snapshot")
async def admin_snapshot(
    campaign_id: str,
    store: RecordStore = Depends(get_record_store),
    graph_factory: GraphFactory = Depends(get_graph_factory),
):
    connection = await _connection(store, campaign_id)
    snapshot, updated = await AdminAccessResolver(graph_factory).snapshot_connection(connection)
    if updated is connection:
        raise HTTPException(400, detail=snapshot.model_dump(mode="json"))

    await store.save_connection(updated)
    return {"campaign_id": campaign_id, **snapshot.model_dump(mode="json")}


@router.get("/{campaign_id}/connection/payment-capability")
async def payment_capability(
    campaign_id: str,
    store: RecordStore = Depends(get_record_store),
    graph_factory: GraphFactory = Depends(get_graph_factory),
):
    connection = await _connection(store, campaign_id)
    token = connection.role_token
    business_id = connection.selected_business_id
    ad_account_id = connection.selected_ad_account_id
    if not token or not business_id or not ad_account_id:
        raise HTTPException(400, "Token, business and ad account are required")

    capability = await PaymentCapabilityResolver(graph_factory).resolve(
        token, business_id, ad_account_id
    )
    return {
        **capability.model_dump(mode="json"),
        "business_billing_url": business_billing_url(business_id),
        "ad_account_billing_url": ad_account_billing_url(ad_account_id),
    }
