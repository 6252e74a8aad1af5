"""Ad readiness, publish and lifecycle API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel

from adlaunch.api.deps import get_lifecycle, get_publish_gate, respond
from adlaunch.orchestrator.ad_lifecycle import AdLifecycleService
from adlaunch.orchestrator.publish_gate import PublishGate

router = APIRouter(prefix="/ads", tags=["ads"])


class ReviewVerdict(BaseModel):
    approved: bool


@router.get("/{ad_id}/readiness")
async def readiness(ad_id: str, gate: PublishGate = Depends(get_publish_gate)):
    """Dry-run of the publish checks. Nothing is written."""
    return respond(await gate.readiness(ad_id))


@router.post("/{ad_id}/publish")
async def publish(
    ad_id: str,
    gate: PublishGate = Depends(get_publish_gate),
    # Set by the upstream gateway after its ownership check
    x_owner_verified: bool = Header(default=True),
):
    return respond(await gate.publish(ad_id, authorized=x_owner_verified))


@router.post("/{ad_id}/reconcile")
async def reconcile(ad_id: str, gate: PublishGate = Depends(get_publish_gate)):
    return respond(await gate.reconcile(ad_id))


@router.post("/{ad_id}/pause")
async def pause(ad_id: str, lifecycle: AdLifecycleService = Depends(get_lifecycle)):
    return respond(await lifecycle.pause(ad_id))


@router.post("/{ad_id}/resume")
async def resume(ad_id: str, lifecycle: AdLifecycleService = Depends(get_lifecycle)):
    return respond(await lifecycle.resume(ad_id))


@router.post("/{ad_id}/archive")
async def archive(ad_id: str, lifecycle: AdLifecycleService = Depends(get_lifecycle)):
    return respond(await lifecycle.archive(ad_id))


@router.delete("/{ad_id}")
async def delete_ad(ad_id: str, lifecycle: AdLifecycleService = Depends(get_lifecycle)):
    return respond(await lifecycle.delete(ad_id))


@router.post("/{ad_id}/review")
async def record_review(
    ad_id: str,
    verdict: ReviewVerdict,
    lifecycle: AdLifecycleService = Depends(get_lifecycle),
):
    """Meta review callback: approved -> active, otherwise rejected."""
    return respond(await lifecycle.record_review(ad_id, verdict.approved))


@router.get("/{ad_id}/permissions")
async def permissions(ad_id: str, lifecycle: AdLifecycleService = Depends(get_lifecycle)):
    result = await lifecycle.permissions(ad_id)
    if result is None:
        raise HTTPException(404, "Ad not found")
    return result
