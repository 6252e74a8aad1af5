"""FastAPI dependencies and outcome-to-HTTP mapping shared by the routers."""

from __future__ import annotations

from typing import Any, Callable

from fastapi import Depends, HTTPException

from adlaunch.config import settings
from adlaunch.models.outcome import OperationResult, OutcomeStatus
from adlaunch.orchestrator.ad_lifecycle import AdLifecycleService
from adlaunch.orchestrator.publish_gate import PublishGate
from adlaunch.services.ad_publisher import AdPublisher, MetaAdPublisher, SimulatedAdPublisher
from adlaunch.services.meta_graph_service import MetaGraphService
from adlaunch.services.record_store import RecordStore, get_store
from adlaunch.validation.funding import FundingValidator

GraphFactory = Callable[[str], MetaGraphService]

HTTP_STATUS: dict[OutcomeStatus, int] = {
    OutcomeStatus.NOT_FOUND: 404,
    OutcomeStatus.UNAUTHORIZED: 403,
    OutcomeStatus.PRECONDITION_FAILED: 409,
    OutcomeStatus.INVALID_TRANSITION: 409,
    OutcomeStatus.CONFLICT: 409,
    OutcomeStatus.VALIDATION_FAILED: 422,
    OutcomeStatus.PUBLISH_FAILED: 502,
    OutcomeStatus.PLATFORM_FAILED: 502,
}


def get_graph_factory() -> GraphFactory:
    return MetaGraphService


def get_record_store() -> RecordStore:
    return get_store()


def get_publisher(graph_factory: GraphFactory = Depends(get_graph_factory)) -> AdPublisher:
    if settings.publish_simulation:
        return SimulatedAdPublisher()
    return MetaAdPublisher(graph_factory)


def get_publish_gate(
    store: RecordStore = Depends(get_record_store),
    publisher: AdPublisher = Depends(get_publisher),
    graph_factory: GraphFactory = Depends(get_graph_factory),
) -> PublishGate:
    return PublishGate(
        store=store,
        publisher=publisher,
        funding_validator=FundingValidator(graph_factory),
    )


def get_lifecycle(
    store: RecordStore = Depends(get_record_store),
    publisher: AdPublisher = Depends(get_publisher),
) -> AdLifecycleService:
    return AdLifecycleService(store=store, publisher=publisher)


def respond(result: OperationResult) -> dict[str, Any]:
    """Return the result body, or raise the HTTP error its status maps to."""
    body = result.model_dump(mode="json")
    code = HTTP_STATUS.get(result.status)
    if code is not None:
        raise HTTPException(code, detail=body)
    return body
