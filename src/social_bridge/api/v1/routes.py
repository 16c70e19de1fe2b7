from __future__ import annotations

import logging
from typing import Any, Dict, Literal

from fastapi import APIRouter, Body, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse

from social_bridge.core.errors import FederationError
from social_bridge.schemas import SharedInboxRequest
from social_bridge.services import FederationAdapter


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/activitypub", tags=["activitypub", "v1"])

ACTIVITY_JSON = "application/activity+json"

_STATUS_BY_KIND = {
    "malformed_input": status.HTTP_400_BAD_REQUEST,
    "not_authorized": status.HTTP_403_FORBIDDEN,
    "not_found": status.HTTP_404_NOT_FOUND,
    "store_unavailable": status.HTTP_503_SERVICE_UNAVAILABLE,
    "partial_completion": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def get_federation_adapter(request: Request) -> FederationAdapter:
    """Dependency to get the FederationAdapter instance from the FastAPI app state."""
    adapter: FederationAdapter = request.app.state.federation_adapter
    return adapter


def _http_error(exc: FederationError) -> HTTPException:
    status_code = _STATUS_BY_KIND.get(exc.kind, status.HTTP_500_INTERNAL_SERVER_ERROR)
    return HTTPException(status_code=status_code, detail=str(exc))


def _count(counter: Any, **labels: str) -> None:
    if counter is not None:
        counter.labels(**labels).inc()


async def _accept(
    request: Request, adapter: FederationAdapter, payload: Dict[str, Any]
) -> Dict[str, Any]:
    activity_type = str(payload.get("type") or "unknown")
    _count(request.app.state.activities_received_total, activity_type=activity_type)
    try:
        result = await adapter.handle_activity(payload)
    except FederationError as exc:
        logger.warning("Rejected %s activity %s: %s", activity_type, payload.get("id"), exc)
        _count(
            request.app.state.activities_failed_total,
            activity_type=activity_type,
            error_kind=exc.kind,
        )
        raise _http_error(exc) from None
    return {
        "status": "accepted",
        "activity_id": payload.get("id"),
        "applied": bool(result),
    }


@router.post("/inbox", status_code=status.HTTP_202_ACCEPTED)
async def shared_inbox(
    request: Request,
    payload: Dict[str, Any] = Body(...),
    adapter: FederationAdapter = Depends(get_federation_adapter),
):
    """Receives an already-verified activity on the instance-wide inbox.

    Args:
        request: The incoming FastAPI request object.
        payload: The activity JSON.
        adapter: The FederationAdapter instance.

    Returns:
        A dictionary indicating acceptance and whether the activity changed state.

    Raises:
        HTTPException: 400 for malformed activities, 403 for unauthorized
                       mutations, 404 for unknown posts, 503 if the store is down.
    """
    return await _accept(request, adapter, payload)


@router.post("/users/{name}/inbox", status_code=status.HTTP_202_ACCEPTED)
async def user_inbox(
    name: str,
    request: Request,
    payload: Dict[str, Any] = Body(...),
    adapter: FederationAdapter = Depends(get_federation_adapter),
):
    """Receives an already-verified activity addressed to a local user."""
    if not await adapter.user_exists(name):
        raise HTTPException(status_code=404, detail=f"No user with name: {name}")
    return await _accept(request, adapter, payload)


@router.get("/users/{name}/{kind}")
async def user_collection(
    name: str,
    kind: Literal["followers", "following", "outbox"],
    page: bool = False,
    adapter: FederationAdapter = Depends(get_federation_adapter),
):
    """Returns a user's followers, following or outbox collection.

    With ``page=true`` the single page holding every item is returned instead
    of the collection summary.
    """
    getters = {
        "followers": (adapter.get_followers_collection, adapter.get_followers_collection_page),
        "following": (adapter.get_following_collection, adapter.get_following_collection_page),
        "outbox": (adapter.get_outbox_collection, adapter.get_outbox_collection_page),
    }
    summary, full_page = getters[kind]
    try:
        collection = await (full_page if page else summary)(adapter.codec.id_from_name(name))
    except FederationError as exc:
        raise _http_error(exc) from None
    return JSONResponse(
        content=collection.model_dump(by_alias=True, exclude_none=True),
        media_type=ACTIVITY_JSON,
    )


@router.get("/shared-inboxes")
async def list_shared_inboxes(
    adapter: FederationAdapter = Depends(get_federation_adapter),
) -> Dict[str, Any]:
    try:
        endpoints = await adapter.get_shared_inbox_endpoints()
    except FederationError as exc:
        raise _http_error(exc) from None
    return {"endpoints": endpoints}


@router.post("/shared-inboxes")
async def register_shared_inbox(
    payload: SharedInboxRequest,
    adapter: FederationAdapter = Depends(get_federation_adapter),
) -> Dict[str, Any]:
    """Registers a remote server's shared inbox. Registering twice is harmless."""
    try:
        created = await adapter.add_shared_inbox_endpoint(payload.uri)
    except FederationError as exc:
        raise _http_error(exc) from None
    return {"uri": payload.uri, "created": created}
