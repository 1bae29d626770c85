import logging
from typing import AsyncIterator, List

from arango.exceptions import ArangoError
from fastapi import APIRouter, Depends, HTTPException, Response, status
from sse_starlette.sse import EventSourceResponse

from mct.app.api.deps import get_concept_table, get_current_user
from mct.app.models.concept import Concept, ConceptCreate, ConceptUpdate
from mct.app.models.user import User
from mct.app.services.change_feed import Subscription
from mct.app.services.concepts import ConceptTable

logger = logging.getLogger(__name__)

router = APIRouter()

STORAGE_UNAVAILABLE = "Concept storage is unavailable"


def _storage_failure(action: str) -> HTTPException:
    logger.exception("Concept storage failed while trying to %s", action)
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=STORAGE_UNAVAILABLE)


async def change_events(subscription: Subscription) -> AsyncIterator[dict]:
    """SSE frames for one subscriber; the subscription closes when the client goes away."""
    async with subscription:
        async for notification in subscription:
            yield {"event": "change", "data": notification.model_dump_json()}


@router.get("", response_model=List[Concept])
async def list_concepts(
    user: User = Depends(get_current_user),
    table: ConceptTable = Depends(get_concept_table),
):
    """
    The caller's concepts, newest first.
    """
    try:
        return await table.list_for_owner(user.id)
    except ArangoError:
        raise _storage_failure("list concepts")


@router.post("", response_model=Concept, status_code=status.HTTP_201_CREATED)
async def create_concept(
    payload: ConceptCreate,
    user: User = Depends(get_current_user),
    table: ConceptTable = Depends(get_concept_table),
):
    """
    Creates a concept owned by the caller. Status always starts as `pending`.
    """
    try:
        return await table.create(user.id, payload)
    except ArangoError:
        raise _storage_failure("create a concept")


@router.get("/changes")
async def stream_changes(
    user: User = Depends(get_current_user),
    table: ConceptTable = Depends(get_concept_table),
):
    """
    Server-Sent Events stream of insert/update/delete notifications for the
    caller's concepts. Best effort: no replay, no ordering guarantee.
    """
    subscription = table.feed.subscribe(user.id)
    return EventSourceResponse(change_events(subscription), ping=15)


@router.get("/{concept_id}", response_model=Concept)
async def get_concept(
    concept_id: str,
    user: User = Depends(get_current_user),
    table: ConceptTable = Depends(get_concept_table),
):
    try:
        return await table.get(user.id, concept_id)
    except ArangoError:
        raise _storage_failure("read a concept")


@router.patch("/{concept_id}", response_model=Concept)
async def update_concept(
    concept_id: str,
    payload: ConceptUpdate,
    user: User = Depends(get_current_user),
    table: ConceptTable = Depends(get_concept_table),
):
    """
    Partial update; the gateway stamps `updated_at`.
    """
    try:
        return await table.update(user.id, concept_id, payload)
    except ArangoError:
        raise _storage_failure("update a concept")


@router.delete("/{concept_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_concept(
    concept_id: str,
    user: User = Depends(get_current_user),
    table: ConceptTable = Depends(get_concept_table),
):
    try:
        await table.delete(user.id, concept_id)
    except ArangoError:
        raise _storage_failure("delete a concept")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
