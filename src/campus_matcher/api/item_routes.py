"""
Item Routes

Thin creation and deletion endpoints for requests and found items.

Creating a document commits it first and only then publishes a
`DocumentCreated` event; matching runs later on the trigger worker, so the
response never waits for (or fails because of) matching.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, status

from .models import (
    CreateFoundItemBody,
    CreateRequestBody,
    CreatedResponse,
    DeletedResponse,
)
from .dependencies import get_repository, get_trigger_bus
from ..core.errors import RequestNotFound
from ..db import ItemRepository
from ..matching.models import ItemKind
from ..triggers.bus import DocumentCreated, TriggerBus

logger = logging.getLogger("matcher.api")

router = APIRouter(tags=["items"])


async def _create_and_publish(
    kind: ItemKind,
    body: CreateFoundItemBody,
    repository: ItemRepository,
    bus: TriggerBus,
    **extra,
) -> CreatedResponse:
    item = await repository.create_item(
        kind,
        attributes=body.attributes.model_dump(by_alias=True, exclude_none=True),
        category=body.category,
        campus=body.campus,
        **extra,
    )
    await repository.commit()

    await bus.publish(DocumentCreated(collection=kind, document_id=item.id))
    logger.info("Created %s/%s", kind.value, item.id)

    return CreatedResponse(id=item.id, collection=kind.value)


@router.post(
    "/requests",
    response_model=CreatedResponse,
    summary="Submit a lost-item request",
    status_code=status.HTTP_201_CREATED,
)
async def create_request(
    req: CreateRequestBody,
    repository: Annotated[ItemRepository, Depends(get_repository)],
    bus: Annotated[TriggerBus, Depends(get_trigger_bus)],
) -> CreatedResponse:
    return await _create_and_publish(
        ItemKind.REQUEST,
        req,
        repository,
        bus,
        user_id=req.user_id,
        user_email=req.user_email,
    )


@router.post(
    "/found-items",
    response_model=CreatedResponse,
    summary="Log a found item",
    status_code=status.HTTP_201_CREATED,
)
async def create_found_item(
    req: CreateFoundItemBody,
    repository: Annotated[ItemRepository, Depends(get_repository)],
    bus: Annotated[TriggerBus, Depends(get_trigger_bus)],
) -> CreatedResponse:
    return await _create_and_publish(ItemKind.FOUND_ITEM, req, repository, bus)


@router.delete(
    "/requests/{request_id}",
    response_model=DeletedResponse,
    summary="Delete a request and its matches",
)
async def delete_request(
    request_id: str,
    repository: Annotated[ItemRepository, Depends(get_repository)],
) -> DeletedResponse:
    deleted = await repository.delete_request(request_id)
    if not deleted:
        raise RequestNotFound(request_id)
    await repository.commit()
    return DeletedResponse(id=request_id)
