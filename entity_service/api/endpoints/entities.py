import asyncio
from typing import Optional

from fastapi import APIRouter, Query, Request

from entity_service.api.dependencies import options_dep, provider_dep
from entity_service.core import schemas
from entity_service.core.resolution import orchestrator

router = APIRouter(prefix="/entities", tags=["Entities"])


@router.get("", response_model=schemas.AttributeSearchResponse)
async def search_by_attributes(
    request: Request,
    provider: provider_dep,
    options: options_dep,
    attrs: Optional[str] = None,
    with_relationships: bool = Query(True, alias="withRelationships"),
    with_raw: bool = Query(False, alias="withRaw"),
):
    """
    Search entities by attributes.

    Criteria come from ``attrs`` (a JSON object) or, when that is absent,
    from ``attr_<NAME>=value`` query parameters.
    """
    criteria = orchestrator.build_search_criteria(
        attrs, request.query_params.multi_items()
    )
    options = options.model_copy(update={"with_relationships": with_relationships})

    return await asyncio.to_thread(
        orchestrator.search_by_attributes, provider, criteria, options, with_raw
    )


@router.get("/{entity_id}", response_model=schemas.EntityResponse)
async def get_entity_by_entity_id(
    entity_id: int,
    provider: provider_dep,
    options: options_dep,
    with_related: bool = Query(False, alias="withRelated"),
    with_raw: bool = Query(False, alias="withRaw"),
):
    return await asyncio.to_thread(
        orchestrator.get_entity_by_entity_id,
        provider,
        entity_id,
        options,
        with_related,
        with_raw,
    )
