import asyncio
from typing import List

from fastapi import APIRouter, Query

from entity_service.api.dependencies import options_dep, provider_dep
from entity_service.core import schemas
from entity_service.core.resolution import orchestrator

router = APIRouter(prefix="/entity-networks", tags=["Entity Networks"])


@router.get("", response_model=schemas.EntityNetworkResponse)
async def find_network(
    provider: provider_dep,
    options: options_dep,
    e: List[int] = Query(default=[]),
    r: List[str] = Query(default=[]),
    max_degrees: int = Query(3, alias="maxDegrees"),
    build_out: int = Query(1, alias="buildOut"),
    max_entities: int = Query(1000, alias="maxEntities"),
    with_raw: bool = Query(False, alias="withRaw"),
):
    """
    Find the network of entities connecting the given entity ids (``e``)
    or record keys (``r``, formatted as DATA_SOURCE:RECORD_ID).
    """
    return await asyncio.to_thread(
        orchestrator.find_network,
        provider,
        e,
        r,
        max_degrees,
        build_out,
        max_entities,
        options,
        with_raw,
    )
