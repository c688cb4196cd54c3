import asyncio
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Query

from entity_service.api.dependencies import options_dep, provider_dep
from entity_service.core import schemas
from entity_service.core.resolution import orchestrator

router = APIRouter(prefix="/data-sources", tags=["Records"])


# Add a record, the engine picks the record id
@router.post(
    "/{data_source_code}/records",
    response_model=schemas.LoadRecordResponse,
)
async def load_record(
    data_source_code: str,
    provider: provider_dep,
    record: Dict[str, Any] = Body(...),
    load_id: Optional[str] = Query(None, alias="loadId"),
):
    return await asyncio.to_thread(
        orchestrator.load_record,
        provider,
        data_source_code,
        record,
        None,
        load_id,
    )


# Add or replace a record under an explicit record id
@router.put(
    "/{data_source_code}/records/{record_id}",
    response_model=schemas.LoadRecordResponse,
)
async def replace_record(
    data_source_code: str,
    record_id: str,
    provider: provider_dep,
    record: Dict[str, Any] = Body(...),
    load_id: Optional[str] = Query(None, alias="loadId"),
):
    return await asyncio.to_thread(
        orchestrator.load_record,
        provider,
        data_source_code,
        record,
        record_id,
        load_id,
    )


@router.get(
    "/{data_source_code}/records/{record_id}",
    response_model=schemas.RecordResponse,
)
async def get_record(
    data_source_code: str,
    record_id: str,
    provider: provider_dep,
    with_raw: bool = Query(False, alias="withRaw"),
):
    return await asyncio.to_thread(
        orchestrator.get_record, provider, data_source_code, record_id, with_raw
    )


# Entity the record resolved to
@router.get(
    "/{data_source_code}/records/{record_id}/entity",
    response_model=schemas.EntityResponse,
)
async def get_entity_by_record_id(
    data_source_code: str,
    record_id: str,
    provider: provider_dep,
    options: options_dep,
    with_related: bool = Query(False, alias="withRelated"),
    with_raw: bool = Query(False, alias="withRaw"),
):
    return await asyncio.to_thread(
        orchestrator.get_entity_by_record_id,
        provider,
        data_source_code,
        record_id,
        options,
        with_related,
        with_raw,
    )
