import asyncio

from fastapi import APIRouter

from entity_service.api.dependencies import provider_dep
from entity_service.core import schemas
from entity_service.core.resolution import orchestrator

router = APIRouter(prefix="/data-sources", tags=["Config"])


@router.get("", response_model=schemas.DataSourcesResponse)
async def list_data_sources(provider: provider_dep):
    """Return the data source codes the service currently recognizes."""
    return await asyncio.to_thread(orchestrator.get_data_sources, provider)
