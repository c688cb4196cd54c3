from fastapi import APIRouter
from entity_service.api.endpoints import data_sources, entities, networks, records

api_router = APIRouter()

# Combine all sub-routers into one
api_router.include_router(data_sources.router)
api_router.include_router(records.router)
api_router.include_router(entities.router)
api_router.include_router(networks.router)
