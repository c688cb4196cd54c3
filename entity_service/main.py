import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from entity_service.api.router import api_router
from entity_service.core import schemas
from entity_service.core.config import Settings, load_object, settings
from entity_service.core.errors import ServiceError
from entity_service.core.provider import EngineProvider, registry
from entity_service.core.worker_pool import BoundedWorkerPool

logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
logger = logging.getLogger(__name__)


def build_provider(config: Settings) -> Optional[EngineProvider]:
    """Create the engine binding and its worker pool from settings."""
    if not config.ENGINE_FACTORY:
        return None

    engine_factory = load_object(config.ENGINE_FACTORY)
    config_loader = load_object(config.CONFIG_LOADER) if config.CONFIG_LOADER else None

    provider = EngineProvider(
        engine=engine_factory(),
        pool=BoundedWorkerPool(config.WORKER_COUNT, config.WORKER_NAME),
        data_sources=config.DATA_SOURCES,
        config_loader=config_loader,
        read_only=config.READ_ONLY,
    )
    provider.refresh_config()
    return provider


async def refresh_config_periodically(provider: EngineProvider, seconds: float):
    while True:
        await asyncio.sleep(seconds)
        try:
            await asyncio.to_thread(provider.refresh_config)
        except Exception as error:
            logger.error(f"Config refresh failed: {error}")


# Install the engine provider on startup, tear it down on shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    provider = await asyncio.to_thread(build_provider, settings)
    token = None
    refresh_task = None

    if provider is None:
        logger.warning("ENGINE_FACTORY is not set: engine routes will fail until a provider is installed")
    else:
        token = registry.install(provider)
        if settings.CONFIG_REFRESH_SECONDS > 0:
            refresh_task = asyncio.create_task(
                refresh_config_periodically(provider, settings.CONFIG_REFRESH_SECONDS),
                name="config-refresh",
            )

    try:
        yield
    finally:
        if refresh_task is not None:
            refresh_task.cancel()
            try:
                await refresh_task
            except asyncio.CancelledError:
                pass

        if provider is not None:
            try:
                await asyncio.to_thread(provider.close, True)
            finally:
                registry.uninstall(token)


app = FastAPI(title="Entity Resolution API", lifespan=lifespan)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, error: ServiceError):
    if error.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {error.message}")

    body = schemas.ErrorResponse(
        detail=error.message,
        errors=[schemas.ErrorDetail(**error.to_dict())],
    )
    return JSONResponse(status_code=error.status_code, content=body.model_dump())


# Include the master router containing all our endpoints
app.include_router(api_router)


@app.get("/")
async def root():
    return {"message": "Entity Resolution API is running"}
