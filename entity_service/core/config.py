import importlib
from typing import Any, List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Worker pool pinned to the engine
    WORKER_COUNT: int = 4
    WORKER_NAME: str = "engine-worker"

    # Engine and config bindings as "package.module:attribute"
    ENGINE_FACTORY: Optional[str] = None
    CONFIG_LOADER: Optional[str] = None

    # Used until (or unless) a config loader provides the real set
    DATA_SOURCES: List[str] = ["TEST", "SEARCH"]

    # 0 disables the periodic config refresh
    CONFIG_REFRESH_SECONDS: float = 0

    READ_ONLY: bool = False
    LOG_LEVEL: str = "INFO"

    # This tells Pydantic to read from the .env file
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


def load_object(path: str) -> Any:
    """
    Import an object from a "package.module:attribute" path.

    Example:
        load_object("my_bindings.native:create_engine")
    """
    module_name, sep, attribute = path.partition(":")
    if not sep or not module_name or not attribute:
        raise ValueError(f"Expected 'module:attribute', got: {path!r}")

    module = importlib.import_module(module_name)
    target = module
    for part in attribute.split("."):
        target = getattr(target, part)
    return target


# Create a single instance of the settings to use everywhere
settings = Settings()
