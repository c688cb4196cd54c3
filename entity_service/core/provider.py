"""
Engine provider and the process-wide registry it is installed into.

``EngineProvider`` bundles everything a request needs to reach the engine:
the engine handle, the worker pool every engine call goes through, the
known data sources and the feature-type -> attribute-class lookup.

``ProviderRegistry`` holds at most one installed provider. Installing hands
back an ``AccessToken``; only the holder of that token can uninstall, so no
unrelated code can tear the engine down by accident.

Routes reach the provider through the ``get_provider`` dependency, the same
way the rest of the app receives injected collaborators.
"""

import logging
import threading
from typing import Any, Callable, Dict, FrozenSet, Iterable, Optional

from pydantic import BaseModel, Field

from entity_service.core.engine import ResolutionEngine
from entity_service.core.errors import (
    AlreadyInstalledError,
    InvalidTokenError,
    NotInstalledError,
)
from entity_service.core.worker_pool import BoundedWorkerPool, WorkUnit

logger = logging.getLogger(__name__)

UNKNOWN_ATTRIBUTE_CLASS = "UNKNOWN"

# Fallback feature-type -> attribute-class mapping
DEFAULT_ATTRIBUTE_CLASSES: Dict[str, str] = {
    "NAME": "NAME",
    "ADDRESS": "ADDRESS",
    "PHONE": "PHONE",
    "EMAIL": "IDENTIFIER",
    "SSN": "IDENTIFIER",
    "DRLIC": "IDENTIFIER",
    "PASSPORT": "IDENTIFIER",
    "NATIONAL_ID": "IDENTIFIER",
    "TAX_ID": "IDENTIFIER",
    "ACCT_NUM": "IDENTIFIER",
    "WEBSITE": "IDENTIFIER",
    "DOB": "ATTRIBUTE",
    "GENDER": "ATTRIBUTE",
    "NATIONALITY": "ATTRIBUTE",
    "REL_LINK": "RELATIONSHIP",
    "REL_ANCHOR": "RELATIONSHIP",
    "REL_POINTER": "RELATIONSHIP",
}


class EngineConfig(BaseModel):
    """What the config collaborator hands back on every refresh."""

    data_sources: FrozenSet[str] = frozenset()
    attribute_classes: Dict[str, str] = Field(default_factory=dict)


ConfigLoader = Callable[[], EngineConfig]


class AccessToken:
    """Opaque capability proving who installed the current provider."""

    __slots__ = ()

    def __repr__(self) -> str:
        return f"<AccessToken {id(self):#x}>"


# =========================
# Provider
# =========================
class EngineProvider:
    def __init__(
        self,
        engine: ResolutionEngine,
        pool: BoundedWorkerPool,
        data_sources: Iterable[str] = (),
        attribute_classes: Optional[Dict[str, str]] = None,
        config_loader: Optional[ConfigLoader] = None,
        read_only: bool = False,
    ):
        self._engine = engine
        self._pool = pool
        self._config_loader = config_loader
        self._read_only = read_only
        self._refresh_lock = threading.Lock()

        # Replaced wholesale on refresh, read without locking
        self._data_sources: FrozenSet[str] = frozenset(
            code.strip().upper() for code in data_sources
        )
        self._attribute_classes: Dict[str, str] = dict(
            attribute_classes
            if attribute_classes is not None
            else DEFAULT_ATTRIBUTE_CLASSES
        )

    @property
    def engine(self) -> ResolutionEngine:
        return self._engine

    @property
    def pool(self) -> BoundedWorkerPool:
        return self._pool

    @property
    def is_read_only(self) -> bool:
        return self._read_only

    def execute(self, work: WorkUnit) -> Any:
        """Run a work unit on one of the engine worker threads."""
        return self._pool.submit(work)

    def get_data_sources(self, *expected: str) -> FrozenSet[str]:
        """
        Return the known data source codes.

        If any ``expected`` code is missing and a config loader is set, the
        configuration is refreshed once first, since the data source may
        have been added after the last refresh.
        """
        data_sources = self._data_sources
        if self._config_loader is not None and any(
            code not in data_sources for code in expected
        ):
            self.refresh_config()
            data_sources = self._data_sources
        return data_sources

    def get_attribute_class(self, feature_type: Optional[str]) -> str:
        if not feature_type:
            return UNKNOWN_ATTRIBUTE_CLASS
        return self._attribute_classes.get(
            feature_type.upper(), UNKNOWN_ATTRIBUTE_CLASS
        )

    def refresh_config(self) -> bool:
        """
        Reload data sources and attribute classes from the config loader.

        Returns:
            True if a loader is configured and the refresh ran
        """
        if self._config_loader is None:
            return False

        with self._refresh_lock:
            config = self._config_loader()
            self._data_sources = frozenset(
                code.strip().upper() for code in config.data_sources
            )
            if config.attribute_classes:
                self._attribute_classes = {
                    key.upper(): value for key, value in config.attribute_classes.items()
                }

        logger.debug(f"Config refreshed: {sorted(self._data_sources)}")
        return True

    def close(self, wait_for_drain: bool = True) -> None:
        """Shut the worker pool down, then release the engine."""
        self._pool.close(wait_for_drain)
        self._engine.destroy()


# =========================
# Registry
# =========================
class ProviderRegistry:
    def __init__(self):
        self._lock = threading.Lock()
        self._provider: Optional[EngineProvider] = None
        self._token: Optional[AccessToken] = None

    def install(self, provider: EngineProvider) -> AccessToken:
        if provider is None:
            raise ValueError("The provider to install cannot be None")

        with self._lock:
            if self._provider is not None:
                raise AlreadyInstalledError(
                    "An engine provider is already installed: "
                    f"{type(self._provider).__name__}"
                )
            self._provider = provider
            self._token = AccessToken()
            logger.info("Engine provider installed")
            return self._token

    def uninstall(self, token: AccessToken) -> None:
        with self._lock:
            if self._token is not None and self._token is not token:
                raise InvalidTokenError()
            if self._provider is not None:
                logger.info("Engine provider uninstalled")
            self._provider = None
            self._token = None

    def current(self) -> EngineProvider:
        with self._lock:
            if self._provider is None:
                raise NotInstalledError()
            return self._provider

    @property
    def is_installed(self) -> bool:
        with self._lock:
            return self._provider is not None


registry = ProviderRegistry()


# The "bridge" that gives routes access to the engine
def get_provider() -> EngineProvider:
    return registry.current()
