"""
Call contract of the resolution engine.

The engine is an external collaborator: this module only describes what the
service needs from it. A concrete binding (native library, RPC client, ...)
subclasses ``ResolutionEngine`` and is plugged in through
``settings.ENGINE_FACTORY``.

Every operation returns an ``EngineReply``. A status of 0 means success and
``payload`` holds the engine's JSON text; any other status means the caller
has to read (and then clear) the engine's last exception.
"""

from abc import ABC, abstractmethod
from enum import IntFlag
from typing import NamedTuple, Optional


# Engine error codes the service reports as "not found"
DATA_SOURCE_NOT_FOUND_CODE = 27
RECORD_NOT_FOUND_CODE = 33
ENTITY_ID_NOT_FOUND_CODE = 37

NOT_FOUND_CODES = frozenset(
    {DATA_SOURCE_NOT_FOUND_CODE, RECORD_NOT_FOUND_CODE, ENTITY_ID_NOT_FOUND_CODE}
)


class EngineReply(NamedTuple):
    status: int
    payload: str = ""

    @property
    def ok(self) -> bool:
        return self.status == 0


class EngineFlags(IntFlag):
    """Bitmask telling the engine which parts of an entity to return."""

    NONE = 0
    ENTITY_INCLUDE_ALL_FEATURES = 1 << 0
    ENTITY_INCLUDE_REPRESENTATIVE_FEATURES = 1 << 1
    ENTITY_INCLUDE_ENTITY_NAME = 1 << 2
    ENTITY_INCLUDE_RECORD_SUMMARY = 1 << 3
    ENTITY_INCLUDE_RECORD_DATA = 1 << 4
    ENTITY_INCLUDE_RECORD_MATCHING_INFO = 1 << 5
    ENTITY_INCLUDE_RELATED_ENTITIES = 1 << 6
    ENTITY_INCLUDE_RELATED_ENTITY_NAME = 1 << 7
    ENTITY_INCLUDE_RELATED_MATCHING_INFO = 1 << 8
    ENTITY_INCLUDE_RELATED_RECORD_SUMMARY = 1 << 9
    ENTITY_INCLUDE_FEATURE_STATS = 1 << 10
    ENTITY_INCLUDE_INTERNAL_FEATURES = 1 << 11


class ResolutionEngine(ABC):
    """
    Abstract engine handle.

    Implementations are NOT expected to be thread-safe: the service only
    calls them from the worker pool threads.
    """

    # Record ingestion
    @abstractmethod
    def add_record(
        self,
        data_source: str,
        record_id: str,
        record_json: str,
        load_id: Optional[str] = None,
    ) -> EngineReply:
        ...

    @abstractmethod
    def add_record_with_returned_record_id(
        self, data_source: str, record_json: str, load_id: Optional[str] = None
    ) -> EngineReply:
        """Add a record and let the engine assign its id (returned as payload)."""

    # Lookups
    @abstractmethod
    def get_record(self, data_source: str, record_id: str) -> EngineReply:
        ...

    @abstractmethod
    def get_entity_by_entity_id(self, entity_id: int, flags: int) -> EngineReply:
        ...

    @abstractmethod
    def get_entity_by_record_id(
        self, data_source: str, record_id: str, flags: int
    ) -> EngineReply:
        ...

    # Networks
    @abstractmethod
    def find_network_by_entity_id(
        self,
        entity_ids_json: str,
        max_degrees: int,
        build_out_degrees: int,
        max_entity_count: int,
        flags: int,
    ) -> EngineReply:
        ...

    @abstractmethod
    def find_network_by_record_id(
        self,
        record_ids_json: str,
        max_degrees: int,
        build_out_degrees: int,
        max_entity_count: int,
        flags: int,
    ) -> EngineReply:
        ...

    # Search
    @abstractmethod
    def search_by_attributes(self, attributes_json: str, flags: int) -> EngineReply:
        ...

    # Last-error introspection
    @abstractmethod
    def get_last_exception_code(self) -> int:
        ...

    @abstractmethod
    def get_last_exception(self) -> str:
        ...

    @abstractmethod
    def clear_last_exception(self) -> None:
        ...

    def destroy(self) -> None:
        """Release the engine's resources. Called once at shutdown."""
