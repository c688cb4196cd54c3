# entity_service/core/resolution/orchestrator.py
"""
ORCHESTRATOR MODULE - Run every engine-backed operation end to end

Purpose:
    1. Validate and normalize caller input
    2. Resolve engine flags from the caller's options
    3. Wrap exactly one engine call in a work unit and run it on the pool
    4. Classify non-zero engine statuses (not found vs. engine failure)
    5. Parse, assemble and shape the result into a response schema

Data Flow:
    caller input → normalize/validate → get_flags() → work unit → provider.execute()
                                                                          ↓
                                                       engine status 0? → parse → assemble → shape
                                                                          ↓ no
                                                       last error code → NotFoundError / EngineFailureError

Every function blocks until the engine call completes. Once a work unit is
handed to the pool it runs to completion even if the HTTP request that asked
for it has gone away.
"""

import json
import logging
import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from entity_service.core import schemas
from entity_service.core.engine import NOT_FOUND_CODES, EngineReply, ResolutionEngine
from entity_service.core.errors import (
    EngineFailureError,
    ForbiddenOperationError,
    InputValidationError,
    NotFoundError,
    ServiceError,
)
from entity_service.core.provider import EngineProvider
from entity_service.core.resolution import assembler, parsing, shaper
from entity_service.core.resolution.shaper import ShapingOptions

logger = logging.getLogger(__name__)

EngineCall = Callable[[ResolutionEngine], EngineReply]


class OperationTimers:
    """Per-request phase timings (milliseconds) reported in response meta."""

    def __init__(self, operation: str):
        self.operation = operation
        self._started: Dict[str, float] = {}
        self._elapsed: Dict[str, float] = {}

    def start(self, name: str) -> None:
        self._started[name] = time.perf_counter()

    def stop(self, name: str) -> None:
        started = self._started.pop(name, None)
        if started is not None:
            elapsed = (time.perf_counter() - started) * 1000
            self._elapsed[name] = self._elapsed.get(name, 0.0) + elapsed

    @contextmanager
    def phase(self, name: str):
        self.start(name)
        try:
            yield
        finally:
            self.stop(name)

    def as_dict(self) -> Dict[str, float]:
        return {name: round(ms, 3) for name, ms in self._elapsed.items()}

    def meta(self) -> schemas.ResponseMeta:
        logger.debug(f"{self.operation} timers: {self.as_dict()}")
        return schemas.ResponseMeta(operation=self.operation, timers=self.as_dict())


# ============================================================================
# STEP 1: INPUT NORMALIZATION
# ============================================================================


def normalize_string(text: Optional[str]) -> Optional[str]:
    """Trim ``text``; blank strings become None."""
    if text is None:
        return None
    text = text.strip()
    return text or None


def normalize_data_source(code: Optional[str]) -> str:
    normalized = normalize_string(code)
    if normalized is None:
        raise InputValidationError("A data source code is required")
    return normalized.upper()


def ensure_json_fields(record: Dict[str, Any], fields: Dict[str, str]) -> Dict[str, Any]:
    """
    Make sure ``record`` carries ``fields`` (e.g. DATA_SOURCE, RECORD_ID).

    A field already present (upper- or lower-case key) must match the path
    value case-insensitively; an absent or blank field is filled in.

    Example:
        ensure_json_fields({"NAME_FIRST": "Joe"}, {"DATA_SOURCE": "TEST"})
        → {"NAME_FIRST": "Joe", "DATA_SOURCE": "TEST"}
    """
    if not isinstance(record, dict):
        raise InputValidationError("The record must be a JSON object")

    result = dict(record)
    for key, expected in fields.items():
        value = record.get(key.upper())
        if value is None:
            value = record.get(key.lower())

        if value is not None and str(value).strip():
            if str(value).strip().lower() != expected.lower():
                raise InputValidationError(
                    f"{key} from path and from request body do not match.  "
                    f"fromPath=[ {expected} ], fromRequestBody=[ {value} ]"
                )
        else:
            result[key] = expected

    return result


def check_data_source(provider: EngineProvider, data_source: str) -> None:
    if data_source not in provider.get_data_sources(data_source):
        raise NotFoundError(
            f"The specified data source is not recognized: {data_source}"
        )


def ensure_loading_allowed(provider: EngineProvider) -> None:
    if provider.is_read_only:
        raise ForbiddenOperationError(
            "Loading records is not allowed: the service is running in read-only mode"
        )


# ============================================================================
# STEP 2: ENGINE CALLS THROUGH THE POOL
# ============================================================================


def engine_failure(engine: ResolutionEngine, function: str) -> ServiceError:
    """
    Classify the engine's last error and clear it.

    Must run on the worker thread that made the failing call.
    """
    code = engine.get_last_exception_code()
    message = engine.get_last_exception()
    engine.clear_last_exception()

    if code in NOT_FOUND_CODES:
        return NotFoundError(message or "The requested item was not found", str(code))

    logger.warning(f"Engine call {function} failed: {code} {message}")
    return EngineFailureError(code, message)


def run_engine_call(
    provider: EngineProvider,
    timers: OperationTimers,
    function: str,
    call: EngineCall,
    require_payload: bool = False,
) -> str:
    """
    Run one engine call on the worker pool and return its payload.

    Args:
        provider: Installed engine provider
        timers: Request timers ("queue" and "engine.<function>" are recorded)
        function: Engine function name, used for timers and logs
        call: Receives the engine and performs exactly one call
        require_payload: Treat a blank payload as "not found"
    """

    def work() -> str:
        timers.stop("queue")
        engine = provider.engine

        with timers.phase(f"engine.{function}"):
            reply = call(engine)

        if not reply.ok:
            raise engine_failure(engine, function)

        if require_payload and not (reply.payload or "").strip():
            raise NotFoundError("The requested entity was not found")

        return reply.payload

    timers.start("queue")
    return provider.execute(work)


def _raw(payload: Dict[str, Any], with_raw: bool) -> Optional[Dict[str, Any]]:
    return payload if with_raw else None


# ============================================================================
# STEP 3: RECORDS
# ============================================================================


def load_record(
    provider: EngineProvider,
    data_source: str,
    record: Dict[str, Any],
    record_id: Optional[str] = None,
    load_id: Optional[str] = None,
) -> schemas.LoadRecordResponse:
    """
    Add (or replace) a record.

    Without ``record_id`` the engine assigns one (or takes it from the body)
    and returns it. The data source is checked before any worker is used.
    """
    timers = OperationTimers("load_record")
    ensure_loading_allowed(provider)

    data_source = normalize_data_source(data_source)
    load_id = normalize_string(load_id)

    fields = {"DATA_SOURCE": data_source}
    if record_id is not None:
        fields["RECORD_ID"] = record_id
    record_json = json.dumps(ensure_json_fields(record, fields))

    check_data_source(provider, data_source)

    if record_id is None:
        payload = run_engine_call(
            provider,
            timers,
            "addRecordWithReturnedRecordID",
            lambda engine: engine.add_record_with_returned_record_id(
                data_source, record_json, load_id
            ),
        )
        record_id = payload.strip()
    else:
        run_engine_call(
            provider,
            timers,
            "addRecord",
            lambda engine: engine.add_record(data_source, record_id, record_json, load_id),
        )

    logger.info(f"Loaded record {data_source}:{record_id}")
    return schemas.LoadRecordResponse(
        meta=timers.meta(), data=schemas.LoadRecordData(record_id=record_id)
    )


def get_record(
    provider: EngineProvider,
    data_source: str,
    record_id: str,
    with_raw: bool = False,
) -> schemas.RecordResponse:
    timers = OperationTimers("get_record")
    data_source = normalize_data_source(data_source)

    raw = run_engine_call(
        provider,
        timers,
        "getRecord",
        lambda engine: engine.get_record(data_source, record_id),
        require_payload=True,
    )

    with timers.phase("processing"):
        payload = parsing.parse_json_object(raw)
        record = parsing.parse_entity_record(payload)

    return schemas.RecordResponse(
        meta=timers.meta(),
        data=schemas.RecordData(record=record),
        raw_data=_raw(payload, with_raw),
    )


# ============================================================================
# STEP 4: ENTITIES
# ============================================================================


def _find_related_network(
    provider: EngineProvider,
    timers: OperationTimers,
    function: str,
    lookup_json: str,
    flags: int,
    by_record: bool,
) -> Tuple[Dict[str, Any], assembler.NetworkResultIndex]:
    def call(engine: ResolutionEngine) -> EngineReply:
        find = (
            engine.find_network_by_record_id
            if by_record
            else engine.find_network_by_entity_id
        )
        return find(
            lookup_json,
            assembler.RELATED_MAX_DEGREES,
            assembler.RELATED_BUILD_OUT_DEGREES,
            assembler.RELATED_MAX_ENTITY_COUNT,
            flags,
        )

    raw = run_engine_call(provider, timers, function, call)
    payload = parsing.parse_json_object(raw)
    entities = parsing.parse_entity_data_list(
        payload.get("ENTITIES") or [], provider.get_attribute_class
    )
    return payload, assembler.build_network_index(entities)


def get_entity_by_record_id(
    provider: EngineProvider,
    data_source: str,
    record_id: str,
    options: Optional[ShapingOptions] = None,
    with_related: bool = False,
    with_raw: bool = False,
) -> schemas.EntityResponse:
    """
    Fetch the entity a record resolved to.

    With ``with_related`` (and not ``force_minimal``) a 1-degree network is
    queried instead so the related entities come back fully hydrated.
    """
    timers = OperationTimers("get_entity_by_record_id")
    options = (options or ShapingOptions()).model_copy(update={"with_relationships": True})
    data_source = normalize_data_source(data_source)
    flags = int(shaper.get_flags(options))

    if with_related and not options.force_minimal:
        record_ids = json.dumps(
            {"RECORDS": [{"DATA_SOURCE": data_source, "RECORD_ID": record_id}]}
        )
        payload, index = _find_related_network(
            provider, timers, "findNetworkByRecordID", record_ids, flags, by_record=True
        )
        with timers.phase("processing"):
            entity_id = assembler.find_entity_id_for_record(index, data_source, record_id)
            graph = assembler.augment_entity_graph(
                entity_id, index, provider.get_attribute_class
            )
    else:
        raw = run_engine_call(
            provider,
            timers,
            "getEntityByRecordID",
            lambda engine: engine.get_entity_by_record_id(data_source, record_id, flags),
            require_payload=True,
        )
        with timers.phase("processing"):
            payload = parsing.parse_json_object(raw)
            graph = parsing.parse_entity_data(payload, provider.get_attribute_class)

    shaper.post_process_entity_data(graph, options)

    return schemas.EntityResponse(
        meta=timers.meta(), data=graph, raw_data=_raw(payload, with_raw)
    )


def get_entity_by_entity_id(
    provider: EngineProvider,
    entity_id: int,
    options: Optional[ShapingOptions] = None,
    with_related: bool = False,
    with_raw: bool = False,
) -> schemas.EntityResponse:
    timers = OperationTimers("get_entity_by_entity_id")
    options = (options or ShapingOptions()).model_copy(update={"with_relationships": True})
    flags = int(shaper.get_flags(options))

    if with_related and not options.force_minimal:
        entity_ids = json.dumps({"ENTITIES": [{"ENTITY_ID": entity_id}]})
        payload, index = _find_related_network(
            provider, timers, "findNetworkByEntityID", entity_ids, flags, by_record=False
        )
        with timers.phase("processing"):
            graph = assembler.augment_entity_graph(
                entity_id, index, provider.get_attribute_class
            )
    else:
        raw = run_engine_call(
            provider,
            timers,
            "getEntityByEntityID",
            lambda engine: engine.get_entity_by_entity_id(entity_id, flags),
            require_payload=True,
        )
        with timers.phase("processing"):
            payload = parsing.parse_json_object(raw)
            graph = parsing.parse_entity_data(payload, provider.get_attribute_class)

    shaper.post_process_entity_data(graph, options)

    return schemas.EntityResponse(
        meta=timers.meta(), data=graph, raw_data=_raw(payload, with_raw)
    )


# ============================================================================
# STEP 5: SEARCH
# ============================================================================


def build_search_criteria(
    attrs: Optional[str], attr_params: Iterable[Tuple[str, str]] = ()
) -> str:
    """
    Build the search JSON from ``attrs`` or from ``attr_<NAME>`` parameters.

    Examples:
        attrs='{"NAME_FULL": "Joe Schmoe"}' → same JSON
        [("attr_NAME_FULL", "Joe Schmoe")] → {"NAME_FULL": "Joe Schmoe"}
        [("attr_PHONE_NUMBER", "1"), ("attr_PHONE_NUMBER", "2")]
            → {"PHONE_NUMBER": [{"PHONE_NUMBER": "1"}, {"PHONE_NUMBER": "2"}]}
    """
    if attrs is not None and attrs.strip():
        try:
            criteria = json.loads(attrs)
        except ValueError as error:
            raise InputValidationError(f'Parameter "attrs" is not valid JSON: {error}')
        if not isinstance(criteria, dict) or not criteria:
            raise InputValidationError(
                'Parameter "attrs" must be a non-empty JSON object'
            )
        return json.dumps(criteria)

    grouped: Dict[str, List[str]] = {}
    for key, value in attr_params:
        key = key.strip()
        if not key.lower().startswith("attr_") or len(key) <= len("attr_"):
            continue
        grouped.setdefault(key[len("attr_"):], []).append(value)

    criteria: Dict[str, Any] = {}
    for prop, values in grouped.items():
        if len(values) == 1:
            criteria[prop] = values[0]
        else:
            criteria[prop] = [{prop: value} for value in values]

    if not criteria:
        raise InputValidationError(
            'Parameter missing or empty: "attrs".  '
            "Search criteria attributes are required."
        )
    return json.dumps(criteria)


def search_by_attributes(
    provider: EngineProvider,
    criteria_json: str,
    options: Optional[ShapingOptions] = None,
    with_raw: bool = False,
) -> schemas.AttributeSearchResponse:
    timers = OperationTimers("search_by_attributes")
    options = options or ShapingOptions()
    flags = int(shaper.get_flags(options))

    raw = run_engine_call(
        provider,
        timers,
        "searchByAttributes",
        lambda engine: engine.search_by_attributes(criteria_json, flags),
    )

    with timers.phase("processing"):
        payload = parsing.parse_json_object(raw)
        results = parsing.parse_search_results(payload, provider.get_attribute_class)
        shaper.post_process_search_results(results, options)

    return schemas.AttributeSearchResponse(
        meta=timers.meta(),
        data=schemas.AttributeSearchData(search_results=results),
        raw_data=_raw(payload, with_raw),
    )


# ============================================================================
# STEP 6: NETWORKS
# ============================================================================


def parse_record_key(text: str) -> Tuple[str, str]:
    """'TEST:ABC123' → ('TEST', 'ABC123'); the record id may contain ':'."""
    data_source, sep, record_id = text.partition(":")
    if not sep or not data_source.strip() or not record_id:
        raise InputValidationError(
            f"Record keys must look like DATA_SOURCE:RECORD_ID, got: {text!r}"
        )
    return normalize_data_source(data_source), record_id


def find_network(
    provider: EngineProvider,
    entity_ids: Optional[List[int]] = None,
    record_keys: Optional[List[str]] = None,
    max_degrees: int = 3,
    build_out_degrees: int = 1,
    max_entity_count: int = 1000,
    options: Optional[ShapingOptions] = None,
    with_raw: bool = False,
) -> schemas.EntityNetworkResponse:
    """
    Find the network connecting the given entities (or records).

    Exactly one of ``entity_ids`` / ``record_keys`` must be given. Every
    returned entity has its related entities hydrated from the same result.
    """
    timers = OperationTimers("find_network")
    options = (options or ShapingOptions()).model_copy(update={"with_relationships": True})

    if bool(entity_ids) == bool(record_keys):
        raise InputValidationError(
            "Specify either entity ids or record keys (but not both) to find a network"
        )
    if max_degrees < 1 or build_out_degrees < 0 or max_entity_count < 1:
        raise InputValidationError(
            "maxDegrees and maxEntities must be positive and buildOut not negative"
        )

    flags = int(shaper.get_flags(options))

    if entity_ids:
        function = "findNetworkByEntityID"
        lookup_json = json.dumps(
            {"ENTITIES": [{"ENTITY_ID": entity_id} for entity_id in entity_ids]}
        )
    else:
        function = "findNetworkByRecordID"
        keys = [parse_record_key(key) for key in record_keys]
        lookup_json = json.dumps(
            {
                "RECORDS": [
                    {"DATA_SOURCE": data_source, "RECORD_ID": record_id}
                    for data_source, record_id in keys
                ]
            }
        )

    def call(engine: ResolutionEngine) -> EngineReply:
        find = (
            engine.find_network_by_entity_id
            if entity_ids
            else engine.find_network_by_record_id
        )
        return find(lookup_json, max_degrees, build_out_degrees, max_entity_count, flags)

    raw = run_engine_call(provider, timers, function, call)

    with timers.phase("processing"):
        payload = parsing.parse_json_object(raw)
        network = parsing.parse_network(payload, provider.get_attribute_class)
        index = assembler.build_network_index(network.entities)
        for graph in network.entities:
            assembler.augment_related_entities(graph, index, provider.get_attribute_class)
            shaper.post_process_entity_data(graph, options)

    return schemas.EntityNetworkResponse(
        meta=timers.meta(), data=network, raw_data=_raw(payload, with_raw)
    )


# ============================================================================
# STEP 7: CONFIG
# ============================================================================


def get_data_sources(provider: EngineProvider) -> schemas.DataSourcesResponse:
    timers = OperationTimers("get_data_sources")
    return schemas.DataSourcesResponse(
        meta=timers.meta(),
        data=schemas.DataSourcesData(data_sources=sorted(provider.get_data_sources())),
    )
