import pytest

from entity_service.core.errors import ForbiddenOperationError, InputValidationError
from entity_service.core.provider import EngineProvider
from entity_service.core.resolution import orchestrator
from entity_service.core.worker_pool import BoundedWorkerPool


def test_read_only_service_refuses_loads(engine):
    provider = EngineProvider(
        engine, BoundedWorkerPool(1, "read-only-worker"), ["CUSTOMERS"], read_only=True
    )
    try:
        with pytest.raises(ForbiddenOperationError):
            orchestrator.load_record(provider, "CUSTOMERS", {"NAME_FULL": "Joe"})
        assert engine.calls == []
    finally:
        provider.close()


def test_blank_data_source_is_rejected(provider, engine):
    with pytest.raises(InputValidationError):
        orchestrator.load_record(provider, "   ", {"NAME_FULL": "Joe"})
    assert engine.calls == []


def test_json_fields_are_filled_in():
    record = {"NAME_FULL": "Joe", "data_source": ""}

    result = orchestrator.ensure_json_fields(
        record, {"DATA_SOURCE": "CUSTOMERS", "RECORD_ID": "1001"}
    )

    assert result["DATA_SOURCE"] == "CUSTOMERS"
    assert result["RECORD_ID"] == "1001"
    assert "RECORD_ID" not in record


def test_json_fields_match_case_insensitively():
    record = {"DATA_SOURCE": "customers"}

    assert orchestrator.ensure_json_fields(record, {"DATA_SOURCE": "CUSTOMERS"}) == record


def test_json_fields_must_match_the_path():
    with pytest.raises(InputValidationError) as raised:
        orchestrator.ensure_json_fields({"RECORD_ID": "2"}, {"RECORD_ID": "1"})

    assert "fromPath=[ 1 ]" in raised.value.message


def test_record_must_be_an_object():
    with pytest.raises(InputValidationError):
        orchestrator.ensure_json_fields(["not", "an", "object"], {"DATA_SOURCE": "X"})


def test_search_criteria_prefers_attrs():
    criteria = orchestrator.build_search_criteria(
        '{"NAME_FULL": "Joe"}', [("attr_NAME_FULL", "ignored")]
    )

    assert criteria == '{"NAME_FULL": "Joe"}'


@pytest.mark.parametrize("attrs", ["[]", "{}", "3"])
def test_search_criteria_must_be_a_non_empty_object(attrs):
    with pytest.raises(InputValidationError):
        orchestrator.build_search_criteria(attrs)


def test_search_criteria_ignores_unrelated_parameters():
    with pytest.raises(InputValidationError):
        orchestrator.build_search_criteria(
            None, [("featureMode", "NONE"), ("attr_", "empty name")]
        )


@pytest.mark.parametrize(
    "text, expected",
    [
        ("TEST:ABC123", ("TEST", "ABC123")),
        (" test :ABC123", ("TEST", "ABC123")),
        ("TEST:A:B", ("TEST", "A:B")),
    ],
)
def test_parse_record_key(text, expected):
    assert orchestrator.parse_record_key(text) == expected


@pytest.mark.parametrize("text", ["ABC123", ":ABC123", "TEST:"])
def test_parse_record_key_rejects_malformed_keys(text):
    with pytest.raises(InputValidationError):
        orchestrator.parse_record_key(text)


def test_timers_accumulate_per_phase():
    timers = orchestrator.OperationTimers("demo")

    with timers.phase("processing"):
        pass
    with timers.phase("processing"):
        pass
    timers.stop("never-started")

    meta = timers.meta()
    assert meta.operation == "demo"
    assert list(meta.timers) == ["processing"]
    assert meta.timers["processing"] >= 0
