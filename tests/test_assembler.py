import pytest

from entity_service.core.errors import AssemblyError, NotFoundError
from entity_service.core.provider import DEFAULT_ATTRIBUTE_CLASSES
from entity_service.core.resolution import assembler, parsing
from payloads import entity_data, joe_network, record, resolved_entity


def lookup(feature_type):
    return DEFAULT_ATTRIBUTE_CLASSES.get((feature_type or "").upper(), "UNKNOWN")


def network_index(payload=None):
    payload = payload or joe_network()
    entities = parsing.parse_entity_data_list(payload["ENTITIES"], lookup)
    return assembler.build_network_index(entities)


def test_related_entities_present_in_the_network_are_hydrated():
    index = network_index()

    graph = assembler.augment_entity_graph(1, index, lookup)

    assert graph.entity_id == 1
    joseph, jo = graph.related_entities

    assert joseph.entity_id == 2
    assert joseph.partial is False
    assert [r.record_id for r in joseph.records] == ["1002", "1003"]
    assert joseph.record_summaries[0].record_count == 2
    assert joseph.feature_values("PHONE") == ["702-555-1212"]
    assert joseph.phone_data == ["HOME: 702-555-1212"]

    # cut off by the entity cap: stays as the engine reported it
    assert jo.entity_id == 3
    assert jo.partial is True
    assert jo.records == []
    assert jo.record_summaries[0].record_count == 1


def test_hydration_count_is_reported():
    index = network_index()

    assert assembler.augment_related_entities(index[1], index, lookup) == 1


def test_record_lookup_finds_the_owning_entity():
    index = network_index()

    assert assembler.find_entity_id_for_record(index, "CUSTOMERS", "1001") == 1
    assert assembler.find_entity_id_for_record(index, "customers", "1003") == 2
    assert assembler.find_entity_id_for_record(index, "WATCHLIST", "W-7") == 1
    assert assembler.find_entity_id_for_record(index, "CUSTOMERS", "9999") is None


def test_record_ids_are_matched_exactly():
    index = network_index()

    assert assembler.find_entity_id_for_record(index, "WATCHLIST", "w-7") is None


def test_first_entity_claiming_a_record_wins():
    payload = {
        "ENTITIES": [
            entity_data(resolved_entity(5, "First", [record("CUSTOMERS", "42")])),
            entity_data(resolved_entity(6, "Second", [record("CUSTOMERS", "42")])),
        ]
    }

    assert assembler.find_entity_id_for_record(network_index(payload), "CUSTOMERS", "42") == 5


def test_empty_network_means_not_found():
    with pytest.raises(NotFoundError):
        assembler.augment_entity_graph(1, {}, lookup)


def test_missing_target_in_a_non_empty_network_is_an_assembly_error():
    index = network_index()

    with pytest.raises(AssemblyError):
        assembler.augment_entity_graph(77, index, lookup)

    with pytest.raises(AssemblyError):
        assembler.augment_entity_graph(None, index, lookup)
