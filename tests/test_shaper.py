from entity_service.core.engine import EngineFlags
from entity_service.core.models import FeatureMode
from entity_service.core.provider import DEFAULT_ATTRIBUTE_CLASSES
from entity_service.core.resolution import parsing, shaper
from entity_service.core.resolution.shaper import ShapingOptions
from payloads import entity_data, name_features, record, related_entity, resolved_entity


def lookup(feature_type):
    return DEFAULT_ATTRIBUTE_CLASSES.get((feature_type or "").upper(), "UNKNOWN")


def joe_graph():
    payload = entity_data(
        resolved_entity(
            1,
            "Joe",
            [record("CUSTOMERS", "1001")],
            features=name_features("Joe", "Joe", "Joseph"),
        ),
        related=[related_entity(2, "Joey")],
    )
    return parsing.parse_entity_data(payload, lookup)


# =========================
# Post-processing
# =========================
def test_representative_mode_strips_exact_duplicates():
    graph = joe_graph()

    shaper.post_process_entity_data(
        graph, ShapingOptions(feature_mode=FeatureMode.REPRESENTATIVE)
    )

    assert graph.resolved_entity.feature_values("NAME") == ["Joe", "Joseph"]
    assert graph.resolved_entity.name_data == ["PRIMARY: Joe", "PRIMARY: Joseph"]
    assert graph.resolved_entity.partial is False


def test_with_duplicates_keeps_everything():
    graph = joe_graph()

    shaper.post_process_entity_data(graph, ShapingOptions())

    assert graph.resolved_entity.feature_values("NAME") == ["Joe", "Joe", "Joseph"]


def test_force_minimal_marks_every_entity_partial():
    graph = joe_graph()

    shaper.post_process_entity_data(graph, ShapingOptions(force_minimal=True))

    assert all(entity.partial for entity in graph.iter_entities())


def test_feature_mode_none_marks_every_entity_partial():
    graph = joe_graph()

    shaper.post_process_entity_data(graph, ShapingOptions(feature_mode=FeatureMode.NONE))

    assert graph.resolved_entity.partial is True
    assert graph.related_entities[0].partial is True


def test_marking_partial_twice_changes_nothing():
    graph = joe_graph()
    shaper.mark_entities_partial(graph)
    once = graph.model_dump()

    shaper.mark_entities_partial(graph)

    assert graph.model_dump() == once


def test_search_results_are_shaped_one_by_one():
    payload = {
        "RESOLVED_ENTITIES": [
            {
                "MATCH_INFO": {"MATCH_LEVEL": 1, "MATCH_KEY": "+NAME", "ERRULE_CODE": "SF1"},
                "ENTITY": entity_data(
                    resolved_entity(
                        1, "Joe", [record("CUSTOMERS", "1")], name_features("Joe", "Joe")
                    )
                ),
            }
        ]
    }
    results = parsing.parse_search_results(payload, lookup)

    shaper.post_process_search_results(
        results, ShapingOptions(feature_mode=FeatureMode.REPRESENTATIVE)
    )

    assert results[0].match_key == "+NAME"
    assert results[0].entity.resolved_entity.feature_values("NAME") == ["Joe"]


# =========================
# Flags
# =========================
def test_default_flags_ask_for_full_detail():
    flags = shaper.get_flags(ShapingOptions())

    assert flags & EngineFlags.ENTITY_INCLUDE_ALL_FEATURES
    assert flags & EngineFlags.ENTITY_INCLUDE_RECORD_DATA
    assert flags & EngineFlags.ENTITY_INCLUDE_RELATED_ENTITIES
    assert flags & EngineFlags.ENTITY_INCLUDE_RELATED_RECORD_SUMMARY
    assert not flags & EngineFlags.ENTITY_INCLUDE_REPRESENTATIVE_FEATURES


def test_representative_mode_asks_for_representative_features():
    flags = shaper.get_flags(ShapingOptions(feature_mode=FeatureMode.REPRESENTATIVE))

    assert flags & EngineFlags.ENTITY_INCLUDE_REPRESENTATIVE_FEATURES
    assert not flags & EngineFlags.ENTITY_INCLUDE_ALL_FEATURES


def test_feature_mode_none_asks_for_no_features():
    flags = shaper.get_flags(ShapingOptions(feature_mode=FeatureMode.NONE))

    assert not flags & EngineFlags.ENTITY_INCLUDE_ALL_FEATURES
    assert not flags & EngineFlags.ENTITY_INCLUDE_REPRESENTATIVE_FEATURES
    assert flags & EngineFlags.ENTITY_INCLUDE_RECORD_SUMMARY


def test_force_minimal_drops_detail_but_keeps_pass_through_flags():
    flags = shaper.get_flags(
        ShapingOptions(
            force_minimal=True, with_feature_stats=True, with_derived_features=True
        )
    )

    assert flags == (
        EngineFlags.ENTITY_INCLUDE_RELATED_ENTITIES
        | EngineFlags.ENTITY_INCLUDE_FEATURE_STATS
        | EngineFlags.ENTITY_INCLUDE_INTERNAL_FEATURES
    )


def test_minimal_without_relationships_is_empty():
    flags = shaper.get_flags(
        ShapingOptions(force_minimal=True, with_relationships=False)
    )

    assert flags == EngineFlags.NONE
