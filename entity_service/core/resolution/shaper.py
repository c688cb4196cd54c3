# entity_service/core/resolution/shaper.py
"""
SHAPER MODULE - Apply the caller's visibility options to entity graphs

Purpose:
    1. Translate caller options into engine flags (before the engine call)
    2. Strip duplicate feature values (REPRESENTATIVE mode)
    3. Mark entities partial when detail was not requested

Option effects:
    forceMinimal             → no feature/record detail, every entity partial
    featureMode=NONE         → no features requested, every entity partial
    featureMode=REPRESENTATIVE → exact duplicate values removed per feature type
    featureMode=WITH_DUPLICATES → nothing stripped
    withRelationships        → related-entity flags (search only)
    withFeatureStats / withDerivedFeatures → passed through as flags
"""

from typing import Iterable

from pydantic import BaseModel

from entity_service.core.engine import EngineFlags
from entity_service.core.models import (
    AttributeSearchResult,
    EntityGraph,
    FeatureMode,
)


class ShapingOptions(BaseModel):
    force_minimal: bool = False
    feature_mode: FeatureMode = FeatureMode.WITH_DUPLICATES
    with_feature_stats: bool = False
    with_derived_features: bool = False
    with_relationships: bool = True


# ============================================================================
# STEP 1: ENGINE FLAGS
# ============================================================================


def get_flags(options: ShapingOptions) -> EngineFlags:
    """
    Build the engine flag bitmask for the given options.

    Examples:
        ShapingOptions(force_minimal=True, with_relationships=False) → EngineFlags.NONE
        ShapingOptions(feature_mode=REPRESENTATIVE) → ... | ENTITY_INCLUDE_REPRESENTATIVE_FEATURES
    """
    flags = EngineFlags.NONE

    if options.with_relationships:
        flags |= EngineFlags.ENTITY_INCLUDE_RELATED_ENTITIES

    if options.with_feature_stats:
        flags |= EngineFlags.ENTITY_INCLUDE_FEATURE_STATS
    if options.with_derived_features:
        flags |= EngineFlags.ENTITY_INCLUDE_INTERNAL_FEATURES

    # Minimal responses only carry entity ids (and relation ids)
    if options.force_minimal:
        return flags

    flags |= (
        EngineFlags.ENTITY_INCLUDE_ENTITY_NAME
        | EngineFlags.ENTITY_INCLUDE_RECORD_SUMMARY
        | EngineFlags.ENTITY_INCLUDE_RECORD_DATA
        | EngineFlags.ENTITY_INCLUDE_RECORD_MATCHING_INFO
    )

    if options.feature_mode == FeatureMode.REPRESENTATIVE:
        flags |= EngineFlags.ENTITY_INCLUDE_REPRESENTATIVE_FEATURES
    elif options.feature_mode == FeatureMode.WITH_DUPLICATES:
        flags |= EngineFlags.ENTITY_INCLUDE_ALL_FEATURES

    if options.with_relationships:
        flags |= (
            EngineFlags.ENTITY_INCLUDE_RELATED_ENTITY_NAME
            | EngineFlags.ENTITY_INCLUDE_RELATED_MATCHING_INFO
            | EngineFlags.ENTITY_INCLUDE_RELATED_RECORD_SUMMARY
        )

    return flags


# ============================================================================
# STEP 2: REDACTION
# ============================================================================


def strip_duplicate_feature_values(graph: EntityGraph) -> None:
    for entity in graph.iter_entities():
        entity.strip_duplicate_feature_values()


def mark_entities_partial(graph: EntityGraph) -> None:
    for entity in graph.iter_entities():
        entity.partial = True


def post_process_entity_data(graph: EntityGraph, options: ShapingOptions) -> EntityGraph:
    if options.feature_mode == FeatureMode.REPRESENTATIVE:
        strip_duplicate_feature_values(graph)

    if options.feature_mode == FeatureMode.NONE or options.force_minimal:
        mark_entities_partial(graph)

    return graph


def post_process_search_results(
    results: Iterable[AttributeSearchResult], options: ShapingOptions
) -> None:
    for result in results:
        post_process_entity_data(result.entity, options)
