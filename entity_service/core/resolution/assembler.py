# entity_service/core/resolution/assembler.py
"""
ASSEMBLER MODULE - Stitch network query output into hydrated entity graphs

Purpose:
    1. Index every entity a network query returned by entity id
    2. Find the requested entity (by id, or by one of its records)
    3. Backfill partial related entities from their full copy in the index

Data Flow:
    network entities → build_network_index() → {entity_id: EntityGraph}
                                                         ↓
                              find_entity_id_for_record() (record-based requests)
                                                         ↓
                                   augment_entity_graph() → hydrated EntityGraph

Why this matters:
    - A plain entity lookup returns related entities in abbreviated form
    - The 1-degree network query returns every related entity in full too
    - Copying the full data over saves one engine call per related entity
"""

import logging
from typing import Dict, Iterable, Optional

from entity_service.core.errors import AssemblyError, NotFoundError
from entity_service.core.models import AttributeClassLookup, EntityGraph

logger = logging.getLogger(__name__)

# Bounds for the network query behind "withRelated" lookups
RELATED_MAX_DEGREES = 1
RELATED_BUILD_OUT_DEGREES = 1
RELATED_MAX_ENTITY_COUNT = 1000

NetworkResultIndex = Dict[int, EntityGraph]


def build_network_index(entities: Iterable[EntityGraph]) -> NetworkResultIndex:
    return {graph.entity_id: graph for graph in entities}


def find_entity_id_for_record(
    index: NetworkResultIndex, data_source: str, record_id: str
) -> Optional[int]:
    """
    Find the entity owning the (data source, record id) pair.

    A record belongs to exactly one entity; should the engine ever report it
    under two, the first entity in the engine's result order wins.
    """
    data_source = data_source.upper()
    for graph in index.values():
        for record in graph.resolved_entity.records:
            if record.data_source.upper() == data_source and record.record_id == record_id:
                return graph.entity_id
    return None


def augment_related_entities(
    graph: EntityGraph, index: NetworkResultIndex, lookup: AttributeClassLookup
) -> int:
    """
    Hydrate the related entities of ``graph`` in place.

    Related entities missing from the index (cut off by the entity count
    cap) stay partial; that is expected and not an error.

    Returns:
        Number of related entities that were hydrated
    """
    hydrated = 0
    for related in graph.related_entities:
        related_graph = index.get(related.entity_id)
        if related_graph is None:
            continue

        source = related_graph.resolved_entity
        related.set_features(source.features, lookup)
        related.set_records(source.records)
        if source.entity_name and not related.entity_name:
            related.entity_name = source.entity_name
        related.partial = False
        hydrated += 1

    return hydrated


def augment_entity_graph(
    entity_id: Optional[int],
    index: NetworkResultIndex,
    lookup: AttributeClassLookup,
) -> EntityGraph:
    """
    Return the graph for ``entity_id`` with its related entities hydrated.

    Raises:
        NotFoundError: the network result was empty
        AssemblyError: entities came back but none is the requested one
    """
    if not index:
        raise NotFoundError("The requested entity was not found")

    graph = index.get(entity_id) if entity_id is not None else None
    if graph is None:
        raise AssemblyError(
            f"Network result does not contain the requested entity: {entity_id}"
        )

    hydrated = augment_related_entities(graph, index, lookup)
    logger.debug(
        f"Entity {entity_id}: hydrated {hydrated}/{len(graph.related_entities)} related entities"
    )
    return graph
