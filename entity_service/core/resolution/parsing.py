# entity_service/core/resolution/parsing.py
"""
PARSING MODULE - Turn raw engine JSON into typed entity models

Purpose:
    1. Parse records, resolved entities and related entities
    2. Parse whole entity graphs, search results and networks
    3. Group feature values by attribute class while parsing

Data Flow:
    engine JSON text → parse_json_object() → parse_entity_data() → EntityGraph
                                           → parse_search_results() → [AttributeSearchResult]
                                           → parse_network() → EntityNetwork

Engine payload shape (keys the service reads):
    {
        "RESOLVED_ENTITY": {
            "ENTITY_ID": 1, "ENTITY_NAME": "Joe Schmoe",
            "FEATURES": {"NAME": [{"LIB_FEAT_ID": 7, "FEAT_DESC": "Joe Schmoe", "USAGE_TYPE": "PRIMARY"}]},
            "RECORDS": [{"DATA_SOURCE": "TEST", "RECORD_ID": "ABC123", ...}],
            "RECORD_SUMMARY": [{"DATA_SOURCE": "TEST", "RECORD_COUNT": 1}]
        },
        "RELATED_ENTITIES": [
            {"ENTITY_ID": 2, "MATCH_LEVEL": 3, "MATCH_KEY": "+PHONE", "IS_DISCLOSED": 0, ...}
        ]
    }
"""

import json
from typing import Any, Dict, List, Optional

from entity_service.core.errors import AssemblyError
from entity_service.core.models import (
    AttributeClassLookup,
    AttributeSearchResult,
    DataSourceRecordSummary,
    EntityBase,
    EntityFeature,
    EntityGraph,
    EntityNetwork,
    EntityPath,
    EntityRecord,
    RelatedEntity,
    RelationType,
    ResolvedEntity,
)


# ============================================================================
# STEP 1: RAW TEXT
# ============================================================================


def parse_json_object(text: str) -> Dict[str, Any]:
    """
    Parse engine output that must be a JSON object.

    Malformed output is an engine/service defect, not a caller error.
    """
    try:
        value = json.loads(text)
    except (TypeError, ValueError) as error:
        raise AssemblyError(f"Engine returned malformed JSON: {error}")

    if not isinstance(value, dict):
        raise AssemblyError("Engine returned JSON that is not an object")
    return value


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


# ============================================================================
# STEP 2: RECORDS AND FEATURES
# ============================================================================


def _parse_feature_value(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        return _optional_str(value.get("FEAT_DESC"))
    return _optional_str(value)


def parse_entity_record(obj: Dict[str, Any]) -> EntityRecord:
    """
    Parse one record.

    Handles both the record lookup payload ("JSON_DATA" holds the record as it
    was loaded) and records embedded in an entity (match info, no JSON_DATA).
    """
    features: Dict[str, List[str]] = {}
    for feature_type, values in (obj.get("FEATURES") or {}).items():
        parsed = [_parse_feature_value(value) for value in values or []]
        features[feature_type] = [value for value in parsed if value is not None]

    original = obj.get("JSON_DATA")
    if isinstance(original, str):
        original = parse_json_object(original) if original.strip() else None

    return EntityRecord(
        data_source=str(obj.get("DATA_SOURCE", "")).strip().upper(),
        record_id=str(obj.get("RECORD_ID", "")),
        match_key=_optional_str(obj.get("MATCH_KEY")),
        match_level=_optional_int(obj.get("MATCH_LEVEL")),
        resolution_rule_code=_optional_str(obj.get("ERRULE_CODE")),
        features=features,
        original_data=original,
    )


def parse_features(obj: Dict[str, Any]) -> Dict[str, List[EntityFeature]]:
    features: Dict[str, List[EntityFeature]] = {}
    for feature_type, values in (obj or {}).items():
        parsed = []
        for value in values or []:
            if isinstance(value, dict):
                text = _optional_str(value.get("FEAT_DESC"))
                if text is None:
                    continue
                parsed.append(
                    EntityFeature(
                        feature_id=_optional_int(value.get("LIB_FEAT_ID")),
                        value=text,
                        usage_type=_optional_str(value.get("USAGE_TYPE")),
                    )
                )
            elif _optional_str(value) is not None:
                parsed.append(EntityFeature(value=str(value).strip()))
        features[feature_type] = parsed
    return features


def _parse_record_summaries(values: Any) -> List[DataSourceRecordSummary]:
    return [
        DataSourceRecordSummary(
            data_source=str(item.get("DATA_SOURCE", "")).strip().upper(),
            record_count=int(item.get("RECORD_COUNT", 0)),
        )
        for item in values or []
    ]


def _fill_entity(
    entity: EntityBase, obj: Dict[str, Any], lookup: AttributeClassLookup
) -> None:
    if "FEATURES" in obj:
        entity.set_features(parse_features(obj["FEATURES"]), lookup)

    if "RECORDS" in obj:
        entity.set_records([parse_entity_record(r) for r in obj["RECORDS"] or []])
    elif "RECORD_SUMMARY" in obj:
        entity.record_summaries = _parse_record_summaries(obj["RECORD_SUMMARY"])


# ============================================================================
# STEP 3: ENTITIES
# ============================================================================


def parse_resolved_entity(
    obj: Dict[str, Any], lookup: AttributeClassLookup
) -> ResolvedEntity:
    entity = ResolvedEntity(
        entity_id=int(obj["ENTITY_ID"]),
        entity_name=_optional_str(obj.get("ENTITY_NAME")),
    )
    _fill_entity(entity, obj, lookup)
    return entity


def relation_type_for(
    match_level: Optional[int], is_disclosed: bool, is_ambiguous: bool
) -> RelationType:
    if is_ambiguous:
        return RelationType.AMBIGUOUS_MATCH
    if is_disclosed:
        return RelationType.DISCLOSED_RELATION
    if match_level is not None and match_level <= 2:
        return RelationType.POSSIBLE_MATCH
    return RelationType.POSSIBLE_RELATION


def parse_related_entity(
    obj: Dict[str, Any], lookup: AttributeClassLookup
) -> RelatedEntity:
    match_level = _optional_int(obj.get("MATCH_LEVEL"))
    is_disclosed = bool(_optional_int(obj.get("IS_DISCLOSED")) or 0)
    is_ambiguous = bool(_optional_int(obj.get("IS_AMBIGUOUS")) or 0)

    entity = RelatedEntity(
        entity_id=int(obj["ENTITY_ID"]),
        entity_name=_optional_str(obj.get("ENTITY_NAME")),
        match_level=match_level,
        match_key=_optional_str(obj.get("MATCH_KEY")),
        resolution_rule_code=_optional_str(obj.get("ERRULE_CODE")),
        is_disclosed=is_disclosed,
        is_ambiguous=is_ambiguous,
        relation_type=relation_type_for(match_level, is_disclosed, is_ambiguous),
    )
    _fill_entity(entity, obj, lookup)

    # network build-outs usually omit these to keep the payload small
    entity.partial = not ("FEATURES" in obj and "RECORDS" in obj)
    return entity


def parse_entity_data(obj: Dict[str, Any], lookup: AttributeClassLookup) -> EntityGraph:
    resolved = obj.get("RESOLVED_ENTITY")
    if not isinstance(resolved, dict):
        raise AssemblyError("Entity payload is missing RESOLVED_ENTITY")

    return EntityGraph(
        resolved_entity=parse_resolved_entity(resolved, lookup),
        related_entities=[
            parse_related_entity(related, lookup)
            for related in obj.get("RELATED_ENTITIES") or []
        ],
    )


def parse_entity_data_list(
    values: List[Dict[str, Any]], lookup: AttributeClassLookup
) -> List[EntityGraph]:
    return [parse_entity_data(value, lookup) for value in values or []]


# ============================================================================
# STEP 4: SEARCH RESULTS AND NETWORKS
# ============================================================================


def parse_search_results(
    obj: Dict[str, Any], lookup: AttributeClassLookup
) -> List[AttributeSearchResult]:
    results = []
    for item in obj.get("RESOLVED_ENTITIES") or []:
        match_info = item.get("MATCH_INFO") or {}
        results.append(
            AttributeSearchResult(
                match_level=_optional_int(match_info.get("MATCH_LEVEL")),
                match_key=_optional_str(match_info.get("MATCH_KEY")),
                resolution_rule_code=_optional_str(match_info.get("ERRULE_CODE")),
                entity=parse_entity_data(item.get("ENTITY") or {}, lookup),
            )
        )
    return results


def parse_network(obj: Dict[str, Any], lookup: AttributeClassLookup) -> EntityNetwork:
    paths = [
        EntityPath(
            start_entity_id=int(path["START_ENTITY_ID"]),
            end_entity_id=int(path["END_ENTITY_ID"]),
            entity_ids=[int(entity_id) for entity_id in path.get("ENTITIES") or []],
        )
        for path in obj.get("ENTITY_PATHS") or []
    ]
    return EntityNetwork(
        entity_paths=paths,
        entities=parse_entity_data_list(obj.get("ENTITIES") or [], lookup),
    )
