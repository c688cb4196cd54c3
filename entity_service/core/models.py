from collections import Counter
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

AttributeClassLookup = Callable[[Optional[str]], str]


# =========================
# Enums
# =========================
class FeatureMode(str, Enum):
    NONE = "NONE"
    REPRESENTATIVE = "REPRESENTATIVE"
    WITH_DUPLICATES = "WITH_DUPLICATES"


class RelationType(str, Enum):
    AMBIGUOUS_MATCH = "AMBIGUOUS_MATCH"
    POSSIBLE_MATCH = "POSSIBLE_MATCH"
    DISCLOSED_RELATION = "DISCLOSED_RELATION"
    POSSIBLE_RELATION = "POSSIBLE_RELATION"


# =========================
# Records
# =========================
class EntityRecord(BaseModel):
    """
    One source record as the engine reports it.
    Frozen: records are never modified after parsing.
    """

    data_source: str
    record_id: str
    match_key: Optional[str] = None
    match_level: Optional[int] = None
    resolution_rule_code: Optional[str] = None
    features: Dict[str, List[str]] = Field(default_factory=dict)
    original_data: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(frozen=True)


class DataSourceRecordSummary(BaseModel):
    data_source: str
    record_count: int


def summarize_records(records: Iterable[EntityRecord]) -> List[DataSourceRecordSummary]:
    """Count records per data source, sorted by data source code."""
    counts = Counter(record.data_source for record in records)
    return [
        DataSourceRecordSummary(data_source=data_source, record_count=count)
        for data_source, count in sorted(counts.items())
    ]


# =========================
# Features
# =========================
class EntityFeature(BaseModel):
    feature_id: Optional[int] = None
    value: str
    usage_type: Optional[str] = None


# attribute class -> field on the entity holding its formatted values
ATTRIBUTE_DATA_FIELDS = {
    "NAME": "name_data",
    "ADDRESS": "address_data",
    "PHONE": "phone_data",
    "IDENTIFIER": "identifier_data",
    "ATTRIBUTE": "characteristic_data",
    "RELATIONSHIP": "relationship_data",
}

# values of these classes read fine without the feature type in front
_UNPREFIXED_CLASSES = {"NAME", "ADDRESS", "PHONE"}


def _format_feature(feature_type: str, attribute_class: str, feature: EntityFeature) -> str:
    if attribute_class in _UNPREFIXED_CLASSES:
        prefix = feature.usage_type
    elif feature.usage_type:
        prefix = f"{feature_type} {feature.usage_type}"
    else:
        prefix = feature_type
    return f"{prefix}: {feature.value}" if prefix else feature.value


# =========================
# Entities
# =========================
class EntityBase(BaseModel):
    entity_id: int
    entity_name: Optional[str] = None

    features: Dict[str, List[EntityFeature]] = Field(default_factory=dict)
    records: List[EntityRecord] = Field(default_factory=list)
    record_summaries: List[DataSourceRecordSummary] = Field(default_factory=list)

    # Flattened feature values grouped by attribute class
    name_data: List[str] = Field(default_factory=list)
    address_data: List[str] = Field(default_factory=list)
    phone_data: List[str] = Field(default_factory=list)
    identifier_data: List[str] = Field(default_factory=list)
    characteristic_data: List[str] = Field(default_factory=list)
    relationship_data: List[str] = Field(default_factory=list)
    other_data: List[str] = Field(default_factory=list)

    partial: bool = False

    # lookup the data lists were last built with
    _lookup: Optional[AttributeClassLookup] = PrivateAttr(default=None)

    def set_features(
        self,
        features: Dict[str, List[EntityFeature]],
        lookup: AttributeClassLookup,
    ) -> None:
        """Replace the feature map and rebuild the attribute-class data lists."""
        self.features = {
            feature_type: list(values) for feature_type, values in features.items()
        }
        self.refresh_attribute_data(lookup)

    def refresh_attribute_data(self, lookup: AttributeClassLookup) -> None:
        self._lookup = lookup
        data: Dict[str, List[str]] = {name: [] for name in ATTRIBUTE_DATA_FIELDS.values()}
        data["other_data"] = []

        for feature_type, values in self.features.items():
            attribute_class = lookup(feature_type)
            field_name = ATTRIBUTE_DATA_FIELDS.get(attribute_class, "other_data")
            for feature in values:
                data[field_name].append(
                    _format_feature(feature_type, attribute_class, feature)
                )

        for field_name, values in data.items():
            setattr(self, field_name, values)

    def set_records(self, records: List[EntityRecord]) -> None:
        """Replace the records and re-derive the per-data-source summary."""
        self.records = list(records)
        self.record_summaries = summarize_records(self.records)

    def strip_duplicate_feature_values(self) -> None:
        """Drop exact duplicate values within each feature type, first one wins."""
        for feature_type, values in self.features.items():
            seen = set()
            unique = []
            for feature in values:
                if feature.value in seen:
                    continue
                seen.add(feature.value)
                unique.append(feature)
            self.features[feature_type] = unique

        if self._lookup is not None:
            self.refresh_attribute_data(self._lookup)

    def feature_values(self, feature_type: str) -> List[str]:
        return [feature.value for feature in self.features.get(feature_type, [])]


class ResolvedEntity(EntityBase):
    pass


class RelatedEntity(EntityBase):
    match_level: Optional[int] = None
    match_key: Optional[str] = None
    resolution_rule_code: Optional[str] = None
    is_disclosed: bool = False
    is_ambiguous: bool = False
    relation_type: Optional[RelationType] = None

    # abbreviated until augmented from a network result
    partial: bool = True


class EntityGraph(BaseModel):
    """A resolved entity plus the entities related to it."""

    resolved_entity: ResolvedEntity
    related_entities: List[RelatedEntity] = Field(default_factory=list)

    @property
    def entity_id(self) -> int:
        return self.resolved_entity.entity_id

    def iter_entities(self) -> Iterable[EntityBase]:
        yield self.resolved_entity
        yield from self.related_entities


class AttributeSearchResult(BaseModel):
    match_level: Optional[int] = None
    match_key: Optional[str] = None
    resolution_rule_code: Optional[str] = None
    entity: EntityGraph


class EntityPath(BaseModel):
    start_entity_id: int
    end_entity_id: int
    entity_ids: List[int] = Field(default_factory=list)


class EntityNetwork(BaseModel):
    entity_paths: List[EntityPath] = Field(default_factory=list)
    entities: List[EntityGraph] = Field(default_factory=list)
