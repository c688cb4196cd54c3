from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from entity_service.core.models import (
    AttributeSearchResult,
    EntityGraph,
    EntityNetwork,
    EntityRecord,
)


# =========================
# Common
# =========================
class ResponseMeta(BaseModel):
    operation: str
    # elapsed milliseconds per phase (queue wait, engine calls, processing)
    timers: Dict[str, float] = Field(default_factory=dict)


class ErrorDetail(BaseModel):
    code: Optional[str] = None
    message: str


class ErrorResponse(BaseModel):
    detail: str
    errors: List[ErrorDetail] = Field(default_factory=list)


# =========================
# Records
# =========================
class LoadRecordData(BaseModel):
    record_id: str


class LoadRecordResponse(BaseModel):
    meta: ResponseMeta
    data: LoadRecordData


class RecordData(BaseModel):
    record: EntityRecord


class RecordResponse(BaseModel):
    meta: ResponseMeta
    data: RecordData
    raw_data: Optional[Any] = None


# =========================
# Entities
# =========================
class EntityResponse(BaseModel):
    meta: ResponseMeta
    data: EntityGraph
    raw_data: Optional[Any] = None


class AttributeSearchData(BaseModel):
    search_results: List[AttributeSearchResult] = Field(default_factory=list)


class AttributeSearchResponse(BaseModel):
    meta: ResponseMeta
    data: AttributeSearchData
    raw_data: Optional[Any] = None


class EntityNetworkResponse(BaseModel):
    meta: ResponseMeta
    data: EntityNetwork
    raw_data: Optional[Any] = None


# =========================
# Config
# =========================
class DataSourcesData(BaseModel):
    data_sources: List[str] = Field(default_factory=list)


class DataSourcesResponse(BaseModel):
    meta: ResponseMeta
    data: DataSourcesData
