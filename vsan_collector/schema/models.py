"""
Wire models for vSAN management API responses.

These pydantic models replace dynamic dictionary access on raw JSON: every
response is validated once at the client boundary and the rest of the
collector works with typed attributes. Field names mirror the API's camelCase
through aliases; unknown fields are ignored.
"""

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class WireModel(BaseModel):
    """Common configuration for all API response models"""
    model_config = ConfigDict(populate_by_name=True, extra='ignore', frozen=True)


class MetricId(WireModel):
    label: str
    group: Optional[str] = None
    rollup_type: Optional[str] = Field(default=None, alias='rollupType')
    stats_type: Optional[str] = Field(default=None, alias='statsType')


class MetricValues(WireModel):
    """One metric of a performance series: label plus comma-joined values."""
    metric_id: MetricId = Field(alias='metricId')
    values: str = ''

    @property
    def label(self) -> str:
        return self.metric_id.label


class RawSeries(WireModel):
    """
    One entity's performance series as returned by the performance query.

    sampleInfo holds comma-joined "YYYY-MM-DD HH:MM:SS" UTC timestamps and each
    entry of value holds comma-joined numbers index-aligned to them.
    """
    entity_ref_id: str = Field(alias='entityRefId')
    sample_info: str = Field(default='', alias='sampleInfo')
    value: List[MetricValues] = Field(default_factory=list)


class PerformanceResponse(WireModel):
    returnval: List[RawSeries] = Field(default_factory=list)


class EntityTableRecord(WireModel):
    uuid: Optional[str] = None
    owner: str = ''
    type: str = ''
    content: Any = None


class EntityTableResponse(WireModel):
    result: List[EntityTableRecord] = Field(default_factory=list)


class SupportedEntityType(WireModel):
    name: str


class SupportedEntityTypesResponse(WireModel):
    returnval: List[SupportedEntityType] = Field(default_factory=list)


class SpaceUsage(WireModel):
    free_capacity_b: int = Field(alias='freeCapacityB', ge=0)
    total_capacity_b: int = Field(alias='totalCapacityB', ge=0)


class HealthSummary(WireModel):
    overall_health: Optional[str] = Field(default=None, alias='overallHealth')
    overall_health_description: Optional[str] = Field(default=None, alias='overallHealthDescription')


class ClusterRecord(WireModel):
    """Cluster entry returned by the inventory listing."""
    moid: str
    name: str
    datacenter: str = ''
    type: str = 'ClusterComputeResource'


class ClusterListResponse(WireModel):
    clusters: List[ClusterRecord] = Field(default_factory=list)


class AboutInfo(WireModel):
    api_version: str = Field(alias='apiVersion')
    full_name: Optional[str] = Field(default=None, alias='fullName')
