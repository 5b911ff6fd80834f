"""
Internal record types passed between the collector stages.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, NamedTuple, Optional, Union

FieldValue = Union[int, float]


@dataclass(frozen=True)
class ClusterDescriptor:
    """Identity of one cluster for a poll cycle. Stamped on every measurement."""
    cluster_id: str
    cluster_name: str
    datacenter_name: str
    cluster_type: str = "ClusterComputeResource"


@dataclass(frozen=True)
class Measurement:
    """
    One record handed to the sink.

    A timestamp of None means the sink assigns ingestion time.
    """
    name: str
    fields: Dict[str, FieldValue]
    tags: Dict[str, str] = field(default_factory=dict)
    timestamp: Optional[datetime] = None


class SeriesPoint(NamedTuple):
    timestamp: datetime
    metric_label: str
    value: float
