"""
Schema package: pydantic wire models and internal record types.
"""

from vsan_collector.schema.records import ClusterDescriptor, Measurement, SeriesPoint

__all__ = ['ClusterDescriptor', 'Measurement', 'SeriesPoint']
