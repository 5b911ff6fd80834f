"""
Performance series parser.

A raw vSAN performance series carries its sample times and each metric's
values as two comma-joined strings that are aligned by position. This module
turns one series into paired (timestamp, label, value) points in a single
step so the two sequences are never handled separately.
"""

import logging
import struct
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from vsan_collector.enrichment.tag_resolver import split_entity_ref
from vsan_collector.schema.models import RawSeries
from vsan_collector.schema.records import SeriesPoint

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = '%Y-%m-%dT%H:%M:%SZ'


def parse_sample_timestamp(token: str) -> Optional[datetime]:
    """
    Parse one "YYYY-MM-DD HH:MM:SS" sample token as a UTC instant.

    Args:
        token: One comma separated entry of sampleInfo

    Returns:
        Timezone-aware datetime, or None when the token is malformed
    """
    parts = token.strip().split(' ')
    if len(parts) != 2:
        logger.debug(f"Dropping sample timestamp '{token}': expected date and time")
        return None
    try:
        parsed = datetime.strptime(f"{parts[0]}T{parts[1]}Z", TIMESTAMP_FORMAT)
    except ValueError as e:
        logger.debug(f"Dropping sample timestamp '{token}': {e}")
        return None
    return parsed.replace(tzinfo=timezone.utc)


def _timestamps_by_position(sample_info: str) -> List[Optional[datetime]]:
    return [parse_sample_timestamp(token) for token in sample_info.split(',')]


def parse_sample_timestamps(sample_info: str) -> List[datetime]:
    """All valid sample times of a series, malformed tokens dropped."""
    return [ts for ts in _timestamps_by_position(sample_info) if ts is not None]


def to_float32(value: float) -> float:
    """Round a value to single precision."""
    return struct.unpack('f', struct.pack('f', value))[0]


def parse_value(token: str) -> Optional[float]:
    try:
        return to_float32(float(token))
    except (ValueError, OverflowError):
        return None


def field_name(entity_kind: str, metric_label: str) -> str:
    return f"{entity_kind}_{metric_label}"


@dataclass
class ParsedSeries:
    """Result of parsing one raw series"""
    entity_kind: str
    instance_key: str
    points: List[SeriesPoint] = field(default_factory=list)
    latest: Optional[datetime] = None


class SeriesParser:
    """Turns RawSeries wire records into timestamped points"""

    def parse(self, raw: RawSeries) -> ParsedSeries:
        """
        Parse one raw performance series.

        Each value pairs with the sample token at the same position. A value
        whose token was malformed, or that is itself not a number, produces
        no point. Points are ordered by metric, then by position.

        Args:
            raw: Decoded performance series

        Returns:
            ParsedSeries with the points and the latest sample time seen
        """
        entity_kind, instance_key = split_entity_ref(raw.entity_ref_id)
        timestamps = _timestamps_by_position(raw.sample_info)
        result = ParsedSeries(entity_kind=entity_kind, instance_key=instance_key)

        for metric in raw.value:
            tokens = metric.values.split(',') if metric.values else []
            skipped = 0
            for position, token in enumerate(tokens):
                timestamp = timestamps[position] if position < len(timestamps) else None
                if timestamp is None:
                    skipped += 1
                    continue
                value = parse_value(token)
                if value is None:
                    skipped += 1
                    continue
                result.points.append(SeriesPoint(timestamp, metric.label, value))
                if result.latest is None or timestamp > result.latest:
                    result.latest = timestamp
            if skipped:
                logger.debug(f"{raw.entity_ref_id} {metric.label}: skipped {skipped} of {len(tokens)} samples")

        return result
