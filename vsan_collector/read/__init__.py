"""
Parsing of raw vSAN performance series.
"""
from vsan_collector.read.series_parser import ParsedSeries, SeriesParser, parse_sample_timestamps

__all__ = [
    'ParsedSeries',
    'SeriesParser',
    'parse_sample_timestamps'
]
