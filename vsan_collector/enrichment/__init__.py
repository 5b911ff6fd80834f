"""
Enrichment package: identity tags for performance measurements.
"""
