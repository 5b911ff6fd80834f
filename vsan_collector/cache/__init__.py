"""
Cache package: the per-poll entity table and the process-wide watermark store.
"""
