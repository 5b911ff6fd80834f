"""
vSAN Perf Collector: capacity, health and performance metrics of vSAN clusters.
"""

__version__ = "1.0.0"
