"""
Collectors package for the vSAN Perf Collector.

Available collectors:
- cluster_collector.py: Capacity, health and performance data of one cluster
- dispatcher.py: Version gate and concurrent per-cluster dispatch for a poll cycle
"""
