# -----------------------------------------------------------------------------
# Copyright (c) 2025 vSAN Perf Collector contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------

"""
Metrics configuration for the vSAN Perf Collector
Defines measurement names, tag keys and value mappings used by the collectors.
"""

# Measurement names written to the sink
VSAN_PERF_MEASUREMENT = "vsphere_cluster_vsan_performance"
VSAN_HEALTH_MEASUREMENT = "vsphere_cluster_vsan_health"
VSAN_CAPACITY_MEASUREMENT = "vsphere_cluster_vsan_capacity"

# Prefix for per-cluster performance watermarks
WATERMARK_KEY_PREFIX = "vsan-perf"

# Capacity fields (unsigned integers, bytes)
FREE_CAPACITY_FIELD = "FreeCapacityB"
TOTAL_CAPACITY_FIELD = "TotalCapacityB"

HEALTH_FIELD = "OverallHealth"

# overallHealth enumeration -> numeric field value. Anything else maps to -1.
HEALTH_STATUS_VALUES = {
    "red": 2,
    "yellow": 1,
    "green": 0,
}
HEALTH_STATUS_UNKNOWN = -1

# Fields requested from the health summary call
HEALTH_SUMMARY_FIELDS = ["overallHealth", "overallHealthDescription"]

# Tags stamped on every measurement from the cluster descriptor
CLUSTER_TAG_KEYS = [
    "vcenter",
    "dcname",
    "clustername",
    "moid",
    "source",
]

# Entity table record kinds requested per cluster poll
ENTITY_TABLE_KINDS = ["HOSTNAME", "DISK"]

# Entity-kind patterns used for hierarchical tag resolution, in priority order
DISK_KIND_PATTERN = "-disk"
HOST_KIND_PATTERN = "host-"
VNIC_KIND_PATTERN = "vnic-net"
PNIC_KIND_PATTERN = "pnic-net"
WORLD_CPU_KIND_PATTERN = "world-cpu"

# Number of '|' separated parts in composite instance keys
VNIC_KEY_PARTS = 3   # hostUUID|stackName|nicName
PNIC_KEY_PARTS = 2   # hostUUID|nicName
WORLD_CPU_KEY_PARTS = 3  # hostUUID|worldName|worldID (worldID deliberately untagged)

# Minimum management API version exposing vSAN (major, minor)
MIN_VSAN_API_VERSION = (5, 5)

# Look back this many sampling periods on the first poll of a cluster
DEFAULT_LOOKBACK_FACTOR = 3

# vSAN performance service samples every 5 minutes
DEFAULT_SAMPLING_PERIOD = 300

# Identity tags a performance series may carry in addition to the cluster tags
PERF_TAG_KEYS = [
    "deviceName",
    "ssdUuid",
    "hostname",
    "stackName",
    "vnic",
    "pnic",
    "worldName",
    "uuid",
]
