"""
Performance Tag Resolution

Enriches vSAN performance series with hierarchical identity tags derived from
the cluster's entity table:
- disk entities: deviceName, ssdUuid (capacity disks only), owning hostname
- host entities: hostname
- vnic-net entities: stackName, vnic, hostname
- pnic-net entities: pnic, hostname
- world-cpu entities: worldName, hostname
- anything else: uuid (the raw instance key)

Lookups that miss are never an error. An unknown disk or host is tagged with
its uuid so distinct entities keep distinct series; a disk whose owner is
unknown simply has no hostname tag.
"""

from typing import Dict, List, Optional, Tuple
import logging

from vsan_collector.cache.entity_table import DiskContent, EntityTable
from vsan_collector.metrics_config import (
    DISK_KIND_PATTERN, HOST_KIND_PATTERN, VNIC_KIND_PATTERN,
    PNIC_KIND_PATTERN, WORLD_CPU_KIND_PATTERN,
    VNIC_KEY_PARTS, PNIC_KEY_PARTS, WORLD_CPU_KEY_PARTS,
)

logger = logging.getLogger(__name__)


def populate_cluster_tags(tags: Dict[str, str], cluster, vcenter: str) -> Dict[str, str]:
    """Copy tags and add the cluster identity tags carried by every measurement."""
    new_tags = dict(tags)
    new_tags['vcenter'] = vcenter
    new_tags['dcname'] = cluster.datacenter_name
    new_tags['clustername'] = cluster.cluster_name
    new_tags['moid'] = cluster.cluster_id
    new_tags['source'] = cluster.cluster_name
    return new_tags


def split_entity_ref(entity_ref_id: str) -> Tuple[str, str]:
    """
    Split "kindPrefix:instanceKey" on the first ':'.

    Returns:
        (entity_kind, instance_key); instance_key is '' when there is no ':'
    """
    kind, sep, instance_key = entity_ref_id.partition(':')
    if not sep:
        logger.warning(f"Entity reference without instance key: {entity_ref_id}")
    return kind, instance_key


def split_composite_key(instance_key: str, parts: int) -> Optional[List[str]]:
    """Split a '|' joined composite key, None when it has fewer than parts fields."""
    values = instance_key.split('|')
    if len(values) < parts:
        return None
    return values


class TagResolver:
    """Resolves identity tags for one performance series against an entity table"""

    def resolve(self, entity_kind: str, instance_key: str,
                table: EntityTable, base_tags: Dict[str, str]) -> Dict[str, str]:
        """
        Build the tag set for one performance entity.

        Args:
            entity_kind: Kind prefix of the entity reference (e.g. 'capacity-disk')
            instance_key: Part after the ':' (uuid or composite key)
            table: Entity table of the entity's cluster
            base_tags: Tags to layer on; never modified

        Returns:
            New tag dictionary
        """
        tags = dict(base_tags)

        if DISK_KIND_PATTERN in entity_kind:
            self._resolve_disk(instance_key, table, tags)
        elif HOST_KIND_PATTERN in entity_kind:
            if not self._add_hostname(instance_key, table, tags):
                tags['uuid'] = instance_key
        elif VNIC_KIND_PATTERN in entity_kind:
            values = split_composite_key(instance_key, VNIC_KEY_PARTS)
            if values is None:
                self._log_malformed(entity_kind, instance_key, VNIC_KEY_PARTS)
                return tags
            host_uuid, stack_name, nic_name = values[0], values[1], values[2]
            tags['stackName'] = stack_name
            tags['vnic'] = nic_name
            self._add_hostname(host_uuid, table, tags)
        elif PNIC_KIND_PATTERN in entity_kind:
            values = split_composite_key(instance_key, PNIC_KEY_PARTS)
            if values is None:
                self._log_malformed(entity_kind, instance_key, PNIC_KEY_PARTS)
                return tags
            tags['pnic'] = values[1]
            self._add_hostname(values[0], table, tags)
        elif WORLD_CPU_KIND_PATTERN in entity_kind:
            values = split_composite_key(instance_key, WORLD_CPU_KEY_PARTS)
            if values is None:
                self._log_malformed(entity_kind, instance_key, WORLD_CPU_KEY_PARTS)
                return tags
            # worldID (values[2]) is not tagged: one series per world process id
            tags['worldName'] = values[1]
            self._add_hostname(values[0], table, tags)
        else:
            tags['uuid'] = instance_key

        return tags

    def _resolve_disk(self, disk_uuid: str, table: EntityTable, tags: Dict[str, str]) -> None:
        record = table.lookup(disk_uuid)
        if record is None:
            logger.debug(f"Disk {disk_uuid} not found in entity table")
            tags['uuid'] = disk_uuid
            return

        device_name = record.content.get('devName')
        if device_name is not None:
            tags['deviceName'] = device_name

        # Cache-tier disks (SSD) have no owning SSD
        if isinstance(record.content, DiskContent) and record.content.is_ssd is False:
            ssd_uuid = record.content.get('ssdUuid')
            if ssd_uuid is not None:
                tags['ssdUuid'] = ssd_uuid

        self._add_hostname(record.owner_uuid, table, tags)

    @staticmethod
    def _add_hostname(host_uuid: str, table: EntityTable, tags: Dict[str, str]) -> bool:
        hostname = table.hostname_of(host_uuid)
        if hostname is None:
            return False
        tags['hostname'] = hostname
        return True

    @staticmethod
    def _log_malformed(entity_kind: str, instance_key: str, expected_parts: int) -> None:
        logger.warning(f"Malformed {entity_kind} instance key '{instance_key}': "
                       f"expected {expected_parts} '|' separated parts, skipping tag enrichment")
