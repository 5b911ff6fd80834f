"""
Entity Table

Immutable per-cluster snapshot of the vSAN cluster directory (the flat,
UUID-keyed metadata table that records which disk belongs to which host).
Built fresh on every cluster poll and discarded afterwards; never merged
across cycles.

Record content is kind dependent:
- HOSTNAME: hostname
- DISK: devName, isSsd, ssdUuid
Anything else is kept as an opaque mapping.
"""

import collections.abc
from dataclasses import dataclass, field
from types import MappingProxyType
import logging
from typing import Any, ClassVar, Dict, Iterator, List, Mapping, Optional

from pydantic import ValidationError

from vsan_collector.exceptions import DecodeError
from vsan_collector.metrics_config import ENTITY_TABLE_KINDS
from vsan_collector.schema.models import EntityTableRecord, EntityTableResponse

logger = logging.getLogger(__name__)


def _string_value(raw: Any, key: str) -> Optional[str]:
    """Return raw[key] when it is a string, None on a missing key or another type."""
    if not isinstance(raw, dict):
        return None
    value = raw.get(key)
    return value if isinstance(value, str) else None


def _flag_value(raw: Any, key: str) -> Optional[bool]:
    """Return raw[key] as a bool when it is a bool or a number, None otherwise."""
    if not isinstance(raw, dict):
        return None
    value = raw.get(key)
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return int(value) != 0
    return None


@dataclass(frozen=True)
class EntityContent:
    """Base for kind specific record content."""

    # wire key -> attribute name, used by get()
    wire_fields: ClassVar[Dict[str, str]] = {}

    def get(self, name: str) -> Optional[str]:
        """
        Safe accessor for string content.

        Args:
            name: Wire field name (e.g. 'hostname', 'devName')

        Returns:
            The value when the field exists and holds a string, otherwise None
        """
        attribute = self.wire_fields.get(name)
        if attribute is None:
            return None
        value = getattr(self, attribute, None)
        return value if isinstance(value, str) else None


@dataclass(frozen=True)
class HostnameContent(EntityContent):
    wire_fields: ClassVar[Dict[str, str]] = {'hostname': 'hostname'}

    hostname: Optional[str] = None

    @classmethod
    def from_raw(cls, raw: Any) -> 'HostnameContent':
        return cls(hostname=_string_value(raw, 'hostname'))


@dataclass(frozen=True)
class DiskContent(EntityContent):
    wire_fields: ClassVar[Dict[str, str]] = {'devName': 'dev_name', 'ssdUuid': 'ssd_uuid'}

    dev_name: Optional[str] = None
    is_ssd: Optional[bool] = None
    ssd_uuid: Optional[str] = None

    @classmethod
    def from_raw(cls, raw: Any) -> 'DiskContent':
        return cls(
            dev_name=_string_value(raw, 'devName'),
            is_ssd=_flag_value(raw, 'isSsd'),
            ssd_uuid=_string_value(raw, 'ssdUuid'),
        )


@dataclass(frozen=True)
class GenericContent(EntityContent):
    """Content of an entity kind the collector has no typed view of."""
    raw: Any = None

    def get(self, name: str) -> Optional[str]:
        return _string_value(self.raw, name)


_CONTENT_TYPES = {
    'HOSTNAME': HostnameContent,
    'DISK': DiskContent,
}


def decode_content(kind: str, raw: Any) -> EntityContent:
    content_type = _CONTENT_TYPES.get(kind)
    if content_type is None:
        return GenericContent(raw=raw)
    return content_type.from_raw(raw)


@dataclass(frozen=True)
class EntityRecord:
    uuid: str
    owner_uuid: str
    kind: str
    content: EntityContent = field(default_factory=GenericContent)

    @classmethod
    def from_wire(cls, record: EntityTableRecord) -> 'EntityRecord':
        return cls(
            uuid=record.uuid or '',
            owner_uuid=record.owner or '',
            kind=record.type or '',
            content=decode_content(record.type, record.content),
        )


class EntityTable(collections.abc.Mapping):
    """
    Read-only mapping uuid -> EntityRecord for one cluster and one poll.

    Unknown UUIDs are never an error: lookup() returns None and the caller
    simply omits the tag it wanted to derive.
    """

    def __init__(self, records: Optional[Mapping[str, EntityRecord]] = None):
        self._records = MappingProxyType(dict(records or {}))

    @classmethod
    def empty(cls) -> 'EntityTable':
        return cls()

    @classmethod
    def from_records(cls, records: List[EntityRecord]) -> 'EntityTable':
        indexed = {}
        for record in records:
            if not record.uuid:
                logger.debug(f"Skipping entity table record without uuid (kind={record.kind})")
                continue
            indexed[record.uuid] = record
        return cls(indexed)

    @classmethod
    def from_response(cls, response: EntityTableResponse) -> 'EntityTable':
        return cls.from_records([EntityRecord.from_wire(r) for r in response.result])

    @classmethod
    def from_payload(cls, payload: Any) -> 'EntityTable':
        """
        Decode a raw entity table payload ({"result": [...]}).

        Raises:
            DecodeError: If the payload does not have the expected shape
        """
        try:
            response = EntityTableResponse.model_validate(payload)
        except ValidationError as e:
            raise DecodeError(f"invalid entity table payload: {e}") from e
        return cls.from_response(response)

    def __getitem__(self, uuid: str) -> EntityRecord:
        return self._records[uuid]

    def __iter__(self) -> Iterator[str]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def lookup(self, uuid: Optional[str]) -> Optional[EntityRecord]:
        if not uuid:
            return None
        return self._records.get(uuid)

    def hostname_of(self, uuid: Optional[str]) -> Optional[str]:
        """Hostname recorded for a host UUID, or None."""
        record = self.lookup(uuid)
        if record is None:
            return None
        return record.content.get('hostname')


def build_entity_table(api, ctx, cluster) -> EntityTable:
    """
    Query the cluster directory of one cluster and index it by uuid.

    The table is read through the first member host. A cluster with no hosts
    has no resolvable identity and yields an empty table.

    Args:
        api: VsanApi implementation
        ctx: PollContext for the current cycle
        cluster: ClusterDescriptor

    Returns:
        EntityTable for this poll

    Raises:
        TransportError: If the hosts or the table cannot be fetched
        DecodeError: If the table response is malformed
    """
    hosts = api.query_cluster_hosts(ctx, cluster)
    if not hosts:
        logger.info(f"No host in cluster: {cluster.cluster_name}")
        return EntityTable.empty()

    response = api.query_entity_table(ctx, hosts[0], ENTITY_TABLE_KINDS)
    table = EntityTable.from_response(response)
    logger.debug(f"Loaded entity table for {cluster.cluster_name}: {len(table)} records")
    return table
