# -----------------------------------------------------------------------------
# Copyright (c) 2025 vSAN Perf Collector contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------
"""
vSAN management API client.

VsanApi is the contract the collectors depend on. VsanRestClient implements
it as JSON over HTTPS against the vCenter vSAN management gateway. Every call
takes the poll-cycle context, checks it before going on the wire and caps
the request timeout at the time left in the cycle.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Type, TypeVar

import requests
from pydantic import BaseModel, ValidationError

from vsan_collector.context import PollContext
from vsan_collector.connection import get_session, normalize_endpoint
from vsan_collector.exceptions import DecodeError, TransportError
from vsan_collector.metrics_config import HEALTH_SUMMARY_FIELDS
from vsan_collector.schema.models import (
    AboutInfo, ClusterListResponse, EntityTableResponse, HealthSummary,
    PerformanceResponse, RawSeries, SpaceUsage, SupportedEntityTypesResponse,
)
from vsan_collector.schema.records import ClusterDescriptor

LOG = logging.getLogger(__name__)

ModelT = TypeVar('ModelT', bound=BaseModel)

API_TIME_FORMAT = '%Y-%m-%dT%H:%M:%SZ'
SESSION_HEADER = 'vmware-api-session-id'


def format_api_time(timestamp: datetime) -> str:
    """ISO-8601 UTC string with second precision, as the performance query expects."""
    if timestamp.tzinfo is not None:
        timestamp = timestamp.astimezone(timezone.utc)
    return timestamp.strftime(API_TIME_FORMAT)


def decode_model(model: Type[ModelT], payload: Any, what: str) -> ModelT:
    """
    Validate a JSON payload into a wire model.

    Raises:
        DecodeError: If the payload does not match the model
    """
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise DecodeError(f"invalid {what} response: {e}") from e


class VsanApi(ABC):
    """Queries the collectors issue against one vCenter"""

    @abstractmethod
    def query_api_version(self, ctx: PollContext) -> str:
        """Return the vSAN management API version string (e.g. '7.0.3')."""

    @abstractmethod
    def query_clusters(self, ctx: PollContext) -> List[ClusterDescriptor]:
        """Return every vSAN enabled cluster known to the vCenter."""

    @abstractmethod
    def query_cluster_hosts(self, ctx: PollContext, cluster: ClusterDescriptor) -> List[str]:
        """Return the member host ids of a cluster."""

    @abstractmethod
    def query_entity_table(self, ctx: PollContext, host_id: str, kinds: List[str]) -> EntityTableResponse:
        """Query the cluster directory records of the given kinds through one host."""

    @abstractmethod
    def query_supported_metric_kinds(self, ctx: PollContext) -> List[str]:
        """Return the performance entity kinds the target supports."""

    @abstractmethod
    def query_performance(self, ctx: PollContext, cluster: ClusterDescriptor, metric_kind: str,
                          start: datetime, end: datetime) -> List[RawSeries]:
        """Return the series of every entity of metric_kind sampled in [start, end]."""

    @abstractmethod
    def query_space_usage(self, ctx: PollContext, cluster: ClusterDescriptor) -> SpaceUsage:
        pass

    @abstractmethod
    def query_health_summary(self, ctx: PollContext, cluster: ClusterDescriptor) -> HealthSummary:
        pass

    def close(self) -> None:
        pass


class VsanRestClient(VsanApi):
    """
    VsanApi over the vCenter REST gateway.

    A session token is obtained on first use with basic auth and renewed once
    when a request comes back 401.
    """

    def __init__(self, vcenter: str, username: str, password: str,
                 tls_ca: Optional[str] = None, tls_validation: str = 'strict',
                 timeout: float = 30.0, pool_size: int = 10,
                 session: Optional[requests.Session] = None):
        self.base_url = normalize_endpoint(vcenter)
        self.timeout = timeout
        self.session = session or get_session(username, password, tls_ca, tls_validation, pool_size)
        self._token: Optional[str] = None

    # --- transport ---

    def login(self, ctx: PollContext) -> None:
        """Create an API session and attach its token to all further requests."""
        ctx.check()
        url = f"{self.base_url}/api/session"
        try:
            resp = self.session.post(url, timeout=ctx.request_timeout(self.timeout))
        except requests.exceptions.RequestException as e:
            raise TransportError(f"login to {self.base_url} failed: {e}") from e
        if resp.status_code not in (200, 201):
            raise TransportError(f"login to {self.base_url} failed: HTTP {resp.status_code}",
                                 status_code=resp.status_code)
        try:
            token = resp.json()
        except ValueError as e:
            raise DecodeError(f"login to {self.base_url} returned no session token") from e
        if not isinstance(token, str) or not token:
            raise DecodeError(f"login to {self.base_url} returned no session token")
        self._token = token
        self.session.headers.update({SESSION_HEADER: token})
        LOG.info(f"Created API session on {self.base_url}")

    def _request(self, ctx: PollContext, method: str, path: str,
                 params: Optional[Dict[str, Any]] = None,
                 body: Optional[Dict[str, Any]] = None,
                 retry_auth: bool = True) -> Any:
        if self._token is None:
            self.login(ctx)
        ctx.check()
        url = f"{self.base_url}{path}"
        LOG.debug(f"{method} {url} params={params}")
        try:
            resp = self.session.request(method, url, params=params, json=body,
                                        timeout=ctx.request_timeout(self.timeout))
        except requests.exceptions.RequestException as e:
            raise TransportError(f"{method} {path} failed: {e}") from e

        if resp.status_code == 401 and retry_auth:
            LOG.info(f"API session expired on {self.base_url}, logging in again")
            self._token = None
            return self._request(ctx, method, path, params=params, body=body, retry_auth=False)
        if not 200 <= resp.status_code < 300:
            raise TransportError(f"{method} {path} returned HTTP {resp.status_code}",
                                 status_code=resp.status_code)
        try:
            return resp.json()
        except ValueError as e:
            raise DecodeError(f"{method} {path} returned invalid JSON: {e}") from e

    # --- queries ---

    def query_api_version(self, ctx: PollContext) -> str:
        payload = self._request(ctx, 'GET', '/vsanHealth/about')
        return decode_model(AboutInfo, payload, 'about').api_version

    def query_clusters(self, ctx: PollContext) -> List[ClusterDescriptor]:
        payload = self._request(ctx, 'GET', '/vsanHealth/clusters')
        response = decode_model(ClusterListResponse, payload, 'cluster list')
        return [ClusterDescriptor(cluster_id=c.moid, cluster_name=c.name,
                                  datacenter_name=c.datacenter, cluster_type=c.type)
                for c in response.clusters]

    def query_cluster_hosts(self, ctx: PollContext, cluster: ClusterDescriptor) -> List[str]:
        payload = self._request(ctx, 'GET', f'/vsanHealth/clusters/{cluster.cluster_id}/hosts')
        hosts = payload.get('hosts') if isinstance(payload, dict) else None
        if not isinstance(hosts, list) or not all(isinstance(h, str) for h in hosts):
            raise DecodeError(f"invalid host list response for {cluster.cluster_name}")
        return hosts

    def query_entity_table(self, ctx: PollContext, host_id: str, kinds: List[str]) -> EntityTableResponse:
        body = {'queries': [{'type': kind} for kind in kinds]}
        payload = self._request(ctx, 'POST', f'/vsanHealth/hosts/{host_id}/cmmds/query', body=body)
        return decode_model(EntityTableResponse, payload, 'entity table')

    def query_supported_metric_kinds(self, ctx: PollContext) -> List[str]:
        payload = self._request(ctx, 'GET', '/vsanHealth/perf/entity-types')
        response = decode_model(SupportedEntityTypesResponse, payload, 'supported entity types')
        return [entity_type.name for entity_type in response.returnval]

    def query_performance(self, ctx: PollContext, cluster: ClusterDescriptor, metric_kind: str,
                          start: datetime, end: datetime) -> List[RawSeries]:
        body = {
            'querySpecs': [{
                'entityRefId': f'{metric_kind}:*',
                'startTime': format_api_time(start),
                'endTime': format_api_time(end),
            }],
            'cluster': {'type': cluster.cluster_type, 'value': cluster.cluster_id},
        }
        payload = self._request(ctx, 'POST', f'/vsanHealth/clusters/{cluster.cluster_id}/perf/query', body=body)
        return decode_model(PerformanceResponse, payload, 'performance').returnval

    def query_space_usage(self, ctx: PollContext, cluster: ClusterDescriptor) -> SpaceUsage:
        payload = self._request(ctx, 'GET', f'/vsanHealth/clusters/{cluster.cluster_id}/space-usage')
        return decode_model(SpaceUsage, payload, 'space usage')

    def query_health_summary(self, ctx: PollContext, cluster: ClusterDescriptor) -> HealthSummary:
        params = {
            'fields': ','.join(HEALTH_SUMMARY_FIELDS),
            'fetchFromCache': 'true',
        }
        payload = self._request(ctx, 'GET', f'/vsanHealth/clusters/{cluster.cluster_id}/health-summary',
                                params=params)
        return decode_model(HealthSummary, payload, 'health summary')

    def close(self) -> None:
        if self._token is not None:
            try:
                self.session.delete(f"{self.base_url}/api/session", timeout=self.timeout)
            except requests.exceptions.RequestException as e:
                LOG.warning(f"Failed to close API session: {e}")
            self._token = None
        self.session.close()
