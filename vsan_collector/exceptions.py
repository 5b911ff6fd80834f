"""
Exception types raised by the vSAN collector.

Transport and decode failures are raised by the API client and caught by the
cluster collector, which wraps them with context and forwards them to the
accumulator's error channel. Nothing here terminates the process.
"""


class VsanCollectorError(Exception):
    """Base class for all collector errors."""


class TransportError(VsanCollectorError):
    """Connection, authentication or RPC failure talking to the management API."""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class DecodeError(VsanCollectorError):
    """A response arrived but could not be decoded into the expected shape."""


class CollectionCancelled(VsanCollectorError):
    """The poll-cycle context was cancelled or its deadline passed."""


class QueryError(VsanCollectorError):
    """A cluster sub-query failure, wrapped with what was being queried."""

    def __init__(self, message, cluster=None):
        super().__init__(message)
        self.cluster = cluster
