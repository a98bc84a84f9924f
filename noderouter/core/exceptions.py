"""
Exception types raised by the node router.

None of these are fatal: callers either report them (``ValidationError``),
record them (``ProbeFailure``), skip the failing source (``FetchFailure``) or
pass the request through untouched (``NoCandidateNode``).
"""

from typing import Optional


class NodeRouterError(Exception):
    """Base class for node router errors."""
    pass


class ValidationError(NodeRouterError):
    """A user-submitted node was rejected."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field


class ProbeFailure(NodeRouterError):
    """A health probe could not reach a node."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"Probe of {url} failed: {reason}")
        self.url = url
        self.reason = reason


class FetchFailure(NodeRouterError):
    """A remote node list could not be fetched or parsed."""

    def __init__(self, source: str, reason: str):
        super().__init__(f"Node source {source} failed: {reason}")
        self.source = source
        self.reason = reason


class NoCandidateNode(NodeRouterError):
    """No eligible node exists for a service."""

    def __init__(self, service: str):
        super().__init__(f"No eligible node for service {service}")
        self.service = service
