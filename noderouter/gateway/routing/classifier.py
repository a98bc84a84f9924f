"""
Service classification for outbound requests.

This module maps a request host onto the logical service whose routing
treatment applies to it.
"""

from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from noderouter.config import get_logger
from noderouter.utils.helpers import extract_host, normalize_host

logger = get_logger(__name__)


@dataclass(frozen=True)
class HostPattern:
    """A host pattern owned by a service."""
    pattern: str
    service_name: str

    def matches(self, host: str) -> bool:
        """Exact match or suffix match on a dot boundary."""
        return host == self.pattern or host.endswith("." + self.pattern)


class ServiceClassifier:
    """
    Classifies hosts into services.

    Patterns are evaluated in declaration order and the first matching
    service wins, so overlapping patterns never raise.
    """

    def __init__(self, service_patterns: Mapping[str, Sequence[str]]):
        """
        Initialize the classifier.

        Args:
            service_patterns: Service name to host patterns, in declaration order
        """
        self._services: Tuple[str, ...] = tuple(service_patterns.keys())
        patterns: List[HostPattern] = []
        for service_name, service_hosts in service_patterns.items():
            for host in service_hosts:
                patterns.append(HostPattern(
                    pattern=normalize_host(host),
                    service_name=service_name
                ))
        self._patterns: Tuple[HostPattern, ...] = tuple(patterns)

        logger.debug(
            "Service classifier initialized",
            extra={
                "services": list(self._services),
                "pattern_count": len(self._patterns)
            }
        )

    @property
    def services(self) -> Tuple[str, ...]:
        return self._services

    def classify(self, host: Optional[str]) -> Optional[str]:
        """
        Map a host to a service.

        Args:
            host: Request host, optionally with a port

        Returns:
            Service name, or None if no pattern matches
        """
        if not host:
            return None

        normalized = normalize_host(host)
        for pattern in self._patterns:
            if pattern.matches(normalized):
                return pattern.service_name
        return None

    def classify_url(self, url: str) -> Optional[str]:
        """Classify the host of a full URL."""
        return self.classify(extract_host(url))

    def overlapping_patterns(self) -> Dict[str, List[str]]:
        """
        Find patterns that are declared by more than one service.

        Returns:
            Pattern to the list of services declaring it, first one wins
        """
        owners: Dict[str, List[str]] = {}
        for pattern in self._patterns:
            services = owners.setdefault(pattern.pattern, [])
            if pattern.service_name not in services:
                services.append(pattern.service_name)
        return {pattern: services for pattern, services in owners.items() if len(services) > 1}
