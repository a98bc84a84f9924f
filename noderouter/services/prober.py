"""
Health prober for acceleration nodes.

A probe is one bounded request against the node's probe URL. It never
retries and never raises: failures come back as ``dead`` samples.
"""

import asyncio
from typing import Optional

from noderouter.config import ProbeConfig, StructuredLogger
from noderouter.core.exceptions import ProbeFailure
from noderouter.gateway.proxy.http_client import NetworkProbeClient
from noderouter.models.node import HealthSample, Node, NodeHealth

health_logger = StructuredLogger(__name__)


class HealthProber:
    """Measures node availability and latency."""

    def __init__(self, client: NetworkProbeClient, config: Optional[ProbeConfig] = None):
        """
        Initialize the prober.

        Args:
            client: Network collaborator issuing the probe request
            config: Probe settings (timeout, healthy threshold, method)
        """
        self.client = client
        self.config = config or ProbeConfig()

    def classify_latency(self, latency_ms: float) -> NodeHealth:
        if latency_ms < self.config.healthy_threshold_ms:
            return NodeHealth.HEALTHY
        return NodeHealth.DEGRADED

    async def probe(self, node: Node, timeout: Optional[float] = None) -> HealthSample:
        """
        Probe a node once.

        Args:
            node: Node to probe
            timeout: Upper bound in seconds, defaults to the configured timeout

        Returns:
            HealthSample; ``dead`` with no latency on any failure
        """
        timeout = timeout if timeout is not None else self.config.timeout_seconds
        url = node.probe_url

        try:
            result = await asyncio.wait_for(
                self.client.probe(self.config.method, url, timeout),
                timeout=timeout
            )
        except asyncio.TimeoutError:
            return self._failure(node, url, f"timed out after {timeout}s")
        except ProbeFailure as e:
            return self._failure(node, url, e.reason)
        except Exception as e:
            return self._failure(node, url, f"{type(e).__name__}: {e}")

        if result.status_code > self.config.max_status_code:
            return self._failure(
                node, url, f"unexpected status {result.status_code}", status_code=result.status_code
            )

        health = self.classify_latency(result.latency_ms)
        health_logger.log_health_check(
            node_id=node.id,
            url=url,
            health=health.value,
            latency_ms=result.latency_ms,
            status_code=result.status_code
        )
        return HealthSample(
            node_id=node.id,
            health=health,
            latency_ms=result.latency_ms,
            status_code=result.status_code
        )

    def _failure(
        self,
        node: Node,
        url: str,
        error: str,
        status_code: Optional[int] = None
    ) -> HealthSample:
        health_logger.log_health_check(
            node_id=node.id,
            url=url,
            health=NodeHealth.DEAD.value,
            error=error
        )
        return HealthSample(
            node_id=node.id,
            health=NodeHealth.DEAD,
            latency_ms=None,
            status_code=status_code,
            error=error
        )
