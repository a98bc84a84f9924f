"""
Background refresh and health sweep scheduling.

Two independent fixed-rate activities feed the node store: a long-interval
refresh of remote node lists and a short-interval health sweep of every known
node. A cycle that comes due while the previous one of the same kind is still
running is dropped, not queued.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from noderouter.config import SchedulerConfig, StructuredLogger, get_logger
from noderouter.core.exceptions import FetchFailure
from noderouter.gateway.proxy.service_discovery import NodeListSource
from noderouter.models.node import HealthSample, Node, NodeHealth
from noderouter.services.node_store import NodeStore
from noderouter.services.prober import HealthProber

logger = get_logger(__name__)
refresh_logger = StructuredLogger(__name__)


@dataclass
class RefreshReport:
    """Outcome of one remote list refresh."""
    skipped: bool = False
    succeeded: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    nodes_received: int = 0
    added: int = 0
    removed: int = 0
    duration_ms: float = 0.0


@dataclass
class SweepReport:
    """Outcome of one health sweep."""
    skipped: bool = False
    probed: int = 0
    healthy: int = 0
    degraded: int = 0
    dead: int = 0
    abandoned: int = 0
    duration_ms: float = 0.0

    def count(self, sample: HealthSample) -> None:
        self.probed += 1
        if sample.health == NodeHealth.HEALTHY:
            self.healthy += 1
        elif sample.health == NodeHealth.DEGRADED:
            self.degraded += 1
        else:
            self.dead += 1


class RefreshScheduler:
    """
    Drives node list refreshes and health sweeps.

    Both cycles are bounded by a ceiling. Work that finished before the
    ceiling is kept; unfinished fetches and probes are cancelled.
    """

    def __init__(
        self,
        store: NodeStore,
        prober: HealthProber,
        sources: Sequence[NodeListSource] = (),
        config: Optional[SchedulerConfig] = None
    ):
        self.store = store
        self.prober = prober
        self.sources = list(sources)
        self.config = config or SchedulerConfig()
        self._refresh_lock = asyncio.Lock()
        self._sweep_lock = asyncio.Lock()
        self._loop_tasks: List[asyncio.Task] = []
        self._cycle_tasks: set = set()
        self.last_refresh: Optional[RefreshReport] = None
        self.last_sweep: Optional[SweepReport] = None

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._loop_tasks)

    async def refresh_nodes(self) -> RefreshReport:
        """
        Fetch every source and merge the results into the store.

        Failed sources contribute nothing and do not abort the cycle. Only
        sources that succeeded may prune their previously listed nodes.
        """
        if self._refresh_lock.locked():
            logger.info("Node list refresh already running, skipping this cycle")
            return RefreshReport(skipped=True)

        async with self._refresh_lock:
            start_time = time.perf_counter()
            report = RefreshReport()

            if not self.sources:
                self.last_refresh = report
                return report

            tasks = {
                asyncio.create_task(source.fetch()): source
                for source in self.sources
            }
            done, pending = await asyncio.wait(tasks.keys(), timeout=self.config.refresh_ceiling_seconds)

            for task in pending:
                task.cancel()
                report.failed[tasks[task].name] = "refresh ceiling exceeded"
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

            incoming: List[Node] = []
            for task in done:
                source = tasks[task]
                try:
                    nodes = task.result()
                except FetchFailure as e:
                    report.failed[source.name] = e.reason
                    continue
                except Exception as e:
                    logger.error(
                        "Unexpected error fetching node list",
                        extra={"source": source.name, "error": str(e)},
                        exc_info=True
                    )
                    report.failed[source.name] = str(e)
                    continue
                report.succeeded.append(source.name)
                incoming.extend(nodes)

            report.nodes_received = len(incoming)
            if report.succeeded:
                result = self.store.merge(incoming, prune_origins=report.succeeded)
                report.added = len(result.added)
                report.removed = len(result.removed)
                await asyncio.to_thread(self.store.persist)

            report.duration_ms = (time.perf_counter() - start_time) * 1000
            refresh_logger.log_refresh(
                succeeded=sorted(report.succeeded),
                failed=sorted(report.failed),
                received=report.nodes_received,
                duration_ms=report.duration_ms
            )
            self.last_refresh = report
            return report

    async def _probe_and_apply(self, node: Node, report: SweepReport) -> None:
        sample = await self.prober.probe(node)
        attempts = 0
        while not sample.ok and attempts < self.config.probe_retries:
            attempts += 1
            sample = await self.prober.probe(node)
        self.store.update_health(node.id, sample)
        report.count(sample)

    async def health_sweep(self) -> SweepReport:
        """
        Probe every known node with bounded concurrency.

        Each sample is applied as soon as it arrives. Probes still running
        when the sweep ceiling is reached are cancelled and their nodes keep
        their previous state.
        """
        if self._sweep_lock.locked():
            logger.info("Health sweep already running, skipping this cycle")
            return SweepReport(skipped=True)

        async with self._sweep_lock:
            start_time = time.perf_counter()
            report = SweepReport()
            nodes = self.store.all_nodes()
            semaphore = asyncio.Semaphore(self.config.sweep_concurrency)

            async def bounded(node: Node) -> None:
                async with semaphore:
                    await self._probe_and_apply(node, report)

            tasks = [asyncio.create_task(bounded(node)) for node in nodes]
            if tasks:
                done, pending = await asyncio.wait(tasks, timeout=self.config.sweep_ceiling_seconds)
                for task in pending:
                    task.cancel()
                if pending:
                    await asyncio.gather(*pending, return_exceptions=True)
                    report.abandoned = len(pending)
                    logger.warning(
                        "Health sweep ceiling reached, abandoning remaining probes",
                        extra={"abandoned": len(pending), "ceiling_seconds": self.config.sweep_ceiling_seconds}
                    )
                for task in done:
                    if task.exception() is not None:
                        logger.error(
                            "Unexpected error during probe",
                            extra={"error": str(task.exception())}
                        )

            await asyncio.to_thread(self.store.persist)
            report.duration_ms = (time.perf_counter() - start_time) * 1000
            logger.info(
                "Health sweep finished",
                extra={
                    "probed": report.probed,
                    "healthy": report.healthy,
                    "degraded": report.degraded,
                    "dead": report.dead,
                    "abandoned": report.abandoned,
                    "duration_ms": round(report.duration_ms, 2)
                }
            )
            self.last_sweep = report
            return report

    async def probe_node(self, node_id: str) -> Optional[Node]:
        """
        Probe one node immediately and apply the result.

        Returns:
            The updated node, or None if it does not exist
        """
        node = self.store.get(node_id)
        if node is None:
            return None
        sample = await self.prober.probe(node)
        return self.store.update_health(node_id, sample)

    def _spawn(self, cycle: Callable[[], Awaitable]) -> None:
        task = asyncio.create_task(cycle())
        self._cycle_tasks.add(task)
        task.add_done_callback(self._cycle_tasks.discard)

    async def _periodic(self, name: str, interval: float, cycle: Callable[[], Awaitable]) -> None:
        """Fixed-rate loop; overlapping cycles are dropped by the cycle itself."""
        if self.config.run_on_start:
            self._spawn(cycle)
        while True:
            try:
                await asyncio.sleep(interval)
                self._spawn(cycle)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in {name} loop: {e}")

    async def start(self):
        """Start the background refresh and sweep loops."""
        if not self.config.enabled:
            logger.info("Node scheduler is disabled")
            return
        if self.running:
            return

        logger.info(
            "Starting node scheduler",
            extra={
                "refresh_interval": self.config.refresh_interval_seconds,
                "sweep_interval": self.config.sweep_interval_seconds,
                "sources": [source.name for source in self.sources]
            }
        )
        self._loop_tasks = [
            asyncio.create_task(
                self._periodic("refresh", self.config.refresh_interval_seconds, self.refresh_nodes)
            ),
            asyncio.create_task(
                self._periodic("sweep", self.config.sweep_interval_seconds, self.health_sweep)
            ),
        ]

    async def stop(self):
        """Stop the loops and cancel any cycle still running."""
        tasks = self._loop_tasks + list(self._cycle_tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._loop_tasks = []
        self._cycle_tasks.clear()
        logger.info("Node scheduler stopped")
