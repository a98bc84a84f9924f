#!/usr/bin/env python3
"""
Run one node list refresh and health sweep, then print the status board.

Usage:
    python scripts/check_nodes.py [--env production] [--no-refresh] [--resolve URL ...]
"""

import argparse
import asyncio
import os
import sys

# Add the project root to the Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from noderouter.config import ConfigLoader
from noderouter.config.logging import setup_logging
from noderouter.services.engine import build_engine
from noderouter.services.persistence import InMemoryKeyValueStore


def print_board(board):
    """Print the per-service ranking."""
    for service, nodes in board["services"].items():
        best = board["best"].get(service)
        override = board["overrides"].get(service)
        print(f"\n📦 {service} (best: {best or '-'}{', override: ' + override if override else ''})")
        if not nodes:
            print("   no nodes")
            continue
        for node in nodes:
            latency = f"{node['latency_ms']:.0f} ms" if node["latency_ms"] is not None else "-"
            print(
                f"   {node['id']:<20} {node['health']:<9} {latency:>9}  "
                f"score={node['score']:.3f}  {node['strategy']:<11} {node['endpoint']}"
            )


async def main(args) -> int:
    config = ConfigLoader().load_config(args.env)
    setup_logging(log_level="WARNING", log_format="text", enable_access_log=False)

    # Keep the check side-effect free
    engine = build_engine(config, persistence=InMemoryKeyValueStore())
    try:
        if not args.no_refresh:
            print("🔄 Refreshing node lists...")
            report = await engine.refresh_nodes()
            print(f"   succeeded={report.succeeded} failed={list(report.failed)} received={report.nodes_received}")

        print("🩺 Probing nodes...")
        sweep = await engine.health_sweep()
        print(
            f"   probed={sweep.probed} healthy={sweep.healthy} degraded={sweep.degraded} "
            f"dead={sweep.dead} abandoned={sweep.abandoned}"
        )

        print_board(engine.status_board())

        for url in args.resolve or []:
            decision = engine.explain(url)
            print(f"\n🔀 {url}\n   -> {decision.final_url} ({decision.reason})")
    finally:
        await engine.stop()
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Check acceleration node health")
    parser.add_argument("--env", default=None, help="Configuration environment")
    parser.add_argument("--no-refresh", action="store_true", help="Skip remote node list refresh")
    parser.add_argument("--resolve", nargs="*", help="URLs to resolve after the sweep")
    sys.exit(asyncio.run(main(parser.parse_args())))
