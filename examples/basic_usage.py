#!/usr/bin/env python3
"""
Basic usage example for PRPC-AGGREGATOR library
"""

from prpc_aggregator import NetworkAggregator, AggregatorConfig, CallbackObserver, setup_logging


def main():
    setup_logging()

    # Print progress as endpoints answer
    observer = CallbackObserver(
        on_progress=lambda event: print(f"  progress: {event.responded}/{event.attempted} responded"),
    )

    aggregator = NetworkAggregator(AggregatorConfig(), observer=observer)

    # Render the last snapshot while the live refresh runs
    snapshot = aggregator.load_cached()
    if snapshot:
        print(f"Cached snapshot: {len(snapshot.nodes)} nodes")

    print("Refreshing pNode network view...")
    try:
        result = aggregator.refresh_or_cached()
    finally:
        aggregator.close()

    if not result.nodes:
        print("ERROR No endpoint returned any pNodes")
        return

    health = result.health
    print(f"SUCCESS {len(result.nodes)} nodes from {result.source or 'cache'}")
    print(f"Coverage: {result.meta.responded}/{result.meta.attempted} endpoints")
    print(f"Network health: {health.network_health}/100 ({'trusted' if health.trusted else 'untrusted'})")

    for node in sorted(result.nodes, key=lambda n: -n.stake)[:5]:
        print(f"  {node.pubkey[:12]} {node.address:<22} {node.status:<8} stake={node.stake:g}")


if __name__ == "__main__":
    main()
