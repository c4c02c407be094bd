#!/usr/bin/env python3
"""
PRPC-AGGREGATOR CLI Interface
"""

import sys
import logging

import click

from .aggregator import NetworkAggregator, setup_logging
from .config import load_config
from .exceptions import PrpcAggregatorException
from .models import AggregateResult
from .observer import LoggingObserver
from .response_format import aggregate_response, error_response, format_json
from .stats import display_uptime
from .utils import format_bytes, format_percent, format_stake


def format_summary(result: AggregateResult, limit: int = 20) -> str:
    """Human-readable report of one refresh"""
    meta = result.meta
    health = result.health
    stats = result.stats

    lines = []
    source = "cached snapshot" if result.from_cache else (meta.source or "none")
    lines.append(f"Source: {source}")
    lines.append(f"Coverage: {meta.responded}/{meta.attempted} endpoints responded in {meta.duration_ms}ms")
    lines.append(f"Nodes: {stats.get('total_nodes', 0)} total, {stats.get('active_nodes', 0)} online, "
                 f"{stats.get('public_nodes', 0)} public")
    lines.append(f"Capacity: {stats.get('total_capacity_tb', 0.0):.2f} TB committed")
    lines.append(f"Network health: {health.network_health}/100 "
                 f"(availability {format_percent(health.availability_score)}, "
                 f"uptime {format_percent(health.uptime_score)}, "
                 f"version {format_percent(health.version_score)})"
                 f"{'' if health.trusted else ' [UNTRUSTED: low coverage]'}")

    versions = stats.get("versions") or {}
    if versions:
        ordered = sorted(versions.items(), key=lambda kv: -kv[1])
        lines.append("Versions: " + ", ".join(f"{v}={c}" for v, c in ordered))

    risk = stats.get("centralization")
    if risk:
        lines.append(f"Centralization risk: {risk['region']} holds {risk['stake_pct']}% stake, "
                     f"{risk['capacity_pct']}% capacity")

    if result.nodes:
        lines.append("")
        lines.append(f"{'PUBKEY':<12} {'ADDRESS':<22} {'STATUS':<8} {'UPTIME':>7} {'CAPACITY':>10} {'STAKE':>9} VERSION")
        top = sorted(result.nodes, key=lambda n: (-n.stake, -n.uptime))[:limit]
        for node in top:
            lines.append(f"{node.pubkey[:12]:<12} {node.address[:22]:<22} {node.status:<8} "
                         f"{format_percent(display_uptime(node)):>7} {format_bytes(node.storage_committed):>10} "
                         f"{format_stake(node.stake):>9} {node.version}")
        if len(result.nodes) > limit:
            lines.append(f"... {len(result.nodes) - limit} more")

    return "\n".join(lines)


def write_output(text: str, output) -> None:
    if output:
        with open(output, 'w') as f:
            f.write(text)
    else:
        click.echo(text)


@click.command()
@click.option('--endpoint', 'endpoints', multiple=True, help='pRPC endpoint URL (repeatable, replaces the bootstrap set)')
@click.option('--config', 'config_path', type=click.Path(exists=True), help='JSON config file')
@click.option('--relay-url', help='Send calls through a {url, payload} relay proxy')
@click.option('--timeout', type=float, help='Fetch timeout per call in seconds (default: 8)')
@click.option('--probe-timeout', type=float, help='Coverage probe timeout in seconds (default: 3)')
@click.option('--retries', type=int, help='Retries after a failed call (default: 1)')
@click.option('--batch-size', type=int, help='Endpoints per fallback sweep batch (default: 6)')
@click.option('--no-credits', is_flag=True, help='Skip the pod credits feed')
@click.option('--geo', is_flag=True, help='Resolve node regions through the geo lookup service')
@click.option('--cache-file', type=click.Path(), help='Snapshot file location')
@click.option('--use-cache/--no-cache', default=True, help='Fall back to a fresh snapshot when the network gives nothing')
@click.option('--format', 'output_format', type=click.Choice(['json', 'summary']), default='json',
              help='Output format (default: json)')
@click.option('--output', type=click.Path(), help='Save results to file')
@click.option('--pretty', is_flag=True, help='Pretty-print JSON output (default: compact)')
@click.option('--debug', is_flag=True, help='Enable debug logging')
@click.option('--quiet', is_flag=True, help='Suppress output except results')
def cli(endpoints, config_path, relay_url, timeout, probe_timeout, retries, batch_size, no_credits, geo,
        cache_file, use_cache, output_format, output, pretty, debug, quiet):
    """PRPC-AGGREGATOR: race the pNode bootstrap endpoints and report a trust-qualified network view"""

    if debug:
        setup_logging(logging.DEBUG)
    elif quiet:
        setup_logging(logging.ERROR)
    else:
        setup_logging(logging.INFO)

    try:
        config = load_config(config_path)
        config = config.merged(
            endpoints=tuple(endpoints) if endpoints else None,
            relay_url=relay_url,
            fetch_timeout=timeout,
            probe_timeout=probe_timeout,
            max_retries=retries,
            batch_size=batch_size,
            cache_file=cache_file,
            enable_credits=False if no_credits else None,
            enable_geo=True if geo else None,
        )

        if not quiet:
            click.echo(f"Querying {len(config.endpoints)} pRPC endpoints...", err=True)

        aggregator = NetworkAggregator(config, observer=LoggingObserver())
        try:
            result = aggregator.refresh_or_cached() if use_cache else aggregator.refresh()
        finally:
            aggregator.close()

        if output_format == 'summary':
            write_output(format_summary(result), output)
        else:
            write_output(format_json(aggregate_response(result), pretty), output)

        if output and not quiet:
            click.echo(f"Results saved to {output}", err=True)

        if not result.nodes:
            if not quiet:
                click.echo("No pNodes returned by any endpoint", err=True)
            sys.exit(1)

    except PrpcAggregatorException as e:
        write_output(format_json(error_response(str(e)), pretty), output)
        if not quiet:
            click.echo(f"Refresh failed: {e}", err=True)
        sys.exit(1)


if __name__ == '__main__':
    cli()
