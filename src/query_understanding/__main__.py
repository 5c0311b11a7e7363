#!/usr/bin/env python3
"""
CLI for manual query understanding checks.

Usage:
    python -m query_understanding "ECE people from 2005 batch"
    python -m query_understanding "Can you find my batchmates in Chennai" --context "user is 2005 ECE"
    python -m query_understanding "web developers in Pune" --no-llm --json
    python -m query_understanding --status
"""

import argparse
import json
import sys
from typing import Any, Dict, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from query_understanding.exceptions import ConfigurationError
from query_understanding.feature_flags import flags
from query_understanding.hybrid import HybridCoordinator, log_extraction_performance
from query_understanding.llm import create_gateway

console = Console()
err_console = Console(stderr=True)


def create_parser():
    """Create and return the argument parser."""
    parser = argparse.ArgumentParser(
        prog="python -m query_understanding",
        description="Parse a directory search query into intent and entities",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m query_understanding "Find web development companies in Chennai"
  python -m query_understanding "1995 batch who are web developers" --json
  python -m query_understanding --status
        """
    )

    parser.add_argument("query", nargs="?", help="Query text")

    parser.add_argument(
        "--context",
        help="Extra context passed to the generation backend"
    )

    parser.add_argument(
        "--no-llm",
        action="store_true",
        help="Regex only, never call a generation backend"
    )

    parser.add_argument(
        "--status",
        action="store_true",
        help="Show backend circuit status and gateway stats"
    )

    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the full result as JSON"
    )

    return parser


def build_gateway(no_llm: bool):
    if no_llm:
        return None
    try:
        return create_gateway()
    except ConfigurationError as e:
        err_console.print(f"[yellow]Generation backend unavailable: {escape(str(e))}[/yellow]")
        return None


def _format_value(value) -> str:
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    return str(value)


def print_parsed(parsed) -> None:
    table = Table(title="Parsed Query")
    table.add_column("Field", style="cyan")
    table.add_column("Value")

    table.add_row("intent", parsed.intent.value)
    table.add_row("confidence", f"{parsed.confidence:.2f}")
    table.add_row("method", parsed.extraction_method.value)
    for key, value in parsed.entities.to_dict().items():
        table.add_row(key, escape(_format_value(value)))

    metadata = parsed.metadata
    if metadata.escalation_reason:
        table.add_row("escalated", escape(metadata.escalation_reason))
    if metadata.backend:
        table.add_row("backend", metadata.backend)
    if metadata.fallback_reason:
        table.add_row("fallback", escape(metadata.fallback_reason))
    table.add_row("time", f"{metadata.timings_ms.get('total', 0.0):.1f} ms")

    console.print(table)
    if parsed.entities.is_empty():
        console.print("[dim]No entities found[/dim]")


def gateway_status(gateway) -> Optional[Dict[str, Any]]:
    if gateway is None:
        return None
    return {
        "backends": gateway.get_backend_status(),
        "stats": gateway.get_stats_dict(),
    }


def print_json(parsed, gateway, with_status: bool) -> None:
    """One JSON document per run; query plus --status nests both."""
    if parsed is not None and with_status:
        document = {"parsed": parsed.to_dict(), "status": gateway_status(gateway)}
    elif parsed is not None:
        document = parsed.to_dict()
    else:
        document = gateway_status(gateway)
    print(json.dumps(document, indent=2, ensure_ascii=False))


def print_status(gateway) -> None:
    status = gateway_status(gateway)
    if status is None:
        console.print("No generation backend configured")
        return

    table = Table(title="Backends")
    table.add_column("Backend", style="cyan")
    table.add_column("Circuit")
    table.add_column("Failures", justify="right")
    for backend in status["backends"]:
        state = "[red]open[/red]" if backend["circuit_open"] else "[green]closed[/green]"
        table.add_row(backend["name"], state, str(backend["consecutive_failures"]))
    console.print(table)

    stats_table = Table(title="Gateway Stats")
    stats_table.add_column("Metric", style="cyan")
    stats_table.add_column("Value", justify="right")
    for key, value in status["stats"].items():
        stats_table.add_row(key, str(value))
    console.print(stats_table)


def main(argv=None) -> int:
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.query and not args.status:
        parser.print_help()
        return 2

    if args.no_llm:
        flags.set_override("llm_escalation", False)

    gateway = build_gateway(args.no_llm)

    parsed = None
    if args.query:
        coordinator = HybridCoordinator(gateway=gateway)
        try:
            parsed = coordinator.extract_entities(args.query, context=args.context)
        finally:
            coordinator.close()
        log_extraction_performance(parsed)

    if args.json:
        print_json(parsed, gateway, args.status)
        return 0

    if parsed is not None:
        print_parsed(parsed)
    if args.status:
        if parsed is not None:
            console.print()
        print_status(gateway)

    return 0


if __name__ == "__main__":
    sys.exit(main())
