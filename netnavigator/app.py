"""
Command-line front end for the NetNavigator probe engine.

Builds a batch from the command line, runs it and prints the results.
Ctrl-C cancels the running batch and prints whatever completed.
"""
from __future__ import annotations
import argparse
import dataclasses
import json
import logging
import sys
from typing import List, Optional, Sequence

from . import configuration
from .configuration import EngineSettings
from .engine import Batch, ProbeEngine
from .errors import InvalidConfig
from .models import ALL_RECORDS, SUPPORTED_RECORD_TYPES, Outcome, ProbeKind, ProbeRequest, ProbeResult
from .sweeps import dns_requests, port_requests, subnet_requests, target_requests


def build_argparser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="netnavigator", description="Concurrent host, port and DNS probing")
    ap.add_argument("--config", help="YAML settings file (created with defaults if missing)")
    ap.add_argument("--concurrency", type=int, help="Maximum probes in flight")
    ap.add_argument("--timeout", type=float, help="Per-probe timeout in seconds")
    ap.add_argument("--batch-timeout", type=float, help="Deadline for the whole batch in seconds")
    ap.add_argument("--json", action="store_true", help="Print results as JSON")
    ap.add_argument("-v", "--verbose", action="count", default=0, help="More logging (-vv for debug)")

    sub = ap.add_subparsers(dest="command", required=True)

    sweep = sub.add_parser("sweep", help="Find hosts that answer on a subnet")
    sweep.add_argument("network", nargs="?", help="CIDR or three-octet base (default: local network)")
    sweep.add_argument("--all", action="store_true", help="Also list hosts that did not answer")

    ports = sub.add_parser("ports", help="Check TCP ports on a host")
    ports.add_argument("host")
    ports.add_argument("ports", help="e.g. 22,80,8000-8010")

    dns = sub.add_parser("dns", help="Resolve DNS records")
    dns.add_argument("host")
    dns.add_argument(
        "--type", dest="types", action="append", type=str.upper,
        choices=list(SUPPORTED_RECORD_TYPES) + [ALL_RECORDS],
        help="Record type, repeatable (default A; ALL for every type)",
    )

    probe = sub.add_parser("probe", help="Probe host or host:port targets")
    probe.add_argument("targets", nargs="+")
    return ap


def _load_settings(args: argparse.Namespace) -> EngineSettings:
    config = configuration.load_or_create_config(args.config) if args.config else dict(configuration.DEFAULT_CONFIG)
    settings = EngineSettings.from_config(config)
    overrides = {}
    if args.concurrency is not None:
        overrides["max_concurrency"] = args.concurrency
    if args.timeout is not None:
        overrides["probe_timeout"] = args.timeout
    if args.batch_timeout is not None:
        overrides["batch_timeout"] = args.batch_timeout
    return dataclasses.replace(settings, **overrides) if overrides else settings


def _build_requests(args: argparse.Namespace) -> List[ProbeRequest]:
    if args.command == "sweep":
        return subnet_requests(args.network)
    if args.command == "ports":
        return port_requests(args.host, args.ports)
    if args.command == "dns":
        return dns_requests(args.host, args.types)
    return target_requests("\n".join(args.targets))


def _format_result(result: ProbeResult) -> List[str]:
    request = result.request
    target = f"{request.target}:{request.port}" if request.kind is ProbeKind.TCP_PORT else request.target
    latency = f"{result.latency_ms:.1f} ms" if result.latency_ms is not None else "-"
    lines = [f"{target:<40} {request.kind.value:<18} {result.outcome.value:<12} {latency}"]
    if result.error:
        lines.append(f"    error: {result.error}")
    for rtype, values in (result.payload or {}).items():
        lines.append(f"    {rtype}: {', '.join(values) if values else '(none)'}")
    return lines


def print_results(results: Sequence[ProbeResult], as_json: bool = False, out=None) -> None:
    out = out or sys.stdout
    if as_json:
        json.dump([r.to_dict() for r in results], out, indent=2)
        out.write("\n")
        return
    for result in results:
        for line in _format_result(result):
            out.write(line + "\n")


def main(argv: Optional[Sequence[str]] = None) -> int:
    """The main entry point for the command line."""
    args = build_argparser().parse_args(argv)
    level = logging.WARNING - 10 * min(args.verbose, 2)
    logging.basicConfig(level=level, format='%(asctime)s - %(levelname)s - %(message)s')

    try:
        settings = _load_settings(args)
        batch = Batch(_build_requests(args))
        handle = ProbeEngine(settings).submit(batch)
    except InvalidConfig as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    try:
        results = handle.results()
    except KeyboardInterrupt:
        handle.cancel()
        results = handle.results()

    if args.command == "sweep" and not args.all:
        results = [r for r in results if r.outcome is Outcome.RESOLVED]
        if not results and not args.json:
            print("No active hosts found")
            return 0
    print_results(results, as_json=args.json)
    return 0
