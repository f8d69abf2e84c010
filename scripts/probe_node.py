#!/usr/bin/env python3
"""Probe a HyperBEAM node and one of its processes.

Prints node metadata, then (with ``--process``) the live state, the
schedule and the cached sub-tree of that process.  Optionally submits a
message and waits for the live state to change.

Usage
-----
::

    export HYPERBEAM_URL="http://localhost:10000"
    python scripts/probe_node.py --process PROCESS_ID

Options::

    --process ID         Process to inspect
    --cache-key KEY      Also read compute/cache/KEY
    --send ACTION        Submit a message with this Action header
    --data JSON          Message body for --send (default: {})
    --wait N             After --send, re-read live state up to N times
    --interval SECONDS   Delay between --wait attempts (default: 1.0)
    --json               Output as machine-readable JSON
    --verbose            Enable debug logging (with redacted traces)
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

_src = Path(__file__).resolve().parent.parent / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pyhyperbeam import (  # noqa: E402
    HyperBeamClient,
    HyperBeamConfig,
    HyperBeamError,
    PredicateNotMetError,
)


def _section(title: str) -> str:
    return f"\n{'═' * 60}\n  {title}\n{'═' * 60}"


def _render(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, indent=2, default=str, ensure_ascii=False)


async def probe(client: HyperBeamClient, args: argparse.Namespace, out: list[str]) -> dict[str, Any]:
    result: dict[str, Any] = {"timestamp": datetime.now(UTC).isoformat()}

    out.append(_section("NODE"))
    info = await client.node_info()
    result["node_info"] = info
    out.append(_render(info))

    if not args.process:
        return result

    poller = client.poller(args.process)
    handle = client.process(args.process)

    out.append(_section(f"PROCESS  id={args.process}"))
    snapshot = await poller.aggregate()
    result["process"] = snapshot.model_dump(mode="json")
    out.append("  ── live state ──")
    out.append(_render(snapshot.state))
    out.append("  ── schedule ──")
    out.append(_render(snapshot.log))
    out.append("  ── cache ──")
    out.append(_render(snapshot.cache) if snapshot.cache_available else f"  (unavailable: {snapshot.cache_error})")

    if args.cache_key:
        try:
            value = await handle.cached_subtree(args.cache_key)
        except HyperBeamError as exc:
            out.append(f"  !! cache/{args.cache_key} failed: {exc}")
            result["cache_key"] = {"error": str(exc)}
        else:
            out.append(f"  ── cache/{args.cache_key} ──")
            out.append(_render(value))
            result["cache_key"] = value

    if args.send:
        payload = json.loads(args.data) if args.data else {}
        before = snapshot.state
        out.append(_section(f"SEND  action={args.send}"))
        ack = await handle.submit(args.send, payload)
        result["send"] = {"action": args.send, "ack": ack}
        out.append(_render(ack))

        if args.wait:
            try:
                after = await poller.wait_for(lambda s: s != before, args.wait, args.interval)
            except PredicateNotMetError as exc:
                out.append(f"  !! {exc}")
                result["send"]["changed"] = False
            else:
                out.append("  ── new live state ──")
                out.append(_render(after))
                result["send"]["changed"] = True
                result["send"]["state"] = after

    return result


async def main() -> int:
    parser = argparse.ArgumentParser(description="Probe a HyperBEAM node and one of its processes.")
    parser.add_argument("--url", help="Node base URL (default: $HYPERBEAM_URL or http://localhost:10000)")
    parser.add_argument("--timeout", type=float, help="Request timeout in seconds")
    parser.add_argument("--process", help="Process id to inspect")
    parser.add_argument("--cache-key", help="Also read compute/cache/KEY")
    parser.add_argument("--send", metavar="ACTION", help="Submit a message with this Action header")
    parser.add_argument("--data", help="JSON body for --send")
    parser.add_argument("--wait", type=int, default=0, help="Re-read live state up to N times after --send")
    parser.add_argument("--interval", type=float, default=1.0, help="Seconds between --wait attempts")
    parser.add_argument("--json", action="store_true", dest="json_mode", help="Output machine-readable JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.WARNING)

    overrides: dict[str, Any] = {}
    if args.url:
        overrides["base_url"] = args.url
    if args.timeout:
        overrides["timeout"] = args.timeout
    if args.verbose:
        overrides["debug"] = True

    out: list[str] = []
    try:
        config = HyperBeamConfig.from_env(**overrides)
        async with HyperBeamClient(config) as client:
            result = await probe(client, args, out)
    except HyperBeamError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    if args.json_mode:
        print(json.dumps(result, indent=2, default=str, ensure_ascii=False))
    else:
        print("\n".join(out))
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
