#!/usr/bin/env python3
"""Replay a router fuzzer finding to confirm reproducibility.

Reads a crash input (a libFuzzer ``crash-*`` file or a ``finding_NNNN.bin``
written by fuzz_router.py), replays it through routeoracle WITHOUT Atheris
instrumentation, and reports whether the finding reproduces. With
``--trace`` the replayed graph mutations and route requests are printed.

This script runs in the main project venv. If a finding reproduces here it
is a real routing bug (or harness contract break); if it does not, the
backend behaves non-deterministically across runs.

Usage:
    ROUTEORACLE_BACKEND=mybackend:BACKEND \\
        python fuzz_atheris/fuzz_atheris_replay_finding.py crash-abc123
    python fuzz_atheris/fuzz_atheris_replay_finding.py --trace \\
        .fuzz_atheris_corpus/router/findings/  # replay all

Exit codes:
    0 - No findings reproduced (or no files given)
    1 - At least one finding reproduced (real bug confirmed)
    2 - Backend could not be loaded or path not found
"""

from __future__ import annotations

import argparse
import json
import logging
import pathlib
import sys

from routeoracle import (
    Backend,
    HarnessConfig,
    OracleFailure,
    RouterHarness,
    TraceEvent,
    backend_from_env,
)
from routeoracle.errors import BackendLoadError


def _format_event(index: int, event: TraceEvent) -> str:
    fields = {
        name: getattr(event, name)
        for name in ("short_channel_id", "accepted", "amount_msat", "final_cltv")
        if getattr(event, name) is not None
    }
    node_ids = ",".join(n.hex()[:16] for n in event.node_ids)
    extra = " ".join(f"{k}={v}" for k, v in fields.items())
    return f"    {index:4d} {event.action:<21} {node_ids} {extra}".rstrip()


def replay_input(data: bytes, label: str, backend: Backend, *, show_trace: bool) -> bool:
    """Replay one input, return True if a finding reproduces."""
    harness = RouterHarness(data, backend, HarnessConfig(record_trace=True))
    try:
        outcome = harness.run()
    except OracleFailure as e:
        print(f"  [{label}] [CONFIRMED] {type(e).__name__}: {e}")
        if e.context is not None:
            print(f"    context: {e.context}")
        return True

    print(f"  [{label}] Not reproduced (stopped: {outcome.stop_reason})")
    print(
        f"    requests={outcome.route_requests} routes={outcome.routes_found} "
        f"paths_checked={outcome.paths_checked} hops_checked={outcome.hops_checked}"
    )
    if show_trace:
        for i, event in enumerate(outcome.trace):
            print(_format_event(i, event))
    return False


def replay_file(path: pathlib.Path, backend: Backend, *, show_trace: bool) -> bool:
    """Replay a single finding file."""
    meta_path = path.with_name(f"{path.stem}_meta.json")
    if meta_path.exists():
        try:
            meta = json.loads(meta_path.read_text(encoding="utf-8"))
            print(
                f"  Metadata: check={meta.get('check')}, "
                f"iteration={meta.get('iteration')}, "
                f"scid={meta.get('short_channel_id')}"
            )
        except (json.JSONDecodeError, OSError):
            pass
    return replay_input(path.read_bytes(), path.name, backend, show_trace=show_trace)


def main(argv: list[str] | None = None) -> int:
    """Entry point."""
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("target", nargs="?", type=pathlib.Path)
    parser.add_argument("--trace", action="store_true", help="print replayed actions")
    parser.add_argument("--verbose", action="store_true", help="enable DEBUG logging")
    args = parser.parse_args(argv)

    if args.target is None:
        parser.print_usage()
        return 0

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    try:
        backend = backend_from_env()
    except BackendLoadError as e:
        print(f"Cannot load backend: {e}", file=sys.stderr)
        return 2

    target: pathlib.Path = args.target
    any_reproduced = False

    if target.is_dir():
        inputs = sorted(
            p for p in target.iterdir() if p.is_file() and not p.name.endswith("_meta.json")
        )
        if not inputs:
            print(f"No inputs found in {target}")
            return 0
        print(f"Replaying {len(inputs)} finding(s) from {target}")
        print()
        for path in inputs:
            if replay_file(path, backend, show_trace=args.trace):
                any_reproduced = True
            print()
    elif target.is_file():
        print(f"Replaying {target}")
        print()
        any_reproduced = replay_file(target, backend, show_trace=args.trace)
    else:
        print(f"Path not found: {target}", file=sys.stderr)
        return 2

    print()
    if any_reproduced:
        print("[RESULT] At least one finding REPRODUCED without Atheris (real bug)")
        return 1

    print("[RESULT] No findings reproduced without Atheris")
    print("         Possible causes: non-deterministic backend, or a finding")
    print("         recorded against a different ROUTEORACLE_BACKEND.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
