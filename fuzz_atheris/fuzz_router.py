#!/usr/bin/env python3
"""Route Invariant Oracle Fuzzer (Atheris).

Targets: routeoracle.run_one over the routing backend named by
ROUTEORACLE_BACKEND (module:attribute).

Concern boundary: Each input is replayed byte-for-byte as gossip (node and
channel announcements, channel updates, closes) and route queries against a
fresh graph from the backend. Every route the backend's router returns is
checked for fee, htlc bound, time-lock and amount consistency. Raw bytes are
handed to the oracle unchanged (no FuzzedDataProvider), so a crash file
replays identically through fuzz_atheris_replay_finding.py.

A RouteInvariantViolation or HarnessInconsistency propagates out of
test_one_input and is the finding. Clean stops are counted per stop reason.

Run with (libFuzzer flags pass straight through to atheris.Setup):
    ROUTEORACLE_BACKEND=mybackend:BACKEND \\
        python fuzz_atheris/fuzz_router.py .fuzz_atheris_corpus/router/corpus -max_total_time=600

Requires Python 3.13+ (uses PEP 695 type aliases).
"""

from __future__ import annotations

import atexit
import gc
import logging
import pathlib
import sys
import time
from typing import Any

# --- Dependency Checks ---
_psutil_mod: Any = None
_atheris_mod: Any = None

try:  # noqa: SIM105 - need module ref for check_dependencies
    import psutil as _psutil_mod  # type: ignore[no-redef]
except ImportError:
    pass

try:  # noqa: SIM105 - need module ref for check_dependencies
    import atheris as _atheris_mod  # type: ignore[no-redef]
except ImportError:
    pass

from fuzz_common import (  # noqa: E402 - after dependency capture  # pylint: disable=C0413
    GC_INTERVAL,
    MEMORY_SAMPLE_INTERVAL,
    BaseFuzzerState,
    build_base_stats_dict,
    check_dependencies,
    emit_checkpoint_report,
    emit_final_report,
    get_process,
    record_iteration_metrics,
    record_memory,
    record_outcome,
    write_finding_artifact,
)

check_dependencies(["psutil", "atheris"], [_psutil_mod, _atheris_mod])

import atheris  # noqa: E402  # pylint: disable=C0412,C0413

# --- Module State ---

_state = BaseFuzzerState(
    checkpoint_interval=500,
    seed_corpus_max_size=200,
    fuzzer_name="router",
    fuzzer_target="routeoracle.run_one (replay + route invariant validation)",
)

_REPORT_DIR = pathlib.Path(".fuzz_atheris_corpus") / "router"
_REPORT_FILENAME = "fuzz_router_report.json"


# --- Reporting ---


def _emit_checkpoint() -> None:
    """Emit periodic checkpoint (uses checkpoint markers)."""
    emit_checkpoint_report(_state, build_base_stats_dict(_state), _REPORT_DIR, _REPORT_FILENAME)


def _emit_report() -> None:
    """Emit crash-proof final report."""
    emit_final_report(_state, build_base_stats_dict(_state), _REPORT_DIR, _REPORT_FILENAME)


atexit.register(_emit_report)

# --- Suppress logging and instrument imports ---
logging.getLogger("routeoracle").setLevel(logging.CRITICAL)

with atheris.instrument_imports(include=["routeoracle"]):
    from routeoracle import HarnessConfig, OracleFailure, backend_from_env, run_one

_BACKEND = backend_from_env()
_CONFIG = HarnessConfig()


def test_one_input(data: bytes) -> None:
    """Atheris entry point: replay data and validate every returned route."""
    if _state.iterations == 0:
        _state.initial_memory_mb = get_process().memory_info().rss / (1024 * 1024)

    _state.iterations += 1
    _state.status = "running"

    if _state.iterations % _state.checkpoint_interval == 0:
        _emit_checkpoint()

    start_time = time.perf_counter()
    bucket = "finding"

    try:
        outcome = run_one(data, _BACKEND, _CONFIG)
        bucket = record_outcome(_state, outcome)
    except OracleFailure as e:
        _state.findings += 1
        check = e.context.check if e.context is not None else type(e).__name__
        _state.finding_checks[check] = _state.finding_checks.get(check, 0) + 1
        write_finding_artifact(_state, _REPORT_DIR, data, e)
        raise
    finally:
        record_iteration_metrics(_state, bucket, start_time, data)
        if _state.iterations % GC_INTERVAL == 0:
            gc.collect()
        if _state.iterations % MEMORY_SAMPLE_INTERVAL == 0:
            record_memory(_state)


def main() -> None:
    """Run the router oracle fuzzer."""
    print(f"[router] backend loaded, target: {_state.fuzzer_target}", file=sys.stderr)
    atheris.Setup(sys.argv, test_one_input)
    atheris.Fuzz()


if __name__ == "__main__":
    main()
