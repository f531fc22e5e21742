"""Shared fuzzing infrastructure for Atheris-based route oracle fuzzers.

Provides dependency checks, per-run metrics, seed corpus retention, finding
artifacts and the crash-proof JSON summary used by every fuzz target in this
directory.

Not a fuzz target itself. Targets run as scripts (``python
fuzz_atheris/<target>.py``) and import it from their own directory.
"""

from __future__ import annotations

import hashlib
import heapq
import json
import os
import pathlib
import statistics
import sys
import time
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypeAlias

if TYPE_CHECKING:
    from collections.abc import Sequence

    from routeoracle import RunOutcome

try:
    import psutil
except ImportError:
    psutil = None  # type: ignore[assignment]


# --- PEP 695 Type Aliases ---

FuzzStats: TypeAlias = dict[str, int | str | float | list[Any]]
InterestingInput: TypeAlias = tuple[float, str, str]  # (neg_duration_ms, stop_reason, input_hash)

# --- Constants ---

GC_INTERVAL = 256
"""Periodic gc.collect() interval to reclaim Atheris instrumentation cycles."""

MEMORY_SAMPLE_INTERVAL = 100
"""Sample RSS every this many iterations."""


# --- Process Handle (lazy singleton) ---

_process: psutil.Process | None = None


def get_process() -> psutil.Process:
    """Lazy-initialize psutil process handle."""
    global _process  # noqa: PLW0603  # pylint: disable=global-statement
    if _process is None:
        _process = psutil.Process(os.getpid())
    return _process


# --- Dependency Checks ---


def check_dependencies(dep_names: Sequence[str], dep_modules: Sequence[Any]) -> None:
    """Verify fuzzing dependencies are importable, exit with instructions if not.

    Args:
        dep_names: Human-readable names (e.g., ["psutil", "atheris"])
        dep_modules: Corresponding module objects (None if import failed)
    """
    missing = [name for name, mod in zip(dep_names, dep_modules, strict=True) if mod is None]
    if missing:
        print("-" * 80, file=sys.stderr)
        print("ERROR: Missing required dependencies for fuzzing:", file=sys.stderr)
        for dep in missing:
            print(f"  - {dep}", file=sys.stderr)
        print("", file=sys.stderr)
        print("Install with: pip install -e '.[atheris]'", file=sys.stderr)
        print("-" * 80, file=sys.stderr)
        sys.exit(1)


# --- Base Fuzzer State ---


@dataclass
class BaseFuzzerState:
    """Observability state shared by route oracle fuzzers."""

    fuzzer_name: str = ""
    fuzzer_target: str = ""

    # Core stats
    iterations: int = 0
    findings: int = 0
    status: str = "incomplete"

    # Performance tracking (bounded deques)
    performance_history: deque[float] = field(
        default_factory=lambda: deque(maxlen=10000),
    )
    memory_history: deque[float] = field(
        default_factory=lambda: deque(maxlen=1000),
    )
    initial_memory_mb: float = 0.0

    # Replay coverage
    stop_reasons: dict[str, int] = field(default_factory=dict)
    opcode_counts: dict[str, int] = field(default_factory=dict)
    route_requests: int = 0
    routes_found: int = 0
    paths_checked: int = 0
    paths_skipped_ambiguous: int = 0
    hops_checked: int = 0
    finding_checks: dict[str, int] = field(default_factory=dict)

    # Interesting inputs (max-heap for slowest, stop-reason stratified corpus)
    slowest_operations: list[InterestingInput] = field(default_factory=list)
    corpus_buckets: dict[str, dict[str, bytes]] = field(default_factory=dict)
    corpus_entries_added: int = 0
    corpus_evictions: int = 0

    # Finding artifact counter
    finding_counter: int = 0

    # Configuration
    checkpoint_interval: int = 500
    seed_corpus_max_size: int = 500


# --- Per-iteration recording ---


def hash_input(data: bytes) -> str:
    """Compute truncated SHA-256 hex digest for corpus deduplication."""
    return hashlib.sha256(data).hexdigest()[:16]


def record_memory(state: BaseFuzzerState) -> None:
    """Sample current RSS memory usage."""
    current_mb = get_process().memory_info().rss / (1024 * 1024)
    state.memory_history.append(current_mb)


def track_slowest_operation(
    state: BaseFuzzerState,
    duration_ms: float,
    stop_reason: str,
    input_hash: str,
) -> None:
    """Track top 10 slowest runs using a heap keyed on negative duration."""
    entry: InterestingInput = (-duration_ms, stop_reason, input_hash)
    if len(state.slowest_operations) < 10:
        heapq.heappush(state.slowest_operations, entry)
    elif -duration_ms < state.slowest_operations[0][0]:
        heapq.heapreplace(state.slowest_operations, entry)


def track_seed_corpus(
    state: BaseFuzzerState,
    input_key: str,
    input_data: bytes,
    *,
    bucket_name: str,
) -> None:
    """Retain inputs in per-bucket FIFO slots.

    Buckets are keyed by how far a run got (stop reason, plus whether it
    validated any route), so shallow inputs cannot crowd out the rare ones
    that reach the validator.
    """
    bucket = state.corpus_buckets.setdefault(bucket_name, {})
    if input_key in bucket:
        return

    slots = max(1, state.seed_corpus_max_size // max(1, len(state.corpus_buckets)))
    if len(bucket) >= slots:
        del bucket[next(iter(bucket))]
        state.corpus_evictions += 1

    bucket[input_key] = input_data
    state.corpus_entries_added += 1


def record_outcome(state: BaseFuzzerState, outcome: RunOutcome) -> str:
    """Fold a clean run outcome into the fuzzer state.

    Returns:
        Corpus bucket name for this run
    """
    reason = str(outcome.stop_reason)
    state.stop_reasons[reason] = state.stop_reasons.get(reason, 0) + 1
    for name, count in outcome.opcodes.items():
        state.opcode_counts[name] = state.opcode_counts.get(name, 0) + count
    state.route_requests += outcome.route_requests
    state.routes_found += outcome.routes_found
    state.paths_checked += outcome.paths_checked
    state.paths_skipped_ambiguous += outcome.paths_skipped_ambiguous
    state.hops_checked += outcome.hops_checked
    if outcome.hops_checked:
        return f"{reason}_validated"
    if outcome.routes_found:
        return f"{reason}_routed"
    return reason


def record_iteration_metrics(
    state: BaseFuzzerState,
    bucket_name: str,
    start_time: float,
    input_data: bytes,
) -> None:
    """Record per-iteration timing and corpus retention.

    Call in the finally block of test_one_input.
    """
    elapsed_ms = (time.perf_counter() - start_time) * 1000
    state.performance_history.append(elapsed_ms)
    input_hash = hash_input(input_data)
    track_slowest_operation(state, elapsed_ms, bucket_name, input_hash)
    track_seed_corpus(state, input_hash, input_data, bucket_name=bucket_name)


# --- Finding Artifacts ---


def write_finding_artifact(
    state: BaseFuzzerState,
    report_dir: pathlib.Path,
    input_data: bytes,
    error: BaseException,
) -> pathlib.Path | None:
    """Persist a failing input and its metadata for replay.

    Writes ``finding_NNNN.bin`` and ``finding_NNNN_meta.json`` under
    ``report_dir / "findings"``. Returns the input path, or None if the
    directory is not writable.
    """
    state.finding_counter += 1
    findings_dir = report_dir / "findings"
    stem = f"finding_{state.finding_counter:04d}"
    context = getattr(error, "context", None)
    meta: dict[str, Any] = {
        "error_type": type(error).__name__,
        "message": str(error),
        "iteration": state.iterations,
        "input_hash": hash_input(input_data),
        "input_len": len(input_data),
    }
    if context is not None:
        meta["check"] = context.check
        meta["short_channel_id"] = context.short_channel_id
        meta["path_index"] = context.path_index
        meta["hop_index"] = context.hop_index
        meta["expected"] = context.expected
        meta["actual"] = context.actual
    try:
        findings_dir.mkdir(parents=True, exist_ok=True)
        input_path = findings_dir / f"{stem}.bin"
        input_path.write_bytes(input_data)
        (findings_dir / f"{stem}_meta.json").write_text(
            json.dumps(meta, sort_keys=True, indent=2), encoding="utf-8"
        )
    except OSError:
        return None
    return input_path


# --- Stats Building ---


def _add_performance_stats(state: BaseFuzzerState, stats: FuzzStats) -> None:
    """Add performance percentile stats to the stats dictionary."""
    if not state.performance_history:
        return

    perf_data = list(state.performance_history)
    stats["perf_mean_ms"] = round(statistics.mean(perf_data), 3)
    stats["perf_median_ms"] = round(statistics.median(perf_data), 3)
    stats["perf_max_ms"] = round(max(perf_data), 3)
    if len(perf_data) >= 100:
        stats["perf_p99_ms"] = round(statistics.quantiles(perf_data, n=100)[98], 3)


def _add_memory_stats(state: BaseFuzzerState, stats: FuzzStats) -> None:
    """Add memory tracking stats to the stats dictionary."""
    if not state.memory_history:
        return

    mem_data = list(state.memory_history)
    stats["memory_peak_mb"] = round(max(mem_data), 2)
    stats["memory_delta_mb"] = round(max(mem_data) - state.initial_memory_mb, 2)
    if len(mem_data) >= 40:
        quarter = len(mem_data) // 4
        growth_mb = statistics.mean(mem_data[-quarter:]) - statistics.mean(mem_data[:quarter])
        stats["memory_leak_detected"] = 1 if growth_mb > 10.0 else 0
        stats["memory_growth_mb"] = round(growth_mb, 2)


def build_base_stats_dict(state: BaseFuzzerState) -> FuzzStats:
    """Build the stats dictionary for the JSON report."""
    stats: FuzzStats = {
        "fuzzer": state.fuzzer_name,
        "target": state.fuzzer_target,
        "status": state.status,
        "iterations": state.iterations,
        "findings": state.findings,
        "route_requests": state.route_requests,
        "routes_found": state.routes_found,
        "paths_checked": state.paths_checked,
        "paths_skipped_ambiguous": state.paths_skipped_ambiguous,
        "hops_checked": state.hops_checked,
    }

    _add_performance_stats(state, stats)
    _add_memory_stats(state, stats)

    for reason, count in sorted(state.stop_reasons.items()):
        stats[f"stop_{reason}"] = count
    for name, count in sorted(state.opcode_counts.items()):
        stats[f"opcode_{name}"] = count
    for check, count in sorted(state.finding_checks.items()):
        stats[f"finding_{check}"] = count

    stats["seed_corpus_size"] = sum(len(b) for b in state.corpus_buckets.values())
    stats["corpus_buckets_retained"] = sum(1 for b in state.corpus_buckets.values() if b)
    stats["corpus_entries_added"] = state.corpus_entries_added
    stats["corpus_evictions"] = state.corpus_evictions
    stats["slowest_operations_tracked"] = len(state.slowest_operations)
    return stats


# --- Reporting ---


def _write_report(report_dir: pathlib.Path, report_filename: str, report: str) -> None:
    try:
        report_dir.mkdir(parents=True, exist_ok=True)
        (report_dir / report_filename).write_text(report, encoding="utf-8")
    except OSError:
        pass


def emit_checkpoint_report(
    state: BaseFuzzerState,
    stats: FuzzStats,
    report_dir: pathlib.Path,
    report_filename: str,
) -> None:
    """Emit a periodic JSON checkpoint to stderr and file."""
    report = json.dumps(stats, sort_keys=True)
    print(
        f"\n[CHECKPOINT-JSON-BEGIN]{report}[CHECKPOINT-JSON-END]",
        file=sys.stderr,
        flush=True,
    )
    _write_report(report_dir, report_filename, report)
    state.status = "running"


def emit_final_report(
    state: BaseFuzzerState,
    stats: FuzzStats,
    report_dir: pathlib.Path,
    report_filename: str,
) -> None:
    """Emit crash-proof JSON report to stderr and file."""
    state.status = "complete"
    stats["status"] = state.status
    report = json.dumps(stats, sort_keys=True)

    print(
        f"\n[SUMMARY-JSON-BEGIN]{report}[SUMMARY-JSON-END]",
        file=sys.stderr,
        flush=True,
    )
    _write_report(report_dir, report_filename, report)
