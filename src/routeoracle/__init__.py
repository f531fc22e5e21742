"""routeoracle - Deterministic invariant oracle for payment route finding.

Replays an untrusted byte stream as channel-graph gossip and route queries
against a pluggable routing engine, and verifies that every route returned
agrees with the fee, bound and time-lock policies advertised at query time.
Built to be driven by a coverage-guided fuzzer: identical bytes always
replay identically, malformed input always stops cleanly, and only a
genuine route inconsistency escapes as an exception.

Public API:
    run_one - Replay one input, return its RunOutcome
    RouterHarness - Single-use replay loop (for introspection in tests)
    RouteValidator - Route invariant checks, usable standalone
    HarnessConfig - Replay configuration
    Backend / load_backend / backend_from_env - Collaborator wiring

Exceptions:
    OracleFailure - Base of fatal findings
    RouteInvariantViolation - Router produced an inconsistent route
    HarnessInconsistency - Harness or collaborator contract broken
    HarnessStop - Base of clean stops (never escapes run_one)

Submodules:
    routeoracle.cursor - Bounds-checked byte reader
    routeoracle.identities - Fixed-seed identity ordering
    routeoracle.policy - Channel update bookkeeping
    routeoracle.chain - Input-driven UTXO oracle
    routeoracle.collaborators - Codec, graph and router protocols
    routeoracle.types - Route and hint value types
"""

from .backend import Backend, backend_from_env, load_backend
from .config import HarnessConfig
from .enums import StopReason
from .errors import (
    HarnessInconsistency,
    HarnessStop,
    OracleFailure,
    RouteInvariantViolation,
)
from .replay import RouterHarness, RunOutcome, TraceEvent, run_one
from .validation import RouteValidator, ValidationReport

# Version information - Auto-populated from package metadata
# SINGLE SOURCE OF TRUTH: pyproject.toml [project] version
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as _get_version

try:
    __version__ = _get_version("routeoracle")
except PackageNotFoundError:
    # Development mode: package not installed yet
    __version__ = "0.0.0+dev"

__all__ = [
    "Backend",
    "HarnessConfig",
    "HarnessInconsistency",
    "HarnessStop",
    "OracleFailure",
    "RouteInvariantViolation",
    "RouteValidator",
    "RouterHarness",
    "RunOutcome",
    "StopReason",
    "TraceEvent",
    "ValidationReport",
    "__version__",
    "backend_from_env",
    "load_backend",
    "run_one",
]
