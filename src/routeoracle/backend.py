"""Collaborator backend bundle and its configuration-driven loader.

A Backend groups the three collaborators a replay run needs: the message
codec, a factory producing a fresh graph per run, and the router. Fuzz
targets resolve it from the ``ROUTEORACLE_BACKEND`` environment variable,
written as ``package.module:attribute``. The attribute may be a Backend
instance or a zero-argument callable returning one.

Python 3.13+. Zero external dependencies.
"""

from __future__ import annotations

import importlib
import logging
import os
from dataclasses import dataclass
from typing import TYPE_CHECKING

from routeoracle.errors import BackendLoadError

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from routeoracle.collaborators import MessageCodec, NetworkGraph, Router

__all__ = ["BACKEND_ENV_VAR", "Backend", "backend_from_env", "load_backend"]

logger = logging.getLogger(__name__)

BACKEND_ENV_VAR = "ROUTEORACLE_BACKEND"


@dataclass(frozen=True, slots=True)
class Backend:
    """Collaborators driven by RouterHarness.

    Attributes:
        codec: Gossip message decoder
        graph_factory: Returns a new, empty graph. Called once per run so no
            state leaks between fuzz iterations.
        router: Path finder queried for every route request
    """

    codec: MessageCodec
    graph_factory: Callable[[], NetworkGraph]
    router: Router

    def new_graph(self) -> NetworkGraph:
        return self.graph_factory()


def load_backend(reference: str) -> Backend:
    """Resolve a ``module:attribute`` reference to a Backend.

    Raises:
        BackendLoadError: If the reference is malformed, the module cannot be
            imported, the attribute is missing, or it does not yield a Backend
    """
    module_name, sep, attr_name = reference.partition(":")
    if not sep or not module_name or not attr_name:
        msg = f"Backend reference must look like 'module:attribute', got {reference!r}"
        raise BackendLoadError(msg)

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        msg = f"Cannot import backend module {module_name!r}: {e}"
        raise BackendLoadError(msg) from e

    target: object = module
    for part in attr_name.split("."):
        try:
            target = getattr(target, part)
        except AttributeError as e:
            msg = f"Backend module {module_name!r} has no attribute {attr_name!r}"
            raise BackendLoadError(msg) from e

    if not isinstance(target, Backend) and callable(target):
        target = target()
    if not isinstance(target, Backend):
        msg = f"{reference!r} resolved to {type(target).__name__}, expected Backend"
        raise BackendLoadError(msg)

    logger.debug("Loaded routing backend from %s", reference)
    return target


def backend_from_env(environ: Mapping[str, str] | None = None) -> Backend:
    """Load the backend named by ``ROUTEORACLE_BACKEND``.

    Raises:
        BackendLoadError: If the variable is unset or empty, or loading fails
    """
    env = os.environ if environ is None else environ
    reference = env.get(BACKEND_ENV_VAR, "").strip()
    if not reference:
        msg = f"{BACKEND_ENV_VAR} is not set (expected 'module:attribute')"
        raise BackendLoadError(msg)
    return load_backend(reference)
