"""
NetNavigator: bounded-concurrency host, port and DNS probing.
"""
import logging

from .configuration import EngineSettings, load_or_create_config
from .context import CancelToken, ProbeContext
from .engine import Batch, BatchHandle, ProbeEngine, run_batch, run_batch_async
from .errors import (
    InvalidConfig,
    ProbeCancelled,
    ProbeEngineError,
    ProbeRefused,
    ProbeTimeout,
    ResolverFailure,
)
from .models import (
    BatchState,
    Outcome,
    ProbeKind,
    ProbeObservation,
    ProbeRequest,
    ProbeResult,
    ProbeState,
)

logging.getLogger("netnavigator").addHandler(logging.NullHandler())

__all__ = [
    "Batch",
    "BatchHandle",
    "BatchState",
    "CancelToken",
    "EngineSettings",
    "InvalidConfig",
    "Outcome",
    "ProbeCancelled",
    "ProbeContext",
    "ProbeEngine",
    "ProbeEngineError",
    "ProbeKind",
    "ProbeObservation",
    "ProbeRefused",
    "ProbeRequest",
    "ProbeResult",
    "ProbeState",
    "ProbeTimeout",
    "ResolverFailure",
    "load_or_create_config",
    "run_batch",
    "run_batch_async",
]
