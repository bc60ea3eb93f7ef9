"""
Exception types used by the probe engine.

Only InvalidConfig ever escapes to the caller. The other exceptions are
raised inside executors and turned into ProbeResult outcomes by the engine.
"""


class ProbeEngineError(Exception):
    """Base class for all probe engine errors."""


class InvalidConfig(ProbeEngineError, ValueError):
    """Raised before dispatch for bad concurrency, timeouts or requests."""


class ProbeTimeout(ProbeEngineError):
    """The probe (or its batch) ran past its deadline."""


class ProbeRefused(ProbeEngineError):
    """The target actively refused the connection."""


class ResolverFailure(ProbeEngineError):
    """Name resolution failed at the resolver level."""


class ProbeCancelled(ProbeEngineError):
    """The batch was cancelled while the probe was running."""
