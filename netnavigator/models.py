"""
Data model for probe requests, observations and results.
"""
from __future__ import annotations
from dataclasses import dataclass
from enum import Enum, auto
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .errors import InvalidConfig

# Record types resolved when a DNS probe asks for "ALL".
ALL_RECORD_TYPES = ("A", "AAAA", "CNAME", "MX", "NS", "TXT", "SOA", "SRV")
# PTR is single-type only; the target is an IP address.
SUPPORTED_RECORD_TYPES = ALL_RECORD_TYPES + ("PTR",)
ALL_RECORDS = "ALL"


def positive_number(value: Any) -> bool:
    """True for an int or float above zero. Bools are rejected."""
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0


class ProbeKind(Enum):
    """The kind of check a probe performs."""
    HOST_REACHABILITY = "host-reachability"
    TCP_PORT = "tcp-port"
    DNS_RESOLVE = "dns-resolve"


class Outcome(Enum):
    """Terminal classification of a probe."""
    OPEN = "open"
    CLOSED = "closed"
    TIMEOUT = "timeout"
    ERROR = "error"
    RESOLVED = "resolved"
    UNREACHABLE = "unreachable"
    CANCELLED = "cancelled"


class ProbeState(Enum):
    """Lifecycle of a single probe inside a batch."""
    QUEUED = auto()
    DISPATCHED = auto()
    DONE = auto()


class BatchState(Enum):
    """Lifecycle of a batch. There are no transitions back."""
    ACCEPTING = auto()
    RUNNING = auto()
    DRAINING = auto()
    COMPLETE = auto()


@dataclass(frozen=True)
class ProbeRequest:
    """
    One reachability or resolution check against one target.

    timeout is in seconds; None means the engine's default probe timeout.
    record_type only applies to DNS probes; None means "A".
    """
    target: str
    kind: ProbeKind
    port: Optional[int] = None
    timeout: Optional[float] = None
    record_type: Optional[str] = None

    @classmethod
    def tcp(cls, host: str, port: int, timeout: Optional[float] = None) -> ProbeRequest:
        return cls(target=host, kind=ProbeKind.TCP_PORT, port=port, timeout=timeout)

    @classmethod
    def host(cls, host: str, timeout: Optional[float] = None) -> ProbeRequest:
        return cls(target=host, kind=ProbeKind.HOST_REACHABILITY, timeout=timeout)

    @classmethod
    def dns(cls, host: str, record_type: Optional[str] = None, timeout: Optional[float] = None) -> ProbeRequest:
        return cls(target=host, kind=ProbeKind.DNS_RESOLVE, timeout=timeout, record_type=record_type)

    @property
    def record_types(self) -> List[str]:
        """The record types this DNS request resolves."""
        rtype = (self.record_type or "A").upper()
        if rtype == ALL_RECORDS:
            return list(ALL_RECORD_TYPES)
        return [rtype]

    def validate(self) -> None:
        """Raises InvalidConfig if the request cannot be dispatched."""
        if not isinstance(self.kind, ProbeKind):
            raise InvalidConfig(f"Unknown probe kind {self.kind!r}.")
        if not isinstance(self.target, str) or not self.target.strip():
            raise InvalidConfig(f"Probe target must be a non-empty string, got {self.target!r}.")
        if self.timeout is not None and not positive_number(self.timeout):
            raise InvalidConfig(f"Probe timeout must be a positive number of seconds, got {self.timeout!r}.")
        if self.kind is ProbeKind.TCP_PORT:
            port = self.port
            if not isinstance(port, int) or isinstance(port, bool) or not 0 < port < 65536:
                raise InvalidConfig(f"tcp-port probe for '{self.target}' needs a port between 1 and 65535.")
        if self.kind is ProbeKind.DNS_RESOLVE and self.record_type is not None:
            if not isinstance(self.record_type, str):
                raise InvalidConfig(f"DNS record type must be a string, got {self.record_type!r}.")
            rtype = self.record_type.upper()
            if rtype != ALL_RECORDS and rtype not in SUPPORTED_RECORD_TYPES:
                raise InvalidConfig(f"Unsupported DNS record type '{self.record_type}'.")

    def describe(self) -> str:
        if self.kind is ProbeKind.TCP_PORT:
            return f"{self.kind.value} {self.target}:{self.port}"
        if self.kind is ProbeKind.DNS_RESOLVE:
            return f"{self.kind.value} {self.target} {(self.record_type or 'A').upper()}"
        return f"{self.kind.value} {self.target}"


@dataclass
class ProbeObservation:
    """What an executor reports back to the engine for one probe."""
    outcome: Outcome
    latency_ms: Optional[float] = None
    payload: Optional[Dict[str, List[str]]] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class ProbeResult:
    """The terminal result of one probe, echoing its request."""
    index: int
    request: ProbeRequest
    outcome: Outcome
    latency_ms: Optional[float] = None
    payload: Optional[Mapping[str, Tuple[str, ...]]] = None
    error: Optional[str] = None

    def __post_init__(self):
        # The payload is frozen along with the result.
        if self.payload is not None:
            frozen = MappingProxyType({rtype: tuple(values) for rtype, values in self.payload.items()})
            object.__setattr__(self, "payload", frozen)

    @classmethod
    def from_observation(cls, index: int, request: ProbeRequest, observation: ProbeObservation) -> ProbeResult:
        error = observation.error if observation.outcome is Outcome.ERROR else None
        if observation.outcome is Outcome.ERROR and not error:
            error = "unknown error"
        return cls(
            index=index,
            request=request,
            outcome=observation.outcome,
            latency_ms=observation.latency_ms,
            payload=observation.payload,
            error=error,
        )

    def to_dict(self) -> Dict[str, Any]:
        """A JSON-friendly view of the result."""
        data: Dict[str, Any] = {
            "index": self.index,
            "target": self.request.target,
            "kind": self.request.kind.value,
            "outcome": self.outcome.value,
            "latency_ms": self.latency_ms,
        }
        if self.request.port is not None:
            data["port"] = self.request.port
        if self.request.kind is ProbeKind.DNS_RESOLVE:
            data["record_type"] = (self.request.record_type or "A").upper()
        if self.payload is not None:
            data["payload"] = {rtype: list(values) for rtype, values in self.payload.items()}
        if self.error is not None:
            data["error"] = self.error
        return data
