# benor/errors.py
"""
Exception hierarchy for the consensus simulator.

None of these are fatal to a running node: transport failures are logged and
dropped by the broadcast, protocol errors are logged and the offending message
is ignored. ConfigurationError is only raised while building a simulation.
"""

from typing import Any, Optional


class ConsensusError(Exception):
    """Base class for all simulator errors."""


class TransportError(ConsensusError):
    """Raised when a message could not be handed to a destination node."""

    def __init__(self, dst: Any, message: str, cause: Optional[BaseException] = None):
        super().__init__(f"send to node {dst} failed: {message}")
        self.dst = dst
        self.cause = cause


class ProtocolError(ConsensusError):
    """Raised for inbound messages a node cannot interpret."""


class UnknownMessageKind(ProtocolError):
    def __init__(self, kind: Any):
        super().__init__(f"unknown message kind {kind!r}")
        self.kind = kind


class MalformedMessage(ProtocolError):
    pass


class ConfigurationError(ConsensusError):
    """Raised for inconsistent cluster parameters."""
