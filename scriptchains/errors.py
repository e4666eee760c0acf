"""
Exceptions raised by ScriptChains.

Configuration problems raise. Failures of individual events or middleware
during a run are reported as Result.fail values instead.
"""


class EventChainError(RuntimeError):
    """Base class for errors raised by the engine."""


class ConfigurationError(EventChainError):
    """A chain definition refers to something that cannot be resolved."""

    def __init__(self, identifier, message=None):
        self.identifier = identifier
        super().__init__(message or f"Unknown handler: {identifier}")


class HandlerError(EventChainError):
    """
    A handler misbehaved at the scripting runtime boundary.

    Raised inside a run and folded into a Result.fail by the chain, with
    the handler name and the underlying reason kept as text.
    """

    def __init__(self, handler, reason):
        self.handler = handler
        self.reason = reason
        super().__init__(f"{handler}: {reason}")


class ThreadAffinityError(EventChainError):
    """A single-threaded runtime was used from a thread that does not own it."""
