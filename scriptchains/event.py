"""
ChainableEvent - Base class for discrete units of work in an event chain.
"""

from .context import EventContext
from .result import Result


class ChainableEvent:
    """
    Base class for events in an event chain.
    Each event represents a discrete unit of business logic.

    Events should be stateless - all state flows through the EventContext.
    The chain does not care whether an event is implemented here in Python
    or resolved from an external runtime at call time.
    """

    name = None

    def execute(self, context):
        """
        Execute the event logic.

        Args:
            context: EventContext containing shared state

        Returns:
            Result indicating success or failure. A successful result may
            carry a replacement context in Result.context.

        Raises:
            NotImplementedError: This method must be implemented by subclasses
        """
        raise NotImplementedError(f"{self.__class__.__name__} must implement execute()")

    def get_name(self):
        return self.name or self.__class__.__name__

    def __repr__(self):
        return f"{self.__class__.__name__}(name={self.get_name()!r})"

    def __str__(self):
        return self.get_name()


class CallableEvent(ChainableEvent):
    """
    Event backed by a plain callable following the handler contract:
    it takes one context and returns the updated context (or None when it
    mutated the context in place).
    """

    def __init__(self, name, handler):
        self.name = name
        self.handler = handler

    def execute(self, context):
        return _call_handler(self.handler, context)


class ResolvedEvent(ChainableEvent):
    """
    Event whose handler is looked up by key through a HandlerResolver on
    every call. The handler itself stays owned by the resolver.
    """

    def __init__(self, name, key, resolver):
        self.name = name
        self.key = key
        self.resolver = resolver

    def execute(self, context):
        return _call_handler(self.resolver.resolve(self.key), context)

    def __repr__(self):
        return f"ResolvedEvent(name={self.name!r}, key={self.key!r})"


def _call_handler(handler, context):
    returned = handler(context)
    if isinstance(returned, Result):
        return returned
    return Result.ok(context=EventContext.coerce(returned, context))
