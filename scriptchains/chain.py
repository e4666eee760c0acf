"""
EventChain - Orchestrates sequential execution of events through middleware.
"""

import logging

from .context import EventContext
from .errors import ConfigurationError, EventChainError
from .event import ChainableEvent, ResolvedEvent
from .middleware import Middleware, ResolvedMiddleware
from .result import Result

logger = logging.getLogger(__name__)


def _resolvable(handler):
    return handler.resolver is not None and handler.key in handler.resolver


class ChainState:
    """Lifecycle states of an EventChain."""
    BUILDING = "building"     # Events/middleware still being added
    READY = "ready"           # Validated, not running
    RUNNING = "running"       # execute() in progress
    COMPLETED = "completed"   # Last run finished successfully
    ABORTED = "aborted"       # Last run stopped on a failure


class _Run:
    """State of a single execute() call: the live context and the current event."""

    def __init__(self, context, events, middleware):
        self.context = context
        self.events = events
        self.middleware = middleware
        self.event = None
        self.event_index = None
        self.failure = None

    def begin(self, index):
        self.event_index = index
        self.event = self.events[index]
        self.failure = None


class Continuation:
    """
    The "next" handed to a middleware.

    Calling it installs the given context as the live one, runs the rest of
    the stack below this middleware and returns that Result.
    """

    def __init__(self, chain, run, depth):
        self._chain = chain
        self._run = run
        self._depth = depth

    @property
    def context(self):
        """The context that is live right now."""
        return self._run.context

    @property
    def event_name(self):
        return self._run.event.get_name()

    @property
    def event_index(self):
        return self._run.event_index

    def __call__(self, context):
        run = self._run
        run.context = EventContext.coerce(context, run.context)
        return self._chain._invoke(run, self._depth + 1)


class EventChain:
    """
    Orchestrates sequential execution of events through a middleware pipeline.

    The chain manages:
    - FIFO event execution
    - Middleware pipeline (LIFO order), rebuilt around every event
    - Abort on the first failure
    - Shared context management
    """

    def __init__(self):
        self._events = []
        self._middleware = []
        self._state = ChainState.BUILDING

    @property
    def state(self):
        return self._state

    def add_event(self, event):
        """
        Add an event to the chain.

        Args:
            event: ChainableEvent instance to add

        Returns:
            self (for method chaining)
        """
        self._check_mutable()
        self._events.append(event)
        self._state = ChainState.BUILDING
        return self

    def use_middleware(self, middleware):
        """
        Add middleware to the chain.
        Middleware executes in LIFO order (reverse of registration).

        Args:
            middleware: Middleware instance to add

        Returns:
            self (for method chaining)
        """
        self._check_mutable()
        self._middleware.append(middleware)
        self._state = ChainState.BUILDING
        return self

    def build(self):
        """
        Validate the chain and mark it ready to run.

        Every event and middleware must be of the right type and every
        handler key must resolve. Nothing is executed.

        Raises:
            ConfigurationError: Naming the first thing that does not resolve
        """
        self._check_mutable()
        for event in self._events:
            if not isinstance(event, ChainableEvent):
                raise ConfigurationError(repr(event), f"Not an event: {event!r}")
            if isinstance(event, ResolvedEvent) and not _resolvable(event):
                raise ConfigurationError(event.key, f"Unknown event: {event.key}")
        for middleware in self._middleware:
            if not isinstance(middleware, Middleware):
                raise ConfigurationError(repr(middleware), f"Not a middleware: {middleware!r}")
            if isinstance(middleware, ResolvedMiddleware) and not _resolvable(middleware):
                raise ConfigurationError(middleware.key, f"Unknown middleware: {middleware.key}")
        self._state = ChainState.READY
        logger.debug("Chain ready: %d events, %d middleware",
                     len(self._events), len(self._middleware))
        return self

    def execute(self, context=None):
        """
        Execute all events in the chain through the middleware pipeline.

        Args:
            context: EventContext (or mapping) holding the initial state.
                A fresh empty context is used when omitted.

        Returns:
            Result for the whole run. Result.context is the final context.
            On failure, Result.source names the failing event or middleware
            and Result.data['event_index'] is the position that failed.

            Events and native middleware write to the live context in place,
            so whatever a failing native handler wrote before it failed is
            still there. Lua handlers work on a table and leave the context
            untouched when they fail.
        """
        if self._state == ChainState.RUNNING:
            raise EventChainError("EventChain is already running")
        if self._state == ChainState.BUILDING:
            self.build()

        if context is None:
            context = EventContext()
        elif not isinstance(context, EventContext):
            context = EventContext(context)

        run = _Run(context, tuple(self._events), tuple(self._middleware))
        self._state = ChainState.RUNNING
        try:
            for index in range(len(run.events)):
                run.begin(index)
                self._invoke(run, 0)

                if run.failure is not None:
                    failure = run.failure
                    logger.error("Chain aborted at event %d (%s): %s",
                                 index, failure.source, failure.error)
                    self._state = ChainState.ABORTED
                    return Result(False, error=failure.error, source=failure.source,
                                  data={'event_index': index, 'events_executed': index},
                                  context=run.context)
            self._state = ChainState.COMPLETED
        finally:
            if self._state == ChainState.RUNNING:
                self._state = ChainState.ABORTED

        return Result.ok(data={'events_executed': len(run.events)}, context=run.context)

    def _invoke(self, run, depth):
        """
        Run the middleware stack from depth inwards around run.event.

        depth 0 is the last registered middleware; once depth reaches the
        number of middleware the event itself is executed.
        """
        count = len(run.middleware)
        if depth == count:
            target = run.event
            name = target.get_name()
            call = lambda: target.execute(run.context)
        else:
            target = run.middleware[count - 1 - depth]
            name = target.get_name()
            continuation = Continuation(self, run, depth)
            call = lambda: target.execute(run.context, continuation)

        try:
            result = call()
        except Exception as exc:
            logger.debug("%s raised", name, exc_info=True)
            result = Result.fail(exc, source=name)

        if run.failure is not None:
            return run.failure

        if not isinstance(result, Result):
            result = Result.fail(f"{name} returned {type(result).__name__}, expected Result",
                                 source=name)
        if not result.success:
            if result.source is None:
                result.source = name
            run.failure = result
            return result

        if result.context is not None:
            run.context = EventContext.coerce(result.context, run.context)
        return result

    def _check_mutable(self):
        if self._state == ChainState.RUNNING:
            raise EventChainError("Cannot modify an EventChain while it is running")

    def clear_events(self):
        """Remove all events from the chain."""
        self._check_mutable()
        self._events.clear()
        self._state = ChainState.BUILDING
        return self

    def clear_middleware(self):
        """Remove all middleware from the chain."""
        self._check_mutable()
        self._middleware.clear()
        self._state = ChainState.BUILDING
        return self

    def reset(self):
        """Clear both events and middleware."""
        self.clear_events()
        self.clear_middleware()
        return self

    def event_count(self):
        """Return the number of events in the chain."""
        return len(self._events)

    def middleware_count(self):
        """Return the number of middleware in the chain."""
        return len(self._middleware)

    def event_names(self):
        return [event.get_name() for event in self._events]

    def __repr__(self):
        return (f"EventChain(events={len(self._events)}, "
                f"middleware={len(self._middleware)}, "
                f"state={self._state})")
