"""
Middleware - Base class for cross-cutting concerns that wrap event execution.
"""

import logging
import time

from .context import EventContext
from .result import Result

logger = logging.getLogger(__name__)


class Middleware:
    """
    Base class for middleware that wraps event execution.

    Middleware executes in LIFO order (reverse of registration) - like gift wrapping.
    The whole stack is entered again, from the outermost layer, for every
    event in the chain. Anything a middleware wants to remember between
    events belongs in the context.
    """

    name = None

    def execute(self, context, next_callable):
        """
        Execute the middleware logic.

        Args:
            context: EventContext containing shared state
            next_callable: Continuation into the rest of the stack. Calling it
                with a context installs that context and returns the Result of
                everything deeper. It also exposes event_name and event_index.

        Returns:
            Result from the next callable (or modified result)

        Example:
            def execute(self, context, next_callable):
                context.set('seen', True)
                result = next_callable(context)
                context.set('done', result.success)
                return result
        """
        raise NotImplementedError(f"{self.__class__.__name__} must implement execute()")

    def get_name(self):
        return self.name or self.__class__.__name__

    def __repr__(self):
        return f"{self.__class__.__name__}()"

    def __str__(self):
        return self.get_name()


class _InnerFailure(Exception):
    """Unwinds a calling-style handler when the stack below it failed."""

    def __init__(self, result):
        super().__init__(result.error)
        self.result = result


class CallableMiddleware(Middleware):
    """
    Middleware backed by a callable following the handler contract:
    handler(context, next) returns the updated context.

    The next given to the handler returns the context that is live after the
    deeper layers ran. If those layers failed, next raises instead, so the
    handler's post-processing is skipped.
    """

    def __init__(self, handler, name=None):
        self.handler = handler
        self.name = name

    def execute(self, context, next_callable):
        return _call_handler(self._get_handler(), context, next_callable)

    def _get_handler(self):
        return self.handler


class ResolvedMiddleware(CallableMiddleware):
    """Calling-style middleware whose handler is looked up by key on every call."""

    def __init__(self, key, resolver, name=None):
        super().__init__(None, name=name or key)
        self.key = key
        self.resolver = resolver

    def _get_handler(self):
        return self.resolver.resolve(self.key)

    def __repr__(self):
        return f"ResolvedMiddleware(key={self.key!r})"


def _call_handler(handler, context, next_callable):
    def proceed(ctx=None):
        result = next_callable(context if ctx is None else ctx)
        if not result.success:
            raise _InnerFailure(result)
        return next_callable.context

    try:
        returned = handler(context, proceed)
    except _InnerFailure as exc:
        return exc.result
    if isinstance(returned, Result):
        return returned
    return Result.ok(context=EventContext.coerce(returned, next_callable.context))


class LoggingMiddleware(Middleware):
    """
    Log the start and end of every event.

    Args:
        log: Logger to write to (defaults to this module's logger)
        level: Level for the start/completion records
    """

    def __init__(self, log=None, level=logging.INFO):
        self.log = log or logger
        self.level = level

    def execute(self, context, next_callable):
        event_name = next_callable.event_name
        self.log.log(self.level, "Starting %s", event_name)

        result = next_callable(context)

        if result.success:
            self.log.log(self.level, "Completed %s", event_name)
        else:
            self.log.warning("Failed %s: %s", event_name, result.error)
        return result


class TimingMiddleware(Middleware):
    """
    Track how long each event takes (min, max, average, calls).

    Args:
        context_key: If set, the last duration in milliseconds is also
            stored in the context under '<event>_<context_key>'
    """

    def __init__(self, context_key=None):
        self.context_key = context_key
        self.timings = {}

    def execute(self, context, next_callable):
        event_name = next_callable.event_name

        start = time.perf_counter()
        result = next_callable(context)
        elapsed = (time.perf_counter() - start) * 1000

        self.timings.setdefault(event_name, []).append(elapsed)
        if self.context_key and result.success:
            next_callable.context.set(f'{event_name}_{self.context_key}', elapsed)
        logger.debug("%s took %.3fms", event_name, elapsed)
        return result

    def get_report(self):
        """Return one summary dict per event, sorted by event name."""
        report = []
        for event, times in sorted(self.timings.items()):
            report.append({
                'event': event,
                'avg_ms': sum(times) / len(times),
                'min_ms': min(times),
                'max_ms': max(times),
                'total_ms': sum(times),
                'calls': len(times),
            })
        return report

    def reset(self):
        """Reset all timing data."""
        self.timings.clear()
