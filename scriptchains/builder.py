"""
Chain definitions and the builder that turns them into runnable EventChains.

A chain definition is a plain mapping, usually produced by a script:

    {
        'context': {'counter': 0, 'message': 'start'},
        'events': ['increment', {'name': 'append', 'handler': append}],
        'middleware': [{'name': 'timing', 'handler': timing}],
    }

Events given by bare name resolve against native events registered with the
builder. Entries with a handler wrap that callable. Entries with a key are
resolved through a HandlerResolver every time they run.
"""

import logging
from collections.abc import Mapping

from .chain import EventChain
from .context import EventContext, is_int64
from .errors import ConfigurationError
from .event import CallableEvent, ChainableEvent, ResolvedEvent
from .middleware import CallableMiddleware, Middleware, ResolvedMiddleware

logger = logging.getLogger(__name__)


class HandlerDescriptor:
    """One entry of the events or middleware list of a chain definition."""

    def __init__(self, name=None, handler=None, key=None):
        self.name = name
        self.handler = handler
        self.key = key

    @classmethod
    def parse(cls, entry, label):
        if isinstance(entry, cls):
            return entry
        if isinstance(entry, str):
            return cls(name=entry)
        if isinstance(entry, Mapping):
            descriptor = cls(name=entry.get('name'), handler=entry.get('handler'),
                             key=entry.get('key'))
            if descriptor.name is None and descriptor.handler is None and descriptor.key is None:
                raise ConfigurationError(label, f"{label} has neither a name nor a handler")
            return descriptor
        if callable(entry):
            return cls(handler=entry)
        raise ConfigurationError(label, f"{label} must be a name or a table, got {type(entry).__name__}")

    def __repr__(self):
        return f"HandlerDescriptor(name={self.name!r}, key={self.key!r})"


class ChainDefinition:
    """
    Parsed chain definition: initial context plus ordered event and
    middleware descriptors.
    """

    def __init__(self, context=None, events=(), middleware=()):
        self.context = _clean_context(context or {})
        self.events = [HandlerDescriptor.parse(entry, f"events[{i}]")
                       for i, entry in enumerate(events)]
        self.middleware = [HandlerDescriptor.parse(entry, f"middleware[{i}]")
                           for i, entry in enumerate(middleware)]

    @classmethod
    def from_mapping(cls, data):
        """
        Build a definition from a mapping with 'context', 'events' and
        optional 'middleware' fields.

        Raises:
            ConfigurationError: If 'events' is missing or a field has the wrong shape
        """
        if not isinstance(data, Mapping):
            raise ConfigurationError('<definition>', "Chain definition must be a mapping")
        if data.get('events') is None:
            raise ConfigurationError('events', "Chain definition has no 'events' field")
        context = data.get('context') or {}
        if not isinstance(context, Mapping):
            raise ConfigurationError('context', "'context' must be a mapping")
        return cls(context=context, events=data['events'],
                   middleware=data.get('middleware') or ())

    def new_context(self):
        """Return a fresh EventContext holding the initial values."""
        return EventContext(self.context)

    def __repr__(self):
        return (f"ChainDefinition(context={self.context}, "
                f"events={len(self.events)}, middleware={len(self.middleware)})")


def _clean_context(context):
    cleaned = {}
    for key, value in context.items():
        if is_int64(value) or isinstance(value, (str, float)):
            cleaned[key] = value
        else:
            logger.warning("Dropping context value %r: unsupported type %s",
                           key, type(value).__name__)
    return cleaned


class ChainBuilder:
    """
    Resolves chain definitions against registered native events and middleware.

    Example:
        builder = ChainBuilder()
        builder.register_event('increment', IncrementEvent())
        chain = builder.build({'events': ['increment']})
    """

    def __init__(self, resolver=None):
        """
        Args:
            resolver: HandlerResolver used for descriptors that carry a key
        """
        self.resolver = resolver
        self._events = {}
        self._middleware = {}

    def register_event(self, name, event):
        """
        Make a native event available by name. Accepts a ChainableEvent or a
        callable following the handler contract.
        """
        if not isinstance(event, ChainableEvent):
            event = CallableEvent(name, event)
        self._events[name] = event
        return self

    def register_middleware(self, name, middleware):
        """Make a native middleware (Middleware or calling-style callable) available by name."""
        if not isinstance(middleware, Middleware):
            middleware = CallableMiddleware(middleware, name=name)
        self._middleware[name] = middleware
        return self

    def with_resolver(self, resolver):
        """Return a new builder with the same native registrations bound to resolver."""
        builder = ChainBuilder(resolver=resolver)
        builder._events = dict(self._events)
        builder._middleware = dict(self._middleware)
        return builder

    def build(self, chain_def):
        """
        Resolve every descriptor and return a ready EventChain.

        Nothing runs here; any descriptor that does not resolve raises before
        the chain is returned.

        Args:
            chain_def: ChainDefinition or mapping

        Raises:
            ConfigurationError: Naming the first identifier that does not resolve
        """
        if not isinstance(chain_def, ChainDefinition):
            chain_def = ChainDefinition.from_mapping(chain_def)

        chain = EventChain()
        for index, descriptor in enumerate(chain_def.events):
            chain.add_event(self._resolve_event(index, descriptor))
        for index, descriptor in enumerate(chain_def.middleware):
            chain.use_middleware(self._resolve_middleware(index, descriptor))
        chain.build()
        logger.debug("Built chain %s from %r", chain.event_names(), chain_def)
        return chain

    def _resolve_event(self, index, descriptor):
        name = descriptor.name or f"event_{index}"
        if descriptor.key is not None:
            self._check_key(descriptor.key)
            return ResolvedEvent(name, descriptor.key, self.resolver)
        if descriptor.handler is not None:
            if isinstance(descriptor.handler, ChainableEvent):
                return descriptor.handler
            if not callable(descriptor.handler):
                raise ConfigurationError(name, f"Handler for event {name} is not callable")
            return CallableEvent(name, descriptor.handler)
        try:
            return self._events[descriptor.name]
        except KeyError:
            raise ConfigurationError(descriptor.name, f"Unknown event: {descriptor.name}") from None

    def _resolve_middleware(self, index, descriptor):
        name = descriptor.name or f"middleware_{index}"
        if descriptor.key is not None:
            self._check_key(descriptor.key)
            return ResolvedMiddleware(descriptor.key, self.resolver, name=name)
        if descriptor.handler is not None:
            if isinstance(descriptor.handler, Middleware):
                return descriptor.handler
            if not callable(descriptor.handler):
                raise ConfigurationError(name, f"Handler for middleware {name} is not callable")
            return CallableMiddleware(descriptor.handler, name=name)
        try:
            return self._middleware[descriptor.name]
        except KeyError:
            raise ConfigurationError(descriptor.name, f"Unknown middleware: {descriptor.name}") from None

    def _check_key(self, key):
        if self.resolver is None or key not in self.resolver:
            raise ConfigurationError(key, f"Unknown handler: {key}")
