"""
Handler indirection - stable, string-keyed access to event and middleware callables.

Handlers that live inside an external runtime (an embedded interpreter, say)
are never moved into the chain. The chain keeps the key and asks a resolver
for the callable each time it needs it.
"""

import logging

from .errors import ConfigurationError

logger = logging.getLogger(__name__)


class HandlerResolver:
    """
    Interface for anything that can turn a key into a callable.

    Implementations must keep every key they have handed out resolvable for
    as long as a chain built against them is alive.
    """

    def resolve(self, key):
        """
        Return the callable registered under key.

        Raises:
            ConfigurationError: If the key is unknown
        """
        raise NotImplementedError(f"{self.__class__.__name__} must implement resolve()")

    def __contains__(self, key):
        try:
            self.resolve(key)
        except ConfigurationError:
            return False
        return True


class HandlerRegistry(HandlerResolver):
    """Dictionary-backed resolver. Keys are case-sensitive and never reassigned."""

    def __init__(self, handlers=None):
        self._handlers = {}
        for key, handler in (handlers or {}).items():
            self.register(key, handler)

    def register(self, key, handler):
        """
        Register a callable under key.

        Returns:
            key (so callers can keep the reference)

        Raises:
            ConfigurationError: If key is already taken or handler is not callable
        """
        if key in self._handlers:
            raise ConfigurationError(key, f"Handler already registered: {key}")
        if not callable(handler):
            raise ConfigurationError(key, f"Handler for {key} is not callable")
        self._handlers[key] = handler
        logger.debug("Registered handler %s", key)
        return key

    def resolve(self, key):
        try:
            return self._handlers[key]
        except KeyError:
            raise ConfigurationError(key) from None

    def keys(self):
        return list(self._handlers)

    def __contains__(self, key):
        return key in self._handlers

    def __len__(self):
        return len(self._handlers)

    def __repr__(self):
        return f"HandlerRegistry(keys={list(self._handlers)})"
