"""
Lua bridge - chain definitions and handlers supplied by an embedded Lua runtime.

A Lua chunk returns a table shaped like a chain definition:

    return {
      context = { counter = 0, message = "start" },
      events = {
        "increment",
        { name = "append", handler = function(ctx) ... return ctx end },
      },
      middleware = {
        { name = "timing", handler = function(ctx, next) return next(ctx) end },
      },
    }

Lua functions stay inside the interpreter. The runtime keeps them under
string keys and hands the chain adapters that look them up on every call.
Each handler call gets one Lua table mirroring the live context, and the
table it returns is read back into the live context. Inside a middleware,
next(ctx) writes the deeper result back into ctx and returns ctx itself, so
in-place changes made below it are visible through the same table.

The interpreter is not thread-safe. A LuaHandlerRuntime, and every chain
built against it, must only be used from the thread that created it.
"""

import logging
import threading

import lupa
from lupa import LuaError

from .builder import ChainBuilder, ChainDefinition
from .errors import ConfigurationError, HandlerError, ThreadAffinityError
from .handlers import HandlerResolver

logger = logging.getLogger(__name__)

EVENT = 'event'
MIDDLEWARE = 'middleware'


class LuaHandlerRuntime(HandlerResolver):
    """
    Owns one Lua interpreter and resolves handler keys to Python callables
    that call into it.

    Args:
        runtime: An existing lupa.LuaRuntime to adopt (a new one is created
            when omitted)
    """

    def __init__(self, runtime=None):
        self.lua = runtime if runtime is not None else lupa.LuaRuntime(unpack_returned_tuples=True)
        self._owner = threading.get_ident()
        self._handlers = {}
        self._loads = 0

    def load_file(self, path):
        """Evaluate a Lua file and return its ChainDefinition."""
        with open(path, 'r', encoding='utf-8') as f:
            source = f.read()
        logger.debug("Loaded chain script %s (%d bytes)", path, len(source))
        return self.load_definition(source)

    def load_definition(self, source):
        """
        Evaluate a Lua chunk that returns a chain definition table.

        Lua handler functions found in the table are registered under keys;
        the returned ChainDefinition refers to them by key only.

        Raises:
            ConfigurationError: If the chunk fails or does not return a usable table
        """
        self._check_thread()
        try:
            table = self.lua.execute(source)
        except LuaError as exc:
            raise ConfigurationError('<script>', f"Lua evaluation error: {exc}") from exc
        if lupa.lua_type(table) != 'table':
            raise ConfigurationError('<script>', "Chain script must return a table")
        return self.definition_from_table(table)

    def definition_from_table(self, table):
        """Convert a Lua chain definition table into a ChainDefinition."""
        self._check_thread()
        self._loads += 1
        events = table['events']
        if lupa.lua_type(events) != 'table':
            raise ConfigurationError('events', "Chain definition has no 'events' table")
        context = table['context']
        if context is not None and lupa.lua_type(context) != 'table':
            raise ConfigurationError('context', "'context' must be a table")
        middleware = table['middleware']
        if middleware is not None and lupa.lua_type(middleware) != 'table':
            raise ConfigurationError('middleware', "'middleware' must be a table")

        return ChainDefinition(
            context=dict(context.items()) if context is not None else {},
            events=self._descriptors(EVENT, events),
            middleware=self._descriptors(MIDDLEWARE, middleware) if middleware is not None else (),
        )

    def build_chain(self, source, builder=None):
        """
        Load a chain script and build it.

        Args:
            source: Lua source text
            builder: ChainBuilder with native events registered (optional).
                It is not modified; a copy bound to this runtime is used.

        Returns:
            (EventChain, ChainDefinition)
        """
        definition = self.load_definition(source)
        if builder is None:
            builder = ChainBuilder(resolver=self)
        else:
            builder = builder.with_resolver(self)
        return builder.build(definition), definition

    def register(self, kind, key, function):
        """
        Keep a Lua function under key.

        Raises:
            ConfigurationError: If the key is taken or function is not a Lua function
        """
        if key in self._handlers:
            raise ConfigurationError(key, f"Handler already registered: {key}")
        if lupa.lua_type(function) != 'function':
            raise ConfigurationError(key, f"Handler for {key} is not a Lua function")
        self._handlers[key] = (kind, function)
        logger.debug("Registered Lua %s handler %s", kind, key)
        return key

    def resolve(self, key):
        self._check_thread()
        try:
            kind, function = self._handlers[key]
        except KeyError:
            raise ConfigurationError(key) from None
        if kind == EVENT:
            return self._event_adapter(key, function)
        return self._middleware_adapter(key, function)

    def keys(self):
        return list(self._handlers)

    def __contains__(self, key):
        return key in self._handlers

    def _descriptors(self, kind, table):
        descriptors = []
        for index in range(1, len(table) + 1):
            entry = table[index]
            if isinstance(entry, str):
                descriptors.append(entry)
                continue
            if lupa.lua_type(entry) != 'table':
                raise ConfigurationError(f"{kind}[{index}]",
                                         f"{kind} entry {index} must be a name or a table")
            name = entry['name']
            handler = entry['handler']
            if handler is None:
                if name is None:
                    raise ConfigurationError(f"{kind}[{index}]",
                                             f"{kind} entry {index} has neither a name nor a handler")
                descriptors.append({'name': name})
                continue
            key = self.register(kind, f"{kind}:{self._loads}:{index}:{name or ''}", handler)
            descriptors.append({'name': name, 'key': key})
        return descriptors

    def _event_adapter(self, key, function):
        def call_event(context):
            self._check_thread()
            try:
                table = self._to_lua(context)
                returned = function(table)
            except LuaError as exc:
                raise HandlerError(key, str(exc)) from exc
            # nil means the handler changed its table in place
            return self._from_lua(key, table if returned is None else returned)
        return call_event

    def _middleware_adapter(self, key, function):
        def call_middleware(context, proceed):
            self._check_thread()

            def lua_next(table):
                live = proceed(self._from_lua(key, table))
                return self._sync_table(table, live)

            try:
                table = self._to_lua(context)
                returned = function(table, lua_next)
            except LuaError as exc:
                raise HandlerError(key, str(exc)) from exc
            return self._from_lua(key, table if returned is None else returned)
        return call_middleware

    def _to_lua(self, context):
        return self.lua.table_from(dict(context.items()))

    def _sync_table(self, table, context):
        """Make table hold exactly the items of context and return it."""
        for name in list(table.keys()):
            if name not in context:
                table[name] = None
        for name, value in context.items():
            table[name] = value
        return table

    def _from_lua(self, key, table):
        if lupa.lua_type(table) != 'table':
            raise HandlerError(key, f"expected a context table, got {lupa.lua_type(table) or type(table).__name__}")
        return dict(table.items())

    def _check_thread(self):
        if threading.get_ident() != self._owner:
            raise ThreadAffinityError(
                "Lua runtime used from a thread other than the one that created it")

    def __repr__(self):
        return f"LuaHandlerRuntime(handlers={len(self._handlers)})"
