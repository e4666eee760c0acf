"""
ScriptChains - Event chains with middleware, driven from native code or an embedded script runtime

ScriptChains runs a named sequence of events against one shared, mutable context:
- Events represent individual steps in a process
- Context carries shared state between events
- Middleware wraps every event in before/after logic (onion model, LIFO)
- Chain runs the events in order and stops at the first failure
- Handlers owned by an embedded runtime (Lua) are referenced by key, never moved

Example:
    from scriptchains import EventChain, ChainableEvent, EventContext, Result

    class MyEvent(ChainableEvent):
        def execute(self, context):
            value = context.get_int('input')
            context.set('output', value * 2)
            return Result.ok()

    chain = EventChain()
    chain.add_event(MyEvent())

    result = chain.execute(EventContext({'input': 5}))
    print(result.context.get('output'))  # 10
"""

__version__ = "1.0.0"
__author__ = "EventChains Contributors"

from .builder import ChainBuilder, ChainDefinition, HandlerDescriptor
from .chain import ChainState, Continuation, EventChain
from .context import EventContext
from .errors import ConfigurationError, EventChainError, HandlerError, ThreadAffinityError
from .event import CallableEvent, ChainableEvent, ResolvedEvent
from .handlers import HandlerRegistry, HandlerResolver
from .middleware import (
    CallableMiddleware,
    LoggingMiddleware,
    Middleware,
    ResolvedMiddleware,
    TimingMiddleware,
)
from .result import Result

__all__ = [
    'EventChain',
    'ChainState',
    'Continuation',
    'EventContext',
    'ChainableEvent',
    'CallableEvent',
    'ResolvedEvent',
    'Middleware',
    'CallableMiddleware',
    'ResolvedMiddleware',
    'LoggingMiddleware',
    'TimingMiddleware',
    'Result',
    'HandlerResolver',
    'HandlerRegistry',
    'ChainBuilder',
    'ChainDefinition',
    'HandlerDescriptor',
    'EventChainError',
    'ConfigurationError',
    'HandlerError',
    'ThreadAffinityError',
]
