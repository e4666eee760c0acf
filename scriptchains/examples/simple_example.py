"""
Simple example: the same chain built natively and from a Lua script.
"""

import logging
import os

from scriptchains import (
    ChainableEvent,
    ChainBuilder,
    EventChain,
    EventContext,
    LoggingMiddleware,
    Result,
    TimingMiddleware,
)
from scriptchains.lua import LuaHandlerRuntime

SCRIPT = os.path.join(os.path.dirname(__file__), 'chain_definition.lua')


class IncrementEvent(ChainableEvent):
    name = 'increment'

    def execute(self, context):
        context.set('counter', context.get_int('counter') + 1)
        return Result.ok()


class AppendEvent(ChainableEvent):
    name = 'append'

    def execute(self, context):
        context.set('message', context.get_str('message') + " -> processed")
        return Result.ok()


def run_native():
    timing = TimingMiddleware()
    chain = (EventChain()
        .add_event(IncrementEvent())
        .add_event(AppendEvent())
        .use_middleware(LoggingMiddleware())
        .use_middleware(timing))

    result = chain.execute(EventContext({'counter': 0, 'message': 'start'}))
    print(f"Native chain: {result} -> {result.context}")
    for entry in timing.get_report():
        print(f"  {entry['event']:<12} {entry['avg_ms']:.3f}ms")


def run_lua_selected():
    # Lua only picks the events; the Python implementations run them
    runtime = LuaHandlerRuntime()
    builder = (ChainBuilder()
        .register_event('increment', IncrementEvent())
        .register_event('append', AppendEvent()))
    chain, definition = runtime.build_chain(
        'return { context = { counter = 0, message = "start" }, '
        'events = { "increment", "append" } }',
        builder,
    )
    result = chain.execute(definition.new_context())
    print(f"Lua-selected chain: {result} -> {result.context}")


def run_lua_defined():
    runtime = LuaHandlerRuntime()
    definition = runtime.load_file(SCRIPT)
    chain = ChainBuilder(resolver=runtime).build(definition)

    result = chain.execute(definition.new_context())
    print(f"Lua-defined chain: {result} -> {result.context}")


def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    print("=" * 60)
    print("ScriptChains Simple Example")
    print("=" * 60)
    run_native()
    run_lua_selected()
    run_lua_defined()
    print("=" * 60)


if __name__ == "__main__":
    main()
