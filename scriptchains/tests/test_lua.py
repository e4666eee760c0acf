"""
Tests for chains defined in and driven by an embedded Lua runtime.
"""

import logging
import os
import sys
import threading
import unittest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', '..')))

from scriptchains import (
    ChainableEvent,
    ChainBuilder,
    ChainState,
    ConfigurationError,
    EventChain,
    LoggingMiddleware,
    Result,
    ThreadAffinityError,
)
from scriptchains.lua import LuaHandlerRuntime

SCRIPT = os.path.join(os.path.dirname(__file__), '..', 'examples', 'chain_definition.lua')


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


def native_builder():
    return (ChainBuilder()
        .register_event('increment', IncrementEvent())
        .register_event('append', AppendEvent()))


class TestLuaDefinition(unittest.TestCase):
    """Loading chain definitions from Lua."""

    def setUp(self):
        self.runtime = LuaHandlerRuntime()

    def test_script_file_scenario(self):
        definition = self.runtime.load_file(SCRIPT)
        chain = ChainBuilder(resolver=self.runtime).build(definition)

        result = chain.execute(definition.new_context())

        self.assertTrue(result.success)
        self.assertEqual(result.context.get_int('counter'), 1)
        self.assertEqual(result.context.get_str('message'), 'start -> processed')
        # middleware is entered once per event
        self.assertEqual(result.context.get_int('calls'), 2)

    def test_bare_names_resolve_to_native_events(self):
        chain, definition = self.runtime.build_chain(
            'return { context = { counter = 0, message = "start" }, '
            'events = { "increment", "append" } }',
            native_builder(),
        )

        result = chain.execute(definition.new_context())

        self.assertTrue(result.success)
        self.assertEqual(result.context.to_dict(), {'counter': 1, 'message': 'start -> processed'})

    def test_context_kinds(self):
        definition = self.runtime.load_definition(
            'return { context = { count = 3, ratio = 0.5, name = "x", flag = true }, events = {} }')

        self.assertEqual(definition.context, {'count': 3, 'ratio': 0.5, 'name': 'x'})
        self.assertIsInstance(definition.context['count'], int)

    def test_unsupported_context_value_is_logged(self):
        with self.assertLogs('scriptchains.builder', level='WARNING') as logs:
            self.runtime.load_definition('return { context = { flag = true }, events = {} }')
        self.assertIn('flag', logs.output[0])

    def test_unknown_event_fails_at_build(self):
        definition = self.runtime.load_definition(
            'return { events = { "increment", "teleport" } }')

        with self.assertRaises(ConfigurationError) as ctx:
            native_builder().build(definition)
        self.assertEqual(ctx.exception.identifier, 'teleport')

    def test_missing_events_table(self):
        with self.assertRaises(ConfigurationError) as ctx:
            self.runtime.load_definition('return { context = {} }')
        self.assertEqual(ctx.exception.identifier, 'events')

    def test_script_error(self):
        with self.assertRaises(ConfigurationError):
            self.runtime.load_definition('return {')
        with self.assertRaises(ConfigurationError):
            self.runtime.load_definition('return 42')

    def test_handlers_are_kept_by_key(self):
        self.runtime.load_file(SCRIPT)
        self.runtime.load_file(SCRIPT)

        keys = self.runtime.keys()
        self.assertEqual(len(keys), 6)
        self.assertEqual(len(set(keys)), 6)
        for key in keys:
            self.assertIn(key, self.runtime)
            self.assertTrue(callable(self.runtime.resolve(key)))


class TestLuaExecution(unittest.TestCase):
    """Running chains whose handlers live in Lua."""

    def setUp(self):
        self.runtime = LuaHandlerRuntime()

    def build(self, source):
        return self.runtime.build_chain(source, native_builder())

    def test_middleware_lifo_order(self):
        chain, definition = self.build('''
            local function wrap(label)
              return function(ctx, next)
                ctx.trace = ctx.trace .. label .. "<"
                local out = next(ctx)
                out.trace = out.trace .. ">" .. label
                return out
              end
            end
            return {
              context = { trace = "" },
              events = {
                { name = "event", handler = function(ctx) ctx.trace = ctx.trace .. "E"; return ctx end },
              },
              middleware = { { handler = wrap("1") }, { handler = wrap("2") } },
            }
        ''')

        result = chain.execute(definition.new_context())

        self.assertTrue(result.success)
        self.assertEqual(result.context.get_str('trace'), '2<1<E>1>2')

    def test_middleware_returning_its_own_table(self):
        chain, definition = self.build('''
            return {
              context = { counter = 0 },
              events = {
                { name = "increment", handler = function(ctx) ctx.counter = ctx.counter + 1; return ctx end },
              },
              middleware = {
                { name = "mark", handler = function(ctx, next)
                    next(ctx)
                    ctx.seen = true
                    ctx.after = ctx.counter
                    return ctx
                  end },
              },
            }
        ''')

        result = chain.execute(definition.new_context())

        self.assertTrue(result.success)
        self.assertEqual(result.context.get_int('counter'), 1)
        self.assertEqual(result.context.get_int('after'), 1)
        self.assertIs(result.context.get('seen'), True)

    def test_next_returns_the_table_it_was_given(self):
        chain, definition = self.build('''
            return {
              context = { counter = 0, stale = "x" },
              events = {
                { name = "rewrite", handler = function(ctx) return { counter = ctx.counter + 5 } end },
              },
              middleware = {
                { name = "same", handler = function(ctx, next)
                    local out = next(ctx)
                    same_table = rawequal(out, ctx)
                    return ctx
                  end },
              },
            }
        ''')

        result = chain.execute(definition.new_context())

        self.assertTrue(result.success)
        self.assertEqual(result.context.to_dict(), {'counter': 5})
        self.assertIs(self.runtime.lua.globals().same_table, True)

    def test_event_may_change_table_without_returning_it(self):
        chain, definition = self.build('''
            return {
              context = { counter = 0 },
              events = { { name = "bump", handler = function(ctx) ctx.counter = 7 end } },
            }
        ''')

        result = chain.execute(definition.new_context())

        self.assertTrue(result.success)
        self.assertEqual(result.context.get_int('counter'), 7)

    def test_build_chain_does_not_rebind_builder(self):
        builder = native_builder()

        self.runtime.build_chain('return { events = { "increment" } }', builder)

        self.assertIsNone(builder.resolver)

    def test_mixed_native_and_lua_events(self):
        chain, definition = self.build('''
            return {
              context = { counter = 0, message = "start" },
              events = {
                "increment",
                { name = "double", handler = function(ctx) ctx.counter = ctx.counter * 2; return ctx end },
                "increment",
              },
            }
        ''')

        result = chain.execute(definition.new_context())

        self.assertEqual(result.context.get_int('counter'), 3)
        self.assertEqual(chain.event_names(), ['increment', 'double', 'increment'])

    def test_lua_error_aborts_chain(self):
        chain, definition = self.build('''
            return {
              context = { counter = 0 },
              events = {
                "increment",
                { name = "explode", handler = function(ctx) error("exploded") end },
                "increment",
              },
            }
        ''')

        result = chain.execute(definition.new_context())

        self.assertFalse(result.success)
        self.assertEqual(result.source, 'explode')
        self.assertIn('exploded', result.error)
        self.assertEqual(result.context.get_int('counter'), 1)
        self.assertEqual(chain.state, ChainState.ABORTED)

    def test_non_table_return_fails(self):
        chain, definition = self.build('''
            return {
              events = { { name = "bad", handler = function(ctx) return 5 end } },
            }
        ''')

        result = chain.execute(definition.new_context())

        self.assertFalse(result.success)
        self.assertEqual(result.source, 'bad')
        self.assertIn('expected a context table', result.error)

    def test_failure_skips_lua_post_processing(self):
        chain, definition = self.build('''
            return {
              events = { { name = "explode", handler = function(ctx) error("exploded") end } },
              middleware = {
                { name = "guard", handler = function(ctx, next)
                    local out = next(ctx)
                    after_called = true
                    return out
                  end },
              },
            }
        ''')

        result = chain.execute(definition.new_context())

        self.assertFalse(result.success)
        self.assertIn('exploded', result.error)
        self.assertIsNone(self.runtime.lua.globals().after_called)

    def test_repeated_execution_uses_fresh_context(self):
        definition = self.runtime.load_file(SCRIPT)
        chain = ChainBuilder(resolver=self.runtime).build(definition)

        first = chain.execute(definition.new_context())
        second = chain.execute(definition.new_context())

        self.assertEqual(first.context, second.context)
        self.assertIsNot(first.context, second.context)
        self.assertEqual(definition.context, {'counter': 0, 'message': 'start'})

    def test_other_thread_is_rejected(self):
        definition = self.runtime.load_file(SCRIPT)
        chain = ChainBuilder(resolver=self.runtime).build(definition)
        outcome = {}

        def worker():
            outcome['result'] = chain.execute(definition.new_context())
            try:
                self.runtime.load_file(SCRIPT)
            except ThreadAffinityError as exc:
                outcome['error'] = exc

        thread = threading.Thread(target=worker)
        thread.start()
        thread.join()

        self.assertFalse(outcome['result'].success)
        self.assertIn('thread', outcome['result'].error)
        self.assertIsInstance(outcome['error'], ThreadAffinityError)


class TestLoggingMiddleware(unittest.TestCase):

    def test_logs_each_event(self):
        log = logging.getLogger('scriptchains.tests.events')
        chain = (EventChain()
            .add_event(IncrementEvent())
            .add_event(AppendEvent())
            .use_middleware(LoggingMiddleware(log=log)))

        with self.assertLogs(log, level='INFO') as logs:
            result = chain.execute()

        self.assertTrue(result.success)
        self.assertEqual(len(logs.output), 4)
        self.assertIn('Starting increment', logs.output[0])
        self.assertIn('Completed append', logs.output[3])


if __name__ == '__main__':
    unittest.main()
