import itertools
import typeguard
import typing as t
import unittest
from genflow import *

def join_three(callback, cbs):
    for name in 'abc':
        cbs[name] = callback(name)
    results = yield Join()
    return results

def wait_unnamed(callback, cbs):
    cbs.append(callback())
    value = yield
    return value

class TestCompletion(unittest.TestCase):
    def test_return(self) -> None:
        def compute(callback, x):
            return x * 2
            yield
        fut = coroutine(compute)(21)
        self.assertTrue(fut.done())
        self.assertEqual(fut.result(), 42)

    def test_raise(self) -> None:
        def compute(callback):
            raise KeyError("missing")
            yield
        self.assertIsInstance(coroutine(compute)().exception(), KeyError)

    def test_not_a_generator(self) -> None:
        fut = coroutine(lambda callback: 5)()
        self.assertIsInstance(fut.exception(), TypeError)

    def test_bad_arguments(self) -> None:
        fut = coroutine(wait_unnamed)()
        self.assertIsInstance(fut.exception(), TypeError)

    def test_returns_checked(self) -> None:
        @coroutine(returns=int)
        def compute(callback, value):
            return value
            yield
        self.assertEqual(compute(3).result(), 3)
        self.assertIsInstance(compute("three").exception(), typeguard.TypeCheckError)

    def test_start_returns_checked(self) -> None:
        def compute(callback, value, **kwargs):
            return value, kwargs
            yield
        self.assertIsInstance(start(compute, "x", returns=int).future.exception(), typeguard.TypeCheckError)
        invocation = start(compute, 1, returns=t.Tuple[int, dict], flag=True)
        self.assertEqual(invocation.future.result(), (1, {'flag': True}))

    def test_settles_once(self) -> None:
        cbs = []
        fut = coroutine(wait_unnamed)(cbs)
        settled = []
        fut.add_done_cb(settled.append)
        cbs[0](None, 1)
        self.assertEqual(len(settled), 1)
        self.assertEqual(settled[0].unwrap(), 1)

    def test_independent_invocations(self) -> None:
        work = coroutine(wait_unnamed)
        first_cbs, second_cbs = [], []
        first, second = work(first_cbs), work(second_cbs)
        second_cbs[0](None, "second")
        self.assertFalse(first.done())
        self.assertEqual(second.result(), "second")
        first_cbs[0](None, "first")
        self.assertEqual(first.result(), "first")

class TestCallbacks(unittest.TestCase):
    def test_unnamed_round_trip(self) -> None:
        cbs = []
        fut = coroutine(wait_unnamed)(cbs)
        self.assertFalse(fut.done())
        cbs[0](None, 42)
        self.assertEqual(fut.result(), 42)

    def test_unnamed_values(self) -> None:
        cbs = []
        fut = coroutine(wait_unnamed)(cbs)
        cbs[0](None, b"out", b"err")
        self.assertEqual(fut.result(), (b"out", b"err"))
        cbs = []
        fut = coroutine(wait_unnamed)(cbs)
        cbs[0]()
        self.assertIsNone(fut.result())

    def test_pending(self) -> None:
        cbs = {}
        invocation = start(join_three, cbs)
        self.assertEqual(invocation.pending, 3)
        cbs['b'](None, 2)
        self.assertEqual(invocation.pending, 2)
        self.assertEqual(list(invocation.named_results), ['b'])
        cbs['a'](None, 1)
        cbs['c'](None, 3)
        self.assertEqual(invocation.future.result(), {'a': 1, 'b': 2, 'c': 3})

    def test_fan_in_any_order(self) -> None:
        for order in itertools.permutations('abc'):
            with self.subTest(order=order):
                cbs = {}
                fut = coroutine(join_three)(cbs)
                for name in order:
                    self.assertFalse(fut.done())
                    cbs[name](None, name.upper())
                self.assertEqual(fut.result(), {'a': 'A', 'b': 'B', 'c': 'C'})
                self.assertEqual(list(fut.result()), ['a', 'b', 'c'])

    def test_fired_during_step(self) -> None:
        "Callbacks fired before the computation yields resume it straight away"
        def compute(callback):
            callback('x')(None, 1)
            callback('y')(None, 2)
            results = yield Join('x', 'y')
            return results
        self.assertEqual(coroutine(compute)().result(), {'x': 1, 'y': 2})

    def test_many_synchronous_steps(self) -> None:
        def compute(callback, count):
            total = 0
            for i in range(count):
                callback()(None, i)
                total += yield
            return total
        self.assertEqual(coroutine(compute)(10000).result(), sum(range(10000)))

    def test_error_thrown_in(self) -> None:
        def compute(callback, cbs):
            cbs.append(callback())
            try:
                yield
            except ValueError as exn:
                return exn
        cbs = []
        fut = coroutine(compute)(cbs)
        error = ValueError("failed")
        cbs[0](error)
        self.assertIs(fut.result(), error)

    def test_non_exception_error(self) -> None:
        cbs = []
        fut = coroutine(wait_unnamed)(cbs)
        cbs[0]("boom")
        exn = fut.exception()
        self.assertIsInstance(exn, CallbackError)
        self.assertEqual(exn.error, "boom")

    def test_partial_failure_waits_for_all(self) -> None:
        cbs = {}
        fut = coroutine(join_three)(cbs)
        error = OSError("a failed")
        cbs['a'](error)
        cbs['c'](None, 3)
        self.assertFalse(fut.done())
        cbs['b'](None, 2)
        self.assertIs(fut.exception(), error)

    def test_several_failures(self) -> None:
        cbs = {}
        fut = coroutine(join_three)(cbs)
        c_error, a_error = ValueError("c"), ValueError("a")
        cbs['c'](c_error)
        cbs['a'](a_error)
        cbs['b'](None, 2)
        exn = fut.exception()
        self.assertIsInstance(exn, BaseExceptionGroup)
        self.assertEqual(list(exn.exceptions), [a_error, c_error])

    def test_reuse_name_after_yield(self) -> None:
        def compute(callback, cbs):
            cbs.append(callback('a'))
            first = yield
            cbs.append(callback('a'))
            second = yield
            return first['a'], second['a']
        cbs = []
        fut = coroutine(compute)(cbs)
        cbs[0](None, 1)
        cbs[1](None, 2)
        self.assertEqual(fut.result(), (1, 2))

class TestMisuse(unittest.TestCase):
    def test_second_unnamed(self) -> None:
        def compute(callback):
            callback()
            callback()
            yield
        self.assertIsInstance(coroutine(compute)().exception(), CallbackMisuse)

    def test_second_unnamed_caught(self) -> None:
        "The misuse is raised at the request, inside the computation"
        def compute(callback, cbs):
            cbs.append(callback())
            try:
                callback()
            except CallbackMisuse:
                pass
            value = yield
            return value
        cbs = []
        fut = coroutine(compute)(cbs)
        cbs[0](None, 7)
        self.assertEqual(fut.result(), 7)

    def test_reuse_name(self) -> None:
        def compute(callback):
            callback('a')
            callback('a')
            yield
        self.assertIsInstance(coroutine(compute)().exception(), CallbackMisuse)

    def test_reuse_fired_name(self) -> None:
        def compute(callback):
            callback('a')(None, 1)
            callback('a')
            yield
        self.assertIsInstance(coroutine(compute)().exception(), CallbackMisuse)

    def test_mix_named_and_unnamed(self) -> None:
        def named_first(callback):
            callback('a')
            callback()
            yield
        def unnamed_first(callback):
            callback()
            callback('a')
            yield
        self.assertIsInstance(coroutine(named_first)().exception(), CallbackMisuse)
        self.assertIsInstance(coroutine(unnamed_first)().exception(), CallbackMisuse)

    def test_fire_twice(self) -> None:
        cbs = []
        fut = coroutine(wait_unnamed)(cbs)
        cbs[0](None, 1)
        with self.assertRaises(CallbackMisuse):
            cbs[0](None, 2)
        self.assertEqual(fut.result(), 1)

    def test_request_while_suspended(self) -> None:
        brokers = []
        def compute(callback, cbs):
            brokers.append(callback)
            cbs.append(callback())
            yield
        start(compute, [])
        with self.assertRaises(CallbackMisuse):
            brokers[0]()

    def test_not_yieldable(self) -> None:
        def compute(callback):
            yield 5
        exn = coroutine(compute)().exception()
        self.assertIsInstance(exn, NotYieldable)
        self.assertIn("non-yieldable value", str(exn))
        self.assertEqual(exn.value, 5)

    def test_empty_join(self) -> None:
        def compute(callback):
            yield Join()
        self.assertIsInstance(coroutine(compute)().exception(), NotYieldable)

    def test_not_yieldable_caught(self) -> None:
        def compute(callback):
            try:
                yield "something"
            except NotYieldable:
                pass
            return "recovered"
        self.assertEqual(coroutine(compute)().result(), "recovered")

    def test_join_wrong_names(self) -> None:
        def compute(callback):
            callback('a')
            yield Join('a', 'b')
        exn = coroutine(compute)().exception()
        self.assertIsInstance(exn, ProtocolViolation)
        self.assertNotIsInstance(exn, NotYieldable)

    def test_await_non_future(self) -> None:
        def compute(callback):
            try:
                yield Await(5)
            except ProtocolViolation as exn:
                return exn
        self.assertIsInstance(coroutine(compute)().result(), ProtocolViolation)

    def test_join_unhashable_names(self) -> None:
        def compute(callback):
            callback('a')
            yield Join(['a'])
        exn = coroutine(compute)().exception()
        self.assertIsInstance(exn, ProtocolViolation)

    def test_await_with_outstanding_callbacks(self) -> None:
        def compute(callback, cbs):
            cbs.append(callback())
            yield Future()
        cbs = []
        fut = coroutine(compute)(cbs)
        self.assertIsInstance(fut.exception(), ProtocolViolation)
        # the abandoned callback can still be fired, to no effect
        cbs[0](None, 1)
        self.assertIsInstance(fut.exception(), ProtocolViolation)

    def test_fire_after_failure(self) -> None:
        def compute(callback, cbs):
            cbs.append(callback())
            raise KeyError("before yielding")
            yield
        cbs = []
        fut = coroutine(compute)(cbs)
        cbs[0](None, 1)
        self.assertIsInstance(fut.exception(), KeyError)

class TestAwait(unittest.TestCase):
    def test_await(self) -> None:
        pending = Future()
        def compute(callback):
            err, value = yield pending
            return value + 1
        fut = coroutine(compute)()
        self.assertFalse(fut.done())
        pending.set_result(1)
        self.assertEqual(fut.result(), 2)

    def test_await_failure_record(self) -> None:
        pending = Future()
        def compute(callback):
            record = yield Await(pending)
            return record
        fut = coroutine(compute)()
        error = ValueError("rejected")
        pending.set_exception(error)
        self.assertEqual(fut.result(), Resumption(error, None))

    def test_await_failure_unwrapped(self) -> None:
        pending = Future()
        def compute(callback):
            return (yield pending).unwrap()
        fut = coroutine(compute)()
        error = ValueError("rejected")
        pending.set_exception(error)
        self.assertIs(fut.exception(), error)

    def test_await_settled(self) -> None:
        settled = Future()
        settled.set_result(1)
        def compute(callback, count):
            total = 0
            for _ in range(count):
                _, value = yield settled
                total += value
            return total
        self.assertEqual(coroutine(compute)(10000).result(), 10000)

    def test_compose(self) -> None:
        @coroutine
        def inner(callback, cbs):
            cbs.append(callback())
            value = yield
            return value * 2
        @coroutine
        def outer(callback, cbs):
            err, value = yield inner(cbs)
            return value + 1
        cbs = []
        fut = outer(cbs)
        cbs[0](None, 20)
        self.assertEqual(fut.result(), 41)
