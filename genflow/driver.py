"""Drive a generator one step at a time, resuming it from futures and callbacks

A genflow computation is a generator function which takes a CallbackBroker as
its first argument. Each time it yields, it has either:

- yielded a Future (or `Await(future)`), in which case it's resumed with a
  `Resumption(error, value)` once the future settles; or
- requested some callbacks from its broker during this step and yielded
  anything else (conventionally `Join()`, or whatever the callback-taking
  operation returned), in which case it's resumed once all those callbacks
  have fired, with the payload compiled by the Barrier.

Yielding anything else is a protocol violation; a NotYieldable exception is
thrown back into the generator at that yield. When the generator returns, the
Invocation's Future is fulfilled with the return value; when an exception
escapes the generator, the Future is rejected with it.

There's no scheduler: the generator is resumed directly on the stack of
whoever fires its last callback or settles its future. If that happens while
the driver itself is still on the stack (a callback fired synchronously
during the step, or an already-settled future), we loop instead of recursing.

"""
from __future__ import annotations
from dataclasses import dataclass
from genflow.broker import Barrier, CallbackBroker
from genflow.errors import ProtocolViolation, NotYieldable
from genflow.future import Future
import functools
import inspect
import logging
import outcome
import typeguard
import typing as t

__all__ = [
    'Await',
    'Join',
    'Resumption',
    'Invocation',
    'start',
    'coroutine',
]

logger = logging.getLogger(__name__)

T = t.TypeVar('T')

@dataclass(frozen=True)
class Await:
    "Suspend until this future settles"
    future: Future[t.Any]

class Join:
    """Suspend until every callback requested in this step has fired

    If names are passed, they must be exactly the names of the callbacks
    requested in this step.

    """
    __slots__ = ('names',)
    def __init__(self, *names: str) -> None:
        self.names = names

    def __repr__(self) -> str:
        return f"Join{self.names!r}"

class Resumption(t.NamedTuple):
    "What an awaited future resumes the computation with"
    error: t.Optional[BaseException]
    value: t.Any

    def unwrap(self) -> t.Any:
        if self.error is not None:
            raise self.error
        return self.value

    @staticmethod
    def from_outcome(result: outcome.Outcome[t.Any]) -> Resumption:
        if isinstance(result, outcome.Value):
            return Resumption(None, result.value)
        return Resumption(result.error, None)

class Invocation(t.Generic[T]):
    "One call of a genflow computation"
    def __init__(self, genfunc: t.Callable[..., t.Generator[t.Any, t.Any, T]],
                 args: t.Sequence[t.Any], kwargs: t.Mapping[str, t.Any],
                 returns: t.Optional[t.Any] = None) -> None:
        self.genfunc = genfunc
        self.args = args
        self.kwargs = kwargs
        self.returns = returns
        self.broker = CallbackBroker(self)
        self.future: Future[T] = Future()
        self.gen: t.Optional[t.Generator[t.Any, t.Any, T]] = None
        self._barrier: t.Optional[Barrier] = None
        self._running = False

    def __repr__(self) -> str:
        return f"Invocation({getattr(self.genfunc, '__qualname__', self.genfunc)})"

    @property
    def pending(self) -> int:
        "How many callbacks requested at the current suspension point haven't fired yet"
        return self._barrier.pending if self._barrier else 0

    @property
    def named_results(self) -> t.Dict[str, outcome.Outcome[t.Any]]:
        return self._barrier.named_results if self._barrier else {}

    def running_barrier(self) -> t.Optional[Barrier]:
        "The Barrier for the step currently running, if one is"
        return self._barrier if self._running else None

    def start(self) -> None:
        try:
            gen = self.genfunc(self.broker, *self.args, **self.kwargs)
        except BaseException as exn:
            self._settle(outcome.Error(exn))
            return
        if not inspect.isgenerator(gen):
            self._settle(outcome.Error(TypeError("genflow computation didn't return a generator", self.genfunc, gen)))
            return
        self.gen = gen
        self._run(outcome.Value(None))

    def _run(self, send: t.Optional[outcome.Outcome[t.Any]]) -> None:
        while send is not None:
            send = self._step(send)

    def _step(self, send: outcome.Outcome[t.Any]) -> t.Optional[outcome.Outcome[t.Any]]:
        "Advance the generator one step; returns what to send next, if we can continue immediately"
        assert self.gen is not None
        barrier = Barrier(self._wake)
        self._barrier = barrier
        self._running = True
        try:
            logger.debug("%s: sending %s", self, send)
            yielded = send.send(self.gen)
        except StopIteration as e:
            self._complete(e.value)
            return None
        except BaseException as exn:
            logger.debug("%s: raised %r", self, exn)
            self._settle(outcome.Error(exn))
            return None
        finally:
            self._running = False
        logger.debug("%s: yielded %r", self, yielded)
        return self._classify(barrier, yielded)

    def _classify(self, barrier: Barrier, yielded: t.Any) -> t.Optional[outcome.Outcome[t.Any]]:
        if isinstance(yielded, Future):
            yielded = Await(yielded)
        if isinstance(yielded, Await):
            if not isinstance(yielded.future, Future):
                return outcome.Error(ProtocolViolation("Await takes a Future", yielded.future))
            if barrier.requested:
                return outcome.Error(ProtocolViolation(
                    "yielded a future while callbacks are outstanding", yielded.future, barrier))
            return self._await(barrier, yielded.future)
        if not barrier.requested:
            return outcome.Error(NotYieldable(yielded))
        if isinstance(yielded, Join) and yielded.names:
            if not all(isinstance(name, str) for name in yielded.names):
                return outcome.Error(ProtocolViolation("Join takes callback names as strings", yielded.names))
            if set(yielded.names) != set(barrier.named):
                return outcome.Error(ProtocolViolation(
                    "joined on names other than those requested", yielded.names, list(barrier.named)))
        if barrier.seal():
            logger.debug("%s: callbacks already fired, continuing", self)
            return barrier.compile()
        logger.debug("%s: suspended on %s", self, barrier)
        return None

    def _await(self, barrier: Barrier, future: Future[t.Any]) -> t.Optional[outcome.Outcome[t.Any]]:
        barrier.seal()
        on_stack = True
        saved: t.List[outcome.Outcome[t.Any]] = []
        def resume(result: outcome.Outcome[t.Any]) -> None:
            send = outcome.Value(Resumption.from_outcome(result))
            if on_stack:
                saved.append(send)
            else:
                self._resume(barrier, send)
        future.add_done_cb(resume)
        on_stack = False
        if saved:
            logger.debug("%s: %s was already settled, continuing", self, future)
            return saved[0]
        logger.debug("%s: suspended on %s", self, future)
        return None

    def _wake(self, barrier: Barrier) -> None:
        self._resume(barrier, barrier.compile())

    def _resume(self, barrier: Barrier, send: outcome.Outcome[t.Any]) -> None:
        if self.future.done() or barrier is not self._barrier:
            logger.debug("%s: ignoring resumption from stale %s", self, barrier)
            return
        self._run(send)

    def _complete(self, value: t.Any) -> None:
        if self.returns is not None:
            try:
                typeguard.check_type(value, self.returns)
            except typeguard.TypeCheckError as exn:
                self._settle(outcome.Error(exn))
                return
        self._settle(outcome.Value(value))

    def _settle(self, result: outcome.Outcome[T]) -> None:
        self.gen = None
        if self.future.done():
            logger.debug("%s: already settled, dropping %s", self, result)
            return
        logger.debug("%s: settling with %s", self, result)
        self.future.settle(result)

def start(genfunc: t.Callable[..., t.Generator[t.Any, t.Any, T]], *args: t.Any,
          returns: t.Optional[t.Any] = None, **kwargs: t.Any) -> Invocation[T]:
    "Call `genfunc(broker, *args, **kwargs)` and drive the resulting generator"
    invocation: Invocation[T] = Invocation(genfunc, args, kwargs, returns=returns)
    invocation.start()
    return invocation

def coroutine(genfunc: t.Optional[t.Callable[..., t.Generator[t.Any, t.Any, T]]] = None, *,
              returns: t.Optional[t.Any] = None) -> t.Any:
    """Turn a generator function into a function returning a Future

    The generator function gets a CallbackBroker as its first argument,
    followed by the arguments of each call. If `returns` is passed, the
    generator's return value is checked against it with typeguard, and the
    Future is rejected with a TypeCheckError if it doesn't match.

    Can be used either as `@coroutine` or `@coroutine(returns=int)`.

    """
    def decorate(genfunc: t.Callable[..., t.Generator[t.Any, t.Any, T]]) -> t.Callable[..., Future[T]]:
        @functools.wraps(genfunc)
        def wrapper(*args: t.Any, **kwargs: t.Any) -> Future[T]:
            invocation: Invocation[T] = Invocation(genfunc, args, kwargs, returns=returns)
            invocation.start()
            return invocation.future
        return wrapper
    if genfunc is None:
        return decorate
    return decorate(genfunc)
