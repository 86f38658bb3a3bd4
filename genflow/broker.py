"""Hand out single-use callbacks to a running computation, and join on them

Each step of a genflow computation gets a fresh Barrier. While the step runs,
the computation requests callbacks from its CallbackBroker, which creates them
on the current Barrier, and passes them to callback-taking operations. When
the step yields, the Barrier is sealed; once every callback requested in that
step has fired, the Barrier wakes the driver with the compiled payload.

A step may request exactly one unnamed callback, in which case the payload is
that callback's value; or any number of distinctly named callbacks, in which
case the payload is a dict from name to value, in request order, regardless
of the order in which the callbacks fired.

Callbacks follow the usual error-first convention: `cb(error, *values)`. A
non-None error fails the step; the exception is thrown into the computation
at its yield.

"""
from __future__ import annotations
from genflow.errors import CallbackMisuse, CallbackError
import logging
import outcome
import typing as t

if t.TYPE_CHECKING:
    from genflow.driver import Invocation

__all__ = [
    'Callback',
    'Barrier',
    'CallbackBroker',
]

logger = logging.getLogger(__name__)

def decode_callback_args(error: t.Any, values: t.Tuple[t.Any, ...]) -> outcome.Outcome[t.Any]:
    "Turn error-first callback arguments into an outcome"
    if error is not None:
        if not isinstance(error, BaseException):
            error = CallbackError(error)
        return outcome.Error(error)
    if len(values) == 0:
        return outcome.Value(None)
    elif len(values) == 1:
        return outcome.Value(values[0])
    else:
        return outcome.Value(values)

class Callback:
    "A single-use callback delivering a result to one suspension point"
    __slots__ = ('barrier', 'name', 'result')
    def __init__(self, barrier: Barrier, name: t.Optional[str]) -> None:
        self.barrier = barrier
        self.name = name
        self.result: t.Optional[outcome.Outcome[t.Any]] = None

    def __repr__(self) -> str:
        state = "fired" if self.fired else "pending"
        if self.name is None:
            return f"<Callback {state}>"
        return f"<Callback {self.name!r} {state}>"

    @property
    def fired(self) -> bool:
        return self.result is not None

    def __call__(self, error: t.Any = None, *values: t.Any) -> None:
        if self.result is not None:
            raise CallbackMisuse("callback already fired", self)
        self.result = decode_callback_args(error, values)
        self.barrier.fire(self)

class Barrier:
    "The callbacks requested during one step of a computation"
    def __init__(self, wake: t.Callable[[Barrier], None]) -> None:
        self.pending = 0
        self.unnamed: t.Optional[Callback] = None
        self.named: t.Dict[str, Callback] = {}
        self.sealed = False
        self._wake = wake

    def __repr__(self) -> str:
        return f"<Barrier requested={self.requested} pending={self.pending} sealed={self.sealed}>"

    @property
    def requested(self) -> int:
        return len(self.named) + (1 if self.unnamed is not None else 0)

    @property
    def named_results(self) -> t.Dict[str, outcome.Outcome[t.Any]]:
        return {name: cb.result for name, cb in self.named.items() if cb.result is not None}

    def request(self, name: t.Optional[str] = None) -> Callback:
        if self.sealed:
            raise CallbackMisuse("callbacks can only be requested while the computation is running")
        if name is None:
            if self.requested:
                raise CallbackMisuse("request several named callbacks, or exactly one unnamed callback")
            cb = Callback(self, None)
            self.unnamed = cb
        else:
            if self.unnamed is not None:
                raise CallbackMisuse("request several named callbacks, or exactly one unnamed callback", name)
            if name in self.named:
                raise CallbackMisuse("callback name already in use; yield before reusing it", name)
            cb = Callback(self, name)
            self.named[name] = cb
        self.pending += 1
        return cb

    def fire(self, cb: Callback) -> None:
        self.pending -= 1
        logger.debug("%s: %s fired", self, cb)
        if self.pending == 0 and self.sealed:
            self._wake(self)

    def seal(self) -> bool:
        "Mark the step as having yielded; returns True if every callback has already fired"
        self.sealed = True
        return self.pending == 0

    def compile(self) -> outcome.Outcome[t.Any]:
        "The outcome to resume the computation with, once all callbacks have fired"
        if self.unnamed is not None:
            result = self.unnamed.result
            assert result is not None
            if isinstance(result, outcome.Value):
                return outcome.Value(result.value)
            return outcome.Error(result.error)
        results = {name: cb.result for name, cb in self.named.items()}
        errors = [result.error for result in results.values() if isinstance(result, outcome.Error)]
        if len(errors) == 1:
            return outcome.Error(errors[0])
        elif errors:
            return outcome.Error(BaseExceptionGroup("several callbacks failed", errors))
        return outcome.Value({name: result.value for name, result in results.items()}) # type: ignore

class CallbackBroker:
    """Requests callbacks for the current step of one Invocation

    This is the object passed to a genflow computation as its first argument.
    Calling it is the same as calling `request`.

    """
    def __init__(self, invocation: Invocation) -> None:
        self.invocation = invocation

    def request(self, name: t.Optional[str] = None) -> Callback:
        barrier = self.invocation.running_barrier()
        if barrier is None:
            raise CallbackMisuse("callbacks can only be requested while the computation is running")
        return barrier.request(name)

    def __call__(self, name: t.Optional[str] = None) -> Callback:
        return self.request(name)
