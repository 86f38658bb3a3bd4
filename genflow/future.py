"""A single-assignment asynchronous result, usable from callbacks and from trio

A Future is the asynchronous result handle which a genflow coroutine returns,
and which a genflow coroutine may yield to wait on. It doesn't depend on any
event loop: settling it calls the registered callbacks directly, on the stack
of whoever settled it.  `Future.get` and `Future.start` bridge it to trio.

"""
from __future__ import annotations
from genflow.errors import GenflowError, AlreadySettled
import logging
import outcome
import trio
import typing as t

__all__ = [
    'Future',
]

logger = logging.getLogger(__name__)

T = t.TypeVar('T')

def _fresh(result: outcome.Outcome[T]) -> outcome.Outcome[T]:
    "outcomes can only be unwrapped once, so hand out copies"
    if isinstance(result, outcome.Value):
        return outcome.Value(result.value)
    else:
        return outcome.Error(result.error)

class Future(t.Generic[T]):
    def __init__(self) -> None:
        self._result: t.Optional[outcome.Outcome[T]] = None
        self._cbs: t.List[t.Callable[[outcome.Outcome[T]], None]] = []

    def __repr__(self) -> str:
        if self._result is None:
            return f"<Future pending, {len(self._cbs)} waiting>"
        return f"<Future {self._result!r}>"

    def done(self) -> bool:
        return self._result is not None

    def settle(self, result: outcome.Outcome[T]) -> None:
        """Store this outcome and call every registered callback with it.

        A Future may only be settled once.

        """
        if self._result is not None:
            raise AlreadySettled("future was already settled", self, self._result)
        self._result = _fresh(result)
        cbs, self._cbs = self._cbs, []
        logger.debug("%s: settled, calling %d callbacks", self, len(cbs))
        for cb in cbs:
            cb(_fresh(self._result))

    def set_result(self, value: T) -> None:
        self.settle(outcome.Value(value))

    def set_exception(self, exn: BaseException) -> None:
        self.settle(outcome.Error(exn))

    def add_done_cb(self, cb: t.Callable[[outcome.Outcome[T]], None]) -> None:
        "Call `cb` with our outcome once we're settled; immediately if we already are"
        if self._result is not None:
            cb(_fresh(self._result))
        else:
            self._cbs.append(cb)

    def result(self) -> T:
        if self._result is None:
            raise GenflowError("future is not settled yet", self)
        if isinstance(self._result, outcome.Error):
            raise self._result.error
        return self._result.value

    def exception(self) -> t.Optional[BaseException]:
        if self._result is None:
            raise GenflowError("future is not settled yet", self)
        if isinstance(self._result, outcome.Error):
            return self._result.error
        return None

    async def get(self) -> T:
        """Block the current trio task until we're settled, then return the value or raise.

        If the waiting task is cancelled, it stops waiting; the Future itself is
        unaffected.

        """
        if self._result is not None:
            await trio.lowlevel.checkpoint()
            return self.result()
        task = trio.lowlevel.current_task()
        def wake(result: outcome.Outcome[T]) -> None:
            logger.debug("Future.get: rescheduling %s with %s", task, result)
            trio.lowlevel.reschedule(task, result)
        self._cbs.append(wake)
        def abort(raise_cancel) -> trio.lowlevel.Abort:
            logger.debug("Future.get: %s cancelled while waiting", task)
            self._cbs.remove(wake)
            return trio.lowlevel.Abort.SUCCEEDED
        return await trio.lowlevel.wait_task_rescheduled(abort)

    @staticmethod
    def start(nursery: trio.Nursery, async_fn: t.Callable[..., t.Awaitable[T]], *args: t.Any) -> Future[T]:
        """Run this async function in the nursery and capture its outcome in a Future.

        Exceptions raised by `async_fn` settle the Future; they aren't raised
        into the nursery. The exception is trio.Cancelled: if the nursery is
        cancelled, the cancellation propagates and the Future stays unsettled.

        """
        self: Future[T] = Future()
        async def wrapper() -> None:
            result = await outcome.acapture(async_fn, *args)
            if isinstance(result, outcome.Error) and isinstance(result.error, trio.Cancelled):
                raise result.error
            self.settle(result)
        nursery.start_soon(wrapper)
        return self
