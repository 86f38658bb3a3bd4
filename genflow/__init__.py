"""Linear control flow over callback-based operations, with generators

Callback-based asynchronous code forces us into continuation-passing style;
every operation splits the surrounding function in two:

```
def cb(err, data):
  if err:
    handle(err)
  else:
    more_work(data)
file.read_cb(cb)
```

With genflow, the function is written as a generator which requests its
callbacks from a broker and yields until they fire:

```
@coroutine
def work(callback, file):
    data = yield file.read_cb(callback())
    more_work(data)
```

Calling `work(file)` starts the generator and returns a Future for its
result. There is no event loop or central scheduler: the generator runs on
the stack of whoever calls it, and later on the stack of whoever fires its
callback. Several callbacks can be outstanding at once by naming them; the
generator is resumed once they have all fired, with a dict of their results:

```
results = yield (a.read_cb(callback('a')), b.read_cb(callback('b')))
```

A computation can also yield a Future, such as the one returned by another
genflow coroutine, and is resumed with a `Resumption(error, value)` pair.
Futures can be awaited from trio with `Future.get`, and trio async functions
can be turned into Futures with `Future.start`.

"""
from genflow.errors import (
    GenflowError, ProtocolViolation, CallbackMisuse, NotYieldable, CallbackError, AlreadySettled,
)
from genflow.future import Future
from genflow.broker import Callback, CallbackBroker
from genflow.driver import Await, Join, Resumption, Invocation, start, coroutine
