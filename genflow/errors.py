"Exceptions raised by genflow"
import typing as t

__all__ = [
    'GenflowError',
    'ProtocolViolation',
    'CallbackMisuse',
    'NotYieldable',
    'CallbackError',
    'AlreadySettled',
]

class GenflowError(Exception):
    pass

class ProtocolViolation(GenflowError):
    """The computation broke the driver's contract.

    These are thrown into the computation at the point of misuse, so a
    computation may catch them like any other exception.

    """
    pass

class CallbackMisuse(ProtocolViolation):
    "A callback was requested or fired in a way the broker doesn't allow"
    pass

class NotYieldable(ProtocolViolation):
    def __init__(self, value: t.Any) -> None:
        super().__init__("non-yieldable value with no outstanding callback request", value)
        self.value = value

class CallbackError(GenflowError):
    "Wraps an error indicator passed to a callback which isn't an exception"
    def __init__(self, error: t.Any) -> None:
        super().__init__(error)
        self.error = error

class AlreadySettled(GenflowError):
    pass
