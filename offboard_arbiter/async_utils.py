import threading
from typing import Any, Callable, Generic, TypeVar


class OnceCallable():
    """
    Runs the given function only the first time it's called and do nothing for subsequent invocations.
    """
    def __init__(self, func: Callable):
        self._func = func
        self._called = False

    def __call__(self, *args, **kwargs) -> Any | None:
        if self._called:
            return

        self._called = True
        return self._func(*args, **kwargs)


ValueT = TypeVar("ValueT")
class LatestValue(Generic[ValueT]):
    """
    Single-slot holder where writers replace the whole value and readers
    always get a complete one. There is no history; the newest write wins.
    """
    def __init__(self, initial: ValueT):
        self._value = initial
        self._version = 0

        # Lock for the slot.
        self.lock = threading.Lock()

    @property
    def version(self) -> int:
        """
        Number of times the value has been replaced.
        """
        with self.lock:
            return self._version

    def put(self, value: ValueT):
        with self.lock:
            self._value = value
            self._version += 1

    def get(self) -> ValueT:
        with self.lock:
            return self._value
