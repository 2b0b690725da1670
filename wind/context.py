"""Request contexts carrying values, cancellation and deadlines."""

from __future__ import annotations

import threading
import time
from typing import Any, Callable, Optional, Tuple

from . import constants

Endpoint = Callable[["Context", Any], Any]
Middleware = Callable[[Endpoint], Endpoint]

_NO_KEY = object()


class Canceled(Exception):
    """The context was canceled."""

    def __init__(self, message: str = "context canceled") -> None:
        super().__init__(message)


class DeadlineExceeded(TimeoutError):
    """The context deadline passed."""

    def __init__(self, message: str = "context deadline exceeded") -> None:
        super().__init__(message)


class _CancelState:
    def __init__(self, parent: Optional["_CancelState"], deadline: Optional[float]) -> None:
        self.event = threading.Event()
        self.error: Optional[BaseException] = None
        self.deadline = deadline
        self._lock = threading.Lock()
        self._children: list = []
        self._timer: Optional[threading.Timer] = None
        self._parent = parent
        if parent is not None:
            parent._add_child(self)

    def _add_child(self, child: "_CancelState") -> None:
        with self._lock:
            if self.error is None:
                self._children.append(child)
                return
            error = self.error
        child.cancel(error)

    def _remove_child(self, child: "_CancelState") -> None:
        with self._lock:
            try:
                self._children.remove(child)
            except ValueError:
                pass

    def start_timer(self, delay: float) -> None:
        timer = threading.Timer(delay, self.cancel, args=(DeadlineExceeded(),))
        timer.daemon = True
        with self._lock:
            if self.error is not None:
                return
            self._timer = timer
        timer.start()

    def cancel(self, error: BaseException) -> None:
        with self._lock:
            if self.error is not None:
                return
            self.error = error
            children, self._children = self._children, []
            timer, self._timer = self._timer, None
        self.event.set()
        if timer is not None:
            timer.cancel()
        for child in children:
            child.cancel(error)
        if self._parent is not None:
            self._parent._remove_child(self)


class Context:
    """An immutable chain of values with an optional cancellation state."""

    def __init__(
        self,
        parent: Optional["Context"] = None,
        key: Any = _NO_KEY,
        value: Any = None,
        state: Optional[_CancelState] = None,
    ) -> None:
        self._parent = parent
        self._key = key
        self._value = value
        if state is None and parent is not None:
            state = parent._state
        self._state = state

    def value(self, key: Any) -> Any:
        """Return the value stored under key, or None."""
        node: Optional[Context] = self
        while node is not None:
            if node._key is not _NO_KEY and node._key == key:
                return node._value
            node = node._parent
        return None

    def with_value(self, key: Any, value: Any) -> "Context":
        """Return a child context holding key -> value."""
        return Context(self, key, value)

    def is_done(self) -> bool:
        return self._state is not None and self._state.event.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until done or timeout; return whether the context is done."""
        if self._state is None:
            threading.Event().wait(timeout)
            return False
        return self._state.event.wait(timeout)

    def err(self) -> Optional[BaseException]:
        """The reason the context is done, or None while it is live."""
        if self._state is None:
            return None
        return self._state.error


_BACKGROUND = Context()


def background() -> Context:
    """The root context: no values, never done."""
    return _BACKGROUND


def _parent_deadline(parent: Context) -> Optional[float]:
    return parent._state.deadline if parent._state is not None else None


def with_cancel(parent: Context) -> Tuple[Context, Callable[[], None]]:
    """A child context and a function that cancels it."""
    state = _CancelState(parent._state, _parent_deadline(parent))

    def cancel() -> None:
        state.cancel(Canceled())

    return Context(parent, state=state), cancel


def with_timeout(parent: Context, seconds: float) -> Tuple[Context, Callable[[], None]]:
    """A child context that is done after the given number of seconds."""
    deadline = time.monotonic() + seconds
    inherited = _parent_deadline(parent)
    if inherited is not None and inherited <= deadline:
        return with_cancel(parent)
    state = _CancelState(parent._state, deadline)
    if seconds <= 0:
        state.cancel(DeadlineExceeded())
    else:
        state.start_timer(seconds)

    def cancel() -> None:
        state.cancel(Canceled())

    return Context(parent, state=state), cancel


def with_trace_id(ctx: Context, trace_id: str) -> Context:
    """Attach a trace id unless the context already has one."""
    if ctx.value(constants.TRACE_ID_KEY) is not None:
        return ctx
    return ctx.with_value(constants.TRACE_ID_KEY, trace_id)


def get_trace_id(ctx: Optional[Context]) -> str:
    if ctx is None:
        return ""
    trace_id = ctx.value(constants.TRACE_ID_KEY)
    return "" if trace_id is None else trace_id


def inject_target_host_name(ctx: Context, target_host_name: str) -> Context:
    """Ask the balancer to route to a specific downstream host."""
    return ctx.with_value(constants.BALANCE_TARGET_HOST_NAME, target_host_name)


def extract_target_host_name(ctx: Context) -> str:
    host = ctx.value(constants.BALANCE_TARGET_HOST_NAME)
    return host if isinstance(host, str) else ""