"""Run a group of tasks concurrently and collect the first error.

A plain ``Group()`` hands every task the background context and never
cancels it. ``with_context(ctx)`` hands every task ``ctx``. ``with_cancel(ctx)``
hands every task a context derived from ``ctx``. That context is cancelled
when a task fails or when ``wait`` returns, whichever comes first.

``limit(n)`` caps how many tasks run at once. With a limit, tasks beyond what
the workers and their queue can take are held back until ``wait`` is called,
so call ``wait`` straight after adding tasks.
"""

from __future__ import annotations

import queue
import threading
import traceback
from typing import Any, Callable, List, Optional

from .context import Context, background
from .context import with_cancel as _derive_cancel

Task = Callable[[Context], Any]

_STOP = object()


class TaskPanicError(Exception):
    """A task died from an exception outside ``Exception``, such as SystemExit."""

    def __init__(self, original: BaseException, stack: str = "") -> None:
        super().__init__(f"rgroup: panic recovered: {original!r}\n{stack}")
        self.original = original
        self.stack = stack


class Group:
    """A collection of tasks that work on parts of one overall job."""

    def __init__(
        self,
        ctx: Optional[Context] = None,
        cancel: Optional[Callable[[], None]] = None,
    ) -> None:
        self._ctx = ctx
        self._cancel = cancel
        self._err: Optional[BaseException] = None
        self._cond = threading.Condition()
        self._active = 0
        self._limit_lock = threading.Lock()
        self._queue: Optional[queue.Queue] = None
        self._workers = 0
        self._pending: List[Task] = []
        self._closed = False

    def _record(self, err: BaseException) -> None:
        with self._cond:
            if self._err is not None:
                return
            self._err = err
        if self._cancel is not None:
            self._cancel()

    def _run(self, func: Task) -> None:
        ctx = self._ctx if self._ctx is not None else background()
        failure: Optional[BaseException] = None
        try:
            func(ctx)
        except Exception as exc:
            failure = exc
        except BaseException as exc:
            failure = TaskPanicError(exc, traceback.format_exc())
            failure.__cause__ = exc
        try:
            if failure is not None:
                self._record(failure)
        finally:
            with self._cond:
                self._active -= 1
                self._cond.notify_all()

    def _worker(self, tasks: queue.Queue) -> None:
        while True:
            func = tasks.get()
            if func is _STOP:
                return
            self._run(func)

    def limit(self, n: int) -> None:
        """Run at most n tasks at a time; only the first call has an effect."""
        if n <= 0:
            raise ValueError("rgroup: limit must be greater than 0")
        with self._limit_lock:
            if self._queue is not None:
                return
            tasks: queue.Queue = queue.Queue(maxsize=n)
            for _ in range(n):
                threading.Thread(target=self._worker, args=(tasks,), daemon=True).start()
            self._workers = n
            self._queue = tasks

    def go(self, func: Task) -> None:
        """Start func(ctx) in the group."""
        if self._queue is not None and self._closed:
            raise RuntimeError("rgroup: group with a limit was already waited on")
        with self._cond:
            self._active += 1
        if self._queue is not None:
            try:
                self._queue.put_nowait(func)
            except queue.Full:
                self._pending.append(func)
            return
        threading.Thread(target=self._run, args=(func,), daemon=True).start()

    def wait(self) -> None:
        """Block until every task has finished, then raise the first failure."""
        if self._queue is not None:
            pending, self._pending = self._pending, []
            for func in pending:
                self._queue.put(func)
        with self._cond:
            while self._active > 0:
                self._cond.wait()
        if self._queue is not None and not self._closed:
            self._closed = True
            for _ in range(self._workers):
                self._queue.put(_STOP)
        if self._cancel is not None:
            self._cancel()
        if self._err is not None:
            raise self._err


def with_context(ctx: Context) -> Group:
    """A group whose tasks receive ctx and are not cancelled on failure."""
    return Group(ctx)


def with_cancel(ctx: Context) -> Group:
    """A group whose tasks share a context cancelled on the first failure."""
    derived, cancel = _derive_cancel(ctx)
    return Group(derived, cancel)