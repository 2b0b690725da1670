import threading
import time

import pytest

from wind.context import Canceled, background, with_cancel as context_with_cancel
from wind.rgroup import Group, TaskPanicError, with_cancel, with_context


def test_normal_tasks_update_shared_state():
    abcs = {i: {"cba": i} for i in range(10)}
    g = Group()

    def bump(key):
        def task(ctx):
            abcs[key]["cba"] += 1

        return task

    g.go(bump(1))
    g.go(bump(2))
    assert g.wait() is None
    assert abcs[1]["cba"] == 2
    assert abcs[2]["cba"] == 3
    assert abcs[3]["cba"] == 3


def _sleep(ctx):
    time.sleep(0.2)


def test_unlimited_group_runs_all_at_once():
    g = Group()
    start = time.monotonic()
    for _ in range(4):
        g.go(_sleep)
    result = g.wait()
    elapsed = time.monotonic() - start
    assert result is None
    assert 0.19 <= elapsed < 0.35


def test_limit_caps_concurrency():
    g = Group()
    g.limit(2)
    start = time.monotonic()
    for _ in range(4):
        g.go(_sleep)
    result = g.wait()
    elapsed = time.monotonic() - start
    assert result is None
    assert 0.38 <= elapsed < 0.7


def test_limited_cancel_group_cancels_after_error():
    canceled = []
    g = with_cancel(background())
    g.limit(2)

    def fail(ctx):
        raise RuntimeError("error for testing rgroup context")

    def slow(ctx):
        time.sleep(0.3)
        canceled.append(ctx.is_done())

    g.go(fail)
    g.go(slow)
    with pytest.raises(RuntimeError, match="error for testing rgroup context"):
        g.wait()
    assert canceled == [True]


def test_recover_from_lookup_error():
    abcs = {}
    g = Group()

    def task(ctx):
        abcs[1]["cba"] += 1

    g.go(task)
    g.go(task)
    with pytest.raises(KeyError):
        g.wait()


def test_recover_from_runtime_error():
    g = Group()

    def task(ctx):
        raise RuntimeError("2233")

    g.go(task)
    with pytest.raises(RuntimeError, match="2233"):
        g.wait()


def test_system_exit_becomes_task_panic_error():
    g = Group()

    def task(ctx):
        raise SystemExit("2233")

    g.go(task)
    with pytest.raises(TaskPanicError) as info:
        g.wait()
    assert isinstance(info.value.original, SystemExit)
    assert "2233" in str(info.value)


@pytest.mark.parametrize(
    "errs",
    [
        [],
        [None],
        ["e1"],
        ["e1", None],
        ["e1", None, "e2"],
    ],
)
def test_zero_group_returns_first_error(errs):
    err1 = ValueError("rgroup_test: 1")
    err2 = ValueError("rgroup_test: 2")
    mapping = {"e1": err1, "e2": err2, None: None}
    g = Group()
    first = None
    for name in errs:
        err = mapping[name]

        def task(ctx, err=err):
            if err is not None:
                raise err

        g.go(task)
        if first is None and err is not None:
            first = err
        if first is None:
            assert g.wait() is None
        else:
            with pytest.raises(ValueError) as info:
                g.wait()
            assert info.value is first


def test_with_cancel_cancels_waiting_task():
    g = with_cancel(background())
    done_err = []

    def boom(ctx):
        time.sleep(0.1)
        raise RuntimeError("boom")

    def waiter(ctx):
        ctx.wait(5)
        done_err.append(ctx.err())
        raise ctx.err()

    g.go(boom)
    g.go(waiter)
    with pytest.raises(RuntimeError, match="boom"):
        g.wait()
    assert len(done_err) == 1
    assert isinstance(done_err[0], Canceled)


def test_with_context_passes_given_context():
    parent = background().with_value("k", "v")
    seen = []
    g = with_context(parent)
    g.go(lambda ctx: seen.append(ctx))
    g.wait()
    assert seen == [parent]
    assert seen[0].value("k") == "v"


def test_zero_group_passes_background():
    seen = []
    g = Group()
    g.go(lambda ctx: seen.append(ctx))
    g.wait()
    assert seen[0] is background()


def test_with_cancel_wait_cancels_context_even_without_error():
    seen = []
    g = with_cancel(background().with_value("a", 1))
    g.go(lambda ctx: seen.append(ctx))
    g.wait()
    assert seen[0].value("a") == 1
    assert seen[0].is_done()
    assert isinstance(seen[0].err(), Canceled)


def test_explicit_cancel_function_is_called():
    ctx, cancel = context_with_cancel(background())
    g = Group(ctx, cancel)

    def fail(ctx):
        raise ValueError("bad")

    g.go(fail)
    with pytest.raises(ValueError):
        g.wait()
    assert ctx.is_done()


def test_zero_group_does_not_cancel_on_error():
    parent, cancel = context_with_cancel(background())
    g = with_context(parent)
    g.go(lambda ctx: (_ for _ in ()).throw(ValueError("x")))
    with pytest.raises(ValueError):
        g.wait()
    assert not parent.is_done()
    cancel()


def test_limit_rejects_non_positive():
    g = Group()
    with pytest.raises(ValueError):
        g.limit(0)
    with pytest.raises(ValueError):
        g.limit(-3)


def test_limited_group_cannot_be_reused_after_wait():
    g = Group()
    g.limit(2)
    g.go(lambda ctx: None)
    g.wait()
    with pytest.raises(RuntimeError):
        g.go(lambda ctx: None)


def test_limited_group_runs_every_task():
    counter = []
    lock = threading.Lock()
    g = Group()
    g.limit(2)

    def task(ctx):
        with lock:
            counter.append(1)

    for _ in range(10):
        g.go(task)
    assert g.wait() is None
    assert len(counter) == 10


def test_parallel_search_example():
    def fake_search(kind):
        def search(ctx, query):
            return f'{kind} result for "{query}"'

        return search

    searches = [fake_search("web"), fake_search("image"), fake_search("video")]

    def search_all(ctx, query):
        g = with_context(ctx)
        results = [None] * len(searches)
        for index, search in enumerate(searches):
            def task(c, index=index, search=search):
                results[index] = search(ctx, query)

            g.go(task)
        g.wait()
        return results

    assert search_all(background(), "kittens") == [
        'web result for "kittens"',
        'image result for "kittens"',
        'video result for "kittens"',
    ]


def test_demo_example_binds_results():
    eg = with_context(background())
    res1 = {}
    res2 = {}

    def first(ctx):
        res1["message"] = "success"

    def second(ctx):
        res2["code"] = 1

    eg.go(first)
    eg.go(second)
    assert eg.wait() is None
    assert res1["message"] == "success"
    assert res2["code"] == 1


@pytest.mark.parametrize("make", ["plain", "ctx", "cancel", "limit"])
def test_example_variants_succeed(make):
    ran = []
    if make == "plain":
        g = Group()
    elif make == "ctx":
        g = with_context(background())
    elif make == "cancel":
        g = with_cancel(background())
    else:
        g = Group()
        g.limit(2)
    g.go(lambda ctx: ran.append(1))
    g.go(lambda ctx: ran.append(2))
    g.wait()
    assert sorted(ran) == [1, 2]