import asyncio
import gc
import sys
import threading

from crashkeeper.core.faults import FaultReason, unwrap_fault
from crashkeeper.core.interceptor import FaultInterceptor


def _raised(exc: BaseException) -> BaseException:
    try:
        raise exc
    except BaseException as caught:
        return caught


def test_unwrap_fault_strips_one_group_layer() -> None:
    inner = OSError("disk gone")
    assert unwrap_fault(ExceptionGroup("tasks", [inner, ValueError("x")])) is inner
    nested = ExceptionGroup("outer", [ExceptionGroup("inner", [inner])])
    assert isinstance(unwrap_fault(nested), ExceptionGroup)
    plain = RuntimeError("plain")
    assert unwrap_fault(plain) is plain
    assert unwrap_fault(None) is None


def test_sys_hook_reports_and_chains(monkeypatch) -> None:
    chained = []
    monkeypatch.setattr(sys, "excepthook", lambda *args: chained.append(args))
    reports = []
    interceptor = FaultInterceptor(reports.append)
    interceptor.register(watch_running_loop=False)
    try:
        exc = _raised(RuntimeError("main loop died"))
        sys.excepthook(type(exc), exc, exc.__traceback__)
    finally:
        interceptor.unregister()

    assert len(reports) == 1
    assert reports[0].reason is FaultReason.UNHANDLED_EXCEPTION
    assert reports[0].message == "unhandled synchronous exception"
    assert reports[0].exception is exc
    assert chained == [(RuntimeError, exc, exc.__traceback__)]


def test_keyboard_interrupt_is_not_a_fault(monkeypatch) -> None:
    chained = []
    monkeypatch.setattr(sys, "excepthook", lambda *args: chained.append(args))
    reports = []
    interceptor = FaultInterceptor(reports.append)
    interceptor.register(watch_running_loop=False)
    try:
        exc = _raised(KeyboardInterrupt())
        sys.excepthook(type(exc), exc, exc.__traceback__)
    finally:
        interceptor.unregister()

    assert reports == []
    assert len(chained) == 1


def test_thread_exception_is_background_fault(monkeypatch) -> None:
    chained = []
    monkeypatch.setattr(threading, "excepthook", chained.append)
    reports = []
    interceptor = FaultInterceptor(reports.append)
    interceptor.register(watch_running_loop=False)
    try:
        def work() -> None:
            raise ConnectionError("upstream closed")

        t = threading.Thread(target=work)
        t.start()
        t.join()
    finally:
        interceptor.unregister()

    assert len(reports) == 1
    assert reports[0].reason is FaultReason.UNOBSERVED_BACKGROUND_EXCEPTION
    assert isinstance(reports[0].exception, ConnectionError)
    assert len(chained) == 1


def test_loop_handler_unwraps_and_chains() -> None:
    loop = asyncio.new_event_loop()
    try:
        seen = []
        previous = lambda loop_obj, context: seen.append(context)  # noqa: E731
        loop.set_exception_handler(previous)
        reports = []
        interceptor = FaultInterceptor(reports.append)
        sub = interceptor.watch_loop(loop)

        inner = OSError("disk gone")
        loop.call_exception_handler(
            {"message": "Task exception was never retrieved", "exception": ExceptionGroup("tasks", [inner])}
        )
        loop.call_exception_handler({"message": "just a notice"})

        assert len(reports) == 1
        assert reports[0].reason is FaultReason.UNOBSERVED_BACKGROUND_EXCEPTION
        assert reports[0].exception is inner
        assert [c["message"] for c in seen] == ["Task exception was never retrieved", "just a notice"]

        sub.unsubscribe()
        assert not sub.active
        assert loop.get_exception_handler() is previous
    finally:
        loop.close()


def test_register_watches_running_loop(monkeypatch) -> None:
    monkeypatch.setattr(sys, "excepthook", lambda *args: None)
    monkeypatch.setattr(threading, "excepthook", lambda args: None)
    reports = []
    interceptor = FaultInterceptor(reports.append)

    async def main() -> None:
        subs = interceptor.register()
        try:
            assert len(subs) == 4
            loop = asyncio.get_running_loop()
            loop.call_exception_handler({"message": "boom", "exception": LookupError("gone")})
        finally:
            interceptor.unregister()

    asyncio.run(main())
    assert [type(r.exception) for r in reports] == [LookupError]


def test_unsubscribe_restores_hooks_and_silences_stale_ones(monkeypatch) -> None:
    original_sys = lambda *args: None  # noqa: E731
    original_thread = lambda args: None  # noqa: E731
    monkeypatch.setattr(sys, "excepthook", original_sys)
    monkeypatch.setattr(threading, "excepthook", original_thread)
    reports = []
    interceptor = FaultInterceptor(reports.append)
    interceptor.register(watch_running_loop=False)
    installed = sys.excepthook
    assert len(interceptor.subscriptions) == 3

    interceptor.unregister()

    assert sys.excepthook is original_sys
    assert threading.excepthook is original_thread
    assert interceptor.subscriptions == []
    exc = _raised(RuntimeError("late"))
    installed(type(exc), exc, exc.__traceback__)
    assert reports == []


def test_unsubscribe_when_hook_was_replaced_leaves_newer_hook(monkeypatch) -> None:
    monkeypatch.setattr(sys, "excepthook", lambda *args: None)
    reports = []
    interceptor = FaultInterceptor(reports.append)
    interceptor.register(watch_running_loop=False)
    ours = sys.excepthook
    newer = lambda *args: ours(*args)  # noqa: E731
    sys.excepthook = newer

    interceptor.unregister()

    assert sys.excepthook is newer
    exc = _raised(RuntimeError("after"))
    sys.excepthook(type(exc), exc, exc.__traceback__)
    assert reports == []


def test_failing_sink_does_not_break_the_hook(monkeypatch) -> None:
    chained = []
    monkeypatch.setattr(sys, "excepthook", lambda *args: chained.append(args))

    def sink(report) -> None:
        raise OSError("disk full")

    interceptor = FaultInterceptor(sink)
    interceptor.register(watch_running_loop=False)
    try:
        exc = _raised(RuntimeError("original"))
        sys.excepthook(type(exc), exc, exc.__traceback__)
    finally:
        interceptor.unregister()
    assert len(chained) == 1


def test_double_unsubscribe_is_harmless(monkeypatch) -> None:
    monkeypatch.setattr(sys, "excepthook", lambda *args: None)
    interceptor = FaultInterceptor(lambda report: None)
    subs = interceptor.register(watch_running_loop=False)
    for sub in subs:
        sub.unsubscribe()
        sub.unsubscribe()
    interceptor.unregister()
    assert all(not s.active for s in subs)


def test_thread_sys_exit_is_not_a_fault(monkeypatch) -> None:
    chained = []
    monkeypatch.setattr(threading, "excepthook", chained.append)
    reports = []
    interceptor = FaultInterceptor(reports.append)
    interceptor.register(watch_running_loop=False)
    try:
        t = threading.Thread(target=sys.exit, args=(3,))
        t.start()
        t.join()
    finally:
        interceptor.unregister()

    assert reports == []
    assert len(chained) == 1
    assert chained[0].exc_type is SystemExit


def _run_with_unretrieved_failure() -> None:
    async def fail() -> None:
        raise ValueError("never retrieved")

    async def main() -> None:
        asyncio.create_task(fail())
        await asyncio.sleep(0.01)

    asyncio.run(main())
    gc.collect()


def test_loops_created_after_register_are_watched(monkeypatch) -> None:
    monkeypatch.setattr(sys, "excepthook", lambda *args: None)
    monkeypatch.setattr(threading, "excepthook", lambda args: None)
    reports = []
    interceptor = FaultInterceptor(reports.append)
    interceptor.register()
    try:
        _run_with_unretrieved_failure()
    finally:
        interceptor.unregister()

    assert len(reports) == 1
    assert reports[0].reason is FaultReason.UNOBSERVED_BACKGROUND_EXCEPTION
    assert isinstance(reports[0].exception, ValueError)
    assert str(reports[0].exception) == "never retrieved"


def test_unregister_stops_watching_new_loops(monkeypatch) -> None:
    monkeypatch.setattr(sys, "excepthook", lambda *args: None)
    monkeypatch.setattr(threading, "excepthook", lambda args: None)
    reports = []
    interceptor = FaultInterceptor(reports.append)
    interceptor.register()
    interceptor.unregister()

    _run_with_unretrieved_failure()

    assert reports == []
