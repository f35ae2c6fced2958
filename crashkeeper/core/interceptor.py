from __future__ import annotations

import asyncio
import logging
import sys
import threading
import warnings
from types import TracebackType
from typing import Any, Callable, Dict, List, Optional, Type

from crashkeeper.core.faults import FaultReason, FaultReport, unwrap_fault

_log = logging.getLogger(__name__)

FaultSink = Callable[[FaultReport], Any]


class Subscription:
    """Handle for one installed hook; ``unsubscribe()`` revokes it."""

    def __init__(self, channel: str, revoke: Callable[[], None]):
        self.channel = channel
        self._revoke = revoke
        self._active = True
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        with self._lock:
            if not self._active:
                return
            self._active = False
        self._revoke()

    def __repr__(self) -> str:
        state = "active" if self._active else "revoked"
        return f"<Subscription {self.channel} {state}>"


class FaultInterceptor:
    """Routes process-wide unhandled faults into ``sink`` as FaultReports.

    ``sys.excepthook`` is the synchronous channel. ``threading.excepthook``
    and watched asyncio loops form the background channel. Each hook passes
    the fault on to whatever hook it replaced.
    """

    def __init__(self, sink: FaultSink):
        self.sink = sink
        self._subscriptions: List[Subscription] = []
        self._lock = threading.Lock()

    @property
    def subscriptions(self) -> List[Subscription]:
        return [s for s in self._subscriptions if s.active]

    def register(self, watch_running_loop: bool = True, watch_new_loops: bool = True) -> List[Subscription]:
        subs = [self._hook_sys(), self._hook_threads()]
        if watch_new_loops:
            subs.append(self._hook_loop_factory())
        if watch_running_loop:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                loop = None
            if loop is not None:
                subs.append(self.watch_loop(loop))
        return subs

    def unregister(self) -> None:
        with self._lock:
            subs, self._subscriptions = self._subscriptions, []
        for sub in reversed(subs):
            sub.unsubscribe()

    def _track(self, sub: Subscription) -> Subscription:
        with self._lock:
            self._subscriptions.append(sub)
        return sub

    def _report(self, reason: FaultReason, exc: Optional[BaseException]) -> None:
        try:
            self.sink(FaultReport.from_channel(reason, exc))
        except Exception:
            _log.debug("Fault sink failed for %s", reason.value, exc_info=True)

    def _hook_sys(self) -> Subscription:
        previous = sys.excepthook
        sub: Optional[Subscription] = None

        def hook(
            exc_type: Type[BaseException],
            exc: BaseException,
            tb: Optional[TracebackType],
        ) -> None:
            if sub is not None and sub.active and not issubclass(exc_type, KeyboardInterrupt):
                self._report(FaultReason.UNHANDLED_EXCEPTION, exc)
            previous(exc_type, exc, tb)

        def revoke() -> None:
            if sys.excepthook is hook:
                sys.excepthook = previous

        sub = Subscription("sys.excepthook", revoke)
        sys.excepthook = hook
        return self._track(sub)

    def _hook_threads(self) -> Subscription:
        previous = threading.excepthook
        sub: Optional[Subscription] = None

        def hook(args: Any) -> None:
            # a thread ending through sys.exit() is a normal stop
            if sub is not None and sub.active and not issubclass(args.exc_type, SystemExit):
                self._report(FaultReason.UNOBSERVED_BACKGROUND_EXCEPTION, unwrap_fault(args.exc_value))
            previous(args)

        def revoke() -> None:
            if threading.excepthook is hook:
                threading.excepthook = previous

        sub = Subscription("threading.excepthook", revoke)
        threading.excepthook = hook
        return self._track(sub)

    def watch_loop(self, loop: asyncio.AbstractEventLoop) -> Subscription:
        previous = loop.get_exception_handler()
        sub: Optional[Subscription] = None

        def handler(loop_obj: asyncio.AbstractEventLoop, context: Dict[str, Any]) -> None:
            exc = context.get("exception")
            # loop notices without an exception attached are not faults
            if sub is not None and sub.active and exc is not None:
                self._report(FaultReason.UNOBSERVED_BACKGROUND_EXCEPTION, unwrap_fault(exc))
            if previous is not None:
                previous(loop_obj, context)
            else:
                loop_obj.default_exception_handler(context)

        def revoke() -> None:
            if loop.get_exception_handler() is handler:
                loop.set_exception_handler(previous)

        sub = Subscription(f"asyncio loop {id(loop):#x}", revoke)
        loop.set_exception_handler(handler)
        return self._track(sub)

    def _hook_loop_factory(self) -> Subscription:
        """Watch every loop the current event loop policy creates from now on, e.g. in ``asyncio.run``."""
        policy = _event_loop_policy()
        had_override = "new_event_loop" in vars(policy)
        previous = policy.new_event_loop
        sub: Optional[Subscription] = None

        def new_event_loop() -> asyncio.AbstractEventLoop:
            loop = previous()
            if sub is not None and sub.active:
                self.watch_loop(loop)
            return loop

        def revoke() -> None:
            if vars(policy).get("new_event_loop") is not new_event_loop:
                return
            if had_override:
                policy.new_event_loop = previous
            else:
                del policy.new_event_loop

        sub = Subscription("asyncio event loop policy", revoke)
        policy.new_event_loop = new_event_loop
        return self._track(sub)


def _event_loop_policy() -> asyncio.AbstractEventLoopPolicy:
    # policy accessors are deprecated from 3.14 but still back asyncio.run
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", DeprecationWarning)
        return asyncio.get_event_loop_policy()
