from __future__ import annotations

import logging
import signal
import threading
from typing import Callable, Dict, Iterable

logger = logging.getLogger(__name__)

TERMINATION_SIGNALS = tuple(
    s for s in (
        getattr(signal, "SIGINT", None),
        getattr(signal, "SIGTERM", None),
        getattr(signal, "SIGHUP", None),
    )
    if s is not None
)


class ShutdownHook:
    """
    One-shot process cleanup.

    The action runs at most once, whether it is triggered by a termination
    signal or by an orderly shutdown path calling run(). After running from a
    signal handler the previously installed handler is chained, so servers
    that manage their own signals (uvicorn) still shut down gracefully.
    """

    def __init__(self, action: Callable[[], None], name: str = "shutdown") -> None:
        self._action = action
        self._name = name
        self._lock = threading.Lock()
        self._done = False
        self._previous: Dict[int, object] = {}

    @property
    def done(self) -> bool:
        return self._done

    def run(self) -> bool:
        with self._lock:
            if self._done:
                return False
            self._done = True
        try:
            self._action()
            logger.info("Shutdown hook '%s' completed", self._name)
        except Exception:
            logger.exception("Shutdown hook '%s' failed", self._name)
        return True

    def install(self, signals: Iterable[int] = TERMINATION_SIGNALS) -> bool:
        # signal.signal() is only legal from the main thread
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not in main thread; signal handlers for '%s' not installed", self._name)
            return False
        for sig in signals:
            self._previous[sig] = signal.getsignal(sig)
            signal.signal(sig, self._handle)
        return True

    def uninstall(self) -> None:
        if threading.current_thread() is not threading.main_thread():
            return
        for sig, prev in self._previous.items():
            signal.signal(sig, prev)
        self._previous.clear()

    def _handle(self, signum, frame) -> None:
        logger.warning("Received signal %s, releasing hardware", signum)
        self.run()

        prev = self._previous.get(signum)
        if callable(prev):
            prev(signum, frame)
            return
        if prev == signal.SIG_IGN:
            return
        if signum == getattr(signal, "SIGINT", None):
            raise KeyboardInterrupt
        raise SystemExit(128 + signum)
