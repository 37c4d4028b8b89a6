"""Process-exit integration.

``ExitHooks`` runs a callback on normal interpreter exit and on SIGINT/SIGTERM. It is
explicitly registered and unregistered by its owner so several SDK clients in one
process (or many in a test session) never leak handlers.
"""

from __future__ import annotations

import atexit
import logging
import signal
import sys
import threading
from typing import Any, Callable

from amp_sdk.observability.logging import log_event

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ExitHooks:
    def __init__(self, callback: Callable[[], None]) -> None:
        self._callback = callback
        self._registered = False
        self._previous: dict[int, Any] = {}

    @property
    def registered(self) -> bool:
        return self._registered

    def register(self) -> None:
        if self._registered:
            return

        atexit.register(self._run)
        if threading.current_thread() is threading.main_thread():
            for signum in HANDLED_SIGNALS:
                self._previous[signum] = signal.signal(signum, self._handle_signal)
        else:
            log_event('exit_hooks.signals_skipped', reason='not on main thread')

        self._registered = True

    def unregister(self) -> None:
        if not self._registered:
            return

        atexit.unregister(self._run)
        if threading.current_thread() is threading.main_thread():
            for signum, previous in self._previous.items():
                # another handler installed after ours stays in place
                if signal.getsignal(signum) == self._handle_signal:
                    signal.signal(signum, previous if previous is not None else signal.SIG_DFL)
        self._previous.clear()
        self._registered = False

    def _run(self) -> None:
        try:
            self._callback()
        except Exception as exc:  # noqa: BLE001 - exit paths must never raise
            log_event('exit_hooks.callback_failed', level=logging.ERROR, error=str(exc))

    def _handle_signal(self, signum: int, frame: Any) -> None:
        previous = self._previous.get(signum)
        log_event('exit_hooks.signal', signal=signal.Signals(signum).name)
        self._run()

        if callable(previous):
            previous(signum, frame)
        elif previous == signal.SIG_IGN:
            return
        else:
            sys.exit(0)
