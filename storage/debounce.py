# storage/debounce.py - Per-field debounced commits (Phase 11, Day 93)
"""
FieldDebouncer: one cancellable timer per key.

A new submit() for a key cancels that key's pending timer and starts a fresh
one; keys never affect each other. When a timer fires, the callback runs with
the last value submitted for that key. cancel_all() drops every pending
commit without running it (editor teardown); flush() runs them now (save).

Timers are created through ``timer_factory`` which defaults to
threading.Timer. Tests pass a fake with the same (interval, function, args)
signature plus start()/cancel().
"""
from __future__ import annotations

import logging
import os
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

log = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_MS = 175


def debounce_ms_from_env(default: int = DEFAULT_DEBOUNCE_MS) -> int:
    raw = os.getenv("THEME_DEBOUNCE_MS")
    if not raw:
        return default
    try:
        return max(0, int(raw))
    except ValueError:
        log.warning("Ignoring non-integer THEME_DEBOUNCE_MS=%r", raw)
        return default


class FieldDebouncer:
    def __init__(
        self,
        callback: Callable[[str, Any], None],
        *,
        delay_ms: Optional[int] = None,
        timer_factory: Optional[Callable[..., Any]] = None,
    ) -> None:
        self._callback = callback
        self._delay = (debounce_ms_from_env() if delay_ms is None else delay_ms) / 1000.0
        self._timer_factory = timer_factory or threading.Timer
        self._lock = threading.Lock()
        # key -> (seq, timer, value)
        self._pending: Dict[str, Tuple[int, Any, Any]] = {}
        self._seq = 0

    # -- public --------------------------------------------------------
    def submit(self, key: str, value: Any) -> None:
        with self._lock:
            prev = self._pending.get(key)
            if prev is not None:
                prev[1].cancel()
            self._seq += 1
            seq = self._seq
            timer = self._timer_factory(self._delay, self._fire, (key, seq))
            if hasattr(timer, "daemon"):
                timer.daemon = True
            self._pending[key] = (seq, timer, value)
        timer.start()

    def pending(self) -> List[str]:
        with self._lock:
            return list(self._pending.keys())

    def flush(self) -> None:
        """Commit every pending value now, in submission order."""
        with self._lock:
            entries = sorted(self._pending.items(), key=lambda kv: kv[1][0])
            self._pending.clear()
        for key, (_seq, timer, value) in entries:
            timer.cancel()
            self._callback(key, value)

    def cancel(self, key: str) -> bool:
        """Drop one key's pending commit. Returns True if something was pending."""
        with self._lock:
            entry = self._pending.pop(key, None)
        if entry is None:
            return False
        entry[1].cancel()
        return True

    def cancel_all(self) -> None:
        with self._lock:
            entries = list(self._pending.values())
            self._pending.clear()
        for _seq, timer, _value in entries:
            timer.cancel()
        if entries:
            log.debug("Dropped %d pending debounced edit(s)", len(entries))

    # -- internals -----------------------------------------------------
    def _fire(self, key: str, seq: int) -> None:
        with self._lock:
            entry = self._pending.get(key)
            # Superseded or cancelled timers that still fire are ignored
            if entry is None or entry[0] != seq:
                return
            del self._pending[key]
            value = entry[2]
        self._callback(key, value)
