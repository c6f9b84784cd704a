"""Keyboard controls for the live dashboard."""

from __future__ import annotations

import enum
import os
import sys
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, TextIO

from ..config import clamp_interval_ms

if TYPE_CHECKING:
    from ..collector.manager import AggregationService

KEY_HELP = "q quit · c clear min/max · +/- interval · t topology"


class KeyAction(str, enum.Enum):
    NONE = "none"
    QUIT = "quit"
    CLEAR_MIN_MAX = "clear_min_max"
    INCREASE_INTERVAL = "increase_interval"
    DECREASE_INTERVAL = "decrease_interval"
    TOGGLE_TOPOLOGY = "toggle_topology"


_KEY_ACTIONS = {
    "q": KeyAction.QUIT,
    "\x03": KeyAction.QUIT,
    "c": KeyAction.CLEAR_MIN_MAX,
    "+": KeyAction.INCREASE_INTERVAL,
    "=": KeyAction.INCREASE_INTERVAL,
    "-": KeyAction.DECREASE_INTERVAL,
    "_": KeyAction.DECREASE_INTERVAL,
    "t": KeyAction.TOGGLE_TOPOLOGY,
}


def map_key(key: str | None) -> KeyAction:
    if not key:
        return KeyAction.NONE
    return _KEY_ACTIONS.get(key.lower(), KeyAction.NONE)


def step_interval(seconds: float, direction: int) -> float:
    """Next update interval one step up (*direction* > 0) or down.

    Steps are 100 ms below one second and 1 s from one second up, clamped
    to the supported range.
    """
    ms = int(round(seconds * 1000))
    fine = ms < 1000 or (ms == 1000 and direction < 0)
    step = 100 if fine else 1000
    return clamp_interval_ms(ms + step * (1 if direction > 0 else -1)) / 1000.0


@dataclass
class DashboardState:
    show_topology: bool = False
    running: bool = True


def apply_key_action(action: KeyAction, service: AggregationService, state: DashboardState) -> bool:
    """Apply *action* to the service and view state. Returns True when the view must redraw."""
    if action is KeyAction.QUIT:
        state.running = False
    elif action is KeyAction.CLEAR_MIN_MAX:
        service.clear_min_max()
    elif action is KeyAction.INCREASE_INTERVAL:
        service.set_interval(step_interval(service.interval_seconds, 1))
    elif action is KeyAction.DECREASE_INTERVAL:
        service.set_interval(step_interval(service.interval_seconds, -1))
    elif action is KeyAction.TOGGLE_TOPOLOGY:
        state.show_topology = not state.show_topology
    return action is not KeyAction.NONE


def _is_tty(stream: TextIO) -> bool:
    try:
        return stream.isatty()
    except (AttributeError, OSError, ValueError):
        return False


class KeyReader:
    """Non-blocking single-key input from a terminal.

    Use as a context manager: on POSIX the terminal is put into cbreak mode
    and restored on exit. When *stream* is not a terminal, :meth:`read_key`
    only waits out its timeout.
    """

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream if stream is not None else sys.stdin
        self._interactive = _is_tty(self._stream)
        self._saved_attrs = None

    def __enter__(self) -> KeyReader:
        if self._interactive and os.name != "nt":
            import termios
            import tty

            fd = self._stream.fileno()
            self._saved_attrs = termios.tcgetattr(fd)
            tty.setcbreak(fd)
        return self

    def __exit__(self, *exc: object) -> None:
        if self._saved_attrs is not None:
            import termios

            termios.tcsetattr(self._stream.fileno(), termios.TCSADRAIN, self._saved_attrs)
            self._saved_attrs = None

    def read_key(self, timeout: float) -> str | None:
        """Return one pressed key, or None when nothing arrives within *timeout* seconds."""
        if not self._interactive:
            time.sleep(timeout)
            return None
        if os.name == "nt":
            import msvcrt

            deadline = time.monotonic() + timeout
            while True:
                if msvcrt.kbhit():
                    return msvcrt.getwch()
                if time.monotonic() >= deadline:
                    return None
                time.sleep(0.02)

        import select

        ready, _, _ = select.select([self._stream], [], [], timeout)
        if not ready:
            return None
        return self._stream.read(1) or None
