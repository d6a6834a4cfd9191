"""Capability bundles that can be merged into an evaluation context.

Two bundles exist: the native one (timers, a module loader, process handles)
and the built-in library one (every public stdlib module, pre-imported).
Neither is ambient; build_context() only merges what the config asks for.
"""
from __future__ import annotations

import asyncio
import importlib
import io
import logging
import os
import sys
import warnings
from pathlib import Path

logger = logging.getLogger(__name__)

# GUI toolkits, demos, and modules that do something visible when imported.
_SKIPPED_LIBS = frozenset({
    "antigravity", "this",
    "idlelib", "tkinter", "turtle", "turtledemo",
})


class Timer:
    """Handle returned by set_timeout(), set_interval() and set_immediate()."""

    def __init__(self, loop: asyncio.AbstractEventLoop, delay, callback, args, repeat: bool = False):
        self._loop = loop
        self._delay = delay
        self._callback = callback
        self._args = args
        self._repeat = repeat
        self._cancelled = False
        self._fired = False
        self._handle = self._schedule()

    def _schedule(self):
        if self._delay is None:
            return self._loop.call_soon(self._fire)
        return self._loop.call_later(self._delay, self._fire)

    def _fire(self):
        if self._cancelled:
            return
        if self._repeat:
            self._handle = self._schedule()
        else:
            self._fired = True
        self._callback(*self._args)

    def cancel(self):
        self._cancelled = True
        self._handle.cancel()

    def cancelled(self) -> bool:
        return self._cancelled

    def active(self) -> bool:
        return not (self._cancelled or self._fired)


class Timers:
    """Timer primitives bound to whichever asyncio loop is running the fragment.

    Delays are in seconds. Every timer is remembered so a context reset can
    cancel what the discarded context left scheduled.
    """

    def __init__(self):
        self._timers: list[Timer] = []

    def _start(self, delay, callback, args, repeat=False) -> Timer:
        timer = Timer(asyncio.get_running_loop(), delay, callback, args, repeat=repeat)
        self._timers = [t for t in self._timers if t.active()]
        self._timers.append(timer)
        return timer

    def set_timeout(self, callback, delay: float = 0, *args) -> Timer:
        return self._start(delay, callback, args)

    def set_interval(self, callback, delay: float, *args) -> Timer:
        if delay <= 0:
            raise ValueError("set_interval() needs a positive delay")
        return self._start(delay, callback, args, repeat=True)

    def set_immediate(self, callback, *args) -> Timer:
        return self._start(None, callback, args)

    @staticmethod
    def clear(timer) -> None:
        if timer is not None:
            timer.cancel()

    def cancel_all(self) -> int:
        active = [t for t in self._timers if t.active()]
        for timer in active:
            timer.cancel()
        self._timers = []
        return len(active)

    @property
    def pending(self) -> int:
        return sum(1 for t in self._timers if t.active())


def _main_dirname() -> Path:
    main = sys.modules.get("__main__")
    filename = getattr(main, "__file__", None)
    if filename:
        return Path(filename).resolve().parent
    return Path.cwd()


def native_bindings(timers: Timers) -> dict:
    return {
        "import_module": importlib.import_module,
        "BytesIO": io.BytesIO,
        "__dirname__": _main_dirname(),
        "set_timeout": timers.set_timeout,
        "set_interval": timers.set_interval,
        "set_immediate": timers.set_immediate,
        "clear_timeout": timers.clear,
        "clear_interval": timers.clear,
        "clear_immediate": timers.clear,
        "sys": sys,
        "os": os,
    }


def builtin_lib_names() -> list[str]:
    return sorted(
        name for name in sys.stdlib_module_names
        if not name.startswith("_") and name not in _SKIPPED_LIBS
    )


def builtin_lib_bindings() -> dict:
    """Import every public stdlib module available on this platform."""
    libs = {}
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        for name in builtin_lib_names():
            try:
                libs[name] = importlib.import_module(name)
            except ImportError:
                # platform-specific (winreg, msvcrt, ...) or removed in this version
                logger.debug("skipping unavailable stdlib module %s", name)
    return libs
