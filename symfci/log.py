from __future__ import annotations

import time
from typing import Any


class Logger:
    """Verbosity-levelled print logger.

    Attributes
    ----------
    verbose : int
        Verbosity level. Messages are printed when ``verbose`` is at least the
        level of the method used to emit them.
    """

    QUIET = 0
    WARN = 2
    NOTE = 3
    INFO = 4
    DEBUG = 5
    DEBUG1 = 6

    def __init__(self, verbose: int = QUIET):
        self.verbose = int(verbose)

    @staticmethod
    def _fmt(msg: str, args: tuple[Any, ...]) -> str:
        if not args:
            return str(msg)
        try:
            return str(msg) % args
        except (TypeError, ValueError):
            return f"{msg} {' '.join(str(x) for x in args)}"

    def debug1(self, msg: str, *args: Any) -> None:
        if self.verbose >= self.DEBUG1:
            print(self._fmt(msg, args))

    def debug(self, msg: str, *args: Any) -> None:
        if self.verbose >= self.DEBUG:
            print(self._fmt(msg, args))

    def info(self, msg: str, *args: Any) -> None:
        if self.verbose >= self.INFO:
            print(self._fmt(msg, args))

    def note(self, msg: str, *args: Any) -> None:
        if self.verbose >= self.NOTE:
            print(self._fmt(msg, args))

    def warn(self, msg: str, *args: Any) -> None:
        if self.verbose >= self.WARN:
            print(self._fmt(msg, args))

    def timer(self, label: str, t0_cpu: float, t0_wall: float) -> tuple[float, float]:
        t1 = (time.process_time(), time.perf_counter())
        self.debug("%s: CPU %.2f sec, wall %.2f sec", label, t1[0] - t0_cpu, t1[1] - t0_wall)
        return t1


def new_logger(obj: Any | None = None, verbose: Any | None = None) -> Logger:
    """Return a :class:`Logger` for ``verbose`` (or ``obj.verbose`` when omitted)."""

    if isinstance(verbose, Logger):
        return verbose
    if verbose is None:
        if obj is not None:
            verbose = getattr(obj, "verbose", Logger.QUIET)
        else:
            verbose = Logger.QUIET
    return Logger(int(verbose))


def clock() -> tuple[float, float]:
    return (time.process_time(), time.perf_counter())
