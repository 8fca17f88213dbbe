from __future__ import annotations

import contextlib
from typing import Iterator

import numba
from threadpoolctl import threadpool_info, threadpool_limits


def numba_max_threads() -> int:
    """Size of the numba thread pool fixed at import (``NUMBA_NUM_THREADS``)."""

    return int(numba.config.NUMBA_NUM_THREADS)


@contextlib.contextmanager
def blas_thread_limit(n: int) -> Iterator[None]:
    """Temporarily limit BLAS threads for this process.

    Only BLAS-style threadpools are restricted, so OpenMP runtimes loaded by
    other libraries keep their settings.
    """

    n = int(n)
    if n < 1:
        raise ValueError("BLAS thread limit must be >= 1")
    with threadpool_limits(limits=n, user_api="blas"):
        yield


@contextlib.contextmanager
def numba_thread_limit(n: int) -> Iterator[None]:
    """Temporarily limit the threads used by the parallel numba kernels.

    Requests above the pool size are clamped to ``NUMBA_NUM_THREADS``.
    """

    n = int(n)
    if n < 1:
        raise ValueError("numba thread limit must be >= 1")
    n = min(n, numba_max_threads())
    prev = int(numba.get_num_threads())
    if n == prev:
        yield
        return
    numba.set_num_threads(n)
    try:
        yield
    finally:
        numba.set_num_threads(prev)


@contextlib.contextmanager
def thread_limit(n: int | None, *, blas: bool = True) -> Iterator[None]:
    """Uniform thread limiter for the FCI kernels (numba pool + BLAS).

    Parameters
    ----------
    n:
        Target maximum thread count (>=1). ``None`` leaves both pools untouched.
    blas:
        Also limit BLAS threadpools used by the dense pair-space products.
    """

    if n is None:
        yield
        return
    n = int(n)
    if n < 1:
        raise ValueError("thread_limit requires n >= 1")
    blas_cm = blas_thread_limit(n) if bool(blas) else contextlib.nullcontext()
    with numba_thread_limit(n), blas_cm:
        yield


def thread_info() -> dict[str, int]:
    """Current thread counts of the numba pool and every loaded BLAS library."""

    out: dict[str, int] = {"numba": int(numba.get_num_threads())}
    for entry in threadpool_info():
        if entry.get("user_api") != "blas":
            continue
        key = f"blas:{entry.get('internal_api', 'unknown')}:{entry.get('filepath', '')}"
        out[key] = int(entry.get("num_threads", 0))
    return out
