from __future__ import annotations

import contextlib
from dataclasses import dataclass, replace
import os
from typing import Any, Iterator


@dataclass(frozen=True)
class FCIConfig:
    """Global numerical defaults for symfci."""

    # Davidson residual threshold is davidson_rtol_base * sqrt(vector length).
    davidson_rtol_base: float = 1e-10
    # Floor for |diag - theta| and for the CG preconditioner entries.
    precond_cutoff: float = 1e-12
    davidson_num_vec: int = 32
    davidson_num_vec_keep: int = 3
    davidson_max_cycle: int = 1000

    # CG residual threshold is cg_rtol_factor * davidson_rtol_base * sqrt(vector length).
    cg_rtol_factor: float = 100.0
    cg_max_iter: int = 10000

    # Seed for random Davidson start vectors.
    random_seed: int | None = 0

    # None means "leave numba/BLAS thread pools alone".
    num_threads: int | None = None

    def __post_init__(self) -> None:
        if float(self.davidson_rtol_base) <= 0.0:
            raise ValueError("davidson_rtol_base must be > 0")
        if float(self.precond_cutoff) <= 0.0:
            raise ValueError("precond_cutoff must be > 0")
        if int(self.davidson_num_vec_keep) < 1:
            raise ValueError("davidson_num_vec_keep must be >= 1")
        if int(self.davidson_num_vec) <= int(self.davidson_num_vec_keep):
            raise ValueError("davidson_num_vec must be > davidson_num_vec_keep")
        if int(self.davidson_max_cycle) < 1:
            raise ValueError("davidson_max_cycle must be >= 1")
        if float(self.cg_rtol_factor) <= 0.0:
            raise ValueError("cg_rtol_factor must be > 0")
        if int(self.cg_max_iter) < 1:
            raise ValueError("cg_max_iter must be >= 1")
        if self.num_threads is not None and int(self.num_threads) < 1:
            raise ValueError("num_threads must be >= 1 or None")


_CONFIG = FCIConfig(num_threads=None)


def get_config() -> FCIConfig:
    return _CONFIG


def set_config(**kwargs: Any) -> FCIConfig:
    """Update the global config."""

    global _CONFIG
    _CONFIG = replace(_CONFIG, **kwargs)
    return _CONFIG


@contextlib.contextmanager
def fci_config(**kwargs: Any) -> Iterator[FCIConfig]:
    """Temporarily override the global config."""

    global _CONFIG
    prev = _CONFIG
    _CONFIG = replace(_CONFIG, **kwargs)
    try:
        yield _CONFIG
    finally:
        _CONFIG = prev


def resolve_num_threads(num_threads: int | None = None) -> int | None:
    """Explicit argument, then the global config, then ``SYMFCI_NUM_THREADS``."""

    if num_threads is not None:
        n = int(num_threads)
        if n < 1:
            raise ValueError("num_threads must be >= 1")
        return n
    if _CONFIG.num_threads is not None:
        return int(_CONFIG.num_threads)
    raw = os.environ.get("SYMFCI_NUM_THREADS", "").strip()
    if raw == "":
        return None
    try:
        n = int(raw)
    except ValueError as e:
        raise ValueError(f"SYMFCI_NUM_THREADS must be an integer, got: {raw!r}") from e
    return n if n > 0 else None
