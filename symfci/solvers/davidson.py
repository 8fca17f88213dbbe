from __future__ import annotations

from dataclasses import dataclass
import time
from typing import Any, Protocol
import warnings

import numpy as np

from symfci.config import get_config


class LinearOperator(Protocol):
    """Symmetric operator seen by :func:`davidson`."""

    size: int

    def diagonal(self) -> np.ndarray: ...

    def apply(self, x: np.ndarray) -> np.ndarray: ...


@dataclass
class DavidsonResult:
    """Result of a Davidson eigenvalue computation.

    Attributes
    ----------
    converged : bool
        Whether the residual norm dropped below the threshold.
    e : float
        Lowest eigenvalue of the operator.
    x : np.ndarray
        Normalised eigenvector, float64 array of length ``n``.
    niter : int
        Number of Davidson iterations performed.
    matvecs : int
        Number of operator applications.
    rnorm : float
        Final residual norm ``||A x - e x||``.
    stats : dict or None
        Profiling statistics (if ``profile=True``): ``hop_time_s``,
        ``orth_time_s``, ``subspace_time_s``.
    """

    converged: bool
    e: float
    x: np.ndarray
    niter: int
    matvecs: int
    rnorm: float
    stats: dict[str, float] | None = None


def _as_f64_vec(x: Any, *, n: int | None = None) -> np.ndarray:
    v = np.asarray(x, dtype=np.float64).ravel()
    if n is not None and int(v.size) != int(n):
        raise ValueError("vector has wrong size")
    return v


def _orthonormalize_one(v: np.ndarray, *, basis: np.ndarray | None, lindep: float) -> np.ndarray | None:
    if basis is not None and int(basis.shape[1]) > 0:
        # Twice is enough.
        v = v - basis @ (basis.T @ v)
        v = v - basis @ (basis.T @ v)
    nrm = float(np.linalg.norm(v))
    if nrm <= float(lindep):
        return None
    return v / nrm


def davidson(
    op: LinearOperator,
    x0: np.ndarray,
    *,
    tol: float | None = None,
    lindep: float = 1e-14,
    max_cycle: int | None = None,
    num_vec: int | None = None,
    num_vec_keep: int | None = None,
    precond_cutoff: float | None = None,
    log: Any = None,
    profile: bool = False,
) -> DavidsonResult:
    """Lowest eigenpair of a symmetric operator by matrix-free Davidson.

    Parameters
    ----------
    op : LinearOperator
        Provides ``size``, ``diagonal()`` and ``apply(x)``.
    x0 : np.ndarray
        Initial guess, length ``op.size``; need not be normalised.
    tol : float, optional
        Residual norm threshold. Defaults to
        ``davidson_rtol_base * sqrt(n)`` from :func:`symfci.config.get_config`.
    lindep : float, optional
        Linear-dependence threshold for basis orthonormalization.
    max_cycle : int, optional
        Maximum number of Davidson iterations.
    num_vec : int, optional
        Subspace dimension that triggers a restart.
    num_vec_keep : int, optional
        Number of lowest Ritz vectors kept at a restart.
    precond_cutoff : float, optional
        Floor for ``|diag - theta|`` in the diagonal preconditioner.
    log : symfci.log.Logger, optional
        Receives the per-iteration trace at debug level.
    profile : bool, optional
        Collect timings in ``DavidsonResult.stats``.

    Returns
    -------
    DavidsonResult
        A ``RuntimeWarning`` is emitted when ``max_cycle`` is exhausted
        before convergence; the last Ritz pair is returned.
    """

    cfg = get_config()
    n = int(op.size)
    if n <= 0:
        raise ValueError("operator has no rows")
    tol = float(cfg.davidson_rtol_base) * float(np.sqrt(n)) if tol is None else float(tol)
    max_cycle = int(cfg.davidson_max_cycle if max_cycle is None else max_cycle)
    num_vec = int(cfg.davidson_num_vec if num_vec is None else num_vec)
    num_vec_keep = int(cfg.davidson_num_vec_keep if num_vec_keep is None else num_vec_keep)
    cutoff = float(cfg.precond_cutoff if precond_cutoff is None else precond_cutoff)
    if max_cycle < 1:
        raise ValueError("max_cycle must be >= 1")
    if num_vec_keep < 1 or num_vec <= num_vec_keep:
        raise ValueError("need 1 <= num_vec_keep < num_vec")
    num_vec = min(num_vec, n)
    num_vec_keep = min(num_vec_keep, max(1, num_vec - 1))

    diag = _as_f64_vec(op.diagonal(), n=n)

    stats: dict[str, float] | None = {} if bool(profile) else None
    matvecs = 0
    hop_time_s = 0.0
    orth_time_s = 0.0
    t_total0 = time.perf_counter()

    def _apply(vec: np.ndarray) -> np.ndarray:
        nonlocal matvecs, hop_time_s
        t0 = time.perf_counter()
        out = _as_f64_vec(op.apply(np.ascontiguousarray(vec)), n=n)
        matvecs += 1
        hop_time_s += time.perf_counter() - t0
        return out

    def _orth(vec: np.ndarray, basis: np.ndarray | None) -> np.ndarray | None:
        nonlocal orth_time_s
        t0 = time.perf_counter()
        out = _orthonormalize_one(vec, basis=basis, lindep=lindep)
        orth_time_s += time.perf_counter() - t0
        return out

    # Basis matrices in column-major order so column views are contiguous.
    v = np.zeros((n, num_vec), dtype=np.float64, order="F")
    w = np.zeros((n, num_vec), dtype=np.float64, order="F")

    start = _orth(_as_f64_vec(x0, n=n), None)
    if start is None:
        raise ValueError("initial vector has zero norm")
    v[:, 0] = start
    w[:, 0] = _apply(start)
    m = 1

    e = 0.0
    x = start
    rnorm = np.inf
    conv = False
    niter = 0
    for _it in range(1, max_cycle + 1):
        niter += 1
        hsub = v[:, :m].T @ w[:, :m]
        hsub = 0.5 * (hsub + hsub.T)
        evals, u = np.linalg.eigh(hsub)
        e = float(evals[0])
        x = v[:, :m] @ u[:, 0]
        r = w[:, :m] @ u[:, 0] - e * x
        rnorm = float(np.linalg.norm(r))
        if log is not None:
            log.debug("davidson iter %d  dim %d  e = %.14g  |r| = %.3e", niter, m, e, rnorm)
        if rnorm <= tol:
            conv = True
            break

        if m >= num_vec:
            # Restart from the lowest Ritz vectors; their images follow without new matvecs.
            keep = min(num_vec_keep, m)
            v[:, :keep] = v[:, :m] @ u[:, :keep]
            w[:, :keep] = w[:, :m] @ u[:, :keep]
            m = keep

        denom = diag - e
        small = np.abs(denom) < cutoff
        denom[small] = cutoff
        t = _orth(r / denom, v[:, :m])
        if t is None:
            # Fall back to the raw residual direction.
            t = _orth(r, v[:, :m])
        if t is None:
            break
        v[:, m] = t
        w[:, m] = _apply(t)
        m += 1

    if not conv:
        warnings.warn(
            f"Davidson not converged after {niter} iterations (|r| = {rnorm:.3e}, tol = {tol:.3e})",
            RuntimeWarning,
            stacklevel=2,
        )

    if stats is not None:
        total_time_s = time.perf_counter() - t_total0
        stats.update(
            {
                "hop_time_s": float(hop_time_s),
                "orth_time_s": float(orth_time_s),
                "subspace_time_s": max(0.0, float(total_time_s) - float(hop_time_s) - float(orth_time_s)),
            }
        )
    return DavidsonResult(
        converged=bool(conv),
        e=float(e),
        x=np.ascontiguousarray(x / np.linalg.norm(x), dtype=np.float64),
        niter=int(niter),
        matvecs=int(matvecs),
        rnorm=float(rnorm),
        stats=stats,
    )
