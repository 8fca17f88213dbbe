from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable
import warnings

import numpy as np


@dataclass
class CGResult:
    """Result of a conjugate-gradient solve.

    Attributes
    ----------
    x : np.ndarray
        Last iterate.
    converged : bool
        Whether ``||b - A x|| < tol`` was reached.
    niter : int
        Iterations performed (one matvec each).
    rnorm : float
        Final recursive residual norm.
    """

    x: np.ndarray
    converged: bool
    niter: int
    rnorm: float


def cg(
    matvec: Callable[[np.ndarray], np.ndarray],
    b: np.ndarray,
    x0: np.ndarray | None = None,
    *,
    tol: float,
    max_iter: int,
    log: Any = None,
) -> CGResult:
    """Solve ``A x = b`` for symmetric positive-definite ``A`` given as ``matvec``.

    ``tol`` is an absolute bound on the residual 2-norm. A ``RuntimeWarning``
    is emitted when ``max_iter`` is reached first.
    """

    b = np.asarray(b, dtype=np.float64).ravel()
    n = int(b.size)
    max_iter = int(max_iter)
    tol = float(tol)
    if max_iter < 1:
        raise ValueError("max_iter must be >= 1")

    if x0 is None:
        x = np.zeros((n,), dtype=np.float64)
        r = b.copy()
    else:
        x = np.array(x0, dtype=np.float64).ravel()
        if int(x.size) != n:
            raise ValueError("x0 has wrong size")
        r = b - np.asarray(matvec(x), dtype=np.float64)
    p = r.copy()
    rr = float(r @ r)
    rnorm = float(np.sqrt(rr))

    niter = 0
    while rnorm >= tol and rr > 0.0 and niter < max_iter:
        ap = np.asarray(matvec(p), dtype=np.float64)
        pap = float(p @ ap)
        if pap == 0.0:
            break
        alpha = rr / pap
        x += alpha * p
        r -= alpha * ap
        rr_new = float(r @ r)
        p *= rr_new / rr
        p += r
        rr = rr_new
        rnorm = float(np.sqrt(rr))
        niter += 1
        if log is not None:
            log.debug("cg iter %d  |r| = %.3e", niter, rnorm)

    converged = rnorm < tol or rr == 0.0
    if not converged:
        warnings.warn(
            f"CG not converged after {niter} iterations (|r| = {rnorm:.3e}, tol = {tol:.3e})",
            RuntimeWarning,
            stacklevel=2,
        )
    return CGResult(x=x, converged=bool(converged), niter=int(niter), rnorm=float(rnorm))
