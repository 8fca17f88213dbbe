from __future__ import annotations

from typing import Any

import numpy as np


def _npair(norb: int) -> int:
    norb = int(norb)
    return norb * (norb + 1) // 2


def _pair_id_map(norb: int) -> np.ndarray:
    """Return pair_id[p,q] = packed lower-triangle index of the unordered pair (p,q)."""

    norb = int(norb)
    p = np.arange(norb, dtype=np.intp)
    hi = np.maximum(p[:, None], p[None, :])
    lo = np.minimum(p[:, None], p[None, :])
    return hi * (hi + 1) // 2 + lo


def _unpack_tril(x: np.ndarray, n: int) -> np.ndarray:
    n = int(n)
    x = np.asarray(x, dtype=np.float64).ravel()
    if int(x.size) != n * (n + 1) // 2:
        raise ValueError("packed tril has wrong length")
    out = np.zeros((n, n), dtype=np.float64)
    out[np.tril_indices(n)] = x
    return out + np.tril(out, -1).T


def restore_eri1(eri: Any, norb: int) -> np.ndarray:
    """Return chemist-notation ERIs (pq|rs) as a full ``(norb,)*4`` tensor.

    Parameters
    ----------
    eri : array_like
        One of

        - ``(norb, norb, norb, norb)`` full tensor;
        - ``(npair, npair)`` pair matrix over ``p >= q`` pairs, with
          ``npair = norb*(norb+1)//2`` (4-fold symmetry);
        - ``(npair*(npair+1)//2,)`` packed lower triangle of that pair
          matrix (8-fold symmetry);
        - a flat array of length ``norb**4``.
    norb : int
        Number of spatial orbitals.

    Returns
    -------
    np.ndarray
        C-contiguous float64 array of shape ``(norb, norb, norb, norb)``.
    """

    norb = int(norb)
    if norb < 0:
        raise ValueError("norb must be >= 0")

    arr = np.asarray(eri, dtype=np.float64)
    if arr.ndim == 4:
        if arr.shape != (norb, norb, norb, norb):
            raise ValueError("eri has wrong shape")
        return np.array(arr, dtype=np.float64, order="C")
    if norb == 0:
        return np.zeros((0, 0, 0, 0), dtype=np.float64)

    npair = _npair(norb)
    if arr.ndim == 2:
        if arr.shape != (npair, npair):
            raise ValueError("eri pair-matrix has wrong shape")
        eri2 = arr
    elif arr.ndim == 1:
        size = int(arr.size)
        if size == norb**4:
            return np.array(arr.reshape(norb, norb, norb, norb), dtype=np.float64, order="C")
        if size == npair * (npair + 1) // 2:
            eri2 = _unpack_tril(arr, npair)
        elif size == npair * npair:
            eri2 = arr.reshape(npair, npair)
        else:
            raise ValueError("unsupported eri packed format")
    else:
        raise ValueError("unsupported eri rank")

    pair_id = _pair_id_map(norb)
    eri4 = eri2[pair_id[:, :, None, None], pair_id[None, None, :, :]]
    return np.ascontiguousarray(eri4, dtype=np.float64)


def physicist_to_chemist(vmat: np.ndarray) -> np.ndarray:
    """<ij|kl> -> (ik|jl), i.e. ``eri[i,j,k,l] = vmat[i,k,j,l]``."""

    vmat = np.asarray(vmat, dtype=np.float64)
    if vmat.ndim != 4:
        raise ValueError("vmat must be a 4-index tensor")
    return np.ascontiguousarray(vmat.transpose(0, 2, 1, 3))


def chemist_to_physicist(eri: np.ndarray) -> np.ndarray:
    """(ij|kl) -> <ik|jl>; the index swap is its own inverse."""

    return physicist_to_chemist(eri)
