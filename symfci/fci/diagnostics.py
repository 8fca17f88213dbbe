"""Closed-form checks of the Hamiltonian action.

The diagonal of H and of H^2 feed the Davidson and CG preconditioners;
:func:`get_matrix_element` is an independent Slater-Condon evaluation used to
cross-validate :meth:`symfci.fci.FCI.ham_times_vec`. None of these include the
constant energy.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import numpy as np

from symfci.fci import _kernels
from symfci.fci.bits import bits2str, phase_between

if TYPE_CHECKING:  # pragma: no cover
    from symfci.fci.engine import FCI


def diag_ham(fci: "FCI") -> np.ndarray:
    """<D|H|D> for every determinant of the CI vector, O(L^2) each."""

    t = fci.tables
    eri = fci.eri
    norb = fci.norb
    p = np.arange(norb)
    eri_coul = np.ascontiguousarray(eri[p[:, None], p[:, None], p[None, :], p[None, :]])
    eri_exch = np.ascontiguousarray(eri[p[:, None], p[None, :], p[None, :], p[:, None]])
    return _kernels.diag_ham(
        t.vec_length(0),
        t.jumps[0],
        t.up.num,
        t.up.cnt2str,
        t.down.cnt2str,
        t.target_irrep,
        fci.gmat,
        eri_coul,
        eri_exch,
    )


def diag_ham_squared(fci: "FCI") -> np.ndarray:
    """<D|H^2|D> for every determinant, from the Wick decomposition of H^2."""

    t = fci.tables
    return _kernels.diag_ham_squared(
        t.vec_length(0),
        t.jumps[0],
        t.up.num,
        t.up.cnt2str,
        t.down.cnt2str,
        t.target_irrep,
        t.orbsym,
        t.irrep_orbs,
        t.irrep_norb,
        fci.gmat,
        fci.eri,
    )


def lowest_energy_determinant(fci: "FCI") -> int:
    """Vector index of the determinant with the lowest diagonal energy."""

    diag = fci.diag_ham()
    if int(diag.size) == 0:
        raise ValueError("the CI space is empty")
    return int(np.argmin(diag))


def _occupations(norb: int, bits: Any) -> np.ndarray:
    if isinstance(bits, (int, np.integer)):
        s = int(bits)
        return np.asarray([(s >> k) & 1 for k in range(norb)], dtype=np.int64)
    arr = np.asarray(bits, dtype=np.int64).ravel()
    if int(arr.size) != int(norb):
        raise ValueError("occupation array must have length norb")
    bits2str(arr)  # validates 0/1 entries
    return arr


def _differences(bra: np.ndarray, ket: np.ndarray) -> tuple[list[int], list[int]]:
    """(created, annihilated) orbitals taking ``ket`` to ``bra``, increasing order."""

    diff = np.flatnonzero(bra != ket)
    crea = [int(o) for o in diff if ket[o] == 0]
    anni = [int(o) for o in diff if ket[o] == 1]
    return crea, anni


def get_matrix_element(
    fci: "FCI",
    bra_up: Any,
    bra_down: Any,
    ket_up: Any,
    ket_down: Any,
) -> float:
    """Slater-Condon <bra|H|ket> without the constant energy.

    Determinants are given as occupation arrays of length ``norb`` or as
    bitstrings. Pairs differing in more than two spin-orbitals, or with
    different electron counts per spin, give 0.
    """

    norb = fci.norb
    g = fci.gmat
    eri = fci.eri
    bu = _occupations(norb, bra_up)
    bd = _occupations(norb, bra_down)
    ku = _occupations(norb, ket_up)
    kd = _occupations(norb, ket_down)

    crea_up, anni_up = _differences(bu, ku)
    crea_dn, anni_dn = _differences(bd, kd)
    if len(crea_up) != len(anni_up) or len(crea_dn) != len(anni_dn):
        return 0.0
    nexc_up = len(anni_up)
    nexc_dn = len(anni_dn)
    if nexc_up + nexc_dn > 2:
        return 0.0

    ket_up_str = bits2str(ku)
    ket_dn_str = bits2str(kd)

    if nexc_up == 0 and nexc_dn == 0:
        n = ku + kd
        coul = np.einsum("ppqq->pq", eri)
        exch = np.einsum("pqqp->pq", eri)
        same = np.outer(ku, ku) + np.outer(kd, kd)
        result = float(n @ np.diag(g))
        result += 0.5 * float(n @ coul @ n)
        result += 0.5 * float(np.sum((n[:, None] - same) * exch))
        return result

    if nexc_up + nexc_dn == 1:
        if nexc_up == 1:
            j, l = crea_up[0], anni_up[0]
            same, phase = ku, phase_between(ket_up_str, j, l)
        else:
            j, l = crea_dn[0], anni_dn[0]
            same, phase = kd, phase_between(ket_dn_str, j, l)
        result = float(g[j, l])
        result += float(np.sum(eri[j, :, :, l].diagonal() * (0.5 - same)))
        result += float(np.sum(np.einsum("oo->o", eri[:, :, j, l]) * (ku + kd)))
        return phase * result

    if nexc_up == 2 or nexc_dn == 2:
        if nexc_up == 2:
            (i, j), (k, l) = crea_up, anni_up
            phase = phase_between(ket_up_str, k, l) * phase_between(bits2str(bu), i, j)
        else:
            (i, j), (k, l) = crea_dn, anni_dn
            phase = phase_between(ket_dn_str, k, l) * phase_between(bits2str(bd), i, j)
        return phase * float(eri[i, k, j, l] - eri[i, l, j, k])

    i, k = crea_up[0], anni_up[0]
    j, l = crea_dn[0], anni_dn[0]
    phase = phase_between(ket_up_str, i, k) * phase_between(ket_dn_str, j, l)
    return phase * float(eri[i, k, j, l])
