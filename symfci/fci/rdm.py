"""Spin-summed reduced density matrices from chains of single excitations.

Conventions (``E_ij = sum_s a+_is a_js``)::

    rdm1[i,j]         = <E_ij>
    rdm2[i,j,k,l]     = <E_ik E_jl> - delta_jk <E_il>
    rdm3[i,j,k,l,m,n] = <E_il E_jm E_kn> - delta_kl <E_jm E_in> - delta_jl <E_im E_kn>
                        - delta_km <E_il E_jn> + delta_kl delta_im <E_jn>
                        + delta_jl delta_km <E_in>

Only the canonical entries whose last annihilator carries the smallest
index are evaluated; the rest follow from the permutation symmetry of the
tensors.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from symfci.fci import _kernels
from symfci.log import clock
from symfci.threads import thread_limit

if TYPE_CHECKING:  # pragma: no cover
    from symfci.fci.engine import FCI


def make_rdm1(fci: "FCI", vec: np.ndarray) -> np.ndarray:
    vec = fci.check_vector(vec)
    norb = fci.norb
    orbsym = fci.orbsym
    target = fci.target_irrep
    rdm1 = np.zeros((norb, norb), dtype=np.float64)
    for anni in range(norb):
        for crea in range(anni, norb):
            if orbsym[crea] != orbsym[anni]:
                continue
            val = float(fci.apply_excitation(vec, crea, anni, target) @ vec)
            rdm1[crea, anni] = val
            rdm1[anni, crea] = val
    return rdm1


def two_rdm_energy(fci: "FCI", rdm2: np.ndarray) -> float:
    """Energy of the state with 2-RDM ``rdm2``; the 1-RDM is its partial trace over (N-1)."""

    nelec = fci.nel_up + fci.nel_down
    eri = fci.eri
    rdm1 = np.einsum("ikjk->ij", rdm2) / (nelec - 1.0)
    heff = fci.gmat + 0.5 * np.einsum("ikkj->ij", eri)
    energy = fci.econst + float(np.sum(heff * rdm1))
    energy += 0.5 * float(np.einsum("ijkl,ikjl->", rdm2, eri))
    return energy


def fill_2rdm(fci: "FCI", vec: np.ndarray) -> tuple[np.ndarray, float]:
    """Spin-summed 2-RDM of ``vec`` and the energy it implies.

    Returns
    -------
    rdm2 : np.ndarray
        ``(norb,)*4`` array, see the module docstring for the convention.
    energy : float
        ``Econst + sum h_eff rdm1 + 1/2 sum rdm2 (ik|jl)``, which equals the
        Rayleigh quotient for a normalised ``vec``.
    """

    nelec = fci.nel_up + fci.nel_down
    if nelec < 2:
        raise ValueError("the 2-RDM needs at least two electrons")
    vec = fci.check_vector(vec)
    log = fci.log
    t0 = clock()

    norb = fci.norb
    orbsym = fci.orbsym
    target = fci.target_irrep
    rdm2 = np.zeros((norb, norb, norb, norb), dtype=np.float64)

    with thread_limit(fci.num_threads):
        for center1 in range(fci.nirrep):
            target1 = target ^ center1
            for a1 in range(norb):
                for c1 in range(a1, norb):
                    prod1 = int(orbsym[c1] ^ orbsym[a1])
                    if prod1 != center1:
                        continue
                    w1 = fci.apply_excitation(vec, c1, a1, target)
                    if prod1 == 0:
                        val = float(w1 @ vec)
                        for jk in range(a1, norb):
                            rdm2[c1, jk, jk, a1] -= val
                    for c2 in range(a1, norb):
                        for a2 in range(a1, norb):
                            if int(orbsym[c2] ^ orbsym[a2]) != prod1:
                                continue
                            w2 = fci.apply_excitation(w1, c2, a2, target1)
                            rdm2[c2, c1, a2, a1] += float(w2 @ vec)
        _kernels.symmetrize_2rdm(rdm2, fci.tables.orbsym)

    energy = two_rdm_energy(fci, rdm2)
    log.timer("fill_2rdm", *t0)
    log.info("fill_2rdm: energy (Ham * 2-RDM) = %.14g", energy)
    return rdm2, energy


def fill_3rdm(fci: "FCI", vec: np.ndarray) -> np.ndarray:
    """Spin-summed 3-RDM of ``vec`` as a ``(norb,)*6`` array."""

    nelec = fci.nel_up + fci.nel_down
    if nelec < 3:
        raise ValueError("the 3-RDM needs at least three electrons")
    vec = fci.check_vector(vec)
    log = fci.log
    t0 = clock()

    norb = fci.norb
    nirrep = fci.nirrep
    orbsym = fci.orbsym
    target = fci.target_irrep
    rdm3 = np.zeros((norb,) * 6, dtype=np.float64)

    with thread_limit(fci.num_threads):
        for center1 in range(nirrep):
            target1 = target ^ center1
            for a1 in range(norb):
                for c1 in range(a1, norb):
                    prod1 = int(orbsym[c1] ^ orbsym[a1])
                    if prod1 != center1:
                        continue
                    w1 = fci.apply_excitation(vec, c1, a1, target)

                    if prod1 == 0:
                        val = float(w1 @ vec)
                        for m in range(a1, norb):
                            for l in range(a1, norb):
                                rdm3[m, c1, l, l, m, a1] += val
                                rdm3[c1, l, m, l, m, a1] += val

                    for center2 in range(nirrep):
                        target2 = target1 ^ center2
                        center3 = center1 ^ center2
                        for c2 in range(a1, norb):
                            for a2 in range(a1, norb):
                                if int(orbsym[c2] ^ orbsym[a2]) != center2:
                                    continue
                                w2 = fci.apply_excitation(w1, c2, a2, target1)

                                if prod1 == center2:
                                    val = float(w2 @ vec)
                                    for orb in range(a1, norb):
                                        rdm3[c1, c2, orb, orb, a2, a1] -= val
                                        rdm3[c2, orb, c1, orb, a2, a1] -= val
                                        rdm3[c2, c1, orb, a2, orb, a1] -= val

                                for c3 in range(c2, norb):
                                    for a3 in range(a1, norb):
                                        if int(orbsym[c3] ^ orbsym[a3]) != center3:
                                            continue
                                        w3 = fci.apply_excitation(w2, c3, a3, target2)
                                        rdm3[c3, c2, c1, a3, a2, a1] += float(w3 @ vec)
        _kernels.symmetrize_3rdm(rdm3, fci.tables.orbsym)

    log.timer("fill_3rdm", *t0)
    return rdm3
