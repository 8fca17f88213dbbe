from __future__ import annotations

from typing import Any, Sequence

import numpy as np

from symfci.eri import chemist_to_physicist, physicist_to_chemist, restore_eri1
from symfci.irreps import Irreps


def _readonly(a: np.ndarray) -> np.ndarray:
    a = np.array(a, copy=True)
    a.setflags(write=False)
    return a


class Hamiltonian:
    """Second-quantized electronic Hamiltonian over ``norb`` spatial orbitals.

    H = Econst + sum_{ij,s} T_ij a+_is a_js
        + 1/2 sum_{ijkl,st} <ij|kl> a+_is a+_jt a_lt a_ks

    Parameters
    ----------
    norb : int
        Number of spatial orbitals.
    orbsym : sequence of int
        Irrep of every orbital, in the XOR-product convention of
        :class:`symfci.irreps.Irreps`.
    econst : float
        Constant (core/nuclear repulsion) energy.
    tmat : array_like
        One-body integrals, shape ``(norb, norb)``.
    vmat : array_like
        Two-body integrals in physicist notation ``<ij|kl>``, shape
        ``(norb,)*4``.
    group : str or Irreps, optional
        Abelian point group.

    Notes
    -----
    All arrays are copied once and stored read-only, so several
    :class:`symfci.fci.FCI` instances can share one Hamiltonian.
    """

    def __init__(
        self,
        norb: int,
        orbsym: Sequence[int] | np.ndarray | None,
        econst: float,
        tmat: Any,
        vmat: Any,
        *,
        group: str | Irreps = "c1",
    ):
        norb = int(norb)
        if norb < 1:
            raise ValueError("norb must be >= 1")
        irreps = group if isinstance(group, Irreps) else Irreps(str(group))

        if orbsym is None:
            orbsym_arr = np.zeros((norb,), dtype=np.int64)
        else:
            orbsym_arr = np.asarray(orbsym, dtype=np.int64).ravel()
        if int(orbsym_arr.size) != norb:
            raise ValueError("orbsym must have length norb")
        for irrep in orbsym_arr:
            irreps.check(int(irrep))

        tmat = np.asarray(tmat, dtype=np.float64)
        if tmat.shape != (norb, norb):
            raise ValueError("tmat must have shape (norb, norb)")
        vmat = np.asarray(vmat, dtype=np.float64)
        if vmat.shape != (norb, norb, norb, norb):
            raise ValueError("vmat must have shape (norb, norb, norb, norb)")

        self.norb = norb
        self.irreps = irreps
        self.orbsym = _readonly(orbsym_arr)
        self.econst = float(econst)
        self.tmat = _readonly(tmat)
        self.vmat = _readonly(vmat)

    @classmethod
    def from_chemist(
        cls,
        h1e: Any,
        eri: Any,
        *,
        orbsym: Sequence[int] | np.ndarray | None = None,
        econst: float = 0.0,
        group: str | Irreps = "c1",
    ) -> "Hamiltonian":
        """Build from one-body integrals and chemist-notation ERIs ``(ij|kl)``.

        ``eri`` may be any format accepted by :func:`symfci.eri.restore_eri1`.
        """

        h1e = np.asarray(h1e, dtype=np.float64)
        if h1e.ndim != 2 or h1e.shape[0] != h1e.shape[1]:
            raise ValueError("h1e must be a square matrix")
        norb = int(h1e.shape[0])
        eri4 = restore_eri1(eri, norb)
        return cls(norb, orbsym, econst, h1e, chemist_to_physicist(eri4), group=group)

    @property
    def nirrep(self) -> int:
        return int(self.irreps.nirrep)

    def eri(self) -> np.ndarray:
        """Chemist-notation two-body tensor ``(ij|kl)``."""

        return physicist_to_chemist(self.vmat)

    def gmat(self) -> np.ndarray:
        """G_ij = T_ij - 1/2 sum_k <ik|kj>, the one-body part of H = G E + 1/2 (ij|kl) E_ij E_kl."""

        return np.asarray(self.tmat - 0.5 * np.einsum("ikkj->ij", self.vmat), dtype=np.float64)

    def symmetry_violation(self) -> float:
        """Largest integral that couples orbitals of incompatible irreps."""

        sym = np.asarray(self.orbsym)
        t_bad = (sym[:, None] ^ sym[None, :]) != 0
        v_bad = (sym[:, None, None, None] ^ sym[None, :, None, None] ^ sym[None, None, :, None] ^ sym[None, None, None, :]) != 0
        worst = 0.0
        if bool(np.any(t_bad)):
            worst = max(worst, float(np.max(np.abs(self.tmat[t_bad]))))
        if bool(np.any(v_bad)):
            worst = max(worst, float(np.max(np.abs(self.vmat[v_bad]))))
        return worst
