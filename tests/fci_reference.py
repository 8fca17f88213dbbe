"""Brute-force Fock-space reference for the FCI tests.

Spin-orbital modes are ``p`` (up) and ``norb + p`` (down); a Fock state is an
int with one bit per mode, and ``a+_k`` carries the sign of the occupied modes
below ``k``. This is the ordering the determinant CI vectors use.
"""

from __future__ import annotations

import numpy as np

from symfci import FCI, Hamiltonian
from symfci.fci.bits import bits2str


def random_hamiltonian(
    norb: int,
    orbsym,
    *,
    seed: int,
    group: str = "c2v",
    econst: float = 0.7,
    scale: float = 0.3,
) -> Hamiltonian:
    rng = np.random.default_rng(seed)
    orbsym = np.asarray(orbsym, dtype=np.int64)
    h1e = rng.normal(size=(norb, norb))
    h1e = 0.5 * (h1e + h1e.T)
    h1e[orbsym[:, None] != orbsym[None, :]] = 0.0
    eri = rng.normal(size=(norb,) * 4) * scale
    eri = eri + eri.transpose(1, 0, 2, 3)
    eri = eri + eri.transpose(0, 1, 3, 2)
    eri = eri + eri.transpose(2, 3, 0, 1)
    sym = (
        orbsym[:, None, None, None]
        ^ orbsym[None, :, None, None]
        ^ orbsym[None, None, :, None]
        ^ orbsym[None, None, None, :]
    )
    eri[sym != 0] = 0.0
    return Hamiltonian.from_chemist(h1e, eri, orbsym=orbsym, econst=econst, group=group)


def _act(kind: str, mode: int, fock: int) -> tuple[int, int]:
    occupied = (fock >> mode) & 1
    if (kind == "C" and occupied) or (kind == "A" and not occupied):
        return 0, fock
    sign = -1 if bin(fock & ((1 << mode) - 1)).count("1") % 2 else 1
    return sign, fock ^ (1 << mode)


def apply_string(ops, fock: int) -> tuple[int, int]:
    """Apply ``ops`` (a list of (kind, mode), leftmost acts last) to a Fock state."""

    sign = 1
    for kind, mode in reversed(ops):
        s, fock = _act(kind, mode, fock)
        if s == 0:
            return 0, fock
        sign *= s
    return sign, fock


def apply_terms(terms, state: dict[int, float]) -> dict[int, float]:
    out: dict[int, float] = {}
    for fock, amp in state.items():
        for coeff, ops in terms:
            sign, new = apply_string(ops, fock)
            if sign:
                out[new] = out.get(new, 0.0) + sign * coeff * amp
    return out


def hamiltonian_terms(ham: Hamiltonian, *, tol: float = 0.0):
    """H - Econst as (coefficient, operator string) pairs."""

    norb = ham.norb
    terms = []
    for s in (0, norb):
        for p in range(norb):
            for q in range(norb):
                if abs(ham.tmat[p, q]) > tol:
                    terms.append((float(ham.tmat[p, q]), [("C", p + s), ("A", q + s)]))
    for s in (0, norb):
        for t in (0, norb):
            for p in range(norb):
                for q in range(norb):
                    for r in range(norb):
                        for u in range(norb):
                            v = ham.vmat[p, q, r, u]
                            if abs(v) > tol:
                                ops = [("C", p + s), ("C", q + t), ("A", u + t), ("A", r + s)]
                                terms.append((0.5 * float(v), ops))
    return terms


def spin_minus_plus_terms(norb: int):
    """S- S+ as operator strings."""

    terms = []
    for p in range(norb):
        for q in range(norb):
            terms.append((1.0, [("C", norb + p), ("A", p), ("C", q), ("A", norb + q)]))
    return terms


def fci_basis(fci: FCI, irrep_center: int = 0) -> list[int]:
    out = []
    for counter in range(fci.get_vec_length(irrep_center)):
        bits_up, bits_down = fci.get_bits_of_counter(irrep_center, counter)
        out.append(bits2str(bits_up) | (bits2str(bits_down) << fci.norb))
    return out


def sector_basis(norb: int, nel_up: int, nel_down: int) -> list[int]:
    out = []
    for su in range(1 << norb):
        if bin(su).count("1") != nel_up:
            continue
        for sd in range(1 << norb):
            if bin(sd).count("1") == nel_down:
                out.append(su | (sd << norb))
    return out


def dense_matrix(terms, basis: list[int]) -> np.ndarray:
    index = {fock: i for i, fock in enumerate(basis)}
    mat = np.zeros((len(basis), len(basis)))
    for col, fock in enumerate(basis):
        for new, amp in apply_terms(terms, {fock: 1.0}).items():
            row = index.get(new)
            if row is None:
                assert abs(amp) < 1e-12
                continue
            mat[row, col] += amp
    return mat


def to_fock(basis: list[int], vec: np.ndarray) -> dict[int, float]:
    return {fock: float(v) for fock, v in zip(basis, vec) if v != 0.0}


def from_fock(basis: list[int], state: dict[int, float]) -> np.ndarray:
    return np.asarray([state.get(fock, 0.0) for fock in basis], dtype=np.float64)


def dense_from_matvec(fci: FCI) -> np.ndarray:
    n = fci.get_vec_length(0)
    mat = np.zeros((n, n))
    for col in range(n):
        unit = np.zeros(n)
        unit[col] = 1.0
        mat[:, col] = fci.ham_times_vec(unit)
    return mat
