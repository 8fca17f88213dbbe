"""Occupation bitstrings: bit ``i`` set means spatial orbital ``i`` is occupied."""

from __future__ import annotations

from typing import Sequence

import numpy as np

# Strings are held in int64; bit 63 is the sign bit.
MAX_NORB = 62


def str2bits(norb: int, bitstring: int) -> np.ndarray:
    """Occupation numbers (0/1) of ``bitstring`` as an int8 array of length ``norb``."""

    norb = int(norb)
    s = int(bitstring)
    return np.asarray([(s >> k) & 1 for k in range(norb)], dtype=np.int8)


def bits2str(bits: Sequence[int] | np.ndarray) -> int:
    out = 0
    for k, b in enumerate(np.asarray(bits).ravel()):
        if int(b) not in (0, 1):
            raise ValueError("occupation numbers must be 0 or 1")
        if int(b):
            out |= 1 << k
    return int(out)


def popcount(bitstring: int) -> int:
    return int(bin(int(bitstring)).count("1"))


def popcount_array(strings: np.ndarray, norb: int) -> np.ndarray:
    """Vectorised popcount of the lowest ``norb`` bits."""

    strings = np.asarray(strings, dtype=np.int64)
    out = np.zeros(strings.shape, dtype=np.int64)
    for k in range(int(norb)):
        out += (strings >> k) & 1
    return out


def phase_between(bitstring: int, i: int, j: int) -> int:
    """(-1) ** (number of occupied orbitals strictly between ``i`` and ``j``)."""

    lo, hi = sorted((int(i), int(j)))
    if hi - lo < 2:
        return 1
    mask = ((1 << hi) - 1) & ~((1 << (lo + 1)) - 1)
    return -1 if popcount(int(bitstring) & mask) % 2 else 1


def excitation(bitstring: int, crea: int, anni: int) -> tuple[int, int]:
    """Apply ``a+_crea a_anni`` to a single-spin determinant.

    Returns
    -------
    sign : int
        +1 or -1, or 0 when the operator annihilates the determinant.
    new_bitstring : int
        Resulting determinant (the input when ``sign == 0``).
    """

    s = int(bitstring)
    crea = int(crea)
    anni = int(anni)
    if crea < 0 or anni < 0:
        raise IndexError("orbital index must be >= 0")
    if not (s >> anni) & 1:
        return 0, s
    sign = -1 if popcount(s & ((1 << anni) - 1)) % 2 else 1
    s_mid = s ^ (1 << anni)
    if (s_mid >> crea) & 1:
        return 0, s
    if popcount(s_mid & ((1 << crea) - 1)) % 2:
        sign = -sign
    return sign, s_mid | (1 << crea)


def create(bitstring: int, orb: int) -> tuple[int, int]:
    """Apply ``a+_orb``; the sign counts occupied orbitals below ``orb``."""

    s = int(bitstring)
    orb = int(orb)
    if (s >> orb) & 1:
        return 0, s
    sign = -1 if popcount(s & ((1 << orb) - 1)) % 2 else 1
    return sign, s | (1 << orb)


def annihilate(bitstring: int, orb: int) -> tuple[int, int]:
    """Apply ``a_orb``; the sign counts occupied orbitals below ``orb``."""

    s = int(bitstring)
    orb = int(orb)
    if not (s >> orb) & 1:
        return 0, s
    sign = -1 if popcount(s & ((1 << orb) - 1)) % 2 else 1
    return sign, s ^ (1 << orb)
