from __future__ import annotations

import numpy as np
import pytest

from symfci.fci.bits import (
    annihilate,
    bits2str,
    create,
    excitation,
    phase_between,
    popcount_array,
    str2bits,
)

from fci_reference import apply_string


def test_str2bits_bits2str_inverse():
    for s in range(1 << 6):
        bits = str2bits(6, s)
        assert bits.dtype == np.int8
        assert bits2str(bits) == s
    assert list(str2bits(4, 0b1010)) == [0, 1, 0, 1]


def test_bits2str_rejects_non_binary():
    with pytest.raises(ValueError):
        bits2str([0, 2, 1])


def test_popcount_array():
    strings = np.arange(1 << 5, dtype=np.int64)
    ref = np.asarray([bin(int(s)).count("1") for s in strings])
    assert np.array_equal(popcount_array(strings, 5), ref)


def test_excitation_matches_operator_string():
    norb = 5
    for s in range(1 << norb):
        for crea in range(norb):
            for anni in range(norb):
                sign, new = excitation(s, crea, anni)
                ref_sign, ref_new = apply_string([("C", crea), ("A", anni)], s)
                assert sign == ref_sign
                if sign:
                    assert new == ref_new
                else:
                    assert new == s


def test_excitation_diagonal_is_number_operator():
    assert excitation(0b0110, 1, 1) == (1, 0b0110)
    assert excitation(0b0110, 0, 0) == (0, 0b0110)


def test_create_annihilate_signs():
    norb = 5
    for s in range(1 << norb):
        for orb in range(norb):
            sign, new = create(s, orb)
            ref_sign, ref_new = apply_string([("C", orb)], s)
            assert sign == ref_sign
            if sign:
                assert new == ref_new
            sign, new = annihilate(s, orb)
            ref_sign, ref_new = apply_string([("A", orb)], s)
            assert sign == ref_sign
            if sign:
                assert new == ref_new


def test_phase_between_counts_strictly_inner_orbitals():
    s = 0b101101
    for i in range(6):
        for j in range(6):
            lo, hi = sorted((i, j))
            inner = sum((s >> k) & 1 for k in range(lo + 1, hi))
            assert phase_between(s, i, j) == (-1) ** inner


def test_excitation_rejects_negative_orbitals():
    with pytest.raises(IndexError):
        excitation(0b11, -1, 0)
