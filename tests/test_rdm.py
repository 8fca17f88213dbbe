from __future__ import annotations

import itertools

import numpy as np
import pytest

from symfci import FCI

from fci_reference import apply_terms, fci_basis, random_hamiltonian, to_fock


def _expectation(ops_list, state):
    out = apply_terms([(1.0, ops) for ops in ops_list], state)
    return sum(state.get(fock, 0.0) * amp for fock, amp in out.items())


def _reference_rdm2(fci, vec):
    norb = fci.norb
    state = to_fock(fci_basis(fci), vec)
    rdm2 = np.zeros((norb,) * 4)
    for i, j, k, l in itertools.product(range(norb), repeat=4):
        ops = [
            [("C", i + s), ("C", j + t), ("A", l + t), ("A", k + s)]
            for s in (0, norb)
            for t in (0, norb)
        ]
        rdm2[i, j, k, l] = _expectation(ops, state)
    return rdm2


def _reference_rdm3(fci, vec):
    norb = fci.norb
    state = to_fock(fci_basis(fci), vec)
    rdm3 = np.zeros((norb,) * 6)
    spins = list(itertools.product((0, norb), repeat=3))
    for i, j, k, l, m, n in itertools.product(range(norb), repeat=6):
        ops = [
            [("C", i + s), ("C", j + t), ("C", k + u), ("A", n + u), ("A", m + t), ("A", l + s)]
            for s, t, u in spins
        ]
        rdm3[i, j, k, l, m, n] = _expectation(ops, state)
    return rdm3


def _normalised_vector(fci, seed):
    x = np.random.default_rng(seed).normal(size=fci.get_vec_length(0))
    return x / np.linalg.norm(x)


def test_make_rdm1():
    ham = random_hamiltonian(4, [0, 1, 0, 1], seed=51, group="c2")
    fci = FCI(ham, 2, 1, 1)
    x = _normalised_vector(fci, 51)
    state = to_fock(fci_basis(fci), x)
    norb = fci.norb
    ref = np.zeros((norb, norb))
    for i, j in itertools.product(range(norb), repeat=2):
        ref[i, j] = _expectation([[("C", i), ("A", j)], [("C", i + norb), ("A", j + norb)]], state)
    rdm1 = fci.make_rdm1(x)
    assert np.allclose(rdm1, ref, atol=1e-12)
    assert np.trace(rdm1) == pytest.approx(3.0)


@pytest.mark.parametrize("nel_up,nel_down,target", [(2, 1, 1), (2, 2, 0), (1, 1, 1)])
def test_fill_2rdm_matches_reference(nel_up, nel_down, target):
    ham = random_hamiltonian(4, [0, 1, 0, 1], seed=52, group="c2")
    fci = FCI(ham, nel_up, nel_down, target)
    x = _normalised_vector(fci, 52)
    rdm2, energy = fci.fill_2rdm(x)
    assert np.allclose(rdm2, _reference_rdm2(fci, x), atol=1e-12)
    expected = float(x @ fci.ham_times_vec(x)) + ham.econst
    assert energy == pytest.approx(expected, abs=1e-10)


def test_2rdm_of_ground_state():
    ham = random_hamiltonian(5, [0, 1, 0, 3, 2], seed=53)
    fci = FCI(ham, 2, 2, 0)
    gs = fci.gs_solve()
    rdm2, energy = fci.fill_2rdm(gs.vector)
    nelec = 4
    assert energy == pytest.approx(gs.energy, abs=1e-9)
    assert np.einsum("ijij->", rdm2) == pytest.approx(nelec * (nelec - 1))
    assert np.allclose(rdm2, rdm2.transpose(1, 0, 3, 2))
    assert np.allclose(rdm2, rdm2.transpose(2, 3, 0, 1))
    rdm1 = fci.make_rdm1(gs.vector)
    assert np.allclose(np.einsum("ikjk->ij", rdm2), (nelec - 1) * rdm1, atol=1e-12)


def test_fill_3rdm_matches_reference():
    ham = random_hamiltonian(3, [0, 1, 0], seed=54, group="c2")
    fci = FCI(ham, 2, 1, 1)
    x = _normalised_vector(fci, 54)
    assert np.allclose(fci.fill_3rdm(x), _reference_rdm3(fci, x), atol=1e-12)


def test_3rdm_symmetry_and_partial_trace():
    ham = random_hamiltonian(5, [0, 1, 0, 3, 2], seed=55)
    fci = FCI(ham, 2, 2, 0)
    x = _normalised_vector(fci, 55)
    rdm3 = fci.fill_3rdm(x)
    rdm2, _ = fci.fill_2rdm(x)
    for perm in itertools.permutations(range(3)):
        axes = list(perm) + [p + 3 for p in perm]
        assert np.allclose(rdm3, rdm3.transpose(axes), atol=1e-12)
    assert np.allclose(rdm3, rdm3.transpose(3, 4, 5, 0, 1, 2), atol=1e-12)
    assert np.allclose(np.einsum("ijklmk->ijlm", rdm3), 2.0 * rdm2, atol=1e-11)


def test_rdm_needs_enough_electrons():
    ham = random_hamiltonian(3, [0, 1, 0], seed=56, group="c2")
    one = FCI(ham, 1, 0, 0)
    with pytest.raises(ValueError):
        one.fill_2rdm(np.ones(one.get_vec_length(0)))
    two = FCI(ham, 1, 1, 0)
    with pytest.raises(ValueError):
        two.fill_3rdm(np.ones(two.get_vec_length(0)))


def test_rdm_thread_limit_gives_same_result():
    ham = random_hamiltonian(5, [0, 1, 0, 3, 2], seed=57)
    fci = FCI(ham, 2, 2, 0)
    single = FCI(ham, 2, 2, 0, num_threads=1)
    x = _normalised_vector(fci, 57)
    assert np.allclose(fci.fill_2rdm(x)[0], single.fill_2rdm(x)[0])
