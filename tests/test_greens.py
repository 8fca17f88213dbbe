from __future__ import annotations

import numpy as np
import pytest

from symfci import FCI, fci_config

from fci_reference import (
    apply_terms,
    dense_matrix,
    fci_basis,
    from_fock,
    hamiltonian_terms,
    random_hamiltonian,
    sector_basis,
    to_fock,
)


ORBSYM = [0, 1, 0, 1]
OMEGA = 0.35
ETA = 0.2


@pytest.fixture(autouse=True)
def _tight_cg_threshold():
    with fci_config(davidson_rtol_base=1e-12, cg_rtol_factor=1.0):
        yield


def _ground_state(seed=71):
    ham = random_hamiltonian(len(ORBSYM), ORBSYM, seed=seed, group="c2")
    fci = FCI(ham, 1, 2, 1)
    gs = fci.gs_solve()
    return ham, fci, gs


def _sector_hamiltonian(ham, basis):
    return dense_matrix(hamiltonian_terms(ham), basis) + ham.econst * np.eye(len(basis))


def _reference_gf(ham, fci, gs, orb_alpha, orb_beta, is_up, kind):
    """Addition or removal amplitude from a dense resolvent over the whole particle sector."""

    norb = fci.norb
    shift = 1 if kind == "C" else -1
    nel_up = fci.nel_up + (shift if is_up else 0)
    nel_down = fci.nel_down + (0 if is_up else shift)
    basis = sector_basis(norb, nel_up, nel_down)
    h = _sector_hamiltonian(ham, basis)
    state = to_fock(fci_basis(fci), gs.vector)
    off = 0 if is_up else norb
    n = len(basis)
    if kind == "C":
        source = from_fock(basis, apply_terms([(1.0, [("C", orb_beta + off)])], state))
        bra = from_fock(basis, apply_terms([(1.0, [("C", orb_alpha + off)])], state))
        mat = (OMEGA + gs.energy + 1j * ETA) * np.eye(n) - h
    else:
        source = from_fock(basis, apply_terms([(1.0, [("A", orb_alpha + off)])], state))
        bra = from_fock(basis, apply_terms([(1.0, [("A", orb_beta + off)])], state))
        mat = (OMEGA - gs.energy + 1j * ETA) * np.eye(n) + h
    return complex(bra @ np.linalg.solve(mat, source))


@pytest.mark.parametrize("is_up", [True, False])
@pytest.mark.parametrize("orb_alpha,orb_beta", [(0, 0), (0, 2), (3, 1)])
def test_retarded_gf_matches_dense_resolvent(orb_alpha, orb_beta, is_up):
    ham, fci, gs = _ground_state()
    add = fci.retarded_gf_addition(OMEGA, ETA, orb_alpha, orb_beta, is_up, gs.energy, gs.vector)
    rem = fci.retarded_gf_removal(OMEGA, ETA, orb_alpha, orb_beta, is_up, gs.energy, gs.vector)
    ref_add = _reference_gf(ham, fci, gs, orb_alpha, orb_beta, is_up, "C")
    ref_rem = _reference_gf(ham, fci, gs, orb_alpha, orb_beta, is_up, "A")
    assert add.value == pytest.approx(ref_add, abs=1e-6)
    assert rem.value == pytest.approx(ref_rem, abs=1e-6)
    total = fci.retarded_gf(OMEGA, ETA, orb_alpha, orb_beta, is_up, gs.energy, gs.vector)
    assert total == pytest.approx(ref_add + ref_rem, abs=1e-6)


def test_retarded_gf_vanishes_between_irreps():
    _, fci, gs = _ground_state()
    assert fci.retarded_gf(OMEGA, ETA, 0, 1, True, gs.energy, gs.vector) == 0.0


def test_gf_matrix_addition_columns():
    ham, fci, gs = _ground_state()
    left = [0, 1, 2]
    right = [2, 3]
    gf = fci.gf_matrix_addition(OMEGA + gs.energy, -1.0, ETA, left, right, False, gs.vector)
    assert gf.value.shape == (3, 2)
    for row, orb_left in enumerate(left):
        for col, orb_right in enumerate(right):
            if ORBSYM[orb_left] != ORBSYM[orb_right]:
                assert gf.value[row, col] == 0.0
                continue
            ref = _reference_gf(ham, fci, gs, orb_left, orb_right, False, "C")
            assert gf.value[row, col] == pytest.approx(ref, abs=1e-6)


def test_gf_matrix_on_full_channel_is_zero():
    ham = random_hamiltonian(2, [0, 1], seed=72, group="c2")
    fci = FCI(ham, 2, 1, 0)
    gs = fci.gs_solve()
    gf = fci.gf_matrix_addition(0.5, -1.0, ETA, [0, 1], [0, 1], True, gs.vector)
    assert not gf.real.any()
    assert not gf.imag.any()
    gf = fci.gf_matrix_removal(0.5, 1.0, ETA, [1], [1], False, gs.vector)
    assert gf.value[0, 0] != 0.0


def test_gf_rdm2_of_source_vector():
    _, fci, gs = _ground_state()
    amp = fci.retarded_gf_addition(OMEGA, ETA, 0, 2, True, gs.energy, gs.vector, rdm2=True)
    aux = FCI(fci.ham, fci.nel_up + 1, fci.nel_down, fci.target_irrep)
    source = aux.act_with_second_quantized_operator("C", True, 2, fci, gs.vector)
    nelec = aux.nel_up + aux.nel_down
    assert amp.rdm2_source.shape == (fci.norb,) * 4
    assert np.einsum("ijij->", amp.rdm2_source) == pytest.approx(nelec * (nelec - 1) * float(source @ source))
    assert np.allclose(amp.rdm2_source, aux.fill_2rdm(source)[0])
    assert amp.rdm2_real is not None and amp.rdm2_imag is not None


def test_gf_argument_checks():
    _, fci, gs = _ground_state()
    with pytest.raises(ValueError):
        fci.retarded_gf_addition(OMEGA, 0.0, 0, 0, True, gs.energy, gs.vector)
    with pytest.raises(IndexError):
        fci.gf_matrix_removal(0.0, 1.0, ETA, [4], [0], True, gs.vector)
    with pytest.raises(ValueError):
        fci.gf_matrix_removal(0.0, 1.0, ETA, [], [0], True, gs.vector)


def test_second_quantized_operator_matches_reference():
    _, fci, gs = _ground_state()
    state = to_fock(fci_basis(fci), gs.vector)
    norb = fci.norb
    for kind, shift in (("C", 1), ("A", -1)):
        for is_up in (True, False):
            nel_up = fci.nel_up + (shift if is_up else 0)
            nel_down = fci.nel_down + (0 if is_up else shift)
            for orb in range(norb):
                aux = FCI(fci.ham, nel_up, nel_down, fci.target_irrep ^ ORBSYM[orb])
                got = aux.act_with_second_quantized_operator(kind, is_up, orb, fci, gs.vector)
                mode = orb + (0 if is_up else norb)
                ref = from_fock(fci_basis(aux), apply_terms([(1.0, [(kind, mode)])], state))
                assert np.allclose(got, ref, atol=1e-14)
    wrong = FCI(fci.ham, fci.nel_up + 1, fci.nel_down, fci.target_irrep)
    assert not wrong.act_with_second_quantized_operator("C", True, 1, fci, gs.vector).any()
    with pytest.raises(ValueError):
        wrong.act_with_second_quantized_operator("X", True, 0, fci, gs.vector)


def _reference_density_response(ham, fci, gs, orb_alpha, orb_beta):
    norb = fci.norb
    basis = fci_basis(fci)
    h = _sector_hamiltonian(ham, basis)
    occ = np.asarray([[((f >> p) & 1) + ((f >> (p + norb)) & 1) for p in range(norb)] for f in basis], dtype=float)
    x = gs.vector

    def fluct(orb):
        v = occ[:, orb] * x
        return v - float(v @ x) * x

    da, db = fluct(orb_alpha), fluct(orb_beta)
    n = len(basis)
    fwd = da @ np.linalg.solve((OMEGA + gs.energy + 1j * ETA) * np.eye(n) - h, db)
    bwd = db @ np.linalg.solve((OMEGA - gs.energy + 1j * ETA) * np.eye(n) + h, da)
    return complex(fwd), complex(bwd)


@pytest.mark.parametrize("orb_alpha,orb_beta", [(0, 0), (1, 3), (2, 1)])
def test_density_response_matches_dense_resolvent(orb_alpha, orb_beta):
    ham, fci, gs = _ground_state(73)
    fwd = fci.density_response_gf_forward(OMEGA, ETA, orb_alpha, orb_beta, gs.energy, gs.vector)
    bwd = fci.density_response_gf_backward(OMEGA, ETA, orb_alpha, orb_beta, gs.energy, gs.vector)
    ref_fwd, ref_bwd = _reference_density_response(ham, fci, gs, orb_alpha, orb_beta)
    assert fwd.value == pytest.approx(ref_fwd, abs=1e-6)
    assert bwd.value == pytest.approx(ref_bwd, abs=1e-6)
    total = fci.density_response_gf(OMEGA, ETA, orb_alpha, orb_beta, gs.energy, gs.vector)
    assert total == pytest.approx(ref_fwd - ref_bwd, abs=1e-6)


def test_retarded_gf_logs_ldos(capsys):
    ham, _, gs = _ground_state()
    fci = FCI(ham, 1, 2, 1, verbose=4)
    capsys.readouterr()
    value = fci.retarded_gf(OMEGA, ETA, 0, 0, True, gs.energy, gs.vector)
    out = capsys.readouterr().out
    assert "LDOS" in out
    assert f"{-value.imag / np.pi:.10g}" in out
