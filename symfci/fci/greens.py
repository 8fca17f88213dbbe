"""Complex-shifted linear solves and the Green's functions built on them.

All resolvents have the form ``[alpha + beta H + i eta]^-1`` with ``H`` the
full Hamiltonian (constant included). They are evaluated on an auxiliary
:class:`symfci.fci.FCI` at the shifted electron count and irrep, which shares
only the read-only :class:`symfci.hamiltonian.Hamiltonian`.
"""

from __future__ import annotations

from dataclasses import dataclass
import math
from typing import TYPE_CHECKING, Sequence

import numpy as np

from symfci.solvers.cg import cg

if TYPE_CHECKING:  # pragma: no cover
    from symfci.fci.engine import FCI


@dataclass
class GFMatrix:
    """Green's-function matrix ``G[left, right]`` and optional 2-RDMs per right orbital.

    Attributes
    ----------
    real, imag : np.ndarray
        ``(len(orbs_left), len(orbs_right))`` float64 arrays.
    rdm2_real, rdm2_imag, rdm2_source : list of np.ndarray or None
        2-RDMs (in the auxiliary space) of the real and imaginary parts of
        the solution and of the source vector ``a(+)_right |0>``; entries
        stay zero for right orbitals that were skipped.
    """

    real: np.ndarray
    imag: np.ndarray
    rdm2_real: list[np.ndarray] | None = None
    rdm2_imag: list[np.ndarray] | None = None
    rdm2_source: list[np.ndarray] | None = None

    @property
    def value(self) -> np.ndarray:
        return self.real + 1j * self.imag


@dataclass
class GFAmplitude:
    value: complex
    rdm2_real: np.ndarray | None = None
    rdm2_imag: np.ndarray | None = None
    rdm2_source: np.ndarray | None = None


def alpha_plus_beta_ham(fci: "FCI", alpha: float, beta: float, x: np.ndarray) -> np.ndarray:
    """(alpha + beta H) x with the constant energy folded into ``alpha``."""

    out = fci.ham_times_vec(x)
    out *= float(beta)
    out += (float(alpha) + float(beta) * fci.econst) * x
    return out


def cg_diag_precond(fci: "FCI", alpha: float, beta: float, eta: float) -> np.ndarray:
    """1 / sqrt(diag[(alpha + beta H)^2 + eta^2]) from the closed-form diagonals of H and H^2."""

    alpha_bis = float(alpha) + float(beta) * fci.econst
    factor1 = alpha_bis * alpha_bis + float(eta) * float(eta)
    factor2 = 2.0 * alpha_bis * float(beta)
    factor3 = float(beta) * float(beta)
    diag = factor1 + factor2 * fci.diag_ham() + factor3 * fci.diag_ham_squared()
    precon = 1.0 / np.sqrt(diag)
    if fci.log.verbose >= fci.log.DEBUG and int(precon.size) > 0:
        fci.log.debug("cg_diag_precond: min diag[(alpha + beta H)^2 + eta^2] = %.6e", float(diag.min()))
        fci.log.debug("cg_diag_precond: max diag[(alpha + beta H)^2 + eta^2] = %.6e", float(diag.max()))
    return precon


def cg_solve_system(
    fci: "FCI",
    alpha: float,
    beta: float,
    eta: float,
    rhs: np.ndarray,
    *,
    check_error: bool = False,
) -> tuple[np.ndarray, np.ndarray]:
    """Solve ``(alpha + beta H + i eta)(x_r + i x_i) = rhs`` for real ``rhs``.

    Both parts come from CG on the symmetric positive-definite operator
    ``P [(alpha + beta H)^2 + eta^2] P`` with the Jacobi scaling ``P``:
    first ``x_i`` from ``-eta rhs``, then ``x_r`` from
    ``(alpha + beta H) rhs`` starting at ``-(alpha + beta H) x_i / eta``.

    Returns
    -------
    (real, imag) : tuple of np.ndarray
    """

    alpha = float(alpha)
    beta = float(beta)
    eta = float(eta)
    if eta == 0.0:
        raise ValueError("eta must be nonzero")
    rhs = fci.check_vector(rhs)
    cfg = fci.config
    log = fci.log
    n = int(rhs.size)

    precon = cg_diag_precond(fci, alpha, beta, eta)
    tol = float(cfg.cg_rtol_factor) * float(cfg.davidson_rtol_base) * math.sqrt(n)
    log.debug("cg_solve_system: residual norm for convergence = %.3e", tol)

    def operator(v: np.ndarray) -> np.ndarray:
        temp = precon * v
        out = alpha_plus_beta_ham(fci, alpha, beta, alpha_plus_beta_ham(fci, alpha, beta, temp))
        out += (eta * eta) * temp
        return precon * out

    b_imag = -eta * precon * rhs
    log.debug("cg_solve_system: two-norm of the RHS for the imaginary part = %.6e", float(np.linalg.norm(b_imag)))
    # Exact when the operator is diagonal.
    res = cg(operator, b_imag, b_imag.copy(), tol=tol, max_iter=cfg.cg_max_iter, log=log)
    log.debug("cg_solve_system: imaginary part after %d iterations", res.niter)
    imag = precon * res.x

    guess = alpha_plus_beta_ham(fci, -alpha / eta, -beta / eta, imag)
    cutoff = float(cfg.precond_cutoff)
    guess /= np.where(np.abs(precon) > cutoff, precon, cutoff)
    b_real = precon * alpha_plus_beta_ham(fci, alpha, beta, rhs)
    log.debug("cg_solve_system: two-norm of the RHS for the real part = %.6e", float(np.linalg.norm(b_real)))
    res = cg(operator, b_real, guess, tol=tol, max_iter=cfg.cg_max_iter, log=log)
    log.debug("cg_solve_system: real part after %d iterations", res.niter)
    real = precon * res.x

    if check_error:
        resid = alpha_plus_beta_ham(fci, alpha, beta, alpha_plus_beta_ham(fci, alpha, beta, real))
        resid += (eta * eta) * real - alpha_plus_beta_ham(fci, alpha, beta, rhs)
        err = float(resid @ resid)
        resid = alpha_plus_beta_ham(fci, alpha, beta, alpha_plus_beta_ham(fci, alpha, beta, imag))
        resid += (eta * eta) * imag + eta * rhs
        err = math.sqrt(err + float(resid @ resid))
        log.info("cg_solve_system: RMS error when checking the solution (without preconditioner) = %.6e", err)
    return real, imag


def _check_orbitals(fci: "FCI", orbs: Sequence[int], name: str) -> list[int]:
    out = [int(o) for o in np.asarray(orbs, dtype=np.int64).ravel()]
    if not out:
        raise ValueError(f"{name} must not be empty")
    for orb in out:
        if orb < 0 or orb >= fci.norb:
            raise IndexError(f"{name}: orbital {orb} out of range")
    return out


def _gf_matrix(
    fci: "FCI",
    kind: str,
    alpha: float,
    beta: float,
    eta: float,
    orbs_left: Sequence[int],
    orbs_right: Sequence[int],
    is_up: bool,
    gs_vector: np.ndarray,
    rdm2: bool,
) -> GFMatrix:
    if float(eta) == 0.0:
        raise ValueError("eta must be nonzero")
    left = _check_orbitals(fci, orbs_left, "orbs_left")
    right = _check_orbitals(fci, orbs_right, "orbs_right")
    gs = fci.check_vector(gs_vector)
    orbsym = fci.orbsym
    norb = fci.norb

    real = np.zeros((len(left), len(right)), dtype=np.float64)
    imag = np.zeros((len(left), len(right)), dtype=np.float64)
    rdm_real = rdm_imag = rdm_source = None
    if rdm2:
        rdm_real = [np.zeros((norb,) * 4) for _ in right]
        rdm_imag = [np.zeros((norb,) * 4) for _ in right]
        rdm_source = [np.zeros((norb,) * 4) for _ in right]

    shift = 1 if kind == "C" else -1
    nel_up = fci.nel_up + (shift if is_up else 0)
    nel_down = fci.nel_down + (0 if is_up else shift)
    possible = 0 <= nel_up <= norb and 0 <= nel_down <= norb

    for col, orb_right in enumerate(right):
        if not possible:
            break
        if not any(orbsym[orb_left] == orbsym[orb_right] for orb_left in left):
            continue
        aux = type(fci)(
            fci.ham,
            nel_up,
            nel_down,
            fci.target_irrep ^ int(orbsym[orb_right]),
            max_mem_mb=fci.max_mem_mb,
            verbose=fci.verbose,
            num_threads=fci.num_threads,
            config=fci.config,
        )
        source = aux.act_with_second_quantized_operator(kind, is_up, orb_right, fci, gs)
        sol_real, sol_imag = aux.cg_solve_system(alpha, beta, eta, source)
        if rdm2:
            rdm_real[col] = aux.fill_2rdm(sol_real)[0]
            rdm_imag[col] = aux.fill_2rdm(sol_imag)[0]
            rdm_source[col] = aux.fill_2rdm(source)[0]
        for row, orb_left in enumerate(left):
            if orbsym[orb_left] != orbsym[orb_right]:
                continue
            bra = aux.act_with_second_quantized_operator(kind, is_up, orb_left, fci, gs)
            real[row, col] = float(bra @ sol_real)
            imag[row, col] = float(bra @ sol_imag)

    return GFMatrix(real=real, imag=imag, rdm2_real=rdm_real, rdm2_imag=rdm_imag, rdm2_source=rdm_source)


def gf_matrix_addition(
    fci: "FCI",
    alpha: float,
    beta: float,
    eta: float,
    orbs_left: Sequence[int],
    orbs_right: Sequence[int],
    is_up: bool,
    gs_vector: np.ndarray,
    *,
    rdm2: bool = False,
) -> GFMatrix:
    """G[l, r] = <0| a_l [alpha + beta H + i eta]^-1 a+_r |0> for one spin channel.

    Columns whose orbital irrep matches no left orbital are skipped, and
    the matrix is zero when the channel is already full.
    """

    return _gf_matrix(fci, "C", alpha, beta, eta, orbs_left, orbs_right, is_up, gs_vector, rdm2)


def gf_matrix_removal(
    fci: "FCI",
    alpha: float,
    beta: float,
    eta: float,
    orbs_left: Sequence[int],
    orbs_right: Sequence[int],
    is_up: bool,
    gs_vector: np.ndarray,
    *,
    rdm2: bool = False,
) -> GFMatrix:
    """G[l, r] = <0| a+_l [alpha + beta H + i eta]^-1 a_r |0> for one spin channel."""

    return _gf_matrix(fci, "A", alpha, beta, eta, orbs_left, orbs_right, is_up, gs_vector, rdm2)


def _single(gf: GFMatrix) -> GFAmplitude:
    return GFAmplitude(
        value=complex(gf.real[0, 0], gf.imag[0, 0]),
        rdm2_real=None if gf.rdm2_real is None else gf.rdm2_real[0],
        rdm2_imag=None if gf.rdm2_imag is None else gf.rdm2_imag[0],
        rdm2_source=None if gf.rdm2_source is None else gf.rdm2_source[0],
    )


def retarded_gf_addition(
    fci: "FCI",
    omega: float,
    eta: float,
    orb_alpha: int,
    orb_beta: int,
    is_up: bool,
    gs_energy: float,
    gs_vector: np.ndarray,
    *,
    rdm2: bool = False,
) -> GFAmplitude:
    """<0| a_alpha [omega - H + E0 + i eta]^-1 a+_beta |0>."""

    gf = gf_matrix_addition(
        fci, float(omega) + float(gs_energy), -1.0, eta, [orb_alpha], [orb_beta], is_up, gs_vector, rdm2=rdm2
    )
    return _single(gf)


def retarded_gf_removal(
    fci: "FCI",
    omega: float,
    eta: float,
    orb_alpha: int,
    orb_beta: int,
    is_up: bool,
    gs_energy: float,
    gs_vector: np.ndarray,
    *,
    rdm2: bool = False,
) -> GFAmplitude:
    """<0| a+_beta [omega + H - E0 + i eta]^-1 a_alpha |0>."""

    gf = gf_matrix_removal(
        fci, float(omega) - float(gs_energy), 1.0, eta, [orb_beta], [orb_alpha], is_up, gs_vector, rdm2=rdm2
    )
    return _single(gf)


def retarded_gf(
    fci: "FCI",
    omega: float,
    eta: float,
    orb_alpha: int,
    orb_beta: int,
    is_up: bool,
    gs_energy: float,
    gs_vector: np.ndarray,
) -> complex:
    """Retarded one-particle Green's function, addition plus removal amplitude."""

    value = retarded_gf_addition(fci, omega, eta, orb_alpha, orb_beta, is_up, gs_energy, gs_vector).value
    value += retarded_gf_removal(fci, omega, eta, orb_alpha, orb_beta, is_up, gs_energy, gs_vector).value
    fci.log.info(
        "retarded_gf: G(omega = %g; eta = %g; i = %d; j = %d) = %.10g + i * %.10g",
        omega, eta, orb_alpha, orb_beta, value.real, value.imag,
    )
    fci.log.info("retarded_gf: local density of states (LDOS) = %.10g", -value.imag / math.pi)
    return value


def _density_fluctuation(fci: "FCI", orb: int, gs: np.ndarray) -> np.ndarray:
    """(n_orb - <0|n_orb|0>) |0>."""

    vec = fci.act_with_number_operator(orb, gs)
    vec -= float(vec @ gs) * gs
    return vec


def _density_response(
    fci: "FCI",
    alpha: float,
    beta: float,
    eta: float,
    bra: np.ndarray,
    source: np.ndarray,
    rdm2: bool,
) -> GFAmplitude:
    real, imag = fci.cg_solve_system(alpha, beta, eta, source)
    out = GFAmplitude(value=complex(float(bra @ real), float(bra @ imag)))
    if rdm2:
        out.rdm2_real = fci.fill_2rdm(real)[0]
        out.rdm2_imag = fci.fill_2rdm(imag)[0]
        out.rdm2_source = fci.fill_2rdm(source)[0]
    return out


def density_response_gf_forward(
    fci: "FCI",
    omega: float,
    eta: float,
    orb_alpha: int,
    orb_beta: int,
    gs_energy: float,
    gs_vector: np.ndarray,
    *,
    rdm2: bool = False,
) -> GFAmplitude:
    """<0| dn_alpha [omega - H + E0 + i eta]^-1 dn_beta |0> with dn = n - <0|n|0>."""

    if float(eta) == 0.0:
        raise ValueError("eta must be nonzero")
    gs = fci.check_vector(gs_vector)
    dens_alpha = _density_fluctuation(fci, orb_alpha, gs)
    dens_beta = dens_alpha if int(orb_alpha) == int(orb_beta) else _density_fluctuation(fci, orb_beta, gs)
    return _density_response(fci, float(omega) + float(gs_energy), -1.0, eta, dens_alpha, dens_beta, rdm2)


def density_response_gf_backward(
    fci: "FCI",
    omega: float,
    eta: float,
    orb_alpha: int,
    orb_beta: int,
    gs_energy: float,
    gs_vector: np.ndarray,
    *,
    rdm2: bool = False,
) -> GFAmplitude:
    """<0| dn_beta [omega + H - E0 + i eta]^-1 dn_alpha |0> with dn = n - <0|n|0>."""

    if float(eta) == 0.0:
        raise ValueError("eta must be nonzero")
    gs = fci.check_vector(gs_vector)
    dens_alpha = _density_fluctuation(fci, orb_alpha, gs)
    dens_beta = dens_alpha if int(orb_alpha) == int(orb_beta) else _density_fluctuation(fci, orb_beta, gs)
    return _density_response(fci, float(omega) - float(gs_energy), 1.0, eta, dens_beta, dens_alpha, rdm2)


def density_response_gf(
    fci: "FCI",
    omega: float,
    eta: float,
    orb_alpha: int,
    orb_beta: int,
    gs_energy: float,
    gs_vector: np.ndarray,
) -> complex:
    """Density-density response, forward minus backward amplitude."""

    value = density_response_gf_forward(fci, omega, eta, orb_alpha, orb_beta, gs_energy, gs_vector).value
    value -= density_response_gf_backward(fci, omega, eta, orb_alpha, orb_beta, gs_energy, gs_vector).value
    fci.log.info(
        "density_response_gf: X(omega = %g; eta = %g; i = %d; j = %d) = %.10g + i * %.10g",
        omega, eta, orb_alpha, orb_beta, value.real, value.imag,
    )
    fci.log.info("density_response_gf: local density-density response (LDDR) = %.10g", -value.imag / math.pi)
    return value
