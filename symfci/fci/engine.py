from __future__ import annotations

from dataclasses import dataclass
import math
from typing import Any, Sequence
import warnings

import numpy as np

from symfci.config import FCIConfig, get_config, resolve_num_threads
from symfci.fci import _kernels, diagnostics, greens, rdm
from symfci.fci.bits import bits2str, popcount_array, str2bits
from symfci.fci.tables import DeterminantTables
from symfci.hamiltonian import Hamiltonian
from symfci.log import clock, new_logger
from symfci.solvers.davidson import davidson
from symfci.threads import thread_limit

# Integrals coupling orbitals of different irreps above this are reported.
SYMMETRY_TOL = 1e-12


def _readonly(a: np.ndarray) -> np.ndarray:
    a = np.ascontiguousarray(a, dtype=np.float64)
    a.setflags(write=False)
    return a


@dataclass
class GroundState:
    """Result of :meth:`FCI.gs_solve`.

    Attributes
    ----------
    energy : float
        Lowest eigenvalue of H, constant energy included.
    vector : np.ndarray
        Normalised CI vector (center irrep 0 layout).
    converged : bool
    iterations : int
        Davidson iterations.
    matvecs : int
        Hamiltonian-vector products.
    """

    energy: float
    vector: np.ndarray
    converged: bool
    iterations: int
    matvecs: int


class HamiltonianOperator:
    """``{size, diagonal(), apply(x)}`` view of ``H - Econst`` for the iterative solvers."""

    def __init__(self, fci: "FCI"):
        self.fci = fci
        self.size = fci.get_vec_length(0)

    def diagonal(self) -> np.ndarray:
        return self.fci.diag_ham()

    def apply(self, x: np.ndarray) -> np.ndarray:
        return self.fci.ham_times_vec(x)


class FCI:
    """Determinant FCI for fixed (N_up, N_down, target irrep).

    Parameters
    ----------
    ham : Hamiltonian
        Integral provider; only read.
    nel_up, nel_down : int
        Electrons per spin channel, each between 0 and ``ham.norb``.
    target_irrep : int
        Irrep of the CI vectors.
    max_mem_mb : float, optional
        Budget in MB for the two work arrays of :meth:`ham_times_vec`. A
        smaller budget means more chunked passes, never a failure.
    verbose : int, optional
        :class:`symfci.log.Logger` level.
    num_threads : int, optional
        Thread cap for the numba kernels and BLAS, see
        :func:`symfci.config.resolve_num_threads`.
    config : FCIConfig, optional
        Numerical settings; defaults to a snapshot of the global config
        taken here.

    Notes
    -----
    Vectors are flat float64 arrays. A vector "in center irrep c" has irrep
    ``target_irrep ^ c`` and length ``get_vec_length(c)``; CI vectors are
    center irrep 0. ``H`` below excludes the constant energy unless stated.
    """

    def __init__(
        self,
        ham: Hamiltonian,
        nel_up: int,
        nel_down: int,
        target_irrep: int,
        max_mem_mb: float = 100.0,
        verbose: int = 0,
        num_threads: int | None = None,
        config: FCIConfig | None = None,
    ):
        if not isinstance(ham, Hamiltonian):
            raise TypeError("ham must be a symfci.Hamiltonian")
        t0 = clock()
        self.ham = ham
        self.verbose = int(verbose)
        self.log = new_logger(verbose=self.verbose)
        self.config = get_config() if config is None else config
        self.num_threads = resolve_num_threads(num_threads)
        self.max_mem_mb = float(max_mem_mb)

        self.tables = DeterminantTables(
            ham.orbsym, ham.nirrep, nel_up, nel_down, target_irrep, self.max_mem_mb
        )
        self.norb = self.tables.norb
        self.nirrep = self.tables.nirrep
        self.nel_up = self.tables.nel_up
        self.nel_down = self.tables.nel_down
        self.target_irrep = self.tables.target_irrep
        self.orbsym = self.tables.orbsym

        violation = ham.symmetry_violation()
        if violation > SYMMETRY_TOL:
            warnings.warn(
                f"integrals couple orbitals of different irreps (max |value| = {violation:.3e}); "
                "those terms are dropped",
                RuntimeWarning,
                stacklevel=2,
            )

        self.econst = float(ham.econst)
        self.gmat = _readonly(ham.gmat())
        self.eri = _readonly(ham.eri())

        t = self.tables
        self._g_pairs = _readonly(self.gmat[t.pair_crea[0], t.pair_anni[0]])
        eri_pairs = []
        for center in range(self.nirrep):
            crea = t.pair_crea[center]
            anni = t.pair_anni[center]
            block = self.eri[crea[:, None], anni[:, None], crea[None, :], anni[None, :]]
            eri_pairs.append(_readonly(0.5 * block))
        self._eri_pairs = tuple(eri_pairs)

        log = self.log
        log.info("FCI: number of variables in the FCI vector = %d", self.get_vec_length(0))
        full_mb = 2 * 8 * t.workspace_full * 1e-6
        log.info("FCI: without additional loops the matrix-vector product needs %.6g MB of workspace", full_mb)
        if t.workspace < t.workspace_full:
            log.info("FCI: workspace constrained to %.6g MB", 2 * 8 * t.workspace * 1e-6)
        for irrep in range(self.nirrep):
            log.debug(
                "FCI: irrep %d has %d up and %d down strings",
                irrep, int(t.up.num[irrep]), int(t.down.num[irrep]),
            )
        log.timer("FCI setup", *t0)

    # -- vectors -------------------------------------------------------------

    def get_vec_length(self, irrep_center: int = 0) -> int:
        return self.tables.vec_length(irrep_center)

    def check_vector(self, vec: Any, irrep_center: int = 0) -> np.ndarray:
        """``vec`` as a contiguous float64 array, checked against ``get_vec_length(irrep_center)``."""

        arr = np.ascontiguousarray(vec, dtype=np.float64)
        if arr.ndim != 1 or int(arr.size) != self.get_vec_length(irrep_center):
            raise ValueError(
                f"vector of shape {arr.shape} does not match length {self.get_vec_length(irrep_center)} "
                f"of center irrep {int(irrep_center)}"
            )
        return arr

    def _check_orbital(self, orb: int) -> int:
        orb = int(orb)
        if orb < 0 or orb >= self.norb:
            raise IndexError(f"orbital index {orb} out of range [0, {self.norb})")
        return orb

    def _check_out(self, out: np.ndarray | None, n: int) -> np.ndarray:
        if out is None:
            return np.zeros((n,), dtype=np.float64)
        if not isinstance(out, np.ndarray) or out.dtype != np.float64 or out.shape != (n,) or not out.flags.c_contiguous:
            raise ValueError(f"out must be a contiguous float64 array of length {n}")
        out[:] = 0.0
        return out

    def get_bits_of_counter(self, irrep_center: int, counter: int) -> tuple[np.ndarray, np.ndarray]:
        """Occupation arrays (up, down) of the determinant at ``counter``."""

        s_up, s_down = self.tables.strings_of_counter(irrep_center, counter)
        return str2bits(self.norb, s_up), str2bits(self.norb, s_down)

    def get_fci_coeff(self, bits_up: Sequence[int], bits_down: Sequence[int], vec: np.ndarray) -> float:
        """Coefficient of the determinant (bits_up, bits_down) in ``vec``; 0.0 if it is not in the space."""

        vec = self.check_vector(vec)
        if len(bits_up) != self.norb or len(bits_down) != self.norb:
            raise ValueError("occupation arrays must have length norb")
        idx = int(self.tables.index_of_strings(bits2str(bits_up), bits2str(bits_down)))
        if idx < 0:
            return 0.0
        return float(vec[idx])

    # -- operator action -----------------------------------------------------

    def ham_times_vec(self, x: np.ndarray, out: np.ndarray | None = None) -> np.ndarray:
        """H x for a CI vector ``x``; the constant energy is not included."""

        x = self.check_vector(x)
        t = self.tables
        up = t.up
        dn = t.down
        result = self._check_out(out, int(x.size))

        with thread_limit(self.num_threads):
            for center in range(self.nirrep):
                crea = t.pair_crea[center]
                anni = t.pair_anni[center]
                npair = int(crea.size)
                length = t.vec_length(center)
                if npair == 0 or length == 0:
                    continue
                chunk = t.chunk_length(center)
                local_target = center ^ self.target_irrep
                for start in range(0, length, chunk):
                    stop = min(length, start + chunk)
                    work = np.empty((npair, stop - start), dtype=np.float64)
                    _kernels.gather_pairs(
                        x, work, start, stop, crea, anni, t.jumps[center], t.jumps[0], up.num, local_target,
                        up.lookup_cnt, up.lookup_irrep, up.lookup_sign, dn.lookup_cnt, dn.lookup_sign,
                    )
                    if center == 0:
                        result[start:stop] += self._g_pairs @ work
                    work2 = np.ascontiguousarray(self._eri_pairs[center] @ work)
                    _kernels.scatter_pairs(
                        work2, result, start, stop, crea, anni, t.jumps[center], t.jumps[0], up.num, local_target,
                        up.lookup_cnt, up.lookup_irrep, up.lookup_sign, dn.lookup_cnt, dn.lookup_sign,
                    )
        return result

    def apply_excitation(
        self,
        x: np.ndarray,
        crea: int,
        anni: int,
        orig_target_irrep: int,
        out: np.ndarray | None = None,
    ) -> np.ndarray:
        """(E^up_{crea,anni} + E^down_{crea,anni}) x for ``x`` of irrep ``orig_target_irrep``.

        The result has irrep ``orig_target_irrep ^ orbsym[crea] ^ orbsym[anni]``
        and the length of the matching center irrep.
        """

        crea = self._check_orbital(crea)
        anni = self._check_orbital(anni)
        orig_target_irrep = int(orig_target_irrep)
        if orig_target_irrep < 0 or orig_target_irrep >= self.nirrep:
            raise ValueError("orig_target_irrep out of range")
        orig_center = self.target_irrep ^ orig_target_irrep
        result_target = int(self.orbsym[crea] ^ self.orbsym[anni]) ^ orig_target_irrep
        result_center = self.target_irrep ^ result_target
        x = self.check_vector(x, orig_center)
        result = self._check_out(out, self.get_vec_length(result_center))

        t = self.tables
        with thread_limit(self.num_threads):
            _kernels.apply_excitation(
                x, result, crea, anni, result_target, t.jumps[orig_center], t.jumps[result_center],
                t.up.num, t.down.num, t.up.lookup_cnt, t.up.lookup_irrep, t.up.lookup_sign,
                t.down.lookup_cnt, t.down.lookup_sign,
            )
        return result

    def act_with_number_operator(self, orb: int, vec: np.ndarray) -> np.ndarray:
        """(n_orb,up + n_orb,down) vec."""

        orb = self._check_orbital(orb)
        vec = self.check_vector(vec)
        result = np.zeros_like(vec)
        for start, s_up, s_down in self.tables.blocks(0):
            nu = int(s_up.size)
            nd = int(s_down.size)
            occ = ((s_down[:, None] >> orb) & 1) + ((s_up[None, :] >> orb) & 1)
            stop = start + nu * nd
            result[start:stop] = (occ * vec[start:stop].reshape(nd, nu)).ravel()
        return result

    def act_with_second_quantized_operator(
        self,
        kind: str,
        is_up: bool,
        orb: int,
        other: "FCI",
        other_vec: np.ndarray,
    ) -> np.ndarray:
        """This-space image of ``other_vec`` under a+_orb (``kind='C'``) or a_orb (``kind='A'``).

        ``other`` must describe one electron less (``'C'``) or more (``'A'``)
        in the chosen spin channel. The result is zero when the irreps of the
        two instances are not connected by ``orbsym[orb]``.
        """

        if kind not in ("C", "A"):
            raise ValueError(f"unknown operator kind {kind!r}; use 'C' (creator) or 'A' (annihilator)")
        orb = self._check_orbital(orb)
        if other.norb != self.norb:
            raise ValueError("the two FCI instances have a different number of orbitals")
        other_vec = other.check_vector(other_vec)
        result = np.zeros((self.get_vec_length(0),), dtype=np.float64)
        if self.target_irrep != (other.target_irrep ^ int(self.orbsym[orb])):
            return result

        bit = 1 << orb
        # a+_orb needs orb occupied in this determinant, a_orb needs it empty.
        needed = 1 if kind == "C" else 0
        start_phase = 1 if (is_up or self.nel_up % 2 == 0) else -1
        for start, s_up, s_down in self.tables.blocks(0):
            nu = int(s_up.size)
            nd = int(s_down.size)
            strings = s_up if is_up else s_down
            mask = ((strings >> orb) & 1) == needed
            toggled = np.where(mask, strings ^ bit, strings)
            phase = start_phase * (1 - 2 * (popcount_array(strings & (bit - 1), self.norb) % 2))
            if is_up:
                idx = other.tables.index_of_strings(toggled[None, :], s_down[:, None])
                mask = np.broadcast_to(mask[None, :], idx.shape)
                phase = phase[None, :]
            else:
                idx = other.tables.index_of_strings(s_up[None, :], toggled[:, None])
                mask = np.broadcast_to(mask[:, None], idx.shape)
                phase = phase[:, None]
            ok = mask & (idx >= 0)
            vals = np.where(ok, phase * other_vec[np.where(ok, idx, 0)], 0.0) if other_vec.size else np.zeros(idx.shape)
            result[start : start + nu * nd] = vals.ravel()
        return result

    def as_linear_operator(self):
        """``H - Econst`` as a :class:`scipy.sparse.linalg.LinearOperator`."""

        from scipy.sparse.linalg import LinearOperator

        n = self.get_vec_length(0)

        def matvec(x):
            return self.ham_times_vec(np.ravel(x))

        return LinearOperator((n, n), matvec=matvec, rmatvec=matvec, dtype=np.float64)

    # -- expectation values and diagnostics -------------------------------------

    def calc_spin_squared(self, vec: np.ndarray) -> float:
        """<vec|S^2|vec>."""

        vec = self.check_vector(vec)
        t = self.tables
        with thread_limit(self.num_threads):
            s2 = _kernels.spin_squared(
                vec, t.jumps[0], t.up.num, self.target_irrep, t.orbsym,
                t.up.lookup_cnt, t.up.lookup_sign, t.down.lookup_cnt, t.down.lookup_sign,
            )
        self.log.debug("calc_spin_squared: <S^2> = %.12g", s2)
        return float(s2)

    def diag_ham(self) -> np.ndarray:
        with thread_limit(self.num_threads):
            return diagnostics.diag_ham(self)

    def diag_ham_squared(self) -> np.ndarray:
        with thread_limit(self.num_threads):
            return diagnostics.diag_ham_squared(self)

    def get_matrix_element(self, bra_up: Any, bra_down: Any, ket_up: Any, ket_down: Any) -> float:
        return diagnostics.get_matrix_element(self, bra_up, bra_down, ket_up, ket_down)

    def lowest_energy_determinant(self) -> int:
        return diagnostics.lowest_energy_determinant(self)

    # -- ground state --------------------------------------------------------------

    def _initial_vector(self, guess: str) -> np.ndarray:
        n = self.get_vec_length(0)
        if guess == "random":
            rng = np.random.default_rng(self.config.random_seed)
            return rng.uniform(-1.0, 1.0, size=n)
        if guess == "lowest":
            x0 = np.zeros((n,), dtype=np.float64)
            x0[self.lowest_energy_determinant()] = 1.0
            return x0
        raise ValueError(f"unknown guess {guess!r}; use 'random' or 'lowest'")

    def gs_solve(self, vec: np.ndarray | None = None, *, guess: str = "random") -> GroundState:
        """Lowest eigenpair of H by Davidson, starting from ``vec`` or a ``guess``."""

        n = self.get_vec_length(0)
        if n == 0:
            raise ValueError("the CI space is empty")
        x0 = self._initial_vector(guess) if vec is None else self.check_vector(vec)
        cfg = self.config
        t0 = clock()
        res = davidson(
            HamiltonianOperator(self),
            x0,
            tol=float(cfg.davidson_rtol_base) * math.sqrt(n),
            max_cycle=cfg.davidson_max_cycle,
            num_vec=cfg.davidson_num_vec,
            num_vec_keep=cfg.davidson_num_vec_keep,
            precond_cutoff=cfg.precond_cutoff,
            log=self.log if self.log.verbose >= self.log.DEBUG1 else None,
        )
        energy = float(res.e) + self.econst
        self.log.debug("gs_solve: required number of matrix-vector multiplications = %d", res.matvecs)
        self.log.info("gs_solve: converged ground state energy = %.14g", energy)
        self.log.timer("gs_solve", *t0)
        return GroundState(
            energy=energy, vector=res.x, converged=res.converged, iterations=res.niter, matvecs=res.matvecs
        )

    def gs_davidson(self, vec: np.ndarray | None = None, *, guess: str = "random") -> float:
        """Ground-state energy; a supplied ``vec`` is overwritten with the eigenvector."""

        if vec is not None:
            if not isinstance(vec, np.ndarray) or vec.dtype != np.float64 or not vec.flags.writeable:
                raise ValueError("vec must be a writeable float64 array")
            self.check_vector(vec)
        gs = self.gs_solve(vec, guess=guess)
        if vec is not None:
            vec[:] = gs.vector
        return gs.energy

    # -- density matrices -------------------------------------------------------------

    def make_rdm1(self, vec: np.ndarray) -> np.ndarray:
        return rdm.make_rdm1(self, vec)

    def fill_2rdm(self, vec: np.ndarray) -> tuple[np.ndarray, float]:
        return rdm.fill_2rdm(self, vec)

    def fill_3rdm(self, vec: np.ndarray) -> np.ndarray:
        return rdm.fill_3rdm(self, vec)

    # -- Green's functions --------------------------------------------------------------

    def cg_solve_system(
        self, alpha: float, beta: float, eta: float, rhs: np.ndarray, *, check_error: bool = False
    ) -> tuple[np.ndarray, np.ndarray]:
        return greens.cg_solve_system(self, alpha, beta, eta, rhs, check_error=check_error)

    def gf_matrix_addition(self, alpha, beta, eta, orbs_left, orbs_right, is_up, gs_vector, *, rdm2=False):
        return greens.gf_matrix_addition(self, alpha, beta, eta, orbs_left, orbs_right, is_up, gs_vector, rdm2=rdm2)

    def gf_matrix_removal(self, alpha, beta, eta, orbs_left, orbs_right, is_up, gs_vector, *, rdm2=False):
        return greens.gf_matrix_removal(self, alpha, beta, eta, orbs_left, orbs_right, is_up, gs_vector, rdm2=rdm2)

    def retarded_gf_addition(self, omega, eta, orb_alpha, orb_beta, is_up, gs_energy, gs_vector, *, rdm2=False):
        return greens.retarded_gf_addition(
            self, omega, eta, orb_alpha, orb_beta, is_up, gs_energy, gs_vector, rdm2=rdm2
        )

    def retarded_gf_removal(self, omega, eta, orb_alpha, orb_beta, is_up, gs_energy, gs_vector, *, rdm2=False):
        return greens.retarded_gf_removal(
            self, omega, eta, orb_alpha, orb_beta, is_up, gs_energy, gs_vector, rdm2=rdm2
        )

    def retarded_gf(self, omega, eta, orb_alpha, orb_beta, is_up, gs_energy, gs_vector) -> complex:
        return greens.retarded_gf(self, omega, eta, orb_alpha, orb_beta, is_up, gs_energy, gs_vector)

    def density_response_gf_forward(self, omega, eta, orb_alpha, orb_beta, gs_energy, gs_vector, *, rdm2=False):
        return greens.density_response_gf_forward(
            self, omega, eta, orb_alpha, orb_beta, gs_energy, gs_vector, rdm2=rdm2
        )

    def density_response_gf_backward(self, omega, eta, orb_alpha, orb_beta, gs_energy, gs_vector, *, rdm2=False):
        return greens.density_response_gf_backward(
            self, omega, eta, orb_alpha, orb_beta, gs_energy, gs_vector, rdm2=rdm2
        )

    def density_response_gf(self, omega, eta, orb_alpha, orb_beta, gs_energy, gs_vector) -> complex:
        return greens.density_response_gf(self, omega, eta, orb_alpha, orb_beta, gs_energy, gs_vector)
