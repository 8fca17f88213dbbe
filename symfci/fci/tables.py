from __future__ import annotations

from dataclasses import dataclass
import math

import numpy as np

from symfci.fci import _kernels
from symfci.fci.bits import MAX_NORB


def _readonly(a: np.ndarray) -> np.ndarray:
    a.setflags(write=False)
    return a


@dataclass(frozen=True)
class SpinStrings:
    """Determinant strings of one spin channel, blocked by irrep.

    Attributes
    ----------
    nel : int
        Electrons in this channel.
    num : np.ndarray
        ``(nirrep,)`` int64, strings per irrep.
    str2cnt : np.ndarray
        ``(2**norb,)`` int64 counter of each string inside its irrep block,
        ``-1`` for strings with the wrong electron count.
    cnt2str : np.ndarray
        ``(nirrep, max(num))`` int64 inverse map, padded with ``-1``.
    lookup_cnt, lookup_irrep, lookup_sign : np.ndarray
        ``(nirrep, max(num), norb, norb)`` single-excitation tables
        indexed ``[irrep_new, cnt_new, crea, anni]``.
    """

    nel: int
    num: np.ndarray
    str2cnt: np.ndarray
    cnt2str: np.ndarray
    lookup_cnt: np.ndarray
    lookup_irrep: np.ndarray
    lookup_sign: np.ndarray


def _build_spin_strings(nel: int, orbsym: np.ndarray, nirrep: int, str2irrep: np.ndarray, nparticle: np.ndarray) -> SpinStrings:
    norb = int(orbsym.size)
    nstr = 1 << norb
    str2cnt = np.full((nstr,), -1, dtype=np.int64)
    num = np.zeros((nirrep,), dtype=np.int64)
    members = []
    for irrep in range(nirrep):
        sel = np.flatnonzero((nparticle == nel) & (str2irrep == irrep)).astype(np.int64)
        str2cnt[sel] = np.arange(sel.size, dtype=np.int64)
        num[irrep] = int(sel.size)
        members.append(sel)
    cnt2str = np.full((nirrep, max(1, int(num.max()))), -1, dtype=np.int64)
    for irrep, sel in enumerate(members):
        cnt2str[irrep, : sel.size] = sel

    lk_cnt, lk_irrep, lk_sign = _kernels.build_lookup(cnt2str, num, str2cnt, orbsym, norb)
    return SpinStrings(
        nel=int(nel),
        num=_readonly(num),
        str2cnt=_readonly(str2cnt),
        cnt2str=_readonly(cnt2str),
        lookup_cnt=_readonly(lk_cnt),
        lookup_irrep=_readonly(lk_irrep),
        lookup_sign=_readonly(lk_sign),
    )


class DeterminantTables:
    """Symmetry-blocked determinant indexing for fixed (N_up, N_down, target irrep).

    Parameters
    ----------
    orbsym : array_like
        Irrep of every orbital.
    nirrep : int
        Number of irreps of the (Abelian) point group.
    nel_up, nel_down : int
        Electrons per spin channel.
    target_irrep : int
        Irrep of the CI vectors (center irrep 0).
    max_mem_mb : float
        Budget for the two Hamiltonian-action work arrays, in MB.

    Notes
    -----
    For center irrep ``c`` the vector space holds determinants of irrep
    ``target ^ c``; ``jumps[c, iu]`` is the offset of the block whose up
    strings have irrep ``iu``. ``pairs[c]`` lists the orbital pairs
    ``i <= j`` with ``orbsym[i] ^ orbsym[j] == c``.
    """

    def __init__(
        self,
        orbsym: np.ndarray,
        nirrep: int,
        nel_up: int,
        nel_down: int,
        target_irrep: int,
        max_mem_mb: float,
    ):
        orbsym = np.ascontiguousarray(orbsym, dtype=np.int64).ravel()
        norb = int(orbsym.size)
        nirrep = int(nirrep)
        nel_up = int(nel_up)
        nel_down = int(nel_down)
        target_irrep = int(target_irrep)
        max_mem_mb = float(max_mem_mb)
        if norb < 1:
            raise ValueError("need at least one orbital")
        if norb > MAX_NORB:
            raise ValueError(f"norb={norb} exceeds the bitstring width ({MAX_NORB})")
        if nirrep not in (1, 2, 4, 8):
            raise ValueError("nirrep must be 1, 2, 4 or 8")
        if np.any(orbsym < 0) or np.any(orbsym >= nirrep):
            raise ValueError("orbital irreps out of range")
        if nel_up < 0 or nel_down < 0:
            raise ValueError("electron counts must be >= 0")
        if nel_up > norb or nel_down > norb:
            raise ValueError(f"electron counts ({nel_up}, {nel_down}) exceed norb={norb}")
        if target_irrep < 0 or target_irrep >= nirrep:
            raise ValueError("target_irrep out of range")
        if not (max_mem_mb > 0.0):
            raise ValueError("max_mem_mb must be > 0")

        self.norb = norb
        self.nirrep = nirrep
        self.nel_up = nel_up
        self.nel_down = nel_down
        self.target_irrep = target_irrep
        self.max_mem_mb = max_mem_mb
        self.orbsym = _readonly(orbsym)

        strings = np.arange(1 << norb, dtype=np.int64)
        nparticle = np.zeros(strings.shape, dtype=np.int64)
        str2irrep = np.zeros(strings.shape, dtype=np.int64)
        for orb in range(norb):
            occ = (strings >> orb) & 1
            nparticle += occ
            str2irrep ^= occ * orbsym[orb]
        self.str2irrep = _readonly(str2irrep)

        self.up = _build_spin_strings(nel_up, orbsym, nirrep, str2irrep, nparticle)
        self.down = self.up if nel_down == nel_up else _build_spin_strings(nel_down, orbsym, nirrep, str2irrep, nparticle)

        crea_orb: list[np.ndarray] = []
        anni_orb: list[np.ndarray] = []
        for center in range(nirrep):
            ii, jj = [], []
            for i in range(norb):
                for j in range(i, norb):
                    if int(orbsym[i] ^ orbsym[j]) == center:
                        ii.append(i)
                        jj.append(j)
            crea_orb.append(_readonly(np.asarray(ii, dtype=np.int64)))
            anni_orb.append(_readonly(np.asarray(jj, dtype=np.int64)))
        self.pair_crea = tuple(crea_orb)
        self.pair_anni = tuple(anni_orb)

        jumps = np.zeros((nirrep, nirrep + 1), dtype=np.int64)
        for center in range(nirrep):
            local_target = center ^ target_irrep
            for iu in range(nirrep):
                jumps[center, iu + 1] = jumps[center, iu] + int(self.up.num[iu]) * int(self.down.num[iu ^ local_target])
        self.jumps = _readonly(jumps)

        full = 0
        for center in range(nirrep):
            full = max(full, int(self.pair_crea[center].size) * int(jumps[center, nirrep]))
        self.workspace_full = int(full)
        budget = int(math.ceil(max_mem_mb * 1e6 / (2 * 8)))
        self.workspace = int(max(1, min(full, budget)))

        irrep_orbs = np.zeros((nirrep, norb + 1), dtype=np.int64)
        irrep_norb = np.zeros((nirrep,), dtype=np.int64)
        for orb in range(norb):
            irrep = int(orbsym[orb])
            irrep_orbs[irrep, irrep_norb[irrep]] = orb
            irrep_norb[irrep] += 1
        self.irrep_orbs = _readonly(irrep_orbs)
        self.irrep_norb = _readonly(irrep_norb)

    # -- sizes -----------------------------------------------------------

    def vec_length(self, irrep_center: int = 0) -> int:
        irrep_center = int(irrep_center)
        if irrep_center < 0 or irrep_center >= self.nirrep:
            raise IndexError("irrep_center out of range")
        return int(self.jumps[irrep_center, self.nirrep])

    def max_vec_length(self) -> int:
        return int(self.jumps[:, self.nirrep].max())

    def chunk_length(self, irrep_center: int) -> int:
        """Vector entries processed per Hamiltonian-action pass for ``irrep_center``."""

        npair = int(self.pair_crea[int(irrep_center)].size)
        if npair == 0:
            return int(self.workspace)
        return max(1, int(self.workspace) // npair)

    # -- counters and strings ----------------------------------------------

    def up_irrep_of_counter(self, irrep_center: int, counter: int) -> int:
        counter = int(counter)
        if counter < 0 or counter >= self.vec_length(irrep_center):
            raise IndexError("counter out of range")
        return int(_kernels.up_irrep_of_counter(self.jumps[int(irrep_center)], counter))

    def strings_of_counter(self, irrep_center: int, counter: int) -> tuple[int, int]:
        """(up string, down string) stored at ``counter`` of the ``irrep_center`` space."""

        irrep_center = int(irrep_center)
        iu = self.up_irrep_of_counter(irrep_center, counter)
        idn = iu ^ irrep_center ^ self.target_irrep
        nu = int(self.up.num[iu])
        rel = int(counter) - int(self.jumps[irrep_center, iu])
        return int(self.up.cnt2str[iu, rel % nu]), int(self.down.cnt2str[idn, rel // nu])

    def index_of_strings(self, string_up: np.ndarray, string_down: np.ndarray, irrep_center: int = 0) -> np.ndarray:
        """Vector index of each (up, down) string pair, ``-1`` where it is not in the space.

        ``string_up`` and ``string_down`` broadcast against each other.
        """

        irrep_center = int(irrep_center)
        su, sd = np.broadcast_arrays(np.asarray(string_up, dtype=np.int64), np.asarray(string_down, dtype=np.int64))
        iu = self.str2irrep[su]
        idn = self.str2irrep[sd]
        cu = self.up.str2cnt[su]
        cd = self.down.str2cnt[sd]
        ok = (cu >= 0) & (cd >= 0) & ((iu ^ idn) == (irrep_center ^ self.target_irrep))
        idx = self.jumps[irrep_center, iu] + cu + self.up.num[iu] * cd
        return np.where(ok, idx, -1).astype(np.int64)

    def blocks(self, irrep_center: int = 0):
        """Yield ``(start, up_strings, down_strings)`` per nonempty block.

        The block occupies ``vec[start : start + nu * nd]`` and reshapes to
        ``(nd, nu)`` in C order.
        """

        irrep_center = int(irrep_center)
        local_target = irrep_center ^ self.target_irrep
        for iu in range(self.nirrep):
            idn = iu ^ local_target
            nu = int(self.up.num[iu])
            nd = int(self.down.num[idn])
            if nu == 0 or nd == 0:
                continue
            yield int(self.jumps[irrep_center, iu]), self.up.cnt2str[iu, :nu], self.down.cnt2str[idn, :nd]
