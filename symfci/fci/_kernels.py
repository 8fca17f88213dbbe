"""Numba kernels for the determinant FCI engine.

Vector layout for a center irrep ``c`` (vector irrep ``target ^ c``):
``index = jumps_c[iu] + cnt_up + num_up[iu] * cnt_down`` with the down irrep
``iu ^ target ^ c``. Lookup tables are indexed ``[irrep_new, cnt_new, crea, anni]``
and hold the counter/irrep/sign of ``|old>`` with ``|new> = sign a+_crea a_anni |old>``.
"""

from __future__ import annotations

import numpy as np

import numba as nb  # type: ignore


@nb.njit(cache=True, parallel=True)
def build_lookup(cnt2str: np.ndarray, num: np.ndarray, str2cnt: np.ndarray, orbsym: np.ndarray, norb: int):
    nirrep = cnt2str.shape[0]
    maxnum = cnt2str.shape[1]
    lk_cnt = np.zeros((nirrep, maxnum, norb, norb), dtype=np.int32)
    lk_irrep = np.zeros((nirrep, maxnum, norb, norb), dtype=np.int8)
    lk_sign = np.zeros((nirrep, maxnum, norb, norb), dtype=np.int8)
    one = np.int64(1)
    for irrep in range(nirrep):
        for cnt in nb.prange(num[irrep]):
            new = cnt2str[irrep, cnt]
            phase_crea = 1
            for crea in range(norb):
                if (new >> crea) & one:
                    mid = new ^ (one << crea)
                    phase_anni = 1
                    for anni in range(norb):
                        if (mid >> anni) & one:
                            phase_anni = -phase_anni
                        else:
                            old = mid | (one << anni)
                            lk_cnt[irrep, cnt, crea, anni] = str2cnt[old]
                            lk_irrep[irrep, cnt, crea, anni] = irrep ^ orbsym[crea] ^ orbsym[anni]
                            lk_sign[irrep, cnt, crea, anni] = phase_crea * phase_anni
                    phase_crea = -phase_crea
    return lk_cnt, lk_irrep, lk_sign


@nb.njit(cache=True)
def up_irrep_of_counter(jumps_c: np.ndarray, counter: int) -> int:
    irrep_up = jumps_c.shape[0] - 1
    while counter < jumps_c[irrep_up - 1]:
        irrep_up -= 1
    return irrep_up - 1


@nb.njit(cache=True)
def decode_counter(jumps_c: np.ndarray, num_up: np.ndarray, local_target: int, counter: int):
    iu = up_irrep_of_counter(jumps_c, counter)
    nu = num_up[iu]
    rel = counter - jumps_c[iu]
    return iu, iu ^ local_target, rel % nu, rel // nu


@nb.njit(cache=True, parallel=True)
def gather_pairs(
    x: np.ndarray,
    work: np.ndarray,
    start: int,
    stop: int,
    pair_crea: np.ndarray,
    pair_anni: np.ndarray,
    jumps_c: np.ndarray,
    jumps_0: np.ndarray,
    num_up: np.ndarray,
    local_target: int,
    lk_cnt_up: np.ndarray,
    lk_irrep_up: np.ndarray,
    lk_sign_up: np.ndarray,
    lk_cnt_dn: np.ndarray,
    lk_sign_dn: np.ndarray,
) -> None:
    """work[pair, k] = [(E_ij + (1 - delta_ij) E_ji) x][start + k] for pairs i <= j."""

    npair = pair_crea.shape[0]
    for loc in nb.prange(stop - start):
        iu, idn, cu, cd = decode_counter(jumps_c, num_up, local_target, start + loc)
        nu = num_up[iu]
        for pair in range(npair):
            i = pair_crea[pair]
            j = pair_anni[pair]
            val = 0.0
            norient = 2 if j > i else 1
            for orient in range(norient):
                if orient == 0:
                    a = i
                    b = j
                else:
                    a = j
                    b = i
                s = lk_sign_up[iu, cu, a, b]
                if s != 0:
                    ou = lk_irrep_up[iu, cu, a, b]
                    val += s * x[jumps_0[ou] + lk_cnt_up[iu, cu, a, b] + num_up[ou] * cd]
                s = lk_sign_dn[idn, cd, a, b]
                if s != 0:
                    val += s * x[jumps_0[iu] + cu + nu * lk_cnt_dn[idn, cd, a, b]]
            work[pair, loc] = val


@nb.njit(cache=True, parallel=True)
def scatter_pairs(
    work: np.ndarray,
    out: np.ndarray,
    start: int,
    stop: int,
    pair_crea: np.ndarray,
    pair_anni: np.ndarray,
    jumps_c: np.ndarray,
    jumps_0: np.ndarray,
    num_up: np.ndarray,
    local_target: int,
    lk_cnt_up: np.ndarray,
    lk_irrep_up: np.ndarray,
    lk_sign_up: np.ndarray,
    lk_cnt_dn: np.ndarray,
    lk_sign_dn: np.ndarray,
) -> None:
    """out += sum_pair (E_ij + (1 - delta_ij) E_ji) work[pair].

    One parallel loop per (pair, orientation, spin): a fixed single
    excitation maps distinct source counters to distinct targets.
    """

    npair = pair_crea.shape[0]
    nvec = stop - start
    for pair in range(npair):
        i = pair_crea[pair]
        j = pair_anni[pair]
        norient = 2 if j > i else 1
        for orient in range(norient):
            # <target| E_ij |source> = sign of the entry (crea=j, anni=i) at source.
            if orient == 0:
                a = j
                b = i
            else:
                a = i
                b = j

            for loc in nb.prange(nvec):
                iu, idn, cu, cd = decode_counter(jumps_c, num_up, local_target, start + loc)
                s = lk_sign_up[iu, cu, a, b]
                if s != 0:
                    nu_irrep = lk_irrep_up[iu, cu, a, b]
                    out[jumps_0[nu_irrep] + lk_cnt_up[iu, cu, a, b] + num_up[nu_irrep] * cd] += s * work[pair, loc]

            for loc in nb.prange(nvec):
                iu, idn, cu, cd = decode_counter(jumps_c, num_up, local_target, start + loc)
                s = lk_sign_dn[idn, cd, a, b]
                if s != 0:
                    out[jumps_0[iu] + cu + num_up[iu] * lk_cnt_dn[idn, cd, a, b]] += s * work[pair, loc]


@nb.njit(cache=True, parallel=True)
def apply_excitation(
    x: np.ndarray,
    out: np.ndarray,
    crea: int,
    anni: int,
    result_target: int,
    jumps_orig: np.ndarray,
    jumps_res: np.ndarray,
    num_up: np.ndarray,
    num_dn: np.ndarray,
    lk_cnt_up: np.ndarray,
    lk_irrep_up: np.ndarray,
    lk_sign_up: np.ndarray,
    lk_cnt_dn: np.ndarray,
    lk_sign_dn: np.ndarray,
) -> None:
    """out += (E^up_{crea,anni} + E^down_{crea,anni}) x."""

    nirrep = num_up.shape[0]
    for ru in range(nirrep):
        rd = ru ^ result_target
        nu = num_up[ru]
        nd = num_dn[rd]
        # Up excitation: the down string is a spectator, stride num_up in both vectors.
        for cu in nb.prange(nu):
            s = lk_sign_up[ru, cu, crea, anni]
            if s != 0:
                ou = lk_irrep_up[ru, cu, crea, anni]
                res_base = jumps_res[ru] + cu
                orig_base = jumps_orig[ou] + lk_cnt_up[ru, cu, crea, anni]
                orig_stride = num_up[ou]
                for cd in range(nd):
                    out[res_base + nu * cd] += s * x[orig_base + orig_stride * cd]

        # Down excitation: contiguous runs over the up counter.
        for cd in nb.prange(nd):
            s = lk_sign_dn[rd, cd, crea, anni]
            if s != 0:
                res_base = jumps_res[ru] + nu * cd
                orig_base = jumps_orig[ru] + nu * lk_cnt_dn[rd, cd, crea, anni]
                for cu in range(nu):
                    out[res_base + cu] += s * x[orig_base + cu]


@nb.njit(cache=True, parallel=True)
def diag_ham(
    n: int,
    jumps_0: np.ndarray,
    num_up: np.ndarray,
    cnt2str_up: np.ndarray,
    cnt2str_dn: np.ndarray,
    target: int,
    gmat: np.ndarray,
    eri_coul: np.ndarray,
    eri_exch: np.ndarray,
) -> np.ndarray:
    """<D|H|D> without the constant; eri_coul[p,q] = (pp|qq), eri_exch[p,q] = (pq|qp)."""

    norb = gmat.shape[0]
    out = np.empty(n, dtype=np.float64)
    for idx in nb.prange(n):
        iu, idn, cu, cd = decode_counter(jumps_0, num_up, target, idx)
        su = cnt2str_up[iu, cu]
        sd = cnt2str_dn[idn, cd]
        res = 0.0
        for p in range(norb):
            up = (su >> p) & 1
            dp = (sd >> p) & 1
            n_p = up + dp
            if n_p == 0:
                continue
            res += n_p * gmat[p, p]
            for q in range(norb):
                uq = (su >> q) & 1
                dq = (sd >> q) & 1
                res += 0.5 * n_p * (uq + dq) * eri_coul[p, q]
                res += 0.5 * (n_p - up * uq - dp * dq) * eri_exch[p, q]
        out[idx] = res
    return out


@nb.njit(cache=True, parallel=True)
def diag_ham_squared(
    n: int,
    jumps_0: np.ndarray,
    num_up: np.ndarray,
    cnt2str_up: np.ndarray,
    cnt2str_dn: np.ndarray,
    target: int,
    orbsym: np.ndarray,
    irrep_orbs: np.ndarray,
    irrep_norb: np.ndarray,
    gmat: np.ndarray,
    eri: np.ndarray,
) -> np.ndarray:
    """<D|H^2|D> without the constant, from Wick contractions of
    g_ij g_kl E_ij E_kl + 1/2 [g (ij|kl) + (ij|kl) g] E E E + 1/4 (ab|cd)(ij|kl) E E E E.
    """

    norb = gmat.shape[0]
    out = np.empty(n, dtype=np.float64)
    for idx in nb.prange(n):
        iu, idn, cu, cd = decode_counter(jumps_0, num_up, target, idx)
        su = cnt2str_up[iu, cu]
        sd = cnt2str_dn[idn, cd]
        bu = np.empty(norb, dtype=np.int64)
        bd = np.empty(norb, dtype=np.int64)
        for k in range(norb):
            bu[k] = (su >> k) & 1
            bd[k] = (sd >> k) & 1

        jmat = np.zeros((norb, norb), dtype=np.float64)  # (ij|kk) n_k
        kreg_up = np.zeros((norb, norb), dtype=np.float64)  # (ik|kj) n_k,up
        kreg_dn = np.zeros((norb, norb), dtype=np.float64)
        kbar_up = np.zeros((norb, norb), dtype=np.float64)  # (ik|kj) (1 - n_k,up)
        kbar_dn = np.zeros((norb, norb), dtype=np.float64)
        for i in range(norb):
            for j in range(i, norb):
                if orbsym[i] != orbsym[j]:
                    continue
                v_j = 0.0
                v_ru = 0.0
                v_rd = 0.0
                v_bu = 0.0
                v_bd = 0.0
                for k in range(norb):
                    t = eri[i, k, k, j]
                    v_j += eri[i, j, k, k] * (bu[k] + bd[k])
                    v_ru += t * bu[k]
                    v_rd += t * bd[k]
                    v_bu += t * (1 - bu[k])
                    v_bd += t * (1 - bd[k])
                jmat[i, j] = v_j
                jmat[j, i] = v_j
                kreg_up[i, j] = v_ru
                kreg_up[j, i] = v_ru
                kreg_dn[i, j] = v_rd
                kreg_dn[j, i] = v_rd
                kbar_up[i, j] = v_bu
                kbar_up[j, i] = v_bu
                kbar_dn[i, j] = v_bd
                kbar_dn[j, i] = v_bd

        temp = 0.0
        for i in range(norb):
            n_i = bu[i] + bd[i]
            temp += gmat[i, i] * n_i + 0.5 * (jmat[i, i] * n_i + kbar_up[i, i] * bu[i] + kbar_dn[i, i] * bd[i])
        res = temp * temp

        for p in range(norb):
            for q in range(norb):
                if orbsym[p] != orbsym[q]:
                    continue
                special = bu[p] * (1 - bu[q]) + bd[p] * (1 - bd[q])
                gj = gmat[p, q] + jmat[p, q]
                kc_up = (kbar_up[p, q] - kreg_up[p, q]) * bu[p] * (1 - bu[q])
                kc_dn = (kbar_dn[p, q] - kreg_dn[p, q]) * bd[p] * (1 - bd[q])
                res += gj * (special * gj + kc_up + kc_dn) + 0.25 * (kc_up * kc_up + kc_dn * kc_dn)

        # 0.5 (ak|ci)^2 [n_a(1-n_k)]_s [n_c(1-n_i)]_t - 0.5 (ak|ci)(ai|ck) [n_a n_c (1-n_i)(1-n_k)]_s
        for k in range(norb):
            if bu[k] + bd[k] == 2:
                continue
            for a in range(norb):
                ak_up = bu[a] * (1 - bu[k])
                ak_dn = bd[a] * (1 - bd[k])
                special_ak = ak_up + ak_dn
                if special_ak == 0:
                    continue
                irrep_ak = orbsym[a] ^ orbsym[k]
                for i in range(norb):
                    if bu[i] + bd[i] == 2:
                        continue
                    irrep_c = irrep_ak ^ orbsym[i]
                    bar_i_up = 1 - bu[i]
                    bar_i_dn = 1 - bd[i]
                    for cc in range(irrep_norb[irrep_c]):
                        c = irrep_orbs[irrep_c, cc]
                        f_up = bu[c] * bar_i_up
                        f_dn = bd[c] * bar_i_dn
                        pref1 = (f_up + f_dn) * special_ak
                        pref2 = ak_up * f_up + ak_dn * f_dn
                        e_akci = eri[a, k, c, i]
                        res += 0.5 * e_akci * (pref1 * e_akci - pref2 * eri[a, i, c, k])
        out[idx] = res
    return out


@nb.njit(cache=True, parallel=True)
def spin_squared(
    x: np.ndarray,
    jumps_0: np.ndarray,
    num_up: np.ndarray,
    target: int,
    orbsym: np.ndarray,
    lk_cnt_up: np.ndarray,
    lk_sign_up: np.ndarray,
    lk_cnt_dn: np.ndarray,
    lk_sign_dn: np.ndarray,
) -> float:
    norb = orbsym.shape[0]
    n = x.shape[0]
    result = 0.0
    for idx in nb.prange(n):
        iu, idn, cu, cd = decode_counter(jumps_0, num_up, target, idx)
        xv = x[idx]
        x2 = xv * xv
        local = 0.0
        for i in range(norb):
            d_ii = np.int64(lk_sign_up[iu, cu, i, i]) - np.int64(lk_sign_dn[idn, cd, i, i])
            local += 0.75 * d_ii * d_ii * x2
            for j in range(i + 1, norb):
                d_jj = np.int64(lk_sign_up[iu, cu, j, j]) - np.int64(lk_sign_dn[idn, cd, j, j])
                local += 0.5 * d_ii * d_jj * x2

                iu_bis = iu ^ orbsym[i] ^ orbsym[j]
                # -(a+_i,up a_j,up)(a+_j,down a_i,down)
                s1 = np.int64(lk_sign_up[iu, cu, i, j]) * np.int64(lk_sign_dn[idn, cd, j, i])
                if s1 != 0:
                    loc = jumps_0[iu_bis] + lk_cnt_up[iu, cu, i, j] + num_up[iu_bis] * lk_cnt_dn[idn, cd, j, i]
                    local -= s1 * x[loc] * xv
                # -(a+_j,up a_i,up)(a+_i,down a_j,down)
                s2 = np.int64(lk_sign_up[iu, cu, j, i]) * np.int64(lk_sign_dn[idn, cd, i, j])
                if s2 != 0:
                    loc = jumps_0[iu_bis] + lk_cnt_up[iu, cu, j, i] + num_up[iu_bis] * lk_cnt_dn[idn, cd, i, j]
                    local -= s2 * x[loc] * xv
        result += local
    return result


@nb.njit(cache=True)
def symmetrize_2rdm(rdm2: np.ndarray, orbsym: np.ndarray) -> None:
    """Copy rdm2[c2,c1,a2,a1] (c1,c2,a2 >= a1) to its three partners."""

    norb = orbsym.shape[0]
    for a1 in range(norb):
        for c1 in range(a1, norb):
            prod1 = orbsym[c1] ^ orbsym[a1]
            for c2 in range(a1, norb):
                for a2 in range(a1, norb):
                    if (orbsym[c2] ^ orbsym[a2]) != prod1:
                        continue
                    v = rdm2[c2, c1, a2, a1]
                    rdm2[c1, c2, a1, a2] = v
                    rdm2[a2, a1, c2, c1] = v
                    rdm2[a1, a2, c1, c2] = v


@nb.njit(cache=True)
def symmetrize_3rdm(rdm3: np.ndarray, orbsym: np.ndarray) -> None:
    """Copy rdm3[c3,c2,c1,a3,a2,a1] (c3 >= c2 >= a1; c1,a3,a2 >= a1) to its eleven partners."""

    norb = orbsym.shape[0]
    for a1 in range(norb):
        for c1 in range(a1, norb):
            p1 = orbsym[c1] ^ orbsym[a1]
            for c2 in range(a1, norb):
                p2 = p1 ^ orbsym[c2]
                for a2 in range(a1, norb):
                    p3 = p2 ^ orbsym[a2]
                    for c3 in range(c2, norb):
                        p4 = p3 ^ orbsym[c3]
                        for a3 in range(a1, norb):
                            if p4 != orbsym[a3]:
                                continue
                            v = rdm3[c3, c2, c1, a3, a2, a1]
                            rdm3[c2, c3, c1, a2, a3, a1] = v
                            rdm3[c2, c1, c3, a2, a1, a3] = v
                            rdm3[c3, c1, c2, a3, a1, a2] = v
                            rdm3[c1, c3, c2, a1, a3, a2] = v
                            rdm3[c1, c2, c3, a1, a2, a3] = v
                            rdm3[a3, a2, a1, c3, c2, c1] = v
                            rdm3[a2, a3, a1, c2, c3, c1] = v
                            rdm3[a2, a1, a3, c2, c1, c3] = v
                            rdm3[a3, a1, a2, c3, c1, c2] = v
                            rdm3[a1, a3, a2, c1, c3, c2] = v
                            rdm3[a1, a2, a3, c1, c2, c3] = v
