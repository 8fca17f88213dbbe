from __future__ import annotations

import numba
import pytest

from symfci import FCI, FCIConfig, fci_config, get_config, set_config, thread_limit
from symfci.config import resolve_num_threads
from symfci.log import Logger, clock, new_logger
from symfci.threads import numba_max_threads, numba_thread_limit, thread_info

from fci_reference import random_hamiltonian


def test_fci_config_restores_previous_values():
    before = get_config()
    with fci_config(cg_max_iter=7, davidson_num_vec=10) as cfg:
        assert cfg.cg_max_iter == 7
        assert get_config().davidson_num_vec == 10
    assert get_config() == before


def test_set_config_replaces_global():
    before = get_config()
    try:
        cfg = set_config(random_seed=123)
        assert get_config() is cfg
        assert cfg.random_seed == 123
    finally:
        set_config(**{k: getattr(before, k) for k in before.__dataclass_fields__})
    assert get_config() == before


@pytest.mark.parametrize(
    "kwargs",
    [
        {"davidson_rtol_base": 0.0},
        {"precond_cutoff": -1.0},
        {"davidson_num_vec": 3, "davidson_num_vec_keep": 3},
        {"davidson_max_cycle": 0},
        {"cg_max_iter": 0},
        {"num_threads": 0},
    ],
)
def test_config_validation(kwargs):
    with pytest.raises(ValueError):
        FCIConfig(**kwargs)


def test_fci_snapshots_config():
    ham = random_hamiltonian(3, [0, 0, 0], seed=0, group="c1")
    with fci_config(cg_max_iter=5):
        fci = FCI(ham, 1, 1, 0)
    assert fci.config.cg_max_iter == 5
    assert FCI(ham, 1, 1, 0).config.cg_max_iter == get_config().cg_max_iter
    explicit = FCIConfig(random_seed=9)
    assert FCI(ham, 1, 1, 0, config=explicit).config is explicit


def test_resolve_num_threads(monkeypatch):
    monkeypatch.delenv("SYMFCI_NUM_THREADS", raising=False)
    assert resolve_num_threads(None) is None
    assert resolve_num_threads(3) == 3
    with pytest.raises(ValueError):
        resolve_num_threads(0)
    monkeypatch.setenv("SYMFCI_NUM_THREADS", "2")
    assert resolve_num_threads(None) == 2
    with fci_config(num_threads=4):
        assert resolve_num_threads(None) == 4
    monkeypatch.setenv("SYMFCI_NUM_THREADS", "0")
    assert resolve_num_threads(None) is None
    monkeypatch.setenv("SYMFCI_NUM_THREADS", "many")
    with pytest.raises(ValueError):
        resolve_num_threads(None)


def test_thread_limit_restores_numba_pool():
    prev = numba.get_num_threads()
    with thread_limit(1):
        assert numba.get_num_threads() == 1
        assert thread_info()["numba"] == 1
    assert numba.get_num_threads() == prev
    with thread_limit(None):
        assert numba.get_num_threads() == prev
    with numba_thread_limit(numba_max_threads() + 5):
        assert numba.get_num_threads() == numba_max_threads()
    with pytest.raises(ValueError):
        with thread_limit(0):
            pass


def test_logger_levels(capsys):
    log = Logger(Logger.NOTE)
    log.warn("w %d", 1)
    log.note("n %d", 2)
    log.info("i %d", 3)
    log.debug("d %d", 4)
    out = capsys.readouterr().out
    assert "w 1" in out and "n 2" in out
    assert "i 3" not in out and "d 4" not in out

    log = new_logger(verbose=Logger.DEBUG)
    log.timer("step", *clock())
    assert "step: CPU" in capsys.readouterr().out
    assert new_logger(verbose=log) is log


def test_new_logger_reads_verbose_attribute():
    class Holder:
        verbose = 5

    assert new_logger(Holder()).verbose == 5
    assert new_logger().verbose == Logger.QUIET


def test_fci_info_output(capsys):
    ham = random_hamiltonian(4, [0, 1, 0, 1], seed=1, group="c2")
    FCI(ham, 2, 2, 0, verbose=Logger.INFO)
    out = capsys.readouterr().out
    assert "number of variables in the FCI vector" in out
    FCI(ham, 2, 2, 0, verbose=Logger.INFO, max_mem_mb=1e-6)
    assert "workspace constrained" in capsys.readouterr().out
    FCI(ham, 2, 2, 0)
    assert capsys.readouterr().out == ""
