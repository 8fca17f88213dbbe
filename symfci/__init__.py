"""symfci: symmetry-blocked determinant FCI with numba kernels."""

from importlib.metadata import PackageNotFoundError, version as _dist_version

from symfci.config import FCIConfig, fci_config, get_config, set_config
from symfci.fci import FCI, GroundState, HamiltonianOperator
from symfci.hamiltonian import Hamiltonian
from symfci.irreps import Irreps, irrep_product
from symfci.threads import thread_limit

try:
    __version__ = _dist_version("symfci")
except PackageNotFoundError:  # pragma: no cover
    __version__ = "0.1.0"

__all__ = [
    "__version__",
    # Core classes
    "FCI",
    "Hamiltonian",
    "Irreps",
    "GroundState",
    "HamiltonianOperator",
    # Configuration
    "FCIConfig",
    "fci_config",
    "get_config",
    "set_config",
    "thread_limit",
    "irrep_product",
]
