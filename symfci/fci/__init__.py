from symfci.fci.engine import FCI, GroundState, HamiltonianOperator
from symfci.fci.greens import GFAmplitude, GFMatrix
from symfci.fci.tables import DeterminantTables

__all__ = [
    "DeterminantTables",
    "FCI",
    "GFAmplitude",
    "GFMatrix",
    "GroundState",
    "HamiltonianOperator",
]
