from symfci.solvers.cg import CGResult, cg
from symfci.solvers.davidson import DavidsonResult, davidson

__all__ = ["CGResult", "DavidsonResult", "cg", "davidson"]
