"""
Engine: registros de cambio y motor de convergencia.
"""

from converge.core.engine.records import ChangeRecord, ObservedState, Outcome, ResourceState
from converge.core.engine.convergence import ConvergenceEngine, RunReport, converge

__all__ = ["ChangeRecord", "ObservedState", "Outcome", "ResourceState", "ConvergenceEngine", "RunReport", "converge"]
