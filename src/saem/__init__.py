from saem.core.estimator.estimator import FitInterrupted
from saem.core.saem import SAEM
from saem.utils import show_versions

__all__ = ["SAEM", "FitInterrupted", "show_versions"]
