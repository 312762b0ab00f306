from .estimator import FitInterrupted, estimator

__all__ = ["estimator", "FitInterrupted"]
