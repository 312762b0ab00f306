"""Utility functions for SAEM models."""

# Note: Imports are done lazily to avoid circular dependencies.
# Import directly from submodules:
#   from saem.core.utils.transforms import power_transform, inverse_transform
#   from saem.core.utils.residual_models import residual_scale
#   from saem.core.utils.printing import model_summary
