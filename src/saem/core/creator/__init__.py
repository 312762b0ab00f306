from .architector import architector, n_information_parameters
from .initialiser import (
    history_columns,
    initialiser,
    stack_events,
    stack_observations,
    step_schedules,
)

__all__ = [
    "architector",
    "n_information_parameters",
    "initialiser",
    "step_schedules",
    "stack_events",
    "stack_observations",
    "history_columns",
]
