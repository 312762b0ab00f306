from .parameters_checker import parameters_checker

__all__ = ["parameters_checker"]
