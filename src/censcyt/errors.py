"""
Exceptions raised by the simulation entry points.

Classes
-------
InvalidConfigurationError
    A caller supplied option violates a documented constraint.
"""
from __future__ import annotations


class InvalidConfigurationError(ValueError):
    """A simulation option violates one of its constraints.

    Raised before any random draw is made, so a failing call leaves a shared
    generator untouched. The one exception is injected proportions that turn
    non-positive, which is only known once the clusters of every pair have
    been selected.

    Parameters
    ----------
    parameter : str
        Name of the offending option (e.g. ``"nr_diff"``).
    constraint : str
        Human readable description of the violated constraint.
    """

    def __init__(self, parameter: str, constraint: str):
        self.parameter = parameter
        self.constraint = constraint
        super().__init__(f"Invalid '{parameter}': {constraint}")
