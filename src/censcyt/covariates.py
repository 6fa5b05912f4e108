"""
Generation of the primary covariate and the optional group covariate.

Functions
---------
validate_covariate
    Check given covariate values against the number of samples.
validate_group
    Check a group option against the number of samples.
generate_covariate
    Per sample values of the primary (e.g. survival time) covariate.
generate_group_covariate
    Binary group membership indicator.
"""
from __future__ import annotations

from typing import Optional, Sequence

import numpy as np

from .config import GroupSpec
from .errors import InvalidConfigurationError


def validate_covariate(
        nr_samples: int,
        covariate: Optional[Sequence[float]],
        require_positive_max: bool = False,
) -> Optional[np.ndarray]:
    """Return given covariate values as an array, or None if unset.

    ``require_positive_max`` rejects values whose maximum is not positive;
    the effect slopes are scaled by that maximum.
    """
    if covariate is None:
        return None

    values = np.array(covariate, dtype=float).ravel()
    if values.size != nr_samples:
        raise InvalidConfigurationError(
            "covariate", f"expected {nr_samples} values (one per sample), got {values.size}"
        )
    if require_positive_max and values.max() <= 0:
        raise InvalidConfigurationError("covariate", "the maximal value must be positive")
    return values


def validate_group(nr_samples: int, group: GroupSpec) -> Optional[int]:
    """Return the number of group members to draw.

    None for the ``none`` and ``indices`` variants, which draw nothing.
    """
    if group.kind == "none":
        return None

    if group.kind == "indices":
        members = np.asarray(group.indices, dtype=int)
        if members.size and members.max() >= nr_samples:
            raise InvalidConfigurationError(
                "group", f"sample indices must be smaller than {nr_samples}"
            )
        return None

    if group.kind == "fraction":
        n_members = int(round(group.fraction * nr_samples))
    elif group.kind == "count":
        n_members = int(group.count)
    else:
        n_members = int(round(nr_samples / 2))

    if n_members > nr_samples:
        raise InvalidConfigurationError(
            "group", f"cannot assign {n_members} of {nr_samples} samples to the group"
        )
    return n_members


def generate_covariate(
        nr_samples: int,
        rng: np.random.Generator,
        covariate: Optional[Sequence[float]] = None,
) -> np.ndarray:
    """Return the primary covariate for every sample.

    Parameters
    ----------
    nr_samples : int
        Number of samples.
    rng : np.random.Generator
        Random number source; only used when ``covariate`` is None.
    covariate : array-like, optional
        Given values, used as-is. If None, values are drawn from an
        exponential distribution with rate 1.

    Returns
    -------
    np.ndarray
        Covariate values, shape (nr_samples,).
    """
    if covariate is None:
        return rng.exponential(scale=1.0, size=nr_samples)
    return validate_covariate(nr_samples, covariate)


def generate_group_covariate(
        nr_samples: int,
        group: GroupSpec,
        rng: np.random.Generator,
) -> Optional[np.ndarray]:
    """Return a 0/1 group indicator, or None if no group is requested.

    Members are drawn uniformly without replacement for the ``fraction``,
    ``count`` and ``half`` variants; ``indices`` selects samples by 0-based
    position.

    Examples
    --------
    >>> rng = np.random.default_rng(1)
    >>> int(generate_group_covariate(6, GroupSpec(kind="count", count=3), rng).sum())
    3
    """
    if not group.active:
        return None

    n_members = validate_group(nr_samples, group)
    if n_members is None:
        members = np.asarray(group.indices, dtype=int)
    else:
        members = rng.choice(nr_samples, size=n_members, replace=False)

    indicator = np.zeros(nr_samples, dtype=int)
    indicator[members] = 1
    return indicator
