"""
Injection of covariate effects into pairs of clusters.

For a differential pair with baseline proportions π0 the proportions follow a
logistic model

    logit(π_k(z, g)) = b0_k + b1_k · z + b2_k · g

with z the primary covariate and g the optional 0/1 group covariate. The
coefficients are back-solved from target proportions: at the maximal observed
covariate a factor f of the first (smaller) cluster's baseline proportion is
moved to its partner,

    π_max = (π0_1 - f·π0_1, π0_2 + f·π0_1),

so b0 = logit(π0) and b1 = (logit(π_max) - b0) / z_max. b2 is obtained the
same way at z = 0, g = 1 with its own factor.

Classes
-------
PairEffect
    Coefficients and per sample proportions of one pair.

Functions
---------
logit, inv_logit
    Log-odds transform and its inverse.
inject_pair_effect
    Back-solve coefficients and compute per sample proportions.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np
from scipy.special import expit

from .config import DEFAULT_GROUP_SLOPE_FACTOR, DEFAULT_SLOPE_FACTOR


def logit(p):
    """Log-odds ``log(p / (1 - p))``."""
    p = np.asarray(p, dtype=float)
    return np.log(p / (1 - p))


def inv_logit(x):
    """Inverse logit ``1 / (1 + exp(-x))``."""
    return expit(x)


@dataclass(frozen=True, eq=False)
class PairEffect:
    """Effect of one differential pair.

    All arrays are aligned with the pair order as selected (not sorted).

    Attributes
    ----------
    b0 : np.ndarray
        Intercepts, shape (2,).
    b1 : np.ndarray
        Covariate slopes, shape (2,).
    b2 : np.ndarray or None
        Group slopes, shape (2,), if a group covariate is active.
    proportions : np.ndarray
        Per sample proportions of the two clusters, shape (n_samples, 2).
    """
    b0: np.ndarray
    b1: np.ndarray
    b2: Optional[np.ndarray]
    proportions: np.ndarray


def _transfer(pi0: np.ndarray, factor: float) -> np.ndarray:
    moved = pi0[0] * factor
    return np.array([pi0[0] - moved, pi0[1] + moved])


def inject_pair_effect(
        pi0: np.ndarray,
        covariate: np.ndarray,
        group_covariate: Optional[np.ndarray] = None,
        slope: Optional[float] = None,
        slope_factor: float = DEFAULT_SLOPE_FACTOR,
        group_slope: Optional[float] = None,
        group_slope_factor: float = DEFAULT_GROUP_SLOPE_FACTOR,
        enforce_sum_alpha: bool = False,
) -> PairEffect:
    """Back-solve logistic coefficients for a pair and evaluate them.

    Parameters
    ----------
    pi0 : np.ndarray
        Baseline proportions of the two clusters, in selection order.
    covariate : np.ndarray
        Primary covariate per sample; its maximum must be positive.
    group_covariate : np.ndarray, optional
        0/1 group indicator per sample.
    slope : float, optional
        Explicit (negative) b1 of the first cluster after ordering; overrides
        the factor based value.
    slope_factor : float
        Share of the first cluster's proportion transferred at the maximal
        covariate.
    group_slope : float, optional
        Explicit (negative) b2 of the first cluster after ordering.
    group_slope_factor : float
        Share transferred for group members at covariate 0.
    enforce_sum_alpha : bool
        Keep the pair order as given and set the second cluster's proportion
        to ``pi0_2 - (pi_1 - pi0_1)``, conserving the pair's combined
        proportion. The second cluster then no longer follows the logistic
        model exactly.

    Returns
    -------
    PairEffect
    """
    pi0 = np.asarray(pi0, dtype=float)
    covariate = np.asarray(covariate, dtype=float)
    zmax = float(np.max(covariate))
    if zmax <= 0:
        raise ValueError("the maximal covariate value must be positive.")

    # the smaller cluster comes first unless the given order must be kept
    order = np.arange(2) if enforce_sum_alpha else np.argsort(pi0, kind="stable")
    pi0 = pi0[order]

    b0 = logit(pi0)
    b1 = (logit(_transfer(pi0, slope_factor)) - b0) / zmax
    if slope is not None:
        b1[0] = slope
    eta = b0[np.newaxis, :] + np.outer(covariate, b1)

    b2 = None
    if group_covariate is not None:
        b2 = logit(_transfer(pi0, group_slope_factor)) - b0
        if group_slope is not None:
            b2[0] = group_slope
        eta = eta + np.outer(np.asarray(group_covariate, dtype=float), b2)

    pi = inv_logit(eta)
    if enforce_sum_alpha:
        pi[:, 1] = pi0[1] - (pi[:, 0] - pi0[0])

    restore = np.argsort(order)
    return PairEffect(
        b0=b0[restore],
        b1=b1[restore],
        b2=None if b2 is None else b2[restore],
        proportions=pi[:, restore],
    )
