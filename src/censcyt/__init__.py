"""
censcyt: Differential abundance analysis with a censored covariate.

This package provides a simulator for high-dimensional cytometry cluster
counts with a known differential abundance signal tied to a (possibly
right-censored) covariate such as survival time, used to validate methods that
combine multiple imputation with generalized linear mixed models.

Modules
-------
config
    Option validation and resolution into tagged variants.
dirichlet_multinomial
    Dirichlet-Multinomial likelihood, fitting, sampling and variance.
parameters
    Derivation of alphas, theta, sizes and names from a reference.
covariates
    Primary covariate and binary group covariate generation.
selection
    Selection of differentially abundant cluster pairs.
effects
    Logistic back-solving of covariate effects for a cluster pair.
simulate
    The simulation pipeline and its public entry point.
containers
    AnnData input / output.
diagnostics
    Summaries of simulated counts and recovery of injected effects.
errors
    Exception types.

Example
-------
>>> import numpy as np
>>> import censcyt
>>> rng = np.random.default_rng(0)
>>> out = censcyt.simulate_multicluster(alphas=rng.uniform(10, 100, 20),
...                                     sizes=rng.uniform(1e4, 1e5, 10),
...                                     nr_diff=4, rng=rng)
>>> int(out.row_data["paired"].notna().sum())
4
"""

__version__ = "0.1.0"

# config
from .config import (
    DEFAULT_GROUP_SLOPE_FACTOR,
    DEFAULT_SLOPE_FACTOR,
    ClusterSelection,
    EffectSpec,
    GroupSpec,
    SimulationConfig,
)

# containers
from .containers import (
    merge_into_anndata,
    reference_from_anndata,
    to_anndata,
)

# covariates
from .covariates import (
    generate_covariate,
    generate_group_covariate,
    validate_covariate,
    validate_group,
)

# diagnostics
from .diagnostics import (
    cluster_proportions,
    per_cluster_dispersion,
    recover_pair_coefficients,
    zero_fraction,
)

# dirichlet_multinomial
from .dirichlet_multinomial import (
    DirichletMultinomialFit,
    dm_log_likelihood,
    fit_dirichlet_multinomial,
    simulate_dirichlet_multinomial,
    theta_from_alphas,
    var_dirichlet_multinomial,
)

# effects
from .effects import (
    PairEffect,
    inject_pair_effect,
    inv_logit,
    logit,
)

# errors
from .errors import InvalidConfigurationError

# parameters
from .parameters import (
    ResolvedParameters,
    reference_matrix,
    resolve_nr_samples,
    resolve_parameters,
)

# selection
from .selection import (
    resolve_explicit_pairs,
    select_min_distance,
    select_pair,
    select_random,
)

# simulate
from .simulate import (
    SimulationResult,
    simulate_from_config,
    simulate_multicluster,
)

__all__ = [
    # config
    "DEFAULT_GROUP_SLOPE_FACTOR",
    "DEFAULT_SLOPE_FACTOR",
    "ClusterSelection",
    "EffectSpec",
    "GroupSpec",
    "SimulationConfig",
    # containers
    "merge_into_anndata",
    "reference_from_anndata",
    "to_anndata",
    # covariates
    "generate_covariate",
    "generate_group_covariate",
    "validate_covariate",
    "validate_group",
    # diagnostics
    "cluster_proportions",
    "per_cluster_dispersion",
    "recover_pair_coefficients",
    "zero_fraction",
    # dirichlet_multinomial
    "DirichletMultinomialFit",
    "dm_log_likelihood",
    "fit_dirichlet_multinomial",
    "simulate_dirichlet_multinomial",
    "theta_from_alphas",
    "var_dirichlet_multinomial",
    # effects
    "PairEffect",
    "inject_pair_effect",
    "inv_logit",
    "logit",
    # errors
    "InvalidConfigurationError",
    # parameters
    "ResolvedParameters",
    "reference_matrix",
    "resolve_nr_samples",
    "resolve_parameters",
    # selection
    "resolve_explicit_pairs",
    "select_min_distance",
    "select_pair",
    "select_random",
    # simulate
    "SimulationResult",
    "simulate_from_config",
    "simulate_multicluster",
]
