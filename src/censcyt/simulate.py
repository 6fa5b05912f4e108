"""
Simulation of multi-cluster counts with covariate dependent abundance.

Pipeline:

1. resolve alphas, theta, sizes and names (:mod:`censcyt.parameters`);
2. generate the primary covariate and the optional group covariate
   (:mod:`censcyt.covariates`);
3. for every differential pair, select two clusters
   (:mod:`censcyt.selection`) and inject the effect (:mod:`censcyt.effects`);
4. draw Dirichlet-Multinomial counts per sample and assemble metadata.

One random generator is threaded through all steps in this order, so a fixed
seed reproduces the whole output.

Classes
-------
SimulationResult
    Output bundle.

Functions
---------
simulate_multicluster
    Public entry point taking loosely typed options.
simulate_from_config
    Run the pipeline for a validated :class:`~censcyt.config.SimulationConfig`.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple, Union

import anndata as ad
import numpy as np
import pandas as pd

from .config import SimulationConfig
from .containers import merge_into_anndata, to_anndata
from .covariates import (
    generate_covariate,
    generate_group_covariate,
    validate_covariate,
    validate_group,
)
from .dirichlet_multinomial import simulate_dirichlet_multinomial, var_dirichlet_multinomial
from .effects import PairEffect, inject_pair_effect, logit
from .errors import InvalidConfigurationError
from .parameters import ResolvedParameters, reference_matrix, resolve_nr_samples, resolve_parameters
from .selection import resolve_explicit_pairs, select_pair

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class SimulationResult:
    """Output of :func:`simulate_multicluster`.

    Attributes
    ----------
    counts : pd.DataFrame or ad.AnnData
        Simulated counts, cluster x sample. An AnnData object (samples as
        observations) if the reference was AnnData or one was requested.
    row_data : pd.DataFrame
        Per cluster ``cluster_id``, ``b0``, ``b1`` (``b2`` with a group
        covariate) and ``paired`` (1-based pair number, NA if not
        differential).
    col_data : pd.DataFrame
        Per sample ``sample``, ``covariate`` (and ``group_covariate``).
    alphas : pd.DataFrame
        Dirichlet parameters used per sample, sample x cluster.
    theta : float
        Dispersion parameter used for sampling.
    var_counts : pd.DataFrame
        Dirichlet-Multinomial count variances, sample x cluster.
    pairs : list of tuple
        Positions of the clusters of each differential pair.
    count_matrix : pd.DataFrame
        Plain cluster x sample counts, regardless of the ``counts`` format.
    """
    counts: Union[pd.DataFrame, ad.AnnData]
    row_data: pd.DataFrame
    col_data: pd.DataFrame
    alphas: pd.DataFrame
    theta: float
    var_counts: pd.DataFrame
    pairs: List[Tuple[int, int]]
    count_matrix: pd.DataFrame

    @property
    def proportions(self) -> pd.DataFrame:
        """Mean cluster proportions per sample (rows sum to 1)."""
        return self.alphas.div(self.alphas.sum(axis=1), axis=0)

    @property
    def differential_clusters(self) -> List[Any]:
        """Names of all clusters with an injected effect."""
        return self.row_data.index[self.row_data["paired"].notna()].tolist()


def simulate_multicluster(
        counts: Any = None,
        nr_diff: int = 2,
        nr_samples: Optional[int] = None,
        alphas: Optional[Sequence[float]] = None,
        theta: Optional[float] = None,
        sizes: Optional[Sequence[float]] = None,
        covariate: Optional[Sequence[float]] = None,
        slope: Any = None,
        group: Any = None,
        group_slope: Any = None,
        diff_cluster: Any = False,
        enforce_sum_alpha: bool = False,
        return_annotated: bool = False,
        return_summarized_experiment: Optional[bool] = None,
        seed: Optional[int] = None,
        rng: Optional[np.random.Generator] = None,
) -> SimulationResult:
    """Simulate multi-cluster counts with covariate associated clusters.

    Counts are drawn from a Dirichlet-Multinomial distribution whose
    parameters either come from a reference data set or are given
    explicitly. For ``nr_diff / 2`` pairs of clusters, the proportions depend
    on ``covariate`` (and optionally on a binary ``group``) through a
    logistic link, with mass moving between the two clusters of a pair.

    Parameters
    ----------
    counts : np.ndarray, pd.DataFrame or ad.AnnData, optional
        Reference counts. Arrays and DataFrames are cluster x sample; AnnData
        objects hold samples as observations and clusters as variables.
    nr_diff : int, default 2
        Number of differential clusters; has to be even.
    nr_samples : int, optional
        Number of simulated samples; defaults to the reference sample count or
        ``len(sizes)``.
    alphas : array-like, optional
        Dirichlet-Multinomial alphas; estimated from ``counts`` if None.
    theta : float, optional
        Dispersion parameter in (0, 1); estimated from ``counts`` or set to
        ``1 / (1 + sum(alphas))`` if None.
    sizes : array-like, optional
        Total count per sample; reference totals if None.
    covariate : array-like, optional
        One value per sample; drawn from Exp(1) if None.
    slope : float, tuple, np.ndarray or list, optional
        Negative number(s): covariate coefficient of the first cluster of
        each pair. A list instead gives, per pair, the factor in [0, 1) by
        which that cluster's proportion at the maximal covariate is smaller
        than at baseline (default 0.7).
    group : None, bool, float, int or collection of int, optional
        Second, binary covariate: a fraction of samples, a number of samples,
        0-based sample indices, or True for half of the samples. None or
        False disables it.
    group_slope : float, tuple, np.ndarray or list, optional
        As ``slope`` for the group covariate (default factor 0.2).
    diff_cluster : bool or sequence of pairs, default False
        False chooses pairs with minimal distance of baseline proportions,
        True chooses them at random; a sequence of ``nr_diff / 2`` pairs of
        cluster names (or positions) fixes them.
    enforce_sum_alpha : bool, default False
        Keep the combined proportion of each pair constant, so the remaining
        clusters are unaffected. The second cluster of a pair then does not
        follow the logistic model exactly.
    return_annotated : bool, default False
        Return the counts as an AnnData object. Ignored for an AnnData
        reference, whose counts are always returned as a copy of the
        reference with ``X`` replaced.
    return_summarized_experiment : bool, optional
        Alias of ``return_annotated``. Passing False together with
        ``return_annotated=True`` raises.
    seed : int, optional
        Seed for a new generator; ignored if ``rng`` is given.
    rng : np.random.Generator, optional
        Random number source shared by all steps.

    Returns
    -------
    SimulationResult

    Raises
    ------
    InvalidConfigurationError
        If an option violates its constraints. Apart from injected
        proportions that turn non-positive, this happens before ``rng`` is
        advanced.

    Examples
    --------
    >>> rng = np.random.default_rng(1)
    >>> out = simulate_multicluster(alphas=rng.uniform(10, 100, 20),
    ...                             sizes=rng.uniform(1e4, 1e5, 10),
    ...                             nr_diff=4, group=True, rng=rng)
    >>> out.counts.shape
    (20, 10)
    """
    if return_summarized_experiment is not None:
        if return_annotated and not return_summarized_experiment:
            raise InvalidConfigurationError(
                "return_summarized_experiment", "conflicts with 'return_annotated=True'"
            )
        return_annotated = bool(return_summarized_experiment)

    config = SimulationConfig.from_options(
        nr_diff=nr_diff,
        nr_samples=nr_samples,
        alphas=alphas,
        theta=theta,
        sizes=sizes,
        covariate=covariate,
        slope=slope,
        group=group,
        group_slope=group_slope,
        diff_cluster=diff_cluster,
        enforce_sum_alpha=enforce_sum_alpha,
        return_annotated=return_annotated,
    )
    if rng is None:
        rng = np.random.default_rng(seed)
    return simulate_from_config(config, counts=counts, rng=rng)


def _inject_effects(
        config: SimulationConfig,
        params: ResolvedParameters,
        covariate: np.ndarray,
        group_covariate: Optional[np.ndarray],
        rng: np.random.Generator,
) -> Tuple[np.ndarray, List[Tuple[int, int]], List[PairEffect]]:
    """Select all differential pairs and return the sample x cluster alphas."""
    alpha_sum = params.alphas.sum()
    alpha_matrix = np.tile(params.alphas, (params.nr_samples, 1))
    proportions = params.proportions

    explicit_pairs = ()
    if config.diff_cluster.kind == "explicit":
        explicit_pairs = resolve_explicit_pairs(config.diff_cluster.pairs, params.cluster_names)

    pool = tuple(range(params.n_clusters))
    pairs, effects = [], []
    for i in range(config.n_pairs):
        pair, pool = select_pair(config.diff_cluster, i, pool, params.alphas, rng, explicit_pairs)
        effect = inject_pair_effect(
            proportions[list(pair)],
            covariate,
            group_covariate,
            slope=config.slope.slope_for(i),
            slope_factor=config.slope.factor_for(i, config.slope_factor),
            group_slope=config.group_slope.slope_for(i),
            group_slope_factor=config.group_slope.factor_for(i, config.group_slope_factor),
            enforce_sum_alpha=config.enforce_sum_alpha,
        )
        logger.debug(
            "Pair %d: clusters %s, b0=%s, b1=%s",
            i + 1, [params.cluster_names[c] for c in pair], effect.b0, effect.b1,
        )
        alpha_matrix[:, list(pair)] = effect.proportions * alpha_sum
        pairs.append(pair)
        effects.append(effect)

    return alpha_matrix, pairs, effects


def _row_data(
        params: ResolvedParameters,
        pairs: List[Tuple[int, int]],
        effects: List[PairEffect],
        with_group: bool,
) -> pd.DataFrame:
    coef_cols = ["b0", "b1", "b2"] if with_group else ["b0", "b1"]
    row_data = pd.DataFrame(
        {
            "cluster_id": params.cluster_names,
            "b0": logit(params.proportions),
            "b1": 0.0,
        },
        index=pd.Index(params.cluster_names),
    )
    if with_group:
        row_data["b2"] = 0.0
    row_data["paired"] = pd.array([pd.NA] * params.n_clusters, dtype="Int64")

    for i, (pair, effect) in enumerate(zip(pairs, effects), start=1):
        coefs = [effect.b0, effect.b1] + ([effect.b2] if with_group else [])
        row_data.iloc[list(pair), [row_data.columns.get_loc(c) for c in coef_cols]] = np.column_stack(coefs)
        row_data.iloc[list(pair), row_data.columns.get_loc("paired")] = i
    return row_data


def _col_data(
        params: ResolvedParameters,
        covariate: np.ndarray,
        group_covariate: Optional[np.ndarray],
) -> pd.DataFrame:
    col_data = pd.DataFrame(
        {"sample": params.sample_names, "covariate": covariate},
        index=pd.Index(params.sample_names),
    )
    if group_covariate is not None:
        col_data["group_covariate"] = group_covariate
    return col_data


def _sample_counts(
        alpha_matrix: np.ndarray,
        sizes: np.ndarray,
        theta: float,
        rng: np.random.Generator,
) -> Tuple[np.ndarray, np.ndarray]:
    """Draw counts and compute variances per sample.

    Returns ``(counts, variances)``, both sample x cluster.
    """
    probs = alpha_matrix / alpha_matrix.sum(axis=1, keepdims=True)
    variances = np.vstack([
        var_dirichlet_multinomial(alpha_row, size) for alpha_row, size in zip(alpha_matrix, sizes)
    ])
    counts = np.vstack([
        simulate_dirichlet_multinomial(size, p, theta, rng) for p, size in zip(probs, sizes)
    ])
    return counts, variances


def simulate_from_config(
        config: SimulationConfig,
        counts: Any = None,
        rng: Optional[np.random.Generator] = None,
) -> SimulationResult:
    """Run the simulation pipeline for a validated configuration.

    Parameters
    ----------
    config : SimulationConfig
        Options, see :meth:`SimulationConfig.from_options`.
    counts : np.ndarray, pd.DataFrame or ad.AnnData, optional
        Reference counts, see :func:`simulate_multicluster`.
    rng : np.random.Generator, optional
        Random number source; a fresh unseeded generator if None.

    Returns
    -------
    SimulationResult
    """
    if rng is None:
        rng = np.random.default_rng()

    reference = reference_matrix(counts)
    nr_samples = resolve_nr_samples(config, reference)
    validate_covariate(nr_samples, config.covariate, require_positive_max=config.n_pairs > 0)
    validate_group(nr_samples, config.group)
    params = resolve_parameters(config, reference, rng)

    covariate = generate_covariate(params.nr_samples, rng, config.covariate)
    group_covariate = generate_group_covariate(params.nr_samples, config.group, rng)

    logger.info(
        "Simulating %d samples x %d clusters with %d differential clusters",
        params.nr_samples, params.n_clusters, config.nr_diff,
    )

    alpha_matrix, pairs, effects = _inject_effects(config, params, covariate, group_covariate, rng)
    if np.any(alpha_matrix <= 0):
        raise InvalidConfigurationError(
            "covariate", "the injected effects produce non-positive proportions"
        )

    sampled, variances = _sample_counts(alpha_matrix, params.sizes, params.theta, rng)

    with_group = group_covariate is not None
    row_data = _row_data(params, pairs, effects, with_group)
    col_data = _col_data(params, covariate, group_covariate)

    sample_index = pd.Index(params.sample_names)
    cluster_index = pd.Index(params.cluster_names)
    count_matrix = pd.DataFrame(sampled.T, index=cluster_index, columns=sample_index)

    out_counts: Union[pd.DataFrame, ad.AnnData] = count_matrix
    if isinstance(counts, ad.AnnData):
        out_counts = merge_into_anndata(counts, count_matrix, row_data, col_data)
    elif config.return_annotated:
        out_counts = to_anndata(count_matrix, row_data, col_data)

    return SimulationResult(
        counts=out_counts,
        row_data=row_data,
        col_data=col_data,
        alphas=pd.DataFrame(alpha_matrix, index=sample_index, columns=cluster_index),
        theta=params.theta,
        var_counts=pd.DataFrame(variances, index=sample_index, columns=cluster_index),
        pairs=pairs,
        count_matrix=count_matrix,
    )
