"""
Resolution of the Dirichlet-Multinomial simulation parameters.

Alphas, theta, sizes and sample / cluster names are taken from explicit
options where given and otherwise derived from a reference count matrix.

Classes
-------
ResolvedParameters
    Fully resolved simulation parameters.

Functions
---------
reference_matrix
    Normalize a reference count input to a sample x cluster table.
resolve_nr_samples
    Number of samples to simulate, without drawing random numbers.
resolve_parameters
    Derive or validate all simulation parameters.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional

import anndata as ad
import numpy as np
import pandas as pd

from .config import SimulationConfig
from .containers import reference_from_anndata
from .dirichlet_multinomial import fit_dirichlet_multinomial, theta_from_alphas
from .errors import InvalidConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class ResolvedParameters:
    """Simulation parameters after defaults have been filled in."""

    #: Baseline Dirichlet parameter per cluster.
    alphas: np.ndarray
    theta: float
    #: Total count per sample.
    sizes: np.ndarray
    sample_names: List[Any]
    cluster_names: List[Any]

    @property
    def nr_samples(self) -> int:
        return len(self.sample_names)

    @property
    def n_clusters(self) -> int:
        return len(self.cluster_names)

    @property
    def proportions(self) -> np.ndarray:
        """Baseline cluster proportions ``alphas / sum(alphas)``."""
        return self.alphas / self.alphas.sum()


def reference_matrix(counts: Any) -> Optional[pd.DataFrame]:
    """Normalize a reference count input to a sample x cluster table.

    Parameters
    ----------
    counts : None, np.ndarray, pd.DataFrame or ad.AnnData
        Arrays and DataFrames are cluster x sample (clusters in rows);
        AnnData objects hold samples as observations.

    Returns
    -------
    pd.DataFrame or None
        Sample x cluster counts. Unlabelled axes get a default RangeIndex.
    """
    if counts is None:
        return None
    if isinstance(counts, ad.AnnData):
        ref = reference_from_anndata(counts)
    elif isinstance(counts, pd.DataFrame):
        ref = counts.T.copy()
    else:
        arr = np.asarray(counts)
        if arr.ndim != 2:
            raise InvalidConfigurationError("counts", "reference must be a 2D cluster x sample matrix")
        ref = pd.DataFrame(arr.T)

    ref = ref.astype(float)
    if ref.isna().any().any() or (ref.to_numpy() < 0).any():
        raise InvalidConfigurationError("counts", "reference counts must be non-negative")
    return ref


def _has_labels(index: pd.Index) -> bool:
    return not isinstance(index, pd.RangeIndex)


def resolve_nr_samples(config: SimulationConfig, reference: Optional[pd.DataFrame]) -> int:
    """Return the number of samples to simulate.

    Defaults to the reference sample count, or to ``len(sizes)`` without a
    reference. No random numbers are drawn, so callers can validate per
    sample options against the result first.

    Raises
    ------
    InvalidConfigurationError
        If neither a reference nor both alphas and sizes are given, or
        ``nr_samples`` conflicts with the given sizes.
    """
    if reference is None:
        if config.alphas is None or config.sizes is None:
            raise InvalidConfigurationError(
                "counts", "either a reference count matrix or both 'alphas' and 'sizes' are required"
            )
        nr_samples = config.nr_samples if config.nr_samples is not None else len(config.sizes)
        if nr_samples != len(config.sizes):
            raise InvalidConfigurationError(
                "nr_samples", f"must equal the number of sizes ({len(config.sizes)})"
            )
        return nr_samples

    nr_samples = config.nr_samples if config.nr_samples is not None else reference.shape[0]
    if config.sizes is not None and len(config.sizes) != nr_samples:
        raise InvalidConfigurationError(
            "sizes", f"expected {nr_samples} values, got {len(config.sizes)}"
        )
    return nr_samples


def resolve_parameters(
        config: SimulationConfig,
        reference: Optional[pd.DataFrame],
        rng: np.random.Generator,
) -> ResolvedParameters:
    """Derive or validate alphas, theta, sizes and names.

    Parameters
    ----------
    config : SimulationConfig
        Validated options.
    reference : pd.DataFrame, optional
        Sample x cluster reference counts (see :func:`reference_matrix`).
    rng : np.random.Generator
        Used only to draw extra sizes when more samples than reference rows
        are requested. All checks run before that draw.

    Returns
    -------
    ResolvedParameters

    Raises
    ------
    InvalidConfigurationError
        If neither a reference nor both alphas and sizes are given, or the
        options are mutually inconsistent.
    """
    nr_samples = resolve_nr_samples(config, reference)
    theta = config.theta
    n_extra = 0

    if reference is None:
        alphas = config.alphas.copy()
        sizes = config.sizes.copy()
        cluster_names = list(range(len(alphas)))
        sample_names = [f"sample_{i + 1}" for i in range(nr_samples)]
    else:
        n_ref, n_clu = reference.shape
        if n_clu < 2:
            raise InvalidConfigurationError("counts", "reference needs at least two clusters")

        cluster_names = list(reference.columns) if _has_labels(reference.columns) else list(range(n_clu))
        if nr_samples == n_ref and _has_labels(reference.index):
            sample_names = list(reference.index)
        else:
            sample_names = [f"sample_{i + 1}" for i in range(nr_samples)]

        if config.alphas is None:
            fit = fit_dirichlet_multinomial(reference.to_numpy())
            logger.info(
                "Estimated Dirichlet-Multinomial parameters from reference "
                "(theta=%.4g, log-likelihood=%.2f)", fit.theta, fit.log_likelihood,
            )
            alphas = fit.alphas
            if theta is None:
                theta = fit.theta
        else:
            alphas = config.alphas.copy()
            if len(alphas) != n_clu:
                raise InvalidConfigurationError(
                    "alphas", f"expected {n_clu} values (one per reference cluster), got {len(alphas)}"
                )

        if config.sizes is not None:
            sizes = config.sizes.copy()
        else:
            sizes = reference.sum(axis=1).to_numpy(dtype=float)
            if np.any(sizes <= 0):
                raise InvalidConfigurationError("counts", "every reference sample needs a positive total")
            n_extra = max(nr_samples - n_ref, 0)
            sizes = sizes[:nr_samples]

    if theta is None:
        theta = theta_from_alphas(alphas)

    if config.nr_diff > len(alphas):
        raise InvalidConfigurationError(
            "nr_diff", f"must not exceed the number of clusters ({len(alphas)})"
        )

    if n_extra:
        extra = rng.uniform(sizes.min(), sizes.max(), size=n_extra)
        sizes = np.concatenate([sizes, extra])

    return ResolvedParameters(
        alphas=np.asarray(alphas, dtype=float),
        theta=float(theta),
        sizes=np.asarray(sizes, dtype=float),
        sample_names=sample_names,
        cluster_names=cluster_names,
    )
