"""
AnnData boundary layer.

The simulator works on plain pandas objects. This module converts annotated
reference data into that form and wraps simulated counts back into AnnData.
AnnData stores observations (samples) in rows and variables (clusters) in
columns, so the cluster x sample count tables are transposed on the way in
and out.

Functions
---------
reference_from_anndata
    Sample x cluster count table from an AnnData object.
to_anndata
    Build a new AnnData object from simulated counts and metadata.
merge_into_anndata
    Replace the counts of a reference AnnData object and merge metadata.
"""
from __future__ import annotations

import logging
from typing import Optional

import anndata as ad
import numpy as np
import pandas as pd
import scipy.sparse as sp

logger = logging.getLogger(__name__)


def reference_from_anndata(adata: ad.AnnData, layer: Optional[str] = None) -> pd.DataFrame:
    """Extract a sample x cluster count table.

    Parameters
    ----------
    adata : ad.AnnData
        Samples as observations, clusters as variables.
    layer : str, optional
        Layer holding the counts; ``adata.X`` if None.

    Returns
    -------
    pd.DataFrame
        Counts indexed by ``obs_names`` with ``var_names`` as columns.
    """
    X = adata.X if layer is None else adata.layers[layer]
    if sp.issparse(X):
        X = X.toarray()
    return pd.DataFrame(
        np.asarray(X),
        index=adata.obs_names.copy(),
        columns=adata.var_names.copy(),
    )


def _str_index(df: pd.DataFrame) -> pd.DataFrame:
    out = df.copy()
    out.index = out.index.astype(str)
    return out


def to_anndata(counts: pd.DataFrame, row_data: pd.DataFrame, col_data: pd.DataFrame) -> ad.AnnData:
    """Wrap simulated counts into a new AnnData object.

    Parameters
    ----------
    counts : pd.DataFrame
        Cluster x sample counts.
    row_data : pd.DataFrame
        Per cluster metadata, indexed like ``counts.index``.
    col_data : pd.DataFrame
        Per sample metadata, indexed like ``counts.columns``.
    """
    return ad.AnnData(
        X=counts.T.to_numpy(),
        obs=_str_index(col_data),
        var=_str_index(row_data),
    )


def _merge_columns(base: pd.DataFrame, extra: pd.DataFrame) -> pd.DataFrame:
    """Append ``extra`` columns to ``base``; shared column names are replaced."""
    extra = extra.set_axis(base.index, axis=0)
    return pd.concat([base.drop(columns=[c for c in extra.columns if c in base.columns]), extra], axis=1)


def merge_into_anndata(
        reference: ad.AnnData,
        counts: pd.DataFrame,
        row_data: pd.DataFrame,
        col_data: pd.DataFrame,
) -> ad.AnnData:
    """Return a copy of ``reference`` holding the simulated counts.

    Existing ``obs`` / ``var`` annotations are kept and the simulation
    metadata is merged in. When the number of simulated samples differs from
    the reference, only the cluster annotations can be carried over and a new
    object is built.
    """
    if counts.shape[0] != reference.n_vars:
        raise ValueError(
            f"counts has {counts.shape[0]} clusters but reference has {reference.n_vars} variables."
        )

    var = _merge_columns(reference.var, row_data)

    if counts.shape[1] != reference.n_obs:
        logger.info(
            "Simulated %d samples for a reference with %d; dropping reference sample annotations",
            counts.shape[1], reference.n_obs,
        )
        return ad.AnnData(X=counts.T.to_numpy(), obs=_str_index(col_data), var=var)

    out = reference.copy()
    # layers describe the reference counts, which no longer apply
    for key in list(out.layers.keys()):
        del out.layers[key]
    out.X = counts.T.to_numpy()
    out.obs = _merge_columns(out.obs, col_data)
    out.var = var
    return out
