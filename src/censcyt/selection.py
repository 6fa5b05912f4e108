"""
Selection of differentially abundant cluster pairs.

Clusters are referred to by 0-based position. The pool of clusters that are
still available is an immutable tuple: every selection step takes the current
pool and returns the pair together with the reduced pool.

Functions
---------
resolve_explicit_pairs
    Map caller supplied cluster labels to positions.
select_min_distance
    Pair with the closest baseline proportions.
select_random
    Uniformly random pair.
select_pair
    Dispatch on the configured policy.
"""
from __future__ import annotations

from typing import Any, Sequence, Tuple

import numpy as np
import pandas as pd

from .config import ClusterSelection
from .errors import InvalidConfigurationError

Pair = Tuple[int, int]
Pool = Tuple[int, ...]


def _without(pool: Pool, pair: Pair) -> Pool:
    return tuple(c for c in pool if c not in pair)


def resolve_explicit_pairs(
        pairs: Sequence[Tuple[Any, Any]],
        cluster_names: Sequence[Any],
) -> Tuple[Pair, ...]:
    """Translate explicit cluster pairs into positions.

    Each id is looked up among ``cluster_names`` first; integers that are not
    a cluster name are taken as positions.

    Raises
    ------
    InvalidConfigurationError
        If an id is unknown or two ids resolve to the same cluster.
    """
    names = pd.Index(cluster_names)
    n_clu = len(names)

    def position(cluster: Any) -> int:
        if cluster in names:
            loc = names.get_loc(cluster)
            if isinstance(loc, int):
                return loc
            raise InvalidConfigurationError("diff_cluster", f"cluster name {cluster!r} is not unique")
        if isinstance(cluster, (int, np.integer)) and not isinstance(cluster, bool) and 0 <= cluster < n_clu:
            return int(cluster)
        raise InvalidConfigurationError("diff_cluster", f"unknown cluster {cluster!r}")

    resolved = tuple((position(a), position(b)) for a, b in pairs)
    flat = [c for pair in resolved for c in pair]
    if len(flat) != len(set(flat)):
        raise InvalidConfigurationError(
            "diff_cluster", "clusters must not appear in more than one pair"
        )
    return resolved


def select_min_distance(pool: Pool, alphas: np.ndarray) -> Tuple[Pair, Pool]:
    """Pick the two pool clusters with the closest baseline proportions.

    Distances are computed on the alphas, which orders pairs exactly like the
    proportions ``alphas / sum(alphas)`` without the rounding error of the
    division. The diagonal is excluded; ties go to the first minimum in
    column-major order, reported as ``(row, column)``.
    """
    if len(pool) < 2:
        raise ValueError("at least two clusters are needed to form a pair.")
    members = np.asarray(pool)
    a = np.asarray(alphas, dtype=float)[members]
    dist = np.abs(a[np.newaxis, :] - a[:, np.newaxis])
    np.fill_diagonal(dist, np.inf)

    flat = int(np.argmin(dist.ravel(order="F")))
    row, col = np.unravel_index(flat, dist.shape, order="F")
    pair = (int(members[row]), int(members[col]))
    return pair, _without(pool, pair)


def select_random(pool: Pool, rng: np.random.Generator) -> Tuple[Pair, Pool]:
    """Draw two pool clusters uniformly without replacement."""
    if len(pool) < 2:
        raise ValueError("at least two clusters are needed to form a pair.")
    drawn = rng.choice(np.asarray(pool), size=2, replace=False)
    pair = (int(drawn[0]), int(drawn[1]))
    return pair, _without(pool, pair)


def select_pair(
        selection: ClusterSelection,
        pair_index: int,
        pool: Pool,
        alphas: np.ndarray,
        rng: np.random.Generator,
        explicit_pairs: Sequence[Pair] = (),
) -> Tuple[Pair, Pool]:
    """Select the clusters of one differential pair.

    Parameters
    ----------
    selection : ClusterSelection
        Configured policy.
    pair_index : int
        0-based index of the pair being selected.
    pool : tuple of int
        Clusters not yet assigned to a pair.
    alphas : np.ndarray
        Baseline alphas of all clusters.
    rng : np.random.Generator
        Used by the random policy.
    explicit_pairs : sequence of pairs
        Positions from :func:`resolve_explicit_pairs` for the explicit policy.

    Returns
    -------
    pair : tuple of int
        Selected cluster positions.
    pool : tuple of int
        Remaining clusters.
    """
    if selection.kind == "explicit":
        pair = explicit_pairs[pair_index]
        return pair, _without(pool, pair)
    if selection.kind == "random":
        return select_random(pool, rng)
    return select_min_distance(pool, alphas)
