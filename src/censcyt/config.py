"""
Simulation configuration and option resolution.

The public entry point accepts loosely typed options (scalars, lists, arrays,
booleans) mirroring how the simulator is usually called interactively. This
module resolves them once, up front, into tagged variants so the rest of the
pipeline never branches on input shape.

Classes
-------
EffectSpec
    Resolved ``slope`` / ``group_slope`` option.
GroupSpec
    Resolved ``group`` option.
ClusterSelection
    Resolved ``diff_cluster`` option.
SimulationConfig
    Validated, immutable bundle of all options.

Functions
---------
resolve_effect_spec
    Resolve a raw slope option.
resolve_group_spec
    Resolve a raw group option.
resolve_cluster_selection
    Resolve a raw diff_cluster option.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from numbers import Integral, Real
from typing import Any, Optional, Sequence, Tuple

import numpy as np

from .errors import InvalidConfigurationError

#: Fraction of the first cluster's baseline proportion moved to its partner at
#: the maximal covariate value, used when no slope is given.
DEFAULT_SLOPE_FACTOR = 0.7

#: Same as :data:`DEFAULT_SLOPE_FACTOR` but for the group covariate.
DEFAULT_GROUP_SLOPE_FACTOR = 0.2

EFFECT_KINDS = ("unset", "slopes", "factors")
GROUP_KINDS = ("none", "fraction", "count", "indices", "half")
SELECTION_KINDS = ("min_distance", "random", "explicit")


@dataclass(frozen=True)
class EffectSpec:
    """Resolved effect option for one covariate.

    Attributes
    ----------
    kind : str
        ``"unset"`` (factor based default), ``"slopes"`` (explicit negative
        coefficient for the first cluster of each pair) or ``"factors"``
        (per pair effect-size factor in [0, 1)).
    values : tuple of float
        One value per differential pair; empty when ``kind == "unset"``.
    """

    kind: str = "unset"
    values: Tuple[float, ...] = ()

    def slope_for(self, pair_index: int) -> Optional[float]:
        """Explicit slope for a pair, or None if the coefficient is derived."""
        if self.kind == "slopes":
            return self.values[pair_index]
        return None

    def factor_for(self, pair_index: int, default: float) -> float:
        """Effect-size factor for a pair."""
        if self.kind == "factors":
            return self.values[pair_index]
        return default


@dataclass(frozen=True)
class GroupSpec:
    """Resolved group covariate option.

    Attributes
    ----------
    kind : str
        One of ``"none"``, ``"fraction"``, ``"count"``, ``"indices"``,
        ``"half"``.
    fraction : float, optional
        Share of samples in the group (``kind == "fraction"``).
    count : int, optional
        Number of samples in the group (``kind == "count"``).
    indices : tuple of int
        0-based sample positions in the group (``kind == "indices"``).
    """

    kind: str = "none"
    fraction: Optional[float] = None
    count: Optional[int] = None
    indices: Tuple[int, ...] = ()

    @property
    def active(self) -> bool:
        return self.kind != "none"


@dataclass(frozen=True)
class ClusterSelection:
    """Resolved differential cluster selection policy.

    Attributes
    ----------
    kind : str
        ``"min_distance"``, ``"random"`` or ``"explicit"``.
    pairs : tuple of tuple
        Caller supplied cluster pairs (labels or positions) for
        ``kind == "explicit"``.
    """

    kind: str = "min_distance"
    pairs: Tuple[Tuple[Any, Any], ...] = ()


def _is_scalar_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def resolve_effect_spec(value: Any, n_pairs: int, name: str = "slope") -> EffectSpec:
    """Resolve a raw ``slope`` or ``group_slope`` option.

    Accepted shapes:

    - ``None`` -> factor based default.
    - a number, tuple or ``np.ndarray`` of numbers -> explicit slopes for the
      first cluster of each pair; every value must be negative. A single value
      is used for every pair.
    - a ``list`` -> per pair effect-size factors in [0, 1). A one-element list
      is used for every pair.
    - an :class:`EffectSpec` -> validated and returned.

    Raises
    ------
    InvalidConfigurationError
        If a slope is non-negative, a factor lies outside [0, 1), or the
        number of values does not match the number of pairs.
    """
    if value is None:
        return EffectSpec()

    if isinstance(value, EffectSpec):
        if value.kind not in EFFECT_KINDS:
            raise InvalidConfigurationError(name, f"unknown kind {value.kind!r}")
        kind, values = value.kind, value.values
        if kind == "unset":
            return value
    elif isinstance(value, list):
        kind, values = "factors", value
    elif _is_scalar_number(value):
        kind, values = "slopes", [value]
    else:
        kind, values = "slopes", list(np.asarray(value, dtype=object).ravel())

    try:
        values = [float(v) for v in values]
    except (TypeError, ValueError):
        raise InvalidConfigurationError(name, "values must be numeric") from None

    if len(values) == 0:
        raise InvalidConfigurationError(name, "at least one value is required")

    if kind == "slopes" and any(v >= 0 for v in values):
        raise InvalidConfigurationError(name, "slopes should be negative")
    if kind == "factors" and any(v < 0 or v >= 1 for v in values):
        raise InvalidConfigurationError(
            name, "elements (if given as a list) have to be in [0, 1)"
        )

    if len(values) == 1:
        values = values * n_pairs
    elif len(values) != n_pairs:
        raise InvalidConfigurationError(
            name, f"expected 1 or {n_pairs} values (one per pair), got {len(values)}"
        )

    return EffectSpec(kind=kind, values=tuple(values))


def resolve_group_spec(value: Any) -> GroupSpec:
    """Resolve a raw ``group`` option.

    - ``None`` or ``False`` -> no group covariate.
    - ``True`` -> half of the samples, chosen at random.
    - a number in [0, 1) -> that fraction of the samples.
    - a number >= 1 -> that many samples.
    - a collection of 0-based sample positions -> exactly those samples.
    """
    if value is None or value is False:
        return GroupSpec()
    if isinstance(value, GroupSpec):
        if value.kind not in GROUP_KINDS:
            raise InvalidConfigurationError("group", f"unknown kind {value.kind!r}")
        return value
    if value is True:
        return GroupSpec(kind="half")
    if isinstance(value, np.bool_):
        return GroupSpec(kind="half") if bool(value) else GroupSpec()

    if _is_scalar_number(value):
        if value < 0:
            raise InvalidConfigurationError("group", "must not be negative")
        if value < 1:
            return GroupSpec(kind="fraction", fraction=float(value))
        return GroupSpec(kind="count", count=int(round(value)))

    try:
        indices = [int(i) for i in value]
    except (TypeError, ValueError):
        raise InvalidConfigurationError(
            "group", "expected None, a bool, a number or a collection of sample indices"
        ) from None
    if any(i < 0 for i in indices):
        raise InvalidConfigurationError("group", "sample indices must be non-negative")
    return GroupSpec(kind="indices", indices=tuple(indices))


def resolve_cluster_selection(value: Any, n_pairs: int) -> ClusterSelection:
    """Resolve a raw ``diff_cluster`` option.

    ``False`` selects pairs by minimal baseline proportion distance, ``True``
    selects them at random, and a sequence of 2-element pairs fixes them
    explicitly. Explicit cluster ids must be unique across all pairs.
    """
    if isinstance(value, ClusterSelection):
        if value.kind not in SELECTION_KINDS:
            raise InvalidConfigurationError("diff_cluster", f"unknown kind {value.kind!r}")
        if value.kind != "explicit":
            return value
        value = list(value.pairs)
    elif value is None or value is False or (isinstance(value, np.bool_) and not value):
        return ClusterSelection()
    elif value is True or isinstance(value, np.bool_):
        return ClusterSelection(kind="random")

    try:
        pairs = [tuple(pair) for pair in value]
    except TypeError:
        raise InvalidConfigurationError(
            "diff_cluster", "expected a bool or a sequence of cluster pairs"
        ) from None

    if any(len(pair) != 2 for pair in pairs):
        raise InvalidConfigurationError("diff_cluster", "every pair must hold exactly 2 clusters")
    if len(pairs) != n_pairs:
        raise InvalidConfigurationError(
            "diff_cluster", f"expected {n_pairs} pairs (nr_diff / 2), got {len(pairs)}"
        )
    flat = [cluster for pair in pairs for cluster in pair]
    if len(flat) != len(set(flat)):
        raise InvalidConfigurationError(
            "diff_cluster", "clusters must not appear in more than one pair"
        )
    return ClusterSelection(kind="explicit", pairs=tuple(pairs))


def _optional_positive_array(value: Any, name: str) -> Optional[np.ndarray]:
    if value is None:
        return None
    arr = np.array(value, dtype=float).ravel()
    if arr.size == 0:
        raise InvalidConfigurationError(name, "must not be empty")
    if not np.all(np.isfinite(arr)) or np.any(arr <= 0):
        raise InvalidConfigurationError(name, "all values must be finite and positive")
    return arr


@dataclass(frozen=True, eq=False)
class SimulationConfig:
    """Validated options of :func:`censcyt.simulate_multicluster`.

    Build instances with :meth:`from_options`, which performs all input
    validation. Arrays are copied on construction so caller inputs are never
    mutated.
    """

    #: Number of differential clusters (even).
    nr_diff: int = 2
    #: Number of simulated samples; derived from the reference or sizes if None.
    nr_samples: Optional[int] = None
    #: Dirichlet-Multinomial alpha per cluster.
    alphas: Optional[np.ndarray] = None
    #: Dispersion parameter.
    theta: Optional[float] = None
    #: Total count per sample.
    sizes: Optional[np.ndarray] = None
    #: Primary covariate per sample; drawn from Exp(1) if None.
    covariate: Optional[np.ndarray] = None
    slope: EffectSpec = field(default_factory=EffectSpec)
    group: GroupSpec = field(default_factory=GroupSpec)
    group_slope: EffectSpec = field(default_factory=EffectSpec)
    diff_cluster: ClusterSelection = field(default_factory=ClusterSelection)
    #: Keep the combined proportion of every differential pair constant.
    enforce_sum_alpha: bool = False
    #: Wrap the simulated counts in an AnnData object.
    return_annotated: bool = False
    slope_factor: float = DEFAULT_SLOPE_FACTOR
    group_slope_factor: float = DEFAULT_GROUP_SLOPE_FACTOR

    @property
    def n_pairs(self) -> int:
        return self.nr_diff // 2

    @classmethod
    def from_options(
            cls,
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
            slope_factor: float = DEFAULT_SLOPE_FACTOR,
            group_slope_factor: float = DEFAULT_GROUP_SLOPE_FACTOR,
    ) -> "SimulationConfig":
        """Validate raw options and resolve them into a configuration.

        Raises
        ------
        InvalidConfigurationError
            On the first violated constraint.
        """
        if isinstance(nr_diff, bool) or not isinstance(nr_diff, Integral) or nr_diff < 0:
            raise InvalidConfigurationError("nr_diff", "must be a non-negative integer")
        nr_diff = int(nr_diff)
        n_pairs = nr_diff // 2

        # slope checks come first so a bad slope is reported even for odd nr_diff
        slope_spec = resolve_effect_spec(slope, n_pairs, "slope")
        group_slope_spec = resolve_effect_spec(group_slope, n_pairs, "group_slope")

        if nr_diff % 2 != 0:
            raise InvalidConfigurationError("nr_diff", "has to be an even number")

        if nr_samples is not None:
            if isinstance(nr_samples, bool) or not isinstance(nr_samples, Integral) or nr_samples < 1:
                raise InvalidConfigurationError("nr_samples", "must be a positive integer")
            nr_samples = int(nr_samples)

        alphas_arr = _optional_positive_array(alphas, "alphas")
        sizes_arr = _optional_positive_array(sizes, "sizes")

        if theta is not None:
            theta = float(theta)
            if not 0 < theta < 1:
                raise InvalidConfigurationError("theta", "has to be in (0, 1)")

        covariate_arr = None
        if covariate is not None:
            covariate_arr = np.array(covariate, dtype=float).ravel()
            if not np.all(np.isfinite(covariate_arr)):
                raise InvalidConfigurationError("covariate", "all values must be finite")

        for name, factor in (("slope_factor", slope_factor), ("group_slope_factor", group_slope_factor)):
            if not 0 <= factor < 1:
                raise InvalidConfigurationError(name, "has to be in [0, 1)")

        return cls(
            nr_diff=nr_diff,
            nr_samples=nr_samples,
            alphas=alphas_arr,
            theta=theta,
            sizes=sizes_arr,
            covariate=covariate_arr,
            slope=slope_spec,
            group=resolve_group_spec(group),
            group_slope=group_slope_spec,
            diff_cluster=resolve_cluster_selection(diff_cluster, n_pairs),
            enforce_sum_alpha=bool(enforce_sum_alpha),
            return_annotated=bool(return_annotated),
            slope_factor=float(slope_factor),
            group_slope_factor=float(group_slope_factor),
        )
