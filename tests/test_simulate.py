import logging

import numpy as np
import pandas as pd
import pytest

from censcyt import simulate_from_config, simulate_multicluster
from censcyt.config import SimulationConfig
from censcyt.errors import InvalidConfigurationError


def test_output_bundle_shapes(alphas, sizes):
    out = simulate_multicluster(alphas=alphas, sizes=sizes, nr_diff=4, seed=1)

    n_clu, n_samples = len(alphas), len(sizes)
    assert out.counts.shape == (n_clu, n_samples)
    assert out.alphas.shape == (n_samples, n_clu)
    assert out.var_counts.shape == (n_samples, n_clu)
    assert list(out.row_data.columns) == ["cluster_id", "b0", "b1", "paired"]
    assert list(out.col_data.columns) == ["sample", "covariate"]
    assert out.theta == pytest.approx(1 / (1 + alphas.sum()))
    assert (out.counts.to_numpy() >= 0).all()
    np.testing.assert_array_equal(out.counts.sum(axis=0).to_numpy(), np.round(sizes))


def test_proportions_sum_to_one(alphas, sizes):
    out = simulate_multicluster(
        alphas=alphas, sizes=sizes, nr_diff=6, group=0.5, diff_cluster=True, seed=3
    )
    props = out.proportions.to_numpy()
    assert (props > 0).all()
    np.testing.assert_allclose(props.sum(axis=1), 1.0)


def test_pairs_are_disjoint(alphas, sizes):
    for diff_cluster in (False, True):
        out = simulate_multicluster(
            alphas=alphas, sizes=sizes, nr_diff=12, diff_cluster=diff_cluster, seed=11
        )
        flat = [c for pair in out.pairs for c in pair]
        assert len(flat) == len(set(flat)) == 12
        assert sorted(out.row_data["paired"].value_counts().tolist()) == [2] * 6


def test_min_distance_selection_on_small_example():
    alphas = np.array([10.0, 20.0, 30.0, 40.0])
    out = simulate_multicluster(alphas=alphas, sizes=[1000] * 4, nr_diff=2, seed=5)

    paired = list(out.pairs[0])
    gaps = {(i, j): abs(alphas[i] - alphas[j]) for i in range(4) for j in range(i + 1, 4)}
    assert gaps[tuple(sorted(paired))] == min(gaps.values())
    assert sorted(paired) == [0, 1]


def test_non_differential_clusters_keep_baseline(alphas, sizes):
    out = simulate_multicluster(alphas=alphas, sizes=sizes, nr_diff=2, seed=2)
    diff = out.differential_clusters
    rest = [c for c in out.alphas.columns if c not in diff]

    assert len(diff) == 2
    np.testing.assert_allclose(out.alphas[rest].to_numpy(), np.tile(alphas[rest], (len(sizes), 1)))
    assert out.row_data.loc[rest, "b1"].eq(0).all()
    assert out.row_data.loc[rest, "paired"].isna().all()


def test_enforce_sum_alpha_conserves_pair_mass(alphas, sizes):
    out = simulate_multicluster(
        alphas=alphas, sizes=sizes, nr_diff=4, group=True, enforce_sum_alpha=True, seed=8
    )
    baseline = alphas / alphas.sum()
    props = out.proportions
    for a, b in out.pairs:
        pair_mass = props.iloc[:, a] + props.iloc[:, b]
        np.testing.assert_allclose(pair_mass.to_numpy(), baseline[a] + baseline[b])
    np.testing.assert_allclose(out.alphas.sum(axis=1).to_numpy(), alphas.sum())


def test_explicit_slope_sets_first_cluster_coefficient(alphas, sizes):
    out = simulate_multicluster(alphas=alphas, sizes=sizes, nr_diff=2, slope=-0.3, seed=4)
    (a, b), = out.pairs
    baseline = alphas / alphas.sum()
    first = a if baseline[a] <= baseline[b] else b
    assert out.row_data["b1"].iloc[first] == -0.3


def test_group_count(alphas, sizes):
    out = simulate_multicluster(alphas=alphas, sizes=sizes, group=3, seed=6)
    assert "group_covariate" in out.col_data.columns
    assert "b2" in out.row_data.columns
    assert out.col_data["group_covariate"].sum() == 3
    assert set(out.col_data["group_covariate"].unique()) == {0, 1}


def test_group_false_disables_group(alphas, sizes):
    out = simulate_multicluster(alphas=alphas, sizes=sizes, group=False, seed=6)
    assert "group_covariate" not in out.col_data.columns
    assert "b2" not in out.row_data.columns


def test_explicit_diff_cluster(alphas, sizes):
    out = simulate_multicluster(
        alphas=alphas, sizes=sizes, nr_diff=4, diff_cluster=[(2, 9), (6, 7)], seed=0
    )
    assert out.pairs == [(2, 9), (6, 7)]
    assert out.row_data.loc[[2, 9], "paired"].tolist() == [1, 1]
    assert out.row_data.loc[[6, 7], "paired"].tolist() == [2, 2]


def test_given_covariate_drives_proportions(alphas, sizes):
    covariate = np.linspace(0, 3, len(sizes))
    out = simulate_multicluster(alphas=alphas, sizes=sizes, covariate=covariate, seed=0)
    np.testing.assert_array_equal(out.col_data["covariate"].to_numpy(), covariate)

    (a, b), = out.pairs
    props = out.proportions
    smaller = a if props.iloc[0, a] < props.iloc[0, b] else b
    assert np.all(np.diff(props.iloc[:, smaller].to_numpy()) < 0)


def test_same_seed_reproduces(alphas, sizes):
    kwargs = dict(alphas=alphas, sizes=sizes, nr_diff=4, group=True, diff_cluster=True)
    first = simulate_multicluster(seed=123, **kwargs)
    second = simulate_multicluster(seed=123, **kwargs)
    pd.testing.assert_frame_equal(first.counts, second.counts)
    pd.testing.assert_frame_equal(first.col_data, second.col_data)
    assert first.pairs == second.pairs


def test_variance_matches_dirichlet_multinomial(alphas, sizes):
    out = simulate_multicluster(alphas=alphas, sizes=sizes, nr_diff=2, seed=9)
    row = out.alphas.iloc[0].to_numpy()
    A = row.sum()
    p = row / A
    n = sizes[0]
    expected = n * p * (1 - p) * (n + A) / (1 + A)
    np.testing.assert_allclose(out.var_counts.iloc[0].to_numpy(), expected)


def test_round_trip_without_differential_clusters(reference_counts):
    out = simulate_multicluster(reference_counts, nr_diff=0, seed=21)

    np.testing.assert_array_equal(
        out.counts.sum(axis=0).to_numpy(), reference_counts.sum(axis=0).to_numpy()
    )
    ref_props = (reference_counts / reference_counts.sum(axis=0)).mean(axis=1)
    sim_props = (out.counts / out.counts.sum(axis=0)).mean(axis=1)
    np.testing.assert_allclose(sim_props.to_numpy(), ref_props.to_numpy(), atol=0.05)
    assert list(out.counts.index) == list(reference_counts.index)
    assert list(out.counts.columns) == list(reference_counts.columns)
    assert out.row_data["paired"].isna().all()


def test_validation_happens_before_sampling(alphas, sizes):
    with pytest.raises(InvalidConfigurationError, match="even"):
        simulate_multicluster(alphas=alphas, sizes=sizes, nr_diff=3)
    with pytest.raises(InvalidConfigurationError) as excinfo:
        simulate_multicluster(alphas=alphas)
    assert excinfo.value.parameter == "counts"


@pytest.mark.parametrize(
    "options",
    [
        {"group": [0, 9]},
        {"group": 7},
        {"covariate": [1.0, 2.0]},
        {"covariate": [-1.0, -2.0, -3.0, -4.0]},
        {"nr_diff": 6},
    ],
)
def test_rejected_call_leaves_generator_untouched(options):
    rng = np.random.default_rng(5)
    state = rng.bit_generator.state
    with pytest.raises(InvalidConfigurationError):
        simulate_multicluster(alphas=[1.0, 2.0, 3.0, 4.0], sizes=[100.0] * 4, rng=rng, **options)
    assert rng.bit_generator.state == state


@pytest.mark.parametrize("options", [{"group": 60}, {"nr_diff": 8}])
def test_rejected_call_with_extra_samples_draws_no_sizes(reference_counts, options):
    rng = np.random.default_rng(5)
    state = rng.bit_generator.state
    with pytest.raises(InvalidConfigurationError):
        simulate_multicluster(
            reference_counts, nr_samples=50, alphas=np.ones(6) * 20, rng=rng, **options
        )
    assert rng.bit_generator.state == state


def test_non_positive_covariate_rejected(alphas, sizes):
    with pytest.raises(InvalidConfigurationError, match="maximal value"):
        simulate_multicluster(alphas=alphas, sizes=sizes, covariate=-np.ones(len(sizes)))


def test_simulate_from_config_logs(caplog, alphas, sizes):
    caplog.set_level(logging.INFO, logger="censcyt")
    config = SimulationConfig.from_options(alphas=alphas, sizes=sizes, nr_diff=2)
    out = simulate_from_config(config, rng=np.random.default_rng(0))
    assert out.counts.shape == (len(alphas), len(sizes))
    assert "Simulating 10 samples x 12 clusters" in caplog.text
