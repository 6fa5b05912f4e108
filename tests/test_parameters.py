import anndata as ad
import numpy as np
import pandas as pd
import pytest

from censcyt.config import SimulationConfig
from censcyt.errors import InvalidConfigurationError
from censcyt.parameters import reference_matrix, resolve_nr_samples, resolve_parameters


def test_requires_reference_or_alphas_and_sizes(rng):
    config = SimulationConfig.from_options(alphas=[1.0, 2.0])
    with pytest.raises(InvalidConfigurationError) as excinfo:
        resolve_parameters(config, None, rng)
    assert excinfo.value.parameter == "counts"


def test_explicit_parameters(rng, alphas, sizes):
    config = SimulationConfig.from_options(alphas=alphas, sizes=sizes)
    params = resolve_parameters(config, None, rng)

    assert params.nr_samples == len(sizes)
    assert params.n_clusters == len(alphas)
    assert params.sample_names[0] == "sample_1"
    assert params.cluster_names == list(range(len(alphas)))
    assert params.theta == pytest.approx(1 / (1 + alphas.sum()))
    assert params.proportions.sum() == pytest.approx(1.0)


def test_nr_samples_must_match_sizes(rng, alphas, sizes):
    config = SimulationConfig.from_options(alphas=alphas, sizes=sizes, nr_samples=len(sizes) + 1)
    with pytest.raises(InvalidConfigurationError) as excinfo:
        resolve_parameters(config, None, rng)
    assert excinfo.value.parameter == "nr_samples"


def test_nr_diff_larger_than_clusters(rng):
    config = SimulationConfig.from_options(nr_diff=4, alphas=[1.0, 2.0, 3.0], sizes=[100.0])
    with pytest.raises(InvalidConfigurationError) as excinfo:
        resolve_parameters(config, None, rng)
    assert excinfo.value.parameter == "nr_diff"


def test_reference_orientation(reference_counts):
    ref = reference_matrix(reference_counts)
    assert ref.shape == (30, 6)
    assert list(ref.columns) == list(reference_counts.index)

    unlabelled = reference_matrix(reference_counts.to_numpy())
    assert unlabelled.shape == (30, 6)
    assert isinstance(unlabelled.index, pd.RangeIndex)


def test_reference_from_anndata(reference_counts):
    adata = ad.AnnData(X=reference_counts.T.to_numpy().astype(float))
    adata.obs_names = list(reference_counts.columns)
    adata.var_names = list(reference_counts.index)
    ref = reference_matrix(adata)
    assert ref.shape == (30, 6)
    np.testing.assert_array_equal(ref.to_numpy(), reference_counts.T.to_numpy())


def test_negative_reference_rejected():
    with pytest.raises(InvalidConfigurationError):
        reference_matrix(np.array([[1, -1], [2, 3]]))


def test_parameters_estimated_from_reference(rng, reference_counts):
    config = SimulationConfig.from_options()
    params = resolve_parameters(config, reference_matrix(reference_counts), rng)

    assert params.cluster_names == list(reference_counts.index)
    assert params.sample_names == list(reference_counts.columns)
    np.testing.assert_allclose(params.sizes, reference_counts.sum(axis=0).to_numpy())
    np.testing.assert_allclose(
        params.proportions, [0.05, 0.1, 0.15, 0.2, 0.22, 0.28], atol=0.03
    )
    assert 0.003 < params.theta < 0.03


def test_explicit_theta_overrides_fit(rng, reference_counts):
    config = SimulationConfig.from_options(theta=0.3)
    params = resolve_parameters(config, reference_matrix(reference_counts), rng)
    assert params.theta == 0.3


def test_explicit_alphas_skip_fit(rng, reference_counts):
    alphas = np.arange(1.0, 7.0)
    config = SimulationConfig.from_options(alphas=alphas)
    params = resolve_parameters(config, reference_matrix(reference_counts), rng)
    np.testing.assert_array_equal(params.alphas, alphas)
    assert params.theta == pytest.approx(1 / 22)


def test_extra_samples_get_sizes_within_reference_range(rng, reference_counts):
    config = SimulationConfig.from_options(nr_samples=50, alphas=np.ones(6) * 20)
    params = resolve_parameters(config, reference_matrix(reference_counts), rng)

    ref_sizes = reference_counts.sum(axis=0).to_numpy()
    assert params.nr_samples == 50
    assert params.sample_names[-1] == "sample_50"
    np.testing.assert_allclose(params.sizes[:30], ref_sizes)
    assert params.sizes[30:].min() >= ref_sizes.min()
    assert params.sizes[30:].max() <= ref_sizes.max()


def test_resolve_nr_samples(reference_counts):
    config = SimulationConfig.from_options(alphas=np.ones(6) * 20)
    assert resolve_nr_samples(config, reference_matrix(reference_counts)) == 30

    config = SimulationConfig.from_options(alphas=np.ones(6) * 20, nr_samples=4, sizes=[10.0] * 3)
    with pytest.raises(InvalidConfigurationError) as excinfo:
        resolve_nr_samples(config, reference_matrix(reference_counts))
    assert excinfo.value.parameter == "sizes"
