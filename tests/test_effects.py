import numpy as np
import pytest

from censcyt.effects import inject_pair_effect, inv_logit, logit


def test_logit_round_trip():
    p = np.array([0.01, 0.3, 0.5, 0.97])
    np.testing.assert_allclose(inv_logit(logit(p)), p)
    assert logit(0.5) == pytest.approx(0.0)


def test_baseline_at_zero_covariate():
    pi0 = np.array([0.2, 0.05])
    covariate = np.array([0.0, 1.0, 2.0])
    effect = inject_pair_effect(pi0, covariate)

    np.testing.assert_allclose(effect.b0, logit(pi0))
    np.testing.assert_allclose(effect.proportions[0], pi0)


def test_factor_transfer_at_max_covariate():
    pi0 = np.array([0.2, 0.05])
    covariate = np.array([0.0, 0.5, 2.0])
    effect = inject_pair_effect(pi0, covariate, slope_factor=0.7)

    # the smaller cluster (second in selection order) loses 70 %
    expected = np.array([0.2 + 0.05 * 0.7, 0.05 * 0.3])
    np.testing.assert_allclose(effect.proportions[2], expected)
    assert effect.b1[1] < 0 < effect.b1[0]


def test_explicit_slope_overrides_first_cluster():
    pi0 = np.array([0.1, 0.3])
    covariate = np.array([0.2, 1.0, 3.0])
    effect = inject_pair_effect(pi0, covariate, slope=-0.3)
    assert effect.b1[0] == -0.3
    np.testing.assert_allclose(
        effect.proportions[:, 0], inv_logit(effect.b0[0] - 0.3 * covariate)
    )


def test_enforce_sum_alpha_conserves_pair_mass():
    pi0 = np.array([0.3, 0.1])
    covariate = np.linspace(0, 4, 9)
    group = np.array([0, 1] * 4 + [1])
    effect = inject_pair_effect(pi0, covariate, group, enforce_sum_alpha=True)

    np.testing.assert_allclose(effect.proportions.sum(axis=1), pi0.sum())
    # order is kept, so the first cluster follows the logistic model
    np.testing.assert_allclose(
        effect.proportions[:, 0],
        inv_logit(effect.b0[0] + effect.b1[0] * covariate + effect.b2[0] * group),
    )


def test_group_coefficients():
    pi0 = np.array([0.1, 0.2])
    covariate = np.array([0.0, 0.0, 1.0])
    group = np.array([0, 1, 0])
    effect = inject_pair_effect(pi0, covariate, group, group_slope_factor=0.2)

    expected = np.array([0.1 * 0.8, 0.2 + 0.1 * 0.2])
    np.testing.assert_allclose(effect.b2, logit(expected) - logit(pi0))
    np.testing.assert_allclose(effect.proportions[1], expected)

    explicit = inject_pair_effect(pi0, covariate, group, group_slope=-0.5)
    assert explicit.b2[0] == -0.5


def test_zero_max_covariate_rejected():
    with pytest.raises(ValueError):
        inject_pair_effect(np.array([0.1, 0.2]), np.zeros(4))
