"""Pytest configuration and shared fixtures for censcyt tests."""

import numpy as np
import pandas as pd
import pytest

from censcyt.dirichlet_multinomial import simulate_dirichlet_multinomial


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(42)


@pytest.fixture
def alphas() -> np.ndarray:
    """Twelve clusters with distinct baseline alphas."""
    return np.array([12.0, 25.0, 33.0, 47.0, 51.0, 68.0, 72.0, 80.0, 91.0, 15.0, 38.0, 60.0])


@pytest.fixture
def sizes() -> np.ndarray:
    return np.linspace(2e4, 6e4, 10)


@pytest.fixture
def reference_counts() -> pd.DataFrame:
    """Cluster x sample reference counts with labelled axes."""
    rng = np.random.default_rng(7)
    props = np.array([0.05, 0.1, 0.15, 0.2, 0.22, 0.28])
    theta = 0.01
    data = np.column_stack([
        simulate_dirichlet_multinomial(size, props, theta, rng)
        for size in rng.uniform(2e4, 4e4, 30)
    ])
    return pd.DataFrame(
        data,
        index=[f"cluster_{k}" for k in range(len(props))],
        columns=[f"donor_{j}" for j in range(data.shape[1])],
    )
