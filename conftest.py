import numpy as np
import pytest

from dataset import Dataset


@pytest.fixture
def separable_dataset():
    rng = np.random.default_rng(5)
    X = rng.normal(size=(60, 4))
    y = (X[:, 0] + 0.5 * X[:, 2] > 0).astype(int)
    return Dataset.from_arrays(X, y)


@pytest.fixture
def toy_dataset():
    X = np.array(
        [
            [0.0, 1.0],
            [1.0, 0.0],
            [2.0, 1.0],
            [3.0, 0.0],
        ]
    )
    return Dataset.from_arrays(X, np.array([0, 0, 1, 1]))
