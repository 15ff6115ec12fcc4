import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest

from vehicle_pf.data.types import Map


@pytest.fixture
def rng():
    return np.random.default_rng(2024)


@pytest.fixture
def lesson_map():
    """Five landmarks around a particle at (4, 5) heading -π/2."""
    return Map.from_array(
        [
            [1, 5.0, 3.0],
            [2, 2.0, 1.0],
            [3, 6.0, 1.0],
            [4, 7.0, 4.0],
            [5, 4.0, 7.0],
        ]
    )
