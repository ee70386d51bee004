"""
Pytest fixtures for srimage tests.

Provides small localization sets with hand-checkable output positions.
"""

import numpy as np
import pytest

from srimage.pipeline.localizations import LocalizationSet


@pytest.fixture
def single_loc():
    """
    One localization at (1.003, 1.003) um with 0.1 um uncertainty.

    With 0.1 um camera pixels and 0.01 um output pixels (magnification 10)
    it lands at output coordinate 100.8, i.e. 0-based pixel 100, and has a
    10 output-pixel sigma. The 2 x 2 um field gives a 200 x 200 raster.
    """
    return LocalizationSet.from_arrays(
        [1.003], [1.003], sigma_x_um=[0.1], sigma_y_um=[0.1], photons=[1000.0], data_size=(2.0, 2.0)
    )


@pytest.fixture
def colliding_locs():
    """Two localizations that fall into the same output pixel."""
    return LocalizationSet.from_arrays(
        [0.203, 0.204], [0.302, 0.302], sigma_x_um=[0.01, 0.01], data_size=(1.0, 1.0)
    )


@pytest.fixture
def mixed_locs():
    """
    Localizations with valid, zero, negative and NaN uncertainties plus one
    outside the field of view.
    """
    return LocalizationSet.from_arrays(
        [0.5, 0.6, 0.7, 0.8, 5.0],
        [0.5, 0.6, 0.7, 0.8, 5.0],
        sigma_x_um=[0.02, 0.0, -0.01, np.nan, 0.02],
        sigma_y_um=[0.02, 0.02, 0.02, 0.02, 0.02],
        data_size=(1.0, 1.0),
    )


@pytest.fixture
def random_pixel_locs():
    """Random coordinates/uncertainties in input-pixel units, including invalid ones."""
    rng = np.random.default_rng(1234)
    n = 60
    x = rng.uniform(-1.0, 11.0, n)
    y = rng.uniform(-1.0, 11.0, n)
    sx = rng.uniform(-0.05, 0.3, n)
    sy = rng.uniform(-0.05, 0.3, n)
    x[3] = np.nan
    sy[7] = np.inf
    return x, y, sx, sy
