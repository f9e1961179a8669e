import matplotlib
matplotlib.use("Agg")

import numpy as np
import pytest


@pytest.fixture
def uniform_image():
    return np.full((64, 64, 3), 128, dtype=np.uint8)


@pytest.fixture
def step_edge_image():
    img = np.zeros((64, 64, 3), dtype=np.uint8)
    img[:, 32:] = 255
    return img


@pytest.fixture
def full_mask():
    return np.ones((64, 64), dtype=np.uint8)


def checkerboard(size, cell):
    yy, xx = np.mgrid[0:size, 0:size]
    board = ((yy // cell + xx // cell) % 2) * 255
    return np.dstack([board] * 3).astype(np.uint8)
