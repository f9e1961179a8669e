from types import SimpleNamespace

import cv2
import numpy as np
import matplotlib.pyplot as plt
import pytest

from two_phase_psf import config
from two_phase_psf.errors import PreconditionError
from two_phase_psf.model import PSFEstimator, KernelEstimate, Status, estimate_psf
from two_phase_psf.utils.kernel_utils import impulse_kernel

from conftest import checkerboard


def make_config(**overrides):
    values = {name: getattr(config, name) for name in dir(config) if name.isupper()}
    values.update(overrides)
    return SimpleNamespace(**values)


def check_kernel(kernel, requested):
    assert kernel.shape[0] == kernel.shape[1]
    assert kernel.shape[0] % 2 == 1
    assert kernel.shape[0] >= requested
    assert kernel.min() >= 0 and kernel.max() <= 1
    assert abs(float(kernel.sum()) - 1.0) < 1e-5


def test_uniform_image_gives_impulse(uniform_image, full_mask):
    estimator = PSFEstimator()
    np.testing.assert_array_equal(
        estimator.confidence_map(uniform_image, 5, full_mask), 0)

    result = estimator.estimate_kernel(uniform_image, 5, full_mask)

    assert result.status is Status.NO_STRUCTURE
    assert not result.ok
    assert result.levels_completed == 0
    np.testing.assert_array_equal(result.kernel, impulse_kernel(5))


def test_step_edge_confidence_band(step_edge_image, full_mask):
    r = PSFEstimator().confidence_map(step_edge_image, 5, full_mask)
    assert r[5:59, 30:34].min() > 0.9
    assert r[5:59, 5:26].max() < 0.1
    assert r[5:59, 38:59].max() < 0.1


def test_step_edge_estimate(step_edge_image, full_mask):
    result = PSFEstimator().estimate_kernel(step_edge_image, 5, full_mask)
    assert result.status is Status.OK
    assert result.ok
    check_kernel(result.kernel, 5)


def test_fine_checkerboard_confidence_is_low(full_mask):
    r = PSFEstimator().confidence_map(checkerboard(64, 2), 5, full_mask)
    assert r.max() <= 0.2


def test_masked_step_edge(step_edge_image):
    mask = np.ones((64, 64), dtype=np.uint8)
    mask[:16] = 0
    estimator = PSFEstimator()

    r = estimator.confidence_map(step_edge_image, 5, mask)
    assert np.all(r[:16] == 0)
    assert r[16:59, 30:34].min() > 0.9

    check_kernel(estimator.estimate_kernel(step_edge_image, 5, mask).kernel, 5)


def test_even_psf_width_is_rounded_up(step_edge_image):
    result = PSFEstimator().estimate_kernel(step_edge_image, 4)
    assert result.kernel.shape == (5, 5)
    check_kernel(result.kernel, 4)


def test_too_small_image_is_a_precondition_violation():
    small = np.zeros((11, 64, 3), dtype=np.uint8)
    with pytest.raises(PreconditionError):
        PSFEstimator().estimate_kernel(small, 5)

    result = estimate_psf(small, 5)
    assert result.status is Status.PRECONDITION_VIOLATION
    assert result.kernel is None
    assert "smaller" in result.reason


def test_smallest_admissible_image_runs():
    img = np.zeros((12, 12, 3), dtype=np.uint8)
    img[:, 6:] = 255
    result = estimate_psf(img, 5)
    assert result.status is not Status.PRECONDITION_VIOLATION
    check_kernel(result.kernel, 5)


@pytest.mark.parametrize("mask", [
    np.ones((64, 63), dtype=np.uint8),
    np.ones((64, 64, 3), dtype=np.uint8),
])
def test_mask_shape_mismatch(step_edge_image, mask):
    with pytest.raises(PreconditionError):
        PSFEstimator().estimate_kernel(step_edge_image, 5, mask)


@pytest.mark.parametrize("image", [
    np.zeros((64, 64, 3), dtype=np.float32),
    np.zeros((64, 64, 4), dtype=np.uint8),
    [[0] * 64] * 64,
])
def test_unsupported_images(image):
    result = estimate_psf(image, 5)
    assert result.status is Status.PRECONDITION_VIOLATION


@pytest.mark.parametrize("psf_width", [0, -1])
def test_non_positive_psf_width(step_edge_image, psf_width):
    assert estimate_psf(step_edge_image, psf_width).status is Status.PRECONDITION_VIOLATION


def test_rejects_zero_levels(step_edge_image):
    with pytest.raises(PreconditionError):
        PSFEstimator().estimate_kernel(step_edge_image, 5, num_levels=0)


def test_single_channel_input(step_edge_image):
    gray = np.ascontiguousarray(step_edge_image[:, :, 0])
    result = estimate_psf(gray, 5, num_levels=1)
    assert result.status is Status.OK
    check_kernel(result.kernel, 5)


def test_empty_mask_is_no_structure(step_edge_image):
    mask = np.zeros((64, 64), dtype=np.uint8)
    result = estimate_psf(step_edge_image, 5, mask)
    assert result.status is Status.NO_STRUCTURE
    np.testing.assert_array_equal(result.kernel, impulse_kernel(5))


def test_mask_only_in_border_band_is_no_structure(step_edge_image):
    mask = np.zeros((64, 64), dtype=np.uint8)
    mask[:4] = 1
    result = estimate_psf(step_edge_image, 5, mask, num_levels=1)
    assert result.status is Status.NO_STRUCTURE
    assert "valid band" in result.reason


def test_deterministic(step_edge_image, full_mask):
    a = PSFEstimator().estimate_kernel(step_edge_image, 7, full_mask)
    b = PSFEstimator().estimate_kernel(step_edge_image, 7, full_mask)
    assert a.status is b.status
    assert np.array_equal(a.kernel, b.kernel)


def test_input_is_not_modified(step_edge_image, full_mask):
    before = step_edge_image.copy()
    PSFEstimator().estimate_kernel(step_edge_image, 5, full_mask)
    np.testing.assert_array_equal(step_edge_image, before)


class RecordingRefiner:
    def __init__(self, config):
        self.calls = []
        RecordingRefiner.last = self

    def __call__(self, kernel, gradients, confidence, level, gray):
        self.calls.append((level, kernel.shape, gradients.shape, confidence.shape, gray.shape))
        out = kernel.copy()
        out[kernel.shape[0] // 2, kernel.shape[1] // 2] += 1.0
        return out


def test_refiner_hook_runs_coarse_to_fine():
    img = np.zeros((128, 128, 3), dtype=np.uint8)
    img[:, 64:] = 255
    estimator = PSFEstimator(refiner_factory=RecordingRefiner)

    result = estimator.estimate_kernel(img, 5, num_levels=3)

    calls = RecordingRefiner.last.calls
    assert [c[0] for c in calls] == [2, 1, 0]
    assert [c[1] for c in calls] == [(5, 5)] * 3
    assert [c[2] for c in calls] == [(32, 32, 2), (64, 64, 2), (128, 128, 2)]
    assert [c[3] for c in calls] == [(32, 32), (64, 64), (128, 128)]
    assert [c[4] for c in calls] == [(32, 32), (64, 64), (128, 128)]
    assert result.status is Status.OK
    assert result.levels_completed == 3
    np.testing.assert_array_equal(result.kernel, impulse_kernel(5))


def test_pyramid_depth_is_capped(step_edge_image):
    estimator = PSFEstimator(refiner_factory=RecordingRefiner)
    estimator.estimate_kernel(step_edge_image, 5, num_levels=6)
    # 64 -> 32 -> 16, the next level would be smaller than 2 * (5 + 1)
    assert [c[0] for c in RecordingRefiner.last.calls] == [2, 1, 0]


def test_degenerate_finer_level_keeps_coarse_kernel():
    class HalfRefiner(RecordingRefiner):
        def __call__(self, kernel, gradients, confidence, level, gray):
            from two_phase_psf.errors import NoStructureError
            if level == 0:
                raise NoStructureError("nothing selected")
            out = np.zeros_like(kernel)
            out[2, 1:4] = 1.0
            return out

    img = np.zeros((64, 64, 3), dtype=np.uint8)
    img[:, 32:] = 255
    result = PSFEstimator(refiner_factory=HalfRefiner).estimate_kernel(img, 5, num_levels=2)

    assert result.status is Status.NO_STRUCTURE
    assert result.levels_completed == 1
    np.testing.assert_allclose(result.kernel[2, 1:4], 1.0 / 3, rtol=1e-6)


def test_debug_display_does_not_change_result(step_edge_image, full_mask):
    plt.close("all")
    quiet = PSFEstimator(make_config()).estimate_kernel(step_edge_image, 5, full_mask)
    loud = PSFEstimator(make_config(DEBUG=True)).estimate_kernel(step_edge_image, 5, full_mask)

    assert np.array_equal(quiet.kernel, loud.kernel)
    labels = set(plt.get_figlabels())
    assert {"pyr 0", "x gradient", "y gradient", "confidence"} <= labels
    plt.close("all")


def test_verbose_prints_progress(step_edge_image, capsys):
    PSFEstimator(make_config(VERBOSE=True)).estimate_kernel(step_edge_image, 5, num_levels=1)
    out = capsys.readouterr().out
    assert "Scale 1/1" in out
    assert "Estimation finished: ok" in out


def test_silent_by_default(step_edge_image, capsys):
    PSFEstimator().estimate_kernel(step_edge_image, 5)
    assert capsys.readouterr().out == ""


def test_estimate_psf_returns_kernel_estimate(step_edge_image):
    result = estimate_psf(step_edge_image, 5, num_levels=1)
    assert isinstance(result, KernelEstimate)
    assert result.status is Status.OK
    check_kernel(result.kernel, 5)


def test_mask_smaller_than_one_window_is_no_structure(step_edge_image):
    mask = np.zeros((64, 64), dtype=np.uint8)
    mask[32, 31] = 1
    result = estimate_psf(step_edge_image, 5, mask, num_levels=1)
    assert result.status is Status.NO_STRUCTURE
    assert "smaller than one window" in result.reason
    np.testing.assert_array_equal(result.kernel, impulse_kernel(5))


def rectangles(size=160, seed=0):
    rng = np.random.RandomState(seed)
    img = np.full((size, size), 128, dtype=np.uint8)
    for _ in range(40):
        x0, y0 = rng.randint(0, size - 20, size=2)
        w, h = rng.randint(8, 40, size=2)
        cv2.rectangle(img, (int(x0), int(y0)), (int(x0 + w), int(y0 + h)),
                      int(rng.randint(0, 256)), -1)
    return np.dstack([img] * 3)


def centroid(kernel):
    ys, xs = np.mgrid[0:kernel.shape[0], 0:kernel.shape[1]]
    s = kernel.sum()
    return (ys * kernel).sum() / s, (xs * kernel).sum() / s


def test_unblurred_texture_gives_centered_kernel():
    result = estimate_psf(rectangles(), 9)
    assert result.status is Status.OK
    check_kernel(result.kernel, 9)

    cy, cx = centroid(result.kernel)
    assert abs(cy - 4) <= 0.5
    assert abs(cx - 4) <= 0.5
