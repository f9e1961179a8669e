import enum
from dataclasses import dataclass
from typing import Optional

import numpy as np

from two_phase_psf import config as default_config
from two_phase_psf.errors import PreconditionError, NoStructureError
from two_phase_psf.refiner import TwoPhaseRefiner
from two_phase_psf.utils.confidence import gradient_confidence
from two_phase_psf.utils.display import show_debug
from two_phase_psf.utils.gradient import preprocess, compute_gradients, split_gradients
from two_phase_psf.utils.kernel_utils import odd_size, zero_kernel, impulse_kernel, normalise_kernel
from two_phase_psf.utils.pyramid import gaussian_pyramid, resize_mask


class Status(enum.Enum):
    OK = "ok"
    NO_STRUCTURE = "no-structure"
    PRECONDITION_VIOLATION = "precondition-violation"


@dataclass
class KernelEstimate:
    """Outcome of one estimation call."""
    kernel: Optional[np.ndarray]
    status: Status
    levels_completed: int = 0
    reason: str = ""

    @property
    def ok(self):
        return self.status is Status.OK


class PSFEstimator:
    """
    Coarse-to-fine PSF estimation driven by the gradient confidence map.

    For every pyramid level (coarsest first) the image is smoothed, reduced to
    luminance, differentiated and scored with r(x); the refinement hook then
    updates the kernel from the confident pixels. The kernel keeps its K x K
    shape on every level.

    The estimator holds no per-call state, so one instance can serve
    concurrent calls on disjoint inputs.
    """

    def __init__(self, config=default_config, refiner_factory=TwoPhaseRefiner):
        self.config = config
        self.refiner_factory = refiner_factory

    def _log(self, msg):
        if getattr(self.config, "VERBOSE", False):
            print(msg)

    def _debug(self, name, mat):
        if getattr(self.config, "DEBUG", False):
            show_debug(name, mat)

    def check_inputs(self, image, psf_width, mask=None):
        """
        Validates the inputs and returns (image, K, mask) with K odd and the
        mask as uint8 0/1. Raises PreconditionError on any violation.
        """
        if not isinstance(image, np.ndarray) or image.dtype != np.uint8:
            raise PreconditionError("image must be a uint8 numpy array")
        if image.ndim == 3 and image.shape[2] == 1:
            image = image[:, :, 0]
        if image.ndim not in (2, 3) or (image.ndim == 3 and image.shape[2] != 3):
            raise PreconditionError(f"unsupported image shape {image.shape}")

        K = odd_size(psf_width)
        H, W = image.shape[:2]
        min_side = 2 * (K + 1)
        if H < min_side or W < min_side:
            raise PreconditionError(
                f"image {W}x{H} is smaller than {min_side} pixels on one axis "
                f"(psf width {K})")

        if mask is None:
            mask = np.ones((H, W), dtype=np.uint8)
        else:
            mask = np.asarray(mask)
            if mask.ndim != 2 or mask.shape != (H, W):
                raise PreconditionError(
                    f"mask shape {mask.shape} does not match image {(H, W)}")
            mask = (mask != 0).astype(np.uint8)

        return image, K, mask

    def confidence_map(self, image, psf_width, mask=None):
        """Full-resolution confidence map r(x) for the given image and mask."""
        image, K, mask = self.check_inputs(image, psf_width, mask)
        gray = preprocess(image, self.config.GAUSSIAN_KSIZE)
        gradients = compute_gradients(gray, self.config.SOBEL_KSIZE)
        return gradient_confidence(gradients, K, mask, self.config.CONFIDENCE_EPSILON)

    def _check_level(self, gradients, mask, K):
        H, W = mask.shape
        band = mask[K:H - K, K:W - K]
        if band.size == 0 or not band.any():
            raise NoStructureError("mask has no pixel inside the valid band")
        if np.count_nonzero(band) < K * K:
            raise NoStructureError("mask region is smaller than one window")
        if not gradients.any():
            raise NoStructureError("gradient field is identically zero")

    def estimate_kernel(self, image, psf_width, mask=None, num_levels=None):
        """
        Estimates the PSF of a blurred image.

        Parameters:
            image      : uint8 array (H, W, 3) in BGR order, or (H, W)
            psf_width  : int - requested kernel side, rounded up to odd
            mask       : optional uint8 array (H, W), non-zero = region of interest
            num_levels : optional int - pyramid depth, defaults to config.NUM_SCALES

        Returns:
            KernelEstimate with status OK or NO_STRUCTURE; the kernel is always
            K x K, non-negative and sums to one.

        Raises:
            PreconditionError for invalid inputs.
        """
        cfg = self.config
        image, K, mask = self.check_inputs(image, psf_width, mask)
        if num_levels is None:
            num_levels = cfg.NUM_SCALES
        if num_levels < 1:
            raise PreconditionError(f"num_levels must be >= 1, got {num_levels}")

        # phase one starts from an all-zero kernel
        kernel = zero_kernel(K)

        # every level must still fit two windows plus the border
        pyramid = gaussian_pyramid(image, num_levels, min_size=2 * (K + 1))
        refiner = self.refiner_factory(cfg)

        status = Status.OK
        reason = ""
        completed = 0

        # === Coarse-to-Fine Loop ===
        for idx, level_img in enumerate(pyramid):
            level = len(pyramid) - 1 - idx
            self._log(f"\n=== Scale {idx+1}/{len(pyramid)} (level {level}, "
                      f"{level_img.shape[1]}x{level_img.shape[0]}) ===")
            self._debug(f"pyr {level}", level_img)

            gray = preprocess(level_img, cfg.GAUSSIAN_KSIZE)
            gradients = compute_gradients(gray, cfg.SOBEL_KSIZE)
            gx, gy = split_gradients(gradients)
            self._debug("x gradient", gx)
            self._debug("y gradient", gy)

            level_mask = resize_mask(mask, gray.shape)

            try:
                self._check_level(gradients, level_mask, K)
                confidence = gradient_confidence(gradients, K, level_mask,
                                                 cfg.CONFIDENCE_EPSILON)
                self._debug("confidence", confidence)
                if not confidence.any():
                    raise NoStructureError("confidence map is identically zero")

                kernel = refiner(kernel, gradients, confidence, level, gray)
            except NoStructureError as e:
                # keep the best kernel so far, finer levels are skipped
                self._log(f"WARNING: {e}. Stopping at level {level}.")
                status = Status.NO_STRUCTURE
                reason = str(e)
                break

            completed += 1

        # === End of Loops ===
        if kernel.sum() <= 1e-12:
            if status is Status.OK:
                status = Status.NO_STRUCTURE
                reason = "no kernel could be estimated"
            kernel = impulse_kernel(K)

        kernel = normalise_kernel(np.clip(kernel, 0, None))
        self._log(f"\nEstimation finished: {status.value}")

        return KernelEstimate(kernel=kernel, status=status,
                              levels_completed=completed, reason=reason)


def estimate_psf(image, psf_width, mask=None, num_levels=None, config=default_config):
    """
    Functional entry point. Never raises for bad inputs: a precondition
    violation comes back as a KernelEstimate without kernel.
    """
    estimator = PSFEstimator(config)
    try:
        return estimator.estimate_kernel(image, psf_width, mask, num_levels)
    except PreconditionError as e:
        return KernelEstimate(kernel=None, status=Status.PRECONDITION_VIOLATION,
                              reason=str(e))
