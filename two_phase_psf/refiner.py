import numpy as np
import cv2

from two_phase_psf.errors import NoStructureError
from two_phase_psf.solver import estimate_kernel, update_l, isd_refine
from two_phase_psf.utils.kernel_utils import clean_kernel, center_kernel
from two_phase_psf.utils.gradient import split_gradients
from two_phase_psf.utils.pyramid import upsample_l
from two_phase_psf.utils.shock import predict_sharp
from two_phase_psf.utils.threshold import initial_thresholds, select_edges, decay_thresholds


class TwoPhaseRefiner:
    """
    Kernel refinement hook called once per pyramid level.

    Phase one runs on every level: shock filter the latent image, keep the
    gradients that are both confident and strong, solve for the kernel and
    update the latent image. The thresholds start high and decay with every
    iteration. Phase two (iterative support detection) runs on level 0 only.

    One instance serves exactly one estimation call; the latent image is carried
    from level to level.
    """

    def __init__(self, config):
        self.config = config
        self.latent = None
        self.tau_r = None
        self.tau_s = None

    def _log(self, msg):
        if getattr(self.config, "VERBOSE", False):
            print(msg)

    def _sharp_gradients(self, latent):
        cfg = self.config
        sharp = predict_sharp(latent, sigma=cfg.SHOCK_SIGMA,
                              iterations=cfg.SHOCK_ITER, dt=cfg.SHOCK_DT)
        gx = cv2.Sobel(sharp, cv2.CV_32F, 1, 0, ksize=cfg.SOBEL_KSIZE,
                       borderType=cv2.BORDER_REPLICATE)
        gy = cv2.Sobel(sharp, cv2.CV_32F, 0, 1, ksize=cfg.SOBEL_KSIZE,
                       borderType=cv2.BORDER_REPLICATE)
        return gx, gy

    def __call__(self, kernel, gradients, confidence, level, gray):
        """
        Parameters:
            kernel     : float32 (K, K) - kernel carried from the coarser level
            gradients  : float32 (H, W, 2) - Sobel field of the blurred level
            confidence : float32 (H, W) - r(x) for this level
            level      : int - pyramid index, 0 is full resolution
            gray       : uint8 (H, W) - blurred luminance of this level

        Returns:
            kernel : float32 (K, K), sums to one, or the incoming kernel when
                     no estimate survived the clean-up
        """
        cfg = self.config
        size = kernel.shape[0]
        b = gray.astype(np.float32) / 255.0
        gx_b, gy_b = split_gradients(gradients)
        grad_b = (gx_b / 255.0, gy_b / 255.0)

        # latent starts as the blurred image, then follows the pyramid
        if self.latent is None:
            self.latent = b.copy()
        else:
            self.latent = upsample_l(self.latent, b.shape)

        # thresholds restart on every level, the r and |grad| statistics change with scale
        self.tau_r = self.tau_s = None

        k = kernel
        grad_s = None
        for it in range(cfg.MAX_ITER):
            gx, gy = self._sharp_gradients(self.latent)

            if self.tau_r is None:
                self.tau_r, self.tau_s = initial_thresholds(
                    confidence, gx, gy, size,
                    bins=cfg.ORIENTATION_BINS, factor=cfg.SELECTION_FACTOR)

            gx_s, gy_s, selected = select_edges(confidence, gx, gy, self.tau_r, self.tau_s)
            count = int(np.count_nonzero(selected))
            self._log(f"    Iter {it+1}: tau_r={self.tau_r:.4f} tau_s={self.tau_s:.4f}, "
                      f"kept {count} px")

            if count == 0:
                if it == 0:
                    raise NoStructureError(f"no pixel selected on level {level}")
                break
            grad_s = (gx_s, gy_s)

            k_new = clean_kernel(estimate_kernel(grad_s, grad_b, size, cfg.GAMMA),
                                 cfg.KERNEL_THRESHOLD)
            # a shifted kernel drags the latent image with it from level to level
            k_new = center_kernel(k_new)
            if k_new.sum() <= 1e-12:
                self._log(f"    WARNING: Kernel vanished on level {level}. Keeping previous.")
            else:
                k = k_new
                self.latent = update_l(b, k, grad_s, cfg.LAMBDA)

            self.tau_r, self.tau_s = decay_thresholds(self.tau_r, self.tau_s,
                                                      cfg.THRESHOLD_DECAY)

        if level == 0 and grad_s is not None and k.sum() > 1e-12:
            k_isd = clean_kernel(
                isd_refine(k, grad_s, grad_b, iterations=cfg.ISD_ITER,
                           steps=cfg.ISD_STEPS, step_size=cfg.ISD_STEP_SIZE,
                           lam=cfg.ISD_LAMBDA),
                cfg.KERNEL_THRESHOLD)
            if k_isd.sum() > 1e-12:
                k = center_kernel(k_isd)

        return k.astype(np.float32)
