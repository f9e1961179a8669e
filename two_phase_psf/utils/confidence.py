import numpy as np
import cv2

from two_phase_psf.errors import PreconditionError


def _window_sum(channel, width):
    # unnormalized box filter == sum over the width x width window
    return cv2.boxFilter(channel, -1, (width, width), normalize=False,
                         borderType=cv2.BORDER_REPLICATE)


def gradient_confidence(gradients, width, mask, epsilon=0.5):
    """
    Computes how useful the gradients around each pixel are for kernel estimation:

                  || sum_{y in N_h(x)} grad B(y) ||
        r(x) = -----------------------------------------
                sum_{y in N_h(x)} || grad B(y) || + eps

    A single dominant edge gives values close to 1, texture and flat regions
    give values close to 0.

    Parameters:
        gradients : float array (H, W, 2) - x and y gradients
        width     : int - side of the window N_h, rounded up to odd
        mask      : uint8 array (H, W) - non-zero where confidence is wanted
        epsilon   : float - added to the denominator

    Returns:
        confidence : float32 array (H, W), zero outside the mask and on the
                     border band of `width` pixels
    """
    if gradients.ndim != 3 or gradients.shape[2] != 2:
        raise PreconditionError("gradients must have shape (H, W, 2)")
    if mask.ndim != 2 or mask.shape != gradients.shape[:2]:
        raise PreconditionError(
            f"mask shape {mask.shape[:2]} does not match gradients {gradients.shape[:2]}")
    if width <= 0:
        raise PreconditionError(f"window width must be positive, got {width}")

    width = width if width % 2 == 1 else width + 1
    H, W = gradients.shape[:2]
    confidence = np.zeros((H, W), dtype=np.float32)

    # pixels closer than `width` to an edge are never computed
    if H <= 2 * width or W <= 2 * width:
        return confidence

    # accumulate in double precision, the windows overlap heavily
    gx = gradients[:, :, 0].astype(np.float64)
    gy = gradients[:, :, 1].astype(np.float64)

    sum_x = _window_sum(gx, width)
    sum_y = _window_sum(gy, width)
    sum_norm = _window_sum(np.sqrt(gx * gx + gy * gy), width)

    # running sums leave tiny negative residues on flat windows
    sum_norm = np.maximum(sum_norm, 0.0)

    r = np.sqrt(sum_x * sum_x + sum_y * sum_y) / (sum_norm + epsilon)

    # triangle inequality bounds r by 1, rounding must not break that
    r = np.minimum(r, 1.0)

    inside = np.zeros((H, W), dtype=bool)
    inside[width:H - width, width:W - width] = True
    inside &= mask != 0

    confidence[inside] = r[inside]
    return confidence
