import numpy as np
import cv2

#pyramid fns
def gaussian_pyramid(img, num_levels, min_size=1):
    """
    Builds a Gaussian pyramid by repeated halving.

    Levels whose height or width would drop below `min_size` are not built,
    so the pyramid may be shorter than `num_levels`.

    Returns the levels ordered coarse -> fine (the input image is last).
    """
    if num_levels < 1:
        raise ValueError("num_levels must be >= 1")

    pyr = [img.copy()]
    for _ in range(1, num_levels):
        prev = pyr[-1]
        h, w = prev.shape[0] // 2, prev.shape[1] // 2
        if h < max(min_size, 1) or w < max(min_size, 1):
            # cannot downsample further
            break
        down = cv2.pyrDown(prev, dstsize=(w, h))
        pyr.append(down)

    # We want coarse -> fine for the algorithm loop
    pyr_coarse_to_fine = pyr[::-1]
    return pyr_coarse_to_fine


def resize_mask(mask, target_shape):
    """Nearest-neighbour resize so the mask stays binary."""
    target_h, target_w = target_shape
    if mask.shape[:2] == (target_h, target_w):
        return mask
    return cv2.resize(mask, (target_w, target_h), interpolation=cv2.INTER_NEAREST)


def upsample_l(l, target_shape):
    target_h, target_w = target_shape
    up = cv2.resize(l, (target_w, target_h), interpolation=cv2.INTER_CUBIC)
    return np.clip(up, 0.0, 1.0)
