import numpy as np


def orientation_bins(gx, gy, bins=4):
    """Quantize gradient orientation (modulo pi) into `bins` groups."""
    angle = np.mod(np.arctan2(gy, gx), np.pi)
    idx = np.floor(angle / (np.pi / bins)).astype(np.int32)
    return np.clip(idx, 0, bins - 1)


def _value_at_rank(values, rank):
    # the (rank+1)-th largest value, so `> tau` keeps at most `rank` entries
    if rank >= values.size:
        return 0.0
    return float(np.sort(values)[::-1][rank])


def initial_thresholds(confidence, gx, gy, kernel_size, bins=4, factor=0.5):
    """
    Picks the starting tau_r and tau_s so that roughly
    factor * sqrt(P_I * P_k) pixels survive in every orientation bin.

    Parameters:
        confidence  : float array (H, W) - r(x) of the blurred image
        gx, gy      : float arrays (H, W) - gradients of the shock filtered image
        kernel_size : int - side K of the kernel
        bins        : int - orientation groups
        factor      : float - selection factor

    Returns:
        (tau_r, tau_s) : floats
    """
    count = int(np.ceil(factor * np.sqrt(confidence.size * kernel_size * kernel_size)))

    magnitude = np.sqrt(gx * gx + gy * gy)
    groups = orientation_bins(gx, gy, bins)
    candidates = (confidence > 0) & (magnitude > 0)

    # the weakest bin decides, so every orientation keeps its share
    r_taus = []
    for b in range(bins):
        values = confidence[candidates & (groups == b)]
        if values.size:
            r_taus.append(_value_at_rank(values, count))
    tau_r = min(r_taus) if r_taus else 0.0

    passed = candidates & (confidence > tau_r)
    s_taus = []
    for b in range(bins):
        values = magnitude[passed & (groups == b)]
        if values.size:
            s_taus.append(_value_at_rank(values, count))
    tau_s = min(s_taus) if s_taus else 0.0

    return tau_r, tau_s


def select_edges(confidence, gx, gy, tau_r, tau_s):
    """
    Keeps the gradients that pass both thresholds:

        M = H(r - tau_r),  grad I_s = grad I * H(M * |grad I| - tau_s)

    Returns:
        (gx_s, gy_s, selected) - thresholded gradients and the boolean selection
    """
    magnitude = np.sqrt(gx * gx + gy * gy)
    selected = (confidence > tau_r) & (magnitude > tau_s)

    gx_s = np.where(selected, gx, 0).astype(np.float32)
    gy_s = np.where(selected, gy, 0).astype(np.float32)
    return gx_s, gy_s, selected


def decay_thresholds(tau_r, tau_s, decay=1.1):
    return tau_r / decay, tau_s / decay
