import numpy as np
from numpy.fft import fft2, ifft2

from two_phase_psf.utils.kernel_utils import pad_kernel_origin, extract_kernel_center

EPS = 1e-8

# Sobel kernels written as convolution kernels (cv2.Sobel correlates)
SOBEL_X = np.array([[1, 0, -1],
                    [2, 0, -2],
                    [1, 0, -1]], dtype=np.float64)
SOBEL_Y = SOBEL_X.T


def derivative_otfs(shape):
    """FFTs of the Sobel operators, matching the gradient field convention."""
    return fft2(pad_kernel_origin(SOBEL_X, shape)), fft2(pad_kernel_origin(SOBEL_Y, shape))


def estimate_kernel(grad_s, grad_b, size, gamma):
    """
    Least-squares kernel from predicted sharp gradients, solved in closed form:

        k = F^-1( sum_d conj(F(d I_s)) F(d B) / (sum_d |F(d I_s)|^2 + gamma) )

    Parameters:
        grad_s : (gx, gy) - predicted sharp gradients
        grad_b : (gx, gy) - gradients of the blurred image, same scale
        size   : int - odd side of the kernel
        gamma  : float - Tikhonov weight

    Returns:
        k : float32 (size, size), not yet cleaned or normalized
    """
    numerator = 0
    denominator = gamma
    for gs, gb in zip(grad_s, grad_b):
        Fs = fft2(gs)
        Fb = fft2(gb)
        numerator = numerator + np.conj(Fs) * Fb
        denominator = denominator + np.abs(Fs) ** 2

    Fk = numerator / (denominator + EPS)
    k_full = np.real(ifft2(Fk))

    return extract_kernel_center(k_full, size)


def update_l(b, k, grad_s, lam):
    """
    Frequency-domain solve for the latent image l:

        min ||k * l - b||^2 + lam * sum_d ||d l - d I_s||^2

    Parameters:
        b      : float (H, W) blurred luminance in [0, 1]
        k      : float (K, K) current kernel, sums to one
        grad_s : (gx, gy) - predicted sharp gradients (Sobel convention)
        lam    : float - gradient fidelity weight

    Returns:
        l : float32 (H, W) clipped to [0, 1]
    """
    H, W = b.shape
    Fk = fft2(pad_kernel_origin(k, (H, W)))
    FDx, FDy = derivative_otfs((H, W))

    Fb = fft2(b)
    Fg = np.conj(FDx) * fft2(grad_s[0]) + np.conj(FDy) * fft2(grad_s[1])

    numerator = np.conj(Fk) * Fb + lam * Fg
    denominator = np.abs(Fk) ** 2 + lam * (np.abs(FDx) ** 2 + np.abs(FDy) ** 2)
    denominator = np.maximum(denominator, 1e-2)

    l_new = np.real(ifft2(numerator / denominator))
    return np.clip(l_new, 0.0, 1.0).astype(np.float32)


def detect_support(k):
    """
    Iterative support detection step: sort the entries, find the first gap
    that is large relative to the peak and keep everything above it.
    """
    values = np.sort(k.ravel())[::-1]
    values = values[values > 0]
    if values.size < 2:
        return k > 0

    peak = values[0]
    gaps = values[:-1] - values[1:]
    size = k.shape[0]
    for j, gap in enumerate(gaps):
        if gap > peak / (2.0 * size * (j + 1)):
            return k >= values[j]
    return k > 0


def isd_refine(k, grad_s, grad_b, iterations=3, steps=20, step_size=0.5, lam=1e-3):
    """
    Phase two: sparse refinement of the kernel. Entries outside the detected
    support are pulled towards zero with an L1 penalty, the support itself is
    only fitted to the data. Each inner step is one projected ISTA update on

        1/2 sum_d ||d I_s * k - d B||^2 + lam * L * sum_{i not in S} |k_i|

    where L is the Lipschitz constant of the data term.
    """
    size = k.shape[0]
    H, W = grad_b[0].shape

    Fs = [fft2(g) for g in grad_s]
    Fb = [fft2(g) for g in grad_b]
    lipschitz = float(np.max(sum(np.abs(F) ** 2 for F in Fs)))
    if lipschitz <= EPS:
        return k

    t = step_size / lipschitz
    k = k.astype(np.float64)

    for _ in range(iterations):
        support = detect_support(k)

        for _ in range(steps):
            Fk = fft2(pad_kernel_origin(k, (H, W)))
            grad_full = 0
            for fs, fb in zip(Fs, Fb):
                grad_full = grad_full + np.conj(fs) * (fs * Fk - fb)
            grad = extract_kernel_center(np.real(ifft2(grad_full)), size)

            k = k - t * grad
            # soft threshold off the support, then project onto k >= 0
            shrink = np.where(support, 0.0, step_size * lam)
            k = np.sign(k) * np.maximum(np.abs(k) - shrink, 0.0)
            k = np.clip(k, 0.0, None)

        s = k.sum()
        if s <= 1e-12:
            break
        k = k / s

    return k.astype(np.float32)
