import numpy as np
from numpy.fft import fftshift

from two_phase_psf.errors import PreconditionError

#kernel utils
def odd_size(size):
    """Rounds a requested kernel side up to the next odd integer."""
    size = int(size)
    if size <= 0:
        raise PreconditionError(f"kernel size must be positive, got {size}")
    return size if size % 2 == 1 else size + 1


def zero_kernel(size):
    return np.zeros((size, size), dtype=np.float32)


def impulse_kernel(size):
    # one pixel in the center, convolution with it is the identity
    k = zero_kernel(size)
    k[size // 2, size // 2] = 1.0
    return k


def normalise_kernel(k):
    s = k.sum()
    if s > 1e-8:
        return (k / s).astype(np.float32)
    return k


def clean_kernel(k, rel_threshold=1e-3):
    """
    Clamps negatives, drops entries below `rel_threshold * max` and
    L1-normalizes. A kernel without energy comes back as all zeros.
    """
    k = np.clip(k, 0, None).astype(np.float32)

    # === relative threshold ===
    thr = max(1e-8, rel_threshold * float(k.max()))
    k[k < thr] = 0.0

    s = k.sum()
    if s > 1e-12:
        return k / s
    return np.zeros_like(k)


def center_kernel(k):
    """
    Shifts the kernel by whole pixels so its centroid sits on the center.
    Entries pushed past the border are dropped and the rest renormalized.
    """
    s = float(k.sum())
    if s <= 1e-12:
        return k

    kh, kw = k.shape
    ys, xs = np.mgrid[0:kh, 0:kw]

    # dropping mass moves the centroid again, a few passes settle it
    for _ in range(3):
        s = float(k.sum())
        dy = int(np.rint(kh // 2 - (ys * k).sum() / s))
        dx = int(np.rint(kw // 2 - (xs * k).sum() / s))
        if dy == 0 and dx == 0:
            break

        out = np.zeros_like(k)
        out[max(dy, 0):kh + min(dy, 0), max(dx, 0):kw + min(dx, 0)] = \
            k[max(-dy, 0):kh + min(-dy, 0), max(-dx, 0):kw + min(-dx, 0)]
        if out.sum() <= 1e-12:
            break
        k = normalise_kernel(out)

    return k


def pad_kernel_origin(k, out_shape):
    """
    Embed a small kernel into an (H, W) array with its center moved to (0, 0),
    the layout fft2 expects for convolution (same as MATLAB psf2otf).
    """
    H, W = out_shape
    kh, kw = k.shape

    padded = np.zeros((H, W), dtype=np.float64)
    padded[:kh, :kw] = k

    return np.roll(padded, (-(kh // 2), -(kw // 2)), axis=(0, 1))


def extract_kernel_center(k_full, size):
    """
    Inverse of pad_kernel_origin: fftshift brings the origin to the middle,
    then the (size x size) block around it is cropped.
    """
    k = np.real(fftshift(k_full))
    H, W = k.shape
    cy, cx = H // 2, W // 2
    y0 = cy - size // 2
    x0 = cx - size // 2
    return k[y0:y0 + size, x0:x0 + size].astype(np.float32)
