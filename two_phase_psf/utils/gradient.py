import numpy as np
import cv2

from two_phase_psf.errors import PreconditionError


def preprocess(image, ksize=3):
    """
    Smooths an 8-bit image and reduces it to a single luminance channel.

    Parameters:
        image : uint8 array (H, W, 3) in BGR order, or (H, W)
        ksize : int - side of the Gaussian kernel (sigma derived from it)

    Returns:
        gray : uint8 array (H, W)
    """
    blurred = cv2.GaussianBlur(image, (ksize, ksize), sigmaX=0, sigmaY=0,
                               borderType=cv2.BORDER_DEFAULT)

    if blurred.ndim == 3:
        if blurred.shape[2] != 3:
            raise PreconditionError(f"unsupported channel count: {blurred.shape[2]}")
        return cv2.cvtColor(blurred, cv2.COLOR_BGR2GRAY)
    return blurred


def compute_gradients(gray, ksize=3):
    # Sobel in both directions, merged into one (H, W, 2) float32 field
    if gray.ndim != 2:
        raise PreconditionError("gradient field needs a single-channel image")

    gx = cv2.Sobel(gray, cv2.CV_32F, 1, 0, ksize=ksize, borderType=cv2.BORDER_REPLICATE)
    gy = cv2.Sobel(gray, cv2.CV_32F, 0, 1, ksize=ksize, borderType=cv2.BORDER_REPLICATE)

    return cv2.merge([gx, gy])


def split_gradients(gradients):
    return gradients[:, :, 0], gradients[:, :, 1]

