import numpy as np
import cv2


def shock_filter(image, iterations=5, dt=0.1):
    """
    Osher-Rudin shock filter: u <- u - dt * sign(laplacian(u)) * |grad u|.

    Dilates on the dark side of an edge and erodes on the bright side, which
    turns blurred ramps back into steps.

    Parameters:
        image      : float array (H, W)
        iterations : int - number of explicit update steps
        dt         : float - step size, kept below 0.5 for stability

    Returns:
        filtered : float32 array (H, W)
    """
    u = image.astype(np.float32)

    for _ in range(iterations):
        # central differences (Sobel scaled by 1/8)
        grad_x = cv2.Sobel(u, cv2.CV_32F, 1, 0, ksize=3, scale=0.125,
                           borderType=cv2.BORDER_REPLICATE)
        grad_y = cv2.Sobel(u, cv2.CV_32F, 0, 1, ksize=3, scale=0.125,
                           borderType=cv2.BORDER_REPLICATE)
        grad_mag = np.sqrt(grad_x ** 2 + grad_y ** 2)

        laplacian = cv2.Laplacian(u, cv2.CV_32F, ksize=1,
                                  borderType=cv2.BORDER_REPLICATE)

        u = u - dt * np.sign(laplacian) * grad_mag

    return u


def predict_sharp(latent, sigma=1.0, iterations=5, dt=0.1):
    """Gaussian pre-smoothing followed by shock filtering."""
    smoothed = cv2.GaussianBlur(latent.astype(np.float32), (0, 0), sigmaX=sigma,
                                borderType=cv2.BORDER_REPLICATE)
    return shock_filter(smoothed, iterations=iterations, dt=dt)
