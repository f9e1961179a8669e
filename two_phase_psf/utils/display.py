import numpy as np
import cv2
import matplotlib.pyplot as plt


def float_to_uint8(mat):
    """
    Converts a float matrix to uint8 for display. Values already in [0, 1)
    are scaled by 255, anything else is shifted by -min and stretched to
    [0, 255]. The input is not modified.
    """
    mat = np.asarray(mat, dtype=np.float64)
    lo, hi, _, _ = cv2.minMaxLoc(mat)

    if lo >= 0 and hi < 1:
        return np.clip(np.rint(mat * 255.0), 0, 255).astype(np.uint8)

    if hi == lo:
        # constant matrix, nothing to stretch
        return np.zeros(mat.shape, dtype=np.uint8)

    scaled = (mat - lo) * (255.0 / (hi - lo))
    return np.clip(np.rint(scaled), 0, 255).astype(np.uint8)


def show_debug(name, mat):
    """Draws `mat` into the figure labelled `name` without blocking."""
    fig = plt.figure(name)
    fig.clf()
    view = mat if mat.dtype == np.uint8 else float_to_uint8(mat)
    if view.ndim == 3:
        plt.imshow(cv2.cvtColor(view, cv2.COLOR_BGR2RGB))
    else:
        plt.imshow(view, cmap='gray', vmin=0, vmax=255)
    plt.title(name)
    fig.canvas.draw_idle()
    return fig
