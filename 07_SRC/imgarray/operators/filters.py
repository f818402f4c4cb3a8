# ==================================================
# ================  MODULE: filters  ===============
# ==================================================
from __future__ import annotations

from typing import Any, Dict, Optional

import numpy as np

from imgarray.operators.window import WindowSize, as_window_size, window_default
from imgarray.utils.decorators import log_errors, timed

# Public API
__all__ = ["FilterMixin", "EDGE_KERNELS", "gaussian_kernel"]

# ====[ Fixed 3x3 kernels ]====
EDGE_KERNELS: Dict[str, np.ndarray] = {
    "sobel_x": np.array([[-1, 0, 1], [-2, 0, 2], [-1, 0, 1]], dtype=np.float64),
    "sobel_y": np.array([[-1, -2, -1], [0, 0, 0], [1, 2, 1]], dtype=np.float64),
    "scharr_x": np.array([[-3, 0, 3], [-10, 0, 10], [-3, 0, 3]], dtype=np.float64),
    "scharr_y": np.array([[-3, -10, -3], [0, 0, 0], [3, 10, 3]], dtype=np.float64),
    "prewitt_x": np.array([[-1, 0, 1], [-1, 0, 1], [-1, 0, 1]], dtype=np.float64),
    "prewitt_y": np.array([[-1, -1, -1], [0, 0, 0], [1, 1, 1]], dtype=np.float64),
    "laplacian_4": np.array([[0, -1, 0], [-1, 4, -1], [0, -1, 0]], dtype=np.float64),
    "laplacian_8": np.array([[-1, -1, -1], [-1, 8, -1], [-1, -1, -1]], dtype=np.float64),
}


def gaussian_kernel(sigma: float = 2.0, size: WindowSize = (3, 3)) -> np.ndarray:
    """
    Normalised 2-D Gaussian kernel.

    Parameters
    ----------
    sigma : float, default 2.0
        Standard deviation (must be > 0).
    size : int or (int, int), default (3, 3)
        Odd kernel dimensions.

    Returns
    -------
    np.ndarray
        Kernel of shape `size` whose entries sum to 1.
    """
    if sigma <= 0:
        raise ValueError(f"[gaussian_kernel] sigma must be > 0, got {sigma}.")
    kh, kw = as_window_size(size)
    y = np.arange(kh) - kh // 2
    x = np.arange(kw) - kw // 2
    yy, xx = np.meshgrid(y, x, indexing="ij")
    kernel = np.exp(-(xx ** 2 + yy ** 2) / (2 * sigma ** 2)) / (2 * np.pi * sigma ** 2)
    return kernel / kernel.sum()


def _median(block: np.ndarray) -> np.ndarray:
    # even counts average the two middle values
    ordered = np.sort(block, axis=1)
    n = ordered.shape[1]
    mid = n // 2
    if n % 2 == 0:
        return (ordered[:, mid - 1] + ordered[:, mid]) / 2
    return ordered[:, mid]


# ==================================================
# ==============  CLASS: FilterMixin  ==============
# ==================================================
class FilterMixin:
    """
    Window-reduction filters: expand with `neighbor`/`structure`, then reduce
    the stacked channel-vector of every pixel.

    Window sizes are validated before any expansion; even sizes raise
    InvalidWindowSize. Sizes, patterns and fill values left as None come from
    the active `WindowConfig`. Results are single-channel arrays of
    `GlobalConfig.reduce_dtype`.
    """

    # ====[ Convolution ]====
    @log_errors("TypedArray.conv2d")
    @timed("TypedArray.conv2d")
    def conv2d(self, weights: Optional[Any] = None, bias: float = 0, fillvalue: Optional[float] = None):
        """
        2-D correlation with `weights` (default: 3x3 box of 1/9).

        The flattened kernel (row-major) lines up with the slot order of
        `neighbor`, so each output is ``sum(window * weights) + bias``.
        """
        kernel = np.full((3, 3), 1 / 9) if weights is None else np.asarray(weights, dtype=np.float64)
        if kernel.ndim != 2:
            raise ValueError(f"[TypedArray] Kernel must be 2-D, got ndim={kernel.ndim}.")
        size = as_window_size(kernel.shape)
        return self.neighbor(size, fillvalue).linear_combination(kernel.reshape(-1), bias)

    def gaussian_blur(self, sigma: float = 2.0, size: Optional[WindowSize] = None, fillvalue: Optional[float] = None):
        return self.conv2d(gaussian_kernel(sigma, window_default("size", size)), 0, fillvalue)

    # ====[ Edge operators ]====
    def _edge(self, name: str, fillvalue: Optional[float]):
        return self.conv2d(EDGE_KERNELS[name], 0, fillvalue)

    def _edge_xy(self, prefix: str, fillvalue: Optional[float]):
        gx = self._edge(f"{prefix}_x", fillvalue).abs()
        gy = self._edge(f"{prefix}_y", fillvalue).abs()
        return gx.add(gy)

    def sobel_x(self, fillvalue: Optional[float] = None):
        return self._edge("sobel_x", fillvalue)

    def sobel_y(self, fillvalue: Optional[float] = None):
        return self._edge("sobel_y", fillvalue)

    def sobel_xy(self, fillvalue: Optional[float] = None):
        return self._edge_xy("sobel", fillvalue)

    def scharr_x(self, fillvalue: Optional[float] = None):
        return self._edge("scharr_x", fillvalue)

    def scharr_y(self, fillvalue: Optional[float] = None):
        return self._edge("scharr_y", fillvalue)

    def scharr_xy(self, fillvalue: Optional[float] = None):
        return self._edge_xy("scharr", fillvalue)

    def prewitt_x(self, fillvalue: Optional[float] = None):
        return self._edge("prewitt_x", fillvalue)

    def prewitt_y(self, fillvalue: Optional[float] = None):
        return self._edge("prewitt_y", fillvalue)

    def prewitt_xy(self, fillvalue: Optional[float] = None):
        return self._edge_xy("prewitt", fillvalue)

    @log_errors("TypedArray.laplacian")
    def laplacian(self, size: int = 4, fillvalue: Optional[float] = None):
        """4- or 8-connected Laplacian."""
        if size not in (4, 8):
            raise ValueError(f"[TypedArray] Laplacian size must be 4 or 8, got {size!r}.")
        return self._edge(f"laplacian_{size}", fillvalue)

    # ====[ Rank / pooling filters ]====
    @log_errors("TypedArray.median")
    def median(self, size: Optional[WindowSize] = None, fillvalue: Optional[float] = None):
        return self.neighbor(size, fillvalue).apply_along_channel(_median, vectorized=True)

    @log_errors("TypedArray.max_pooling")
    def max_pooling(self, size: Optional[WindowSize] = None, fillvalue: Optional[float] = None):
        """Local maximum; the spatial size is kept (no subsampling)."""
        return self.neighbor(size, fillvalue).max(along_channel=True)

    @log_errors("TypedArray.min_pooling")
    def min_pooling(self, size: Optional[WindowSize] = None, fillvalue: Optional[float] = None):
        return self.neighbor(size, fillvalue).min(along_channel=True)

    @log_errors("TypedArray.avg_pooling")
    def avg_pooling(self, size: Optional[WindowSize] = None, fillvalue: Optional[float] = None):
        return self.neighbor(size, fillvalue).mean(along_channel=True)

    # ====[ Morphology ]====
    @log_errors("TypedArray.dilate")
    def dilate(self, pattern: Any = None, fillvalue: Optional[float] = None):
        return self.structure(pattern, fillvalue).max(along_channel=True)

    @log_errors("TypedArray.erode")
    def erode(self, pattern: Any = None, fillvalue: Optional[float] = None):
        return self.structure(pattern, fillvalue).min(along_channel=True)

    def open(self, pattern: Any = None, fillvalue: Optional[float] = None):
        """Erosion followed by dilation."""
        return self.erode(pattern, fillvalue).dilate(pattern, fillvalue)

    def close(self, pattern: Any = None, fillvalue: Optional[float] = None):
        """Dilation followed by erosion."""
        return self.dilate(pattern, fillvalue).erode(pattern, fillvalue)

    @log_errors("TypedArray.morph_gradient")
    def morph_gradient(self, size: Optional[WindowSize] = None, fillvalue: Optional[float] = None):
        expanded = self.neighbor(size, fillvalue)
        return expanded.apply_along_channel(lambda block: block.max(axis=1) - block.min(axis=1), vectorized=True)

    def tophat(self, pattern: Any = None, fillvalue: Optional[float] = None):
        """``self - open(self)``."""
        return self.sub(self.open(pattern, fillvalue))

    def blackhat(self, pattern: Any = None, fillvalue: Optional[float] = None):
        """``close(self) - self``."""
        return self.close(pattern, fillvalue).sub(self)

    # ====[ Local thresholding ]====
    @log_errors("TypedArray.adaptive_threshold")
    def adaptive_threshold(self, size: Optional[WindowSize] = None, fillvalue: Optional[float] = None, constant: float = 0):
        """
        Binary map: 1 where a pixel exceeds its local mean minus `constant`, else 0.
        """
        local_mean = self.avg_pooling(size, fillvalue)
        mask = self._values() > (local_mean._values() - constant)
        return self._wrap(mask.astype(np.float64), dtype=local_mean.dtype)
