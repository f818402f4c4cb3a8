# ==================================================
# =============  MODULE: thresholding  =============
# ==================================================

from __future__ import annotations

from typing import Callable, Dict, List, Optional

import numpy as np
from skimage.filters import (threshold_otsu, threshold_yen, threshold_isodata,
                             threshold_li, threshold_triangle)

from imgarray.core.array_base import ArrayBase
from imgarray.core.config import ThresholdConfig
from imgarray.operators.elementwise import THRESHOLD_POLICIES
from imgarray.utils.decorators import log_errors
from imgarray.utils.logger import get_logger

# Public API
__all__ = ["ThresholdingOperator", "AUTO_METHODS", "auto_threshold"]

AUTO_METHODS: Dict[str, Callable[[np.ndarray], float]] = {
    "otsu": threshold_otsu,
    "yen": threshold_yen,
    "isodata": threshold_isodata,
    "li": threshold_li,
    "triangle": threshold_triangle,
}

# ==================================================
# ============= ThresholdingOperator ===============
# ==================================================

class ThresholdingOperator:
    """
    Thresholding operator for TypedArrays.

    `ThresholdConfig.method` selects either a fixed policy ('binary',
    'binary_inv', 'truncate', 'tozero', 'tozero_inv') applied with
    `ThresholdConfig.threshold`, or an automatic selector ('otsu', 'yen',
    'isodata', 'li', 'triangle') whose threshold is then applied with
    `ThresholdConfig.policy`.

    Notes
    -----
    - Automatic thresholds are computed per channel when `per_channel` is True,
      otherwise once over the whole buffer.
    - The result keeps the shape and dtype of the input.
    """
    def __init__(self, threshold_cfg: Optional[ThresholdConfig] = None, per_channel: bool = False) -> None:
        """
        Parameters
        ----------
        threshold_cfg : ThresholdConfig, optional
            Method, policy, fixed threshold and maxval.
        per_channel : bool, default False
            Compute one automatic threshold per channel.
        """
        self.threshold_cfg: ThresholdConfig = threshold_cfg or ThresholdConfig()
        self.per_channel: bool = per_channel
        self.method: str = self.threshold_cfg.method.lower()
        self.last_thresholds: List[float] = []

        if self.method not in THRESHOLD_POLICIES and self.method not in AUTO_METHODS:
            raise ValueError(
                f"Unknown thresholding method '{self.method}'. "
                f"Supported: {list(THRESHOLD_POLICIES) + list(AUTO_METHODS)}"
            )
        if self.threshold_cfg.policy not in THRESHOLD_POLICIES:
            raise ValueError(
                f"Unknown threshold policy '{self.threshold_cfg.policy}'. Supported: {list(THRESHOLD_POLICIES)}"
            )

    @log_errors("ThresholdingOperator")
    def __call__(self, arr: ArrayBase) -> ArrayBase:
        """
        Threshold `arr` and return a new array.

        Parameters
        ----------
        arr : TypedArray
            Input array.

        Returns
        -------
        TypedArray
            Thresholded array, same shape and dtype.
        """
        cfg = self.threshold_cfg
        if self.method in THRESHOLD_POLICIES:
            self.last_thresholds = [float(cfg.threshold)]
            return arr.threshold(cfg.threshold, self.method, cfg.maxval)

        if not self.per_channel:
            t = self.compute_threshold(arr)
            self.last_thresholds = [t]
            return arr.threshold(t, cfg.policy, cfg.maxval)

        # ====[ Slice-wise thresholds ]====
        policy = THRESHOLD_POLICIES[cfg.policy]
        values = arr.to_numpy().astype(np.float64)
        out = np.empty_like(values)
        self.last_thresholds = []
        for ch in range(arr.channel):
            t = float(AUTO_METHODS[self.method](values[:, :, ch]))
            self.last_thresholds.append(t)
            out[:, :, ch] = policy(values[:, :, ch], t, cfg.maxval)
        return arr._wrap(out)

    def compute_threshold(self, arr: ArrayBase) -> float:
        """Automatic threshold of the whole buffer with the configured selector."""
        if self.method not in AUTO_METHODS:
            return float(self.threshold_cfg.threshold)
        t = float(AUTO_METHODS[self.method](arr.data.astype(np.float64)))
        get_logger().info(f"[ThresholdingOperator] '{self.method}' threshold = {t:.4f}")
        return t


def auto_threshold(
    arr: ArrayBase,
    method: str = "otsu",
    policy: str = "binary",
    maxval: float = 255.0,
    per_channel: bool = False,
) -> ArrayBase:
    """Convenience wrapper: threshold `arr` with an automatic selector."""
    cfg = ThresholdConfig(method=method, policy=policy, maxval=maxval)
    return ThresholdingOperator(cfg, per_channel=per_channel)(arr)
