# ==================================================
# ================  MODULE: window  ================
# ==================================================
from __future__ import annotations

from typing import Any, Callable, Optional, Sequence, Tuple, Union

import numpy as np
from joblib import Parallel, delayed
from numpy.lib.stride_tricks import sliding_window_view

from imgarray.core.config import STRATEGIES, get_global_config, get_window_config
from imgarray.core.errors import ChannelMismatch, InvalidWindowSize, ShapeMismatch
from imgarray.utils.decorators import log_errors, timed

# Public API
__all__ = ["WindowMixin", "as_window_size", "as_pattern", "window_default"]

WindowSize = Union[int, Sequence[int]]


def window_default(name: str, value: Any = None) -> Any:
    """Return `value`, or the active `WindowConfig` field `name` when `value` is None."""
    return getattr(get_window_config(), name) if value is None else value


def as_window_size(size: WindowSize) -> Tuple[int, int]:
    """
    Normalise a window size to (height, width) and check that both are odd.

    Raises
    ------
    InvalidWindowSize
        If a dimension is even, non-positive or not an integer.
    """
    dims = (size, size) if np.isscalar(size) else tuple(size)
    if len(dims) != 2:
        raise InvalidWindowSize(f"[window] Window size must have two dimensions, got {size!r}.")
    for d in dims:
        if int(d) != d or d < 1 or int(d) % 2 == 0:
            raise InvalidWindowSize(f"[window] Window dimensions must be odd positive integers, got {size!r}.")
    return int(dims[0]), int(dims[1])


def as_pattern(pattern: Any) -> np.ndarray:
    """
    Validate a structuring pattern: a 2-D odd x odd matrix with at least one non-zero cell.
    """
    mask = np.asarray(pattern, dtype=np.float64)
    if mask.ndim != 2 or mask.size == 0:
        raise InvalidWindowSize(f"[window] Pattern must be a non-empty 2-D matrix, got shape {mask.shape}.")
    as_window_size(mask.shape)
    if not np.any(mask != 0):
        raise InvalidWindowSize("[window] Pattern selects no cell.")
    return mask


# ==================================================
# ==============  CLASS: WindowMixin  ==============
# ==================================================
class WindowMixin:
    """
    Sliding-window expansion: every pixel's neighbourhood is materialised on the
    channel axis, then reduced by `apply_along_channel`.

    Notes
    -----
    Expansion is meant for single-channel sources. Multi-channel sources are
    expanded mechanically: slot ``s`` occupies channels ``s*c .. s*c + c - 1``,
    so channel-vector reductions mix the original channels.
    """

    @log_errors("TypedArray.structure")
    @timed("TypedArray.structure")
    def structure(self, pattern: Any = None, fillvalue: Optional[float] = None):
        """
        Expand the neighbourhood selected by `pattern` into the channel axis.

        Parameters
        ----------
        pattern : 2-D array_like, optional
            Odd x odd matrix; every non-zero cell, in row-major order, contributes
            one window slot. Defaults to `WindowConfig.pattern`.
        fillvalue : float, optional
            Value of the border used for out-of-range neighbours. Defaults to
            `WindowConfig.fillvalue`.

        Returns
        -------
        TypedArray
            Same height/width, ``channel * count_nonzero(pattern)`` channels, dtype of `self`.
        """
        mask = as_pattern(window_default("pattern", pattern))
        fillvalue = window_default("fillvalue", fillvalue)
        ph, pw = mask.shape
        pad_y, pad_x = ph // 2, pw // 2

        padded = self.pad(left=pad_x, right=pad_x, top=pad_y, bottom=pad_y, fillvalue=fillvalue)
        # (h, w, c, ph, pw): one window per output pixel
        windows = sliding_window_view(padded._values(), window_shape=(ph, pw), axis=(0, 1))

        rows, cols = np.nonzero(mask)
        slots = windows[:, :, :, rows, cols]
        block = np.moveaxis(slots, 3, 2).reshape(self.height, self.width, -1)
        return self._wrap(block)

    def neighbor(self, size: Optional[WindowSize] = None, fillvalue: Optional[float] = None):
        """Full rectangular neighbourhood expansion (all-ones pattern of `size`, default `WindowConfig.size`)."""
        return self.structure(np.ones(as_window_size(window_default("size", size))), fillvalue=fillvalue)

    @log_errors("TypedArray.apply_along_channel")
    @timed("TypedArray.apply_along_channel")
    def apply_along_channel(
        self,
        func: Callable[[np.ndarray], Any],
        dtype: Optional[str] = None,
        strategy: Optional[str] = None,
        vectorized: bool = False,
    ):
        """
        Reduce every pixel's channel-vector to one scalar.

        Parameters
        ----------
        func : Callable
            ``func(vector) -> scalar``; with `vectorized`, ``func(block) -> values``
            where `block` is (n_pixels, channel) and the result has n_pixels entries.
        dtype : str, optional
            Output dtype (default `GlobalConfig.reduce_dtype`).
        strategy : {'vectorized', 'classic', 'parallel'}, optional
            Driver (default `GlobalConfig.processor_strategy`). 'parallel' splits
            pixel rows across joblib workers; output slots stay in row-major order.
        vectorized : bool, default False
            Whether `func` consumes whole blocks.

        Returns
        -------
        TypedArray
            Single-channel array with the height/width of `self`.
        """
        cfg = get_global_config()
        strategy = strategy or cfg.processor_strategy
        if strategy not in STRATEGIES:
            raise ValueError(f"[TypedArray] Unsupported processing strategy: '{strategy}'")

        rows = self._values().reshape(self.height * self.width, self.channel)

        if vectorized:
            block_func = func
        else:
            def block_func(block: np.ndarray) -> np.ndarray:
                return np.array([func(v) for v in block], dtype=np.float64)

        if strategy == "vectorized":
            out = block_func(rows)
        elif strategy == "classic":
            out = [np.asarray(block_func(rows[i:i + 1])).reshape(-1)[0] for i in range(rows.shape[0])]
        else:
            chunks = np.array_split(rows, self.height)
            results = Parallel(n_jobs=cfg.n_jobs, backend=cfg.backend)(
                delayed(block_func)(chunk) for chunk in chunks
            )
            out = np.concatenate([np.asarray(r, dtype=np.float64).reshape(-1) for r in results])

        out = np.asarray(out, dtype=np.float64).reshape(-1)
        if out.size != self.height * self.width:
            raise ShapeMismatch(
                f"[TypedArray] Channel reduction produced {out.size} values for {self.height * self.width} pixels."
            )
        return self._wrap(out.reshape(self.height, self.width, 1), dtype=dtype or cfg.reduce_dtype)

    @log_errors("TypedArray.linear_combination")
    def linear_combination(self, weights: Sequence[float], bias: float = 0):
        """
        Per-pixel ``dot(vector[:len(weights)], weights) + bias``.

        On a single-channel expansion the weights cover every slot. On a
        multi-channel expansion only the leading `len(weights)` channels take part.

        Raises
        ------
        ChannelMismatch
            If there are more weights than channels.
        """
        w = np.asarray(weights, dtype=np.float64).reshape(-1)
        if w.size == 0 or w.size > self.channel:
            raise ChannelMismatch(f"[TypedArray] {w.size} weights for {self.channel} channels.")
        n = w.size
        return self.apply_along_channel(lambda block: block[:, :n] @ w + bias, vectorized=True)
