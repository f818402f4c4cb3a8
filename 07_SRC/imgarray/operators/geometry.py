# ==================================================
# ===============  MODULE: geometry  ===============
# ==================================================
from __future__ import annotations

from typing import List

import numpy as np

from imgarray.core.array_base import ArrayBase
from imgarray.core.errors import IndexOutOfRange, ShapeMismatch
from imgarray.core.layout_axes import get_layout_axes
from imgarray.utils.decorators import log_errors

# Public API
__all__ = ["GeometryMixin"]


def _check_arrays(arrays) -> None:
    for idx, arr in enumerate(arrays):
        if not isinstance(arr, ArrayBase):
            raise TypeError(f"[TypedArray] Stack operand {idx} is {type(arr).__name__}, expected TypedArray.")


# ==================================================
# =============  CLASS: GeometryMixin  =============
# ==================================================
class GeometryMixin:
    """
    Padding, slicing, stacking and spatial rearrangement.

    Results keep the dtype of `self` unless stated otherwise.
    """

    # ====[ Padding / slicing ]====
    @log_errors("TypedArray.pad")
    def pad(self, left: int = 1, right: int = 2, top: int = 3, bottom: int = 4, fillvalue: float = 0):
        """
        Return a larger array with `self` placed at (top, left) and a constant border.

        Parameters
        ----------
        left, right, top, bottom : int
            Non-negative border widths.
        fillvalue : float, default 0
            Border value (stored with the dtype's assignment rules).
        """
        for name, value in (("left", left), ("right", right), ("top", top), ("bottom", bottom)):
            if int(value) != value or value < 0:
                raise ValueError(f"[TypedArray] Pad width '{name}' must be a non-negative integer, got {value!r}.")
        values = np.pad(
            self._values(),
            ((int(top), int(bottom)), (int(left), int(right)), (0, 0)),
            mode="constant",
            constant_values=fillvalue,
        )
        return self._wrap(values)

    @log_errors("TypedArray.slice")
    def slice(self, row_start: int, row_end: int, col_start: int, col_end: int):
        """
        Rectangular sub-array over the half-open ranges [row_start, row_end) x [col_start, col_end).

        Raises
        ------
        IndexOutOfRange
            If (row_start, col_start) or (row_end - 1, col_end - 1) is not a valid
            coordinate, or if a range is empty.
        """
        if not (self.is_valid(row_start, col_start, 0) and self.is_valid(row_end - 1, col_end - 1, 0)):
            raise IndexOutOfRange(
                f"[TypedArray] Slice [{row_start}:{row_end}, {col_start}:{col_end}] outside shape {self.shape}."
            )
        if row_end <= row_start or col_end <= col_start:
            raise IndexOutOfRange(
                f"[TypedArray] Slice [{row_start}:{row_end}, {col_start}:{col_end}] is empty."
            )
        block = self.data.reshape(self.shape)[row_start:row_end, col_start:col_end, :]
        return self._wrap(block.astype(np.float64))

    # ====[ Stacking ]====
    @log_errors("TypedArray.dstack")
    def dstack(self, *others: ArrayBase):
        """Concatenate along the channel axis; every operand must share height and width."""
        _check_arrays(others)
        for idx, arr in enumerate(others, start=1):
            if not self.same_hw(arr):
                raise ShapeMismatch(
                    f"[TypedArray] dstack operand {idx} has (h, w)=({arr.height}, {arr.width}), "
                    f"expected ({self.height}, {self.width})."
                )
        return self._wrap(np.concatenate([self._values()] + [a._values() for a in others], axis=2))

    def dsplit(self, *channels: int) -> List[ArrayBase]:
        """Extract the listed channels (all channels when none given) as single-channel arrays."""
        channels = channels or tuple(range(self.channel))
        values = self.data.reshape(self.shape)
        out = []
        for ch in channels:
            self._check_channel(ch)
            out.append(self._wrap(values[:, :, ch].astype(np.float64)))
        return out

    @log_errors("TypedArray.hstack")
    def hstack(self, *others: ArrayBase):
        """Concatenate along the width axis; height and channel must match."""
        _check_arrays(others)
        for idx, arr in enumerate(others, start=1):
            if arr.height != self.height or arr.channel != self.channel:
                raise ShapeMismatch(f"[TypedArray] hstack operand {idx} has shape {arr.shape}, incompatible with {self.shape}.")
        return self._wrap(np.concatenate([self._values()] + [a._values() for a in others], axis=1))

    @log_errors("TypedArray.vstack")
    def vstack(self, *others: ArrayBase):
        """Concatenate along the height axis; width and channel must match."""
        _check_arrays(others)
        for idx, arr in enumerate(others, start=1):
            if arr.width != self.width or arr.channel != self.channel:
                raise ShapeMismatch(f"[TypedArray] vstack operand {idx} has shape {arr.shape}, incompatible with {self.shape}.")
        return self._wrap(np.concatenate([self._values()] + [a._values() for a in others], axis=0))

    @log_errors("TypedArray.grid")
    def grid(self, rows: int, cols: int, *others: ArrayBase):
        """Tile `self` and `others` (same shape) into a rows x cols mosaic, row-major."""
        tiles = [self, *others]
        _check_arrays(others)
        if len(tiles) != rows * cols:
            raise ShapeMismatch(f"[TypedArray] grid({rows}, {cols}) needs {rows * cols} arrays, got {len(tiles)}.")
        for idx, arr in enumerate(others, start=1):
            if not self.same_shape(arr):
                raise ShapeMismatch(f"[TypedArray] grid operand {idx} has shape {arr.shape}, expected {self.shape}.")
        blocks = [t._values() for t in tiles]
        lines = [np.concatenate(blocks[r * cols:(r + 1) * cols], axis=1) for r in range(rows)]
        return self._wrap(np.concatenate(lines, axis=0))

    @log_errors("TypedArray.repeat")
    def repeat(self, rows: int, cols: int):
        """Tile `self` rows times vertically and cols times horizontally."""
        if rows < 1 or cols < 1 or rows * cols < 2:
            raise ValueError(f"[TypedArray] repeat needs at least two tiles, got rows={rows}, cols={cols}.")
        return self._wrap(np.tile(self._values(), (rows, cols, 1)))

    # ====[ Spatial rearrangement ]====
    @log_errors("TypedArray.scale")
    def scale(self, k: int = 8):
        """Nearest-neighbour upscaling by an integer factor `k`."""
        if int(k) != k or k < 1:
            raise ValueError(f"[TypedArray] Scale factor must be a positive integer, got {k!r}.")
        k = int(k)
        return self._wrap(np.repeat(np.repeat(self._values(), k, axis=0), k, axis=1))

    def fliplr(self):
        return self._wrap(self._values()[:, ::-1, :])

    def flipud(self):
        return self._wrap(self._values()[::-1, :, :])

    def roll_ud(self, dy: int = 100):
        """Cyclic vertical shift; positive `dy` moves content up."""
        shift = int(np.sign(dy)) * (abs(int(dy)) % self.height)
        return self._wrap(np.roll(self._values(), -shift, axis=0))

    def roll_lr(self, dx: int = 100):
        """Cyclic horizontal shift; positive `dx` moves content right."""
        shift = int(np.sign(dx)) * (abs(int(dx)) % self.width)
        return self._wrap(np.roll(self._values(), shift, axis=1))

    def rotate(self, degree: float = 90):
        """
        Rotate about the array centre by `degree` (counter-clockwise in display
        coordinates), sampling the nearest source pixel. Pixels whose source
        falls outside the array are 0.
        """
        rad = np.deg2rad(degree % 360)
        cos, sin = np.cos(rad), np.sin(rad)
        cx, cy = (self.width - 1) / 2, (self.height - 1) / 2
        dx = cx - cx * cos + cy * sin
        dy = cy - cx * sin - cy * cos

        rows, cols = np.meshgrid(np.arange(self.height), np.arange(self.width), indexing="ij")
        src_cols = np.floor(cos * cols - sin * rows + dx + 0.5).astype(np.int64)
        src_rows = np.floor(sin * cols + cos * rows + dy + 0.5).astype(np.int64)
        inside = (src_rows >= 0) & (src_rows < self.height) & (src_cols >= 0) & (src_cols < self.width)

        values = self._values()
        out = np.zeros_like(values)
        out[inside] = values[src_rows[inside], src_cols[inside]]
        return self._wrap(out)

    # ====[ Layout ]====
    def hwc_to_chw(self) -> np.ndarray:
        """Return the values as a channel-first (c, h, w) numpy block."""
        return np.transpose(self.to_numpy(), get_layout_axes("CHW", from_layout="HWC"))

    @classmethod
    def chw_to_hwc(cls, block: np.ndarray, dtype: str = "float32"):
        """Build an array from a channel-first (c, h, w) block."""
        block = np.asarray(block)
        if block.ndim != 3:
            raise ShapeMismatch(f"[TypedArray] Expected a (c, h, w) block, got ndim={block.ndim}.")
        return cls.from_numpy(np.transpose(block, get_layout_axes("HWC", from_layout="CHW")), dtype=dtype)
