# ==================================================
# =================  MODULE: color  ================
# ==================================================
from __future__ import annotations

from typing import List, Optional, Union

import numpy as np

from imgarray.core.errors import ChannelMismatch
from imgarray.utils.decorators import log_errors

# Public API
__all__ = ["ColorMixin", "cool_warm_lut"]

_RGB_TO_YCBCR = np.array(
    [
        [0.299, 0.587, 0.114],
        [-0.168736, -0.331264, 0.5],
        [0.5, -0.418688, -0.081312],
    ]
)
_YCBCR_OFFSET = np.array([0.0, 128.0, 128.0])


def cool_warm_lut() -> np.ndarray:
    """
    256-entry diverging 'cool to warm' lookup table (RGB in [0, 255]).

    Blue-ish at 0, light grey at the midpoint, red-ish at 255.
    """
    x = np.arange(256) / 255
    low = np.array([0.705882352941, 0.0156862745098, 0.149019607843])
    mid = np.array([0.865, 0.865, 0.865])
    high = np.array([0.23137254902, 0.298039215686, 0.752941176471])

    lut = np.empty((256, 3))
    lower = x < 0.5
    t = x[lower, None] / 0.5
    lut[lower] = (1 - t) * low + t * mid
    t = (x[~lower, None] - 0.5) / 0.5
    lut[~lower] = (1 - t) * mid + t * high
    return lut * 255


# ==================================================
# ===============  CLASS: ColorMixin  ==============
# ==================================================
class ColorMixin:
    """Pixel-level utilities for 8-bit style images (histograms, bit planes, colour spaces)."""

    def _require_rgb(self, name: str) -> None:
        if self.channel < 3:
            raise ChannelMismatch(f"[TypedArray] {name} needs at least 3 channels, got {self.channel}.")

    @log_errors("TypedArray.histogram")
    def histogram(self, channel: Optional[int] = None, bins: int = 256) -> Union[np.ndarray, List[np.ndarray]]:
        """
        Counts of values over [0, 256) in `bins` equal bins.

        Parameters
        ----------
        channel : int, optional
            Channel to count. If None, one histogram per colour channel
            (an alpha channel, if present, is skipped).
        bins : int, default 256

        Returns
        -------
        np.ndarray or list of np.ndarray
        """
        values = self.data.reshape(self.shape)
        if channel is not None:
            ch = self._check_channel(channel)
            return np.histogram(values[:, :, ch], bins=bins, range=(0, 256))[0]
        n = 3 if self.channel == 4 else self.channel
        return [np.histogram(values[:, :, ch], bins=bins, range=(0, 256))[0] for ch in range(n)]

    @log_errors("TypedArray.bitplane")
    def bitplane(self, channel: int = 0, bit: int = 0):
        """Bit `bit` of channel `channel` as a single-channel 0/255 array."""
        ch = self._check_channel(channel)
        if not 0 <= bit < 32:
            raise ValueError(f"[TypedArray] Bit index must be in [0, 32), got {bit}.")
        values = np.trunc(self.data.reshape(self.shape)[:, :, ch].astype(np.float64)).astype(np.int64)
        plane = ((values >> bit) & 1) * 255
        return self._wrap(plane.astype(np.float64), dtype="float32")

    @log_errors("TypedArray.rgb_to_ycbcr")
    def rgb_to_ycbcr(self):
        """Full-range BT.601 RGB -> YCbCr on the first three channels; extra channels are copied."""
        self._require_rgb("rgb_to_ycbcr")
        values = self._values()
        out = values.copy()
        out[:, :, :3] = values[:, :, :3] @ _RGB_TO_YCBCR.T + _YCBCR_OFFSET
        return self._wrap(out)

    @log_errors("TypedArray.ycbcr_to_rgb")
    def ycbcr_to_rgb(self):
        """Inverse of `rgb_to_ycbcr`."""
        self._require_rgb("ycbcr_to_rgb")
        values = self._values()
        y, cb, cr = values[:, :, 0], values[:, :, 1] - 128, values[:, :, 2] - 128
        out = values.copy()
        out[:, :, 0] = y + 1.402 * cr
        out[:, :, 1] = y - 0.344136 * cb - 0.714136 * cr
        out[:, :, 2] = y + 1.772 * cb
        return self._wrap(out)

    @log_errors("TypedArray.apply_colormap")
    def apply_colormap(self):
        """
        Pseudo-colour: grey level (mean of the colour channels) mapped through
        `cool_warm_lut`. Returns RGB, or RGBA with the alpha channel copied.
        """
        values = self._values()
        n = 3 if self.channel >= 3 else 1
        grey = np.clip(np.rint(values[:, :, :n].mean(axis=2)), 0, 255).astype(np.int64)
        rgb = cool_warm_lut()[grey]
        if self.channel == 4:
            rgb = np.concatenate([rgb, values[:, :, 3:4]], axis=2)
        return self._wrap(rgb)

    @log_errors("TypedArray.opacity")
    def opacity(self, value: float = 255):
        """Copy with the alpha (4th) channel set to `value`."""
        if self.channel != 4:
            raise ChannelMismatch(f"[TypedArray] opacity needs 4 channels, got {self.channel}.")
        return self.copy().fill(value, 3)
