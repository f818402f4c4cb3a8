# ==================================================
# ================  MODULE: texture  ===============
# ==================================================
from __future__ import annotations

from typing import Optional

import numpy as np

from imgarray.operators.window import WindowSize
from imgarray.utils.decorators import log_errors

# Public API
__all__ = ["TextureMixin", "LBP_WEIGHTS"]

# Bit weight of each 3x3 slot (row-major); the centre slot carries none.
LBP_WEIGHTS = np.array([128, 64, 32, 1, 0, 16, 2, 4, 8], dtype=np.float64)


def _lbp_codes(block: np.ndarray) -> np.ndarray:
    window = block[:, :9]
    return (window > window[:, 4:5]).astype(np.float64) @ LBP_WEIGHTS


def _lmi_counts(block: np.ndarray) -> np.ndarray:
    center = block[:, block.shape[1] // 2]
    return np.sum(block < center[:, None], axis=1)


def _cell_step(block: np.ndarray) -> np.ndarray:
    center = block[:, block.shape[1] // 2]
    alive = np.sum(block >= 0.5, axis=1)  # centre included
    survive = (alive == 3) | (alive == 4)
    birth = alive == 3
    return np.where(center >= 0.5, survive, birth).astype(np.float64)


# ==================================================
# ==============  CLASS: TextureMixin  =============
# ==================================================
class TextureMixin:
    """
    Texture descriptors and the cellular-automaton step, all computed on
    neighbourhood expansions of a single-channel array.
    """

    @log_errors("TypedArray.lbp")
    def lbp(self, fillvalue: Optional[float] = None):
        """
        Local Binary Pattern code in [0, 255].

        Each of the 8 neighbours strictly greater than the centre adds its bit
        weight from `LBP_WEIGHTS`.
        """
        return self.neighbor((3, 3), fillvalue).apply_along_channel(_lbp_codes, vectorized=True)

    @log_errors("TypedArray.lmi")
    def lmi(self, size: Optional[WindowSize] = None, fillvalue: Optional[float] = None):
        """Number of window entries strictly below the window centre."""
        return self.neighbor(size, fillvalue).apply_along_channel(_lmi_counts, vectorized=True)

    @log_errors("TypedArray.cellsim")
    def cellsim(self, size: Optional[WindowSize] = None, fillvalue: Optional[float] = None):
        """
        One cellular-automaton generation (values >= 0.5 are alive).

        A live centre survives with 3 or 4 live cells in its window (itself
        included); a dead centre is born with exactly 3.
        """
        return self.neighbor(size, fillvalue).apply_along_channel(_cell_step, vectorized=True)
