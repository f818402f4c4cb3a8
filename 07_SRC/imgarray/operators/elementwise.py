# ==================================================
# ==============  MODULE: elementwise  =============
# ==================================================
from __future__ import annotations

from typing import Any, Callable, Dict, Tuple, Union

import numpy as np

from imgarray.core.array_base import ArrayBase, Number
from imgarray.core.errors import DivisionByZero, ShapeMismatch
from imgarray.utils.decorators import log_errors

# Public API
__all__ = ["ElementwiseMixin", "THRESHOLD_POLICIES"]

Operand = Union[Number, ArrayBase]


def _is_number(x: Any) -> bool:
    return isinstance(x, (int, float, np.integer, np.floating)) and not isinstance(x, bool)


# ====[ Fixed-threshold policies: (values, threshold, maxval) -> values ]====
THRESHOLD_POLICIES: Dict[str, Callable[[np.ndarray, float, float], np.ndarray]] = {
    "binary": lambda x, t, m: np.where(x > t, m, 0.0),
    "binary_inv": lambda x, t, m: np.where(x > t, 0.0, m),
    "truncate": lambda x, t, m: np.where(x > t, t, x),
    "tozero": lambda x, t, m: np.where(x > t, x, 0.0),
    "tozero_inv": lambda x, t, m: np.where(x > t, 0.0, x),
}


# ==================================================
# ============  CLASS: ElementwiseMixin  ===========
# ==================================================
class ElementwiseMixin:
    """
    Per-element transforms (`map`) and two-array combinators (`zip`).

    Every operation returns a new array with the shape and dtype of `self`;
    results are computed in float64 and stored with the dtype's assignment
    rules (wrapping integers, saturating 'cuint8').
    """

    # ====[ Engine ]====
    @log_errors("TypedArray.map")
    def map(self, func: Callable[..., Any], vectorized: bool = False):
        """
        Apply `func` to every element.

        Parameters
        ----------
        func : Callable
            Scalar function, or a whole-array numpy function when `vectorized` is True.
        vectorized : bool, default False
            If True, `func` receives the (h, w, c) float64 block at once.
        """
        values = self._values()
        out = func(values) if vectorized else np.vectorize(func, otypes=[np.float64])(values)
        return self._wrap(out)

    @log_errors("TypedArray.zip")
    def zip(self, other: ArrayBase, func: Callable[..., Any], vectorized: bool = False):
        """Combine with `other` element by element; shapes must be identical."""
        self._check_same_shape(other)
        a, b = self._values(), other._values()
        out = func(a, b) if vectorized else np.vectorize(func, otypes=[np.float64])(a, b)
        return self._wrap(out)

    def _check_same_shape(self, other: Any) -> None:
        if not isinstance(other, ArrayBase):
            raise TypeError(f"[TypedArray] Expected a TypedArray operand, got {type(other).__name__}.")
        if not self.same_shape(other):
            raise ShapeMismatch(f"[TypedArray] Shape {other.shape} does not match {self.shape}.")

    def _arith(self, other: Operand, op: Callable[[np.ndarray, Any], np.ndarray]):
        if isinstance(other, ArrayBase):
            return self.zip(other, op, vectorized=True)
        if _is_number(other):
            return self.map(lambda x: op(x, float(other)), vectorized=True)
        raise TypeError(f"[TypedArray] Unsupported operand type: {type(other).__name__}.")

    # ====[ Arithmetic ]====
    @log_errors("TypedArray.add")
    def add(self, other: Operand):
        return self._arith(other, np.add)

    @log_errors("TypedArray.sub")
    def sub(self, other: Operand):
        return self._arith(other, np.subtract)

    @log_errors("TypedArray.mul")
    def mul(self, other: Operand):
        return self._arith(other, np.multiply)

    @log_errors("TypedArray.div")
    def div(self, other: Operand):
        """Divide by a number or an array; any zero divisor raises DivisionByZero."""
        if isinstance(other, ArrayBase):
            self._check_same_shape(other)
            if np.any(other.data == 0):
                raise DivisionByZero("[TypedArray] Divisor array contains a zero element.")
        elif _is_number(other) and other == 0:
            raise DivisionByZero("[TypedArray] Division by the scalar 0.")
        return self._arith(other, np.divide)

    # ====[ Unary transforms ]====
    def abs(self):
        return self.map(np.abs, vectorized=True)

    def square(self):
        return self.map(np.square, vectorized=True)

    def pow(self, exponent: float = 2):
        return self.map(lambda x: np.power(x, exponent), vectorized=True)

    def opposite(self):
        return self.map(np.negative, vectorized=True)

    def clamp(self, vmin: float = 0, vmax: float = 255):
        return self.map(lambda x: np.clip(x, vmin, vmax), vectorized=True)

    def relu(self, value: float = 0):
        """Floor every element at `value`."""
        return self.map(lambda x: np.maximum(x, value), vectorized=True)

    def apply_math(self, func: Callable[..., Any] = np.sin, *params: Any):
        """Apply ``func(x, *params)`` to every element (numpy ufuncs run on the whole block)."""
        if isinstance(func, np.ufunc):
            return self.map(lambda x: func(x, *params), vectorized=True)
        return self.map(lambda x: func(x, *params))

    # ====[ Range mapping ]====
    def span(self, lower: float, upper: float, vmin: float = 0, vmax: float = 255):
        """
        Piecewise-linear remap: values >= `upper` become `vmax`, values <= `lower`
        become `vmin`, values in between map linearly.
        """
        def remap(x: np.ndarray) -> np.ndarray:
            with np.errstate(divide="ignore", invalid="ignore"):
                inner = (x - lower) / (upper - lower) * (vmax - vmin) + vmin
            return np.where(x >= upper, vmax, np.where(x <= lower, vmin, inner))
        return self.map(remap, vectorized=True)

    @log_errors("TypedArray.threshold")
    def threshold(self, threshold: float = 100, method: str = "binary", maxval: float = 255):
        """
        Fixed-threshold policies, all built on ``x > threshold``.

        Parameters
        ----------
        threshold : float, default 100
        method : {'binary', 'binary_inv', 'truncate', 'tozero', 'tozero_inv'}
        maxval : float, default 255
            Value written by the 'binary' policies.
        """
        if method not in THRESHOLD_POLICIES:
            raise ValueError(
                f"[TypedArray] Unknown threshold method '{method}'. Expected one of {list(THRESHOLD_POLICIES)}."
            )
        policy = THRESHOLD_POLICIES[method]
        return self.map(lambda x: policy(x, threshold, maxval), vectorized=True)

    # ====[ Reductions ]====
    def _reduce(self, func: Callable[..., np.ndarray], along_channel: bool):
        if along_channel:
            return self.apply_along_channel(lambda block: func(block, axis=1), vectorized=True)
        return float(func(self.data.astype(np.float64)))

    def min(self, along_channel: bool = False):
        return self._reduce(np.min, along_channel)

    def max(self, along_channel: bool = False):
        return self._reduce(np.max, along_channel)

    def mean(self, along_channel: bool = False):
        return self._reduce(np.mean, along_channel)

    def global_min_max(self) -> Tuple[float, float]:
        values = self.data
        return float(values.min()), float(values.max())

    def stretch(self, vmin: float = 0, vmax: float = 255):
        """
        Rescale the current global range onto [vmin, vmax].
        A constant array is filled with the midpoint ``(vmin + vmax) / 2``.
        """
        lo, hi = self.global_min_max()
        if lo == hi:
            return self.empty_like().fill((vmin + vmax) / 2)
        return self.map(lambda x: (x - lo) / (hi - lo) * (vmax - vmin) + vmin, vectorized=True)
