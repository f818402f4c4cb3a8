# ==================================================
# ================  MODULE: dtypes  ================
# ==================================================
from __future__ import annotations

from typing import Any, Dict

import numpy as np

from imgarray.core.errors import UnsupportedDtype

# Public API
__all__ = ["DTYPES", "DTYPE_NAMES", "resolve_dtype", "element_size", "is_float_dtype", "cast_values"]

# ====[ Supported element types ]====
# 'cuint8' shares the uint8 storage, only its assignment rule differs (round + saturate).
DTYPES: Dict[str, np.dtype] = {
    "float32": np.dtype(np.float32),
    "float64": np.dtype(np.float64),
    "int8": np.dtype(np.int8),
    "int16": np.dtype(np.int16),
    "int32": np.dtype(np.int32),
    "uint8": np.dtype(np.uint8),
    "uint16": np.dtype(np.uint16),
    "uint32": np.dtype(np.uint32),
    "cuint8": np.dtype(np.uint8),
}

DTYPE_NAMES = tuple(DTYPES)


def resolve_dtype(name: str) -> np.dtype:
    """
    Map a dtype name to its numpy storage type.

    Raises
    ------
    UnsupportedDtype
        If `name` is not one of the supported element types.
    """
    try:
        return DTYPES[name]
    except (KeyError, TypeError):
        raise UnsupportedDtype(f"[dtypes] Unsupported dtype: '{name}'. Expected one of {DTYPE_NAMES}.") from None


def element_size(name: str) -> int:
    """Bytes per element of the named dtype."""
    return resolve_dtype(name).itemsize


def is_float_dtype(name: str) -> bool:
    return resolve_dtype(name).kind == "f"


# ====[ Assignment semantics ]====
def cast_values(values: Any, name: str) -> np.ndarray:
    """
    Convert arbitrary numeric values to the storage type of `name`.

    Parameters
    ----------
    values : array_like
        Scalar or array of numbers (bools are accepted and read as 0/1).
    name : str
        Target dtype name.

    Returns
    -------
    np.ndarray
        Array with the same shape as `values` and the storage dtype.

    Notes
    -----
    - Float types store the value as is (with float32 rounding for 'float32').
    - Integer types truncate toward zero and wrap modulo 2**bits; NaN and
      infinities store 0.
    - 'cuint8' rounds half to even and saturates into [0, 255]; NaN stores 0.
    """
    dtype = resolve_dtype(name)
    arr = np.asarray(values, dtype=np.float64)

    if dtype.kind == "f":
        return arr.astype(dtype)

    arr = np.where(np.isfinite(arr), arr, 0.0) if name != "cuint8" else np.nan_to_num(arr, nan=0.0)

    if name == "cuint8":
        return np.clip(np.rint(arr), 0, 255).astype(np.uint8)

    bits = dtype.itemsize * 8
    modulus = 2 ** bits
    wrapped = np.fmod(np.trunc(arr), float(modulus)).astype(np.int64) % modulus
    if dtype.kind == "i":
        wrapped = np.where(wrapped >= modulus // 2, wrapped - modulus, wrapped)
    return wrapped.astype(dtype)
