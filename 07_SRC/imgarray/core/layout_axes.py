# ==================================================
# =============  MODULE: layout_axes  ==============
# ==================================================

from __future__ import annotations

from typing import Any, Dict, List, Tuple

__all__ = [
    "FORMAT_LAYOUTS",
    "get_layout",
    "get_layout_axes",
    "list_available_layouts",
    "is_valid_layout",
]

# ====[ FORMAT LAYOUTS ]====
# Axis positions of the layouts an image block can be exchanged in.
FORMAT_LAYOUTS: Dict[str, Dict[str, Any]] = {
    "HWC": {
        "name": "HWC",
        "ndim": 3,
        "batch_axis": None,
        "channel_axis": 2,
        "height_axis": 0,
        "width_axis": 1,
        "description": "Height, Width, Channel (native storage order)",
    },
    "CHW": {
        "name": "CHW",
        "ndim": 3,
        "batch_axis": None,
        "channel_axis": 0,
        "height_axis": 1,
        "width_axis": 2,
        "description": "Channel, Height, Width (no batch)",
    },
    "NCHW": {
        "name": "NCHW",
        "ndim": 4,
        "batch_axis": 0,
        "channel_axis": 1,
        "height_axis": 2,
        "width_axis": 3,
        "description": "Batch, Channel, Height, Width (default for CNNs)",
    },
    "NHWC": {
        "name": "NHWC",
        "ndim": 4,
        "batch_axis": 0,
        "channel_axis": 3,
        "height_axis": 1,
        "width_axis": 2,
        "description": "Batch, Height, Width, Channel",
    },
}

_SPATIAL = ("height_axis", "width_axis", "channel_axis")


def list_available_layouts() -> List[str]:
    return list(FORMAT_LAYOUTS)


def is_valid_layout(name: str) -> bool:
    return isinstance(name, str) and name.upper() in FORMAT_LAYOUTS


def get_layout(name: str) -> Dict[str, Any]:
    """Return the axis dictionary of a named layout (case-insensitive)."""
    if not is_valid_layout(name):
        raise ValueError(f"[layout_axes] Unknown layout '{name}'. Available: {list_available_layouts()}")
    return FORMAT_LAYOUTS[name.upper()]


def get_layout_axes(target: str, from_layout: str = "HWC") -> Tuple[int, ...]:
    """
    Permutation that moves a `from_layout` block to `target` order, for ``np.transpose``.

    Both layouts must have the same number of dimensions.

    Examples
    --------
    >>> get_layout_axes("CHW", from_layout="HWC")
    (2, 0, 1)
    """
    src, dst = get_layout(from_layout), get_layout(target)
    if src["ndim"] != dst["ndim"]:
        raise ValueError(
            f"[layout_axes] Cannot permute {src['name']} (ndim={src['ndim']}) to {dst['name']} (ndim={dst['ndim']})."
        )
    roles = [None] * dst["ndim"]
    for role in _SPATIAL + ("batch_axis",):
        if dst[role] is not None:
            roles[dst[role]] = src[role]
    return tuple(roles)
