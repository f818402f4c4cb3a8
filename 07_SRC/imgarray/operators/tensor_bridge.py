# ==================================================
# =============  MODULE: tensor_bridge  ============
# ==================================================
from __future__ import annotations

from typing import Optional

import numpy as np
import torch

from imgarray.core.config import get_global_config
from imgarray.core.errors import ShapeMismatch
from imgarray.core.layout_axes import get_layout, get_layout_axes
from imgarray.core.typed_array import TypedArray

# Public API
__all__ = ["to_tensor", "from_tensor"]

# Storage dtypes torch cannot hold are widened on export.
_WIDEN = {np.dtype("uint16"): np.int32, np.dtype("uint32"): np.int64}

_TORCH_TO_NAME = {
    torch.float32: "float32",
    torch.float64: "float64",
    torch.uint8: "uint8",
    torch.int8: "int8",
    torch.int16: "int16",
    torch.int32: "int32",
}


def to_tensor(arr: TypedArray, layout: str = "CHW", device: Optional[str] = None) -> torch.Tensor:
    """
    Export a TypedArray as a torch tensor.

    Parameters
    ----------
    arr : TypedArray
        Source array (copied).
    layout : {'HWC', 'CHW', 'NCHW', 'NHWC'}
        Axis order of the tensor; batched layouts get a batch of one.
    device : str, optional
        Target device (defaults to CPU).

    Returns
    -------
    torch.Tensor
    """
    info = get_layout(layout)
    block = arr.to_numpy()
    if block.dtype in _WIDEN:
        block = block.astype(_WIDEN[block.dtype])

    if info["ndim"] == 4:
        block = block[None]
        block = np.transpose(block, get_layout_axes(info["name"], from_layout="NHWC"))
    else:
        block = np.transpose(block, get_layout_axes(info["name"], from_layout="HWC"))

    tensor = torch.from_numpy(np.ascontiguousarray(block))
    return tensor.to(device) if device is not None else tensor


def from_tensor(tensor: torch.Tensor, layout: str = "CHW", dtype: Optional[str] = None) -> TypedArray:
    """
    Import a torch tensor as a TypedArray.

    Parameters
    ----------
    tensor : torch.Tensor
        3-D tensor, or 4-D with a batch of one.
    layout : {'HWC', 'CHW', 'NCHW', 'NHWC'}
        Axis order of `tensor`.
    dtype : str, optional
        Element type of the result; defaults to the tensor's own type when it
        has a counterpart, otherwise `GlobalConfig.default_dtype`.

    Raises
    ------
    ShapeMismatch
        If the tensor rank does not match the layout, or a batch holds more than one image.
    """
    if not isinstance(tensor, torch.Tensor):
        raise TypeError("[tensor_bridge] Input must be a PyTorch tensor.")
    info = get_layout(layout)
    if tensor.ndim != info["ndim"]:
        raise ShapeMismatch(f"[tensor_bridge] Layout {info['name']} expects ndim={info['ndim']}, got {tensor.ndim}.")

    name = dtype or _TORCH_TO_NAME.get(tensor.dtype, get_global_config().default_dtype)
    block = tensor.detach().cpu().numpy()

    if info["ndim"] == 4:
        if block.shape[info["batch_axis"]] != 1:
            raise ShapeMismatch(
                f"[tensor_bridge] Expected a batch of one, got {block.shape[info['batch_axis']]}."
            )
        block = np.transpose(block, get_layout_axes("NHWC", from_layout=info["name"]))[0]
    else:
        block = np.transpose(block, get_layout_axes("HWC", from_layout=info["name"]))

    return TypedArray.from_numpy(block, dtype=name)
