# ==================================================
# ============= TESTS: Geometry & stacking =========
# ==================================================
from __future__ import annotations

import numpy as np
import pytest

from imgarray.core.errors import IndexOutOfRange, ShapeMismatch
from imgarray.core.layout_axes import get_layout_axes, is_valid_layout, list_available_layouts
from imgarray.core.typed_array import TypedArray


# ===================
# Padding / slicing
# ===================

def test_pad_single_row():
    arr = TypedArray.from_array([[5, 6]], dtype="float32")
    out = arr.pad(left=1, right=1, top=0, bottom=0, fillvalue=9)
    assert out.shape == (1, 4, 1)
    assert out.data.tolist() == [9, 5, 6, 9]


def test_pad_default_widths_keep_dtype(rgb):
    cast = rgb.astype("uint8")
    out = cast.pad()
    assert out.shape == (rgb.height + 7, rgb.width + 3, 3)
    assert out.dtype == "uint8"
    assert out.get(3, 1, 2) == cast.get(0, 0, 2)
    assert out.get(0, 0, 0) == 0


def test_pad_rejects_negative_width(grey):
    with pytest.raises(ValueError):
        grey.pad(left=-1)


def test_slice(grey):
    out = grey.slice(1, 4, 2, 5)
    assert out.shape == (3, 3, 1)
    assert np.array_equal(out.to_numpy(), grey.to_numpy()[1:4, 2:5])


@pytest.mark.parametrize("bounds", [(0, 7, 0, 2), (-1, 2, 0, 2), (0, 2, 3, 8), (2, 2, 0, 3), (3, 1, 0, 3)])
def test_slice_invalid_ranges(grey, bounds):
    with pytest.raises(IndexOutOfRange):
        grey.slice(*bounds)


# ===================
# Stacking
# ===================

def test_dstack_and_dsplit(grey):
    stacked = grey.dstack(grey.mul(2), grey.mul(3))
    assert stacked.shape == (grey.height, grey.width, 3)
    parts = stacked.dsplit()
    assert len(parts) == 3
    assert np.array_equal(parts[2].data, grey.mul(3).data)
    assert stacked.dsplit(1)[0].channel == 1


def test_dstack_shape_mismatch(grey):
    with pytest.raises(ShapeMismatch):
        grey.dstack(TypedArray(2, 2, 1))


def test_hstack_vstack(grey):
    assert grey.hstack(grey).shape == (6, 14, 1)
    assert grey.vstack(grey, grey).shape == (18, 7, 1)
    with pytest.raises(ShapeMismatch):
        grey.hstack(TypedArray(5, 7, 1))
    with pytest.raises(ShapeMismatch):
        grey.vstack(TypedArray(6, 7, 2))


def test_grid_and_repeat(grey):
    mosaic = grey.grid(2, 2, grey.add(1), grey.add(2), grey.add(3))
    assert mosaic.shape == (12, 14, 1)
    assert mosaic.get(6, 7, 0) == grey.get(0, 0, 0) + 3
    with pytest.raises(ShapeMismatch):
        grey.grid(2, 2, grey)

    tiled = grey.repeat(2, 3)
    assert tiled.shape == (12, 21, 1)
    assert np.array_equal(tiled.to_numpy(), np.tile(grey.to_numpy(), (2, 3, 1)))
    with pytest.raises(ValueError):
        grey.repeat(1, 1)


# ===================
# Spatial rearrangement
# ===================

def test_scale_nearest_neighbour():
    arr = TypedArray.from_array([[1, 2], [3, 4]])
    out = arr.scale(2)
    assert out.shape == (4, 4, 1)
    assert out.to_numpy()[:, :, 0].tolist() == [[1, 1, 2, 2], [1, 1, 2, 2], [3, 3, 4, 4], [3, 3, 4, 4]]


def test_flips(grey):
    block = grey.to_numpy()
    assert np.array_equal(grey.fliplr().to_numpy(), block[:, ::-1])
    assert np.array_equal(grey.flipud().to_numpy(), block[::-1])


def test_rolls():
    row = TypedArray.from_array([[1, 2, 3]])
    assert row.roll_lr(1).data.tolist() == [3, 1, 2]
    assert row.roll_lr(4).data.tolist() == [3, 1, 2]
    col = TypedArray.from_array([[1], [2], [3]])
    assert col.roll_ud(1).data.tolist() == [2, 3, 1]
    assert col.roll_ud(-1).data.tolist() == [3, 1, 2]


@pytest.mark.parametrize("n", [3, 4])
def test_rotate_quarter_turn_matches_rot90(make_np, n):
    arr = TypedArray.from_numpy(make_np((n, n)), dtype="float32")
    assert np.array_equal(arr.rotate(90).to_numpy(), np.rot90(arr.to_numpy()))
    assert np.array_equal(arr.rotate(0).to_numpy(), arr.to_numpy())


def test_rotate_leaves_uncovered_pixels_zero():
    out = TypedArray.ones(5, 5, 1).rotate(45)
    assert out.get(0, 0, 0) == 0
    assert out.get(2, 2, 0) == 1


# ===================
# Layouts
# ===================

def test_layout_axes():
    assert get_layout_axes("CHW", from_layout="HWC") == (2, 0, 1)
    assert get_layout_axes("HWC", from_layout="CHW") == (1, 2, 0)
    assert get_layout_axes("NCHW", from_layout="NHWC") == (0, 3, 1, 2)
    assert is_valid_layout("nchw") and not is_valid_layout("DHW")
    assert "NHWC" in list_available_layouts()
    with pytest.raises(ValueError):
        get_layout_axes("NCHW", from_layout="HWC")


def test_hwc_chw_round_trip(rgb):
    chw = rgb.hwc_to_chw()
    assert chw.shape == (3, rgb.height, rgb.width)
    back = TypedArray.chw_to_hwc(chw, dtype="float32")
    assert np.array_equal(back.data, rgb.data)
