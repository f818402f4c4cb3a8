# ==================================================
# ============= TESTS: Window expansion ============
# ==================================================
from __future__ import annotations

import numpy as np
import pytest

from imgarray.core.config import set_global_config, set_window_config
from imgarray.core.errors import ChannelMismatch, InvalidWindowSize
from imgarray.core.typed_array import TypedArray
from imgarray.operators.window import as_pattern, as_window_size


# ===================
# Validation helpers
# ===================

def test_window_size_normalisation():
    assert as_window_size(3) == (3, 3)
    assert as_window_size((1, 5)) == (1, 5)
    for bad in [(2, 3), 4, (3, 0), (3, 3, 3), (1.5, 3)]:
        with pytest.raises(InvalidWindowSize):
            as_window_size(bad)


def test_pattern_validation():
    assert as_pattern([[0, 1, 0]]).shape == (1, 3)
    with pytest.raises(InvalidWindowSize):
        as_pattern([[1, 1], [1, 1]])
    with pytest.raises(InvalidWindowSize):
        as_pattern(np.zeros((3, 3)))
    with pytest.raises(ValueError):
        as_pattern([1, 1, 1])


# ===================
# structure / neighbor
# ===================

def test_structure_channel_count(grey, rgb):
    cross = [[1, 1, 1], [0, 1, 0], [1, 1, 1]]
    out = grey.structure(cross)
    assert out.shape == (grey.height, grey.width, 7)
    assert out.dtype == grey.dtype
    assert rgb.structure(cross).channel == 3 * 7
    assert grey.neighbor((3, 5)).channel == 15


def test_neighbor_slot_order():
    arr = TypedArray.from_array([[1, 2], [3, 4]])
    out = arr.neighbor((3, 3), fillvalue=0)
    assert out.to_numpy()[0, 0].tolist() == [0, 0, 0, 0, 1, 2, 0, 3, 4]
    assert out.to_numpy()[1, 1].tolist() == [1, 2, 0, 3, 4, 0, 0, 0, 0]
    filled = arr.neighbor((3, 3), fillvalue=-1)
    assert filled.to_numpy()[0, 0].tolist() == [-1, -1, -1, -1, 1, 2, -1, 3, 4]


def test_structure_multichannel_is_slot_major():
    arr = TypedArray.from_array([[[1, 10]]])
    out = arr.structure([[1, 0, 1]], fillvalue=7)
    assert out.data.tolist() == [7, 7, 7, 7]
    out = arr.structure([[0, 1, 0]])
    assert out.data.tolist() == [1, 10]

    pair = TypedArray.from_array([[[1, 10], [2, 20]]])
    rows = pair.structure([[1, 1, 1]]).to_numpy()[0]
    assert rows[0].tolist() == [0, 0, 1, 10, 2, 20]
    assert rows[1].tolist() == [1, 10, 2, 20, 0, 0]


def test_structure_rejects_even_pattern(grey):
    with pytest.raises(InvalidWindowSize):
        grey.structure(np.ones((2, 2)))
    with pytest.raises(InvalidWindowSize):
        grey.neighbor((4, 3))


def test_defaults_follow_window_config(grey):
    plus = [[0, 1, 0], [1, 1, 1], [0, 1, 0]]
    set_window_config(size=(5, 3), fillvalue=-1.0, pattern=plus)
    expanded = grey.neighbor()
    assert expanded.channel == 15
    assert expanded.to_numpy()[0, 0, 0] == -1
    assert grey.structure().channel == 5
    np.testing.assert_array_equal(grey.structure().data, grey.structure(plus, fillvalue=-1).data)

    set_window_config(size=(4, 4))
    with pytest.raises(InvalidWindowSize):
        grey.neighbor()


# ===================
# Channel reductions
# ===================

@pytest.mark.parametrize("strategy", ["vectorized", "classic", "parallel"])
def test_apply_along_channel_strategies_agree(rgb, strategy):
    set_global_config(backend="threading", n_jobs=2)
    expected = rgb.to_numpy().astype(np.float64).sum(axis=2)
    out = rgb.apply_along_channel(np.sum, strategy=strategy)
    assert out.shape == (rgb.height, rgb.width, 1)
    assert out.dtype == "float32"
    np.testing.assert_allclose(out.to_numpy()[:, :, 0], expected, rtol=1e-6)

    vec = rgb.apply_along_channel(lambda block: block.sum(axis=1), strategy=strategy, vectorized=True)
    np.testing.assert_allclose(vec.to_numpy()[:, :, 0], expected, rtol=1e-6)


def test_apply_along_channel_uses_global_strategy(grey):
    set_global_config(processor_strategy="classic", reduce_dtype="float64")
    out = grey.neighbor((3, 3)).apply_along_channel(np.max)
    assert out.dtype == "float64"
    with pytest.raises(ValueError):
        grey.apply_along_channel(np.max, strategy="gpu")


def test_linear_combination():
    arr = TypedArray.from_array([[[1, 2, 3]]])
    assert arr.linear_combination([1, 1, 1], bias=1).data.tolist() == [7]
    assert arr.linear_combination([2]).data.tolist() == [2]
    with pytest.raises(ChannelMismatch):
        arr.linear_combination([1, 1, 1, 1])
    with pytest.raises(ChannelMismatch):
        arr.linear_combination([])
