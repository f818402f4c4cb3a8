# ==================================================
# ========= TESTS: Texture & clustering ============
# ==================================================
from __future__ import annotations

import numpy as np
import pytest

from imgarray.core.config import ClusterConfig
from imgarray.core.errors import ChannelMismatch
from imgarray.core.typed_array import TypedArray
from imgarray.operators.clustering import KMeansClusterer, resolve_metric


# ===================
# Texture
# ===================

def test_lbp_is_zero_on_flat_arrays():
    out = TypedArray.full(4, 5, 1, value=5).lbp()
    assert out.shape == (4, 5, 1)
    assert not out.data.any()


def test_lbp_bit_weights():
    arr = TypedArray.from_array([[1, 1, 1], [1, 0, 1], [1, 1, 1]])
    assert arr.lbp().get(1, 1, 0) == 255

    single = TypedArray.zeros(3, 3, 1)
    single.set(0, 1, 0, 1)  # north neighbour of the centre
    assert single.lbp().get(1, 1, 0) == 64
    single.set(1, 0, 0, 1)  # west neighbour
    assert single.lbp().get(1, 1, 0) == 65


def test_lmi_counts_entries_below_centre():
    arr = TypedArray.full(3, 3, 1, value=1).set(1, 1, 0, 5)
    out = arr.lmi()
    assert out.get(1, 1, 0) == 8
    assert out.get(0, 0, 0) == 5  # five padded zeros lie below a corner value of 1


def test_cellsim_blinker_oscillates():
    board = np.zeros((5, 5))
    board[2, 1:4] = 1
    arr = TypedArray.from_numpy(board)
    step = arr.cellsim()
    expected = np.zeros((5, 5))
    expected[1:4, 2] = 1
    np.testing.assert_array_equal(step.to_numpy()[:, :, 0], expected)
    np.testing.assert_array_equal(step.cellsim().to_numpy()[:, :, 0], board)


# ===================
# Distances
# ===================

def test_distance_fields():
    arr = TypedArray.from_array([[[3, 4], [0, 0]]])
    dist = arr.distance([0, 0])
    assert dist.shape == (1, 2, 1)
    assert dist.data.tolist() == [5, 0]

    cos = TypedArray.from_array([[[1, 0], [0, 2]]]).cosine_distance([1, 0])
    np.testing.assert_allclose(cos.data, [0, 1], atol=1e-6)


def test_distance_vector_length_mismatch():
    with pytest.raises(ChannelMismatch):
        TypedArray(2, 2, 3).distance([1, 2])
    with pytest.raises(ChannelMismatch):
        TypedArray(2, 2, 3).cosine_distance([1, 2, 3, 4])


def test_metric_aliases():
    assert resolve_metric("euclidean") == "dist"
    assert resolve_metric("cosine") == "cossimdist"
    with pytest.raises(ValueError):
        resolve_metric("manhattan")


# ===================
# cluster_step
# ===================

def test_cluster_step_two_groups():
    arr = TypedArray.from_array([[0, 0, 10, 10]])
    centers, labels = arr.cluster_step(centers=[[0], [10]])
    assert centers.tolist() == [[0], [10]]
    assert labels.dtype == "cuint8"
    assert labels.data.tolist() == [0, 0, 1, 1]


def test_cluster_step_sorts_centers_by_max_component():
    arr = TypedArray.from_array([[0, 0, 10, 10]])
    centers, labels = arr.cluster_step(centers=[[10], [0]])
    assert centers.tolist() == [[0], [10]]
    assert labels.data.tolist() == [0, 0, 1, 1]


def test_cluster_step_ties_go_to_lowest_index():
    arr = TypedArray.from_array([[5]])
    _, labels = arr.cluster_step(centers=[[0], [10]])
    assert labels.data.tolist() == [0]


def test_cluster_step_empty_cluster_keeps_center():
    arr = TypedArray.from_array([[0, 2, 10, 12]])
    centers, labels = arr.cluster_step(centers=[[0], [10], [100]])
    assert centers.tolist() == [[1], [11], [100]]
    assert labels.data.tolist() == [0, 0, 1, 1]


def test_cluster_step_cosine_metric():
    arr = TypedArray.from_array([[[1, 0], [0, 2], [2, 0.1]]])
    _, labels = arr.cluster_step(centers=[[1, 0], [0, 1]], metric="cossimdist")
    assert labels.data.tolist() == [0, 1, 0]


def test_cluster_step_random_init_is_seeded():
    arr = TypedArray.random(6, 6, 3, seed=3)
    first = arr.cluster_step(k=3, seed=42)
    second = arr.cluster_step(k=3, seed=42)
    assert first[0].shape == (3, 3)
    np.testing.assert_array_equal(first[0], second[0])
    np.testing.assert_array_equal(first[1].data, second[1].data)
    assert first[1].data.max() < 3


def test_cluster_step_center_length_mismatch():
    with pytest.raises(ChannelMismatch):
        TypedArray(2, 2, 2).cluster_step(centers=[[1, 2, 3]])


# ===================
# KMeansClusterer
# ===================

def test_kmeans_clusterer_runs_explicit_passes():
    arr = TypedArray.from_array([[0, 1, 2, 8, 9, 10]])
    clusterer = KMeansClusterer(ClusterConfig(k=2, n_steps=3))
    centers, labels = clusterer(arr, centers=[[0], [2]])
    assert len(clusterer.history) == 3
    assert centers.tolist() == [[1], [9]]
    assert labels.data.tolist() == [0, 0, 0, 1, 1, 1]
    with pytest.raises(ValueError):
        clusterer.run(arr, n_steps=0)
