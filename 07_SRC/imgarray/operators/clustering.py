# ==================================================
# ==============  MODULE: clustering  ==============
# ==================================================
from __future__ import annotations

from typing import Any, List, Optional, Sequence, Tuple

import numpy as np

from imgarray.core.array_base import ArrayBase
from imgarray.core.config import ClusterConfig, get_global_config
from imgarray.core.errors import ChannelMismatch
from imgarray.utils.decorators import log_errors, timed
from imgarray.utils.logger import get_logger

# Public API
__all__ = ["ClusteringMixin", "KMeansClusterer", "METRICS", "resolve_metric"]

METRICS = {
    "dist": "dist",
    "distance": "dist",
    "euclidean": "dist",
    "cossimdist": "cossimdist",
    "cosine": "cossimdist",
}


def resolve_metric(metric: str) -> str:
    try:
        return METRICS[metric]
    except KeyError:
        raise ValueError(f"[clustering] Unknown metric '{metric}'. Expected one of {list(METRICS)}.") from None


def _as_vector(vector: Sequence[float], channel: int) -> np.ndarray:
    v = np.asarray(vector, dtype=np.float64).reshape(-1)
    if v.size != channel:
        raise ChannelMismatch(f"[TypedArray] Vector of length {v.size} for {channel} channels.")
    return v


# ==================================================
# ============  CLASS: ClusteringMixin  ============
# ==================================================
class ClusteringMixin:
    """Per-pixel distance fields and the single assignment/update clustering pass."""

    @log_errors("TypedArray.distance")
    def distance(self, vector: Sequence[float]):
        """Euclidean distance between every pixel's channel-vector and `vector`."""
        v = _as_vector(vector, self.channel)
        return self.apply_along_channel(
            lambda block: np.sqrt(np.sum((block - v) ** 2, axis=1)), vectorized=True
        )

    @log_errors("TypedArray.cosine_distance")
    def cosine_distance(self, vector: Sequence[float], epsilon: float = 1e-7):
        """``1 - dot(x, v) / (|v| * |x| + epsilon)`` for every pixel vector x."""
        v = _as_vector(vector, self.channel)
        v_norm = np.sqrt(np.sum(v ** 2))

        def cosine(block: np.ndarray) -> np.ndarray:
            return 1 - (block @ v) / (v_norm * np.sqrt(np.sum(block ** 2, axis=1)) + epsilon)

        return self.apply_along_channel(cosine, vectorized=True)

    def _distance_field(self, center: np.ndarray, metric: str, epsilon: float):
        if metric == "dist":
            return self.distance(center)
        return self.cosine_distance(center, epsilon)

    @log_errors("TypedArray.cluster_step")
    @timed("TypedArray.cluster_step")
    def cluster_step(
        self,
        k: int = 4,
        centers: Optional[Sequence[Sequence[float]]] = None,
        metric: str = "dist",
        epsilon: float = 1e-7,
        seed: Optional[int] = None,
    ) -> Tuple[np.ndarray, ArrayBase]:
        """
        One assignment + update pass of k-means style clustering.

        Parameters
        ----------
        k : int, default 4
            Number of clusters when `centers` is None (ignored otherwise).
        centers : sequence of vectors, optional
            Initial centers. When None, `k` pixel vectors are sampled at uniformly
            random coordinates.
        metric : {'dist', 'cossimdist'} or alias, default 'dist'
        epsilon : float, default 1e-7
            Cosine denominator stabiliser.
        seed : int, optional
            Seed of the random initialisation (default `GlobalConfig.seed`).

        Returns
        -------
        (new_centers, labels)
            `new_centers` is a (k, channel) float64 array: the mean of the pixels
            assigned to each center (an empty cluster keeps its center). `labels`
            is a single-channel 'cuint8' array of center indices.

        Notes
        -----
        Centers are stably sorted by their maximum component before assignment,
        and labels index that sorted order. A pixel equidistant to several
        centers goes to the lowest index. Iterating is the caller's choice.
        """
        metric = resolve_metric(metric)

        if centers is None:
            if int(k) != k or k < 1:
                raise ValueError(f"[TypedArray] k must be a positive integer, got {k!r}.")
            rng = np.random.default_rng(seed if seed is not None else get_global_config().seed)
            values = self.data.reshape(self.shape)
            picks = [
                values[rng.integers(0, self.height), rng.integers(0, self.width)].astype(np.float64)
                for _ in range(int(k))
            ]
        else:
            picks = [_as_vector(c, self.channel) for c in centers]
            if not picks:
                raise ValueError("[TypedArray] At least one center is required.")

        ordered = np.array(sorted(picks, key=lambda c: float(np.max(c))), dtype=np.float64)
        k = ordered.shape[0]

        fields = np.stack(
            [self._distance_field(c, metric, epsilon).data for c in ordered], axis=1
        )
        # argmin returns the first minimum: lowest index wins ties
        assignment = np.argmin(fields, axis=1)

        pixels = self.data.reshape(-1, self.channel).astype(np.float64)
        counts = np.bincount(assignment, minlength=k)
        sums = np.zeros((k, self.channel), dtype=np.float64)
        np.add.at(sums, assignment, pixels)

        new_centers = ordered.copy()
        filled = counts > 0
        new_centers[filled] = sums[filled] / counts[filled, None]
        if not np.all(filled):
            get_logger().warning(
                f"[TypedArray.cluster_step] Empty clusters {np.flatnonzero(~filled).tolist()} keep their centers."
            )

        labels = self._wrap(assignment.reshape(self.height, self.width, 1).astype(np.float64), dtype="cuint8")
        return new_centers, labels


# ==================================================
# ============  CLASS: KMeansClusterer  ============
# ==================================================
class KMeansClusterer:
    """
    Operator running `cluster_step` a fixed number of times.

    Each pass feeds the returned centers into the next one; there is no
    convergence test.

    Parameters
    ----------
    cluster_cfg : ClusterConfig
        k, metric, epsilon, number of passes and seed.
    """

    def __init__(self, cluster_cfg: Optional[ClusterConfig] = None) -> None:
        self.cluster_cfg: ClusterConfig = cluster_cfg or ClusterConfig()
        self.metric: str = resolve_metric(self.cluster_cfg.metric)
        self.history: List[np.ndarray] = []

    def step(self, arr: ArrayBase, centers: Optional[Any] = None) -> Tuple[np.ndarray, ArrayBase]:
        cfg = self.cluster_cfg
        return arr.cluster_step(cfg.k, centers, self.metric, cfg.epsilon, cfg.seed)

    def run(self, arr: ArrayBase, centers: Optional[Any] = None, n_steps: Optional[int] = None) -> Tuple[np.ndarray, ArrayBase]:
        """
        Run `n_steps` passes (default `ClusterConfig.n_steps`) and return the last result.
        The centers of every pass are kept in `history`.
        """
        n_steps = self.cluster_cfg.n_steps if n_steps is None else n_steps
        if n_steps < 1:
            raise ValueError(f"[KMeansClusterer] n_steps must be >= 1, got {n_steps}.")
        self.history = []
        labels = None
        for _ in range(n_steps):
            centers, labels = self.step(arr, centers)
            self.history.append(centers)
        return centers, labels

    __call__ = run

    def summary(self) -> None:
        print("====[ KMeansClusterer Summary ]====")
        print(f"k           : {self.cluster_cfg.k}")
        print(f"metric      : {self.metric}")
        print(f"n_steps     : {self.cluster_cfg.n_steps}")
        print(f"passes run  : {len(self.history)}")
