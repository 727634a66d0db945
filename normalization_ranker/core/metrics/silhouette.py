"""Silhouette-based metrics: labelled groups and PAM clustering."""

from typing import Iterable, Tuple

import numpy as np
from scipy.spatial.distance import pdist, squareform
from sklearn.metrics import silhouette_score

from ..errors import MetricUnavailable


def label_silhouette(scores: np.ndarray, labels: np.ndarray) -> float:
    """Average silhouette width of ``labels`` on ``scores`` (Euclidean).

    Raises
    ------
    MetricUnavailable
        Unless there are at least two labels with at least two samples each.
    """
    labels = np.asarray(labels).astype(str)
    levels, counts = np.unique(labels, return_counts=True)
    if levels.size < 2:
        raise MetricUnavailable(f"need at least 2 distinct labels, got {levels.size}")
    if counts.min() < 2:
        raise MetricUnavailable(
            f"label '{levels[np.argmin(counts)]}' has fewer than 2 samples"
        )
    return float(np.clip(silhouette_score(scores, labels, metric="euclidean"), -1.0, 1.0))


def _total_cost(distances: np.ndarray, medoids: np.ndarray) -> float:
    return float(distances[:, medoids].min(axis=1).sum())


def pam(distances: np.ndarray, k: int, max_iter: int = 100) -> Tuple[np.ndarray, np.ndarray]:
    """Partitioning around medoids on a precomputed distance matrix.

    BUILD picks medoids greedily; SWAP then applies the best improving
    medoid/non-medoid exchange until no exchange lowers the total cost.

    Parameters
    ----------
    distances : np.ndarray
        Symmetric distance matrix (n x n)
    k : int
        Number of clusters
    max_iter : int
        Maximum number of SWAP iterations

    Returns
    -------
    Tuple[np.ndarray, np.ndarray]
        (labels, medoid indices)
    """
    n = distances.shape[0]
    if not 1 <= k <= n:
        raise ValueError(f"k must be in [1, {n}], got {k}")

    medoids = [int(np.argmin(distances.sum(axis=1)))]
    nearest = distances[:, medoids[0]].copy()
    while len(medoids) < k:
        gains = np.maximum(nearest[:, None] - distances, 0.0).sum(axis=0)
        gains[medoids] = -np.inf
        chosen = int(np.argmax(gains))
        medoids.append(chosen)
        nearest = np.minimum(nearest, distances[:, chosen])

    medoids = np.array(medoids)
    cost = _total_cost(distances, medoids)
    for _ in range(max_iter):
        best = (cost, None, None)
        non_medoids = np.setdiff1d(np.arange(n), medoids)
        for i in range(k):
            for o in non_medoids:
                candidate = medoids.copy()
                candidate[i] = o
                candidate_cost = _total_cost(distances, candidate)
                if candidate_cost < best[0] - 1e-12:
                    best = (candidate_cost, i, o)
        if best[1] is None:
            break
        medoids[best[1]] = best[2]
        cost = best[0]

    labels = np.argmin(distances[:, medoids], axis=1)
    return labels, medoids


def pam_silhouette(
    scores: np.ndarray,
    kclust: Iterable[int],
    max_iter: int = 100,
) -> float:
    """Best average silhouette width of PAM over ``kclust`` cluster counts.

    Cluster counts that cannot be evaluated (k >= number of samples, or a
    clustering collapsing to a single cluster) are skipped.

    Raises
    ------
    MetricUnavailable
        If no cluster count could be evaluated.
    """
    scores = np.asarray(scores, dtype=float)
    n = scores.shape[0]
    distances = squareform(pdist(scores, metric="euclidean"))
    if np.all(distances <= 1e-12):
        raise MetricUnavailable("all samples coincide in PC space")

    widths = []
    for k in sorted(set(int(k) for k in kclust)):
        if k < 2 or k >= n:
            continue
        labels, _ = pam(distances, k, max_iter=max_iter)
        n_clusters = np.unique(labels).size
        if n_clusters < 2 or n_clusters >= n:
            continue
        widths.append(silhouette_score(distances, labels, metric="precomputed"))

    if not widths:
        raise MetricUnavailable(f"no usable cluster count in {list(kclust)} for {n} samples")
    return float(np.clip(max(widths), -1.0, 1.0))
