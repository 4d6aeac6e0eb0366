# knn/distance.py

import logging
from enum import Enum

import numpy as np
from numpy.linalg import norm

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# cosine distance lies in [0, 2]; a zero-magnitude vector is treated as maximally dissimilar
COSINE_ZERO_NORM_DISTANCE = 2.0


class DistanceMetric(Enum):
    """
    Closed set of dissimilarity measures between equal-length feature vectors.

    Smaller values mean more similar. Both members expose a scalar form,
    ``distance(a, b)``, and a vectorized form, ``distances(query, matrix)``,
    that scores one query against every row of a reference matrix.
    """
    EUCLIDEAN = "euclidean"
    COSINE = "cosine"

    @classmethod
    def from_name(cls, name: str) -> "DistanceMetric":
        """
        Select a metric by case-insensitive prefix, so "eucl" or "COS" are accepted.

        Raises
        ------
        ConfigurationError
            If ``name`` is empty or not a prefix of exactly one metric name.
        """
        prefix = (name or "").strip().lower()
        matches = [metric for metric in cls if prefix and metric.value.startswith(prefix)]
        if len(matches) != 1:
            raise ConfigurationError(
                f'Expected any initial substring of "euclidean" or "cosine" as distance metric, got {name!r}'
            )
        return matches[0]

    def distance(self, a, b) -> float:
        a = np.asarray(a, dtype=np.float64)
        b = np.asarray(b, dtype=np.float64)
        if a.ndim != 1 or a.shape != b.shape:
            raise ValueError(f"Vectors must be 1-D and of equal length, got {a.shape} and {b.shape}")
        return float(self.distances(a, b[np.newaxis, :])[0])

    def distances(self, query, matrix) -> np.ndarray:
        query = np.asarray(query, dtype=np.float64)
        matrix = np.asarray(matrix, dtype=np.float64)
        if matrix.ndim != 2 or query.ndim != 1 or matrix.shape[1] != query.shape[0]:
            raise ValueError(
                f"Query of shape {query.shape} does not match reference matrix of shape {matrix.shape}"
            )
        if self is DistanceMetric.EUCLIDEAN:
            return _euclidean(query, matrix)
        return _cosine(query, matrix)


def _euclidean(query: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    diff = matrix - query
    return np.sqrt(np.einsum("ij,ij->i", diff, diff))


def _cosine(query: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    query_norm = norm(query)
    row_norms = norm(matrix, axis=1)
    denom = query_norm * row_norms
    out = np.full(matrix.shape[0], COSINE_ZERO_NORM_DISTANCE)
    valid = denom > 0
    if not valid.all():
        logger.debug(f"{np.count_nonzero(~valid)} zero-magnitude comparisons scored as {COSINE_ZERO_NORM_DISTANCE}")
    out[valid] = 1.0 - (matrix[valid] @ query) / denom[valid]
    return out


def distance_euclidean(a, b) -> float:
    return DistanceMetric.EUCLIDEAN.distance(a, b)


def distance_cosine(a, b) -> float:
    return DistanceMetric.COSINE.distance(a, b)
