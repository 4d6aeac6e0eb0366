# knn/knn.py

import logging
from typing import List, Optional

import numpy as np

from .base import Dataset, NeighborCandidate
from .distance import DistanceMetric
from .evaluation import LabelingStrategy, MajorityVoteLabeling
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


def _effective_k(k: int, reference: Dataset) -> int:
    if k < 1:
        raise ConfigurationError(f"K must be a positive integer, got {k}")
    if reference.count == 0:
        raise ValueError("Cannot classify against an empty reference set")
    return min(k, reference.count)


def nearest_neighbors(
    query,
    reference: Dataset,
    k: int,
    metric: DistanceMetric = DistanceMetric.EUCLIDEAN,
) -> List[NeighborCandidate]:
    """
    Brute-force scan of ``reference`` returning the k closest items, nearest first.

    Parameters
    ----------
    query : array-like
        Feature vector with the same dimension as the reference items.
    reference : Dataset
        Labeled items to compare against.
    k : int
        Number of neighbors; values above ``reference.count`` are clamped.
    metric : DistanceMetric
        Dissimilarity used to rank the reference items.

    Returns
    -------
    list[NeighborCandidate]
        Sorted by distance; equal distances keep ascending reference index order.
    """
    k = _effective_k(k, reference)
    dists = metric.distances(query, reference.features)
    # stable sort keeps the lower source index first among equal distances
    order = np.argsort(dists, kind="stable")[:k]
    return [
        NeighborCandidate(distance=float(dists[i]), label=int(reference.labels[i]), source_index=int(i))
        for i in order
    ]


def classify(
    query,
    reference: Dataset,
    k: int = 1,
    metric: DistanceMetric = DistanceMetric.EUCLIDEAN,
    labeling: Optional[LabelingStrategy] = None,
) -> int:
    """Predict the label of ``query`` by voting among its k nearest reference items."""
    labeling = labeling or MajorityVoteLabeling()
    return labeling.infer_label(nearest_neighbors(query, reference, k, metric))


def count_correct(
    reference: Dataset,
    test: Dataset,
    k: int,
    metric: DistanceMetric,
    start_index: int = 0,
    length: Optional[int] = None,
    labeling: Optional[LabelingStrategy] = None,
) -> int:
    """Classify test items [start_index, start_index + length) and count matching labels."""
    if length is None:
        length = test.count - start_index
    stop = start_index + length
    if start_index < 0 or length < 0 or stop > test.count:
        raise IndexError(f"Slice [{start_index}, {stop}) is outside the test set of size {test.count}")
    labeling = labeling or MajorityVoteLabeling()
    if length and 0 < reference.count < k:
        logger.debug(f"K={k} exceeds reference size {reference.count}; clamping to {reference.count}")
    logger.debug(
        f"Classifying test items [{start_index}, {stop}) with K={k}, {metric.value} distance, "
        f"{labeling.name} labeling ({labeling.description})"
    )
    correct = 0
    for idx in range(start_index, stop):
        predicted = classify(test.features[idx], reference, k, metric, labeling)
        if predicted == int(test.labels[idx]):
            correct += 1
    return correct
