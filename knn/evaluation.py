# knn/evaluation.py


from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List

import numpy as np

from .base import Dataset, NeighborCandidate
from .distance import DistanceMetric
from .exceptions import ConfigurationError


class LabelingStrategy(ABC):
    """
    Class which contains the logic for inferring a label from a query's neighbors.
    ie Logic for deciding how to combine neighbor labels into a single predicted label.
    """

    @property
    def name(self) -> str:
        """Unique identifier for this labeling strategy."""
        raise NotImplementedError

    @property
    def description(self) -> str:
        """Human-readable description of what this strategy does."""
        raise NotImplementedError

    @abstractmethod
    def infer_label(self, neighbors: List[NeighborCandidate]) -> int:
        raise NotImplementedError


class MajorityVoteLabeling(LabelingStrategy):
    """Most frequent label among the neighbors wins; equal counts go to the smallest label."""

    @property
    def name(self) -> str:
        return "majority_vote"

    @property
    def description(self) -> str:
        return "Most common neighbor label, ties broken toward the smallest label value"

    def infer_label(self, neighbors: List[NeighborCandidate]) -> int:
        if not neighbors:
            raise ValueError("Cannot vote without neighbors")
        # np.unique sorts labels ascending and argmax returns the first maximum
        labels, counts = np.unique([n.label for n in neighbors], return_counts=True)
        return int(labels[np.argmax(counts)])


@dataclass(frozen=True)
class KNNRun:
    """
    Parameters shared by every worker of a single classification run.
    """
    k: int
    metric: DistanceMetric
    reference: Dataset
    test: Dataset

    def __post_init__(self):
        if isinstance(self.k, bool) or not isinstance(self.k, (int, np.integer)) or self.k < 1:
            raise ConfigurationError(f"K must be a positive integer, got {self.k!r}")
        if not isinstance(self.metric, DistanceMetric):
            raise ConfigurationError(f"Unsupported distance metric: {self.metric!r}")
        if self.reference.count == 0 and self.test.count > 0:
            raise ConfigurationError("Cannot classify test items against an empty training set")
        if self.reference.count and self.test.count and self.reference.dim != self.test.dim:
            raise ConfigurationError(
                f"Training dimension {self.reference.dim} does not match testing dimension {self.test.dim}"
            )
