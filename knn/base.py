# knn/base.py

from dataclasses import dataclass
from typing import Iterable, Iterator, List

import numpy as np


def as_feature_vector(values) -> np.ndarray:
    """Return a read-only 1-D float64 copy of ``values``."""
    vec = np.array(values, dtype=np.float64)
    if vec.ndim != 1:
        raise ValueError(f"Feature vector must be one-dimensional, got shape {vec.shape}")
    vec.setflags(write=False)
    return vec


@dataclass(frozen=True)
class LabeledItem:
    """One training or test image: its label and its feature vector."""
    label: int
    features: np.ndarray

    def __post_init__(self):
        object.__setattr__(self, "label", int(self.label))
        object.__setattr__(self, "features", as_feature_vector(self.features))


class Dataset:
    """
    Read-only collection of labeled feature vectors sharing one dimension.

    Features are kept as a single (count, dim) matrix so distances to every item
    can be computed in one pass. Both arrays are flagged non-writeable.
    """

    def __init__(self, features: np.ndarray, labels: np.ndarray):
        features = np.array(features, dtype=np.float64)
        labels = np.array(labels, dtype=np.int64)
        if features.ndim != 2:
            raise ValueError(f"Feature matrix must be two-dimensional, got shape {features.shape}")
        if labels.shape != (features.shape[0],):
            raise ValueError(
                f"Expected {features.shape[0]} labels, got array of shape {labels.shape}"
            )
        features.setflags(write=False)
        labels.setflags(write=False)
        self._features = features
        self._labels = labels

    @classmethod
    def from_items(cls, items: Iterable[LabeledItem], dim: int = None) -> "Dataset":
        """Build a dataset from items, failing on mixed feature dimensions."""
        items = list(items)
        if not items:
            return cls(np.empty((0, dim or 0)), np.empty(0, dtype=np.int64))
        expected = items[0].features.shape[0] if dim is None else dim
        for idx, item in enumerate(items):
            if item.features.shape[0] != expected:
                raise ValueError(
                    f"Item {idx} has dimension {item.features.shape[0]}, expected {expected}"
                )
        features = np.vstack([item.features for item in items])
        labels = np.array([item.label for item in items], dtype=np.int64)
        return cls(features, labels)

    @property
    def features(self) -> np.ndarray:
        return self._features

    @property
    def labels(self) -> np.ndarray:
        return self._labels

    @property
    def count(self) -> int:
        return int(self._labels.shape[0])

    @property
    def dim(self) -> int:
        return int(self._features.shape[1])

    @property
    def items(self) -> List[LabeledItem]:
        return list(self)

    def __len__(self) -> int:
        return self.count

    def __getitem__(self, index: int) -> LabeledItem:
        return LabeledItem(label=self._labels[index], features=self._features[index])

    def __iter__(self) -> Iterator[LabeledItem]:
        for idx in range(self.count):
            yield self[idx]

    def __reduce__(self):
        # rebuild through __init__ so copies handed to worker processes stay read-only
        return (Dataset, (self._features, self._labels))

    def __repr__(self) -> str:
        return f"Dataset(count={self.count}, dim={self.dim})"


@dataclass(frozen=True)
class Partition:
    """Contiguous slice [start_index, start_index + length) of the test set."""
    start_index: int
    length: int

    def __post_init__(self):
        if self.start_index < 0 or self.length < 0:
            raise ValueError(f"Invalid partition: start={self.start_index}, length={self.length}")

    @property
    def stop_index(self) -> int:
        return self.start_index + self.length


@dataclass(frozen=True)
class NeighborCandidate:
    distance: float
    label: int
    source_index: int


@dataclass(frozen=True)
class WorkerResult:
    correct_count: int

    def __post_init__(self):
        if self.correct_count < 0:
            raise ValueError(f"correct_count must be non-negative, got {self.correct_count}")
