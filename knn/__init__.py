# knn/__init__.py

from .base import Dataset, LabeledItem, NeighborCandidate, Partition, WorkerResult
from .distance import DistanceMetric, distance_cosine, distance_euclidean
from .evaluation import KNNRun, LabelingStrategy, MajorityVoteLabeling
from .exceptions import (
    ChannelFault,
    ConfigurationError,
    DatasetLoadError,
    KNNError,
    WorkerAbnormalTermination,
)
from .knn import classify, count_correct, nearest_neighbors

__all__ = [
    'Dataset',
    'LabeledItem',
    'NeighborCandidate',
    'Partition',
    'WorkerResult',
    'DistanceMetric',
    'distance_cosine',
    'distance_euclidean',
    'KNNRun',
    'LabelingStrategy',
    'MajorityVoteLabeling',
    'ChannelFault',
    'ConfigurationError',
    'DatasetLoadError',
    'KNNError',
    'WorkerAbnormalTermination',
    'classify',
    'count_correct',
    'nearest_neighbors',
]
