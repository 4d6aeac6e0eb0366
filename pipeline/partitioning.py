# pipeline/partitioning.py

from typing import List

from knn.base import Partition
from knn.exceptions import ConfigurationError


def plan_partitions(test_count: int, num_workers: int) -> List[Partition]:
    """
    Split [0, test_count) into ``num_workers`` contiguous, ascending ranges.

    The first ``test_count % num_workers`` partitions hold one extra item, so no
    two partitions differ in length by more than one. Workers beyond the number
    of test items receive empty partitions.
    """
    if num_workers < 1:
        raise ConfigurationError(f"Number of workers must be a positive integer, got {num_workers}")
    if test_count < 0:
        raise ValueError(f"Test count must be non-negative, got {test_count}")

    base, remainder = divmod(test_count, num_workers)
    partitions = []
    start = 0
    for worker_idx in range(num_workers):
        length = base + 1 if worker_idx < remainder else base
        partitions.append(Partition(start_index=start, length=length))
        start += length
    return partitions
