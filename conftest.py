# conftest.py

import multiprocessing

import numpy as np
import pytest

from dataset_io.binary_dataset import save_dataset
from knn.base import Dataset, LabeledItem


@pytest.fixture
def two_point_training():
    return Dataset.from_items([
        LabeledItem(label=0, features=[0, 0]),
        LabeledItem(label=1, features=[10, 10]),
    ])


@pytest.fixture
def two_point_testing():
    return Dataset.from_items([
        LabeledItem(label=0, features=[0, 1]),
        LabeledItem(label=1, features=[9, 9]),
    ])


@pytest.fixture
def clustered_datasets():
    """Three noisy pixel clusters; a few test items sit between clusters so not every prediction is right."""
    rng = np.random.default_rng(1234)
    centers = np.array([[40, 40, 40, 40], [128, 128, 128, 128], [220, 30, 220, 30]])

    def make(per_class):
        features, labels = [], []
        for label, center in enumerate(centers):
            points = center + rng.integers(-35, 36, size=(per_class, centers.shape[1]))
            features.append(np.clip(points, 0, 255))
            labels.extend([label] * per_class)
        return Dataset(np.vstack(features), np.array(labels))

    return make(20), make(9)


@pytest.fixture
def dataset_file(tmp_path):
    """Factory writing a Dataset to a packed file under tmp_path and returning the path."""
    counter = {'n': 0}

    def write(dataset: Dataset, name: str = None):
        counter['n'] += 1
        path = tmp_path / (name or f"dataset_{counter['n']}.bin")
        return save_dataset(dataset, path)

    return write


@pytest.fixture
def mp_context():
    # fork lets worker targets defined in test modules run without being re-imported
    if 'fork' in multiprocessing.get_all_start_methods():
        return multiprocessing.get_context('fork')
    return multiprocessing.get_context('spawn')
