from .binary_dataset import DEFAULT_IMAGE_DIM, load_dataset, save_dataset

__all__ = ['DEFAULT_IMAGE_DIM', 'load_dataset', 'save_dataset']
