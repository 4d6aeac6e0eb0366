# dataset_io/binary_dataset.py  –– reader/writer for the packed image dataset format

"""
Packed image dataset files.

Layout (little-endian):

    int32            num_items
    num_items x {
        uint8        label
        uint8[dim]   pixel intensities, row-major
    }

``dim`` is not stored in the file; it defaults to a 28 x 28 image. Anything
that does not match the layout exactly (short header, negative count,
truncated or trailing record bytes) is rejected.
"""

import logging
import struct
from pathlib import Path

import numpy as np

from knn.base import Dataset
from knn.exceptions import DatasetLoadError
from .io_utils import read_exact, validate_file

logger = logging.getLogger(__name__)

IMAGE_WIDTH = 28
IMAGE_HEIGHT = 28
DEFAULT_IMAGE_DIM = IMAGE_WIDTH * IMAGE_HEIGHT

HEADER = struct.Struct("<i")


def _record_dtype(dim: int) -> np.dtype:
    return np.dtype([("label", np.uint8), ("pixels", np.uint8, (dim,))])


def load_dataset(path: str | Path, dim: int = DEFAULT_IMAGE_DIM) -> Dataset:
    """
    Load a packed image dataset into a read-only ``Dataset``.

    Parameters
    ----------
    path : str | Path
        Dataset file to read.
    dim : int
        Number of pixels per image.

    Returns
    -------
    Dataset
        Features as float64 pixel intensities, labels as int64.

    Raises
    ------
    DatasetLoadError
        If the file is missing, unreadable, or does not match the layout.
    """
    if dim < 1:
        raise ValueError(f"Image dimension must be positive, got {dim}")
    logger.debug(f"Loading dataset from {path} (dim={dim})")
    try:
        file_path = validate_file(path)
        with open(file_path, "rb") as f:
            (num_items,) = HEADER.unpack(read_exact(f, HEADER.size))
            if num_items < 0:
                raise DatasetLoadError(str(path), f"Negative item count {num_items}")
            record_dtype = _record_dtype(dim)
            payload = f.read()
    except FileNotFoundError as e:
        raise DatasetLoadError(str(path), "Dataset file not found") from e
    except EOFError as e:
        raise DatasetLoadError(str(path), "Dataset header is truncated") from e
    except OSError as e:
        raise DatasetLoadError(str(path), f"Could not read dataset ({e.strerror})") from e

    expected = num_items * record_dtype.itemsize
    if len(payload) != expected:
        raise DatasetLoadError(
            str(path),
            f"Expected {expected} bytes of records for {num_items} items, found {len(payload)}",
        )

    if num_items:
        records = np.frombuffer(payload, dtype=record_dtype, count=num_items)
    else:
        records = np.empty(0, dtype=record_dtype)
    dataset = Dataset(records["pixels"].reshape(num_items, dim), records["label"])
    logger.info(f"Loaded {dataset.count} items from {path}")
    return dataset


def save_dataset(dataset: Dataset, path: str | Path) -> Path:
    """Write ``dataset`` in the packed format. Labels and features must fit in uint8."""
    features = dataset.features
    labels = dataset.labels
    if dataset.count and (
        features.min() < 0 or features.max() > 255 or labels.min() < 0 or labels.max() > 255
    ):
        raise ValueError("Labels and pixel values must lie in [0, 255] to be stored")
    if not np.array_equal(features, np.round(features)):
        raise ValueError("Pixel values must be whole numbers to be stored")

    records = np.empty(dataset.count, dtype=_record_dtype(max(dataset.dim, 1)))
    if dataset.count:
        records["label"] = labels
        records["pixels"] = features
    out = Path(path)
    with open(out, "wb") as f:
        f.write(HEADER.pack(dataset.count))
        f.write(records.tobytes())
    logger.debug(f"Wrote {dataset.count} items to {out}")
    return out
