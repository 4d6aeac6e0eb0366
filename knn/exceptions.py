# knn/exceptions.py

from typing import Optional


class KNNError(Exception):
    """Base class for every fatal error raised while classifying a run."""


class ConfigurationError(KNNError, ValueError):
    """Raised for bad K, bad worker counts, unknown distance metrics or missing arguments."""


class DatasetLoadError(KNNError):
    """Raised when a dataset file is missing, unreadable or malformed."""
    def __init__(self, path: str, message: str = "The data set could not be loaded"):
        self.path = path
        super().__init__(f"{message}: {path}")


class ChannelFault(KNNError):
    """Raised when the coordinator cannot receive a worker's result."""
    def __init__(self, worker_index: int, message: str = "Result channel failed"):
        self.worker_index = worker_index
        super().__init__(f"{message} (worker {worker_index})")


class WorkerAbnormalTermination(KNNError):
    """Raised when a worker process exits without completing its obligations."""
    def __init__(self, worker_index: int, exitcode: Optional[int]):
        self.worker_index = worker_index
        self.exitcode = exitcode
        super().__init__(f"Worker {worker_index} terminated abnormally (exit code {exitcode})")
