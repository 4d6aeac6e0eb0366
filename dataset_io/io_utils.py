# dataset_io/io_utils.py

from pathlib import Path


def validate_file(path: str | Path) -> Path:
    p = Path(path)
    if not p.exists() or not p.is_file():
        raise FileNotFoundError(path)
    return p


def read_exact(fobj, size: int) -> bytes:
    """Read exactly ``size`` bytes or raise EOFError on a short read."""
    data = fobj.read(size)
    if len(data) != size:
        raise EOFError(f"Expected {size} bytes, got {len(data)}")
    return data
