# pipeline/messages.py

"""
Fixed-width messages exchanged between the coordinator and its workers.

A partition assignment is two signed 64-bit integers (start_index, length);
a result is one signed 64-bit integer (correct_count). Nothing else is sent.
"""

import struct

from knn.base import Partition, WorkerResult

PARTITION_MESSAGE = struct.Struct("<qq")
RESULT_MESSAGE = struct.Struct("<q")


class MessageFormatError(ValueError):
    """Raised when a payload does not have the exact size of the expected message."""


def encode_partition(partition: Partition) -> bytes:
    return PARTITION_MESSAGE.pack(partition.start_index, partition.length)


def decode_partition(payload: bytes) -> Partition:
    if len(payload) != PARTITION_MESSAGE.size:
        raise MessageFormatError(
            f"Partition message must be {PARTITION_MESSAGE.size} bytes, got {len(payload)}"
        )
    start_index, length = PARTITION_MESSAGE.unpack(payload)
    try:
        return Partition(start_index=start_index, length=length)
    except ValueError as e:
        raise MessageFormatError(str(e)) from e


def encode_result(result: WorkerResult) -> bytes:
    return RESULT_MESSAGE.pack(result.correct_count)


def decode_result(payload: bytes) -> WorkerResult:
    if len(payload) != RESULT_MESSAGE.size:
        raise MessageFormatError(
            f"Result message must be {RESULT_MESSAGE.size} bytes, got {len(payload)}"
        )
    (correct_count,) = RESULT_MESSAGE.unpack(payload)
    try:
        return WorkerResult(correct_count=correct_count)
    except ValueError as e:
        raise MessageFormatError(str(e)) from e
