# pipeline/classification_pipeline.py

import logging
import multiprocessing
import sys
from dataclasses import dataclass, field
from enum import Enum
from multiprocessing.connection import Connection
from multiprocessing.process import BaseProcess
from pathlib import Path
from typing import Callable, List, Optional

from dataset_io.binary_dataset import DEFAULT_IMAGE_DIM, load_dataset
from knn.base import Partition, WorkerResult
from knn.distance import DistanceMetric
from knn.evaluation import KNNRun
from knn.exceptions import ChannelFault, ConfigurationError, WorkerAbnormalTermination
from knn.knn import count_correct
from logging_setups import detach_file_handlers
from .messages import MessageFormatError, decode_partition, decode_result, encode_partition, encode_result
from .partitioning import plan_partitions

logger = logging.getLogger(__name__)

# exit code of a worker that could not receive its partition or send its result
WORKER_CHANNEL_FAULT_EXIT = 2


def run_worker(run: KNNRun, task_conn: Connection, result_conn: Connection):
    """
    Body of one worker process.

    Receives a single partition message on ``task_conn``, classifies that slice
    of ``run.test`` against ``run.reference`` and sends a single result message
    on ``result_conn``. Exits with WORKER_CHANNEL_FAULT_EXIT, without sending a
    result, if either message cannot be transferred.
    """
    try:
        try:
            partition = decode_partition(task_conn.recv_bytes())
        except (EOFError, OSError, MessageFormatError) as e:
            logger.error(f"Worker could not read its partition: {e}")
            sys.exit(WORKER_CHANNEL_FAULT_EXIT)

        logger.debug(f"Worker classifying items [{partition.start_index}, {partition.stop_index})")
        correct = count_correct(
            run.reference,
            run.test,
            run.k,
            run.metric,
            start_index=partition.start_index,
            length=partition.length,
        )

        try:
            result_conn.send_bytes(encode_result(WorkerResult(correct_count=correct)))
        except OSError as e:
            logger.error(f"Worker could not send its result: {e}")
            sys.exit(WORKER_CHANNEL_FAULT_EXIT)
    finally:
        task_conn.close()
        result_conn.close()


def _worker_main(target: Callable, run: KNNRun, task_conn: Connection, result_conn: Connection,
                 inherited_conns: List[Connection]):
    # a forked worker starts with copies of the coordinator's result read ends,
    # including its own; holding them would hide a closed coordinator end from send_bytes
    for conn in inherited_conns:
        conn.close()
    detach_file_handlers()
    target(run, task_conn, result_conn)


class CoordinatorState(Enum):
    INIT = "init"
    PLANNING = "planning"
    DISPATCHING = "dispatching"
    COLLECTING = "collecting"
    REDUCING = "reducing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class WorkerHandle:
    index: int
    partition: Partition
    process: BaseProcess
    result_conn: Connection
    result: Optional[WorkerResult] = field(default=None)


class Coordinator:
    """
    Runs one classification job over a fixed pool of worker processes.

    Every partition is dispatched before any result is read, each worker is
    read exactly once, and the total is only returned when every worker has
    reported and exited cleanly. Any failure terminates the remaining workers
    and propagates; no partial total is produced.
    """

    def __init__(
        self,
        run: KNNRun,
        num_workers: int = 1,
        mp_context=None,
        worker_target: Callable = run_worker,
    ):
        if isinstance(num_workers, bool) or not isinstance(num_workers, int) or num_workers < 1:
            raise ConfigurationError(f"Number of workers must be a positive integer, got {num_workers!r}")
        self.run = run
        self.num_workers = num_workers
        self.ctx = mp_context or multiprocessing.get_context()
        self.worker_target = worker_target
        self.state = CoordinatorState.INIT
        self.workers: List[WorkerHandle] = []

    def _set_state(self, state: CoordinatorState):
        logger.debug(f"Coordinator {self.state.value} -> {state.value}")
        self.state = state

    def execute(self) -> int:
        """Classify the whole test set and return the number of correct predictions."""
        if self.state is not CoordinatorState.INIT:
            raise RuntimeError("A Coordinator can only execute once")
        try:
            self._set_state(CoordinatorState.PLANNING)
            partitions = plan_partitions(self.run.test.count, self.num_workers)

            self._set_state(CoordinatorState.DISPATCHING)
            for idx, partition in enumerate(partitions):
                self.workers.append(self._dispatch(idx, partition))

            self._set_state(CoordinatorState.COLLECTING)
            for handle in self.workers:
                self._collect(handle)

            self._set_state(CoordinatorState.REDUCING)
            total_correct = sum(handle.result.correct_count for handle in self.workers)

            self._set_state(CoordinatorState.DONE)
            self._await_termination()
        except BaseException:
            self.state = CoordinatorState.FAILED
            self._shutdown()
            raise
        finally:
            for handle in self.workers:
                handle.result_conn.close()

        logger.info(f"Number of correct predictions: {total_correct}")
        return total_correct

    def _dispatch(self, index: int, partition: Partition) -> WorkerHandle:
        task_recv, task_send = self.ctx.Pipe(duplex=False)
        result_recv, result_send = self.ctx.Pipe(duplex=False)
        try:
            # the partition fits in the pipe buffer, so it is queued before the worker exists
            task_send.send_bytes(encode_partition(partition))
        except OSError as e:
            for conn in (task_recv, task_send, result_recv, result_send):
                conn.close()
            raise ChannelFault(index, f"Could not send partition ({e})") from e
        task_send.close()

        inherited_conns = []
        if self.ctx.get_start_method() == "fork":
            inherited_conns = [handle.result_conn for handle in self.workers] + [result_recv]
        process = self.ctx.Process(
            target=_worker_main,
            args=(self.worker_target, self.run, task_recv, result_send, inherited_conns),
            name=f"knn-worker-{index}",
        )
        try:
            process.start()
        except BaseException:
            result_recv.close()
            raise
        finally:
            task_recv.close()
            result_send.close()

        logger.debug(
            f"Started worker {index} (pid {process.pid}) on items "
            f"[{partition.start_index}, {partition.stop_index})"
        )
        return WorkerHandle(index=index, partition=partition, process=process, result_conn=result_recv)

    def _collect(self, handle: WorkerHandle):
        try:
            payload = handle.result_conn.recv_bytes()
            handle.result = decode_result(payload)
        except EOFError as e:
            # the worker closed its end without reporting; prefer its exit status if it failed
            handle.process.join()
            if handle.process.exitcode != 0:
                raise WorkerAbnormalTermination(handle.index, handle.process.exitcode) from e
            raise ChannelFault(handle.index, "Result channel closed before a result arrived") from e
        except (OSError, MessageFormatError) as e:
            raise ChannelFault(handle.index, f"Could not receive result ({e})") from e
        finally:
            handle.result_conn.close()
        logger.debug(f"Worker {handle.index} reported {handle.result.correct_count} correct")

    def _await_termination(self):
        for handle in self.workers:
            handle.process.join()
            if handle.process.exitcode != 0:
                raise WorkerAbnormalTermination(handle.index, handle.process.exitcode)

    def _shutdown(self):
        for handle in self.workers:
            if handle.process.is_alive():
                logger.warning(f"Terminating worker {handle.index}")
                handle.process.terminate()
        for handle in self.workers:
            handle.process.join()


def classify_in_parallel(run: KNNRun, num_workers: int = 1, mp_context=None) -> int:
    """Count correct predictions for ``run.test`` using ``num_workers`` worker processes."""
    return Coordinator(run, num_workers=num_workers, mp_context=mp_context).execute()


def run_classification(
    training_path: str | Path,
    testing_path: str | Path,
    k: int = 1,
    metric_name: str = "euclidean",
    num_workers: int = 1,
    dim: int = DEFAULT_IMAGE_DIM,
    mp_context=None,
) -> int:
    """
    Load both datasets and classify the testing set against the training set.

    Every option is validated before either dataset is read, so configuration
    errors are reported without touching the filesystem.
    """
    if isinstance(k, bool) or not isinstance(k, int) or k < 1:
        raise ConfigurationError(f"K must be a positive integer, got {k!r}")
    if isinstance(num_workers, bool) or not isinstance(num_workers, int) or num_workers < 1:
        raise ConfigurationError(f"Number of workers must be a positive integer, got {num_workers!r}")
    metric = DistanceMetric.from_name(metric_name)
    logger.debug(f"Using K={k}, metric={metric.value}, workers={num_workers}")

    logger.debug("Loading datasets...")
    training = load_dataset(training_path, dim=dim)
    testing = load_dataset(testing_path, dim=dim)

    run = KNNRun(k=k, metric=metric, reference=training, test=testing)
    logger.debug(f"Creating {num_workers} worker(s)...")
    return classify_in_parallel(run, num_workers=num_workers, mp_context=mp_context)
