# test_coordinator.py

import logging
import multiprocessing
import sys
import time

import pytest

from knn.base import Partition
from knn.distance import DistanceMetric
from knn.evaluation import KNNRun
from knn.exceptions import ChannelFault, ConfigurationError, WorkerAbnormalTermination
from knn.knn import count_correct
from pipeline.classification_pipeline import (
    WORKER_CHANNEL_FAULT_EXIT,
    Coordinator,
    CoordinatorState,
    classify_in_parallel,
    run_classification,
    run_worker,
)
from pipeline.messages import RESULT_MESSAGE
from logging_setups import setup_logger

needs_fork = pytest.mark.skipif(
    'fork' not in multiprocessing.get_all_start_methods(),
    reason="custom worker targets are defined in this test module",
)


# --- misbehaving workers; all but reports_late need a forked child ---

def exits_without_result(run, task_conn, result_conn):
    task_conn.recv_bytes()
    task_conn.close()
    result_conn.close()
    sys.exit(3)


def closes_cleanly_without_result(run, task_conn, result_conn):
    task_conn.recv_bytes()
    task_conn.close()
    result_conn.close()


def sends_garbage(run, task_conn, result_conn):
    task_conn.recv_bytes()
    result_conn.send_bytes(b"\x01\x02\x03")
    task_conn.close()
    result_conn.close()


def reports_then_fails(run, task_conn, result_conn):
    task_conn.recv_bytes()
    result_conn.send_bytes(RESULT_MESSAGE.pack(1))
    task_conn.close()
    result_conn.close()
    sys.exit(4)


def reports_late(run, task_conn, result_conn):
    time.sleep(1.0)
    run_worker(run, task_conn, result_conn)


@pytest.fixture
def two_point_run(two_point_training, two_point_testing):
    return KNNRun(k=1, metric=DistanceMetric.EUCLIDEAN, reference=two_point_training, test=two_point_testing)


def test_two_point_example(two_point_run, mp_context):
    assert classify_in_parallel(two_point_run, num_workers=1, mp_context=mp_context) == 2


def test_k_clamped_example(two_point_training, two_point_testing, mp_context):
    run = KNNRun(k=5, metric=DistanceMetric.EUCLIDEAN, reference=two_point_training, test=two_point_testing)
    # both neighbors vote once each, so every prediction is label 0
    assert classify_in_parallel(run, num_workers=2, mp_context=mp_context) == 1


@pytest.mark.parametrize("metric", list(DistanceMetric))
@pytest.mark.parametrize("k", [1, 3, 7])
def test_worker_count_does_not_change_total(clustered_datasets, mp_context, metric, k):
    training, testing = clustered_datasets
    run = KNNRun(k=k, metric=metric, reference=training, test=testing)
    expected = count_correct(training, testing, k, metric)

    totals = {n: classify_in_parallel(run, num_workers=n, mp_context=mp_context) for n in (1, 2, 5)}

    assert set(totals.values()) == {expected}


def test_more_workers_than_test_items(two_point_run, mp_context):
    assert classify_in_parallel(two_point_run, num_workers=6, mp_context=mp_context) == 2


def test_state_reaches_done_and_all_workers_exit(two_point_run, mp_context):
    coordinator = Coordinator(two_point_run, num_workers=2, mp_context=mp_context)
    assert coordinator.state is CoordinatorState.INIT
    assert coordinator.execute() == 2
    assert coordinator.state is CoordinatorState.DONE
    assert [h.process.exitcode for h in coordinator.workers] == [0, 0]
    assert all(h.result_conn.closed for h in coordinator.workers)
    assert [h.partition.length for h in coordinator.workers] == [1, 1]


def test_coordinator_runs_once(two_point_run, mp_context):
    coordinator = Coordinator(two_point_run, num_workers=1, mp_context=mp_context)
    coordinator.execute()
    with pytest.raises(RuntimeError):
        coordinator.execute()


@pytest.mark.parametrize("num_workers", [0, -1, 1.5, True])
def test_invalid_worker_count(two_point_run, num_workers):
    with pytest.raises(ConfigurationError):
        Coordinator(two_point_run, num_workers=num_workers)


@needs_fork
def test_worker_exit_without_result_fails_run(two_point_run, mp_context):
    coordinator = Coordinator(two_point_run, num_workers=2, mp_context=mp_context,
                              worker_target=exits_without_result)
    with pytest.raises(WorkerAbnormalTermination) as exc_info:
        coordinator.execute()
    assert exc_info.value.exitcode == 3
    assert coordinator.state is CoordinatorState.FAILED
    assert not any(h.process.is_alive() for h in coordinator.workers)


@needs_fork
def test_closed_channel_is_a_channel_fault(two_point_run, mp_context):
    coordinator = Coordinator(two_point_run, num_workers=1, mp_context=mp_context,
                              worker_target=closes_cleanly_without_result)
    with pytest.raises(ChannelFault):
        coordinator.execute()


@needs_fork
def test_malformed_result_is_a_channel_fault(two_point_run, mp_context):
    coordinator = Coordinator(two_point_run, num_workers=1, mp_context=mp_context,
                              worker_target=sends_garbage)
    with pytest.raises(ChannelFault) as exc_info:
        coordinator.execute()
    assert exc_info.value.worker_index == 0


@needs_fork
def test_failure_after_reporting_still_fails_run(two_point_run, mp_context):
    coordinator = Coordinator(two_point_run, num_workers=2, mp_context=mp_context,
                              worker_target=reports_then_fails)
    with pytest.raises(WorkerAbnormalTermination) as exc_info:
        coordinator.execute()
    assert exc_info.value.worker_index == 0
    assert exc_info.value.exitcode == 4


def test_worker_without_partition_exits_with_channel_fault_code(two_point_run, mp_context):
    task_recv, task_send = mp_context.Pipe(duplex=False)
    result_recv, result_send = mp_context.Pipe(duplex=False)
    task_send.close()  # the worker will see EOF instead of a partition
    process = mp_context.Process(target=run_worker, args=(two_point_run, task_recv, result_send))
    process.start()
    task_recv.close()
    result_send.close()
    process.join()

    assert process.exitcode == WORKER_CHANNEL_FAULT_EXIT
    with pytest.raises(EOFError):
        result_recv.recv_bytes()
    result_recv.close()


@pytest.mark.parametrize("start_method", [
    None,
    pytest.param("fork", marks=needs_fork),
])
def test_worker_exits_with_channel_fault_code_when_result_channel_is_gone(two_point_run, start_method):
    mp_context = multiprocessing.get_context(start_method) if start_method else None
    coordinator = Coordinator(two_point_run, num_workers=2, mp_context=mp_context, worker_target=reports_late)
    for idx in range(2):
        coordinator.workers.append(coordinator._dispatch(idx, Partition(idx, 1)))
    handles = coordinator.workers
    # the coordinator drops both result channels before either worker reports
    for handle in handles:
        handle.result_conn.close()
    for handle in handles:
        handle.process.join()

    assert [h.process.exitcode for h in handles] == [WORKER_CHANNEL_FAULT_EXIT] * 2


@needs_fork
def test_forked_workers_do_not_write_to_the_log_file(two_point_run, mp_context, tmp_path):
    log_file = tmp_path / "coordinator.log"
    pipeline_logger = setup_logger("pipeline", log_file=str(log_file), level=logging.DEBUG,
                                   console=False)
    try:
        assert classify_in_parallel(two_point_run, num_workers=2, mp_context=mp_context) == 2
    finally:
        for handler in list(pipeline_logger.handlers):
            pipeline_logger.removeHandler(handler)
            handler.close()
        pipeline_logger.setLevel(logging.NOTSET)
        pipeline_logger.propagate = True

    text = log_file.read_text()
    assert "Started worker 1" in text
    assert "Worker classifying items" not in text


def test_run_classification_from_files(two_point_training, two_point_testing, dataset_file, mp_context):
    train = dataset_file(two_point_training)
    test = dataset_file(two_point_testing)
    assert run_classification(train, test, k=1, metric_name="eucl", num_workers=2, dim=2,
                              mp_context=mp_context) == 2


def test_bad_metric_is_reported_before_loading(tmp_path):
    # neither file exists, so reaching the loader would raise DatasetLoadError instead
    with pytest.raises(ConfigurationError):
        run_classification(tmp_path / "missing_train.bin", tmp_path / "missing_test.bin",
                           metric_name="manhattan")


def test_bad_k_is_reported_before_loading(tmp_path):
    with pytest.raises(ConfigurationError):
        run_classification(tmp_path / "missing_train.bin", tmp_path / "missing_test.bin", k=0)
