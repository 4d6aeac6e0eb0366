"""kNN classification of a packed image test set against a training set.

Usage examples:

  python -m cli.classify training.bin testing.bin
  python -m cli.classify -K 5 -d cos -p 4 training.bin testing.bin
  knn-classify -v -K 3 training.bin testing.bin

Only the number of correctly classified test images is written to stdout.
Diagnostics go to stderr (and to --log-file when given).

Optional environment variables (loaded via .env):
  KNN_LOG_FILE, KNN_LOG_LEVEL
"""

# Load environment variables from .env file early
from dotenv import load_dotenv
load_dotenv()

import logging
import os

import click

from dataset_io.binary_dataset import DEFAULT_IMAGE_DIM
from knn.distance import DistanceMetric
from knn.exceptions import ConfigurationError, KNNError
from logging_setups import setup_logger
from pipeline.classification_pipeline import run_classification

LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
PACKAGE_LOGGERS = ['knn', 'pipeline', 'dataset_io']


def _validate_metric(ctx, param, value):
    try:
        return DistanceMetric.from_name(value)
    except ConfigurationError as e:
        raise click.BadParameter(str(e), ctx=ctx, param=param) from e


@click.command(context_settings={'help_option_names': ['-h', '--help']})
@click.option('-K', '--neighbors', 'k', default=1, show_default=True, type=click.IntRange(min=1),
              help='Number of nearest neighbors that vote on each label.')
@click.option('-d', '--distance', 'metric', default='euclidean', show_default=True, callback=_validate_metric,
              help='Distance metric: euclidean or cosine, or any initial substring such as "eucl" or "cos".')
@click.option('-p', '--workers', 'num_workers', default=1, show_default=True, type=click.IntRange(min=1),
              help='Number of worker processes that classify test images.')
@click.option('--dim', default=DEFAULT_IMAGE_DIM, show_default=True, type=click.IntRange(min=1),
              help='Pixels per image in the dataset files.')
@click.option('-v', '--verbose', is_flag=True, default=False, help='Print debugging information to stderr.')
@click.option('--log-file', default=lambda: os.getenv('KNN_LOG_FILE'), help='Log file path. [env: KNN_LOG_FILE]')
@click.option('--log-level', default=lambda: os.getenv('KNN_LOG_LEVEL', 'WARNING'), show_default='WARNING',
              type=click.Choice(LOG_LEVELS, case_sensitive=False),
              help='Level written to --log-file; stderr shows warnings unless -v. [env: KNN_LOG_LEVEL]')
@click.argument('training_data', type=click.Path(dir_okay=False))
@click.argument('testing_data', type=click.Path(dir_okay=False))
def classify(k, metric, num_workers, dim, verbose, log_file, log_level, training_data, testing_data):
    """
    Classify every image in TESTING_DATA against TRAINING_DATA with kNN and
    print how many were labeled correctly.
    """
    # --log-level drives the log file; stderr stays at WARNING unless -v is given
    file_level = logging.DEBUG if verbose else getattr(logging, log_level.upper())
    console_level = logging.DEBUG if verbose else logging.WARNING
    cli_logger = setup_logger(name='knn_classify_cli', log_file=log_file, level=file_level,
                              console=True, console_level=console_level)
    for name in PACKAGE_LOGGERS:
        setup_logger(name=name, log_file=log_file, level=file_level, console=True, console_level=console_level)

    cli_logger.debug(
        f"Classifying {testing_data} against {training_data} "
        f"(K={k}, metric={metric.value}, workers={num_workers})"
    )
    try:
        total_correct = run_classification(
            training_path=training_data,
            testing_path=testing_data,
            k=k,
            metric_name=metric.value,
            num_workers=num_workers,
            dim=dim,
        )
    except KNNError as e:
        cli_logger.error(str(e))
        raise click.ClickException(str(e))

    # stdout carries only the result so script usage can capture it
    click.echo(total_correct)


if __name__ == '__main__':
    classify()
