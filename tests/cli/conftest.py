import functools
import logging

import click.testing
import pytest

from consul_operator._core.engines.loggers import _OperatorStreamHandler
from consul_operator.cli import main


@pytest.fixture(autouse=True)
def _restored_logging():
    # The CLI configures the global logging, and streams into Click's runner outputs,
    # which are closed after the invocation. Revert it, so that other tests are unaffected.
    root = logging.getLogger()
    asyncio_logger = logging.getLogger('asyncio')
    level = root.level
    asyncio_handlers, asyncio_propagate = asyncio_logger.handlers[:], asyncio_logger.propagate
    yield
    root.handlers[:] = [h for h in root.handlers if not isinstance(h, _OperatorStreamHandler)]
    root.setLevel(level)
    asyncio_logger.handlers[:] = asyncio_handlers
    asyncio_logger.propagate = asyncio_propagate


@pytest.fixture()
def runner():
    runner = click.testing.CliRunner()
    return runner


@pytest.fixture()
def invoke(runner):
    return functools.partial(runner.invoke, main)


@pytest.fixture()
def real_run(mocker):
    return mocker.patch('consul_operator._core.reactor.running.run')
