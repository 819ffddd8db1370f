import asyncio
import json
import logging
import re
import time
from typing import List, Optional, Tuple

import pytest
from aresponses import ResponsesMockServer

from consul_operator._cogs.clients.auth import APIContext
from consul_operator._cogs.configs.configuration import OperatorSettings
from consul_operator._cogs.structs.credentials import ConnectionInfo
from consul_operator._cogs.structs.references import CONSULS, ObjectKey


@pytest.fixture()
def settings():
    settings = OperatorSettings()
    settings.networking.error_backoffs = []
    settings.watching.reconnect_backoff = 0
    settings.bootstrap.poll_interval = 0.01
    settings.bootstrap.timeout = 1
    settings.retrying.base_delay = 0.001
    settings.retrying.max_delay = 0.01
    return settings


@pytest.fixture()
def resource():
    return CONSULS


@pytest.fixture()
def namespace():
    return 'ns'


@pytest.fixture()
def logger():
    return logging.getLogger('tests')


#
# Mocks for the API. The requests go to the `aresponses` fake server.
# No external calls must be made under any circumstances.
#

@pytest.fixture()
def hostname():
    """ A fake hostname to be used in all aiohttp/aresponses tests. """
    return 'fake-host'


@pytest.fixture()
def connection_info(hostname):
    return ConnectionInfo(server=f'https://{hostname}')


@pytest.fixture()
async def aresponses():
    """ The fake API server, bound to the test's own event loop. """
    async with ResponsesMockServer(loop=asyncio.get_running_loop()) as server:
        yield server


@pytest.fixture()
async def context(connection_info, aresponses):
    # The unused `aresponses` ensures that the fake server is started before the session.
    async with APIContext(connection_info) as context:
        yield context


@pytest.fixture()
def resp_mocker(mocker):
    """
    A factory of server-side callbacks for `aresponses` with mocking/spying.

    The value of the fixture is a function, which returns a coroutine mock.
    That coroutine mock should be passed to `aresponses.add` as a response
    callback function. When called, it calls the mock defined by the function's
    arguments (specifically, return_value or side_effect).

    The request payloads are preserved in the callback's ``payloads`` list,
    since the request's content can be read only inside of the handler.

    Sample usage::

        def test_me(resp_mocker):
            response = aiohttp.web.json_response({'a': 'b'})
            callback = resp_mocker(return_value=response)
            aresponses.add(hostname, '/path/', 'get', callback)
            do_something()
            assert callback.called
            assert callback.call_count == 1
    """
    def resp_maker(*args, **kwargs):
        actual_response = mocker.MagicMock(*args, **kwargs)

        async def resp_mock_effect(request):
            try:
                callback.payloads.append(await request.json())
            except json.JSONDecodeError:
                callback.payloads.append(await request.text())
            return actual_response()

        callback = mocker.AsyncMock(side_effect=resp_mock_effect)
        callback.payloads = []
        # aresponses copies repeated handlers; keep one spy across repeats.
        type(callback).__copy__ = lambda self: self
        return callback
    return resp_maker


#
# A fake actuator for the reactor tests: it records the calls and fails on demand.
#

class FakeActuator:

    def __init__(self) -> None:
        super().__init__()
        self.calls: List[Tuple[str, ObjectKey, Optional[dict]]] = []
        self.failures: List[BaseException] = []  # raised one by one on the next calls
        self.delay: float = 0
        self.max_active_per_key: int = 0
        self._active_keys: List[ObjectKey] = []

    async def _act(self, op: str, key: ObjectKey, body: Optional[dict]) -> None:
        self.calls.append((op, key, body))
        self._active_keys.append(key)
        self.max_active_per_key = max(self.max_active_per_key, self._active_keys.count(key))
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.failures:
                raise self.failures.pop(0)
        finally:
            self._active_keys.remove(key)

    async def ensure_present(self, key, body, *, logger=None):
        await self._act('present', key, body)

    async def ensure_absent(self, key, *, logger=None):
        await self._act('absent', key, None)


@pytest.fixture()
def actuator():
    return FakeActuator()


#
# Helpers for the timing and logging checks.
#

class Timer:
    """ Measure the duration of a code block: ``with timer: ...; timer.seconds``. """

    def __init__(self) -> None:
        super().__init__()
        self.started: Optional[float] = None
        self.finished: Optional[float] = None

    @property
    def seconds(self) -> Optional[float]:
        if self.started is None:
            return None
        return (self.finished or time.perf_counter()) - self.started

    def __enter__(self) -> "Timer":
        self.started = time.perf_counter()
        self.finished = None
        return self

    def __exit__(self, *_) -> None:
        self.finished = time.perf_counter()


@pytest.fixture()
def timer():
    return Timer()


@pytest.fixture()
def assert_logs(caplog):
    """
    Check that the messages matching the patterns are logged, in that order.

    Other messages in between are ignored. A pattern that matches a message
    while an earlier pattern has not matched yet is a failure: the order is broken.
    """
    def assert_logs_fn(patterns):
        __tracebackhide__ = True
        expected = list(patterns)
        for message in caplog.messages:
            matching = [idx for idx, pattern in enumerate(expected) if re.search(pattern, message)]
            if matching and matching[0] > 0:
                pytest.fail(f"Logs are out of order: {expected[:matching[0]]!r} are skipped "
                            f"before {message!r}")
            elif matching:
                expected.pop(0)
        if expected:
            pytest.fail(f"Logs are missing: {expected!r}")

    return assert_logs_fn
