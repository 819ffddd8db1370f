import asyncio
import collections.abc
import json
from typing import Any, AsyncIterator, List, Mapping, Optional

import aiohttp

from consul_operator._cogs.aiokits import aiotasks
from consul_operator._cogs.clients import auth, errors
from consul_operator._cogs.configs import configuration
from consul_operator._cogs.helpers import typedefs

# The errors that can go away by themselves; everything else is escalated at once.
RETRYABLE_ERRORS = (aiohttp.ClientConnectionError, asyncio.TimeoutError, errors.APIServerError)


def _get_backoffs(settings: configuration.OperatorSettings) -> List[float]:
    backoffs = settings.networking.error_backoffs
    if isinstance(backoffs, collections.abc.Iterable):
        return list(backoffs)
    else:
        return [backoffs]


async def request(
        method: str,
        url: str,  # relative to the server/api root.
        *,
        settings: configuration.OperatorSettings,
        context: auth.APIContext,
        payload: Optional[object] = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[aiohttp.ClientTimeout] = None,
        logger: typedefs.Logger,
) -> aiohttp.ClientResponse:
    """
    Perform a request with retries on connection errors and server errors.

    Client errors (4xx) are never retried here: they are raised immediately
    as the specialised :mod:`errors` classes for the callers to decide on.
    The response is returned unread; it is closed with the context at the latest.
    """
    if '://' not in url:
        url = context.server.rstrip('/') + '/' + url.lstrip('/')
    if timeout is None:
        timeout = aiohttp.ClientTimeout(
            total=settings.networking.request_timeout,
            sock_connect=settings.networking.connect_timeout,
        )

    what = f"{method.upper()} {url}"
    backoffs = _get_backoffs(settings)
    attempts = len(backoffs) + 1
    for attempt in range(1, attempts + 1):
        if attempt > 1:
            logger.debug(f"Request attempt #{attempt}/{attempts}: {what}")
        try:
            response = await context.session.request(
                method=method,
                url=url,
                json=payload,
                headers=headers,
                timeout=timeout,
            )
            await errors.check_response(response)
        except RETRYABLE_ERRORS as e:
            if attempt == attempts:
                logger.error(f"Request attempt #{attempt}/{attempts} failed; escalating: "
                             f"{what} -> {e!r}")
                raise
            logger.error(f"Request attempt #{attempt}/{attempts} failed; will retry: "
                         f"{what} -> {e!r}")
            await asyncio.sleep(backoffs[attempt - 1])
        else:
            if attempt > 1:
                logger.debug(f"Request attempt #{attempt}/{attempts} succeeded: {what}")
            context.add_response(response)
            return response

    raise RuntimeError("Retries are exhausted with no error.")  # for type-checking only.


async def _request_json(
        method: str,
        url: str,
        *,
        settings: configuration.OperatorSettings,
        context: auth.APIContext,
        payload: Optional[object] = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[aiohttp.ClientTimeout] = None,
        logger: typedefs.Logger,
) -> Any:
    response = await request(method, url, payload=payload, headers=headers, timeout=timeout,
                             settings=settings, context=context, logger=logger)
    async with response:
        return await response.json()


async def get(
        url: str,  # relative to the server/api root.
        *,
        settings: configuration.OperatorSettings,
        context: auth.APIContext,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[aiohttp.ClientTimeout] = None,
        logger: typedefs.Logger,
) -> Any:
    return await _request_json('get', url, headers=headers, timeout=timeout,
                               settings=settings, context=context, logger=logger)


async def post(
        url: str,  # relative to the server/api root.
        *,
        settings: configuration.OperatorSettings,
        context: auth.APIContext,
        payload: Optional[object] = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[aiohttp.ClientTimeout] = None,
        logger: typedefs.Logger,
) -> Any:
    return await _request_json('post', url, payload=payload, headers=headers, timeout=timeout,
                               settings=settings, context=context, logger=logger)


async def delete(
        url: str,  # relative to the server/api root.
        *,
        settings: configuration.OperatorSettings,
        context: auth.APIContext,
        payload: Optional[object] = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[aiohttp.ClientTimeout] = None,
        logger: typedefs.Logger,
) -> Any:
    return await _request_json('delete', url, payload=payload, headers=headers, timeout=timeout,
                               settings=settings, context=context, logger=logger)


async def stream(
        url: str,  # relative to the server/api root.
        *,
        settings: configuration.OperatorSettings,
        context: auth.APIContext,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[aiohttp.ClientTimeout] = None,
        stopper: Optional[aiotasks.Future] = None,
        logger: typedefs.Logger,
) -> AsyncIterator[Any]:
    """
    Yield the JSON-decoded lines of a long-lived response until it is closed.

    If the stopper future is done (e.g. on the operator's shutdown),
    the response is closed client-side, and the stream ends silently.
    """
    response = await request('get', url, headers=headers, timeout=timeout,
                             settings=settings, context=context, logger=logger)

    def close_on_stop(_: aiotasks.Future) -> None:
        response.close()

    if stopper is not None:
        stopper.add_done_callback(close_on_stop)
    try:
        async with response:
            async for line in iter_jsonlines(response.content):
                yield json.loads(line.decode('utf-8'))
    except aiohttp.ClientConnectionError:
        if stopper is None or not stopper.done():
            raise
    finally:
        if stopper is not None:
            stopper.remove_done_callback(close_on_stop)


async def iter_jsonlines(
        content: aiohttp.StreamReader,
        chunk_size: int = 1024 * 1024,
) -> AsyncIterator[bytes]:
    """
    Iterate over the non-empty lines of a response's content.

    ``async for line in response.content`` is not used: aiohttp fails on lines
    longer than its internal buffer (128 KB), while the objects can be bigger.
    """
    tail = b''
    async for chunk in content.iter_chunked(chunk_size):
        *lines, tail = (tail + chunk).split(b'\n')
        for line in lines:
            if line:
                yield line
    if tail:
        yield tail
