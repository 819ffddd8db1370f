"""
Listing and watching the objects of one resource.

The watch-stream of the Kubernetes API is a long-lived HTTP response with
JSON lines, one per event. Before it can be started, the objects are listed
regularly, and the list's resource version is used as a starting point
of the watch, so that no change is missed between the listing and watching.

The stream is disconnected by the server from time to time, which is normal.
It is then reconnected from the latest seen resource version. When the
resource version is too old ("410 Gone"), the whole cycle is restarted:
listing, then watching. Every listing is followed by a `Bookmark.LISTED`
marker, so that the consumers can detect the objects that have disappeared
between the listings (the deletions that happened while not watching).
"""
import asyncio
import enum
import logging
from typing import AsyncIterator, Dict, Mapping, Optional, Union, cast

import aiohttp

from consul_operator._cogs.aiokits import aiotasks
from consul_operator._cogs.clients import api, auth, errors, fetching
from consul_operator._cogs.configs import configuration
from consul_operator._cogs.structs import bodies, references

logger = logging.getLogger(__name__)

HTTP_GONE_CODE = 410
HTTP_TOO_MANY_REQUESTS_CODE = 429
DEFAULT_RETRY_DELAY_SECONDS = 1

# A disconnect of a stream is a normal end of it: the caller reconnects.
DISCONNECTS = (aiohttp.ClientConnectionError, aiohttp.ClientPayloadError, asyncio.TimeoutError)


class WatchingError(Exception):
    """ An error event in the watch-stream, which cannot be solved by relisting. """


class Bookmark(enum.Enum):
    """ Markers injected into the stream of raw events. """
    LISTED = enum.auto()  # all objects of a listing are yielded; the watch-events follow.


def _where(namespace: references.Namespace) -> str:
    return f'in {namespace!r}' if namespace is not None else 'cluster-wide'


async def infinite_watch(
        *,
        settings: configuration.OperatorSettings,
        context: auth.APIContext,
        resource: references.Resource,
        namespace: references.Namespace,
        stopper: Optional[aiotasks.Future] = None,
        _iterations: Optional[int] = None,  # for tests only: how many cycles to do.
) -> AsyncIterator[Union[Bookmark, bodies.RawEvent]]:
    """
    Stream the raw events of the resource until stopped, relisting as needed.

    Every cycle lists the objects and then watches them for as long as the
    resource version is valid. The throttling responses of the API are waited
    out; all other errors are escalated.
    """
    logger.debug(f"Starting the watch-stream for {resource} {_where(namespace)}.")
    try:
        cycles_left = _iterations
        while cycles_left is None or cycles_left > 0:
            cycles_left = None if cycles_left is None else cycles_left - 1
            if stopper is not None and stopper.done():
                break

            try:
                async for raw_item in continuous_watch(
                    settings=settings,
                    context=context,
                    resource=resource,
                    namespace=namespace,
                    stopper=stopper,
                ):
                    yield raw_item
            except errors.APIClientError as e:
                if e.status != HTTP_TOO_MANY_REQUESTS_CODE:
                    raise
                delay = (e.details or {}).get('retryAfterSeconds') or DEFAULT_RETRY_DELAY_SECONDS
                logger.warning(f"Receiving `too many requests` error from server, "
                               f"will retry after {delay} seconds. Error details: {e}")
                await asyncio.sleep(delay)

            await asyncio.sleep(settings.watching.reconnect_backoff)
    finally:
        logger.debug(f"Stopping the watch-stream for {resource} {_where(namespace)}.")


async def continuous_watch(
        *,
        settings: configuration.OperatorSettings,
        context: auth.APIContext,
        resource: references.Resource,
        namespace: references.Namespace,
        stopper: Optional[aiotasks.Future] = None,
) -> AsyncIterator[Union[Bookmark, bodies.RawEvent]]:
    """
    List the objects, then watch them until the resource version is gone.

    The listed objects are yielded as events of type ``None``: they are
    not known to be new or modified until compared with the local cache.
    """
    try:
        objs, resource_version = await fetching.list_objs(
            settings=settings,
            context=context,
            resource=resource,
            namespace=namespace,
            logger=logger,
        )
    except DISCONNECTS:
        return

    for obj in objs:
        yield {'type': None, 'object': obj}
    yield Bookmark.LISTED

    # Every single watch-request ends on the server's timeout; reconnect from where it ended.
    while stopper is None or not stopper.done():
        async for raw_input in watch_objs(
            settings=settings,
            context=context,
            resource=resource,
            namespace=namespace,
            since=resource_version,
            stopper=stopper,
        ):
            raw_type = raw_input.get('type') if isinstance(raw_input, Mapping) else None
            raw_object = raw_input.get('object') if isinstance(raw_input, Mapping) else None
            if not isinstance(raw_object, Mapping):
                logger.warning(f"Ignoring a malformed event with no object: {raw_input!r}")
                continue

            if raw_type == 'ERROR':
                raw_error = cast(bodies.RawError, raw_object)
                if raw_error.get('code') == HTTP_GONE_CODE:
                    logger.debug(f"Restarting the watch-stream for {resource} "
                                 f"{_where(namespace)}.")
                    return
                raise WatchingError(f"Error in the watch-stream: {raw_error}")

            if raw_type not in ('ADDED', 'MODIFIED', 'DELETED'):
                logger.warning(f"Ignoring an unsupported event type: {raw_input!r}")
                continue

            raw_body = cast(bodies.RawBody, raw_object)
            resource_version = bodies.get_version(raw_body) or resource_version
            yield cast(bodies.RawEvent, raw_input)


async def watch_objs(
        *,
        settings: configuration.OperatorSettings,
        context: auth.APIContext,
        resource: references.Resource,
        namespace: references.Namespace,
        since: Optional[str] = None,
        stopper: Optional[aiotasks.Future] = None,
) -> AsyncIterator[bodies.RawInput]:
    """
    Stream the raw inputs of one watch-request, as they come.

    The stream ends silently when the connection is closed, either server-side
    on its timeout, or client-side when the stopper is done.
    """
    params: Dict[str, str] = {'watch': 'true'}
    if since is not None:
        params['resourceVersion'] = since
    if settings.watching.server_timeout is not None:
        params['timeoutSeconds'] = str(settings.watching.server_timeout)

    connect_timeout = settings.watching.connect_timeout
    if connect_timeout is None:
        connect_timeout = settings.networking.connect_timeout
    if connect_timeout is None:
        connect_timeout = settings.networking.request_timeout
    timeout = aiohttp.ClientTimeout(total=settings.watching.client_timeout,
                                    sock_connect=connect_timeout)

    try:
        async for raw_input in api.stream(
            url=resource.get_url(namespace=namespace, params=params),
            settings=settings,
            context=context,
            timeout=timeout,
            stopper=stopper,
            logger=logger,
        ):
            yield raw_input
    except DISCONNECTS:
        pass
