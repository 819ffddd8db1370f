"""
The wiring of the watch-stream into the local cache and the change queue.

Two tasks run per informer, connected with a bounded channel:

* The streamer owns the watch connection and only moves the raw events
  from the stream into the channel. When the channel is full, the stream
  is not read further (the backpressure goes to the connection's buffers).
* The dispatcher is the only writer of the cache. It resolves every raw event
  into a typed event (using the cache for the previous state), applies it
  to the cache, and queues the key for reconciliation.

The typed events are resolved exactly once here; the workers only see keys.

Every listing of the objects is followed by a bookmark. The objects that are
in the cache, but were not seen in the latest listing, were deleted while
the stream was not watched: they become tombstones (deletions with unknown
final state). The first bookmark means that the cache is synced, and it is
safe to start the workers: before that, the absent objects would be treated
as deleted, and their managed children would be removed by mistake.
"""
import asyncio
import logging
from typing import TYPE_CHECKING, Optional, Set, Union

from consul_operator._cogs.aiokits import aiotasks, aiotoggles
from consul_operator._cogs.clients import auth, watching
from consul_operator._cogs.configs import configuration
from consul_operator._cogs.structs import bodies, events, references
from consul_operator._core.reactor import caching, queueing

logger = logging.getLogger(__name__)

RawItem = Union[watching.Bookmark, bodies.RawEvent]

if TYPE_CHECKING:
    Channel = asyncio.Queue[RawItem]
else:
    Channel = asyncio.Queue


class CacheSyncError(Exception):
    """ Raised when the initial listing is not applied to the cache in time. """


class Informer:

    def __init__(
            self,
            *,
            settings: configuration.OperatorSettings,
            context: auth.APIContext,
            resource: references.Resource,
            namespace: references.Namespace,
            cache: caching.Cache,
            queue: queueing.ChangeQueue,
    ) -> None:
        super().__init__()
        self.settings = settings
        self.context = context
        self.resource = resource
        self.namespace = namespace
        self.cache = cache
        self.queue = queue
        self.channel: Channel = asyncio.Queue(maxsize=settings.watching.backlog_limit)
        self.synced = aiotoggles.Toggle(name=f"{resource} cache synced")
        self._listed: Set[references.ObjectKey] = set()

    async def streamer(
            self,
            *,
            stopper: Optional[aiotasks.Future] = None,
    ) -> None:
        """ Move the raw events from the watch-stream to the channel, forever. """
        async for raw_item in watching.infinite_watch(
            settings=self.settings,
            context=self.context,
            resource=self.resource,
            namespace=self.namespace,
            stopper=stopper,
        ):
            await self.channel.put(raw_item)

    async def dispatcher(self) -> None:
        """ Apply the raw events from the channel to the cache and the queue, forever. """
        while True:
            raw_item = await self.channel.get()
            try:
                await self.dispatch(raw_item)
            finally:
                self.channel.task_done()

    async def dispatch(self, raw_item: RawItem) -> None:
        if isinstance(raw_item, watching.Bookmark):
            if raw_item is watching.Bookmark.LISTED:
                await self._relisted()
            return

        event = self.resolve(raw_item)
        if event is None:
            return

        if raw_item['type'] is None:
            self._listed.add(event.key)
        self.apply(event)

    def resolve(self, raw_event: bodies.RawEvent) -> Optional[events.Event]:
        """
        Convert a raw event into a typed one; ``None`` if it cannot be understood.

        The raw event types are not trusted for the add/update distinction:
        the cache decides it, since the listings carry no event types at all,
        and the re-listings repeat the already known objects.
        """
        raw_type = raw_event.get('type')
        body = raw_event.get('object')
        if not isinstance(body, dict):
            logger.warning(f"Dropping a malformed event with no object: {raw_event!r}")
            return None
        try:
            key = bodies.get_key(body)
        except ValueError as e:
            logger.warning(f"Dropping a malformed event: {e}")
            return None

        if raw_type == 'DELETED':
            return events.Deleted(key=key, body=body)

        old = self.cache.get(key)
        if old is None:
            return events.Added(key=key, body=body)
        else:
            return events.Updated(key=key, old=old, new=body)

    def apply(self, event: events.Event) -> None:
        """ Update the cache first, then queue the key: the worker must see the new state. """
        if isinstance(event, events.Added):
            self.cache.upsert(event.key, event.body)
        elif isinstance(event, events.Updated):
            self.cache.upsert(event.key, event.new)
        elif isinstance(event, events.Deleted):
            self.cache.remove(event.key)
        else:
            raise TypeError(f"Unsupported event: {event!r}")
        self.queue.add(event.key)

    async def _relisted(self) -> None:
        for key in self.cache.keys():
            if key not in self._listed:
                logger.debug(f"{key} is gone while not watched; reconciling its deletion.")
                self.apply(events.Deleted(key=key, body=None))
        self._listed.clear()

        if self.synced.is_off():
            logger.debug(f"The cache of {self.resource} is synced: {len(self.cache)} objects.")
            await self.synced.turn_to(True)


async def wait_for_sync(
        informer: Informer,
        *,
        timeout: Optional[float] = None,
) -> None:
    """ Block until the initial listing is in the cache; fail if it takes too long. """
    try:
        await asyncio.wait_for(informer.synced.wait_for(True), timeout=timeout)
    except asyncio.TimeoutError:
        raise CacheSyncError(f"The cache of {informer.resource} is not synced "
                             f"in {timeout} seconds.") from None
