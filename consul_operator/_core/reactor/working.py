"""
The workers consume the change queue and reconcile the keys one by one.

Several workers can run concurrently; the queue guarantees that one key
is never given to two workers at the same time. The workers never decide
on the failures beyond the retry ceiling: all failures are the same,
and are retried with the backoff until the ceiling, then abandoned.
"""
import logging

from consul_operator._cogs.configs import configuration
from consul_operator._core.engines import actuating
from consul_operator._core.reactor import caching, queueing, reconciling

logger = logging.getLogger(__name__)


async def worker(
        *,
        settings: configuration.OperatorSettings,
        queue: queueing.ChangeQueue,
        cache: caching.Cache,
        actuator: actuating.Actuator,
) -> None:
    """
    Process the keys until the queue is shut down.

    The in-flight reconciliation is not interrupted by the shutdown:
    the worker exits only when it comes for the next key.
    """
    while await process_next(settings=settings, queue=queue, cache=cache, actuator=actuator):
        pass


async def process_next(
        *,
        settings: configuration.OperatorSettings,
        queue: queueing.ChangeQueue,
        cache: caching.Cache,
        actuator: actuating.Actuator,
) -> bool:
    """
    Reconcile one key from the queue; return ``False`` only if the queue is shut down.
    """
    key, shutdown = await queue.get()
    if shutdown or key is None:
        return False

    try:
        await reconciling.reconcile(key, cache=cache, actuator=actuator)
    except Exception as e:
        retries = queue.num_requeues(key)
        if retries < settings.retrying.max_retries:
            logger.error(f"Reconciliation of {key} has failed; retrying ({retries + 1}): {e!r}")
            queue.add_rate_limited(key)
        else:
            logger.error(f"Reconciliation of {key} has failed {retries + 1} times; "
                         f"giving up: {e!r}")
            queue.forget(key)
    else:
        queue.forget(key)
    finally:
        queue.done(key)
    return True
