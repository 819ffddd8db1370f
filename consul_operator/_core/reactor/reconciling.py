"""
Reconciliation of one object's actual state to its latest desired state.

The reconciler knows nothing about the watch-events: it only looks up
the key in the cache. If the object is there, it must exist in the managed
system as declared; if it is not, the object is deleted (or never existed),
and everything managed for it must be removed.

Every key goes through a simple life-cycle in the change queue:

* pending: queued, waiting for a worker;
* processing: being reconciled by exactly one worker;
* succeeded: done, the failures are forgotten;
* failed: done, queued again after a backoff (pending again);
* abandoned: done after too many failures, forgotten until a new change.
"""
from consul_operator._core.engines import actuating, loggers
from consul_operator._core.reactor import caching
from consul_operator._cogs.structs import references


async def reconcile(
        key: references.ObjectKey,
        *,
        cache: caching.Cache,
        actuator: actuating.Actuator,
) -> None:
    """
    Drive the actual state of one object towards the latest cached one.

    The actuator's errors are propagated as is: the caller decides on retries.
    """
    body = cache.get(key)
    logger = loggers.ObjectLogger(key=key, body=body)
    if body is not None:
        logger.debug(f"Reconciling the existing object.")
        await actuator.ensure_present(key, body, logger=logger)
    else:
        logger.debug(f"Reconciling the absent object.")
        await actuator.ensure_absent(key, logger=logger)
