"""
Orchestration of the operator's long-running asyncio tasks.

Only tasks are supported here, not arbitrary awaitables: the reactor needs
both to wait for them and to cancel them, which only tasks allow.
"""
import asyncio
from typing import TYPE_CHECKING, Any, Collection, Coroutine, Optional, Set, Tuple

from consul_operator._cogs.helpers import typedefs

# Generic aliases of the asyncio classes are not subscriptable at runtime in all versions.
if TYPE_CHECKING:
    Future = asyncio.Future[Any]
    Task = asyncio.Task[Any]
else:
    Future = asyncio.Future
    Task = asyncio.Task


async def _guarded(
        coro: Coroutine[Any, Any, Any],
        *,
        name: str,
        finishable: bool,
        cancellable: bool,
        logger: Optional[typedefs.Logger],
) -> None:
    try:
        await coro
    except asyncio.CancelledError:
        if logger is not None and not cancellable:
            logger.debug(f"{name.capitalize()} is cancelled.")
        raise
    except Exception as e:
        if logger is not None:
            logger.exception(f"{name.capitalize()} has failed: {e}")
        raise
    if logger is not None and not finishable:
        logger.warning(f"{name.capitalize()} has finished unexpectedly.")


def create_guarded_task(
        coro: Coroutine[Any, Any, Any],
        name: str,
        *,
        finishable: bool = False,
        cancellable: bool = False,
        logger: Optional[typedefs.Logger] = None,
) -> Task:
    """
    Start a task that is expected to run until it is cancelled.

    Its errors are logged and re-raised into the task's result. An exit with
    no error is reported as a misbehaviour, unless the task is ``finishable``
    (e.g. the workers, which exit when the queue is shut down). Cancellations
    are reported in the debug log, unless the task is ``cancellable``.
    """
    wrapped = _guarded(coro, name=name, finishable=finishable, cancellable=cancellable,
                       logger=logger)
    return asyncio.create_task(wrapped, name=name)


async def wait(
        tasks: Collection[Task],
        *,
        timeout: Optional[float] = None,
        return_when: Any = asyncio.ALL_COMPLETED,
) -> Tuple[Set[Task], Set[Task]]:
    """ Same as :func:`asyncio.wait`, but an empty collection is not an error. """
    if not tasks:
        return set(), set()
    return await asyncio.wait(tasks, timeout=timeout, return_when=return_when)


async def stop(
        tasks: Collection[Task],
        *,
        title: str,
        quiet: bool = False,
        logger: Optional[typedefs.Logger] = None,
) -> Set[Task]:
    """
    Cancel the tasks and wait until all of them are finished.

    If the stopping itself is cancelled, the cancellation is propagated
    after the tasks are cancelled. Returns the tasks that have been stopped.
    """
    if not tasks:
        if logger is not None and not quiet:
            logger.debug(f"{title.capitalize()} tasks stopping is skipped: no tasks given.")
        return set()

    for task in tasks:
        task.cancel()

    try:
        done, _ = await wait(tasks)
    except asyncio.CancelledError:
        if logger is not None:
            leftovers = {task for task in tasks if not task.done()}
            logger.debug(f"{title.capitalize()} tasks are interrupted while stopping; "
                         f"tasks left: {leftovers!r}")
        raise

    if logger is not None and not quiet:
        logger.debug(f"{title.capitalize()} tasks are stopped: {done!r}")
    return done


async def reraise(
        tasks: Collection[Task],
) -> None:
    """ Raise the first error of the finished tasks; cancellations are not errors. """
    for task in tasks:
        if task.done() and not task.cancelled():
            task.result()
