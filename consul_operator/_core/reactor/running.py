import asyncio
import logging
import signal
import threading
from typing import List, Optional

from consul_operator._cogs.aiokits import aioadapters, aiotasks
from consul_operator._cogs.clients import auth
from consul_operator._cogs.configs import configuration
from consul_operator._cogs.structs import references
from consul_operator._core.engines import actuating, bootstrapping
from consul_operator._core.intents import piggybacking
from consul_operator._core.reactor import caching, informing, queueing, working

logger = logging.getLogger(__name__)


def run(
        *,
        settings: Optional[configuration.OperatorSettings] = None,
        context: Optional[auth.APIContext] = None,
        kubeconfig: Optional[str] = None,
        namespace: references.Namespace = None,
        resource: references.Resource = references.CONSULS,
        actuator: Optional[actuating.Actuator] = None,
        stop_flag: Optional[aioadapters.Flag] = None,
        ready_flag: Optional[aioadapters.Flag] = None,
) -> None:
    """
    Run the whole operator synchronously.

    This function should be used to run an operator in normal sync mode.
    """
    try:
        asyncio.run(operator(
            settings=settings,
            context=context,
            kubeconfig=kubeconfig,
            namespace=namespace,
            resource=resource,
            actuator=actuator,
            stop_flag=stop_flag,
            ready_flag=ready_flag,
        ))
    except asyncio.CancelledError:
        pass


async def operator(
        *,
        settings: Optional[configuration.OperatorSettings] = None,
        context: Optional[auth.APIContext] = None,
        kubeconfig: Optional[str] = None,
        namespace: references.Namespace = None,
        resource: references.Resource = references.CONSULS,
        actuator: Optional[actuating.Actuator] = None,
        stop_flag: Optional[aioadapters.Flag] = None,
        ready_flag: Optional[aioadapters.Flag] = None,
) -> None:
    """
    Run the whole operator asynchronously.

    This function should be used to run an operator in an asyncio event-loop
    if the operator is orchestrated explicitly and manually.

    If the API context is not given, the operator logs in on its own
    (via the kubeconfig or the service account), and closes the session at exit.
    """
    settings = settings if settings is not None else configuration.OperatorSettings()
    if context is not None:
        await reconcile_forever(
            settings=settings,
            context=context,
            namespace=namespace,
            resource=resource,
            actuator=actuator,
            stop_flag=stop_flag,
            ready_flag=ready_flag,
        )
    else:
        info = piggybacking.login(kubeconfig=kubeconfig, logger=logger)
        async with auth.APIContext(info) as context:
            await reconcile_forever(
                settings=settings,
                context=context,
                namespace=namespace,
                resource=resource,
                actuator=actuator,
                stop_flag=stop_flag,
                ready_flag=ready_flag,
            )


async def reconcile_forever(
        *,
        settings: configuration.OperatorSettings,
        context: auth.APIContext,
        namespace: references.Namespace,
        resource: references.Resource,
        actuator: Optional[actuating.Actuator] = None,
        stop_flag: Optional[aioadapters.Flag] = None,
        ready_flag: Optional[aioadapters.Flag] = None,
) -> None:
    """
    Bootstrap, sync the cache, then reconcile until stopped or failed.

    The startup order is strict: the schema is registered, the informer
    is started, and only when the initial listing is in the cache, the workers
    are started. Any startup failure is fatal and is raised to the caller.

    On stopping, the queue is shut down first, so that no new keys are taken;
    the in-flight reconciliations are given the graceful timeout to finish.
    """
    await bootstrapping.bootstrap(settings=settings, context=context, resource=resource)

    actuator = actuator if actuator is not None else actuating.ServicesActuator(
        settings=settings,
        context=context,
    )
    cache = caching.Cache()
    queue = queueing.ChangeQueue(
        rate_limiter=queueing.make_rate_limiter(settings),
        name=resource.plural,
    )
    informer = informing.Informer(
        settings=settings,
        context=context,
        resource=resource,
        namespace=namespace,
        cache=cache,
        queue=queue,
    )

    loop = asyncio.get_running_loop()
    signal_flag: aiotasks.Future = loop.create_future()
    signals_installed = _install_signal_handlers(signal_flag)

    stopper_task = asyncio.create_task(
        _stop_flag_checker(signal_flag=signal_flag, stop_flag=stop_flag),
        name="stop-flag checker")
    informer_tasks: List[aiotasks.Task] = [
        aiotasks.create_guarded_task(
            name="watch-stream", logger=logger, cancellable=True,
            coro=informer.streamer()),
        aiotasks.create_guarded_task(
            name="cache dispatcher", logger=logger, cancellable=True,
            coro=informer.dispatcher()),
    ]
    sync_task = asyncio.create_task(
        informing.wait_for_sync(informer, timeout=settings.watching.sync_timeout),
        name="cache sync waiter")
    worker_tasks: List[aiotasks.Task] = []
    try:

        # Wait for the initial sync, unless the informer fails or the operator is stopped first.
        await aiotasks.wait([sync_task, stopper_task, *informer_tasks],
                            return_when=asyncio.FIRST_COMPLETED)
        if sync_task.done():
            sync_task.result()  # re-raise the sync timeout, if any.

            # Only now, it is safe to process the keys: the cache reflects the cluster.
            for idx in range(max(1, settings.queueing.worker_count)):
                worker_tasks.append(aiotasks.create_guarded_task(
                    name=f"worker #{idx}", logger=logger, finishable=True,
                    coro=working.worker(
                        settings=settings,
                        queue=queue,
                        cache=cache,
                        actuator=actuator)))
            await aioadapters.raise_flag(ready_flag)
            logger.info(f"Serving {resource} with {len(worker_tasks)} worker(s).")

            # Run until stopped, or until any of the infinite tasks fails.
            await aiotasks.wait([stopper_task, *informer_tasks, *worker_tasks],
                                return_when=asyncio.FIRST_COMPLETED)

    finally:
        queue.shutdown()
        await aiotasks.stop([sync_task], title="Sync", logger=logger, quiet=True)
        await aiotasks.stop(informer_tasks, title="Informer", logger=logger, quiet=True)

        # Let the workers finish their in-flight keys; they exit on the next get().
        _, pending = await aiotasks.wait(worker_tasks, timeout=settings.process.graceful_timeout)
        if pending:
            logger.warning(f"Workers did not finish in time; cancelling: {pending!r}")
        await aiotasks.stop(pending, title="Worker", logger=logger, quiet=True)

        await aiotasks.stop([stopper_task], title="Stopper", logger=logger, quiet=True)
        if signals_installed:
            loop.remove_signal_handler(signal.SIGINT)
            loop.remove_signal_handler(signal.SIGTERM)

    # If stopped normally, still escalate the failures of the infinite tasks, if any.
    await aiotasks.reraise(informer_tasks + worker_tasks)


def _install_signal_handlers(signal_flag: aiotasks.Future) -> bool:
    """ On Ctrl+C or pod termination, stop the operator gracefully. """
    if threading.current_thread() is not threading.main_thread():
        logger.warning("OS signals are ignored: running not in the main thread.")
        return False

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, _set_signal, signal_flag, signal.SIGINT)
        loop.add_signal_handler(signal.SIGTERM, _set_signal, signal_flag, signal.SIGTERM)
    except NotImplementedError:
        logger.warning("OS signals are ignored: can't add signal handler in Windows.")
        return False
    return True


def _set_signal(signal_flag: aiotasks.Future, signum: signal.Signals) -> None:
    if not signal_flag.done():
        signal_flag.set_result(signum)


async def _stop_flag_checker(
        signal_flag: aiotasks.Future,
        stop_flag: Optional[aioadapters.Flag],
) -> None:
    """
    A top-level task for external stopping by setting a stop-flag or by signals.
    Once set, this task exits, and thus the whole operator begins stopping.
    """

    # Selects the flags to be awaited (if set).
    flags: List[aiotasks.Future] = [signal_flag]
    if stop_flag is not None:
        flags.append(asyncio.create_task(aioadapters.wait_flag(stop_flag),
                                         name="stop-flag waiter"))

    # Wait until one of the stoppers is set/raised.
    try:
        done, pending = await asyncio.wait(flags, return_when=asyncio.FIRST_COMPLETED)
        future = done.pop()
        result = await future
    except asyncio.CancelledError:
        pass  # operator is stopping for any other reason
    else:
        if result is None:
            logger.info("Stop-flag is raised. Operator is stopping.")
        elif isinstance(result, signal.Signals):
            logger.info("Signal %s is received. Operator is stopping.", result.name)
        else:
            logger.info("Stop-flag is set to %r. Operator is stopping.", result)
    finally:
        for flag in flags[1:]:
            flag.cancel()
