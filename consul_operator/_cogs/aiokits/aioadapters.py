"""
The stop- and ready-flags of the embedded operators.

When the operator runs in a thread or a task of a bigger application,
that application signals the stopping and awaits the readiness with
whatever primitive is at hand: asyncio's events or futures, or the threading
ones (if the operator runs in a separate thread with its own event loop).
"""
import asyncio
import concurrent.futures
import threading
from typing import TYPE_CHECKING, Any, Optional, Union

from consul_operator._cogs.aiokits import aiotasks

if TYPE_CHECKING:
    Flag = Union[aiotasks.Future, asyncio.Event, concurrent.futures.Future[Any], threading.Event]
else:
    Flag = Union[aiotasks.Future, asyncio.Event, concurrent.futures.Future, threading.Event]


async def wait_flag(flag: Optional[Flag]) -> Any:
    """ Block until the flag is raised; return its result, if it has any. """
    if flag is None:
        return None
    if isinstance(flag, asyncio.Future):
        return await flag
    if isinstance(flag, asyncio.Event):
        return await flag.wait()

    # The threading primitives block, so they are waited in the executor's threads.
    loop = asyncio.get_running_loop()
    if isinstance(flag, concurrent.futures.Future):
        return await loop.run_in_executor(None, flag.result)
    if isinstance(flag, threading.Event):
        return await loop.run_in_executor(None, flag.wait)
    raise TypeError(f"Unsupported type of a flag: {flag!r}")


async def raise_flag(flag: Optional[Flag]) -> None:
    """ Raise the flag; an already raised one stays as it is. """
    if flag is None:
        return
    if isinstance(flag, (asyncio.Future, concurrent.futures.Future)):
        if not flag.done():
            flag.set_result(None)
    elif isinstance(flag, (asyncio.Event, threading.Event)):
        flag.set()
    else:
        raise TypeError(f"Unsupported type of a flag: {flag!r}")
