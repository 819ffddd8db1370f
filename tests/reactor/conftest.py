import pytest

from consul_operator._core.reactor.caching import Cache
from consul_operator._core.reactor.informing import Informer
from consul_operator._core.reactor.queueing import ChangeQueue, make_rate_limiter


@pytest.fixture()
def cache():
    return Cache()


@pytest.fixture()
async def queue(settings):
    queue = ChangeQueue(rate_limiter=make_rate_limiter(settings))
    yield queue
    queue.shutdown()


@pytest.fixture()
async def informer(settings, resource, namespace, cache, queue):
    # The API context is never used unless the streamer is started.
    return Informer(settings=settings, context=None, resource=resource, namespace=namespace,
                    cache=cache, queue=queue)
