import pytest

from consul_operator._cogs.structs.references import ObjectKey
from consul_operator._core.engines.loggers import ObjectLogger
from consul_operator._core.reactor.reconciling import reconcile

KEY1 = ObjectKey('ns', 'name1')
BODY1 = {'metadata': {'namespace': 'ns', 'name': 'name1'}, 'spec': {'size': 3}}


async def test_cached_object_is_ensured_present(cache, actuator):
    cache.upsert(KEY1, BODY1)
    await reconcile(KEY1, cache=cache, actuator=actuator)
    assert actuator.calls == [('present', KEY1, BODY1)]


async def test_missing_object_is_ensured_absent(cache, actuator):
    await reconcile(KEY1, cache=cache, actuator=actuator)
    assert actuator.calls == [('absent', KEY1, None)]


async def test_latest_cached_state_is_used(cache, actuator):
    cache.upsert(KEY1, BODY1)
    cache.upsert(KEY1, dict(BODY1, spec={'size': 5}))
    await reconcile(KEY1, cache=cache, actuator=actuator)
    assert actuator.calls == [('present', KEY1, dict(BODY1, spec={'size': 5}))]


async def test_actuator_errors_are_propagated(cache, actuator):
    actuator.failures = [RuntimeError('boom')]
    with pytest.raises(RuntimeError, match='boom'):
        await reconcile(KEY1, cache=cache, actuator=actuator)


async def test_actuator_gets_a_per_object_logger(cache, mocker):
    actuator = mocker.Mock()
    actuator.ensure_present = mocker.AsyncMock()
    cache.upsert(KEY1, BODY1)
    await reconcile(KEY1, cache=cache, actuator=actuator)

    assert actuator.ensure_present.await_count == 1
    logger = actuator.ensure_present.await_args.kwargs['logger']
    assert isinstance(logger, ObjectLogger)
    assert logger.extra['k8s_ref']['name'] == 'name1'
