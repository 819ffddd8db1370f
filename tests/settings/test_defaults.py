from consul_operator._cogs.configs.configuration import OperatorSettings


async def test_declared_public_interface_and_promised_defaults():
    settings = OperatorSettings()
    assert settings.process.graceful_timeout == 30
    assert settings.networking.request_timeout == 300
    assert settings.networking.connect_timeout is None
    assert settings.networking.error_backoffs == (1, 1, 2, 3, 5, 8, 13)
    assert settings.watching.reconnect_backoff == 0.1
    assert settings.watching.server_timeout is None
    assert settings.watching.client_timeout is None
    assert settings.watching.connect_timeout is None
    assert settings.watching.backlog_limit == 1000
    assert settings.watching.sync_timeout == 60
    assert settings.queueing.worker_count == 1
    assert settings.retrying.max_retries == 5
    assert settings.retrying.base_delay == 0.005
    assert settings.retrying.max_delay == 1000
    assert settings.retrying.qps == 10
    assert settings.retrying.burst == 100
    assert settings.bootstrap.enabled == True
    assert settings.bootstrap.poll_interval == 0.5
    assert settings.bootstrap.timeout == 60


def test_settings_are_not_shared():
    settings1 = OperatorSettings()
    settings2 = OperatorSettings()
    settings1.queueing.worker_count = 10
    assert settings2.queueing.worker_count == 1
