import asyncio

import pytest

from consul_operator._cogs.configs.configuration import OperatorSettings
from consul_operator.cli import CLIControls


def test_defaults(invoke, real_run):
    result = invoke(['run'])
    assert result.exit_code == 0
    assert real_run.called

    kwargs = real_run.call_args.kwargs
    assert kwargs['kubeconfig'] is None
    assert kwargs['namespace'] is None
    assert kwargs['context'] is None
    assert kwargs['actuator'] is None
    assert kwargs['stop_flag'] is None
    assert kwargs['ready_flag'] is None

    settings = kwargs['settings']
    assert settings.queueing.worker_count == 1
    assert settings.watching.sync_timeout == 60
    assert settings.bootstrap.enabled is True


@pytest.mark.parametrize('options, envvars', [
    (['-n', 'ns1'], {}),
    (['--namespace', 'ns1'], {}),
    ([], {'CONSUL_OPERATOR_RUN_NAMESPACE': 'ns1'}),
], ids=['short', 'long', 'env'])
def test_namespace(invoke, real_run, options, envvars):
    result = invoke(['run'] + options, env=envvars)
    assert result.exit_code == 0
    assert real_run.call_args.kwargs['namespace'] == 'ns1'


def test_kubeconfig(invoke, real_run, tmp_path):
    path = tmp_path / 'config'
    result = invoke(['run', '--kubeconfig', str(path)])
    assert result.exit_code == 0
    assert real_run.call_args.kwargs['kubeconfig'] == str(path)


@pytest.mark.parametrize('options, envvars', [
    (['-w', '5'], {}),
    (['--workers', '5'], {}),
    ([], {'CONSUL_OPERATOR_RUN_WORKERS': '5'}),
], ids=['short', 'long', 'env'])
def test_workers(invoke, real_run, options, envvars):
    result = invoke(['run'] + options, env=envvars)
    assert result.exit_code == 0
    assert real_run.call_args.kwargs['settings'].queueing.worker_count == 5


@pytest.mark.parametrize('value', ['0', '-1', 'abc'])
def test_workers_are_validated(invoke, real_run, value):
    result = invoke(['run', '--workers', value])
    assert result.exit_code == 2
    assert not real_run.called


def test_sync_timeout(invoke, real_run):
    result = invoke(['run', '--sync-timeout', '1.5'])
    assert result.exit_code == 0
    assert real_run.call_args.kwargs['settings'].watching.sync_timeout == 1.5


@pytest.mark.parametrize('options, envvars', [
    (['--skip-registration'], {}),
    ([], {'CONSUL_OPERATOR_RUN_SKIP_REGISTRATION': 'true'}),
], ids=['opt', 'env'])
def test_skip_registration(invoke, real_run, options, envvars):
    result = invoke(['run'] + options, env=envvars)
    assert result.exit_code == 0
    assert real_run.call_args.kwargs['settings'].bootstrap.enabled is False


def test_controls_are_passed_through(invoke, real_run):
    settings = OperatorSettings()
    stop_flag = asyncio.Event()
    ready_flag = asyncio.Event()
    actuator = object()
    controls = CLIControls(settings=settings, stop_flag=stop_flag, ready_flag=ready_flag,
                           actuator=actuator)

    result = invoke(['run', '-w', '3'], obj=controls)
    assert result.exit_code == 0

    kwargs = real_run.call_args.kwargs
    assert kwargs['settings'] is settings
    assert kwargs['stop_flag'] is stop_flag
    assert kwargs['ready_flag'] is ready_flag
    assert kwargs['actuator'] is actuator
    assert settings.queueing.worker_count == 3


def test_fatal_errors_are_exit_codes(invoke, real_run):
    real_run.side_effect = RuntimeError("boom")
    result = invoke(['run'])
    assert result.exit_code == 1
    assert isinstance(result.exception, RuntimeError)
