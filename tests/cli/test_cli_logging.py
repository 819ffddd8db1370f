import logging

import pytest


def _emit_all_levels():
    root = logging.getLogger()
    for level in [logging.DEBUG, logging.INFO, logging.WARNING, logging.ERROR]:
        root.log(level, f'message at {logging.getLevelName(level).lower()}')


@pytest.mark.parametrize('options, envvars, expected_levels', [
    pytest.param([], {}, ['info', 'warning', 'error'], id='default'),
    pytest.param(['-q'], {}, ['warning', 'error'], id='opt-q'),
    pytest.param(['--quiet'], {}, ['warning', 'error'], id='opt-quiet'),
    pytest.param([], {'CONSUL_OPERATOR_RUN_QUIET': 'true'}, ['warning', 'error'], id='env-quiet'),
    pytest.param(['-v'], {}, ['debug', 'info', 'warning', 'error'], id='opt-v'),
    pytest.param(['--verbose'], {}, ['debug', 'info', 'warning', 'error'], id='opt-verbose'),
    pytest.param([], {'CONSUL_OPERATOR_RUN_VERBOSE': 'true'},
                 ['debug', 'info', 'warning', 'error'], id='env-verbose'),
    pytest.param(['-d'], {}, ['debug', 'info', 'warning', 'error'], id='opt-d'),
    pytest.param(['--debug'], {}, ['debug', 'info', 'warning', 'error'], id='opt-debug'),
    pytest.param([], {'CONSUL_OPERATOR_RUN_DEBUG': 'true'},
                 ['debug', 'info', 'warning', 'error'], id='env-debug'),
])
def test_verbosity_levels(invoke, caplog, real_run, options, envvars, expected_levels):
    result = invoke(['run'] + options, env=envvars)
    assert result.exit_code == 0

    caplog.clear()
    _emit_all_levels()
    assert caplog.messages == [f'message at {level}' for level in expected_levels]


@pytest.mark.parametrize('options', [[], ['-q'], ['--quiet'], ['-v'], ['--verbose']])
def test_event_loop_logs_are_muted_unless_debugging(invoke, caplog, real_run, options):
    result = invoke(['run'] + options)
    assert result.exit_code == 0

    caplog.clear()
    logging.getLogger('asyncio').error('boom!')
    assert caplog.messages == []


@pytest.mark.parametrize('options', [['-d'], ['--debug']])
def test_event_loop_logs_are_shown_when_debugging(invoke, caplog, real_run, options):
    result = invoke(['run'] + options)
    assert result.exit_code == 0

    caplog.clear()
    logging.getLogger('asyncio').debug('hello!')
    assert caplog.messages == ['hello!']


@pytest.mark.parametrize('value', ['plain', 'full', 'json'])
def test_log_formats_are_accepted(invoke, real_run, value):
    result = invoke(['run', '--log-format', value])
    assert result.exit_code == 0


def test_unknown_log_format_is_rejected(invoke, real_run):
    result = invoke(['run', '--log-format', 'xml'])
    assert result.exit_code == 2
    assert not real_run.called
