import logging

import pytest

from consul_operator._core.engines.loggers import LogFormat, ObjectFormatter, \
                                                  ObjectJsonFormatter, \
                                                  ObjectPrefixingJsonFormatter, \
                                                  ObjectPrefixingTextFormatter, \
                                                  ObjectTextFormatter, configure, make_formatter


@pytest.fixture(autouse=True)
def _clear_own_handlers():
    logger = logging.getLogger()
    asyncio_logger = logging.getLogger('asyncio')
    original_handlers = logger.handlers[:]
    original_level = logger.level
    asyncio_state = asyncio_logger.handlers[:], asyncio_logger.propagate
    yield
    logger.handlers[:] = original_handlers
    logger.setLevel(original_level)
    asyncio_logger.handlers[:], asyncio_logger.propagate = asyncio_state


def _get_own_formatters():
    return [
        handler.formatter for handler in logging.getLogger().handlers
        if isinstance(handler.formatter, ObjectFormatter)
    ]


def test_own_formatter_is_used():
    configure()
    assert len(_get_own_formatters()) == 1


def test_repeated_configuration_replaces_the_handler():
    configure()
    configure()
    configure(log_format=LogFormat.JSON)
    formatters = _get_own_formatters()
    assert len(formatters) == 1
    assert isinstance(formatters[0], ObjectJsonFormatter)


def test_foreign_handlers_are_kept():
    foreign = logging.NullHandler()
    logging.getLogger().addHandler(foreign)
    configure()
    assert foreign in logging.getLogger().handlers


@pytest.mark.parametrize('log_format, log_prefix, expected', [
    (LogFormat.FULL, False, ObjectTextFormatter),
    (LogFormat.PLAIN, False, ObjectTextFormatter),
    ('%(message)s', False, ObjectTextFormatter),
    (LogFormat.FULL, True, ObjectPrefixingTextFormatter),
    (LogFormat.PLAIN, True, ObjectPrefixingTextFormatter),
    ('%(message)s', True, ObjectPrefixingTextFormatter),
    (LogFormat.JSON, False, ObjectJsonFormatter),
    (LogFormat.JSON, True, ObjectPrefixingJsonFormatter),
])
def test_formatter_types(log_format, log_prefix, expected):
    configure(log_format=log_format, log_prefix=log_prefix)
    formatters = _get_own_formatters()
    assert len(formatters) == 1
    assert type(formatters[0]) is expected


@pytest.mark.parametrize('log_format, expected', [
    (LogFormat.FULL, ObjectPrefixingTextFormatter),
    (LogFormat.PLAIN, ObjectPrefixingTextFormatter),
    (LogFormat.JSON, ObjectJsonFormatter),
])
def test_prefixing_is_guessed_from_the_format(log_format, expected):
    formatter = make_formatter(log_format=log_format, log_prefix=None)
    assert type(formatter) is expected


def test_unsupported_format_fails():
    with pytest.raises(ValueError, match=r"Unsupported log format"):
        make_formatter(log_format=123)


@pytest.mark.parametrize('options, expected', [
    (dict(), logging.INFO),
    (dict(quiet=True), logging.WARNING),
    (dict(verbose=True), logging.DEBUG),
    (dict(debug=True), logging.DEBUG),
])
def test_levels(options, expected):
    configure(**options)
    assert logging.getLogger().level == expected


def test_asyncio_is_silenced_unless_debugging():
    configure()
    assert logging.getLogger('asyncio').propagate is False


def test_asyncio_is_propagated_when_debugging():
    configure(debug=True)
    assert logging.getLogger('asyncio').propagate is True
