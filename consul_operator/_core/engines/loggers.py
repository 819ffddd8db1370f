"""
Log formatting with the per-object references.

Every message logged via :class:`ObjectLogger` carries a reference to the
object it is about. The text formatters prefix such messages with
``[namespace/name]``; the JSON formatters put the reference into a separate
field (``object`` by default), so that the log parsers can filter by it.
"""
import copy
import enum
import logging
from typing import TYPE_CHECKING, Any, Mapping, MutableMapping, Optional, TextIO, Tuple, \
                   Type, Union

from pythonjsonlogger.core import RESERVED_ATTRS
from pythonjsonlogger.json import JsonFormatter

from consul_operator._cogs.helpers import typedefs
from consul_operator._cogs.structs import bodies, references

logger = logging.getLogger('consul_operator.objects')

# The record's attribute with the object reference (never dumped as is).
REF_ATTR = 'k8s_ref'

# A key for object references in JSON logs, as seen by the log parsers.
DEFAULT_JSON_REFKEY = 'object'

# The lowest level of every severity, as known to the log collectors.
SEVERITIES = [
    (logging.CRITICAL, 'fatal'),
    (logging.ERROR, 'error'),
    (logging.WARNING, 'warn'),
    (logging.INFO, 'info'),
]


class LogFormat(enum.Enum):
    """ Log formats, as specified on CLI. """
    PLAIN = '%(message)s'
    FULL = '[%(asctime)s] %(name)-20.20s [%(levelname)-8.8s] %(message)s'
    JSON = '-json-'  # a marker for the formatter's selection, not a format.


class ObjectFormatter(logging.Formatter):
    """ A base class to recognise the operator's own formatters. """


class ObjectTextFormatter(ObjectFormatter):
    pass


class ObjectJsonFormatter(ObjectFormatter, JsonFormatter):
    """ JSON lines with the severity, the timestamp, and the object reference. """

    def __init__(self, *args: Any, refkey: Optional[str] = None, **kwargs: Any) -> None:
        kwargs['reserved_attrs'] = set(kwargs.get('reserved_attrs', RESERVED_ATTRS)) | {REF_ATTR}
        kwargs.setdefault('timestamp', True)
        super().__init__(*args, **kwargs)
        self.refkey: str = refkey or DEFAULT_JSON_REFKEY

    def add_fields(
            self,
            log_record: MutableMapping[str, object],
            record: logging.LogRecord,
            message_dict: MutableMapping[str, object],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        ref: Optional[Mapping[str, Any]] = getattr(record, REF_ATTR, None)
        if ref is not None:
            log_record[self.refkey] = ref
        log_record.setdefault('severity', get_severity(record.levelno))


class ObjectPrefixingMixin(ObjectFormatter):
    """ Prefix the messages with the object's namespace & name, if it is known. """

    def format(self, record: logging.LogRecord) -> str:
        ref: Optional[Mapping[str, Any]] = getattr(record, REF_ATTR, None)
        if ref is not None:
            record = copy.copy(record)  # other handlers must see the original message.
            record.msg = f"[{get_prefix(ref)}] {record.msg}"
        return super().format(record)


class ObjectPrefixingTextFormatter(ObjectPrefixingMixin, ObjectTextFormatter):
    pass


class ObjectPrefixingJsonFormatter(ObjectPrefixingMixin, ObjectJsonFormatter):
    pass


def get_severity(levelno: int) -> str:
    for threshold, severity in SEVERITIES:
        if levelno >= threshold:
            return severity
    return 'debug'


def get_prefix(ref: Mapping[str, Any]) -> str:
    namespace, name = ref.get('namespace'), ref.get('name') or ''
    return f"{namespace}/{name}" if namespace else name


class ObjectLogger(typedefs.LoggerAdapter):
    """
    A logger/adapter to carry the object identifiers for formatting.

    Constructed for every reconciliation of an individual object. The key is
    always known; the body is only known while the object exists (it is absent
    when the deletion is reconciled), so it only enriches the reference.
    Only the identifying fields are carried, never the body itself.
    """

    def __init__(
            self,
            *,
            key: references.ObjectKey,
            body: Optional[bodies.RawBody] = None,
    ) -> None:
        ref = dict(bodies.build_object_reference(body)) if body is not None else {}
        ref.update(namespace=key.namespace or None, name=key.name)
        super().__init__(logger, {REF_ATTR: ref})

    def process(
            self,
            msg: str,
            kwargs: MutableMapping[str, Any],
    ) -> Tuple[str, MutableMapping[str, Any]]:
        # The stdlib adapter replaces the message's extras; keep both instead.
        kwargs['extra'] = {**(self.extra or {}), **kwargs.get('extra', {})}
        return msg, kwargs


# Our own handlers are replaced on re-configuration, the foreign ones are kept.
if TYPE_CHECKING:
    class _OperatorStreamHandler(logging.StreamHandler[TextIO]):
        pass
else:
    class _OperatorStreamHandler(logging.StreamHandler):
        pass


def configure(
        debug: Optional[bool] = None,
        verbose: Optional[bool] = None,
        quiet: Optional[bool] = None,
        log_format: Union[LogFormat, str] = LogFormat.FULL,
        log_prefix: Optional[bool] = False,
        log_refkey: Optional[str] = None,
) -> None:
    """ Set up the root logger for the operator's process (usually from CLI). """
    handler = _OperatorStreamHandler()
    handler.setFormatter(make_formatter(log_format=log_format, log_prefix=log_prefix,
                                        log_refkey=log_refkey))

    root = logging.getLogger()
    root.handlers[:] = [h for h in root.handlers if not isinstance(h, _OperatorStreamHandler)]
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if debug or verbose else
                  logging.WARNING if quiet else
                  logging.INFO)

    # The event loop's own chatter is only interesting when debugging the operator itself.
    asyncio_logger = logging.getLogger('asyncio')
    asyncio_logger.propagate = bool(debug)
    if not debug:
        asyncio_logger.handlers[:] = [logging.NullHandler()]


def make_formatter(
        log_format: Union[LogFormat, str] = LogFormat.FULL,
        log_prefix: Optional[bool] = False,
        log_refkey: Optional[str] = None,
) -> ObjectFormatter:
    """
    Pick the formatter for the format; the prefixing is guessed if not specified.

    By default, the text logs are prefixed with the objects' names,
    while the JSON logs have the object reference in a separate field.
    """
    is_json = log_format is LogFormat.JSON
    if not is_json and not isinstance(log_format, (LogFormat, str)):
        raise ValueError(f"Unsupported log format: {log_format!r}")

    prefixed = log_prefix if log_prefix is not None else not is_json
    cls: Type[ObjectFormatter]
    if is_json:
        cls = ObjectPrefixingJsonFormatter if prefixed else ObjectJsonFormatter
        return cls(refkey=log_refkey)
    else:
        fmt = log_format.value if isinstance(log_format, LogFormat) else log_format
        cls = ObjectPrefixingTextFormatter if prefixed else ObjectTextFormatter
        return cls(fmt)
