"""
Type aliases for the classes that are generic only for the type-checkers.

E.g. `logging.LoggerAdapter` is subscriptable in the type-sheds, but not at runtime.
"""
import logging
from typing import TYPE_CHECKING, Any, Union

if TYPE_CHECKING:
    LoggerAdapter = logging.LoggerAdapter[Any]
else:
    LoggerAdapter = logging.LoggerAdapter

# Anything the operator can log into: a plain logger, or a per-object adapter.
Logger = Union[logging.Logger, LoggerAdapter]
