"""
The watch-events as seen by the reactor, after the raw stream is resolved.

The raw watch-stream carries loosely typed dicts (``type`` + ``object``).
They are resolved into one of these classes exactly once, at the boundary
between the stream and the local cache; nothing downstream inspects
the raw event types or guesses the payloads.

A deletion can come either from the stream itself (with the last known body)
or from a re-listing where the object is simply absent: a "tombstone",
whose final state is unknown (``body`` is ``None``). In both cases,
the key alone is sufficient to reconcile the deletion.
"""
from typing import NamedTuple, Optional, Union

from consul_operator._cogs.structs import bodies, references


class Added(NamedTuple):
    key: references.ObjectKey
    body: bodies.RawBody


class Updated(NamedTuple):
    key: references.ObjectKey
    old: bodies.RawBody
    new: bodies.RawBody


class Deleted(NamedTuple):
    key: references.ObjectKey
    body: Optional[bodies.RawBody]  # None for tombstones.

    @property
    def tombstone(self) -> bool:
        return self.body is None


Event = Union[Added, Updated, Deleted]
