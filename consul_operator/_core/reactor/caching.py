"""
The local mirror of the watched objects, keyed by their identity keys.

The cache holds the latest observed body of every known object; the absence
of a key means that the object is deleted (or never existed). It has no notion
of resource versions or ordering: the last write wins, in the order of arrival
from the watch-stream, which is the order in which K8s sends the changes.

There is exactly one writer: the informer's dispatcher. The workers only read.
Everything runs in one event loop, and no method awaits, so no locks are needed.
"""
from typing import Dict, Iterator, Optional

from consul_operator._cogs.structs import bodies, references


class Cache:

    def __init__(self) -> None:
        super().__init__()
        self._items: Dict[references.ObjectKey, bodies.RawBody] = {}

    def __repr__(self) -> str:
        return f'<{self.__class__.__name__}: {len(self._items)} objects>'

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, key: object) -> bool:
        return key in self._items

    def keys(self) -> Iterator[references.ObjectKey]:
        # A copy: the keys are removed while iterating during the re-listings.
        return iter(list(self._items))

    def get(self, key: references.ObjectKey) -> Optional[bodies.RawBody]:
        return self._items.get(key)

    def upsert(self, key: references.ObjectKey, body: bodies.RawBody) -> None:
        self._items[key] = body

    def remove(self, key: references.ObjectKey) -> None:
        self._items.pop(key, None)
