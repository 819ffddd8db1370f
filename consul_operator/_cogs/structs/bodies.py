"""
The shapes of the objects as they come from the API (JSON-decoded).

Only the fields used by the operator are declared. The real objects have
more fields, which are passed through untouched.

"Raw" means unprocessed: an "input" is a line of the watch-stream as it is,
including the error lines; an "event" is an input that is known to carry
an object. The listed objects are streamed as events of type ``None``.
"""
from typing import Any, Mapping, MutableMapping, Optional, Union, cast

from typing_extensions import Literal, TypedDict

from consul_operator._cogs.structs import references


class RawMeta(TypedDict, total=False):
    namespace: str
    name: str
    uid: str
    resourceVersion: str
    labels: Mapping[str, str]
    annotations: Mapping[str, str]


class RawBody(TypedDict, total=False):
    apiVersion: str
    kind: str
    metadata: RawMeta
    spec: Mapping[str, Any]
    status: Mapping[str, Any]


# The object of an ERROR line in the watch-stream: a Status of the API.
class RawError(TypedDict, total=False):
    kind: str
    code: int
    reason: str
    message: str


class RawInput(TypedDict):
    type: Literal[None, 'ADDED', 'MODIFIED', 'DELETED', 'ERROR']
    object: Union[RawBody, RawError]


class RawEvent(TypedDict):
    type: Literal[None, 'ADDED', 'MODIFIED', 'DELETED']
    object: RawBody


# See https://kubernetes.io/docs/concepts/overview/working-with-objects/owners-dependents/
class OwnerReference(TypedDict, total=False):
    apiVersion: str
    kind: str
    name: str
    uid: str
    controller: bool
    blockOwnerDeletion: bool


def get_key(body: RawBody) -> references.ObjectKey:
    """
    Extract the identity key of an object, or fail if it cannot be identified.

    Cluster-scoped objects (no namespace) get an empty-string namespace,
    so that the keys remain comparable and sortable.
    """
    metadata = body.get('metadata') if isinstance(body, Mapping) else None
    if not isinstance(metadata, Mapping):
        raise ValueError(f"The object has no metadata, so it cannot be identified: {body!r}")
    name = metadata.get('name')
    namespace = metadata.get('namespace') or ''
    if not name or not isinstance(name, str):
        raise ValueError(f"The object has no name, so it cannot be identified: {body!r}")
    if not isinstance(namespace, str):
        raise ValueError(f"The object's namespace is not a string: {body!r}")
    return references.ObjectKey(namespace=namespace, name=name)


def get_version(body: Optional[RawBody]) -> Optional[str]:
    metadata = body.get('metadata') if isinstance(body, Mapping) else None
    return metadata.get('resourceVersion') if isinstance(metadata, Mapping) else None


def get_size(body: RawBody) -> int:
    """ The declared size of a cluster; absent or malformed means zero. """
    spec = body.get('spec')
    size = spec.get('size', 0) if isinstance(spec, Mapping) else 0
    return size if isinstance(size, int) and not isinstance(size, bool) else 0


def build_owner_reference(
        body: RawBody,
) -> OwnerReference:
    """
    Link a child object to its parent, for the cascaded deletion of the children.

    The fields that the parent does not have (e.g. ``uid`` in the tests) are omitted.
    """
    metadata = body.get('metadata') or {}
    ref = OwnerReference(controller=True, blockOwnerDeletion=True)
    for field, value in [
        ('apiVersion', body.get('apiVersion')),
        ('kind', body.get('kind')),
        ('name', metadata.get('name')),
        ('uid', metadata.get('uid')),
    ]:
        if value:
            cast(MutableMapping[str, Any], ref)[field] = value
    return ref


def build_object_reference(
        body: RawBody,
) -> Mapping[str, Optional[str]]:
    """ A minimal reference for logging: it must not hold the body itself. """
    metadata = body.get('metadata') or {}
    return dict(
        apiVersion=body.get('apiVersion'),
        kind=body.get('kind'),
        name=metadata.get('name'),
        uid=metadata.get('uid'),
        namespace=metadata.get('namespace'),
    )
