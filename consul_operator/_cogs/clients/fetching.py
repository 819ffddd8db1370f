from typing import Any, List, Mapping, Optional, Tuple

from consul_operator._cogs.clients import api, auth
from consul_operator._cogs.configs import configuration
from consul_operator._cogs.helpers import typedefs
from consul_operator._cogs.structs import bodies, references


async def list_objs(
        *,
        settings: configuration.OperatorSettings,
        context: auth.APIContext,
        resource: references.Resource,
        namespace: references.Namespace,
        logger: typedefs.Logger,
) -> Tuple[List[bodies.RawBody], Optional[str]]:
    """
    List all objects of the resource in the namespace (or cluster-wide for ``None``).

    Besides the objects, the list's resource version is returned: the watching
    continues from exactly this point, so that no change is missed in between.
    """
    rsp = await api.get(
        url=resource.get_url(namespace=namespace),
        settings=settings,
        context=context,
        logger=logger,
    )
    metadata: Mapping[str, Any] = rsp.get('metadata') or {}
    return [_restore_type(rsp, item) for item in rsp.get('items') or []], \
        metadata.get('resourceVersion')


def _restore_type(rsp: Mapping[str, Any], item: bodies.RawBody) -> bodies.RawBody:
    # The list's items have no own kind & apiVersion; take them from the list itself.
    list_kind: Optional[str] = rsp.get('kind')
    if list_kind is not None:
        item.setdefault('kind', list_kind[:-len('List')] if list_kind.endswith('List') else list_kind)
    if rsp.get('apiVersion') is not None:
        item.setdefault('apiVersion', rsp['apiVersion'])
    return item


async def read_obj(
        *,
        settings: configuration.OperatorSettings,
        context: auth.APIContext,
        resource: references.Resource,
        namespace: references.Namespace,
        name: str,
        logger: typedefs.Logger,
) -> bodies.RawBody:
    """
    Read one object by its name; raise :class:`errors.APINotFoundError` if absent.
    """
    body: bodies.RawBody = await api.get(
        url=resource.get_url(namespace=namespace, name=name),
        settings=settings,
        context=context,
        logger=logger,
    )
    return body
