from typing import Any, Dict, Optional

from consul_operator._cogs.clients import api, auth
from consul_operator._cogs.configs import configuration
from consul_operator._cogs.helpers import typedefs
from consul_operator._cogs.structs import bodies, references


async def create_obj(
        *,
        settings: configuration.OperatorSettings,
        context: auth.APIContext,
        resource: references.Resource,
        namespace: references.Namespace = None,
        name: Optional[str] = None,
        body: Optional[bodies.RawBody] = None,
        logger: typedefs.Logger,
) -> Optional[bodies.RawBody]:
    """
    Create an object; raise :class:`errors.APIConflictError` if it exists already.

    The namespace & name from the arguments are only the defaults: those
    in the body's metadata take precedence. The namespace decides the URL
    for the namespaced resources and is ignored for the cluster-scoped ones.
    """
    body = body if body is not None else {}
    metadata: Dict[str, Any] = body.setdefault('metadata', {})
    if namespace is not None:
        metadata.setdefault('namespace', namespace)
    if name is not None:
        metadata.setdefault('name', name)

    target_namespace: references.Namespace = metadata.get('namespace') if resource.namespaced else None
    created: bodies.RawBody = await api.post(
        url=resource.get_url(namespace=target_namespace),
        payload=body,
        settings=settings,
        context=context,
        logger=logger,
    )
    return created
