from typing import Optional

from consul_operator._cogs.clients import api, auth
from consul_operator._cogs.configs import configuration
from consul_operator._cogs.helpers import typedefs
from consul_operator._cogs.structs import references


async def delete_obj(
        *,
        settings: configuration.OperatorSettings,
        context: auth.APIContext,
        resource: references.Resource,
        namespace: references.Namespace,
        name: str,
        propagation: Optional[str] = 'Background',
        logger: typedefs.Logger,
) -> None:
    """
    Delete a resource by its name.

    Raises :class:`errors.APINotFoundError` if the object is already absent;
    it is up to the callers to decide if this is a success or not.
    """
    payload = None
    if propagation is not None:
        payload = {'apiVersion': 'v1', 'kind': 'DeleteOptions', 'propagationPolicy': propagation}
    await api.delete(
        url=resource.get_url(namespace=namespace, name=name),
        payload=payload,
        logger=logger,
        settings=settings,
        context=context,
    )
