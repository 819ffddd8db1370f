"""
One-time registration of the served resource's schema (the CRD).

The registration is idempotent: if the definition already exists, it is not
modified, and the registration is considered successful. After that,
the operator waits until the definition is "established", i.e. served by
the API, since the watching would fail with "404 Not Found" otherwise.

Both steps happen before any watching begins, and any failure here is fatal
for the operator: there is no point in running without the served resource.
"""
import asyncio
import logging
from typing import Any, Dict, Optional

from consul_operator._cogs.clients import auth, creating, errors, fetching
from consul_operator._cogs.configs import configuration
from consul_operator._cogs.helpers import typedefs
from consul_operator._cogs.structs import references

logger = logging.getLogger(__name__)


class BootstrapError(Exception):
    """ Raised when the resource's schema cannot be registered or confirmed. """


class BootstrapTimeoutError(BootstrapError):
    """ Raised when the registered schema is not established in time. """


def build_definition(resource: references.Resource) -> Dict[str, Any]:
    """
    Build a CustomResourceDefinition for the resource with a size-only spec.
    """
    return {
        'apiVersion': references.CRDS.api_version,
        'kind': references.CRDS.kind,
        'metadata': {'name': resource.name},
        'spec': {
            'group': resource.group,
            'scope': 'Namespaced' if resource.namespaced else 'Cluster',
            'names': {
                'plural': resource.plural,
                'singular': resource.singular or (resource.kind or '').lower(),
                'kind': resource.kind,
                'listKind': f'{resource.kind}List',
            },
            'versions': [{
                'name': resource.version,
                'served': True,
                'storage': True,
                'schema': {'openAPIV3Schema': {
                    'type': 'object',
                    'properties': {
                        'spec': {
                            'type': 'object',
                            'properties': {
                                'size': {'type': 'integer', 'minimum': 0},
                            },
                        },
                        'status': {
                            'type': 'object',
                            'x-kubernetes-preserve-unknown-fields': True,
                        },
                    },
                }},
            }],
        },
    }


async def register_schema(
        *,
        settings: configuration.OperatorSettings,
        context: auth.APIContext,
        resource: references.Resource,
        logger: typedefs.Logger = logger,
) -> None:
    """
    Create the resource's definition; an already existing one is a success.
    """
    try:
        await creating.create_obj(
            settings=settings,
            context=context,
            resource=references.CRDS,
            body=build_definition(resource),
            logger=logger,
        )
    except errors.APIConflictError:
        logger.debug(f"The definition {resource.name!r} is already registered.")
    else:
        logger.info(f"The definition {resource.name!r} is registered.")


async def wait_until_ready(
        *,
        settings: configuration.OperatorSettings,
        context: auth.APIContext,
        resource: references.Resource,
        poll_interval: Optional[float] = None,
        timeout: Optional[float] = None,
        logger: typedefs.Logger = logger,
) -> None:
    """
    Poll the resource's definition until it is established, or fail on timeout.

    A rejected name (e.g. taken by another definition) is only reported,
    since it can be resolved externally while we are waiting.
    API errors are not retried here beyond the usual request retries.
    """
    poll_interval = poll_interval if poll_interval is not None else settings.bootstrap.poll_interval
    timeout = timeout if timeout is not None else settings.bootstrap.timeout
    try:
        await asyncio.wait_for(
            _poll_until_established(
                settings=settings,
                context=context,
                resource=resource,
                poll_interval=poll_interval,
                logger=logger,
            ),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        raise BootstrapTimeoutError(f"The definition {resource.name!r} is not established "
                                    f"in {timeout} seconds.") from None
    logger.debug(f"The definition {resource.name!r} is established.")


async def _poll_until_established(
        *,
        settings: configuration.OperatorSettings,
        context: auth.APIContext,
        resource: references.Resource,
        poll_interval: float,
        logger: typedefs.Logger,
) -> None:
    while True:
        crd = await fetching.read_obj(
            settings=settings,
            context=context,
            resource=references.CRDS,
            namespace=None,
            name=resource.name,
            logger=logger,
        )
        for condition in crd.get('status', {}).get('conditions', []):
            if condition.get('type') == 'Established' and condition.get('status') == 'True':
                return
            if condition.get('type') == 'NamesAccepted' and condition.get('status') == 'False':
                logger.warning(f"Name conflict for {resource.name!r}: {condition.get('reason')}")
        await asyncio.sleep(poll_interval)


async def bootstrap(
        *,
        settings: configuration.OperatorSettings,
        context: auth.APIContext,
        resource: references.Resource,
) -> None:
    """ Register the schema and wait for it, unless disabled in the settings. """
    if not settings.bootstrap.enabled:
        logger.debug(f"Skipping the registration of {resource.name!r} as configured.")
        return
    await register_schema(settings=settings, context=context, resource=resource)
    await wait_until_ready(settings=settings, context=context, resource=resource)
