"""
Actuators drive the actual state of the managed system.

An actuator is told only the desired end state of one object: present
(with its latest body) or absent (by its key alone). It never knows which
watch-events led there, so every call must be idempotent: repeating it with
the same input must converge to the same state, and the already reached
state must be a success, not an error.

The failures are raised to the caller (the reconciler), which leaves
the retrying to the change queue.
"""
import logging
from typing import Any, Dict

from typing_extensions import Protocol

from consul_operator._cogs.clients import auth, creating, deleting, errors, fetching
from consul_operator._cogs.configs import configuration
from consul_operator._cogs.helpers import typedefs
from consul_operator._cogs.structs import bodies, references

logger = logging.getLogger(__name__)

# The ports of a Consul agent, as exposed via the headless service.
CONSUL_PORTS = (
    ('server-rpc', 8300),
    ('serf-lan', 8301),
    ('serf-wan', 8302),
    ('http-api', 8500),
    ('dns-api', 8600),
)
SELECTOR_LABEL = 'consul-cluster'
TOLERATE_UNREADY_ANNOTATION = 'service.alpha.kubernetes.io/tolerate-unready-endpoints'


class Actuator(Protocol):
    async def ensure_present(
            self,
            key: references.ObjectKey,
            body: bodies.RawBody,
            *,
            logger: typedefs.Logger,
    ) -> None: ...

    async def ensure_absent(
            self,
            key: references.ObjectKey,
            *,
            logger: typedefs.Logger,
    ) -> None: ...


def build_service(body: bodies.RawBody) -> Dict[str, Any]:
    """
    Build a headless service for the Consul cluster's peers to find each other.

    The unready endpoints are published too, since the agents need
    to discover each other before any of them can become ready.
    """
    key = bodies.get_key(body)
    return {
        'apiVersion': 'v1',
        'kind': 'Service',
        'metadata': {
            'name': key.name,
            'namespace': key.namespace,
            'ownerReferences': [bodies.build_owner_reference(body)],
            'annotations': {TOLERATE_UNREADY_ANNOTATION: 'true'},
        },
        'spec': {
            'ports': [{'name': name, 'port': port} for name, port in CONSUL_PORTS],
            'selector': {SELECTOR_LABEL: key.name},
            'clusterIP': 'None',
        },
    }


class ServicesActuator:
    """
    Keeps one headless service per Consul cluster, with the same name.

    The existing services are not updated: nothing in them depends on the resource's ``spec``.
    The services are also garbage-collected by K8s via the owner references,
    but are deleted explicitly to converge without the garbage collector.
    """

    def __init__(
            self,
            *,
            settings: configuration.OperatorSettings,
            context: auth.APIContext,
    ) -> None:
        super().__init__()
        self.settings = settings
        self.context = context

    async def ensure_present(
            self,
            key: references.ObjectKey,
            body: bodies.RawBody,
            *,
            logger: typedefs.Logger = logger,
    ) -> None:
        logger.debug(f"Ensuring the service for a cluster of size {bodies.get_size(body)}.")
        namespace = references.NamespaceName(key.namespace)
        try:
            await fetching.read_obj(
                settings=self.settings,
                context=self.context,
                resource=references.SERVICES,
                namespace=namespace,
                name=key.name,
                logger=logger,
            )
        except errors.APINotFoundError:
            pass
        else:
            logger.debug(f"The service already exists, nothing to do.")
            return

        try:
            await creating.create_obj(
                settings=self.settings,
                context=self.context,
                resource=references.SERVICES,
                namespace=namespace,
                body=build_service(body),
                logger=logger,
            )
        except errors.APIConflictError:
            logger.debug(f"The service is created by someone else meanwhile.")
        else:
            logger.info(f"The service is created.")

    async def ensure_absent(
            self,
            key: references.ObjectKey,
            *,
            logger: typedefs.Logger = logger,
    ) -> None:
        try:
            await deleting.delete_obj(
                settings=self.settings,
                context=self.context,
                resource=references.SERVICES,
                namespace=references.NamespaceName(key.namespace),
                name=key.name,
                logger=logger,
            )
        except errors.APINotFoundError:
            logger.debug(f"The service is already absent, nothing to do.")
        else:
            logger.info(f"The service is deleted.")
