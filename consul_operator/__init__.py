"""
The public interface of the operator for the embedding code.
"""
# isort: skip_file

# Everywhere else, the modules are imported and the names are referred via them.
# Here, the individual names are re-exported, so that the internal layout can change.

from consul_operator._cogs.configs.configuration import (
    OperatorSettings,
    ProcessSettings,
    NetworkingSettings,
    WatchingSettings,
    QueueingSettings,
    RetryingSettings,
    BootstrapSettings,
)
from consul_operator._cogs.clients.auth import (
    APIContext,
)
from consul_operator._cogs.clients.errors import (
    APIError,
    APIClientError,
    APIServerError,
    APIUnauthorizedError,
    APIForbiddenError,
    APINotFoundError,
    APIConflictError,
)
from consul_operator._cogs.clients.watching import (
    WatchingError,
)
from consul_operator._cogs.helpers.typedefs import (
    Logger,
)
from consul_operator._cogs.helpers.versions import (
    version as __version__,
)
from consul_operator._cogs.structs.bodies import (
    RawBody,
    RawEvent,
    OwnerReference,
    build_owner_reference,
    build_object_reference,
)
from consul_operator._cogs.structs.credentials import (
    LoginError,
    ConnectionInfo,
)
from consul_operator._cogs.structs.events import (
    Added,
    Updated,
    Deleted,
    Event,
)
from consul_operator._cogs.structs.references import (
    ObjectKey,
    Resource,
    CONSULS,
    SERVICES,
)
from consul_operator._core.engines.actuating import (
    Actuator,
    ServicesActuator,
)
from consul_operator._core.engines.bootstrapping import (
    BootstrapError,
    BootstrapTimeoutError,
    register_schema,
    wait_until_ready,
)
from consul_operator._core.engines.loggers import (
    LogFormat,
    configure as configure_logging,
)
from consul_operator._core.reactor.caching import (
    Cache,
)
from consul_operator._core.reactor.informing import (
    CacheSyncError,
    Informer,
)
from consul_operator._core.reactor.queueing import (
    ChangeQueue,
)
from consul_operator._core.reactor.running import (
    run,
    operator,
)

__all__ = [
    'OperatorSettings',
    'ProcessSettings',
    'NetworkingSettings',
    'WatchingSettings',
    'QueueingSettings',
    'RetryingSettings',
    'BootstrapSettings',
    'APIContext',
    'APIError',
    'APIClientError',
    'APIServerError',
    'APIUnauthorizedError',
    'APIForbiddenError',
    'APINotFoundError',
    'APIConflictError',
    'WatchingError',
    'Logger',
    'RawBody',
    'RawEvent',
    'OwnerReference',
    'build_owner_reference',
    'build_object_reference',
    'LoginError',
    'ConnectionInfo',
    'Added',
    'Updated',
    'Deleted',
    'Event',
    'ObjectKey',
    'Resource',
    'CONSULS',
    'SERVICES',
    'Actuator',
    'ServicesActuator',
    'BootstrapError',
    'BootstrapTimeoutError',
    'register_schema',
    'wait_until_ready',
    'LogFormat',
    'configure_logging',
    'Cache',
    'CacheSyncError',
    'Informer',
    'ChangeQueue',
    'run',
    'operator',
]
