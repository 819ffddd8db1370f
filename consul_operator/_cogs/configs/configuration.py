"""
The settings of the operator, with the defaults for production use.

The settings are grouped by the concern they tune. The CLI maps its options
onto them; the embedding code can construct and adjust `OperatorSettings`
directly before passing it to `run()`.
"""
import dataclasses
from typing import Iterable, Optional, Union


@dataclasses.dataclass
class ProcessSettings:
    """
    Settings for the operator's OS process and its graceful termination.
    """

    graceful_timeout: Optional[float] = 30
    """
    How long to wait for the workers to finish their in-flight reconciliation
    when the operator is stopping (on SIGTERM/SIGINT or a stop-flag).

    No new keys are picked up once the stopping begins. After this timeout,
    the remaining workers are cancelled.
    Measured in seconds. Set to `None` to wait for as long as needed.
    """


@dataclasses.dataclass
class NetworkingSettings:

    request_timeout: Optional[float] = 5 * 60  # == aiohttp.client.DEFAULT_TIMEOUT
    """
    A timeout for the API requests, in seconds; ``None`` to wait forever.
    Applies to the total duration of one request (with no retries).
    """

    connect_timeout: Optional[float] = None
    """
    A timeout for establishing a TCP/TLS connection to the API, in seconds.
    If ``None``, the ``request_timeout`` covers it.
    """

    error_backoffs: Union[float, Iterable[float]] = (1, 1, 2, 3, 5, 8, 13)
    """
    Backoff intervals in case of connection errors or server errors (5xx).

    Every request is retried after these delays, one after another;
    when the delays are exhausted, the error is escalated to the caller.
    To disable the retries, set it to ``[]`` or ``()``.
    """


@dataclasses.dataclass
class WatchingSettings:
    """
    Settings for the listing and watching of the served resource.
    """

    server_timeout: Optional[float] = None
    """
    How long the server keeps one watch-request open, in seconds
    (passed to the API as ``timeoutSeconds``).
    ``None`` leaves it to the server, which picks a random duration.
    """

    client_timeout: Optional[float] = None
    """ The total client-side timeout of one watch-request; ``None`` for none. """

    connect_timeout: Optional[float] = None
    """
    The connection timeout of the watch-requests. If ``None``, the timeouts
    of the regular requests are used (see `NetworkingSettings`).
    """

    reconnect_backoff: float = 0.1
    """ A pause between the watch-requests, so that the API is not flooded. """

    backlog_limit: int = 1000
    """
    How many raw watch-events can be buffered between the watch-stream
    and the local cache. When full, the watch-stream is not read further
    until the cache catches up (the connection's own buffers then apply).
    """

    sync_timeout: Optional[float] = 60
    """
    How long to wait for the initial listing to be fully applied to the cache
    before failing the startup. ``None`` waits forever.

    No worker starts before the initial cache sync: processing the resources
    against a half-populated cache would delete the children of the objects
    that are simply not yet seen.
    """


@dataclasses.dataclass
class QueueingSettings:
    """
    Settings for the shared change queue and its workers.
    """

    worker_count: int = 1
    """
    How many workers consume the change queue concurrently.

    A single key is never processed by two workers at the same time,
    regardless of the number of workers.
    """


@dataclasses.dataclass
class RetryingSettings:
    """
    Settings for the requeueing of the keys with failed reconciliation.

    The delay for a key is the maximum of two limiters: the per-key exponential
    backoff (``base_delay * 2 ** failures``, capped at ``max_delay``) and
    the overall token bucket (``qps`` with the ``burst`` capacity).
    """

    max_retries: int = 5
    """
    How many times a failing key is requeued before it is abandoned.

    An abandoned key is forgotten: its failures counter is reset, so that
    the next change of the same object starts from scratch.
    All failures are retried the same way, with no classification.
    """

    base_delay: float = 0.005
    """ The delay for the 1st retry of a key; doubled with every next failure. """

    max_delay: float = 1000
    """ The cap of the per-key exponential delay, in seconds. """

    qps: Optional[float] = 10
    """
    The overall rate of retries of all keys together, per second.
    ``None`` disables the overall rate limiting.
    """

    burst: int = 100
    """ How many retries can happen at once before the overall rate applies. """


@dataclasses.dataclass
class BootstrapSettings:
    """
    Settings for the one-time registration of the resource's schema.
    """

    enabled: bool = True
    """
    Should the operator register its custom resource definition on startup?

    Disable it if the CRD is managed externally (e.g. by a deployment tool)
    and the operator has no RBAC permissions for the CRDs.
    """

    poll_interval: float = 0.5
    """ How often to check if the registered definition is established. """

    timeout: float = 60
    """ How long to wait until the registered definition is established. """


@dataclasses.dataclass
class OperatorSettings:
    process: ProcessSettings = dataclasses.field(default_factory=ProcessSettings)
    networking: NetworkingSettings = dataclasses.field(default_factory=NetworkingSettings)
    watching: WatchingSettings = dataclasses.field(default_factory=WatchingSettings)
    queueing: QueueingSettings = dataclasses.field(default_factory=QueueingSettings)
    retrying: RetryingSettings = dataclasses.field(default_factory=RetryingSettings)
    bootstrap: BootstrapSettings = dataclasses.field(default_factory=BootstrapSettings)
