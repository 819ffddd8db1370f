import dataclasses
import functools
from typing import Any, Callable, Optional

import click

from consul_operator._cogs.aiokits import aioadapters
from consul_operator._cogs.clients import auth
from consul_operator._cogs.configs import configuration
from consul_operator._cogs.structs import references
from consul_operator._core.engines import actuating, loggers
from consul_operator._core.reactor import running


@dataclasses.dataclass()
class CLIControls:
    """ What the embedding code or the tests can pass into a command (``obj=``). """
    settings: Optional[configuration.OperatorSettings] = None
    context: Optional[auth.APIContext] = None
    actuator: Optional[actuating.Actuator] = None
    ready_flag: Optional[aioadapters.Flag] = None
    stop_flag: Optional[aioadapters.Flag] = None


class LogFormatParamType(click.Choice):
    """ The log formats by their lowercase names, converted to the enum. """

    def __init__(self) -> None:
        super().__init__([log_format.name.lower() for log_format in loggers.LogFormat])

    def convert(self, value: Any, param: Any, ctx: Any) -> loggers.LogFormat:
        if isinstance(value, loggers.LogFormat):
            return value
        return loggers.LogFormat[super().convert(value, param, ctx).upper()]


def logging_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    """ Add the logging options to a command, and configure the logging before it runs. """

    @functools.wraps(fn)
    def wrapper(
            *args: Any,
            verbose: bool,
            debug: bool,
            quiet: bool,
            log_format: loggers.LogFormat,
            log_prefix: Optional[bool],
            log_refkey: Optional[str],
            **kwargs: Any,
    ) -> Any:
        loggers.configure(debug=debug, verbose=verbose, quiet=quiet,
                          log_format=log_format, log_prefix=log_prefix, log_refkey=log_refkey)
        return fn(*args, **kwargs)

    options = [
        click.option('-v', '--verbose', is_flag=True, help="Log the debug messages."),
        click.option('-d', '--debug', is_flag=True, help="Log everything, asyncio included."),
        click.option('-q', '--quiet', is_flag=True, help="Log only the warnings and errors."),
        click.option('--log-format', type=LogFormatParamType(), default='full'),
        click.option('--log-prefix/--no-log-prefix', default=None,
                     help="Prefix the messages with the objects' names."),
        click.option('--log-refkey', type=str,
                     help="The field for the objects' references in JSON logs."),
    ]
    for option in reversed(options):
        wrapper = option(wrapper)
    return wrapper


@click.version_option(prog_name='consul-operator')
@click.group(name='consul-operator', context_settings=dict(
    auto_envvar_prefix='CONSUL_OPERATOR',
))
def main() -> None:
    pass


@main.command()
@logging_options
@click.option('--kubeconfig', type=click.Path(dir_okay=False),
              help="Use this kubeconfig instead of the in-cluster credentials.")
@click.option('-n', '--namespace', type=str, default=None,
              help="Serve only this namespace (all namespaces by default).")
@click.option('-w', '--workers', type=click.IntRange(min=1), default=None,
              help="How many objects can be reconciled at once.")
@click.option('--sync-timeout', type=float, default=None,
              help="How long to wait for the initial listing, in seconds.")
@click.option('--skip-registration', is_flag=True,
              help="Do not register the resource definition (if managed externally).")
@click.make_pass_decorator(CLIControls, ensure=True)
def run(
        controls: CLIControls,
        kubeconfig: Optional[str],
        namespace: Optional[str],
        workers: Optional[int],
        sync_timeout: Optional[float],
        skip_registration: bool,
) -> None:
    """ Start an operator process and reconcile the Consul clusters. """
    settings = controls.settings
    if settings is None:
        settings = configuration.OperatorSettings()
    if workers is not None:
        settings.queueing.worker_count = workers
    if sync_timeout is not None:
        settings.watching.sync_timeout = sync_timeout
    if skip_registration:
        settings.bootstrap.enabled = False

    running.run(
        settings=settings,
        context=controls.context,
        kubeconfig=kubeconfig,
        namespace=references.NamespaceName(namespace) if namespace else None,
        actuator=controls.actuator,
        stop_flag=controls.stop_flag,
        ready_flag=controls.ready_flag,
    )
