"""
Logging in to the API with the credentials found in the environment.

Only two sources are supported, which covers the operators in practice:

* The in-cluster service account, when running in a pod.
* The kubeconfig files, when running on a developer's machine.

Only the static credentials are used: the tokens, the certificates,
the passwords. The exec-plugins and auth-providers are never executed.

.. seealso::
    :mod:`credentials` and :class:`auth.APIContext`.
"""
import os
from typing import Any, Dict, List, Mapping, Optional

import yaml

from consul_operator._cogs.helpers import typedefs
from consul_operator._cogs.structs import credentials

# Patchable in tests. See https://kubernetes.io/docs/tasks/run-application/access-api-from-pod/
SERVICE_ACCOUNT_TOKEN_PATH = '/var/run/secrets/kubernetes.io/serviceaccount/token'
SERVICE_ACCOUNT_NAMESPACE_PATH = '/var/run/secrets/kubernetes.io/serviceaccount/namespace'
SERVICE_ACCOUNT_CA_PATH = '/var/run/secrets/kubernetes.io/serviceaccount/ca.crt'
DEFAULT_KUBECONFIG_PATH = '~/.kube/config'
IN_CLUSTER_SERVER = 'https://kubernetes.default.svc'


def login(
        *,
        kubeconfig: Optional[str] = None,
        logger: typedefs.Logger,
) -> credentials.ConnectionInfo:
    """
    Get the credentials from the first available source, or fail.

    An explicitly given kubeconfig always wins. Otherwise, the in-cluster
    service account is preferred over the implicit kubeconfigs
    (``$KUBECONFIG`` or ``~/.kube/config``), the same as the official clients do.
    """
    info: Optional[credentials.ConnectionInfo] = None
    if kubeconfig is not None:
        info = login_with_kubeconfig(kubeconfig=kubeconfig)
        source = f"the kubeconfig {kubeconfig!r}"
    elif has_service_account():
        info = login_with_service_account()
        source = "the in-cluster service account"
    elif has_kubeconfig():
        info = login_with_kubeconfig()
        source = "the default kubeconfig"

    if info is None or not info.server:
        raise credentials.LoginError("Cannot authenticate neither in-cluster, nor via kubeconfig.")

    logger.debug(f"Client is configured via {source}: {info.server}")
    return info


def _read_stripped(path: str) -> Optional[str]:
    if not os.path.exists(path):
        return None
    with open(path, encoding='utf-8') as f:
        return f.read().strip() or None


def has_service_account() -> bool:
    return os.path.exists(SERVICE_ACCOUNT_TOKEN_PATH)


def login_with_service_account() -> Optional[credentials.ConnectionInfo]:
    """ Use the files mounted into every pod; ``None`` if not in a pod. """
    if not has_service_account():
        return None
    return credentials.ConnectionInfo(
        server=IN_CLUSTER_SERVER,
        ca_path=SERVICE_ACCOUNT_CA_PATH if os.path.exists(SERVICE_ACCOUNT_CA_PATH) else None,
        token=_read_stripped(SERVICE_ACCOUNT_TOKEN_PATH),
        default_namespace=_read_stripped(SERVICE_ACCOUNT_NAMESPACE_PATH),
    )


def has_kubeconfig() -> bool:
    return bool(os.environ.get('KUBECONFIG')) or \
        os.path.exists(os.path.expanduser(DEFAULT_KUBECONFIG_PATH))


def _get_kubeconfig_paths(kubeconfig: Optional[str]) -> List[str]:
    # See https://kubernetes.io/docs/concepts/configuration/organize-cluster-access-kubeconfig/
    kubeconfig = kubeconfig or os.environ.get('KUBECONFIG')
    if not kubeconfig and os.path.exists(os.path.expanduser(DEFAULT_KUBECONFIG_PATH)):
        kubeconfig = DEFAULT_KUBECONFIG_PATH
    if not kubeconfig:
        return []
    return [os.path.expanduser(path.strip())
            for path in kubeconfig.split(os.pathsep) if path.strip()]


def _load_kubeconfig(path: str) -> Mapping[str, Any]:
    try:
        with open(path, encoding='utf-8') as f:
            return yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise credentials.LoginError(f"Cannot read the kubeconfig {path!r}: {e}") from e


def login_with_kubeconfig(
        *,
        kubeconfig: Optional[str] = None,
) -> Optional[credentials.ConnectionInfo]:
    """
    Use the current context of the kubeconfig files; ``None`` if there are none.

    Several files can be listed via the OS path separator, as in ``$KUBECONFIG``.
    They are merged: the first file that sets a value (or a named entry) wins.
    """
    paths = _get_kubeconfig_paths(kubeconfig)
    if not paths:
        return None

    current_context: Optional[str] = None
    sections: Dict[str, Dict[str, Any]] = {'contexts': {}, 'clusters': {}, 'users': {}}
    for path in paths:
        config = _load_kubeconfig(path)
        current_context = current_context or config.get('current-context')
        for section, entries in sections.items():
            field = section[:-1]  # e.g. "clusters" -> "cluster"
            for entry in config.get(section) or []:
                entries.setdefault(entry['name'], entry.get(field) or {})

    if current_context is None:
        raise credentials.LoginError("Current context is not set in kubeconfigs.")
    try:
        context = sections['contexts'][current_context]
        cluster = sections['clusters'][context['cluster']]
    except KeyError as e:
        raise credentials.LoginError(f"Kubeconfig context {current_context!r} is broken.") from e
    user = sections['users'].get(context.get('user'), {})

    # The tokens of the auth-providers are used only if already stored (never refreshed).
    provider_token = (user.get('auth-provider') or {}).get('config', {}).get('access-token')

    return credentials.ConnectionInfo(
        server=cluster.get('server'),
        ca_path=cluster.get('certificate-authority'),
        ca_data=cluster.get('certificate-authority-data'),
        insecure=cluster.get('insecure-skip-tls-verify'),
        certificate_path=user.get('client-certificate'),
        certificate_data=user.get('client-certificate-data'),
        private_key_path=user.get('client-key'),
        private_key_data=user.get('client-key-data'),
        username=user.get('username'),
        password=user.get('password'),
        token=user.get('token') or provider_token,
        default_namespace=context.get('namespace'),
    )
