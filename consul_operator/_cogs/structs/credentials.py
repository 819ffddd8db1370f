"""
The coordinates and credentials of the API server.

Only what a generic HTTP client can use is supported: the server URL,
the TLS verification (CA, or none at all), the TLS client certificates,
and the ``Authorization`` header (basic, bearer, or any other scheme).
Exec-plugins and auth-providers of kubeconfigs are not supported.

.. seealso::
    :mod:`piggybacking` for getting these, and :class:`auth.APIContext` for using them.
"""
import dataclasses
from typing import Optional


class LoginError(Exception):
    """ Raised when there are no usable credentials for the API. """


@dataclasses.dataclass(frozen=True)
class ConnectionInfo:
    server: str  # e.g. "https://10.0.0.1:443"

    # Server verification.
    ca_path: Optional[str] = None
    ca_data: Optional[bytes] = None
    insecure: Optional[bool] = None

    # Client authentication.
    username: Optional[str] = None
    password: Optional[str] = None
    scheme: Optional[str] = None  # e.g. "Bearer", "Basic"
    token: Optional[str] = None
    certificate_path: Optional[str] = None
    certificate_data: Optional[bytes] = None
    private_key_path: Optional[str] = None
    private_key_data: Optional[bytes] = None

    default_namespace: Optional[str] = None
