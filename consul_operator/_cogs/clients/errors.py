"""
The errors of the Kubernetes API, as seen by the operator.

The HTTP client's own exceptions are not spread over the operator's code:
every error response is converted into one of the classes below, with the
client's exception chained as the cause. The network-level failures
(connectivity, TLS, timeouts) are not converted and propagate as they are.

A few statuses get classes of their own, since the callers treat them
specially: e.g. "404 Not Found" on deletion and "409 Conflict" on creation
mean that the desired state is already there.
"""
import collections.abc
import json
from typing import Collection, Mapping, Optional, Type

import aiohttp
from typing_extensions import Literal, TypedDict


class RawStatusDetails(TypedDict, total=False):
    name: str
    kind: str
    group: str
    uid: str
    retryAfterSeconds: int
    causes: Collection[Mapping[str, str]]


# The payload of the error responses: https://kubernetes.io/docs/reference/using-api/api-concepts/
class RawStatus(TypedDict, total=False):
    apiVersion: str
    kind: Literal["Status"]
    status: Literal["Success", "Failure"]
    code: int
    reason: str
    message: str
    details: RawStatusDetails


class APIError(Exception):
    """ A response of the API with an error status; the payload only if it is a Status. """

    def __init__(self, payload: Optional[RawStatus], *, status: int) -> None:
        self.status = status
        self.payload = payload
        super().__init__(self.message, status)

    @property
    def code(self) -> Optional[int]:
        return None if self.payload is None else self.payload.get('code')

    @property
    def message(self) -> Optional[str]:
        return None if self.payload is None else self.payload.get('message')

    @property
    def details(self) -> Optional[RawStatusDetails]:
        return None if self.payload is None else self.payload.get('details')


class APIClientError(APIError):
    pass


class APIServerError(APIError):
    pass


class APIUnauthorizedError(APIClientError):
    pass


class APIForbiddenError(APIClientError):
    pass


class APINotFoundError(APIClientError):
    pass


class APIConflictError(APIClientError):
    pass


_SPECIFIC_ERRORS: Mapping[int, Type[APIError]] = {
    401: APIUnauthorizedError,
    403: APIForbiddenError,
    404: APINotFoundError,
    409: APIConflictError,
}


def _get_error_class(status: int) -> Type[APIError]:
    if status in _SPECIFIC_ERRORS:
        return _SPECIFIC_ERRORS[status]
    elif 400 <= status < 500:
        return APIClientError
    elif 500 <= status < 600:
        return APIServerError
    else:
        return APIError


async def _read_status(response: aiohttp.ClientResponse) -> Optional[RawStatus]:
    try:
        payload = await response.json()
    except (json.JSONDecodeError, aiohttp.ContentTypeError, aiohttp.ClientConnectionError):
        return None

    # Anything except a Status can carry the objects' data (e.g. secrets); never expose it.
    if isinstance(payload, collections.abc.Mapping) and payload.get('kind') == 'Status':
        return payload
    return None


async def check_response(
        response: aiohttp.ClientResponse,
) -> None:
    """ Raise an operator-specific error if the response has an error status. """
    if response.status < 400:
        return

    # The body must be read first: raising for the status releases the connection.
    payload = await _read_status(response)
    error_cls = _get_error_class(response.status)
    try:
        response.raise_for_status()
    except aiohttp.ClientResponseError as e:
        raise error_cls(payload, status=response.status) from e
