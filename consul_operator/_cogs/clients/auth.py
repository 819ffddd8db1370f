import base64
import contextlib
import ssl
import tempfile
from typing import Dict, List, Optional, Union

import aiohttp

from consul_operator._cogs.helpers import versions
from consul_operator._cogs.structs import credentials


class APIContext:
    """
    An HTTP session to the API server, with the server's coordinates.

    The context is constructed once per operator run and is passed explicitly
    to every API-calling routine as ``context=``. There is no implicit global
    state, so several operators (e.g. in tests) can coexist in one process.

    The open responses (e.g. the watch-streams) are remembered, so that
    they are all closed when the context is closed.
    """

    session: aiohttp.ClientSession
    server: str
    default_namespace: Optional[str]
    responses: List[aiohttp.ClientResponse]

    def __init__(self, info: credentials.ConnectionInfo) -> None:
        super().__init__()
        self.server = info.server
        self.default_namespace = info.default_namespace
        self.responses = []
        self.session = aiohttp.ClientSession(
            connector=aiohttp.TCPConnector(limit=0, ssl=make_ssl_context(info)),
            headers=make_headers(info),
            auth=make_basic_auth(info),
        )

    async def __aenter__(self) -> "APIContext":
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()

    def add_response(self, response: aiohttp.ClientResponse) -> None:
        self.responses[:] = [known for known in self.responses if not known.closed]
        if not response.closed:
            self.responses.append(response)

    async def close(self) -> None:
        for response in self.responses:
            response.close()
        self.responses.clear()
        await self.session.close()


def make_headers(info: credentials.ConnectionInfo) -> Dict[str, str]:
    headers = {'User-Agent': f'consul-operator/{versions.version or "unknown"}'}
    if info.scheme or info.token:
        scheme = info.scheme or 'Bearer'
        headers['Authorization'] = f'{scheme} {info.token}' if info.token else scheme
    return headers


def make_basic_auth(info: credentials.ConnectionInfo) -> Optional[aiohttp.BasicAuth]:
    if info.username and info.password:
        return aiohttp.BasicAuth(info.username, info.password)
    return None


def make_ssl_context(info: credentials.ConnectionInfo) -> ssl.SSLContext:
    """
    Build the server verification and the client certificate authentication.

    The client certificate and key are loaded only from files; the inline data
    go through temporary files, which exist only while the context is built.
    Nothing is written to disk when there is no inline data (the filesystem
    can be read-only in the pods).
    """
    cadata = decode_to_pem(info.ca_data) if info.ca_data is not None else None
    context = ssl.create_default_context(cafile=info.ca_path, cadata=cadata)

    with contextlib.ExitStack() as stack:
        cert_path = info.certificate_path
        if not cert_path and info.certificate_data:
            cert_path = _dump_pem(stack, info.certificate_data)
        pkey_path = info.private_key_path
        if not pkey_path and info.private_key_data:
            pkey_path = _dump_pem(stack, info.private_key_data)
        if cert_path and pkey_path:
            context.load_cert_chain(certfile=cert_path, keyfile=pkey_path)

    if info.insecure:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


def _dump_pem(stack: contextlib.ExitStack, data: Union[str, bytes]) -> str:
    file = stack.enter_context(tempfile.NamedTemporaryFile(buffering=0))
    file.write(decode_to_pem(data).encode('ascii'))
    return file.name


def decode_to_pem(data: Union[str, bytes]) -> str:
    """ Accept both the PEM text and its base64-encoded form (as in kubeconfigs). """
    text = data if isinstance(data, str) else data.decode('ascii')
    if text.startswith('-----BEGIN '):
        return text
    return base64.b64decode(text).decode('ascii')
