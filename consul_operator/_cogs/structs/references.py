import dataclasses
import urllib.parse
from typing import Iterator, Mapping, NamedTuple, NewType, Optional, Tuple

# A namespace that exists (or is assumed to exist) in the cluster.
NamespaceName = NewType('NamespaceName', str)

# A namespace for the API calls: `None` means the cluster-wide calls.
Namespace = Optional[NamespaceName]


class ObjectKey(NamedTuple):
    """
    The identity of a watched object: the only key in the caches and queues.

    It is kept as an explicit pair and is never re-parsed from its text form,
    so the names can contain any characters without ambiguity.
    The text form is only for humans (logs, reprs).
    """
    namespace: str  # empty for cluster-scoped objects.
    name: str

    def __str__(self) -> str:
        return f'{self.namespace}/{self.name}' if self.namespace else self.name


@dataclasses.dataclass(frozen=True, eq=False, repr=False)
class Resource:
    """
    A kind of objects served by the API, as needed to build the URLs.

    Only the group, the version, and the plural name identify the resource
    (and take part in comparisons). The other names are used for the schema
    registration and for the bodies of the created objects.
    """
    group: str  # e.g. "k8s.psf.io"; empty for the core v1 API.
    version: str  # e.g. "v1"
    plural: str  # e.g. "consuls"
    kind: Optional[str] = None  # e.g. "Consul"
    singular: Optional[str] = None  # e.g. "consul"
    namespaced: Optional[bool] = None

    def _identity(self) -> Tuple[str, str, str]:
        return (self.group, self.version, self.plural)

    def __hash__(self) -> int:
        return hash(self._identity())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Resource):
            return NotImplemented
        return self._identity() == other._identity()

    def __repr__(self) -> str:
        return '.'.join(part for part in (self.plural, self.version, self.group) if part)

    def __iter__(self) -> Iterator[str]:
        return iter(self._identity())

    @property
    def api_version(self) -> str:
        """ As in the objects' ``apiVersion`` field: e.g. ``"k8s.psf.io/v1"`` or ``"v1"``. """
        return f'{self.group}/{self.version}' if self.group else self.version

    @property
    def name(self) -> str:
        """ As in the resource's definition: e.g. ``"consuls.k8s.psf.io"``. """
        return f'{self.plural}.{self.group}' if self.group else self.plural

    def get_url(
            self,
            *,
            server: Optional[str] = None,
            namespace: Namespace = None,
            name: Optional[str] = None,
            subresource: Optional[str] = None,
            params: Optional[Mapping[str, str]] = None,
    ) -> str:
        """
        Build a URL of a list of objects, or of one object if the name is given.

        With no namespace, the URL is cluster-wide (for namespaced resources,
        it lists the objects in all namespaces). The params go to the query.
        """
        if subresource is not None and name is None:
            raise ValueError("Subresources can be used only with specific resources by their name.")
        if not self.namespaced and namespace is not None:
            raise ValueError("Specific namespaces are not supported for cluster-scoped resources.")
        if self.namespaced and namespace is None and name is not None:
            raise ValueError("Specific namespaces are required for specific namespaced resources.")

        root = '/api' if self.group == '' and self.version == 'v1' else f'/apis/{self.group}'
        path = f'{root}/{self.version}'
        if namespace is not None:
            path += f'/namespaces/{namespace}'
        path += f'/{self.plural}'
        if name is not None:
            path += f'/{name}'
        if subresource is not None:
            path += f'/{subresource}'
        if params:
            path += '?' + urllib.parse.urlencode(params, encoding='utf-8')
        return path if server is None else server.rstrip('/') + path


# The served resource.
CONSULS = Resource('k8s.psf.io', 'v1', 'consuls', kind='Consul', singular='consul',
                   namespaced=True)

# The managed children, and the definitions for the schema registration.
SERVICES = Resource('', 'v1', 'services', kind='Service', singular='service', namespaced=True)
CRDS = Resource('apiextensions.k8s.io', 'v1', 'customresourcedefinitions',
                kind='CustomResourceDefinition', namespaced=False)
