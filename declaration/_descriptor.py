# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import re
from enum import Enum
from types import MappingProxyType
from typing import Any
from typing import Iterable
from typing import Mapping
from typing import Sequence
from typing import Union


class ResourceKind(Enum):
    DROPLET = 'droplet'
    LOAD_BALANCER = 'load_balancer'
    VOLUME = 'volume'


class Reference:
    """Field of another resource, known only after that resource is created.

    >>> Reference.parse('dataVol.mount_point')
    Reference('dataVol.mount_point')
    >>> Reference.parse('web1.networks.0.ip').path
    ('networks', '0', 'ip')
    >>> Reference.parse('dataVol') # doctest: +IGNORE_EXCEPTION_DETAIL
    Traceback (most recent call last):
    ...
    ValueError: Reference must look like <resource>.<field>, got 'dataVol'
    """

    __slots__ = ('_resource', '_path')

    def __init__(self, resource: str, path: Sequence[str]):
        if not resource or not path or not all(path):
            raise ValueError(f"Malformed reference: {resource!r}, {path!r}")
        self._resource = resource
        self._path = tuple(path)

    @classmethod
    def parse(cls, text: str) -> 'Reference':
        resource, _, rest = text.strip().partition('.')
        if not resource or not rest:
            raise ValueError(f"Reference must look like <resource>.<field>, got {text!r}")
        return cls(resource, rest.split('.'))

    @property
    def resource(self) -> str:
        return self._resource

    @property
    def path(self) -> Sequence[str]:
        return self._path

    def __str__(self):
        return '.'.join([self._resource, *self._path])

    def __repr__(self):
        return f'{Reference.__name__}({str(self)!r})'

    def __eq__(self, other):
        if not isinstance(other, Reference):
            return NotImplemented
        return (self._resource, self._path) == (other._resource, other._path)

    def __hash__(self):
        return hash((self._resource, self._path))


class Template:
    """String with embedded references; rendered once they are resolved.

    >>> Template.parse("data_directory = '${dataVol.mount_point}/pg'")
    Template(["data_directory = '", Reference('dataVol.mount_point'), "/pg'"])
    >>> Template.parse('no references, costs $$5')
    'no references, costs $5'
    >>> t = Template.parse('${web1.ip}:${web1.port}')
    >>> t.render({Reference.parse('web1.ip'): '10.0.0.2', Reference.parse('web1.port'): 5432})
    '10.0.0.2:5432'
    """

    _placeholder_re = re.compile(r'\$(?:\$|\{(?P<reference>[^}]*)\})')

    def __init__(self, parts: Iterable[Union[str, Reference]]):
        self._parts = tuple(parts)

    @classmethod
    def parse(cls, text: str) -> Union[str, 'Template']:
        """Return plain string if there are no placeholders."""
        parts = []
        literal = []
        position = 0
        for match in cls._placeholder_re.finditer(text):
            literal.append(text[position:match.start()])
            position = match.end()
            if match['reference'] is None:
                literal.append('$')
                continue
            parts.append(''.join(literal))
            literal = []
            parts.append(Reference.parse(match['reference']))
        literal.append(text[position:])
        parts.append(''.join(literal))
        if len(parts) == 1:
            return parts[0]
        return cls(part for part in parts if part != '')

    def references(self) -> Sequence[Reference]:
        return [part for part in self._parts if isinstance(part, Reference)]

    def render(self, values: Mapping[Reference, Any]) -> str:
        return ''.join([
            str(values[part]) if isinstance(part, Reference) else part
            for part in self._parts
            ])

    def __repr__(self):
        return f'{Template.__name__}({list(self._parts)!r})'

    def __eq__(self, other):
        if not isinstance(other, Template):
            return NotImplemented
        return self._parts == other._parts

    def __hash__(self):
        return hash(self._parts)


def freeze(value):
    """Make nested attribute values read-only.

    >>> frozen = freeze({'tags': ['db'], 'size': {'cpu': 2}})
    >>> frozen['tags']
    ('db',)
    >>> frozen['size']['cpu'] = 4  # doctest: +IGNORE_EXCEPTION_DETAIL
    Traceback (most recent call last):
    ...
    TypeError: 'mappingproxy' object does not support item assignment
    """
    if isinstance(value, Mapping):
        return MappingProxyType({key: freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(item) for item in value)
    return value


class ResourceDescriptor:
    """Desired external object; never mutated after the manifest is loaded."""

    __slots__ = ('_kind', '_name', '_attributes')

    def __init__(self, kind: ResourceKind, name: str, attributes: Mapping[str, Any]):
        if not name:
            raise ValueError("Resource name must not be empty")
        self._kind = kind
        self._name = name
        self._attributes = freeze(attributes)

    @property
    def kind(self) -> ResourceKind:
        return self._kind

    @property
    def name(self) -> str:
        return self._name

    @property
    def attributes(self) -> Mapping[str, Any]:
        return self._attributes

    def __repr__(self):
        return f'<{self._kind.value} {self._name}>'
