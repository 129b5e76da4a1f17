# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import json
import logging
from pathlib import Path
from typing import Any
from typing import Mapping
from typing import NamedTuple
from typing import Sequence
from typing import Union

from convergence import ConvergenceStep
from convergence import File
from convergence import Package
from convergence import ServiceUnit
from declaration import Reference
from declaration import ResourceDescriptor
from declaration import ResourceKind
from declaration import Template
from declaration import extract_references

_step_classes = {cls.kind: cls for cls in (Package, File, ServiceUnit)}
_list_attributes = {
    ResourceKind.DROPLET: ('volumes', 'tags'),
    ResourceKind.LOAD_BALANCER: ('droplet_ids', 'forwarding_rules'),
    }


class ManifestError(Exception):

    def __init__(self, where: str, message: str):
        super().__init__(f"{where}: {message}")
        self.where = where


class RemoteBlock(NamedTuple):
    name: str
    host: Union[str, Reference, Template]
    steps: Sequence[ConvergenceStep]

    def dependencies(self) -> Sequence[str]:
        """Resources that must be created before the host can be configured."""
        names = []
        for reference in [*extract_references(self.host), *self._step_references()]:
            if reference.resource not in names:
                names.append(reference.resource)
        return names

    def _step_references(self):
        for step in self.steps:
            yield from step.references()


class Manifest(NamedTuple):
    descriptors: Sequence[ResourceDescriptor]
    blocks: Sequence[RemoteBlock]


def load_manifest(path: Union[str, Path]) -> Manifest:
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding='utf-8'))
    except json.JSONDecodeError as e:
        raise ManifestError(str(path), f"Invalid JSON: {e}")
    manifest = parse_manifest(data)
    _logger.info(
        "Loaded %s: %d resources, %d remote blocks",
        path, len(manifest.descriptors), len(manifest.blocks))
    return manifest


def parse_manifest(data: Any) -> Manifest:
    """Build descriptors and remote blocks from the JSON form of a manifest.

    >>> m = parse_manifest({'resources': [{'kind': 'volume', 'name': 'data', 'attributes': {'size_gigabytes': 10}}]})
    >>> m.descriptors
    (<volume data>,)
    >>> parse_manifest({'resources': [{'kind': 'bucket', 'name': 's3'}]}) # doctest: +IGNORE_EXCEPTION_DETAIL
    Traceback (most recent call last):
    ...
    ManifestError: resources[0].kind: Unknown kind 'bucket', known: droplet, load_balancer, volume
    """
    if not isinstance(data, Mapping):
        raise ManifestError('manifest', "Must be an object")
    unknown = set(data) - {'resources', 'remote'}
    if unknown:
        raise ManifestError('manifest', f"Unknown sections: {', '.join(sorted(unknown))}")
    descriptors = []
    for i, item in enumerate(_list(data, 'resources', 'manifest')):
        descriptor = _parse_descriptor(item, f'resources[{i}]')
        if any(d.name == descriptor.name for d in descriptors):
            raise ManifestError(f'resources[{i}].name', f"Duplicate resource {descriptor.name!r}")
        descriptors.append(descriptor)
    blocks = []
    for i, item in enumerate(_list(data, 'remote', 'manifest')):
        block = _parse_block(item, f'remote[{i}]')
        if any(b.name == block.name for b in blocks):
            raise ManifestError(f'remote[{i}].name', f"Duplicate remote block {block.name!r}")
        declared = [d.name for d in descriptors]
        for name in block.dependencies():
            if name not in declared:
                raise ManifestError(f'remote[{i}]', f"Reference to undeclared resource {name!r}")
        blocks.append(block)
    return Manifest(tuple(descriptors), tuple(blocks))


def _parse_descriptor(item, where) -> ResourceDescriptor:
    if not isinstance(item, Mapping):
        raise ManifestError(where, "Must be an object")
    kinds = {kind.value: kind for kind in ResourceKind}
    kind = item.get('kind')
    if not isinstance(kind, str) or kind not in kinds:
        raise ManifestError(f'{where}.kind', f"Unknown kind {kind!r}, known: {', '.join(kinds)}")
    name = _name(item, where)
    attributes = item.get('attributes', {})
    if not isinstance(attributes, Mapping):
        raise ManifestError(f'{where}.attributes', "Must be an object")
    for key in _list_attributes.get(kinds[kind], ()):
        if key in attributes and not isinstance(attributes[key], list):
            raise ManifestError(f'{where}.attributes.{key}', "Must be a list")
    return ResourceDescriptor(kinds[kind], name, _decode(attributes, f'{where}.attributes'))


def _parse_block(item, where) -> RemoteBlock:
    if not isinstance(item, Mapping):
        raise ManifestError(where, "Must be an object")
    name = _name(item, where)
    if 'host' not in item:
        raise ManifestError(where, "Host is required")
    host = _decode(item['host'], f'{where}.host')
    steps = [
        _parse_step(step, f'{where}.steps[{i}]')
        for i, step in enumerate(_list(item, 'steps', where))
        ]
    return RemoteBlock(name, host, tuple(steps))


def _parse_step(item, where) -> ConvergenceStep:
    if not isinstance(item, Mapping):
        raise ManifestError(where, "Must be an object")
    kwargs = dict(_decode(item, where))
    kind = kwargs.pop('kind', None)
    if not isinstance(kind, str) or kind not in _step_classes:
        raise ManifestError(
            f'{where}.kind', f"Unknown step {kind!r}, known: {', '.join(_step_classes)}")
    cls = _step_classes[kind]
    try:
        return cls(**kwargs)
    except (TypeError, ValueError) as e:
        raise ManifestError(where, str(e))


def _decode(value, where):
    """Turn JSON values into attribute values with references.

    >>> _decode({'volumes': [{'$ref': 'data.id'}], 'motd': 'Hi from ${web1.ip}'}, 'x')
    {'volumes': [Reference('data.id')], 'motd': Template(['Hi from ', Reference('web1.ip')])}
    """
    if isinstance(value, Mapping):
        if '$ref' in value:
            if len(value) != 1 or not isinstance(value['$ref'], str):
                raise ManifestError(where, "Reference must be {\"$ref\": \"<resource>.<field>\"}")
            try:
                return Reference.parse(value['$ref'])
            except ValueError as e:
                raise ManifestError(where, str(e))
        return {key: _decode(item, f'{where}.{key}') for key, item in value.items()}
    if isinstance(value, list):
        return [_decode(item, f'{where}[{i}]') for i, item in enumerate(value)]
    if isinstance(value, str):
        try:
            return Template.parse(value)
        except ValueError as e:
            raise ManifestError(where, str(e))
    return value


def _name(item, where) -> str:
    name = item.get('name')
    if not isinstance(name, str) or not name:
        raise ManifestError(f'{where}.name', "Name must be a non-empty string")
    if '.' in name or '$' in name:
        raise ManifestError(f'{where}.name', f"Name must not contain '.' or '$': {name!r}")
    return name


def _list(data, key, where) -> Sequence[Any]:
    value = data.get(key, [])
    if not isinstance(value, list):
        raise ManifestError(f'{where}.{key}', "Must be a list")
    return value


_logger = logging.getLogger(__name__)
