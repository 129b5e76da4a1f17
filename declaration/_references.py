# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
from types import MappingProxyType
from typing import Any
from typing import Callable
from typing import Iterator
from typing import Mapping
from typing import Optional

from declaration._descriptor import Reference
from declaration._descriptor import Template

# Outputs of a created resource, or None if it has not been created.
OutputsOf = Callable[[str], Optional[Mapping[str, Any]]]

WAITING = MappingProxyType({'$waiting': True})


class UnresolvedReferenceError(Exception):

    def __init__(self, reference: Reference, reason: str):
        super().__init__(f"Cannot resolve {reference}: {reason}")
        self.reference = reference


def extract_references(value) -> Iterator[Reference]:
    """Walk nested attribute values; yield references in declaration order.

    >>> list(extract_references({'droplet_ids': [Reference.parse('web1.id'), Reference.parse('web2.id')]}))
    [Reference('web1.id'), Reference('web2.id')]
    >>> list(extract_references(Template.parse('${vol.mount_point}/data')))
    [Reference('vol.mount_point')]
    """
    if isinstance(value, Reference):
        yield value
    elif isinstance(value, Template):
        yield from value.references()
    elif isinstance(value, Mapping):
        for item in value.values():
            yield from extract_references(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from extract_references(item)


def substitute(value, outputs_of: OutputsOf):
    """Replace references with produced values; return plain dicts and lists.

    >>> outputs = {'dataVol': {'id': 'v-1', 'mount_point': '/mnt/data'}}
    >>> substitute({'content': Template.parse('dir=${dataVol.mount_point}')}, outputs.get)
    {'content': 'dir=/mnt/data'}
    >>> substitute(Reference.parse('dataVol.size'), outputs.get) # doctest: +IGNORE_EXCEPTION_DETAIL
    Traceback (most recent call last):
    ...
    UnresolvedReferenceError: Cannot resolve dataVol.size: no field 'size'
    """
    if isinstance(value, Reference):
        return _lookup(value, outputs_of)
    if isinstance(value, Template):
        return value.render({
            reference: _lookup(reference, outputs_of)
            for reference in value.references()
            })
    if isinstance(value, Mapping):
        return {key: substitute(item, outputs_of) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [substitute(item, outputs_of) for item in value]
    return value


def render_waiting(value, outputs_of: OutputsOf = lambda _name: None):
    """Like substitute() but mark what is not known yet instead of failing.

    >>> render_waiting({'droplet_ids': [Reference.parse('web1.id'), 42]})
    {'droplet_ids': [{'$waiting': True}, 42]}
    """
    if isinstance(value, (Reference, Template)):
        try:
            return substitute(value, outputs_of)
        except UnresolvedReferenceError:
            return dict(WAITING)
    if isinstance(value, Mapping):
        return {key: render_waiting(item, outputs_of) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [render_waiting(item, outputs_of) for item in value]
    return value


def _lookup(reference: Reference, outputs_of: OutputsOf):
    outputs = outputs_of(reference.resource)
    if outputs is None:
        raise UnresolvedReferenceError(reference, f"{reference.resource} is not created")
    value = outputs
    for key in reference.path:
        if isinstance(value, Mapping) and key in value:
            value = value[key]
        elif isinstance(value, (list, tuple)) and key.isdigit() and int(key) < len(value):
            value = value[int(key)]
        else:
            raise UnresolvedReferenceError(reference, f"no field {key!r}")
    if value is None:
        raise UnresolvedReferenceError(reference, "field is not produced")
    _logger.debug("Resolved %s to %r", reference, value)
    return value


_logger = logging.getLogger(__name__)
