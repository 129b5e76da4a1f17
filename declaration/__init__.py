# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
"""Declared resources and references between them.

A resource descriptor is what a manifest asks for: a kind, a unique name
and attributes. An attribute may refer to a field of another resource,
which becomes known only after that resource is created, e.g. a droplet
refers to the ID of a volume it mounts. Such references are the only source
of ordering: there is no explicit dependency syntax.
"""
from declaration._descriptor import Reference
from declaration._descriptor import ResourceDescriptor
from declaration._descriptor import ResourceKind
from declaration._descriptor import Template
from declaration._descriptor import freeze
from declaration._references import WAITING
from declaration._references import OutputsOf
from declaration._references import UnresolvedReferenceError
from declaration._references import extract_references
from declaration._references import render_waiting
from declaration._references import substitute

__all__ = [
    'OutputsOf',
    'Reference',
    'ResourceDescriptor',
    'ResourceKind',
    'Template',
    'UnresolvedReferenceError',
    'WAITING',
    'extract_references',
    'freeze',
    'render_waiting',
    'substitute',
    ]
