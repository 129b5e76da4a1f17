# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
from dependency_graph._graph import CycleError
from dependency_graph._graph import DanglingReference
from dependency_graph._graph import DependencyGraph
from dependency_graph._graph import DuplicateResource
from dependency_graph._graph import resolve

__all__ = [
    'CycleError',
    'DanglingReference',
    'DependencyGraph',
    'DuplicateResource',
    'resolve',
    ]
