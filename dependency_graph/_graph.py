# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
from types import MappingProxyType
from typing import Collection
from typing import Mapping
from typing import Sequence

from declaration import Reference
from declaration import ResourceDescriptor
from declaration import extract_references


class CycleError(Exception):

    def __init__(self, members: Sequence[Sequence[str]]):
        self.members = members
        cycles = '; '.join(' <-> '.join(component) for component in members)
        super().__init__(f"Resources reference each other: {cycles}")


class DanglingReference(Exception):

    def __init__(self, resource: str, reference: Reference):
        super().__init__(f"{resource} refers to undeclared resource: {reference}")
        self.resource = resource
        self.reference = reference


class DuplicateResource(Exception):

    def __init__(self, name: str):
        super().__init__(f"Resource declared twice: {name}")
        self.name = name


class DependencyGraph:
    """Resources and "must be created before" relations between them.

    Levels are computed once: a level holds every resource whose
    predecessors are all in previous levels. Within a level, resources keep
    their declaration order.
    """

    def __init__(
            self,
            descriptors: Sequence[ResourceDescriptor],
            predecessors: Mapping[str, Sequence[str]],
            ):
        self._descriptors = MappingProxyType({d.name: d for d in descriptors})
        self._predecessors = MappingProxyType({
            name: tuple(predecessors[name]) for name in self._descriptors
            })
        successors = {name: [] for name in self._descriptors}
        for name, names_before in self._predecessors.items():
            for before in names_before:
                successors[before].append(name)
        self._successors = MappingProxyType({
            name: tuple(after) for name, after in successors.items()
            })
        self._levels = self._split_into_levels()

    def __repr__(self):
        return f'<{self.__class__.__name__} with {len(self._descriptors)} resources>'

    def _split_into_levels(self):
        done = set()
        levels = []
        while len(done) < len(self._descriptors):
            level = tuple(
                name
                for name in self._descriptors
                if name not in done
                and all(before in done for before in self._predecessors[name])
                )
            # Construction guarantees no cycles; an empty level would loop forever.
            assert level, "Acyclic graph must have a ready resource"
            done.update(level)
            levels.append(level)
        return tuple(levels)

    @property
    def levels(self) -> Sequence[Sequence[str]]:
        return self._levels

    def order(self) -> Sequence[str]:
        return [name for level in self._levels for name in level]

    def names(self) -> Collection[str]:
        return self._descriptors.keys()

    def descriptor(self, name: str) -> ResourceDescriptor:
        return self._descriptors[name]

    def predecessors(self, name: str) -> Sequence[str]:
        return self._predecessors[name]

    def successors(self, name: str) -> Sequence[str]:
        return self._successors[name]

    def dependents(self, name: str) -> Sequence[str]:
        """All resources that cannot be created without this one."""
        found = set()
        stack = list(self._successors[name])
        while stack:
            current = stack.pop()
            if current in found:
                continue
            found.add(current)
            stack.extend(self._successors[current])
        return [other for other in self._descriptors if other in found]


def resolve(descriptors: Sequence[ResourceDescriptor]) -> DependencyGraph:
    """Build graph from references found in resource attributes.

    >>> from declaration import ResourceKind
    >>> graph = resolve([
    ...     ResourceDescriptor(ResourceKind.VOLUME, 'dataVol', {}),
    ...     ResourceDescriptor(ResourceKind.DROPLET, 'db', {'volumes': [Reference.parse('dataVol.id')]}),
    ...     ResourceDescriptor(ResourceKind.DROPLET, 'web', {}),
    ...     ])
    >>> graph.levels
    (('dataVol', 'web'), ('db',))
    """
    declared = {}
    for descriptor in descriptors:
        if descriptor.name in declared:
            raise DuplicateResource(descriptor.name)
        declared[descriptor.name] = descriptor
    predecessors = {}
    for descriptor in descriptors:
        names_before = []
        for reference in extract_references(descriptor.attributes):
            if reference.resource not in declared:
                raise DanglingReference(descriptor.name, reference)
            if reference.resource not in names_before:
                names_before.append(reference.resource)
        predecessors[descriptor.name] = names_before
        _logger.debug("%s depends on: %s", descriptor.name, names_before)
    declaration_order = list(declared)
    cycles = [
        sorted(component, key=declaration_order.index)
        for component in _strongly_connected_components(declaration_order, predecessors)
        if len(component) > 1 or component[0] in predecessors[component[0]]
        ]
    if cycles:
        raise CycleError(cycles)
    graph = DependencyGraph(descriptors, predecessors)
    _logger.info("Resolved %d resources into %d levels", len(declared), len(graph.levels))
    return graph


def _strongly_connected_components(
        nodes: Sequence[str],
        edges: Mapping[str, Sequence[str]],
        ) -> Sequence[Sequence[str]]:
    """Tarjan's algorithm, without recursion.

    >>> _strongly_connected_components('abc', {'a': ['b'], 'b': ['a'], 'c': ['a']})
    [['b', 'a'], ['c']]
    """
    index_of = {}
    low_link = {}
    on_stack = set()
    stack = []
    components = []
    for root in nodes:
        if root in index_of:
            continue
        work = [(root, iter(edges[root]))]
        index_of[root] = low_link[root] = len(index_of)
        stack.append(root)
        on_stack.add(root)
        while work:
            node, neighbors = work[-1]
            for neighbor in neighbors:
                if neighbor not in index_of:
                    index_of[neighbor] = low_link[neighbor] = len(index_of)
                    stack.append(neighbor)
                    on_stack.add(neighbor)
                    work.append((neighbor, iter(edges[neighbor])))
                    break
                if neighbor in on_stack:
                    low_link[node] = min(low_link[node], index_of[neighbor])
            else:
                work.pop()
                if work:
                    parent = work[-1][0]
                    low_link[parent] = min(low_link[parent], low_link[node])
                if low_link[node] == index_of[node]:
                    component = []
                    while True:
                        member = stack.pop()
                        on_stack.discard(member)
                        component.append(member)
                        if member == node:
                            break
                    components.append(component)
    return components


_logger = logging.getLogger(__name__)
