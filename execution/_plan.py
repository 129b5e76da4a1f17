# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
from typing import Any
from typing import Mapping

from declaration import render_waiting
from dependency_graph import resolve
from manifest import Manifest


def plan(manifest: Manifest) -> Mapping[str, Any]:
    """What would be done, in order, with unknown values marked as waiting.

    Nothing is created. Values that come from resources not yet created are
    shown as {"$waiting": true}. Graph errors are raised as in a real run.
    """
    graph = resolve(manifest.descriptors)
    return {
        'levels': [list(level) for level in graph.levels],
        'resources': {
            name: {
                'kind': graph.descriptor(name).kind.value,
                'after': list(graph.predecessors(name)),
                'attributes': render_waiting(graph.descriptor(name).attributes),
                }
            for name in graph.order()
            },
        'remote': [
            {
                'name': block.name,
                'host': render_waiting(block.host),
                'after': list(block.dependencies()),
                'steps': [
                    {'kind': step.kind, **render_waiting(step.params())}
                    for step in block.steps
                    ],
                }
            for block in manifest.blocks
            ],
        }
