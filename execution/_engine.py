# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import as_completed
from typing import Mapping
from typing import Optional

from cloud_provider import ProviderAdapter
from cloud_provider import ProviderError
from cloud_provider import RetryPolicy
from cloud_provider import UnsupportedResourceKind
from declaration import Reference
from declaration import ResourceDescriptor
from declaration import ResourceKind
from declaration import UnresolvedReferenceError
from declaration import substitute
from dependency_graph import DependencyGraph
from execution._context import RunContext
from execution._results import Created
from execution._results import ExecutionResult
from execution._results import Failed
from execution._results import Skipped
from waiting import Cancelled

_expected_errors = (ProviderError, UnresolvedReferenceError, UnsupportedResourceKind, Cancelled)


class ExecutionEngine:
    """Create resources level by level, each level concurrently.

    A level is dispatched only after the previous one settled, so every
    reference of a dispatched resource points to a resource whose result
    is already known. A failure does not stop the run: resources that
    depend on the failed one are skipped, the rest are created.
    """

    def __init__(
            self,
            provider: ProviderAdapter,
            retry_policy: Optional[RetryPolicy] = None,
            max_workers: int = 8,
            ):
        self._provider = provider
        self._retry_policy = retry_policy if retry_policy is not None else RetryPolicy()
        self._max_workers = max_workers

    def execute(
            self,
            graph: DependencyGraph,
            context: Optional[RunContext] = None,
            ) -> Mapping[str, ExecutionResult]:
        if context is None:
            context = RunContext()
        with ThreadPoolExecutor(self._max_workers, thread_name_prefix='create') as executor:
            for number, level in enumerate(graph.levels, 1):
                _logger.info("Level %d/%d: %s", number, len(graph.levels), ', '.join(level))
                futures = {}
                for name in level:
                    skipped = self._skipped(graph, name, context)
                    if skipped is not None:
                        context.record(name, skipped)
                        continue
                    future = executor.submit(self._create, graph.descriptor(name), context)
                    futures[future] = name
                for future in as_completed(futures):
                    context.record(futures[future], future.result())
        results = context.results()
        return {name: results[name] for name in graph.order()}

    @staticmethod
    def _skipped(graph: DependencyGraph, name: str, context: RunContext) -> Optional[Skipped]:
        if context.is_cancelled():
            return Skipped("cancelled")
        upstream = []
        for before in graph.predecessors(name):
            result = context.result(before)
            if isinstance(result, Failed):
                upstream.append(before)
            elif isinstance(result, Skipped):
                if not result.upstream:
                    return Skipped(result.reason)
                upstream.extend(result.upstream)
        if not upstream:
            return None
        upstream = [n for n in graph.order() if n in upstream]
        return Skipped(f"upstream failure: {', '.join(upstream)}", tuple(upstream))

    def _create(self, descriptor: ResourceDescriptor, context: RunContext) -> ExecutionResult:
        attempts = 0

        def count(attempt):
            nonlocal attempts
            attempts = attempt

        try:
            if descriptor.kind not in self._provider.capabilities():
                raise UnsupportedResourceKind(
                    f"{self._provider!r} cannot create {descriptor.kind.value}")
            create = {
                ResourceKind.DROPLET: self._provider.create_compute,
                ResourceKind.LOAD_BALANCER: self._provider.create_load_balancer,
                ResourceKind.VOLUME: self._provider.create_volume,
                }[descriptor.kind]
            attributes = dict(descriptor.attributes)
            to_attach = []
            if descriptor.kind is ResourceKind.DROPLET and 'volumes' in attributes:
                to_attach = [v.resource for v in attributes['volumes'] if isinstance(v, Reference)]
                attributes['volumes'] = [
                    v for v in attributes['volumes'] if not isinstance(v, Reference)]
                if not attributes['volumes']:
                    del attributes['volumes']
            spec = substitute(attributes, context.outputs_of)
            volumes = [self._created_handle(name, context) for name in to_attach]
            handle = self._retry_policy.call(
                f"create {descriptor!r}",
                lambda: create(descriptor.name, spec, context.cancelled),
                context.cancelled,
                count,
                )
            for volume in volumes:
                self._retry_policy.call(
                    f"attach {volume.name} to {descriptor.name}",
                    lambda: self._provider.attach_volume(handle, volume, context.cancelled),
                    context.cancelled,
                    )
        except _expected_errors as e:
            _logger.warning("%r failed: %s", descriptor, e)
            return Failed(e, attempts)
        except Exception as e:
            _logger.exception("%r failed unexpectedly", descriptor)
            return Failed(e, attempts)
        return Created(handle, attempts)

    @staticmethod
    def _created_handle(name, context):
        handle = context.handle(name)
        if handle is None:
            raise UnresolvedReferenceError(Reference(name, ['id']), f"{name} is not created")
        return handle


_logger = logging.getLogger(__name__)
