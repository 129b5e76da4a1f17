# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List
from typing import Optional
from typing import Sequence

from cloud_provider import ProviderAdapter
from cloud_provider import RetryPolicy
from convergence import SessionFactory
from convergence import SessionReport
from convergence import configure
from dependency_graph import resolve
from execution._context import RunContext
from execution._engine import ExecutionEngine
from execution._report import RunReport
from execution._results import Created
from manifest import Manifest
from manifest import RemoteBlock


def converge(
        manifest: Manifest,
        provider: ProviderAdapter,
        session_factory: SessionFactory,
        context: Optional[RunContext] = None,
        retry_policy: Optional[RetryPolicy] = None,
        max_workers: int = 8,
        ) -> RunReport:
    """Create resources, then configure hosts.

    Graph errors are raised before anything is created.
    """
    graph = resolve(manifest.descriptors)
    if context is None:
        context = RunContext()
    engine = ExecutionEngine(provider, retry_policy, max_workers)
    results = engine.execute(graph, context)
    sessions = configure_hosts(manifest.blocks, session_factory, context, max_workers)
    return RunReport(results, sessions)


def configure_hosts(
        blocks: Sequence[RemoteBlock],
        session_factory: SessionFactory,
        context: RunContext,
        max_workers: int = 8,
        ) -> List[SessionReport]:
    """Run remote blocks concurrently; each block is one sequential session."""
    reports = [None] * len(blocks)
    futures = {}
    with ThreadPoolExecutor(max_workers, thread_name_prefix='session') as executor:
        for i, block in enumerate(blocks):
            not_created = [
                name for name in block.dependencies()
                if not isinstance(context.result(name), Created)]
            if context.is_cancelled():
                reports[i] = SessionReport(block.name, None, [], skipped="cancelled")
            elif not_created:
                reports[i] = SessionReport(
                    block.name, None, [],
                    skipped=f"upstream not created: {', '.join(not_created)}")
            else:
                futures[i] = executor.submit(
                    configure,
                    session_factory, block.name, block.host, block.steps,
                    context.outputs_of, context.cancelled)
        for i, future in futures.items():
            try:
                reports[i] = future.result()
            except Exception as e:
                _logger.exception("Session %s failed unexpectedly", blocks[i].name)
                reports[i] = SessionReport(
                    blocks[i].name, None, [], error=f"{e.__class__.__name__}: {e}")
    for report in reports:
        if report.skipped is not None:
            _logger.warning("Session %s skipped: %s", report.name, report.skipped)
    return reports


_logger = logging.getLogger(__name__)
