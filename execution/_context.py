# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import threading
from types import MappingProxyType
from typing import Any
from typing import Mapping
from typing import Optional

from cloud_provider import ResourceHandle
from execution._results import Created
from execution._results import ExecutionResult


class RunContext:
    """Everything one run accumulates; a new run gets a new context.

    Each result is recorded once. Workers only read results of resources
    from earlier levels, which are complete by the time they start.
    """

    def __init__(self):
        self._cancelled = threading.Event()
        self._results = {}
        self._lock = threading.Lock()

    def __repr__(self):
        return f'<{self.__class__.__name__} with {len(self._results)} results>'

    @property
    def cancelled(self) -> threading.Event:
        return self._cancelled

    def cancel(self):
        if not self._cancelled.is_set():
            _logger.warning("Cancellation requested; created resources are left as is")
        self._cancelled.set()

    def is_cancelled(self) -> bool:
        return self._cancelled.is_set()

    def record(self, name: str, result: ExecutionResult):
        with self._lock:
            if name in self._results:
                raise RuntimeError(f"Result of {name} is already recorded: {self._results[name]}")
            self._results[name] = result
        _logger.info("%s: %s", name, result.describe())

    def result(self, name: str) -> Optional[ExecutionResult]:
        with self._lock:
            return self._results.get(name)

    def results(self) -> Mapping[str, ExecutionResult]:
        with self._lock:
            return MappingProxyType(dict(self._results))

    def handle(self, name: str) -> Optional[ResourceHandle]:
        result = self.result(name)
        return result.handle if isinstance(result, Created) else None

    def outputs_of(self, name: str) -> Optional[Mapping[str, Any]]:
        handle = self.handle(name)
        return None if handle is None else handle.outputs


_logger = logging.getLogger(__name__)
