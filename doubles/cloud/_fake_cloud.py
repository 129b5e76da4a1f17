# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import itertools
import logging
import threading
import zlib
from typing import Collection
from typing import Dict
from typing import List
from typing import Mapping
from typing import Optional
from typing import Tuple

from cloud_provider import ProviderAdapter
from cloud_provider import ResourceHandle
from declaration import ResourceKind
from waiting import Cancelled

_logger = logging.getLogger(__name__)


class FakeCloud(ProviderAdapter):
    """In-memory provider with scripted failures.

    Failures are queued per resource name and consumed one per call.
    Names given to rendezvous() block on their first call until all of them
    are called, which proves they were dispatched concurrently.
    """

    def __init__(
            self,
            kinds: Collection[ResourceKind] = tuple(ResourceKind),
            addresses: Optional[Mapping[str, str]] = None,
            ):
        self._kinds = frozenset(kinds)
        self._addresses = dict(addresses or {})
        self._lock = threading.Lock()
        self._failures = {}
        self._ids = itertools.count(1001)
        self._rendezvous_names = frozenset()
        self._barrier = None
        self._blocked = {}
        self.calls: List[Tuple[str, str]] = []
        self.attachments: List[Tuple[str, str]] = []
        self.specs: Dict[str, Mapping] = {}

    def fail(self, name: str, *errors: Exception):
        with self._lock:
            self._failures.setdefault(name, []).extend(errors)

    def rendezvous(self, names: Collection[str], timeout_sec: float = 10):
        self._rendezvous_names = frozenset(names)
        self._barrier = threading.Barrier(len(self._rendezvous_names), timeout=timeout_sec)

    def block(self, name: str) -> threading.Event:
        """Make creation of the resource hang until the event or cancellation."""
        release = threading.Event()
        self._blocked[name] = release
        return release

    def attempts(self, name: str) -> int:
        with self._lock:
            return sum(1 for _operation, called in self.calls if called == name)

    def capabilities(self):
        return self._kinds

    def create_compute(self, name, spec, cancelled):
        self._call('create_compute', name, cancelled)
        self.specs[name] = dict(spec)
        n = next(self._ids)
        return ResourceHandle(ResourceKind.DROPLET, name, str(n), {
            'ip': self._addresses.get(name, f'203.0.113.{_host_number(name)}'),
            'private_ip': f'10.110.0.{_host_number(name)}',
            'region': spec.get('region', 'nyc3'),
            'status': 'active',
            })

    def create_load_balancer(self, name, spec, cancelled):
        self._call('create_load_balancer', name, cancelled)
        self.specs[name] = dict(spec)
        n = next(self._ids)
        return ResourceHandle(ResourceKind.LOAD_BALANCER, name, f'lb-{n}', {
            'ip': f'198.51.100.{n % 250}',
            'status': 'active',
            'droplet_ids': list(spec.get('droplet_ids', [])),
            })

    def create_volume(self, name, spec, cancelled):
        self._call('create_volume', name, cancelled)
        self.specs[name] = dict(spec)
        n = next(self._ids)
        return ResourceHandle(ResourceKind.VOLUME, name, f'vol-{n}', {
            'region': spec.get('region', 'nyc3'),
            'size_gigabytes': spec.get('size_gigabytes', 10),
            'mount_point': '/mnt/' + name.replace('-', '_'),
            })

    def attach_volume(self, compute, volume, cancelled):
        self._call('attach_volume', f'{volume.name}@{compute.name}', cancelled)
        with self._lock:
            self.attachments.append((compute.name, volume.name))

    def _call(self, operation: str, name: str, cancelled: threading.Event):
        with self._lock:
            first_call = all(called != name for _operation, called in self.calls)
            self.calls.append((operation, name))
            failures = self._failures.get(name, [])
            error = failures.pop(0) if failures else None
        _logger.info("%s %s", operation, name)
        if first_call and name in self._rendezvous_names:
            self._barrier.wait()
        release = self._blocked.get(name)
        if release is not None:
            while not release.wait(0.05):
                if cancelled.is_set():
                    raise Cancelled(f"Cancelled while creating {name}")
        if error is not None:
            raise error


def _host_number(name: str) -> int:
    """Same address for the same name in every run."""
    return zlib.crc32(name.encode()) % 250 + 2
