# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import threading
from abc import ABCMeta
from abc import abstractmethod
from types import MappingProxyType
from typing import Any
from typing import Collection
from typing import Mapping

from declaration import ResourceKind


class ResourceHandle:
    """What the provider returned for a created resource.

    Outputs always include "id" and "name"; the rest depends on the kind.
    """

    def __init__(self, kind: ResourceKind, name: str, id: str, outputs: Mapping[str, Any]):  # noqa PyShadowingBuiltins
        self.kind = kind
        self.name = name
        self.id = id
        self.outputs = MappingProxyType({**outputs, 'id': id, 'name': name})

    def __repr__(self):
        return f'<{self.__class__.__name__} {self.kind.value} {self.name} id={self.id}>'


class ProviderAdapter(metaclass=ABCMeta):
    """Capabilities of a cloud backend, one implementation per backend.

    Calls must be safe to repeat: the caller retries transient errors, so
    a repeated create must not produce a second resource. Long operations
    must give up promptly when the cancellation event is set.
    """

    @abstractmethod
    def capabilities(self) -> Collection[ResourceKind]:
        pass

    @abstractmethod
    def create_compute(
            self,
            name: str,
            spec: Mapping[str, Any],
            cancelled: threading.Event,
            ) -> ResourceHandle:
        pass

    @abstractmethod
    def create_load_balancer(
            self,
            name: str,
            spec: Mapping[str, Any],
            cancelled: threading.Event,
            ) -> ResourceHandle:
        pass

    @abstractmethod
    def create_volume(
            self,
            name: str,
            spec: Mapping[str, Any],
            cancelled: threading.Event,
            ) -> ResourceHandle:
        pass

    @abstractmethod
    def attach_volume(
            self,
            compute: ResourceHandle,
            volume: ResourceHandle,
            cancelled: threading.Event,
            ):
        pass
