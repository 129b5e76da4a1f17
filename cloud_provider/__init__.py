# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
"""Cloud backends behind one interface.

The engine does not know provider semantics; it only calls create and
attach operations and reads produced outputs from handles. Whether a
failure is worth retrying is decided by the backend: it raises either
a transient or a permanent provider error.
"""
from cloud_provider._digitalocean import DigitalOceanProvider
from cloud_provider._exceptions import PermanentProviderError
from cloud_provider._exceptions import ProviderError
from cloud_provider._exceptions import TransientProviderError
from cloud_provider._exceptions import UnsupportedResourceKind
from cloud_provider._provider_interface import ProviderAdapter
from cloud_provider._provider_interface import ResourceHandle
from cloud_provider._retry import RetryPolicy

__all__ = [
    'DigitalOceanProvider',
    'PermanentProviderError',
    'ProviderAdapter',
    'ProviderError',
    'ResourceHandle',
    'RetryPolicy',
    'TransientProviderError',
    'UnsupportedResourceKind',
    ]
