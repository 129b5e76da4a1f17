# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
from typing import Optional


class ProviderError(Exception):
    """Provider refused or failed a request; the provider decides how bad it is."""

    classification = 'Unclassified'

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class TransientProviderError(ProviderError):
    """Rate limiting, network hiccup, provider-side 5xx: worth retrying."""

    classification = 'Transient'


class PermanentProviderError(ProviderError):
    """Invalid spec, exhausted quota: retrying changes nothing."""

    classification = 'Permanent'


class UnsupportedResourceKind(Exception):
    pass
