# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
from typing import NamedTuple
from typing import Sequence
from typing import Union

from cloud_provider import ResourceHandle


class Created(NamedTuple):
    handle: ResourceHandle
    attempts: int

    def describe(self) -> str:
        return f"Created id={self.handle.id} ({_attempts(self.attempts)})"


class Failed(NamedTuple):
    error: Exception
    attempts: int

    @property
    def kind(self) -> str:
        return self.error.__class__.__name__

    @property
    def detail(self) -> str:
        return str(self.error)

    def describe(self) -> str:
        return f"Failed {self.kind}: {self.detail} ({_attempts(self.attempts)})"


class Skipped(NamedTuple):
    reason: str
    # Failed resources this one could not do without.
    upstream: Sequence[str] = ()

    def describe(self) -> str:
        return f"Skipped: {self.reason}"


ExecutionResult = Union[Created, Failed, Skipped]


def _attempts(count: int) -> str:
    """Plural form.

    >>> _attempts(1), _attempts(3)
    ('1 attempt', '3 attempts')
    """
    return f"{count} attempt" if count == 1 else f"{count} attempts"
