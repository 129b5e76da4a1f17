# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
from abc import ABCMeta
from abc import abstractmethod
from enum import Enum
from typing import Any
from typing import Iterable
from typing import Mapping
from typing import NamedTuple
from typing import Optional

from declaration import OutputsOf
from declaration import Reference
from declaration import extract_references
from declaration import substitute
from remote_shell import CommandFailed


class Action(Enum):
    NOOP = 'noop'
    CREATE = 'create'
    UPDATE = 'update'
    RESTART = 'restart'
    REMOVE = 'remove'
    START = 'start'
    STOP = 'stop'


class StepFailure(Exception):
    """A step could not query or change the host.

    The action is the one that was being taken, None if the step failed
    before deciding. Likewise, the enablement is the enablement
    action taken or being taken when the step failed, None if there was none.
    """

    def __init__(
            self,
            step: 'ConvergenceStep',
            action: Optional[Action],
            message: str,
            enablement: Optional[Action] = None,
            ):
        super().__init__(f"{step!r}: {message}")
        self.step = step
        self.action = action
        self.enablement = enablement


class StepResult(NamedTuple):
    step: 'ConvergenceStep'
    action: Optional[Action]
    enablement: Optional[Action]
    success: bool
    error: Optional[str]

    def changed(self) -> bool:
        if self.action not in (None, Action.NOOP):
            return True
        return self.enablement not in (None, Action.NOOP)


class ConvergenceStep(metaclass=ABCMeta):
    """Desired state of one thing on a host, applied against the live state.

    Steps hold no state between runs: every apply() asks the host first,
    so applying a step twice changes nothing the second time.
    Parameters may hold references to resource outputs; resolve() returns
    a copy with the references replaced.
    """

    kind: str

    @abstractmethod
    def params(self) -> Mapping[str, Any]:
        """Constructor keyword arguments; also the declared form of the step."""
        pass

    @abstractmethod
    def current_state(self, session):
        pass

    @abstractmethod
    def reconcile(self, state, session) -> Action:
        pass

    @abstractmethod
    def _take(self, action: Action, session):
        pass

    def __repr__(self):
        args = ', '.join(f'{k}={v!r}' for k, v in self.params().items() if v is not None)
        return f'{self.__class__.__name__}({args})'

    def __eq__(self, other):
        if not isinstance(other, ConvergenceStep):
            return NotImplemented
        return type(self) is type(other) and self.params() == other.params()

    def __hash__(self):
        return hash(type(self))

    def references(self) -> Iterable[Reference]:
        return extract_references(self.params())

    def resolve(self, outputs_of: OutputsOf) -> 'ConvergenceStep':
        return self.__class__(**substitute(self.params(), outputs_of))

    def apply(self, session) -> StepResult:
        action = self.reconcile(self._current_state_checked(session), session)
        self._take_checked(action, session)
        return StepResult(self, action, None, True, None)

    def _current_state_checked(self, session):
        try:
            return self.current_state(session)
        except CommandFailed as e:
            raise StepFailure(self, None, str(e))

    def _take_checked(self, action: Action, session):
        if action is Action.NOOP:
            _logger.info("%r: nothing to do", self)
            return
        _logger.info("%r: %s", self, action.value)
        try:
            self._take(action, session)
        except CommandFailed as e:
            raise StepFailure(self, action, str(e))


_logger = logging.getLogger(__name__)
