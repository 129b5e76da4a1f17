# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
from typing import NamedTuple
from typing import Optional

from convergence._core import Action
from convergence._core import ConvergenceStep
from convergence._core import StepFailure
from convergence._core import StepResult
from remote_shell import CommandFailed

_run_actions = ('start', 'stop', 'restart')
_restart_policies = ('always', 'on_change')


class UnitState(NamedTuple):
    active_state: str
    enabled: bool

    def running(self) -> bool:
        return self.active_state in ('active', 'activating', 'reloading')

    def describe(self) -> str:
        """Stopped, running, or enabled and running.

        >>> UnitState('active', True).describe()
        'enabled+running'
        >>> UnitState('failed', True).describe()
        'stopped'
        """
        if not self.running():
            return 'stopped'
        return 'enabled+running' if self.enabled else 'running'


class ServiceUnit(ConvergenceStep):
    """Systemd unit: enablement and a run action, reported separately.

    The run action 'restart' is imperative: with the 'always' policy it
    restarts the unit on every run. With 'on_change' it restarts only when an
    earlier step of the same session changed the host, and otherwise makes
    sure the unit runs. 'start' and 'stop' converge like any other step.
    """

    kind = 'service_unit'

    def __init__(
            self,
            name: str,
            enabled: Optional[bool] = None,
            action: Optional[str] = None,
            restart_policy: str = 'always',
            ):
        if action is not None and action not in _run_actions:
            raise ValueError(f"Unit action must be one of {_run_actions}, got {action!r}")
        if restart_policy not in _restart_policies:
            raise ValueError(
                f"Restart policy must be one of {_restart_policies}, got {restart_policy!r}")
        self._name = name
        self._enabled = enabled
        self._action = action
        self._restart_policy = restart_policy

    def params(self):
        return {
            'name': self._name,
            'enabled': self._enabled,
            'action': self._action,
            'restart_policy': self._restart_policy,
            }

    def current_state(self, session):
        result = session.run(['systemctl', 'show', '-p', 'LoadState,ActiveState', self._name])
        data = dict(
            line.split('=', 1)
            for line in result.stdout.decode('ascii').splitlines()
            if '=' in line)
        if data.get('LoadState') == 'not-found':
            raise StepFailure(self, None, f"Unit {self._name} not found")
        # is-enabled exits with 1 for disabled units; it is not an error here.
        enabled = session.run(['systemctl', 'is-enabled', self._name], check=False)
        return UnitState(
            data.get('ActiveState', 'unknown'),
            enabled.stdout.decode('ascii').strip() in ('enabled', 'enabled-runtime'),
            )

    def reconcile(self, state, session):
        if self._action == 'restart':
            if self._restart_policy == 'always' or session.changed_earlier():
                return Action.RESTART
            return Action.NOOP if state.running() else Action.START
        if self._action == 'start':
            return Action.NOOP if state.running() else Action.START
        if self._action == 'stop':
            return Action.STOP if state.running() else Action.NOOP
        return Action.NOOP

    def reconcile_enablement(self, state) -> Optional[Action]:
        """Separate from the run action; None if enablement is not managed.

        >>> ServiceUnit('nginx', enabled=True).reconcile_enablement(UnitState('active', True))
        <Action.NOOP: 'noop'>
        >>> ServiceUnit('nginx', enabled=True).reconcile_enablement(UnitState('inactive', False))
        <Action.UPDATE: 'update'>
        >>> ServiceUnit('nginx').reconcile_enablement(UnitState('inactive', False)) is None
        True
        """
        if self._enabled is None:
            return None
        return Action.NOOP if state.enabled == self._enabled else Action.UPDATE

    def apply(self, session):
        state = self._current_state_checked(session)
        enablement = self.reconcile_enablement(state)
        if enablement is Action.UPDATE:
            verb = 'enable' if self._enabled else 'disable'
            _logger.info("%r: %s", self, verb)
            try:
                session.run(['systemctl', verb, self._name], privileged=True)
            except CommandFailed as e:
                raise StepFailure(self, None, f"{verb}: {e}", enablement)
        action = self.reconcile(state, session)
        try:
            self._take_checked(action, session)
        except StepFailure as e:
            e.enablement = enablement
            raise
        return StepResult(self, action, enablement, True, None)

    def _take(self, action, session):
        # Run actions are named after systemctl verbs.
        session.run(['systemctl', action.value, self._name], privileged=True)


_logger = logging.getLogger(__name__)
