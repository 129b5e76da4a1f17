# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
from enum import Enum

from convergence._core import Action
from convergence._core import ConvergenceStep


class PackageState(Enum):
    ABSENT = 'absent'
    PRESENT = 'present'


class Package(ConvergenceStep):
    """Debian package installed or removed with apt-get.

    >>> Package('postgresql').reconcile(PackageState.PRESENT, None)
    <Action.NOOP: 'noop'>
    >>> Package('postgresql').reconcile(PackageState.ABSENT, None)
    <Action.CREATE: 'create'>
    >>> Package('telnetd', present=False).reconcile(PackageState.PRESENT, None)
    <Action.REMOVE: 'remove'>
    """

    kind = 'package'

    def __init__(self, name: str, present: bool = True):
        self._name = name
        self._present = present

    def params(self):
        return {'name': self._name, 'present': self._present}

    def current_state(self, session):
        # Exit status is non-zero if dpkg has never heard of the package.
        result = session.run(
            ['dpkg-query', '-W', '-f=${Status}', self._name], check=False)
        status = result.stdout.decode('ascii', errors='replace').strip()
        if result.returncode == 0 and status.endswith(' installed'):
            return PackageState.PRESENT
        return PackageState.ABSENT

    def reconcile(self, state, session):
        if self._present and state is PackageState.ABSENT:
            return Action.CREATE
        if not self._present and state is PackageState.PRESENT:
            return Action.REMOVE
        return Action.NOOP

    def _take(self, action, session):
        if action is Action.CREATE:
            session.run([
                'env', 'DEBIAN_FRONTEND=noninteractive',
                'apt-get', 'install', '-y', '--no-install-recommends', self._name,
                ], privileged=True)
        elif action is Action.REMOVE:
            session.run([
                'env', 'DEBIAN_FRONTEND=noninteractive',
                'apt-get', 'remove', '-y', self._name,
                ], privileged=True)
        else:
            raise RuntimeError(f"{self!r} cannot {action.value}")
