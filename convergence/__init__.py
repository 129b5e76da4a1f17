# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
"""Converge remote hosts to a declared state.

Every step is formulated as desired state, not as a command.
A step asks the host for the current state first and acts only on
difference, so the second run changes nothing. The only exception is the
imperative service restart, which is an explicit request to act.

Steps of one host run strictly one after another through a single
session: a later step may rely on an earlier one, e.g. a restart relies on
a configuration file written before it. The first failing step ends the
session. Other sessions are not affected.
"""
from convergence._core import Action
from convergence._core import ConvergenceStep
from convergence._core import StepFailure
from convergence._core import StepResult
from convergence._file import File
from convergence._file import FileState
from convergence._package import Package
from convergence._package import PackageState
from convergence._service_unit import ServiceUnit
from convergence._service_unit import UnitState
from convergence._session import RemoteSession
from convergence._session import SessionFactory
from convergence._session import SessionReport
from convergence._session import SshSessionFactory
from convergence._session import UnreachableHostError
from convergence._session import apply
from convergence._session import configure
from convergence._session import with_session

__all__ = [
    'Action',
    'ConvergenceStep',
    'File',
    'FileState',
    'Package',
    'PackageState',
    'RemoteSession',
    'ServiceUnit',
    'SessionFactory',
    'SessionReport',
    'SshSessionFactory',
    'StepFailure',
    'StepResult',
    'UnitState',
    'UnreachableHostError',
    'apply',
    'configure',
    'with_session',
    ]
