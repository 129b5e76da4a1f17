# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
"""Run a manifest: create resources in dependency order, then configure hosts.

Nothing is persisted between runs and nothing is rolled back: resources
created before a failure or cancellation stay as they are and are
reported as created.
"""
from execution._context import RunContext
from execution._engine import ExecutionEngine
from execution._plan import plan
from execution._report import RunReport
from execution._report import format_report
from execution._results import Created
from execution._results import ExecutionResult
from execution._results import Failed
from execution._results import Skipped
from execution._run import configure_hosts
from execution._run import converge
from waiting import Cancelled

__all__ = [
    'Cancelled',
    'Created',
    'ExecutionEngine',
    'ExecutionResult',
    'Failed',
    'RunContext',
    'RunReport',
    'Skipped',
    'configure_hosts',
    'converge',
    'format_report',
    'plan',
    ]
