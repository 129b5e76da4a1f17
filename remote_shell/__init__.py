# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
from remote_shell._command import DEFAULT_RUN_TIMEOUT_SEC
from remote_shell._command import Run
from remote_shell._command import Shell
from remote_shell._exceptions import CommandFailed
from remote_shell._exceptions import SshNotConnected
from remote_shell._posix_shell import PosixShell
from remote_shell._posix_shell import command_to_script
from remote_shell._posix_shell import quote_arg
from remote_shell._ssh_shell import Ssh

__all__ = [
    'CommandFailed',
    'DEFAULT_RUN_TIMEOUT_SEC',
    'PosixShell',
    'Run',
    'Shell',
    'Ssh',
    'SshNotConnected',
    'command_to_script',
    'quote_arg',
    ]
