# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import os
import shlex
from abc import ABCMeta
from abc import abstractmethod
from textwrap import dedent

from remote_shell._command import Shell


def quote_arg(arg):
    return shlex.quote(str(arg))


def command_to_script(command):
    """Join args into a single line for sh.

    >>> command_to_script(['install', '-m', 0o644, '/etc/nginx/conf.d/site one.conf'])
    "install -m 420 '/etc/nginx/conf.d/site one.conf'"
    """
    str_args = []
    for arg in command:
        if isinstance(arg, str):
            str_args.append(arg)
        elif isinstance(arg, int) and not isinstance(arg, bool):
            str_args.append(str(arg))
        elif isinstance(arg, os.PathLike):
            str_args.append(os.fspath(arg))
        else:
            raise TypeError(f"Unsupported arg type {arg} in command {command}")
    return shlex.join(str_args)


def augment_script(script, set_eux=True):
    lines = []
    if set_eux:
        lines.append('set -eux')  # It's sh (dash), pipefail cannot be set here.
    lines.append(dedent(script).strip())
    return '\n'.join(lines)


def to_script(args) -> str:
    """A string is a shell script, a list is an executable with args."""
    if isinstance(args, str):
        return augment_script(args, set_eux=True)
    return command_to_script(args)


class PosixShell(Shell, metaclass=ABCMeta):

    @abstractmethod
    def is_working(self) -> bool:
        pass

    @abstractmethod
    def close(self):
        pass
