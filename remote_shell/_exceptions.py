# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
from subprocess import CalledProcessError


class CommandFailed(CalledProcessError):
    """Non-zero exit status of a remote command; stderr is included in the message."""

    def __str__(self):
        stderr = (self.stderr or b'').decode(errors='backslashreplace')[:5000].strip()
        if self.returncode is None:
            result = "no exit status"
        else:
            result = f"exit status {self.returncode}"
        return f"Command {self.cmd} died with {result}: {stderr}"


class SshNotConnected(Exception):

    def __init__(self, ssh, message):
        super().__init__(message)
        self.ssh = ssh
