# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import hashlib
import logging
import threading
from typing import Callable
from typing import Collection
from typing import List
from typing import Mapping
from typing import Optional
from typing import Sequence
from typing import Tuple

from convergence import RemoteSession
from convergence import SessionFactory
from convergence import UnreachableHostError
from remote_shell import PosixShell
from remote_shell import Run
from remote_shell import command_to_script

_Outcome = Tuple[int, bytes, bytes]


class _FakeRun(Run):
    """Runs the command once stdin is closed, then streams the output."""

    def __init__(self, host: 'FakeHost', args: Sequence[str], reads_stdin: bool):
        super().__init__(args)
        self._host = host
        self._stdin = bytearray()
        self._stdin_closed = not reads_stdin
        self._outcome: Optional[_Outcome] = None
        self._streams = None

    @property
    def returncode(self):
        if self._outcome is None and self._stdin_closed:
            self._outcome = self._host.execute(self.args, bytes(self._stdin))
            [_, stdout, stderr] = self._outcome
            self._streams = [[stdout], [stderr]]
        return None if self._outcome is None else self._outcome[0]

    def receive(self, timeout_sec):
        if self._streams is None:
            return [b'', b'']
        return [stream.pop(0) if stream else None for stream in self._streams]

    def send(self, data, is_last=False):
        self._stdin.extend(data)
        if is_last:
            self._stdin_closed = True
        return len(data)

    def close(self):
        pass


class FakeHost(PosixShell):
    """Debian host with dpkg, coreutils and systemd, emulated in memory.

    Only the exact commands the convergence steps send are understood;
    anything else exits with 127. Privilege escalation with sudo is
    accepted and recorded.
    """

    def __init__(
            self,
            packages: Collection[str] = (),
            files: Optional[Mapping[str, bytes]] = None,
            units: Optional[Mapping[str, Tuple[bool, bool]]] = None,
            reachable: bool = True,
            ):
        self.packages = set(packages)
        self.files = dict(files or {})
        self.modes = {}
        # Unit name to (running, enabled).
        self.units = {name: list(state) for name, state in (units or {}).items()}
        self.reachable = reachable
        self.commands: List[str] = []
        self.sudo_commands: List[str] = []
        self.mutations: List[Tuple[str, str]] = []
        self.sessions_opened = 0
        self.sessions_closed = 0
        self._failures = []
        self._hooks = []
        self._lock = threading.Lock()

    def fail(self, prefix: Sequence[str], returncode: int = 1, stderr: bytes = b'failed'):
        """Make the next command starting with the prefix fail."""
        self._failures.append((tuple(prefix), returncode, stderr))

    def after(self, prefix: Sequence[str], callback: Callable[[], None]):
        self._hooks.append((tuple(prefix), callback))

    def is_working(self):
        return self.reachable

    def close(self):
        self.sessions_closed += 1

    def Popen(self, args):
        if isinstance(args, str):
            raise NotImplementedError("Only argument lists are understood")
        return _FakeRun(self, list(args), '/dev/stdin' in args)

    def execute(self, args: Sequence[str], stdin: bytes) -> _Outcome:
        with self._lock:
            args = list(args)
            if args[:2] == ['sudo', '-n']:
                args = args[2:]
                self.sudo_commands.append(command_to_script(args))
            self.commands.append(command_to_script(args))
            _logger.info("Fake host: %s", command_to_script(args))
            outcome = self._injected_failure(args)
            if outcome is None:
                outcome = self._dispatch(args, stdin)
            hooks = [callback for prefix, callback in self._hooks if tuple(args[:len(prefix)]) == prefix]
        for callback in hooks:
            callback()
        return outcome

    def _injected_failure(self, args) -> Optional[_Outcome]:
        for failure in self._failures:
            [prefix, returncode, stderr] = failure
            if tuple(args[:len(prefix)]) == prefix:
                self._failures.remove(failure)
                return returncode, b'', stderr
        return None

    def _dispatch(self, args, stdin) -> _Outcome:
        if args[:3] == ['dpkg-query', '-W', '-f=${Status}'] and len(args) == 4:
            if args[3] in self.packages:
                return 0, b'install ok installed', b''
            return 1, b'', f'dpkg-query: no packages found matching {args[3]}\n'.encode()
        if args[:2] == ['env', 'DEBIAN_FRONTEND=noninteractive']:
            return self._apt_get(args[2:])
        if args[0] == 'sha256sum' and len(args) == 2:
            data = self.files.get(args[1])
            if data is None:
                return 1, b'', f'sha256sum: {args[1]}: No such file or directory\n'.encode()
            return 0, f'{hashlib.sha256(data).hexdigest()}  {args[1]}\n'.encode(), b''
        if args[:2] == ['install', '-D'] and args[-2] == '/dev/stdin':
            [mode] = [args[i + 1] for i, arg in enumerate(args) if arg == '-m']
            self.files[args[-1]] = stdin
            self.modes[args[-1]] = mode
            self.mutations.append(('write', args[-1]))
            return 0, b'', b''
        if args[0] == 'systemctl' and len(args) >= 3:
            return self._systemctl(args[1:-1], args[-1])
        return 127, b'', f'{args[0]}: command not found\n'.encode()

    def _apt_get(self, args) -> _Outcome:
        name = args[-1]
        if args[:3] == ['apt-get', 'install', '-y']:
            self.packages.add(name)
            self.mutations.append(('install', name))
            return 0, f'Setting up {name} ...\n'.encode(), b''
        if args[:3] == ['apt-get', 'remove', '-y']:
            self.packages.discard(name)
            self.mutations.append(('remove', name))
            return 0, f'Removing {name} ...\n'.encode(), b''
        return 100, b'', b'E: Invalid operation\n'

    def _systemctl(self, verb: Sequence[str], unit: str) -> _Outcome:
        state = self.units.get(unit)
        if verb == ['show', '-p', 'LoadState,ActiveState']:
            if state is None:
                return 0, b'LoadState=not-found\nActiveState=inactive\n', b''
            active = 'active' if state[0] else 'inactive'
            return 0, f'LoadState=loaded\nActiveState={active}\n'.encode(), b''
        if state is None:
            return 5, b'', f'Failed to {verb[0]} {unit}: Unit {unit} not found.\n'.encode()
        if verb == ['is-enabled']:
            return (0, b'enabled\n', b'') if state[1] else (1, b'disabled\n', b'')
        [verb] = verb
        if verb in ('start', 'restart'):
            state[0] = True
        elif verb == 'stop':
            state[0] = False
        elif verb in ('enable', 'disable'):
            state[1] = verb == 'enable'
        else:
            return 1, b'', f'Unknown command verb {verb}.\n'.encode()
        self.mutations.append((verb, unit))
        return 0, b'', b''


class FakeSessionFactory(SessionFactory):

    def __init__(self, hosts: Mapping[str, FakeHost], username: str = 'root'):
        self._hosts = hosts
        self._username = username
        self.addresses_opened: List[str] = []

    def open(self, address, cancelled):
        host = self._hosts.get(address)
        if host is None or not host.is_working():
            raise UnreachableHostError(address, "Timed out waiting for SSH")
        self.addresses_opened.append(address)
        host.sessions_opened += 1
        return RemoteSession(host, address, self._username, cancelled)


_logger = logging.getLogger(__name__)
