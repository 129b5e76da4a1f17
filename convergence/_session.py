# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import threading
from abc import ABCMeta
from abc import abstractmethod
from contextlib import contextmanager
from subprocess import CompletedProcess
from subprocess import TimeoutExpired
from typing import Any
from typing import List
from typing import NamedTuple
from typing import Optional
from typing import Sequence

from convergence._core import ConvergenceStep
from convergence._core import StepFailure
from convergence._core import StepResult
from declaration import OutputsOf
from declaration import UnresolvedReferenceError
from declaration import substitute
from remote_shell import PosixShell
from remote_shell import Ssh
from remote_shell import SshNotConnected
from waiting import Cancelled
from waiting import WaitTimeout
from waiting import wait_for_truthy


class UnreachableHostError(Exception):

    def __init__(self, address: str, message: str):
        super().__init__(f"{address}: {message}")
        self.address = address


class RemoteSession:
    """Commands on one host through one channel, with results of earlier steps."""

    def __init__(
            self,
            shell: PosixShell,
            address: str,
            username: str = 'root',
            cancelled: Optional[threading.Event] = None,
            command_timeout_sec: float = 600,
            ):
        self._shell = shell
        self.address = address
        self._username = username
        self._cancelled = cancelled if cancelled is not None else threading.Event()
        self._command_timeout_sec = command_timeout_sec
        self.results: List[StepResult] = []

    def __repr__(self):
        return f'<{self.__class__.__name__} {self._username}@{self.address}>'

    def run(self, args: Sequence[str], input=None, check=True, privileged=False) -> CompletedProcess:  # noqa PyShadowingBuiltins
        if privileged and self._username != 'root':
            args = ['sudo', '-n', *args]
        return self._shell.run(
            args, input=input, timeout_sec=self._command_timeout_sec, check=check)

    def changed_earlier(self) -> bool:
        return any(result.changed() for result in self.results)

    def check_cancelled(self):
        if self._cancelled.is_set():
            raise Cancelled(f"Cancelled during session with {self.address}")

    def close(self):
        self._shell.close()


class SessionFactory(metaclass=ABCMeta):

    @abstractmethod
    def open(self, address: str, cancelled: threading.Event) -> RemoteSession:
        """Block until the host accepts a session; raise UnreachableHostError on timeout."""
        pass


class SshSessionFactory(SessionFactory):

    def __init__(
            self,
            username: str = 'root',
            port: int = 22,
            key: Optional[str] = None,
            connect_timeout_sec: float = 180,
            command_timeout_sec: float = 600,
            ):
        self._username = username
        self._port = port
        self._key = key
        self._connect_timeout_sec = connect_timeout_sec
        self._command_timeout_sec = command_timeout_sec

    def open(self, address, cancelled):
        ssh = Ssh(address, self._port, self._username, self._key)
        try:
            # A fresh droplet has an address long before sshd listens.
            wait_for_truthy(
                ssh.is_working,
                description=f"{ssh} accepts connections",
                timeout_sec=self._connect_timeout_sec,
                max_delay_sec=10,
                cancelled=cancelled,
                )
        except WaitTimeout as e:
            ssh.close()
            raise UnreachableHostError(address, str(e))
        except (SshNotConnected, OSError) as e:
            ssh.close()
            raise UnreachableHostError(address, str(e))
        except Cancelled:
            ssh.close()
            raise
        return RemoteSession(
            ssh, address, self._username, cancelled, self._command_timeout_sec)


@contextmanager
def with_session(factory: SessionFactory, address: str, cancelled: threading.Event):
    session = factory.open(address, cancelled)
    _logger.info("Session opened: %r", session)
    try:
        yield session
    finally:
        session.close()
        _logger.info("Session closed: %r", session)


def apply(session: RemoteSession, steps: Sequence[ConvergenceStep]) -> List[StepResult]:
    """Apply steps in order; the first failure ends the session.

    Results are also appended to the session so that later steps can see
    what earlier ones did. Cancellation is checked before each step.
    """
    for step in steps:
        session.check_cancelled()
        try:
            result = step.apply(session)
        except StepFailure as e:
            _logger.warning("%r: %s", session, e)
            result = StepResult(step, e.action, e.enablement, False, str(e))
        except TimeoutExpired as e:
            _logger.warning("%r: %r timed out: %s", session, step, e)
            result = StepResult(step, None, None, False, f"TimeoutExpired: {e}")
        except Exception as e:
            _logger.exception("%r: %r failed unexpectedly", session, step)
            result = StepResult(step, None, None, False, f"{e.__class__.__name__}: {e}")
        session.results.append(result)
        if not result.success:
            break
    return list(session.results)


class SessionReport(NamedTuple):
    name: str
    address: Optional[str]
    results: Sequence[StepResult]
    error: Optional[str] = None
    skipped: Optional[str] = None

    def is_success(self) -> bool:
        if self.error is not None or self.skipped is not None:
            return False
        return all(result.success for result in self.results)


def configure(
        factory: SessionFactory,
        name: str,
        host: Any,
        steps: Sequence[ConvergenceStep],
        outputs_of: OutputsOf,
        cancelled: threading.Event,
        ) -> SessionReport:
    """Resolve a remote block against produced outputs and converge the host.

    Never raises for failures of the host or the steps: they are reported.
    """
    try:
        address = substitute(host, outputs_of)
        resolved = [step.resolve(outputs_of) for step in steps]
    except (UnresolvedReferenceError, ValueError) as e:
        return SessionReport(name, None, [], error=f"{e.__class__.__name__}: {e}")
    if not isinstance(address, str):
        return SessionReport(name, None, [], error=f"Host address is not a string: {address!r}")
    session = None
    try:
        with with_session(factory, address, cancelled) as session:
            results = apply(session, resolved)
    except (UnreachableHostError, Cancelled) as e:
        _logger.warning("Session %s: %s", name, e)
        results = session.results if session is not None else []
        return SessionReport(name, address, results, error=f"{e.__class__.__name__}: {e}")
    return SessionReport(name, address, results)


_logger = logging.getLogger(__name__)
