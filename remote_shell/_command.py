# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import time
from abc import ABCMeta
from abc import abstractmethod
from subprocess import CompletedProcess
from subprocess import SubprocessError
from subprocess import TimeoutExpired
from typing import Optional
from typing import Sequence
from typing import Tuple
from typing import Union

from remote_shell._exceptions import CommandFailed

DEFAULT_RUN_TIMEOUT_SEC = 60

_Bytes = Union[bytes, bytearray, memoryview]


class _Buffer:

    def __init__(self, name):
        self._name = name
        self._chunks = []
        self.closed = False

    def write(self, chunk: Optional[_Bytes]):
        if chunk is None:
            if not self.closed:
                self.closed = True
                _logger.debug("%s: closed", self._name)
        elif chunk:
            self._chunks.append(bytes(chunk))
            _logger.debug("%s: %s", self._name, bytes(chunk).decode(errors='backslashreplace'))

    def read(self) -> bytes:
        data = b''.join(self._chunks)
        self._chunks = []
        return data


class Run(metaclass=ABCMeta):
    """A command started on a host; must be used as a context manager."""

    def __init__(self, args):
        self.args = args

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        running = self.returncode is None
        self.close()
        if running:
            message = f"Command {self.args!r} was still running when its channel was closed"
            if exc_type is None:
                raise SubprocessError(message)
            _logger.warning(message)

    @abstractmethod
    def send(self, data: _Bytes, is_last=False) -> int:
        """Send a chunk of stdin; return the number of bytes sent."""
        pass

    @abstractmethod
    def receive(self, timeout_sec: float):
        """Receive stdout chunk and stderr chunk; None if closed."""
        pass

    @property
    @abstractmethod
    def returncode(self) -> Optional[int]:
        pass

    @abstractmethod
    def close(self):
        pass

    def communicate(
            self,
            input: Optional[_Bytes] = None,  # noqa PyShadowingBuiltins
            timeout_sec: float = DEFAULT_RUN_TIMEOUT_SEC,
            ) -> Tuple[bytes, bytes]:
        left_to_send = None if input is None else memoryview(input)
        stdout = _Buffer('stdout')
        stderr = _Buffer('stderr')
        started_at = time.monotonic()
        while True:
            # Exit status is set by another thread; read it before receiving
            # so that no output arriving in between is lost.
            returncode = self.returncode
            chunks = self.receive(timeout_sec=min(1., timeout_sec / 2.))
            for buffer, chunk in zip((stdout, stderr), chunks):
                buffer.write(chunk)
            if returncode is not None and stdout.closed and stderr.closed:
                break
            if time.monotonic() - started_at > timeout_sec:
                if returncode is not None:
                    _logger.debug("Exit with streams not closed")
                    break
                raise TimeoutExpired(self.args, timeout_sec, stdout.read(), stderr.read())
            if left_to_send is None or returncode is not None:
                continue
            sent_bytes = self.send(left_to_send, is_last=True)
            left_to_send = left_to_send[sent_bytes:]
            if not left_to_send:
                left_to_send = None
        return stdout.read(), stderr.read()


class Shell(metaclass=ABCMeta):

    @abstractmethod
    def Popen(self, args: Union[str, Sequence[str]]) -> Run:  # noqa PyPep8Naming
        pass

    def run(
            self,
            args: Union[str, Sequence[str]],
            input: Optional[_Bytes] = None,  # noqa PyShadowingBuiltins
            timeout_sec: float = DEFAULT_RUN_TIMEOUT_SEC,
            check=True,
            ) -> CompletedProcess:
        with self.Popen(args) as run:
            stdout, stderr = run.communicate(input=input, timeout_sec=timeout_sec)
            if check and run.returncode != 0:
                raise CommandFailed(run.returncode, args, stdout, stderr)
            return CompletedProcess(args, run.returncode, stdout, stderr)


_logger = logging.getLogger(__name__)
