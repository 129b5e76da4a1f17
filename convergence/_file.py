# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import hashlib
from typing import NamedTuple
from typing import Optional
from typing import Union

from convergence._core import Action
from convergence._core import ConvergenceStep


class FileState(NamedTuple):
    sha256: Optional[str]

    def exists(self) -> bool:
        return self.sha256 is not None


class File(ConvergenceStep):
    """Whole content of a file; rewritten in full when it differs.

    Only the content is compared. Mode and owner are applied when the file
    is written.
    """

    kind = 'file'

    def __init__(
            self,
            path: str,
            content: Union[str, bytes],
            mode: str = '0644',
            owner: Optional[str] = None,
            group: Optional[str] = None,
            ):
        if isinstance(path, str) and not path.startswith('/'):
            raise ValueError(f"File path must be absolute, got {path!r}")
        self._path = path
        self._content = content
        self._mode = mode
        self._owner = owner
        self._group = group

    def params(self):
        return {
            'path': self._path,
            'content': self._content,
            'mode': self._mode,
            'owner': self._owner,
            'group': self._group,
            }

    def data(self) -> bytes:
        if isinstance(self._content, bytes):
            return self._content
        if isinstance(self._content, str):
            return self._content.encode('utf-8')
        raise TypeError(f"{self._path}: content is not rendered: {self._content!r}")

    def current_state(self, session):
        result = session.run(['sha256sum', self._path], check=False, privileged=True)
        if result.returncode != 0:
            return FileState(None)
        [digest, *_] = result.stdout.decode('ascii').split()
        return FileState(digest.lstrip('\\'))

    def reconcile(self, state, session):
        """Compare hashes.

        >>> step = File('/etc/motd', 'hello')
        >>> step.reconcile(FileState(None), None)
        <Action.CREATE: 'create'>
        >>> step.reconcile(FileState(hashlib.sha256(b'hello').hexdigest()), None)
        <Action.NOOP: 'noop'>
        >>> step.reconcile(FileState(hashlib.sha256(b'hello\\n').hexdigest()), None)
        <Action.UPDATE: 'update'>
        """
        if not state.exists():
            return Action.CREATE
        if state.sha256 != hashlib.sha256(self.data()).hexdigest():
            return Action.UPDATE
        return Action.NOOP

    def _take(self, action, session):
        command = ['install', '-D', '-m', self._mode]
        if self._owner is not None:
            command.extend(['-o', self._owner])
        if self._group is not None:
            command.extend(['-g', self._group])
        command.extend(['/dev/stdin', self._path])
        session.run(command, input=self.data(), privileged=True)
