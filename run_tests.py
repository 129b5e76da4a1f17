# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import argparse
import doctest
import importlib
import logging
import os
import sys
import unittest
from pathlib import Path
from typing import Iterable
from typing import Sequence


def main(args: Sequence[str]) -> int:
    parser = argparse.ArgumentParser(description="Run unit tests and doctests of the repository.")
    parser.add_argument(
        'path',
        nargs='?',
        default=_root,
        type=lambda v: Path(v).absolute(),
        help="File or dir to test, default: %(default)s")
    parser.add_argument('--no-doctest', action='store_true')
    parsed_args = parser.parse_args(args)
    suite = unittest.TestSuite()
    for module_name in _module_names(_walk(parsed_args.path)):
        _logger.debug("Import: %s", module_name)
        module = importlib.import_module(module_name)
        if module_name.rpartition('.')[2].startswith('test_'):
            suite.addTests(unittest.defaultTestLoader.loadTestsFromModule(module))
        elif not parsed_args.no_doctest:
            suite.addTests(doctest.DocTestSuite(module))
    if os.getenv('DRY_RUN'):
        _logger.info("Dry run: would run %d tests", suite.countTestCases())
        return 0
    result = unittest.TextTestRunner(stream=sys.stdout, verbosity=2).run(suite)
    return 0 if result.wasSuccessful() else 10


def _walk(path: Path) -> Iterable[Path]:
    """Python files, not descending into hidden, virtualenv and build dirs.

    >>> sorted(p.name for p in _walk(_root / 'declaration'))
    ['__init__.py', '_descriptor.py', '_references.py', 'test_references.py']
    """
    if path.is_file():
        if path.suffix == '.py':
            yield path
        return
    for entry in sorted(path.iterdir()):
        if entry.name.startswith('.') or entry.name in _excluded_dirs:
            continue
        yield from _walk(entry)


def _module_names(paths: Iterable[Path]) -> Iterable[str]:
    """Build module names from paths.

    >>> list(_module_names([_root / 'convergence' / '_file.py', _root / 'manifest' / '__init__.py']))
    ['convergence._file', 'manifest']
    """
    for path in paths:
        parts = path.relative_to(_root).with_suffix('').parts
        if parts[-1] == '__init__':
            parts = parts[:-1]
        yield '.'.join(parts)


_excluded_dirs = {'venv', 'build', '__pycache__', 'samples'}
_logger = logging.getLogger(__name__)
_root = Path(__file__).parent
assert str(_root) in sys.path

if __name__ == '__main__':
    exit(main(sys.argv[1:]))
