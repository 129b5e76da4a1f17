# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import fnmatch
import logging
import socket
from configparser import ConfigParser
from pathlib import Path
from typing import Mapping
from typing import Sequence


def _read_config(paths: Sequence[Path], host: str) -> Mapping[str, str]:
    """Merge "[defaults]" with sections whose header matches the host name.

    A section named after a host mask, e.g. "[deploy-box-*]", overrides
    the defaults on matching hosts only. A file read later overrides the
    files read earlier; missing files are skipped.
    """
    defaults = {}
    overrides = {}
    for path in paths:
        parser = ConfigParser(interpolation=None)
        if not parser.read(path):
            _logger.debug("Config %s: not found", path)
            continue
        for section in parser.sections():
            if section == 'defaults':
                defaults.update(parser.items(section))
            elif _host_matches(host, section):
                _logger.debug("Config %s: section %s: host %s matches", path, section, host)
                overrides.update(parser.items(section))
    return {**defaults, **overrides}


def _host_matches(host, mask):
    """Match host names case-insensitively, as DNS does.

    >>> _host_matches('Deploy-Box-3', 'deploy-box-*')
    True
    >>> _host_matches('laptop', 'deploy-box-*')
    False
    """
    return fnmatch.fnmatch(host.lower(), mask.lower())


_logger = logging.getLogger(__name__)

global_config = _read_config(
    [
        Path(__file__).with_name('config.ini'),
        Path('~/.config/infra_converge.ini').expanduser(),
        ],
    socket.gethostname(),
    )
