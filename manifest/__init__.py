# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
"""Load a manifest: resources to create and hosts to configure.

A manifest is a JSON document with two sections. "resources" declares
droplets, volumes and load balancers. "remote" declares blocks of
convergence steps, each for a host whose address usually comes from a
created droplet. {"$ref": "web1.ip"} refers to a field of a created
resource; "${dataVol.mount_point}" does the same inside a string, and "$$"
stands for a literal dollar sign.
"""
from manifest._manifest import Manifest
from manifest._manifest import ManifestError
from manifest._manifest import RemoteBlock
from manifest._manifest import load_manifest
from manifest._manifest import parse_manifest

__all__ = [
    'Manifest',
    'ManifestError',
    'RemoteBlock',
    'load_manifest',
    'parse_manifest',
    ]
