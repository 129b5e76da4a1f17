# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
from doubles.cloud._fake_cloud import FakeCloud
from doubles.cloud._fake_digitalocean import FakeDigitalOcean

__all__ = [
    'FakeCloud',
    'FakeDigitalOcean',
    ]
