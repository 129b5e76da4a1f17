# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
from doubles.remote_host._fake_host import FakeHost
from doubles.remote_host._fake_host import FakeSessionFactory

__all__ = [
    'FakeHost',
    'FakeSessionFactory',
    ]
