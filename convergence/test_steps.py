# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import unittest

from convergence import Action
from convergence import File
from convergence import Package
from convergence import RemoteSession
from convergence import ServiceUnit
from convergence import StepFailure
from convergence import UnitState
from convergence import apply
from declaration import Reference
from declaration import Template
from doubles.remote_host import FakeHost


class TestPackage(unittest.TestCase):

    def test_install_then_noop(self):
        host = FakeHost()
        session = RemoteSession(host, '203.0.113.10')
        self.assertIs(Package('postgresql').apply(session).action, Action.CREATE)
        self.assertIs(Package('postgresql').apply(session).action, Action.NOOP)
        self.assertEqual(host.mutations, [('install', 'postgresql')])

    def test_remove(self):
        host = FakeHost(packages=['telnetd'])
        session = RemoteSession(host, '203.0.113.10')
        self.assertIs(Package('telnetd', present=False).apply(session).action, Action.REMOVE)
        self.assertIs(Package('telnetd', present=False).apply(session).action, Action.NOOP)
        self.assertNotIn('telnetd', host.packages)

    def test_install_failure(self):
        host = FakeHost()
        host.fail(['env', 'DEBIAN_FRONTEND=noninteractive', 'apt-get'], 100, b'E: Unable to locate package')
        session = RemoteSession(host, '203.0.113.10')
        with self.assertRaises(StepFailure) as context:
            Package('postgresql').apply(session)
        self.assertIs(context.exception.action, Action.CREATE)
        self.assertIn('Unable to locate package', str(context.exception))


class TestFile(unittest.TestCase):

    def test_create_update_noop(self):
        host = FakeHost()
        session = RemoteSession(host, '203.0.113.10')
        self.assertIs(File('/etc/motd', 'hello\n').apply(session).action, Action.CREATE)
        self.assertIs(File('/etc/motd', 'hello\n').apply(session).action, Action.NOOP)
        self.assertIs(File('/etc/motd', 'bye\n', mode='0600').apply(session).action, Action.UPDATE)
        self.assertEqual(host.files['/etc/motd'], b'bye\n')
        self.assertEqual(host.modes['/etc/motd'], '0600')

    def test_relative_path_rejected(self):
        with self.assertRaises(ValueError):
            File('etc/motd', 'hello')

    def test_rendered_content_holds_literal_path(self):
        step = File(
            '/etc/postgresql/conf',
            Template.parse("data_directory = '${dataVol.mount_point}/pg'"))
        self.assertEqual(list(step.references()), [Reference.parse('dataVol.mount_point')])
        outputs = {'dataVol': {'id': 'vol-1', 'mount_point': '/mnt/data'}}
        resolved = step.resolve(outputs.get)
        host = FakeHost()
        resolved.apply(RemoteSession(host, '203.0.113.10'))
        self.assertEqual(host.files['/etc/postgresql/conf'], b"data_directory = '/mnt/data/pg'")

    def test_unrendered_content_rejected(self):
        step = File('/etc/motd', Template.parse("${web1.ip}"))
        with self.assertRaises(TypeError):
            step.data()


class TestServiceUnit(unittest.TestCase):

    def test_restart_always_acts(self):
        host = FakeHost(units={'postgresql.service': (True, True)})
        session = RemoteSession(host, '203.0.113.10')
        step = ServiceUnit('postgresql.service', enabled=True, action='restart')
        for _ in range(2):
            result = step.apply(session)
            self.assertIs(result.action, Action.RESTART)
            self.assertIs(result.enablement, Action.NOOP)
        self.assertEqual(host.mutations, [('restart', 'postgresql.service')] * 2)

    def test_enablement_converges_separately(self):
        host = FakeHost(units={'nginx.service': (False, False)})
        session = RemoteSession(host, '203.0.113.10')
        first = ServiceUnit('nginx.service', enabled=True, action='start').apply(session)
        self.assertEqual((first.enablement, first.action), (Action.UPDATE, Action.START))
        second = ServiceUnit('nginx.service', enabled=True, action='start').apply(session)
        self.assertEqual((second.enablement, second.action), (Action.NOOP, Action.NOOP))
        self.assertFalse(second.changed())

    def test_stop_and_disable(self):
        host = FakeHost(units={'apache2.service': (True, True)})
        session = RemoteSession(host, '203.0.113.10')
        result = ServiceUnit('apache2.service', enabled=False, action='stop').apply(session)
        self.assertEqual((result.enablement, result.action), (Action.UPDATE, Action.STOP))
        self.assertEqual(host.units['apache2.service'], [False, False])

    def test_failed_restart_keeps_enablement(self):
        host = FakeHost(units={'pg.service': (False, False)})
        host.fail(['systemctl', 'restart'], 1, b'Job for pg.service failed')
        session = RemoteSession(host, '203.0.113.10')
        [result] = apply(session, [ServiceUnit('pg.service', enabled=True, action='restart')])
        self.assertFalse(result.success)
        self.assertIs(result.action, Action.RESTART)
        self.assertIs(result.enablement, Action.UPDATE)
        self.assertTrue(result.changed())
        self.assertEqual(host.units['pg.service'], [False, True])

    def test_failed_enable_reported(self):
        host = FakeHost(units={'pg.service': (False, False)})
        host.fail(['systemctl', 'enable'])
        session = RemoteSession(host, '203.0.113.10')
        [result] = apply(session, [ServiceUnit('pg.service', enabled=True, action='start')])
        self.assertFalse(result.success)
        self.assertIsNone(result.action)
        self.assertIs(result.enablement, Action.UPDATE)
        self.assertEqual(host.units['pg.service'], [False, False])

    def test_unit_not_found(self):
        session = RemoteSession(FakeHost(), '203.0.113.10')
        with self.assertRaises(StepFailure) as context:
            ServiceUnit('missing.service', action='restart').apply(session)
        self.assertIsNone(context.exception.action)

    def test_invalid_action(self):
        with self.assertRaises(ValueError):
            ServiceUnit('nginx.service', action='reload')
        with self.assertRaises(ValueError):
            ServiceUnit('nginx.service', action='restart', restart_policy='sometimes')

    def test_state_description(self):
        self.assertEqual(UnitState('inactive', True).describe(), 'stopped')
        self.assertEqual(UnitState('active', False).describe(), 'running')


class TestPrivilege(unittest.TestCase):

    def test_sudo_for_changes_only(self):
        host = FakeHost(units={'postgresql.service': (False, False)})
        session = RemoteSession(host, '203.0.113.10', username='deploy')
        Package('postgresql').apply(session)
        File('/etc/motd', 'hi').apply(session)
        ServiceUnit('postgresql.service', action='start').apply(session)
        self.assertEqual(host.sudo_commands, [
            'env DEBIAN_FRONTEND=noninteractive apt-get install -y --no-install-recommends postgresql',
            'sha256sum /etc/motd',
            'install -D -m 0644 /dev/stdin /etc/motd',
            'systemctl start postgresql.service',
            ])
