# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import threading
import unittest

from cloud_provider import DigitalOceanProvider
from cloud_provider import PermanentProviderError
from cloud_provider import RetryPolicy
from cloud_provider import TransientProviderError
from declaration import Reference
from declaration import ResourceDescriptor
from declaration import ResourceKind
from dependency_graph import resolve
from doubles.cloud import FakeCloud
from doubles.cloud import FakeDigitalOcean
from execution import Created
from execution import ExecutionEngine
from execution import Failed
from execution import RunContext
from execution import Skipped

_droplet = {'region': 'nyc3', 'size': 's-1vcpu-1gb', 'image': 'ubuntu-22-04-x64'}


def _droplets(*names):
    return [ResourceDescriptor(ResourceKind.DROPLET, name, _droplet) for name in names]


def _balancer(name, *droplets):
    return ResourceDescriptor(ResourceKind.LOAD_BALANCER, name, {
        'region': 'nyc3',
        'droplet_ids': [Reference.parse(f'{d}.id') for d in droplets],
        })


class TestExecutionEngine(unittest.TestCase):

    def setUp(self):
        self._cloud = FakeCloud()
        self._engine = ExecutionEngine(self._cloud, RetryPolicy(base_delay_sec=0), max_workers=4)

    def test_same_level_concurrent_with_retries(self):
        self._cloud.rendezvous(['web1', 'web2', 'web3'])
        self._cloud.fail('web2', TransientProviderError("HTTP 429"), TransientProviderError("HTTP 503"))
        results = self._engine.execute(resolve(_droplets('web1', 'web2', 'web3')))
        self.assertEqual(
            {name: type(result) for name, result in results.items()},
            {'web1': Created, 'web2': Created, 'web3': Created})
        self.assertEqual(results['web2'].attempts, 3)
        self.assertEqual(results['web1'].attempts, 1)
        self.assertEqual(self._cloud.attempts('web2'), 3)

    def test_balancer_after_droplets(self):
        graph = resolve([*_droplets('web1', 'web2', 'web3'), _balancer('lb', 'web1', 'web2', 'web3')])
        results = self._engine.execute(graph)
        self.assertTrue(all(isinstance(r, Created) for r in results.values()))
        self.assertEqual(self._cloud.calls[-1], ('create_load_balancer', 'lb'))
        self.assertEqual(
            self._cloud.specs['lb']['droplet_ids'],
            [results[n].handle.id for n in ('web1', 'web2', 'web3')])

    def test_permanent_failure_skips_balancer(self):
        self._cloud.fail('web2', PermanentProviderError("HTTP 422: invalid size", status=422))
        graph = resolve([*_droplets('web1', 'web2', 'web3'), _balancer('lb', 'web1', 'web2', 'web3')])
        results = self._engine.execute(graph)
        self.assertIsInstance(results['web1'], Created)
        self.assertIsInstance(results['web3'], Created)
        self.assertIsInstance(results['web2'], Failed)
        self.assertEqual(results['web2'].kind, 'PermanentProviderError')
        self.assertEqual(results['web2'].attempts, 1)
        self.assertEqual(results['lb'], Skipped("upstream failure: web2", ('web2',)))
        self.assertEqual(self._cloud.attempts('lb'), 0)

    def test_transitive_skip_names_root_failure(self):
        descriptors = [
            ResourceDescriptor(ResourceKind.VOLUME, 'data', {'size_gigabytes': 10}),
            ResourceDescriptor(ResourceKind.DROPLET, 'db', {
                **_droplet, 'volumes': [Reference.parse('data.id')]}),
            ResourceDescriptor(ResourceKind.DROPLET, 'replica', {
                **_droplet, 'user_data': Reference.parse('db.private_ip')}),
            *_droplets('web'),
            ]
        self._cloud.fail('data', PermanentProviderError("quota exceeded"))
        results = self._engine.execute(resolve(descriptors))
        self.assertEqual(results['db'].reason, "upstream failure: data")
        self.assertEqual(results['replica'].reason, "upstream failure: data")
        self.assertIsInstance(results['web'], Created)

    def test_volume_attached_after_droplet(self):
        descriptors = [
            ResourceDescriptor(ResourceKind.VOLUME, 'data', {'size_gigabytes': 10}),
            ResourceDescriptor(ResourceKind.DROPLET, 'db', {
                **_droplet, 'volumes': [Reference.parse('data.id')]}),
            ]
        results = self._engine.execute(resolve(descriptors))
        self.assertIsInstance(results['db'], Created)
        self.assertNotIn('volumes', self._cloud.specs['db'])
        self.assertEqual(self._cloud.attachments, [('db', 'data')])

    def test_attach_failure_fails_droplet(self):
        descriptors = [
            ResourceDescriptor(ResourceKind.VOLUME, 'data', {'size_gigabytes': 10}),
            ResourceDescriptor(ResourceKind.DROPLET, 'db', {
                **_droplet, 'volumes': [Reference.parse('data.id')]}),
            ]
        self._cloud.fail('data@db', PermanentProviderError("volume is in another region"))
        results = self._engine.execute(resolve(descriptors))
        self.assertIsInstance(results['db'], Failed)
        self.assertIn('another region', results['db'].detail)

    def test_unresolved_field(self):
        descriptors = [
            ResourceDescriptor(ResourceKind.VOLUME, 'data', {'size_gigabytes': 10}),
            ResourceDescriptor(ResourceKind.DROPLET, 'db', {
                **_droplet, 'user_data': Reference.parse('data.filesystem_label')}),
            _balancer('lb', 'db'),
            ]
        results = self._engine.execute(resolve(descriptors))
        self.assertEqual(results['db'].kind, 'UnresolvedReferenceError')
        self.assertEqual(results['db'].error.reference, Reference.parse('data.filesystem_label'))
        self.assertEqual(self._cloud.attempts('db'), 0)
        self.assertIsInstance(results['lb'], Skipped)

    def test_unsupported_kind(self):
        engine = ExecutionEngine(FakeCloud(kinds=[ResourceKind.DROPLET]), RetryPolicy(base_delay_sec=0))
        descriptors = [ResourceDescriptor(ResourceKind.VOLUME, 'data', {}), *_droplets('web')]
        results = engine.execute(resolve(descriptors))
        self.assertEqual(results['data'].kind, 'UnsupportedResourceKind')
        self.assertEqual(results['data'].attempts, 0)
        self.assertIsInstance(results['web'], Created)

    def test_unexpected_error_isolated(self):
        self._cloud.fail('web1', KeyError('droplet'))
        results = self._engine.execute(resolve(_droplets('web1', 'web2')))
        self.assertEqual(results['web1'].kind, 'KeyError')
        self.assertIsInstance(results['web2'], Created)

    def test_cancel(self):
        self._cloud.block('web1')
        graph = resolve([*_droplets('web1', 'web2'), _balancer('lb', 'web1', 'web2')])
        context = RunContext()
        timer = threading.Timer(0.3, context.cancel)
        timer.start()
        try:
            results = self._engine.execute(graph, context)
        finally:
            timer.cancel()
        self.assertEqual(results['web1'].kind, 'Cancelled')
        self.assertIsInstance(results['web2'], Created)
        self.assertEqual(results['lb'], Skipped("cancelled"))
        self.assertEqual(self._cloud.attempts('lb'), 0)

    def test_results_in_order(self):
        graph = resolve([_balancer('lb', 'web1'), *_droplets('web1')])
        results = self._engine.execute(graph)
        self.assertEqual(list(results), ['web1', 'lb'])

    def test_context_records_once(self):
        context = RunContext()
        self._engine.execute(resolve(_droplets('web1')), context)
        with self.assertRaises(RuntimeError):
            context.record('web1', Skipped("again"))


class TestEngineWithDigitalOcean(unittest.TestCase):

    def setUp(self):
        self._api = FakeDigitalOcean()
        self._api.__enter__()
        self.addCleanup(self._api.__exit__, None, None, None)
        provider = DigitalOceanProvider(
            'fake-token', self._api.url(), ready_timeout_sec=10, poll_max_delay_sec=0.05)
        self._engine = ExecutionEngine(provider, RetryPolicy(base_delay_sec=0))

    def test_balancer_gets_droplet_ids_by_reference(self):
        graph = resolve([*_droplets('web1', 'web2'), _balancer('lb', 'web1', 'web2')])
        results = self._engine.execute(graph)
        self.assertEqual(
            {name: type(result) for name, result in results.items()},
            {'web1': Created, 'web2': Created, 'lb': Created})
        [stored] = self._api.state.load_balancers.values()
        self.assertEqual(
            stored['droplet_ids'],
            [int(results[n].handle.id) for n in ('web1', 'web2')])
