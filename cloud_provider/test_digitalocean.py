# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import threading
import unittest

from cloud_provider import DigitalOceanProvider
from cloud_provider import PermanentProviderError
from cloud_provider import RetryPolicy
from cloud_provider import TransientProviderError
from declaration import ResourceKind
from doubles.cloud import FakeDigitalOcean

_droplet_spec = {'region': 'nyc3', 'size': 's-1vcpu-1gb', 'image': 'ubuntu-22-04-x64'}


class TestDigitalOceanProvider(unittest.TestCase):

    def setUp(self):
        self._api = FakeDigitalOcean(polls_until_active=3)
        self._api.__enter__()
        self.addCleanup(self._api.__exit__, None, None, None)
        self._provider = DigitalOceanProvider(
            'fake-token', self._api.url(),
            request_timeout_sec=5, ready_timeout_sec=10, poll_max_delay_sec=0.05)
        self._cancelled = threading.Event()

    def test_droplet_waits_for_address(self):
        handle = self._provider.create_compute('web1', _droplet_spec, self._cancelled)
        self.assertIs(handle.kind, ResourceKind.DROPLET)
        self.assertEqual(handle.outputs['status'], 'active')
        self.assertTrue(handle.outputs['ip'].startswith('203.0.113.'))
        self.assertTrue(handle.outputs['private_ip'].startswith('10.110.0.'))
        self.assertEqual(handle.outputs['region'], 'nyc3')
        self.assertGreaterEqual(self._api.requests_made('GET', r'/v2/droplets/\d+'), 3)

    def test_repeated_create_adopts_existing(self):
        first = self._provider.create_compute('web1', _droplet_spec, self._cancelled)
        second = self._provider.create_compute('web1', _droplet_spec, self._cancelled)
        self.assertEqual(first.id, second.id)
        self.assertEqual(self._api.requests_made('POST', '/v2/droplets'), 1)

    def test_volume_and_attach(self):
        volume = self._provider.create_volume(
            'pg-data', {'region': 'nyc3', 'size_gigabytes': 10}, self._cancelled)
        self.assertEqual(volume.outputs['mount_point'], '/mnt/pg_data')
        droplet = self._provider.create_compute('db', _droplet_spec, self._cancelled)
        self._provider.attach_volume(droplet, volume, self._cancelled)
        self._provider.attach_volume(droplet, volume, self._cancelled)
        self.assertEqual(self._api.requests_made('POST', r'/v2/volumes/[^/]+/actions'), 1)
        [stored] = self._api.state.volumes.values()
        self.assertEqual(stored['droplet_ids'], [int(droplet.id)])

    def test_load_balancer(self):
        web = self._provider.create_compute('web1', _droplet_spec, self._cancelled)
        balancer = self._provider.create_load_balancer('lb', {
            'region': 'nyc3',
            'droplet_ids': [web.id],
            'forwarding_rules': [{
                'entry_protocol': 'http', 'entry_port': 80,
                'target_protocol': 'http', 'target_port': 80,
                }],
            }, self._cancelled)
        self.assertTrue(balancer.outputs['ip'].startswith('198.51.100.'))
        [stored] = self._api.state.load_balancers.values()
        self.assertEqual(stored['droplet_ids'], [int(web.id)])

    def test_rate_limit_is_transient(self):
        self._api.fail_next('POST', '/v2/droplets', 429)
        with self.assertRaises(TransientProviderError) as context:
            self._provider.create_compute('web1', _droplet_spec, self._cancelled)
        self.assertEqual(context.exception.status, 429)

    def test_server_error_absorbed_by_retry(self):
        self._api.fail_next('POST', '/v2/droplets', 503, times=2)
        attempts = []
        handle = RetryPolicy(base_delay_sec=0).call(
            "create web1",
            lambda: self._provider.create_compute('web1', _droplet_spec, self._cancelled),
            self._cancelled,
            attempts.append,
            )
        self.assertEqual(attempts, [1, 2, 3])
        self.assertEqual(handle.outputs['status'], 'active')

    def test_invalid_spec_is_permanent(self):
        with self.assertRaises(PermanentProviderError) as context:
            self._provider.create_compute('web1', {'region': 'nyc3'}, self._cancelled)
        self.assertEqual(context.exception.status, 422)

    def test_bad_token_is_permanent(self):
        provider = DigitalOceanProvider('wrong', self._api.url())
        with self.assertRaises(PermanentProviderError):
            provider.create_volume('v', {'region': 'nyc3', 'size_gigabytes': 1}, self._cancelled)

    def test_unreachable_api_is_transient(self):
        provider = DigitalOceanProvider('fake-token', 'http://127.0.0.1:9', request_timeout_sec=2)
        with self.assertRaises(TransientProviderError):
            provider.create_volume('v', {'region': 'nyc3', 'size_gigabytes': 1}, self._cancelled)

    def test_balancer_rejects_non_numeric_droplet_id(self):
        with self.assertRaises(PermanentProviderError):
            self._provider.create_load_balancer(
                'lb', {'region': 'nyc3', 'droplet_ids': ['web1']}, self._cancelled)
        self.assertEqual(self._api.requests_made('POST', '/v2/load_balancers'), 0)
