# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import contextlib
import io
import json
import os
import tempfile
import unittest
from pathlib import Path

from doubles.cloud import FakeDigitalOcean
from run_declaration import _parser
from run_declaration import run

_sample = Path(__file__).parent / 'manifest' / 'samples' / 'web_and_db.json'


class TestCommandLine(unittest.TestCase):

    def setUp(self):
        directory = tempfile.TemporaryDirectory()
        self.addCleanup(directory.cleanup)
        self._dir = Path(directory.name)

    def _run(self, *args):
        stdout = io.StringIO()
        stderr = io.StringIO()
        with contextlib.redirect_stdout(stdout), contextlib.redirect_stderr(stderr):
            exit_code = run(_parser().parse_args(args))
        return exit_code, stdout.getvalue(), stderr.getvalue()

    def _manifest(self, data):
        path = self._dir / 'manifest.json'
        path.write_text(json.dumps(data), encoding='utf-8')
        return str(path)

    def test_plan(self):
        exit_code, stdout, _ = self._run('plan', str(_sample))
        self.assertEqual(exit_code, 0)
        self.assertEqual(json.loads(stdout)['levels'], [['dataVol', 'web1', 'web2'], ['db', 'lb']])

    def test_plan_cycle(self):
        path = self._manifest({'resources': [
            {'kind': 'droplet', 'name': 'a', 'attributes': {'tags': [{'$ref': 'b.name'}]}},
            {'kind': 'droplet', 'name': 'b', 'attributes': {'tags': [{'$ref': 'a.name'}]}},
            ]})
        exit_code, _, stderr = self._run('plan', path)
        self.assertEqual(exit_code, 2)
        self.assertIn('CycleError', stderr)

    def test_invalid_manifest(self):
        path = self._manifest({'resources': [{'kind': 'bucket', 'name': 'b'}]})
        exit_code, _, stderr = self._run('plan', path)
        self.assertEqual(exit_code, 2)
        self.assertIn("Unknown kind 'bucket'", stderr)

    def test_apply_against_fake_api(self):
        path = self._manifest({'resources': [
            {'kind': 'volume', 'name': 'data', 'attributes': {'region': 'nyc3', 'size_gigabytes': 10}},
            {'kind': 'droplet', 'name': 'db', 'attributes': {
                'region': 'nyc3', 'size': 's-1vcpu-1gb', 'image': 'ubuntu-22-04-x64',
                'volumes': [{'$ref': 'data.id'}],
                }},
            {'kind': 'droplet', 'name': 'broken', 'attributes': {'region': 'nyc3'}},
            ]})
        os.environ['FAKE_DIGITALOCEAN_TOKEN'] = 'fake-token'
        self.addCleanup(os.environ.pop, 'FAKE_DIGITALOCEAN_TOKEN')
        with FakeDigitalOcean(polls_until_active=1) as api:
            exit_code, stdout, _ = self._run(
                'apply', path, '--api-url', api.url(), '--token-env', 'FAKE_DIGITALOCEAN_TOKEN')
            [volume] = api.state.volumes.values()
        self.assertEqual(exit_code, 10)
        self.assertIn("db: Created", stdout)
        self.assertIn("broken: Failed PermanentProviderError", stdout)
        self.assertEqual(len(volume['droplet_ids']), 1)

    def test_apply_without_token(self):
        os.environ.pop('FAKE_DIGITALOCEAN_TOKEN', None)
        exit_code, _, stderr = self._run('apply', str(_sample), '--token-env', 'FAKE_DIGITALOCEAN_TOKEN')
        self.assertEqual(exit_code, 2)
        self.assertIn('FAKE_DIGITALOCEAN_TOKEN', stderr)
