# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import itertools
import json
import logging
import re
import threading
import uuid
from functools import partial
from http.server import BaseHTTPRequestHandler
from http.server import HTTPServer
from typing import Any
from typing import List
from typing import Mapping
from typing import Tuple
from urllib.parse import parse_qs
from urllib.parse import urlsplit

_logger = logging.getLogger(__name__)


class _State:
    """Resources of the fake account; droplets and balancers boot slowly."""

    def __init__(self, token: str, polls_until_active: int):
        self.token = token
        self.polls_until_active = polls_until_active
        self.lock = threading.Lock()
        self.droplets = {}
        self.volumes = {}
        self.load_balancers = {}
        self.actions = {}
        self.requests: List[Tuple[str, str]] = []
        self.failures: List[List[Any]] = []
        self._polls = {}
        self._ids = itertools.count(3164444)
        self._addresses = itertools.count(10)

    def next_id(self) -> int:
        return next(self._ids)

    def next_address(self) -> int:
        return next(self._addresses)

    def poll(self, key) -> bool:
        """Count GET requests; True once the object should be ready."""
        self._polls[key] = self._polls.get(key, 0) + 1
        return self._polls[key] >= self.polls_until_active


class _Handler(BaseHTTPRequestHandler):

    def __init__(self, *args, state: _State, **kwargs):
        self._state = state
        super().__init__(*args, **kwargs)

    def do_GET(self):
        self._dispatch('GET')

    def do_POST(self):
        self._dispatch('POST')

    def _dispatch(self, method: str):
        url = urlsplit(self.path)
        query = {k: v[0] for k, v in parse_qs(url.query).items()}
        with self._state.lock:
            self._state.requests.append((method, url.path))
            if self.headers.get('Authorization') != f'Bearer {self._state.token}':
                self._reply(401, {'id': 'unauthorized', 'message': "Unable to authenticate you"})
                return
            for failure in self._state.failures:
                [fail_method, path_re, status, times_left] = failure
                if times_left > 0 and fail_method == method and re.fullmatch(path_re, url.path):
                    failure[3] -= 1
                    self._reply(status, {'id': 'injected', 'message': f"Injected HTTP {status}"})
                    return
            body = self._read_json() if method == 'POST' else {}
            for route_method, route_re, handler in self._routes:
                match = re.fullmatch(route_re, url.path)
                if route_method == method and match is not None:
                    status, data = handler(self, query, body, *match.groups())
                    self._reply(status, data)
                    return
        self._reply(404, {'id': 'not_found', 'message': f"No route for {method} {url.path}"})

    def _read_json(self) -> Mapping[str, Any]:
        length = int(self.headers.get('Content-Length', 0))
        if not length:
            return {}
        return json.loads(self.rfile.read(length).decode())

    def _reply(self, status: int, data: Mapping[str, Any]):
        encoded = json.dumps(data).encode()
        self.send_response(status)
        self.send_header('Content-Type', 'application/json')
        self.send_header('Content-Length', str(len(encoded)))
        self.end_headers()
        self.wfile.write(encoded)

    def _list_volumes(self, query, _body):
        found = [
            v for v in self._state.volumes.values()
            if v['name'] == query.get('name', v['name'])
            and v['region']['slug'] == query.get('region', v['region']['slug'])
            ]
        return 200, {'volumes': found}

    def _create_volume(self, _query, body):
        for required in ('name', 'region', 'size_gigabytes'):
            if required not in body:
                return 422, {'id': 'unprocessable_entity', 'message': f"{required} is required"}
        volume = {
            'id': str(uuid.uuid4()),
            'name': body['name'],
            'region': {'slug': body['region']},
            'size_gigabytes': body['size_gigabytes'],
            'droplet_ids': [],
            }
        self._state.volumes[volume['id']] = volume
        return 201, {'volume': volume}

    def _get_volume(self, _query, _body, volume_id):
        if volume_id not in self._state.volumes:
            return 404, {'id': 'not_found', 'message': "Volume not found"}
        return 200, {'volume': self._state.volumes[volume_id]}

    def _volume_action(self, _query, body, volume_id):
        volume = self._state.volumes.get(volume_id)
        droplet = self._state.droplets.get(body.get('droplet_id'))
        if volume is None or droplet is None:
            return 404, {'id': 'not_found', 'message': "Volume or droplet not found"}
        if body.get('type') != 'attach':
            return 422, {'id': 'unprocessable_entity', 'message': "Only attach is supported"}
        volume['droplet_ids'].append(droplet['id'])
        droplet['volume_ids'].append(volume_id)
        action = {'id': self._state.next_id(), 'status': 'in-progress', 'type': 'attach_volume'}
        self._state.actions[action['id']] = action
        return 202, {'action': action}

    def _get_action(self, _query, _body, action_id):
        action = self._state.actions[int(action_id)]
        action['status'] = 'completed'
        return 200, {'action': action}

    def _list_droplets(self, query, _body):
        found = [
            d for d in self._state.droplets.values()
            if d['name'] == query.get('name', d['name'])
            ]
        return 200, {'droplets': found}

    def _create_droplet(self, _query, body):
        for required in ('name', 'region', 'size', 'image'):
            if required not in body:
                return 422, {'id': 'unprocessable_entity', 'message': f"{required} is required"}
        droplet = {
            'id': self._state.next_id(),
            'name': body['name'],
            'status': 'new',
            'region': {'slug': body['region']},
            'size_slug': body['size'],
            'networks': {'v4': []},
            'volume_ids': [],
            'tags': body.get('tags', []),
            }
        self._state.droplets[droplet['id']] = droplet
        return 202, {'droplet': droplet}

    def _get_droplet(self, _query, _body, droplet_id):
        droplet = self._state.droplets.get(int(droplet_id))
        if droplet is None:
            return 404, {'id': 'not_found', 'message': "Droplet not found"}
        if droplet['status'] == 'new' and self._state.poll(('droplet', droplet['id'])):
            n = self._state.next_address()
            droplet['status'] = 'active'
            droplet['networks']['v4'] = [
                {'ip_address': f'10.110.0.{n}', 'type': 'private'},
                {'ip_address': f'203.0.113.{n}', 'type': 'public'},
                ]
        return 200, {'droplet': droplet}

    def _list_load_balancers(self, _query, _body):
        return 200, {'load_balancers': list(self._state.load_balancers.values())}

    def _create_load_balancer(self, _query, body):
        unknown = [i for i in body.get('droplet_ids', []) if i not in self._state.droplets]
        if unknown:
            return 422, {'id': 'unprocessable_entity', 'message': f"Unknown droplets {unknown}"}
        balancer = {
            'id': str(uuid.uuid4()),
            'name': body['name'],
            'ip': '',
            'status': 'new',
            'droplet_ids': list(body.get('droplet_ids', [])),
            'forwarding_rules': body.get('forwarding_rules', []),
            }
        self._state.load_balancers[balancer['id']] = balancer
        return 202, {'load_balancer': balancer}

    def _get_load_balancer(self, _query, _body, balancer_id):
        balancer = self._state.load_balancers[balancer_id]
        if balancer['status'] == 'new' and self._state.poll(('load_balancer', balancer_id)):
            balancer['status'] = 'active'
            balancer['ip'] = f'198.51.100.{self._state.next_address()}'
        return 200, {'load_balancer': balancer}

    _routes = [
        ('GET', r'/v2/volumes', _list_volumes),
        ('POST', r'/v2/volumes', _create_volume),
        ('GET', r'/v2/volumes/([^/]+)', _get_volume),
        ('POST', r'/v2/volumes/([^/]+)/actions', _volume_action),
        ('GET', r'/v2/actions/(\d+)', _get_action),
        ('GET', r'/v2/droplets', _list_droplets),
        ('POST', r'/v2/droplets', _create_droplet),
        ('GET', r'/v2/droplets/(\d+)', _get_droplet),
        ('GET', r'/v2/load_balancers', _list_load_balancers),
        ('POST', r'/v2/load_balancers', _create_load_balancer),
        ('GET', r'/v2/load_balancers/([^/]+)', _get_load_balancer),
        ]

    def log_message(self, format, *args):  # noqa PyShadowingBuiltins
        _logger.debug(format, *args)


class FakeDigitalOcean(HTTPServer):
    """Subset of DigitalOcean API v2 served from memory.

    Use as a context manager: the server runs in a background thread.
    """

    def __init__(self, token: str = 'fake-token', polls_until_active: int = 2):
        self.state = _State(token, polls_until_active)
        super().__init__(('127.0.0.1', 0), partial(_Handler, state=self.state))
        self._thread = None

    def __enter__(self):
        self._thread = threading.Thread(target=self.serve_forever, daemon=True)
        self._thread.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._thread is None:
            raise RuntimeError("Not running")
        self.shutdown()
        self._thread.join(timeout=10)
        self._thread = None
        self.server_close()

    def url(self) -> str:
        [address, port] = self.server_address
        return f'http://{address}:{port}'

    def fail_next(self, method: str, path_re: str, status: int, times: int = 1):
        with self.state.lock:
            self.state.failures.append([method, path_re, status, times])

    def requests_made(self, method: str, path_re: str) -> int:
        with self.state.lock:
            return sum(
                1 for m, p in self.state.requests
                if m == method and re.fullmatch(path_re, p))
