# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import threading
from typing import Any
from typing import Callable
from typing import List
from typing import Mapping
from typing import Optional

import requests

from cloud_provider._exceptions import PermanentProviderError
from cloud_provider._exceptions import TransientProviderError
from cloud_provider._provider_interface import ProviderAdapter
from cloud_provider._provider_interface import ResourceHandle
from declaration import ResourceKind
from waiting import Wait


class DigitalOceanProvider(ProviderAdapter):
    """DigitalOcean API v2 over a single reused HTTP session.

    Creation is made safe to repeat by looking up an existing resource with
    the same name first: if an earlier attempt reached the provider but the
    response got lost, the retry adopts the resource instead of creating
    a twin.

    Droplets and load balancers get their IP addresses only when they become
    active, therefore creation waits for that.
    """

    def __init__(
            self,
            token: str,
            api_url: str = 'https://api.digitalocean.com',
            request_timeout_sec: float = 30,
            ready_timeout_sec: float = 600,
            poll_max_delay_sec: float = 10,
            ):
        self._api_url = api_url.rstrip('/')
        self._request_timeout_sec = request_timeout_sec
        self._ready_timeout_sec = ready_timeout_sec
        self._poll_max_delay_sec = poll_max_delay_sec
        self._session = requests.Session()
        self._session.headers.update({
            'Authorization': f'Bearer {token}',
            'Content-Type': 'application/json',
            })

    def __repr__(self):
        return f'{self.__class__.__name__}({self._api_url!r})'

    def capabilities(self):
        return frozenset([
            ResourceKind.DROPLET,
            ResourceKind.LOAD_BALANCER,
            ResourceKind.VOLUME,
            ])

    def create_volume(self, name, spec, cancelled):
        region = spec.get('region')
        existing = self._request('GET', '/v2/volumes', params={'name': name, 'region': region})
        if existing['volumes']:
            volume = existing['volumes'][0]
            _logger.info("Volume %s exists: %s", name, volume['id'])
        else:
            volume = self._request('POST', '/v2/volumes', {**spec, 'name': name})['volume']
            _logger.info("Volume %s created: %s", name, volume['id'])
        return ResourceHandle(ResourceKind.VOLUME, name, volume['id'], {
            'region': volume['region']['slug'],
            'size_gigabytes': volume['size_gigabytes'],
            'mount_point': _mount_point(name),
            })

    def create_compute(self, name, spec, cancelled):
        existing = self._request('GET', '/v2/droplets', params={'name': name})
        if existing['droplets']:
            droplet = existing['droplets'][0]
            _logger.info("Droplet %s exists: %s", name, droplet['id'])
        else:
            droplet = self._request('POST', '/v2/droplets', {**spec, 'name': name})['droplet']
            _logger.info("Droplet %s created: %s", name, droplet['id'])
        droplet = self._wait_until(
            f'/v2/droplets/{droplet["id"]}', 'droplet',
            lambda d: d['status'] == 'active' and _ip_address(d, 'public') is not None,
            cancelled)
        return ResourceHandle(ResourceKind.DROPLET, name, str(droplet['id']), {
            'ip': _ip_address(droplet, 'public'),
            'private_ip': _ip_address(droplet, 'private'),
            'region': droplet['region']['slug'],
            'status': droplet['status'],
            })

    def create_load_balancer(self, name, spec, cancelled):
        # Handles carry string ids, the API takes droplet ids as integers.
        spec = {**spec, 'droplet_ids': _droplet_ids(spec.get('droplet_ids', []))}
        existing = self._request('GET', '/v2/load_balancers', params={'per_page': 200})
        [balancer, *_] = [b for b in existing['load_balancers'] if b['name'] == name] or [None]
        if balancer is not None:
            _logger.info("Load balancer %s exists: %s", name, balancer['id'])
        else:
            balancer = self._request('POST', '/v2/load_balancers', {**spec, 'name': name})['load_balancer']
            _logger.info("Load balancer %s created: %s", name, balancer['id'])
        balancer = self._wait_until(
            f'/v2/load_balancers/{balancer["id"]}', 'load_balancer',
            lambda b: b['status'] == 'active' and bool(b.get('ip')),
            cancelled)
        return ResourceHandle(ResourceKind.LOAD_BALANCER, name, balancer['id'], {
            'ip': balancer['ip'],
            'status': balancer['status'],
            })

    def attach_volume(self, compute, volume, cancelled):
        current = self._request('GET', f'/v2/volumes/{volume.id}')['volume']
        if int(compute.id) in current.get('droplet_ids', []):
            _logger.info("Volume %s is already attached to %s", volume.name, compute.name)
            return
        action = self._request('POST', f'/v2/volumes/{volume.id}/actions', {
            'type': 'attach',
            'droplet_id': int(compute.id),
            'region': volume.outputs['region'],
            })['action']
        self._wait_until(
            f'/v2/actions/{action["id"]}', 'action',
            lambda a: a['status'] == 'completed',
            cancelled)
        _logger.info("Volume %s attached to %s", volume.name, compute.name)

    def _wait_until(
            self,
            path: str,
            key: str,
            is_ready: Callable[[Mapping[str, Any]], bool],
            cancelled: threading.Event,
            ) -> Mapping[str, Any]:
        wait = Wait(
            f"{key} at {path} is ready",
            timeout_sec=self._ready_timeout_sec,
            max_delay_sec=self._poll_max_delay_sec,
            cancelled=cancelled,
            )
        while True:
            obj = self._request('GET', path)[key]
            if obj.get('status') == 'errored':
                raise PermanentProviderError(f"{key} at {path} errored")
            if is_ready(obj):
                return obj
            if not wait.again():
                # The object exists; a retry adopts it and waits again.
                raise TransientProviderError(
                    f"{key} at {path} is not ready after {self._ready_timeout_sec} sec")
            wait.sleep()

    def _request(
            self,
            method: str,
            path: str,
            payload: Optional[Mapping[str, Any]] = None,
            params: Optional[Mapping[str, Any]] = None,
            ) -> Mapping[str, Any]:
        url = self._api_url + path
        _logger.info("%s %s", method, url)
        try:
            response = self._session.request(
                method, url,
                json=payload,
                params=params,
                timeout=self._request_timeout_sec,
                )
        except (requests.ConnectionError, requests.Timeout) as e:
            raise TransientProviderError(f"{method} {path}: {e}")
        _logger.debug("%s %s: HTTP %d", method, url, response.status_code)
        if response.status_code == 429 or response.status_code >= 500:
            raise TransientProviderError(
                f"{method} {path}: HTTP {response.status_code}: {_error_message(response)}",
                status=response.status_code)
        if response.status_code >= 400:
            raise PermanentProviderError(
                f"{method} {path}: HTTP {response.status_code}: {_error_message(response)}",
                status=response.status_code)
        if response.status_code == 204 or not response.content:
            return {}
        return response.json()


def _error_message(response: requests.Response) -> str:
    try:
        return response.json()['message']
    except (ValueError, KeyError, TypeError):
        return response.text[:1000]


def _droplet_ids(values: Any) -> List[int]:
    """Droplet ids as integers, whether given literally or by reference.

    >>> _droplet_ids(["3164444", 3164445])
    [3164444, 3164445]
    """
    if not isinstance(values, (list, tuple)):
        raise PermanentProviderError(f"droplet_ids must be a list, got {values!r}")
    result = []
    for value in values:
        try:
            result.append(int(value))
        except (TypeError, ValueError):
            raise PermanentProviderError(f"Not a droplet id: {value!r}")
    return result


def _ip_address(droplet: Mapping[str, Any], network_type: str) -> Optional[str]:
    for network in droplet.get('networks', {}).get('v4', []):
        if network['type'] == network_type:
            return network['ip_address']
    return None


def _mount_point(volume_name: str) -> str:
    """Where the droplet automounts the volume.

    >>> _mount_point('pg-data')
    '/mnt/pg_data'
    """
    return '/mnt/' + volume_name.replace('-', '_')


_logger = logging.getLogger(__name__)
