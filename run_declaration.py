# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import argparse
import json
import logging
import logging.handlers
import os
import signal
import sys
from pathlib import Path
from typing import Sequence

from cloud_provider import DigitalOceanProvider
from cloud_provider import RetryPolicy
from config import global_config
from convergence import SshSessionFactory
from dependency_graph import CycleError
from dependency_graph import DanglingReference
from dependency_graph import DuplicateResource
from execution import RunContext
from execution import converge
from execution import format_report
from execution import plan
from manifest import ManifestError
from manifest import load_manifest


def main(args: Sequence[str]) -> int:
    parsed_args = _parser().parse_args(args)
    _init_logging(parsed_args.verbose)
    return run(parsed_args)


def run(parsed_args: argparse.Namespace) -> int:
    try:
        manifest = load_manifest(parsed_args.manifest)
        if parsed_args.command == 'plan':
            print(json.dumps(plan(manifest), indent=2))
            return 0
        token = os.environ.get(parsed_args.token_env)
        if not token:
            print(f"Provider token is not set: {parsed_args.token_env}", file=sys.stderr)
            return 2
        provider = DigitalOceanProvider(
            token, parsed_args.api_url,
            request_timeout_sec=float(global_config['provider_request_timeout_sec']),
            ready_timeout_sec=float(global_config['provider_ready_timeout_sec']),
            )
        key_path = parsed_args.ssh_key
        sessions = SshSessionFactory(
            username=parsed_args.ssh_username,
            port=int(global_config['ssh_port']),
            key=key_path.expanduser().read_text() if key_path is not None else None,
            connect_timeout_sec=float(global_config['ssh_connect_timeout_sec']),
            command_timeout_sec=float(global_config['command_timeout_sec']),
            )
        retry_policy = RetryPolicy(
            attempts=parsed_args.retry_attempts,
            base_delay_sec=float(global_config['retry_base_delay_sec']),
            max_delay_sec=float(global_config['retry_max_delay_sec']),
            )
        context = RunContext()
        previous_handler = signal.signal(signal.SIGINT, lambda _signum, _frame: context.cancel())
        try:
            report = converge(
                manifest, provider, sessions, context, retry_policy, parsed_args.max_workers)
        finally:
            signal.signal(signal.SIGINT, previous_handler)
    except (ManifestError, CycleError, DanglingReference, DuplicateResource) as e:
        print(f"{e.__class__.__name__}: {e}", file=sys.stderr)
        return 2
    print(format_report(report))
    return 0 if report.is_success() else 10


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Create cloud resources declared in a manifest and configure hosts.")
    parser.add_argument('--verbose', action='store_true', help="Log everything to stderr")
    command_parser = parser.add_subparsers(dest='command', required=True)
    plan_parser = command_parser.add_parser(
        'plan', help="Print creation order and known attributes; create nothing")
    plan_parser.add_argument('manifest', type=Path, help="Manifest JSON file")
    apply_parser = command_parser.add_parser(
        'apply', help="Create resources, then converge hosts")
    apply_parser.add_argument('manifest', type=Path, help="Manifest JSON file")
    apply_parser.add_argument(
        '--api-url',
        default=global_config['provider_api_url'],
        help="Provider API, default: %(default)s")
    apply_parser.add_argument(
        '--token-env',
        default=global_config['provider_token_env'],
        help="Environment variable with provider API token, default: %(default)s")
    apply_parser.add_argument(
        '--ssh-username',
        default=global_config['ssh_username'],
        help="Remote user; changes are made with sudo unless it is root, default: %(default)s")
    apply_parser.add_argument(
        '--ssh-key',
        type=Path,
        default=Path(global_config['ssh_key_path']) if global_config.get('ssh_key_path') else None,
        help="Private key file; SSH agent and default keys are used if not set")
    apply_parser.add_argument(
        '--retry-attempts',
        type=int,
        default=int(global_config['retry_attempts']),
        help="Attempts per provider call on transient errors, default: %(default)s")
    apply_parser.add_argument(
        '--max-workers',
        type=int,
        default=int(global_config['max_workers']),
        help="Resources created at the same time, default: %(default)s")
    return parser


def _init_logging(verbose: bool):
    logging.getLogger().setLevel(logging.DEBUG)
    log_dir = Path('~/.cache/infra_converge_logs').expanduser()
    log_dir.mkdir(exist_ok=True, parents=True)
    file_handler = logging.handlers.RotatingFileHandler(
        log_dir / 'run_declaration.log', maxBytes=200 * 1024**2, backupCount=6)
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s %(threadName)s %(name)s %(levelname)s %(message)s'))
    file_handler.setLevel(logging.DEBUG)
    logging.getLogger().addHandler(file_handler)
    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    logging.getLogger().addHandler(stream_handler)
    # Paramiko logs every transport packet at DEBUG.
    logging.getLogger('paramiko').setLevel(logging.INFO)


if __name__ == '__main__':
    exit(main(sys.argv[1:]))
