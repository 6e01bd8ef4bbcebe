"""Command line entry point for the Ring MQTT bridge."""

from __future__ import annotations

import argparse
import asyncio
import getpass
import sys
from pathlib import Path

from loguru import logger  # type: ignore[import-untyped]

from ring_mqtt.app import RingMqttApp
from ring_mqtt.config import BridgeConfig
from ring_mqtt.log import configure_logging
from ring_mqtt.ring import RingClientError, RingTwoFactorRequired, fetch_refresh_token
from ring_mqtt.state import StateStore


def load_config(path: str | None, env_file: str | None = None) -> BridgeConfig:
    """Load configuration from a config.json file or the environment."""
    if path:
        return BridgeConfig.from_file(path)
    return BridgeConfig.from_env(env_file=Path(env_file) if env_file else None)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='ring-mqtt',
        description='Bridge Ring devices to MQTT with Home Assistant discovery',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Generate a refresh token (prompts for password and 2FA code)
  ring-mqtt auth --email me@example.com --config config.json

  # Run the bridge with settings from config.json
  ring-mqtt run --config config.json

  # Run with RINGMQTT_* environment variables and debug logging
  ring-mqtt run --debug
        """,
    )
    parser.add_argument('-c', '--config', type=str, help='Path to config.json (default: environment)')
    parser.add_argument('--env-file', type=str, help='Optional .env file with RINGMQTT_* variables')
    parser.add_argument('-d', '--debug', action='store_true', help='Enable debug logging')
    parser.add_argument('-l', '--log-file', type=str, help='Also log to this file')

    subparsers = parser.add_subparsers(dest='command')

    run = subparsers.add_parser('run', help='Run the bridge (default)')
    run.add_argument('-t', '--token', type=str, help='Refresh token to use instead of the saved one')

    auth = subparsers.add_parser('auth', help='Generate and save a refresh token')
    auth.add_argument('-e', '--email', type=str, required=True, help='Ring account email')
    return parser


async def run_auth(config: BridgeConfig, email: str) -> int:
    """Interactive refresh token generation, saved to the state file."""
    state = StateStore(config.state_path)
    state.load()
    password = getpass.getpass('Ring password: ')
    code: str | None = None
    while True:
        try:
            token = await fetch_refresh_token(email, password, state.system_id, code)
            break
        except RingTwoFactorRequired as e:
            if code is not None:
                print('Invalid two-factor code, try again.')
            code = input(f'{e.prompt}: ').strip()
        except RingClientError as e:
            logger.error(f'Authentication failed: {e}')
            return 1

    state.set_token(token)
    print(f'Refresh token saved to {state.path}')
    return 0


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(debug=args.debug, log_file=args.log_file)

    try:
        config = load_config(args.config, args.env_file)
    except (FileNotFoundError, ValueError) as e:
        logger.error(f'Invalid configuration: {e}')
        return 2

    if args.command == 'auth':
        return asyncio.run(run_auth(config, args.email))

    token = getattr(args, 'token', None)
    try:
        return asyncio.run(RingMqttApp(config).run(generated_token=token))
    except KeyboardInterrupt:
        return 0


if __name__ == '__main__':
    sys.exit(main())
