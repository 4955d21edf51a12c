"""
Playlistinator - rebuild a Spotify playlist from recent Last.fm scrobbles.

Usage:
    playlistinator              # Sync once and exit
    playlistinator --server     # Serve POST /api/generate on $PORT
    playlistinator --auth       # Authorize with Spotify, save the refresh token to .env

Configuration is read from the environment, with .env in the working
directory loaded first.
"""

import argparse
import logging
import os
import sys
from typing import List, Optional

from dotenv import load_dotenv

from playlistinator.config import PIPELINE_KEYS, Config, ConfigError
from playlistinator.http_client import ApiError

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog='playlistinator',
        description="Sync your most played Last.fm tracks into a Spotify playlist"
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument('--auth', action='store_true', help="Run the Spotify authorization flow")
    mode.add_argument('--server', action='store_true', help="Run the HTTP API server")
    parser.add_argument('--env-file', default='.env', help="Key=value file to load (default: .env)")
    parser.add_argument('-v', '--verbose', action='store_true', help="Log debug output")
    return parser.parse_args(argv)


def configure_logging(level: str = 'INFO', log_file: str = '') -> None:
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True
    )


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    load_dotenv(args.env_file)

    try:
        config = Config.from_env(os.environ)
    except ConfigError as e:
        configure_logging()
        logger.error(str(e))
        return 1

    configure_logging('DEBUG' if args.verbose else config.log_level, config.log_file)

    try:
        if args.auth:
            from playlistinator.spotify_auth import run_auth_ceremony
            run_auth_ceremony(config, env_path=args.env_file)
            logger.info("Authorization complete")
            return 0

        if args.server:
            config.require(*PIPELINE_KEYS)
            from playlistinator.app import create_app
            app = create_app(config)
            logger.info(f"Starting server on port {config.port}")
            app.run(host='0.0.0.0', port=config.port)
            return 0

        from playlistinator.pipeline import run_pipeline
        result = run_pipeline(config)
        logger.info(result.message)
        return 0

    except (ConfigError, ApiError) as e:
        logger.error(str(e))
        return 1


if __name__ == '__main__':
    sys.exit(main())
