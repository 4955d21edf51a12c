"""
Runtime configuration
Credentials and tunables, read once from the environment at startup
"""

import logging
from dataclasses import dataclass, fields
from typing import Mapping

from dotenv import set_key

logger = logging.getLogger(__name__)

DEFAULT_REDIRECT_URI = 'http://localhost:8080/callback'
DEFAULT_PLAYLIST_NAME = 'Last.fm Top 100'
REFRESH_TOKEN_KEY = 'SPOTIFY_REFRESH_TOKEN'

# Keys the sync pipeline cannot run without
PIPELINE_KEYS = (
    'LASTFM_API_KEY',
    'LASTFM_USER',
    'SPOTIFY_CLIENT_ID',
    'SPOTIFY_CLIENT_SECRET',
    REFRESH_TOKEN_KEY,
)

# Keys the auth ceremony needs before it has a refresh token
AUTH_KEYS = ('SPOTIFY_CLIENT_ID', 'SPOTIFY_CLIENT_SECRET')


class ConfigError(Exception):
    """Raised when configuration is missing or invalid."""
    pass


@dataclass(frozen=True)
class Config:
    lastfm_api_key: str = ''
    lastfm_user: str = ''
    spotify_client_id: str = ''
    spotify_client_secret: str = ''
    spotify_refresh_token: str = ''
    spotify_redirect_uri: str = DEFAULT_REDIRECT_URI
    port: int = 8080
    playlist_name: str = DEFAULT_PLAYLIST_NAME
    playlist_size: int = 100
    history_days: int = 30
    request_timeout: float = 10.0
    log_level: str = 'INFO'
    log_file: str = ''

    @staticmethod
    def env_key(field_name: str) -> str:
        return field_name.upper()

    @classmethod
    def from_env(cls, environ: Mapping[str, str]) -> 'Config':
        """
        Build a Config from an environment mapping.

        Args:
            environ: Usually os.environ after load_dotenv()

        Returns:
            Config with defaults for every key that is unset or blank

        Raises:
            ConfigError: If a numeric setting does not parse
        """
        values = {}
        for f in fields(cls):
            raw = environ.get(cls.env_key(f.name))
            if raw is None or raw.strip() == '':
                continue
            raw = raw.strip()
            if f.type in (int, 'int'):
                values[f.name] = _parse_number(f.name, raw, int)
            elif f.type in (float, 'float'):
                values[f.name] = _parse_number(f.name, raw, float)
            else:
                values[f.name] = raw
        return cls(**values)

    def get(self, name: str) -> str:
        """Return the string value for a configuration key such as LASTFM_USER."""
        field_name = name.lower()
        if field_name not in {f.name for f in fields(self)}:
            raise ConfigError(f"Unknown configuration key: {name}")
        value = getattr(self, field_name)
        return '' if value is None else str(value)

    def require(self, *names: str) -> None:
        missing = [name for name in names if not self.get(name)]
        if missing:
            raise ConfigError(f"Missing required configuration: {', '.join(missing)}")


def _parse_number(field_name, raw, kind):
    try:
        value = kind(raw)
    except ValueError:
        raise ConfigError(f"{Config.env_key(field_name)} must be a number, got {raw!r}")
    if value <= 0:
        raise ConfigError(f"{Config.env_key(field_name)} must be positive, got {raw!r}")
    return value


def save_refresh_token(env_path: str, refresh_token: str) -> None:
    """
    Upsert SPOTIFY_REFRESH_TOKEN in a key=value file.

    An existing SPOTIFY_REFRESH_TOKEN line is replaced in place, otherwise the
    line is appended. Every other line is written back unchanged.
    """
    set_key(env_path, REFRESH_TOKEN_KEY, refresh_token, quote_mode='never')
    logger.info(f"Saved refresh token to {env_path}")
