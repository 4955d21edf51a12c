"""
Spotify OAuth 2.0 Authentication
Refresh-token exchange for each run, and the one-off authorization ceremony
"""

import logging
import queue
import secrets
import threading
import webbrowser
from dataclasses import dataclass
from urllib.parse import urlencode, urlparse

from flask import Flask, request
from werkzeug.serving import make_server

from playlistinator.config import AUTH_KEYS, Config, save_refresh_token
from playlistinator.http_client import HttpClient, ProtocolError, error_message

logger = logging.getLogger(__name__)

SPOTIFY_AUTH_URL = 'https://accounts.spotify.com/authorize'
SPOTIFY_TOKEN_URL = 'https://accounts.spotify.com/api/token'

# Scopes needed to find, create and rewrite the user's playlists
SCOPES = [
    'playlist-modify-public',
    'playlist-modify-private',
    'playlist-read-private',
    'playlist-read-collaborative'
]


class TokenError(ProtocolError):
    """Raised when Spotify will not hand out a token."""
    pass


@dataclass(frozen=True)
class AccessToken:
    token: str
    expires_in: int  # seconds


def refresh_access_token(http: HttpClient, config: Config) -> AccessToken:
    """
    Exchange the stored refresh token for a short-lived access token.

    Raises:
        TokenError: On a non-200 status or a body without access_token
    """
    data = {
        'grant_type': 'refresh_token',
        'refresh_token': config.spotify_refresh_token,
        'client_id': config.spotify_client_id,
        'client_secret': config.spotify_client_secret
    }

    response = http.post(SPOTIFY_TOKEN_URL, form=data)

    if response.status != 200:
        raise TokenError(f"Token refresh failed: {error_message(response.body)}", status=response.status)

    body = response.body if isinstance(response.body, dict) else {}
    access_token = body.get('access_token')
    if not access_token:
        raise TokenError("Token refresh failed: response has no access_token", status=response.status)

    expires_in = body.get('expires_in')
    return AccessToken(token=access_token, expires_in=expires_in if isinstance(expires_in, int) else 0)


def get_auth_url(config: Config, state: str) -> str:
    """Generate Spotify authorization URL"""
    params = {
        'client_id': config.spotify_client_id,
        'response_type': 'code',
        'redirect_uri': config.spotify_redirect_uri,
        'scope': ' '.join(SCOPES),
        'state': state
    }
    return f"{SPOTIFY_AUTH_URL}?{urlencode(params)}"


def exchange_code_for_token(http: HttpClient, config: Config, code: str) -> dict:
    """Exchange authorization code for access and refresh tokens"""
    data = {
        'grant_type': 'authorization_code',
        'code': code,
        'redirect_uri': config.spotify_redirect_uri,
        'client_id': config.spotify_client_id,
        'client_secret': config.spotify_client_secret
    }

    response = http.post(SPOTIFY_TOKEN_URL, form=data)

    if response.status != 200 or not isinstance(response.body, dict):
        raise TokenError(f"Token exchange failed: {error_message(response.body)}", status=response.status)

    return response.body


def create_auth_app(config: Config, http: HttpClient, env_path: str, results: queue.Queue) -> Flask:
    """
    Build the throwaway Flask app that completes the authorization ceremony.

    The refresh token is written to env_path and put on `results`; a failed
    exchange puts the exception there instead.
    """
    app = Flask(__name__)
    state = secrets.token_urlsafe(16)
    callback_path = urlparse(config.spotify_redirect_uri).path or '/callback'

    @app.route('/')
    def spotify_login():
        """Serve a link that starts the OAuth flow"""
        return f'<a href="{get_auth_url(config, state)}">Login with Spotify</a>'

    @app.route(callback_path)
    def spotify_callback():
        """Handle Spotify OAuth callback"""
        if request.args.get('state') != state:
            return 'Invalid state parameter', 400

        error = request.args.get('error')
        if error:
            return f'Authorization failed: {error}', 400

        code = request.args.get('code')
        if not code:
            return 'No code received', 400

        try:
            token_data = exchange_code_for_token(http, config, code)
            refresh_token = token_data.get('refresh_token')
            if not refresh_token:
                raise TokenError("Token exchange returned no refresh_token")
            save_refresh_token(env_path, refresh_token)
        except Exception as e:
            logger.error(f"Authorization failed: {e}")
            _publish(results, e)
            return f'Authorization failed: {e}', 500

        _publish(results, refresh_token)
        return (
            f'Authentication successful! Your refresh token has been saved to {env_path}. '
            'You can now close this window.'
        )

    return app


def _publish(results, outcome):
    # Only the first callback counts; the listener is shutting down after it
    try:
        results.put_nowait(outcome)
    except queue.Full:
        logger.warning("Ignoring extra authorization callback")


def run_auth_ceremony(config: Config, env_path: str = '.env', open_browser: bool = True) -> str:
    """
    Serve the login page on the redirect URI's host and port until one
    callback arrives, then shut the listener down.

    Returns:
        The refresh token that was saved

    Raises:
        ConfigError: If the client id or secret is missing
        ApiError: If the code exchange failed
    """
    config.require(*AUTH_KEYS)

    redirect = urlparse(config.spotify_redirect_uri)
    host = redirect.hostname or 'localhost'
    port = redirect.port or 8080

    results = queue.Queue(maxsize=1)
    with HttpClient(timeout=config.request_timeout) as http:
        app = create_auth_app(config, http, env_path, results)
        server = make_server(host, port, app)
        thread = threading.Thread(target=server.serve_forever, daemon=True)
        thread.start()

        login_url = f'http://{host}:{port}/'
        logger.info(f"Starting auth server on {login_url}")
        logger.info(f"Please visit {login_url} in your browser to authenticate with Spotify")
        if open_browser:
            webbrowser.open(login_url)

        try:
            outcome = results.get()
        finally:
            server.shutdown()
            thread.join()

    if isinstance(outcome, Exception):
        raise outcome
    return outcome
