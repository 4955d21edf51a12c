"""
HTTP client facade
Authenticated JSON requests against the Last.fm and Spotify web APIs
"""

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

import orjson
import requests

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10  # seconds


class ApiError(Exception):
    """Base class for failures talking to a remote API."""
    pass


class TransportError(ApiError):
    """Raised when a request never produced an HTTP response."""
    pass


class ProtocolError(ApiError):
    """Raised on a non-success status or a body that is not valid JSON."""

    def __init__(self, message, status=None):
        super().__init__(message)
        self.status = status


@dataclass(frozen=True)
class ApiResponse:
    status: int
    body: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class HttpClient:
    """
    Thin wrapper around a requests.Session.

    Every call returns an ApiResponse with the decoded JSON body. The client
    never retries; transport failures surface as TransportError.
    """

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session or requests.Session()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def close(self):
        self.session.close()

    def request(self, method, url, *, params=None, form=None, json_body=None, token=None, headers=None) -> ApiResponse:
        request_headers = {'Accept': 'application/json'}
        if token:
            request_headers['Authorization'] = f'Bearer {token}'

        data = None
        if form is not None:
            request_headers['Content-Type'] = 'application/x-www-form-urlencoded'
            data = form
        elif json_body is not None:
            request_headers['Content-Type'] = 'application/json'
            data = orjson.dumps(json_body)

        if headers:
            request_headers.update(headers)

        try:
            response = self.session.request(
                method,
                url,
                params=params,
                data=data,
                headers=request_headers,
                timeout=self.timeout
            )
        except requests.RequestException as e:
            raise TransportError(f"{method} {url} failed: {e}")

        logger.debug(f"{method} {url} -> {response.status_code}")
        return ApiResponse(response.status_code, _decode_body(response, method, url))

    def get(self, url, **kwargs) -> ApiResponse:
        return self.request('GET', url, **kwargs)

    def post(self, url, **kwargs) -> ApiResponse:
        return self.request('POST', url, **kwargs)

    def put(self, url, **kwargs) -> ApiResponse:
        return self.request('PUT', url, **kwargs)

    def delete(self, url, **kwargs) -> ApiResponse:
        return self.request('DELETE', url, **kwargs)


def _decode_body(response, method, url):
    if not response.content or not response.content.strip():
        return None
    try:
        return orjson.loads(response.content)
    except orjson.JSONDecodeError as e:
        raise ProtocolError(
            f"{method} {url} returned malformed JSON (status {response.status_code}): {e}",
            status=response.status_code
        )


def ensure_status(response: ApiResponse, action: str, expected: Iterable[int] = (200,)) -> ApiResponse:
    """Raise ProtocolError unless the response status is one of `expected`."""
    if response.status not in expected:
        raise ProtocolError(
            f"{action} failed with status {response.status}: {error_message(response.body)}",
            status=response.status
        )
    return response


def error_message(body) -> str:
    """Pull a human readable message out of a Spotify or Last.fm error body."""
    if isinstance(body, dict):
        error = body.get('error')
        if isinstance(error, dict) and error.get('message'):
            return str(error['message'])
        if body.get('message'):
            return str(body['message'])
        if body.get('error_description'):
            return str(body['error_description'])
        if isinstance(error, str):
            return error
    return str(body)
