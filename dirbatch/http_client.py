"""Thin HTTP abstraction for talking to SCIM directories, built on ``requests``.

Key behaviors:
- Automatic 429 Too Many Requests retry with Retry-After header support
- Bearer token and HTTP Basic authentication
- TLS options: skip verification, custom CA bundle
- ``redact_auth()`` helper for safe logging of headers
"""

import json
import logging
import time
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)

# Retry policy for 429 Too Many Requests (RFC 6585)
_MAX_RETRIES = 3
_DEFAULT_RETRY_AFTER = 2  # seconds, used when Retry-After header is missing


class SCIMResponse:
    """Normalized HTTP response wrapper."""

    def __init__(self, status_code: int, headers: Dict[str, str], body: str):
        self.status_code = status_code
        self.headers = headers
        self.body = body
        self._json = None

    def json(self) -> Any:
        """Parse and cache the response body as JSON."""
        if self._json is None:
            self._json = json.loads(self.body) if self.body else None
        return self._json

    def header(self, name: str) -> Optional[str]:
        """Case-insensitive header lookup."""
        lower = name.lower()
        for k, v in self.headers.items():
            if k.lower() == lower:
                return v
        return None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def error_detail(self) -> str:
        """Best-effort human-readable reason for a failed request.

        Uses the SCIM error ``detail`` (RFC 7644 §3.12) when the body carries one.
        """
        try:
            body = self.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and body.get("detail"):
            return f"HTTP {self.status_code}: {body['detail']}"
        return f"HTTP {self.status_code}"


class SCIMClient:
    """HTTP client for SCIM server interactions.

    Args:
        base_url:       Root URL of the SCIM endpoint (e.g. ``https://example.com/scim/v2``)
        token:          Bearer token for authentication
        username:       Username for HTTP Basic authentication
        password:       Password for HTTP Basic authentication
        tls_no_verify:  Skip TLS certificate verification (for self-signed certs)
        timeout:        Per-request timeout in seconds
        ca_bundle:      Path to custom CA certificate bundle file
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        tls_no_verify: bool = False,
        timeout: int = 30,
        ca_bundle: Optional[str] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.username = username
        self.password = password
        self.tls_no_verify = tls_no_verify
        self.timeout = timeout
        self.ca_bundle = ca_bundle
        self.session = requests.Session()

    # -- Public API ----------------------------------------------------------

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> SCIMResponse:
        """Send a GET request to the SCIM endpoint."""
        return self._request("GET", path, params=params)

    def post(self, path: str, payload: Dict[str, Any]) -> SCIMResponse:
        """Send a POST request with a JSON payload."""
        return self._request("POST", path, payload)

    def patch(self, path: str, payload: Dict[str, Any]) -> SCIMResponse:
        """Send a PATCH request with a JSON payload."""
        return self._request("PATCH", path, payload)

    def delete(self, path: str) -> SCIMResponse:
        """Send a DELETE request."""
        return self._request("DELETE", path)

    def close(self):
        self.session.close()

    # -- Internals -----------------------------------------------------------

    def _build_headers(self) -> Dict[str, str]:
        """Build the default SCIM request headers with auth credentials."""
        headers = {
            "Accept": "application/scim+json",
            "Content-Type": "application/scim+json",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> SCIMResponse:
        """Execute an HTTP request with automatic 429 retry.

        Retries up to ``_MAX_RETRIES`` times when the server responds with
        429 Too Many Requests, sleeping for the duration specified by the
        ``Retry-After`` header (or ``_DEFAULT_RETRY_AFTER`` if absent).

        Raises:
            requests.RequestException: on connection or timeout failures.
        """
        url = f"{self.base_url}{path}"
        headers = self._build_headers()
        kwargs: Dict[str, Any] = {
            "headers": headers,
            "timeout": self.timeout,
            "params": params,
        }
        if self.ca_bundle:
            kwargs["verify"] = self.ca_bundle
        else:
            kwargs["verify"] = not self.tls_no_verify
        if not self.token and self.username and self.password:
            kwargs["auth"] = (self.username, self.password)
        if payload is not None:
            # requests would send application/json with json=; keep the SCIM media type
            kwargs["data"] = json.dumps(payload)

        logger.debug("%s %s headers=%s", method, url, redact_auth(headers))
        for attempt in range(_MAX_RETRIES + 1):
            raw = self.session.request(method, url, **kwargs)
            resp = SCIMResponse(raw.status_code, dict(raw.headers), raw.text)

            if resp.status_code == 429 and attempt < _MAX_RETRIES:
                retry_after = _parse_retry_after(resp.header("Retry-After"))
                logger.info("Throttled by %s; retrying in %.0fs", self.base_url, retry_after)
                time.sleep(retry_after)
                continue

            return resp

        return resp  # Return last response if all retries exhausted


def _parse_retry_after(value: Optional[str]) -> float:
    """Parse a Retry-After header value into seconds to wait.

    Handles integer-second values per RFC 7231 Section 7.1.3.
    Returns ``_DEFAULT_RETRY_AFTER`` if the header is missing or unparseable.
    """
    if not value:
        return _DEFAULT_RETRY_AFTER
    try:
        return max(0.0, float(value))
    except ValueError:
        return _DEFAULT_RETRY_AFTER


def redact_auth(headers: Dict[str, str]) -> Dict[str, str]:
    """Return a copy of headers with Authorization values replaced by ``***REDACTED***``."""
    redacted = dict(headers)
    for key in list(redacted.keys()):
        if key.lower() == "authorization":
            redacted[key] = "***REDACTED***"
    return redacted
