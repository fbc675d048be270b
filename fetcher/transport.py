"""HTTP transport for calendar provider requests."""
import logging
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """An HTTP exchange failed or returned a non-success status."""

    def __init__(self, reason: str, status_code: Optional[int] = None):
        super().__init__(reason)
        self.reason = reason
        self.status_code = status_code


class HttpTransport:
    """Single-attempt JSON GET over requests, bounded by a timeout."""

    def __init__(self, timeout: int = 30, session: Optional[requests.Session] = None):
        """
        Initialize the transport.

        Args:
            timeout: HTTP request timeout in seconds (default: 30)
            session: Optional requests session to reuse connections
        """
        self.timeout = timeout
        self.session = session or requests.Session()

    def get_json(
        self,
        url: str,
        token: str,
        params: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        GET a JSON document with bearer authentication.

        Args:
            url: Absolute request URL
            token: Bearer access token
            params: Query parameters

        Returns:
            Decoded JSON object

        Raises:
            TransportError: On timeout, connection failure, non-2xx status or
                a body that is not a JSON object
        """
        try:
            response = self.session.get(
                url,
                params=params,
                headers={'Authorization': f'Bearer {token}'},
                timeout=self.timeout
            )
        except requests.Timeout as e:
            logger.warning(f"Request to {url} timed out after {self.timeout}s")
            raise TransportError(f"Request timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            logger.warning(f"Request to {url} failed: {e}")
            raise TransportError(str(e)) from e

        if not response.ok:
            logger.warning(f"Request to {url} returned HTTP {response.status_code}")
            raise TransportError(
                response.reason or f"HTTP {response.status_code}",
                status_code=response.status_code
            )

        # Body errors carry no status code; the exchange itself succeeded.
        try:
            data = response.json()
        except ValueError as e:
            logger.warning(f"Request to {url} returned a body that is not JSON")
            raise TransportError('Invalid JSON in response body') from e

        if not isinstance(data, dict):
            logger.warning(f"Request to {url} returned a JSON {type(data).__name__}, not an object")
            raise TransportError('Unexpected response body')
        return data
