"""
HTTP transport for sending one request per record.
"""

import json
import logging
import time
from typing import Optional

import requests

from ...core.models import RequestSpec, TransportResponse
from ...core.transport import Transport


logger = logging.getLogger(__name__)


class HttpTransport(Transport):
    """
    HTTP transport built on a requests session.

    Supports:
    - Any HTTP method with a JSON body
    - Custom headers and query parameters
    - Retries with exponential backoff on connection errors
    """

    def __init__(
        self,
        name: str = "http",
        timeout: int = 10,
        max_attempts: int = 1,
        user_agent: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the HTTP transport.

        Args:
            name: Transport name
            timeout: Request timeout in seconds
            max_attempts: Attempts per request when the connection fails
            user_agent: Custom User-Agent header
            session: Optional requests session (created if not provided)
        """
        self.name = name
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.user_agent = user_agent or "batchload/1.0"
        self.session = session or requests.Session()

    def send(self, request: RequestSpec) -> TransportResponse:
        """
        Send the request via HTTP.

        Args:
            request: The request to send

        Returns:
            TransportResponse with the result
        """
        headers = dict(request.headers or {})
        if "User-Agent" not in headers:
            headers["User-Agent"] = self.user_agent

        last_error = None
        for attempt in range(self.max_attempts):
            try:
                start_time = time.time()

                response = self.session.request(
                    request.method,
                    request.endpoint,
                    params=request.params,
                    headers=headers,
                    json=request.body,
                    timeout=self.timeout,
                )

                duration_ms = int((time.time() - start_time) * 1000)

                # Try to parse as JSON, fall back to text
                try:
                    body = response.json()
                except (json.JSONDecodeError, ValueError):
                    body = {
                        "content_type": response.headers.get("Content-Type", "unknown"),
                        "text": response.text,
                    }

                if response.status_code == 401:
                    logger.error("Received 401: check access_token/credentials. Expired/wrong?")

                return TransportResponse(
                    status_code=response.status_code,
                    body=body,
                    headers=dict(response.headers),
                    duration_ms=duration_ms,
                )

            except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
                last_error = str(e)
                logger.warning(
                    f"Request failed (attempt {attempt + 1}/{self.max_attempts}): {e}"
                )

                if attempt < self.max_attempts - 1:
                    # Exponential backoff
                    time.sleep(2 ** attempt)
                    continue

            except requests.exceptions.RequestException as e:
                last_error = str(e)
                logger.warning(f"Request failed: {e}")
                break

        return TransportResponse(
            error=f"Request failed after {self.max_attempts} attempt(s): {last_error}",
        )

    def get_name(self) -> str:
        """Return the transport name."""
        return self.name

    def close(self) -> None:
        """Close the session."""
        if self.session:
            self.session.close()
