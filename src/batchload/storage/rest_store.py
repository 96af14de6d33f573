"""
REST-based run store.

Persists run records and results to the target application itself:
- POST {base_url}/api/BatchRuns           -> create run, returns _version
- PUT  {base_url}/api/BatchRuns/{run_id}  -> update stats with _version
- POST {base_url}/api/BatchStatus         -> store one result
"""

import logging
import uuid
from typing import Any, Dict, Optional, Tuple

import requests

from ..core.errors import AuthenticationError, FatalSystemError, StaleVersionError
from ..core.run_store import RunStore


logger = logging.getLogger(__name__)


class RestRunStore(RunStore):
    """Run store backed by the application's REST API."""

    def __init__(
        self,
        base_url: str,
        access_token: Optional[str] = None,
        runs_path: str = "/api/BatchRuns",
        results_path: str = "/api/BatchStatus",
        timeout: int = 10,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the REST run store.

        Args:
            base_url: Base URL of the application
            access_token: Token sent as ``access_token`` query parameter
            runs_path: Path of the run collection
            results_path: Path of the result collection
            timeout: Request timeout in seconds
            session: Optional requests session (created if not provided)
        """
        self.base_url = base_url.rstrip("/")
        self.access_token = access_token
        self.runs_path = runs_path
        self.results_path = results_path
        self.timeout = timeout
        self.session = session or requests.Session()

    def set_access_token(self, token: Optional[str]) -> None:
        """Use the token acquired for the run for all later calls."""
        if token:
            self.access_token = token

    def _params(self) -> Optional[Dict[str, str]]:
        return {"access_token": self.access_token} if self.access_token else None

    def _request(self, method: str, path: str, body: Dict[str, Any]) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            return self.session.request(
                method,
                url,
                params=self._params(),
                json=body,
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise FatalSystemError(f"{method} {url} failed: {e}") from e

    def _check(self, response: requests.Response, action: str) -> Dict[str, Any]:
        if response.status_code == 401:
            raise AuthenticationError(
                f"{action} rejected (401): check access_token/credentials"
            )
        if response.status_code == 409:
            raise StaleVersionError(f"{action} rejected (409): stale version")
        if not 200 <= response.status_code < 300:
            raise FatalSystemError(
                f"{action} failed with status {response.status_code}: {response.text[:500]}"
            )
        try:
            return response.json()
        except ValueError as e:
            raise FatalSystemError(f"{action} returned a non-JSON body") from e

    def create_run(self, metadata: Dict[str, Any]) -> Tuple[str, str]:
        """Post a new run record."""
        run_id = str(uuid.uuid4())
        body = dict(metadata, id=run_id)
        logger.debug(f"Creating run record {run_id} at {self.base_url}{self.runs_path}")

        data = self._check(self._request("POST", self.runs_path, body), "Run creation")
        version = data.get("_version")
        if not version:
            raise FatalSystemError("Run creation response did not include a _version")
        return run_id, str(version)

    def update_run(self, run_id: str, version_token: str, stats: Dict[str, Any]) -> str:
        """Put run stats carrying the current version."""
        body = dict(stats, _version=version_token)
        data = self._check(
            self._request("PUT", f"{self.runs_path}/{run_id}", body),
            f"Run update for {run_id}",
        )
        version = data.get("_version")
        if not version:
            raise FatalSystemError(f"Run update for {run_id} did not return a _version")
        return str(version)

    def write_result(self, result: Dict[str, Any]) -> None:
        """Post one result."""
        response = self._request("POST", self.results_path, result)
        if not 200 <= response.status_code < 300:
            raise FatalSystemError(
                f"Result write failed with status {response.status_code}: {response.text[:500]}"
            )

    def get_name(self) -> str:
        """Return the store name."""
        return "rest"

    def close(self) -> None:
        """Close the session."""
        if self.session:
            self.session.close()
