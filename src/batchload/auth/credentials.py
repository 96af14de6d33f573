"""
Access token acquisition.

Tokens are taken from the first source that provides one:
1. BATCHLOAD_ACCESS_TOKEN environment variable
2. Login with username/password (and tenant) from the run options
3. access_token from the run options
"""

import logging
import os
from typing import Mapping, Optional

from ..config.options import RunOptions
from ..core.errors import AuthenticationError, ConfigurationError
from ..core.models import RequestSpec
from ..core.transport import Transport


logger = logging.getLogger(__name__)


ENV_ACCESS_TOKEN = "BATCHLOAD_ACCESS_TOKEN"
ENV_BASE_URL = "BATCHLOAD_BASE_URL"


class CredentialProvider:
    """Obtains the access token used for a run."""

    def __init__(self, transport: Transport, environ: Optional[Mapping[str, str]] = None):
        """
        Initialize the credential provider.

        Args:
            transport: Transport used for the login call
            environ: Environment mapping (defaults to os.environ)
        """
        self.transport = transport
        self.environ = os.environ if environ is None else environ

    def acquire(self, options: RunOptions) -> Optional[str]:
        """
        Get an access token for the run. Blocking.

        Returns:
            The token, or None when no credential source is configured

        Raises:
            ConfigurationError: If login is configured without a base URL
            AuthenticationError: If the login call fails
        """
        token = self.environ.get(ENV_ACCESS_TOKEN)
        if token:
            logger.debug(f"access_token taken from environment variable {ENV_ACCESS_TOKEN}")
            return token

        creds = options.credentials
        if creds.username:
            return self._login(options)

        if creds.access_token:
            logger.debug("access_token taken from run options")
            return creds.access_token

        logger.warning(
            f"No access_token in {ENV_ACCESS_TOKEN} or run options, and no user "
            f"credentials to log in with; requests will be sent without a token"
        )
        return None

    def _login(self, options: RunOptions) -> str:
        creds = options.credentials
        base_url = options.base_url or self.environ.get(ENV_BASE_URL)
        if not base_url:
            raise ConfigurationError(
                "base_url",
                "base_url is required to log in and is not set in run options "
                f"or {ENV_BASE_URL}",
            )
        if not creds.password:
            logger.warning("password is not specified in run credentials")
        if not creds.tenant_id:
            logger.warning("tenant_id is not specified in run credentials")

        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if creds.tenant_id:
            headers["tenant-id"] = creds.tenant_id

        request = RequestSpec(
            endpoint=base_url.rstrip("/") + "/" + options.login_path.lstrip("/"),
            method="POST",
            headers=headers,
            body={"username": creds.username, "password": creds.password},
        )
        logger.debug(f"Logging in as '{creds.username}' at {request.endpoint}")

        response = self.transport.send(request)
        if response.error:
            raise AuthenticationError(f"Login request failed: {response.error}")
        if response.status_code is None or not 200 <= response.status_code < 300:
            raise AuthenticationError(
                f"Login rejected with status {response.status_code}: {response.body}"
            )

        token = response.body.get("id") if isinstance(response.body, dict) else None
        if not token:
            raise AuthenticationError("Login response did not contain an access token")

        logger.info(f"Obtained access_token for user '{creds.username}'")
        return token
