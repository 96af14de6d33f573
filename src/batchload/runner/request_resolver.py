"""
Resolution of per-record request parameters.

Every setting is taken from the first level that provides it:
per-record payload > run options > process environment.
"""

import logging
import os
from typing import Dict, Mapping, Optional

from ..config.config_loader import parse_headers_env
from ..config.options import RunOptions
from ..core.errors import ConfigurationError
from ..core.models import Payload, RequestSpec


logger = logging.getLogger(__name__)


ENV_BASE_URL = "BATCHLOAD_BASE_URL"
ENV_ENDPOINT = "BATCHLOAD_ENDPOINT"
ENV_METHOD = "BATCHLOAD_METHOD"
ENV_HEADERS = "BATCHLOAD_HEADERS"

DEFAULT_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}


def first_set(*values):
    """Return the first value that is neither None nor an empty string."""
    for value in values:
        if value is not None and value != "":
            return value
    return None


def join_url(base_url: str, path: str) -> str:
    return base_url.rstrip("/") + "/" + path.lstrip("/")


class RequestResolver:
    """
    Builds a RequestSpec for a payload.

    The environment is read once, when the resolver is created.
    """

    def __init__(
        self,
        options: RunOptions,
        access_token: Optional[str] = None,
        environ: Optional[Mapping[str, str]] = None,
    ):
        """
        Initialize the resolver.

        Args:
            options: Run-level options
            access_token: Token obtained for the run, if any
            environ: Environment mapping (defaults to os.environ)
        """
        environ = os.environ if environ is None else environ
        self.options = options
        self.access_token = access_token
        self.env_base_url = environ.get(ENV_BASE_URL)
        self.env_endpoint = environ.get(ENV_ENDPOINT)
        self.env_method = environ.get(ENV_METHOD)
        self.env_headers = parse_headers_env(environ.get(ENV_HEADERS))

    def resolve(self, payload: Payload) -> RequestSpec:
        """
        Resolve the outbound request for one payload.

        Raises:
            ConfigurationError: If endpoint, base_url or method is missing
        """
        endpoint = first_set(payload.endpoint, self.options.endpoint, self.env_endpoint)
        if endpoint is None:
            raise ConfigurationError("endpoint")

        if not endpoint.lower().startswith(("http://", "https://")):
            base_url = first_set(payload.base_url, self.options.base_url, self.env_base_url)
            if base_url is None:
                raise ConfigurationError(
                    "base_url",
                    f"base_url is required for relative endpoint '{endpoint}' and is not set "
                    f"in the record payload, run options or environment",
                )
            endpoint = join_url(base_url, endpoint)

        method = first_set(payload.method, self.options.method, self.env_method)
        if method is None:
            raise ConfigurationError("method")

        headers: Dict[str, str] = dict(DEFAULT_HEADERS)
        extra = first_set(payload.headers, self.options.headers, self.env_headers)
        if extra:
            headers.update({str(k): str(v) for k, v in extra.items()})

        params = None
        token = first_set(payload.access_token, self.access_token)
        if token:
            params = {self.options.token_param: token}

        return RequestSpec(
            endpoint=endpoint,
            method=str(method).upper(),
            headers=headers,
            body=payload.body,
            params=params,
        )
