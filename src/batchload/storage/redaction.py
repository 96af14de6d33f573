"""
Redaction of results before they are stored.

Provides:
- Allow-list controlled stripping of error details, error stacks and
  response headers
- Masking of auth headers and token query parameters in request snapshots
"""

import copy
import logging
import re
from typing import Any, Dict, Iterable, Optional, Set

from ..config.options import RESULT_LOG_ITEMS


logger = logging.getLogger(__name__)

# Default sensitive header names (case-insensitive)
DEFAULT_SENSITIVE_HEADERS = {
    "authorization",
    "cookie",
    "set-cookie",
    "x-api-key",
    "api-key",
    "x-auth-token",
    "x-access-token",
}

SENSITIVE_PARAMS = {
    "access_token", "token", "api_key", "apikey", "secret", "password",
}

REDACTED_VALUE = "[REDACTED]"


class ResultRedactor:
    """
    Redacts result dictionaries produced by ``Result.to_dict()``.

    Error details, error stacks and response headers are dropped unless
    named in ``allow_items``. Credentials are always masked.
    """

    def __init__(
        self,
        allow_items: Optional[Iterable[str]] = None,
        headers_to_redact: Optional[Set[str]] = None,
    ):
        """
        Initialize the redactor.

        Args:
            allow_items: Subset of 'error.details', 'error.stack', 'response.headers'
            headers_to_redact: Header names to mask (case-insensitive)
        """
        self.allow_items = frozenset(allow_items or ()) & RESULT_LOG_ITEMS
        self.headers_to_redact = {
            h.lower() for h in (headers_to_redact or DEFAULT_SENSITIVE_HEADERS)
        }
        self._url_param_patterns = [
            re.compile(rf"([?&])({param})=([^&\s]+)", re.IGNORECASE)
            for param in SENSITIVE_PARAMS
        ]

    def allows(self, item: str) -> bool:
        return item in self.allow_items

    def redact(self, result: Dict[str, Any]) -> Dict[str, Any]:
        """
        Return a redacted copy of a result dictionary.

        Args:
            result: Result dictionary; not modified

        Returns:
            New dictionary safe for storage
        """
        redacted = copy.deepcopy(result)

        request = redacted.get("request")
        if isinstance(request, dict):
            self._redact_request(request)

        response = redacted.get("response")
        if isinstance(response, dict):
            if not self.allows("response.headers"):
                response.pop("headers", None)
            self._strip_error_fields(response.get("body"))

        self._strip_error_fields(redacted.get("error"))
        return redacted

    def _redact_request(self, request: Dict[str, Any]) -> None:
        headers = request.get("headers")
        if isinstance(headers, dict):
            request["headers"] = {
                k: (REDACTED_VALUE if k.lower() in self.headers_to_redact else v)
                for k, v in headers.items()
            }

        params = request.get("params")
        if isinstance(params, dict):
            request["params"] = {
                k: (REDACTED_VALUE if k.lower() in SENSITIVE_PARAMS else v)
                for k, v in params.items()
            }

        endpoint = request.get("endpoint")
        if isinstance(endpoint, str):
            request["endpoint"] = self.redact_url(endpoint)

    def redact_url(self, url: str) -> str:
        """Mask sensitive query parameters in a URL."""
        for pattern in self._url_param_patterns:
            url = pattern.sub(rf"\1\2={REDACTED_VALUE}", url)
        return url

    def _strip_error_fields(self, value: Any) -> None:
        """Drop details/stack from an error object or a body holding one."""
        if not isinstance(value, dict):
            return
        targets = [value]
        if isinstance(value.get("error"), dict):
            targets.append(value["error"])
        for target in targets:
            if not self.allows("error.details"):
                target.pop("details", None)
            if not self.allows("error.stack"):
                target.pop("stack", None)
