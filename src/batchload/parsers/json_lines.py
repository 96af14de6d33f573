"""
Built-in processor for files with one JSON document per line.
"""

import json
from typing import Any, Dict, Optional, Tuple

from ..core.models import Record
from ..core.processor import RecordProcessor
from .fields import stamp_payload


class JsonLinesRecordProcessor(RecordProcessor):
    """
    Sends each line's JSON document as the request body.

    Blank lines are skipped. A document holding a ``body`` key is treated as
    a full payload, so a line may carry its own endpoint, method or headers.
    """

    def __init__(
        self,
        endpoint: Optional[str] = None,
        method: Optional[str] = None,
        http_headers: Optional[Dict[str, str]] = None,
    ):
        self.endpoint = endpoint
        self.method = method
        self.http_headers = http_headers

    def transform(self, record: Record) -> Tuple[Optional[Any], Optional[Any]]:
        text = record.raw_text.strip()
        if not text:
            return None, None
        try:
            document = json.loads(text)
        except json.JSONDecodeError as e:
            return None, f"Line is not valid JSON: {e}"

        if isinstance(document, dict) and "body" in document:
            payload = stamp_payload(document["body"], self.endpoint, self.method, self.http_headers)
            for key in ("endpoint", "method", "headers", "base_url"):
                if document.get(key):
                    payload[key] = document[key]
            return payload, None
        return stamp_payload(document, self.endpoint, self.method, self.http_headers), None
