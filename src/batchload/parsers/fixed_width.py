"""
Built-in processor for fixed width files.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..core.errors import ValidationError
from ..core.models import Record
from ..core.processor import RecordProcessor
from .fields import FieldSpec, coerce_value, normalize_type, stamp_payload


logger = logging.getLogger(__name__)


def _field_from_mapping(spec: Mapping[str, Any], index: int) -> FieldSpec:
    for key in ("field_name", "type", "start_position", "end_position"):
        if not spec.get(key):
            raise ValidationError(
                f"Fixed width field {key} is missing in {dict(spec)} at index {index}"
            )
    try:
        start, end = int(spec["start_position"]), int(spec["end_position"])
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Fixed width positions must be integers at index {index}") from e
    if start < 1 or end < start:
        raise ValidationError(
            f"Fixed width field '{spec['field_name']}' has invalid positions {start}-{end}"
        )
    return FieldSpec(
        name=str(spec["field_name"]).strip(),
        type=normalize_type(spec["type"]),
        start_position=start,
        end_position=end,
    )


class FixedWidthRecordProcessor(RecordProcessor):
    """
    Turns each fixed width line into a JSON body.

    Each field spec is ``{field_name, type, start_position, end_position}``
    with 1-based inclusive positions. A line must be exactly as long as the
    last field's end position. String values are kept with their padding.
    """

    def __init__(
        self,
        fields: List[Mapping[str, Any]],
        endpoint: Optional[str] = None,
        method: Optional[str] = None,
        http_headers: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize the fixed width processor.

        Args:
            fields: Field specs in line order
            endpoint: Endpoint stamped onto every payload
            method: HTTP method stamped onto every payload
            http_headers: HTTP headers stamped onto every payload

        Raises:
            ValidationError: If the field specs are missing or invalid
        """
        if not isinstance(fields, (list, tuple)) or not fields:
            raise ValidationError("Fixed width fields must be a non-empty list of field specs")
        self.fields = [
            spec if isinstance(spec, FieldSpec) else _field_from_mapping(spec, i)
            for i, spec in enumerate(fields)
        ]
        self.record_length = self.fields[-1].end_position
        self.endpoint = endpoint
        self.method = method
        self.http_headers = http_headers

    def transform(self, record: Record) -> Tuple[Optional[Any], Optional[Any]]:
        line = record.raw_text
        if len(line) != self.record_length:
            relation = "larger" if len(line) > self.record_length else "smaller"
            return {}, (
                f"Record length is {relation} than max-header-position "
                f"({len(line)} vs {self.record_length})"
            )

        body: Dict[str, Any] = {}
        error = None
        for field in self.fields:
            raw = line[field.start_position - 1:field.end_position]
            value, error = coerce_value(raw, field.type)
            if error:
                error = f"{error} at position {field.start_position},{field.end_position}"
                break
            body[field.name] = value

        return stamp_payload(body, self.endpoint, self.method, self.http_headers), error
