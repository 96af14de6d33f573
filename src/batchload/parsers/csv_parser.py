"""
Built-in processor for comma separated and other delimited files.
"""

import csv
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from ..core.errors import ValidationError
from ..core.models import Record
from ..core.processor import RecordProcessor
from .fields import FieldSpec, coerce_value, normalize_type, split_names, stamp_payload


logger = logging.getLogger(__name__)


HeadersOption = Union[str, List[str], Mapping[str, str]]


class CsvRecordProcessor(RecordProcessor):
    """
    Turns each delimited line into a JSON body keyed by header name.

    Headers can be given as:
    - a separated string: ``"key, value"``
    - a list: ``["key", "value"]``
    - a mapping of name to type: ``{"key": "string", "value": "number"}``

    Fields are added to the body in order until the first bad field; the
    partial body is returned together with the error.
    """

    def __init__(
        self,
        headers: HeadersOption,
        data_types: Optional[Union[str, List[str]]] = None,
        delimiter: str = ",",
        header_separator: str = ",",
        ignore_extra_headers: bool = False,
        ignore_extra_data_types: bool = False,
        endpoint: Optional[str] = None,
        method: Optional[str] = None,
        http_headers: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize the CSV processor.

        Args:
            headers: Field names (string, list or name->type mapping)
            data_types: Field types, when headers are not a mapping
            delimiter: Field delimiter of the data lines
            header_separator: Separator used in string-typed headers/data_types
            ignore_extra_headers: Allow lines with fewer fields than headers
            ignore_extra_data_types: Allow lines with fewer fields than data types
            endpoint: Endpoint stamped onto every payload
            method: HTTP method stamped onto every payload
            http_headers: HTTP headers stamped onto every payload

        Raises:
            ValidationError: If headers or data types are missing or invalid
        """
        if not headers:
            raise ValidationError(
                "CSV headers are missing (a separated string, a list or a name->type mapping)"
            )

        self._type_count: Optional[int] = None
        if isinstance(headers, Mapping):
            names = [str(name).strip() for name in headers.keys()]
            types = [normalize_type(t) for t in headers.values()]
            self._type_count = len(types)
        else:
            names = split_names(headers, header_separator)
            if data_types:
                types = [normalize_type(t) for t in split_names(data_types, header_separator)]
                self._type_count = len(types)
            else:
                logger.warning(
                    "No data types supplied for CSV headers; treating all fields as string"
                )
                types = []

        self.fields = [
            FieldSpec(name=name, type=types[i] if i < len(types) else "string")
            for i, name in enumerate(names)
        ]
        self.delimiter = delimiter
        self.ignore_extra_headers = ignore_extra_headers
        self.ignore_extra_data_types = ignore_extra_data_types
        self.endpoint = endpoint
        self.method = method
        self.http_headers = http_headers

    def split(self, line: str) -> List[str]:
        """Split a line into raw field strings."""
        if self.delimiter == ",":
            rows = list(csv.reader([line], skipinitialspace=True))
            return rows[0] if rows else [""]
        return line.split(self.delimiter)

    def _count_error(self, field_count: int) -> Optional[str]:
        header_count = len(self.fields)
        if field_count > header_count or (
            field_count < header_count and not self.ignore_extra_headers
        ):
            error = (
                f"Mis-match between fieldCount ({field_count}) and headerCount "
                f"({header_count}). Headers: '{','.join(f.name for f in self.fields)}'"
            )
            if field_count < header_count:
                error += " Try setting ignore_extra_headers to true"
            return error

        if self._type_count is not None and field_count != self._type_count:
            if field_count > self._type_count or not self.ignore_extra_data_types:
                error = (
                    f"Mis-match between fieldCount ({field_count}) and "
                    f"headerDataTypeCount ({self._type_count})"
                )
                if field_count < self._type_count:
                    error += " Try setting ignore_extra_data_types to true"
                return error
        return None

    def transform(self, record: Record) -> Tuple[Optional[Any], Optional[Any]]:
        values = self.split(record.raw_text)
        error = self._count_error(len(values))
        body: Dict[str, Any] = {}

        if error is None:
            for field, raw in zip(self.fields, values):
                value, error = coerce_value(raw.strip(), field.type)
                if error:
                    break
                body[field.name] = value

        if error:
            logger.debug(f"Line {record.line_number}: {error}")
        return stamp_payload(body, self.endpoint, self.method, self.http_headers), error
