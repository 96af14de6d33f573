"""
Built-in record processors for delimited, fixed width and JSON lines files.
"""

from .csv_parser import CsvRecordProcessor
from .fields import FieldSpec, coerce_value
from .fixed_width import FixedWidthRecordProcessor
from .json_lines import JsonLinesRecordProcessor

__all__ = [
    "CsvRecordProcessor",
    "FieldSpec",
    "FixedWidthRecordProcessor",
    "JsonLinesRecordProcessor",
    "coerce_value",
]
