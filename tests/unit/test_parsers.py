"""
Unit tests for the built-in record processors.
"""

import pytest

from batchload.core.errors import ValidationError
from batchload.core.models import Record
from batchload.parsers import (
    CsvRecordProcessor, FixedWidthRecordProcessor, JsonLinesRecordProcessor, coerce_value,
)


def rec(text: str, n: int = 1) -> Record:
    return Record("data", n, text)


class TestCoerceValue:
    """Tests for field type coercion."""

    @pytest.mark.parametrize("raw,expected", [
        ("42", 42),
        (" 7 ", 7),
        ("-3", -3),
        ("2.5", 2.5),
        ("1.0", 1.0),
    ])
    def test_numbers(self, raw, expected):
        value, error = coerce_value(raw, "number")
        assert error is None
        assert value == expected
        assert type(value) is type(expected)

    def test_bad_number(self):
        value, error = coerce_value("abc", "number")
        assert value == "abc"
        assert "did not match type 'number'" in error

    @pytest.mark.parametrize("raw,expected", [("true", True), ("FALSE", False), ("True", True)])
    def test_booleans(self, raw, expected):
        assert coerce_value(raw, "boolean") == (expected, None)

    def test_bad_boolean(self):
        _, error = coerce_value("yes", "boolean")
        assert "did not match type 'boolean'" in error


class TestCsvRecordProcessor:
    """Tests for CsvRecordProcessor."""

    def test_string_headers(self):
        processor = CsvRecordProcessor(" key, value ")
        payload, error = processor.transform(rec("a, b"))
        assert error is None
        assert payload == {"body": {"key": "a", "value": "b"}}

    def test_mapping_headers_with_types(self):
        processor = CsvRecordProcessor({"name": "string", "age": "number", "active": "boolean"})
        payload, error = processor.transform(rec("Ann,31,true"))
        assert error is None
        assert payload["body"] == {"name": "Ann", "age": 31, "active": True}

    def test_list_headers_with_data_types(self):
        processor = CsvRecordProcessor(["name", "age"], data_types="string, number")
        payload, _ = processor.transform(rec("Bob,40"))
        assert payload["body"] == {"name": "Bob", "age": 40}

    def test_quoted_values(self):
        processor = CsvRecordProcessor("name,city")
        payload, error = processor.transform(rec('"Smith, John", "New York"'))
        assert error is None
        assert payload["body"] == {"name": "Smith, John", "city": "New York"}

    def test_custom_delimiter(self):
        processor = CsvRecordProcessor("a,b", delimiter="|")
        payload, _ = processor.transform(rec("x|y"))
        assert payload["body"] == {"a": "x", "b": "y"}

    def test_too_many_fields(self):
        payload, error = CsvRecordProcessor("a,b").transform(rec("1,2,3"))
        assert "Mis-match between fieldCount (3) and headerCount (2)" in error
        assert payload["body"] == {}

    def test_too_few_fields(self):
        _, error = CsvRecordProcessor("a,b,c").transform(rec("1,2"))
        assert "ignore_extra_headers" in error

    def test_ignore_extra_headers(self):
        processor = CsvRecordProcessor("a,b,c", ignore_extra_headers=True)
        payload, error = processor.transform(rec("1,2"))
        assert error is None
        assert payload["body"] == {"a": "1", "b": "2"}

    def test_extra_data_types(self):
        processor = CsvRecordProcessor(
            "a,b,c", data_types="string,string,string", ignore_extra_headers=True
        )
        _, error = processor.transform(rec("1,2"))
        assert "headerDataTypeCount" in error

        processor = CsvRecordProcessor(
            "a,b,c",
            data_types="string,string,string",
            ignore_extra_headers=True,
            ignore_extra_data_types=True,
        )
        assert processor.transform(rec("1,2"))[1] is None

    def test_partial_body_on_type_error(self):
        processor = CsvRecordProcessor({"a": "string", "b": "number", "c": "string"})
        payload, error = processor.transform(rec("x,notanumber,z"))
        assert payload["body"] == {"a": "x"}
        assert "notanumber" in error

    def test_stamps_request_overrides(self):
        processor = CsvRecordProcessor(
            "a", endpoint="/api/Things", method="PUT", http_headers={"X-A": "1"}
        )
        payload, _ = processor.transform(rec("v"))
        assert payload["endpoint"] == "/api/Things"
        assert payload["method"] == "PUT"
        assert payload["headers"] == {"X-A": "1"}

    @pytest.mark.parametrize("headers", [None, "", "   "])
    def test_missing_headers(self, headers):
        with pytest.raises(ValidationError):
            CsvRecordProcessor(headers)

    def test_unknown_type(self):
        with pytest.raises(ValidationError):
            CsvRecordProcessor({"a": "date"})


FW_FIELDS = [
    {"field_name": "account", "type": "string", "start_position": 1, "end_position": 4},
    {"field_name": "amount", "type": "number", "start_position": 5, "end_position": 8},
    {"field_name": "active", "type": "boolean", "start_position": 9, "end_position": 12},
]


class TestFixedWidthRecordProcessor:
    """Tests for FixedWidthRecordProcessor."""

    def test_parse(self):
        payload, error = FixedWidthRecordProcessor(FW_FIELDS).transform(rec("AB12 150true"))
        assert error is None
        assert payload["body"] == {"account": "AB12", "amount": 150, "active": True}

    def test_record_too_short(self):
        payload, error = FixedWidthRecordProcessor(FW_FIELDS).transform(rec("AB12"))
        assert payload == {}
        assert "smaller" in error

    def test_record_too_long(self):
        _, error = FixedWidthRecordProcessor(FW_FIELDS).transform(rec("AB12 150true!"))
        assert "larger" in error

    def test_type_error_keeps_partial_body(self):
        payload, error = FixedWidthRecordProcessor(FW_FIELDS).transform(rec("AB12abcdtrue"))
        assert payload["body"] == {"account": "AB12"}
        assert "position 5,8" in error

    @pytest.mark.parametrize("fields", [
        [],
        "account",
        [{"field_name": "a", "type": "string", "start_position": 1}],
        [{"field_name": "a", "type": "string", "start_position": 3, "end_position": 2}],
        [{"field_name": "a", "type": "date", "start_position": 1, "end_position": 2}],
    ])
    def test_invalid_fields(self, fields):
        with pytest.raises(ValidationError):
            FixedWidthRecordProcessor(fields)


class TestJsonLinesRecordProcessor:
    """Tests for JsonLinesRecordProcessor."""

    def test_document_is_body(self):
        payload, error = JsonLinesRecordProcessor(method="POST").transform(rec('{"a": 1}'))
        assert error is None
        assert payload == {"body": {"a": 1}, "method": "POST"}

    def test_full_payload_document(self):
        line = '{"body": {"a": 1}, "endpoint": "/api/Other", "method": "PUT"}'
        payload, _ = JsonLinesRecordProcessor(method="POST").transform(rec(line))
        assert payload["endpoint"] == "/api/Other"
        assert payload["method"] == "PUT"

    def test_blank_line_skipped(self):
        assert JsonLinesRecordProcessor().transform(rec("   ")) == (None, None)

    def test_invalid_json(self):
        payload, error = JsonLinesRecordProcessor().transform(rec("{oops"))
        assert payload is None
        assert "not valid JSON" in error
