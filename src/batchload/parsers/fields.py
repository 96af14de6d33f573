"""
Field specifications and value coercion shared by the built-in parsers.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from ..core.errors import ValidationError


FIELD_TYPES = ("string", "number", "boolean")


@dataclass(frozen=True)
class FieldSpec:
    """
    One field of a parsed record.

    Attributes:
        name: Key of the field in the request body
        type: 'string', 'number' or 'boolean'
        start_position: 1-based first column (fixed width only)
        end_position: 1-based last column, inclusive (fixed width only)
    """
    name: str
    type: str = "string"
    start_position: Optional[int] = None
    end_position: Optional[int] = None


def normalize_type(value: Any) -> str:
    """
    Normalize a declared field type.

    Raises:
        ValidationError: If the type is not string, number or boolean
    """
    type_name = str(value).strip().lower()
    if type_name not in FIELD_TYPES:
        raise ValidationError(
            f"Field type '{value}' is neither string nor number nor boolean"
        )
    return type_name


def split_names(value: Union[str, List[str]], separator: str = ",") -> List[str]:
    """Split a separated string (or pass a list through), trimming each name."""
    if isinstance(value, str):
        if not value.strip():
            raise ValidationError(f"Field list is empty or whitespace: '{value}'")
        value = value.split(separator)
    if not isinstance(value, (list, tuple)):
        raise ValidationError(
            f"Expected a separated string or a list, got {type(value).__name__}"
        )
    return [str(v).strip() for v in value]


def coerce_value(raw: str, type_name: str) -> Tuple[Any, Optional[str]]:
    """
    Convert a raw field string to its declared type.

    Returns:
        Tuple of (value, error). On error the value is the raw string.
    """
    if type_name == "number":
        text = raw.strip()
        try:
            number = float(text)
        except ValueError:
            return raw, f"Data of fieldValue '{raw}' did not match type 'number'"
        if number.is_integer() and "." not in text and "e" not in text.lower():
            return int(number), None
        return number, None

    if type_name == "boolean":
        text = raw.strip().lower()
        if text == "true":
            return True, None
        if text == "false":
            return False, None
        return raw, (
            f"Data of fieldValue '{raw}' did not match type 'boolean'. "
            f"Only true, false, TRUE, FALSE are accepted as type boolean."
        )

    return raw, None


def stamp_payload(
    body: Dict[str, Any],
    endpoint: Optional[str],
    method: Optional[str],
    headers: Optional[Dict[str, str]],
) -> Dict[str, Any]:
    """Build a payload mapping, adding per-parser request overrides when set."""
    payload: Dict[str, Any] = {"body": body}
    if endpoint:
        payload["endpoint"] = endpoint
    if method:
        payload["method"] = method
    if headers:
        payload["headers"] = dict(headers)
    return payload
