"""CSV parsing utilities for employee import operations."""

import csv
import io
import math
import re
import uuid
from typing import Any, Dict, Iterator, Optional, Tuple, Union

from hrflow.data.employee_repository import EmployeeRecord


# Common column name variations for auto-mapping
COLUMN_NAME_MAPPINGS: Dict[str, Tuple[str, ...]] = {
    "name": ("name", "full_name", "employee_name", "full name"),
    "age": ("age", "employee_age"),
    "position": ("position", "job_title", "title", "role", "job title"),
    "salary": ("salary", "annual_salary", "base_salary", "compensation"),
}

# Leading numeric prefix, so "30 years" reads as 30 and "abc" as nothing
_INTEGER_PREFIX = re.compile(r"^\s*([+-]?\d+)")
_FLOAT_PREFIX = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


def detect_delimiter(sample: str) -> str:
    """
    Detect the delimiter used in a CSV file.

    Checks for comma, semicolon, tab, and pipe delimiters.
    """
    delimiters = [",", ";", "\t", "|"]
    counts = {d: sample.count(d) for d in delimiters}

    # Return delimiter with highest count, default to comma
    max_delimiter = max(counts, key=counts.get)
    if counts[max_delimiter] > 0:
        return max_delimiter
    return ","


def normalize_column_name(name: str) -> str:
    """Normalize a column name for matching."""
    return name.lower().strip().replace("-", "_").replace(" ", "_")


def build_column_mapping(csv_columns: Iterator[str]) -> Dict[str, str]:
    """
    Map CSV header names to employee field names.

    Unknown columns map to their normalized name so they pass through.
    """
    lookup: Dict[str, str] = {}
    for field_name, variations in COLUMN_NAME_MAPPINGS.items():
        for variation in variations:
            lookup[normalize_column_name(variation)] = field_name

    mapping: Dict[str, str] = {}
    for column in csv_columns:
        normalized = normalize_column_name(column)
        mapping[column] = lookup.get(normalized, normalized)
    return mapping


def iter_csv_rows(
    content: Union[bytes, str],
    delimiter: Optional[str] = None,
) -> Iterator[Dict[str, str]]:
    """
    Lazily yield CSV rows as dictionaries keyed by employee field name.

    Single pass and not restartable. Lines with no values are skipped.

    Args:
        content: Raw file content; bytes are decoded as UTF-8 (BOM stripped)
        delimiter: Field delimiter, auto-detected when not given
    """
    if isinstance(content, bytes):
        text = content.decode("utf-8-sig")
    else:
        text = content.lstrip("\ufeff")

    if delimiter is None:
        delimiter = detect_delimiter(text[:4096])

    reader = csv.DictReader(io.StringIO(text), delimiter=delimiter)
    if not reader.fieldnames:
        return

    mapping = build_column_mapping(reader.fieldnames)

    for raw in reader:
        row = {
            mapping[column]: value
            for column, value in raw.items()
            if column is not None and column in mapping
        }
        if not any((value or "").strip() for value in row.values()):
            continue
        yield row


def parse_integer(value: Any) -> Tuple[Optional[int], Optional[str]]:
    """
    Parse an integer from a leading numeric prefix.

    Floats truncate toward zero ("3.7" -> 3), matching how the HTTP
    clients coerce ages.
    """
    if isinstance(value, bool) or value is None:
        return None, f"Invalid integer value: {value}"
    if isinstance(value, int):
        return value, None
    if isinstance(value, float):
        if math.isfinite(value):
            return int(value), None
        return None, f"Invalid integer value: {value}"

    match = _INTEGER_PREFIX.match(str(value))
    if not match:
        return None, f"Invalid integer value: {value}"
    return int(match.group(1)), None


def parse_float(value: Any) -> Tuple[Optional[float], Optional[str]]:
    """Parse a finite float from a leading numeric prefix."""
    if isinstance(value, bool) or value is None:
        return None, f"Invalid decimal value: {value}"
    if isinstance(value, (int, float)):
        parsed = value
    else:
        match = _FLOAT_PREFIX.match(str(value))
        if not match:
            return None, f"Invalid decimal value: {value}"
        parsed = match.group(1)

    try:
        number = float(parsed)
    except OverflowError:
        return None, f"Invalid decimal value: {value}"
    # "1e400" parses to inf
    if not math.isfinite(number):
        return None, f"Invalid decimal value: {value}"
    return number, None


def _clean_string(value: Any) -> Optional[str]:
    if value is None:
        return None
    cleaned = str(value).strip()
    return cleaned or None


def transform_row(row: Dict[str, Any], row_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Trim strings and coerce numeric fields of an import row.

    Unparseable numbers become None so the row fails `is_importable`.
    A fresh UUID is assigned unless `row_id` is given.
    """
    age, _ = parse_integer(row.get("age"))
    salary, _ = parse_float(row.get("salary"))
    return {
        "id": row_id or str(uuid.uuid4()),
        "name": _clean_string(row.get("name")),
        "age": age,
        "position": _clean_string(row.get("position")),
        "salary": salary,
    }


def is_importable(record: Dict[str, Any]) -> bool:
    """Basic shape check applied to transformed import rows."""
    return bool(
        record.get("name")
        and record.get("position")
        and record.get("age") is not None
        and record.get("salary") is not None
    )


def to_employee_record(record: Dict[str, Any]) -> EmployeeRecord:
    """Convert a transformed, importable row into a persistable record."""
    return EmployeeRecord(
        id=record["id"],
        name=record["name"],
        age=record["age"],
        position=record["position"],
        salary=record["salary"],
    )
