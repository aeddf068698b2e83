"""CSV parsing utilities shared by every phase of the import pipeline.

``get_field_value`` is the only place a logical column name is resolved
against a parsed row. Validation, execution and preview all go through it,
so a field the validator accepted is the same field the executor writes.
"""

import csv
import hashlib
import io
import re
from datetime import date, datetime, time
from typing import Any, Dict, List, Mapping, Optional

BOM = "\ufeff"

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
ISO_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
DMY_DATE_PATTERN = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
TIME_PATTERN = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


# =============================================================================
# Header Normalization
# =============================================================================

def normalize_header(name: str) -> str:
    """Strip one leading byte-order mark and surrounding whitespace."""
    if name.startswith(BOM):
        name = name[1:]
    return name.strip()


def get_field_value(row: Mapping[Optional[str], Any], logical_name: str) -> Optional[str]:
    """
    Resolve a logical column name against a parsed CSV row.

    Lookup order:
        1. exact key
        2. BOM-prefixed key
        3. any key whose normalized form equals the logical name
           (case-insensitive)

    Returns None when no column matches. A matching column with an empty
    cell returns the empty string; deciding what "empty" means is left to
    the caller.
    """
    if logical_name in row:
        return _cell(row[logical_name])

    bom_key = BOM + logical_name
    if bom_key in row:
        return _cell(row[bom_key])

    target = logical_name.casefold()
    for key, value in row.items():
        if key is None:
            continue
        if normalize_header(key).casefold() == target:
            return _cell(value)

    return None


def _cell(value: Any) -> Optional[str]:
    # DictReader fills short rows with None and collects overflow cells in a list
    if value is None:
        return None
    if isinstance(value, list):
        return ",".join(value)
    return str(value)


# =============================================================================
# Reading
# =============================================================================

def compute_file_checksum(content: bytes) -> str:
    """Compute SHA-256 checksum of file content."""
    return hashlib.sha256(content).hexdigest()


def decode_content(content: bytes) -> str:
    """Decode upload bytes as UTF-8, falling back to latin-1."""
    try:
        return content.decode("utf-8")
    except UnicodeDecodeError:
        return content.decode("latin-1")


def detect_delimiter(sample: str) -> str:
    """
    Detect the delimiter used in a CSV file.

    Checks for comma, semicolon and tab; defaults to comma.
    """
    header_line = sample.splitlines()[0] if sample else ""
    counts = {d: header_line.count(d) for d in (",", ";", "\t")}
    best = max(counts, key=counts.get)
    return best if counts[best] > 0 else ","


def read_csv_rows(content: bytes) -> List[Dict[Optional[str], Any]]:
    """
    Parse raw CSV bytes into a list of row mappings keyed by raw header.

    Header names are kept exactly as they appear in the file (including a
    BOM on the first one); resolving them is ``get_field_value``'s job.
    Lines with no non-blank cell are skipped.
    """
    text_content = decode_content(content)
    delimiter = detect_delimiter(text_content[:1000])

    reader = csv.DictReader(io.StringIO(text_content), delimiter=delimiter)
    rows: List[Dict[Optional[str], Any]] = []
    for row in reader:
        if all(_is_blank(value) for value in row.values()):
            continue
        rows.append(row)
    return rows


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, list):
        return all(_is_blank(v) for v in value)
    return str(value).strip() == ""


# =============================================================================
# Value Helpers
# =============================================================================

def is_valid_email(value: str) -> bool:
    return bool(EMAIL_PATTERN.match(value))


def reshape_date(value: str) -> str:
    """
    Reshape ``D/M/YYYY`` into ISO ``YYYY-MM-DD``.

    Anything else is returned unchanged so the validator can reject it.
    """
    match = DMY_DATE_PATTERN.match(value)
    if not match:
        return value
    day, month, year = match.groups()
    return f"{year}-{int(month):02d}-{int(day):02d}"


def parse_iso_date(value: str) -> Optional[date]:
    """Parse ``YYYY-MM-DD``; None when the text is not a real calendar date."""
    if not ISO_DATE_PATTERN.match(value):
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        return None


def parse_time(value: str) -> Optional[time]:
    """Parse ``HH:mm`` (24-hour); None when malformed."""
    match = TIME_PATTERN.match(value)
    if not match:
        return None
    return time(int(match.group(1)), int(match.group(2)))


# =============================================================================
# Writing
# =============================================================================

def generate_csv_content(
    data: List[Dict[str, Any]],
    fields: List[str],
    include_headers: bool = True,
    delimiter: str = ",",
) -> bytes:
    """
    Generate CSV content from a list of dictionaries.

    Args:
        data: Row dictionaries keyed by column header
        fields: Column headers to include (in order)
        include_headers: Whether to include a header row
        delimiter: CSV delimiter character

    Returns:
        CSV content as UTF-8 bytes
    """
    output = io.StringIO()
    writer = csv.DictWriter(
        output,
        fieldnames=fields,
        delimiter=delimiter,
        extrasaction="ignore",
    )

    if include_headers:
        writer.writeheader()

    for row in data:
        string_row = {}
        for field in fields:
            value = row.get(field)
            if value is None:
                string_row[field] = ""
            elif isinstance(value, bool):
                string_row[field] = "true" if value else "false"
            elif isinstance(value, time):
                string_row[field] = value.strftime("%H:%M")
            elif isinstance(value, (date, datetime)):
                string_row[field] = value.isoformat()
            else:
                string_row[field] = str(value)
        writer.writerow(string_row)

    return output.getvalue().encode("utf-8")
