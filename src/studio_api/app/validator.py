"""Line-by-line validation of fine-tune JSONL files.

Every defect is reported as a line-tagged message; nothing raised while
parsing escapes to the caller.
"""

from __future__ import annotations

import io
import json
import logging
from pathlib import Path
from typing import IO, Any

from .models import MAX_FIELD_LENGTH, ValidationRecord

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("prompt", "completion")


def validate_jsonl(stream: IO[bytes]) -> ValidationRecord:
    """Validate a binary stream of line-delimited JSON training examples.

    ``\\n``, ``\\r\\n`` and ``\\r`` all end a line. A final unterminated line
    still counts, but a trailing terminator does not open an extra empty line.
    Blank lines are counted and reported as missing both fields.
    Field lengths are counted in Python characters (code points), so a
    character outside the Basic Multilingual Plane counts once, not as a
    UTF-16 surrogate pair.
    """
    text = io.TextIOWrapper(stream, encoding="utf-8-sig", errors="replace", newline=None)
    record = ValidationRecord()
    try:
        for raw_line in text:
            record.total_lines += 1
            record.errors.extend(_check_line(raw_line.rstrip("\n"), record.total_lines))
    finally:
        # Hand the underlying stream back to the caller instead of closing it.
        text.detach()
    logger.info(
        "validate_jsonl event=completed total_lines=%d errors=%d",
        record.total_lines,
        len(record.errors),
    )
    return record


def validate_jsonl_file(path: Path) -> ValidationRecord:
    with path.open("rb") as handle:
        return validate_jsonl(handle)


def _check_line(line: str, line_number: int) -> list[str]:
    errors: list[str] = []
    if line.strip():
        try:
            parsed = json.loads(line, parse_constant=_reject_constant)
        except ValueError as exc:
            return [f"Line {line_number}: Invalid JSON format - {exc}"]
    else:
        parsed = {}

    # Non-object values (arrays, numbers, null) carry no fields at all.
    fields: dict[str, Any] = parsed if isinstance(parsed, dict) else {}

    for name in REQUIRED_FIELDS:
        value = fields.get(name)
        if not isinstance(value, str) or not value:
            errors.append(f"Line {line_number}: Missing or invalid '{name}' field")

    for name in REQUIRED_FIELDS:
        value = fields.get(name)
        if isinstance(value, str) and len(value) > MAX_FIELD_LENGTH:
            errors.append(
                f"Line {line_number}: {name.capitalize()} exceeds maximum length "
                f"of {MAX_FIELD_LENGTH} characters"
            )
    return errors


def _reject_constant(name: str) -> Any:
    # NaN/Infinity are not JSON even though the stdlib parser accepts them.
    raise ValueError(f"Unexpected token {name}")
