"""Preview, search, and export of fine-tune JSONL datasets.

Unlike the validator, these helpers skip whitespace-only lines entirely: the
preview counts and shows only non-blank records.
"""

from __future__ import annotations

import csv
import io
import json
import re
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from openpyxl import Workbook, load_workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE

from .models import ExportFormat, PreviewResponse, PreviewRow

INVALID_JSON = "Invalid JSON"
DEFAULT_PREVIEW_LINES = 5
EXCEL_SHEET = "Data"

MEDIA_TYPES: dict[str, str] = {
    "jsonl": "application/jsonl",
    "csv": "text/csv",
    "excel": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "txt": "text/plain",
}
EXTENSIONS: dict[str, str] = {"jsonl": ".jsonl", "csv": ".csv", "excel": ".xlsx", "txt": ".txt"}

# OOXML spells characters that XML cannot carry as _xHHHH_; a literal
# "_xHHHH_" keeps its text by escaping the leading underscore as _x005F_.
_OOXML_ESCAPE_RE = re.compile(rf"_(?=x[0-9A-Fa-f]{{4}}_)|{ILLEGAL_CHARACTERS_RE.pattern}")
_OOXML_ESCAPED_RE = re.compile(r"_x([0-9A-Fa-f]{4})_")


@dataclass(frozen=True)
class ExportedFile:
    filename: str
    media_type: str
    payload: bytes


def iter_rows(content: str) -> Iterator[PreviewRow]:
    """Yield one row per non-blank line; unparseable lines get the sentinel pair."""
    lines = [line for line in content.split("\n") if line.strip()]
    for index, line in enumerate(lines, start=1):
        prompt, completion = _pair(line)
        yield PreviewRow(line_number=index, prompt=prompt, completion=completion, raw=line)


def preview_dataset(
    content: str,
    *,
    limit: int = DEFAULT_PREVIEW_LINES,
    query: str | None = None,
) -> PreviewResponse:
    rows = list(iter_rows(content))
    shown = rows[: max(limit, 0)]
    needle = (query or "").strip().lower()
    if needle:
        shown = [row for row in shown if _matches(row, needle)]
    return PreviewResponse(total_lines=len(rows), rows=shown)


def export_dataset(content: str, fmt: ExportFormat, *, source_filename: str) -> ExportedFile:
    """Render dataset text in ``fmt``; the filename becomes ``edited_<stem><ext>``."""
    if fmt not in EXTENSIONS:
        raise ValueError(f"Unsupported export format: {fmt}")
    stem = Path(source_filename).name.split(".")[0]
    filename = f"edited_{stem}{EXTENSIONS[fmt]}"
    if fmt == "csv":
        payload = _to_csv(content).encode("utf-8")
    elif fmt == "excel":
        payload = _to_xlsx(content)
    else:
        payload = content.encode("utf-8")
    return ExportedFile(filename=filename, media_type=MEDIA_TYPES[fmt], payload=payload)


def read_exported_pairs(payload: bytes, fmt: ExportFormat) -> list[tuple[str, str]]:
    """Read ``(prompt, completion)`` pairs back out of an exported file."""
    if fmt in ("jsonl", "txt"):
        return [
            (_cell_text(row.prompt), _cell_text(row.completion))
            for row in iter_rows(payload.decode("utf-8"))
        ]
    if fmt == "csv":
        reader = csv.DictReader(io.StringIO(payload.decode("utf-8"), newline=""))
        return [(row["prompt"], row["completion"]) for row in reader]
    if fmt == "excel":
        sheet = load_workbook(io.BytesIO(payload), data_only=True)[EXCEL_SHEET]
        return [
            (_from_excel(prompt), _from_excel(completion))
            for prompt, completion in sheet.iter_rows(min_row=2, max_col=2, values_only=True)
        ]
    raise ValueError(f"Unsupported export format: {fmt}")


def _pair(line: str) -> tuple[Any, Any]:
    try:
        parsed = json.loads(line)
    except ValueError:
        return INVALID_JSON, INVALID_JSON
    if not isinstance(parsed, dict):
        return INVALID_JSON, INVALID_JSON
    return parsed.get("prompt"), parsed.get("completion")


def _matches(row: PreviewRow, needle: str) -> bool:
    haystacks = (_cell_text(row.prompt), _cell_text(row.completion), row.raw)
    return any(needle in text.lower() for text in haystacks)


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def _to_csv(content: str) -> str:
    buffer = io.StringIO(newline="")
    writer = csv.writer(buffer)
    writer.writerow(["prompt", "completion"])
    for row in iter_rows(content):
        writer.writerow([_cell_text(row.prompt), _cell_text(row.completion)])
    return buffer.getvalue()


def _to_xlsx(content: str) -> bytes:
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = EXCEL_SHEET
    sheet.append(["Prompt", "Completion"])
    for row in iter_rows(content):
        sheet.append([_to_excel(row.prompt), _to_excel(row.completion)])
    # Text starting with "=" would otherwise be stored as a formula.
    for cells in sheet.iter_rows(min_row=2):
        for cell in cells:
            if cell.data_type == "f":
                cell.data_type = "s"
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def _to_excel(value: Any) -> str:
    return _OOXML_ESCAPE_RE.sub(lambda match: f"_x{ord(match.group()):04X}_", _cell_text(value))


def _from_excel(value: Any) -> str:
    return _OOXML_ESCAPED_RE.sub(lambda match: chr(int(match.group(1), 16)), _cell_text(value))
