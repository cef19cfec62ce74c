"""
Turns uploaded files into content the smart import can scan: plain text for
documents and spreadsheets, dicts/lists for JSON and CSV.
"""

import csv
import io
import json
import logging
import os
import re
from typing import Any, Optional

from proposal_engine.services.smart_import import split_value_unit

logger = logging.getLogger(__name__)


PDF_MIME = "application/pdf"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
EXCEL_MIMES = (
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-excel",
)

NAME_COLUMNS = ("parameter", "name", "field", "item", "variable", "description", "parametro", "parámetro")
VALUE_COLUMNS = ("value", "result", "average", "amount", "valor", "resultado")

_NUMERIC_CELL = re.compile(r"^\s*[-+]?(?:\d+\.?\d*|\.\d+)")
_UNIT_CELL = re.compile(r"^[A-Za-z%°º³²µ/][A-Za-z%°º³²µ/0-9.·]*$")


def sanitize_pdf_text(text: str) -> str:
    if not text:
        return text
    replacements = {
        "≤": "<=", "≥": ">=",
        "₀": "0", "₁": "1", "₂": "2", "₃": "3",
        "₄": "4", "₅": "5",
        "−": "-", "–": "-", "—": "-",
        "…": "...", "•": "*",
        "×": "x", "±": "+/-",
        "ﬁ": "fi", "ﬂ": "fl",
    }
    for old, new in replacements.items():
        text = text.replace(old, new)
    return text


def row_to_line(cells: list[str]) -> Optional[str]:
    """``["BOD", "250", "mg/L"]`` -> ``"BOD: 250 mg/L"``; rows without a label and a number give None."""
    cells = [c.strip() for c in cells if c is not None and str(c).strip()]
    if len(cells) < 2 or _NUMERIC_CELL.match(cells[0]):
        return None
    for i, cell in enumerate(cells[1:], start=1):
        if not _NUMERIC_CELL.match(cell):
            continue
        value, unit = split_value_unit(cell)
        if unit is None and i + 1 < len(cells) and _UNIT_CELL.match(cells[i + 1]):
            unit = cells[i + 1]
        return f"{cells[0]}: {value} {unit}" if unit else f"{cells[0]}: {value}"
    return None


def post_process_pdf_text(raw_text: str) -> str:
    """Rewrite column-aligned table rows as ``label: value unit`` lines."""
    processed: list[str] = []
    rows_converted = 0

    for line in raw_text.split("\n"):
        stripped = line.strip()
        if not stripped:
            continue
        cells = re.split(r"\s{2,}|\t", stripped)
        if len(cells) >= 2 and ":" not in stripped:
            converted = row_to_line(cells)
            if converted:
                processed.append(converted)
                rows_converted += 1
                continue
        processed.append(stripped)

    if rows_converted:
        logger.info("PDF post-processing: converted %d table row(s)", rows_converted)
    return "\n".join(processed)


def _find_column(headers: list[str], names: tuple) -> Optional[str]:
    for header in headers:
        if header and header.strip().lower() in names:
            return header
    return None


def parse_csv_rows(text: str) -> Any:
    """Parameter/value tables become one dict; any other CSV stays a list of row dicts."""
    reader = csv.DictReader(io.StringIO(text))
    rows = [row for row in reader if any((v or "").strip() for v in row.values() if isinstance(v, str))]
    headers = reader.fieldnames or []

    name_col = _find_column(headers, NAME_COLUMNS)
    value_col = _find_column(headers, VALUE_COLUMNS)
    if not (name_col and value_col):
        return rows

    unit_col = next((h for h in headers if h and "unit" in h.lower()), None)
    data: dict[str, str] = {}
    for row in rows:
        name = (row.get(name_col) or "").strip()
        value = (row.get(value_col) or "").strip()
        if not name or not value:
            continue
        unit = (row.get(unit_col) or "").strip() if unit_col else ""
        data[name] = f"{value} {unit}" if unit else value
    return data


def _extract_excel(file_bytes: bytes) -> Optional[str]:
    from openpyxl import load_workbook

    wb = load_workbook(io.BytesIO(file_bytes), read_only=True, data_only=True)
    parts: list[str] = []
    try:
        for sheet_name in wb.sheetnames:
            lines = []
            for row in wb[sheet_name].iter_rows(values_only=True):
                line = row_to_line(["" if c is None else str(c) for c in row])
                if line:
                    lines.append(line)
            if lines:
                parts.append(f"[Sheet: {sheet_name}]\n" + "\n".join(lines))
    finally:
        wb.close()
    return "\n\n".join(parts).strip() or None


def _extract_pdf(file_bytes: bytes) -> Optional[str]:
    from pypdf import PdfReader

    reader = PdfReader(io.BytesIO(file_bytes))
    text_parts = [t for t in (page.extract_text() for page in reader.pages) if t]
    raw_text = sanitize_pdf_text("\n".join(text_parts).strip())
    if not raw_text:
        return None
    return post_process_pdf_text(raw_text)


def _extract_docx(file_bytes: bytes) -> Optional[str]:
    from docx import Document as DocxDocument

    doc = DocxDocument(io.BytesIO(file_bytes))
    lines = [p.text for p in doc.paragraphs]
    for table in doc.tables:
        for row in table.rows:
            line = row_to_line([cell.text for cell in row.cells])
            if line:
                lines.append(line)
    return "\n".join(lines).strip() or None


def extract_import_content(file_bytes: bytes, file_name: str, mime_type: str = "") -> Any:
    """Return text, dict or list for ``analyze_file``; None when nothing could be read."""
    try:
        ext = os.path.splitext(file_name or "")[1].lower()

        if mime_type == PDF_MIME or ext == ".pdf":
            return _extract_pdf(file_bytes)

        if mime_type == DOCX_MIME or ext == ".docx":
            return _extract_docx(file_bytes)

        if mime_type in EXCEL_MIMES or ext in (".xlsx", ".xls"):
            return _extract_excel(file_bytes)

        text = file_bytes.decode("utf-8-sig", errors="replace")
        if mime_type == "application/json" or ext == ".json":
            return json.loads(text)
        if mime_type == "text/csv" or ext == ".csv":
            return parse_csv_rows(text)
        if mime_type.startswith("text/") or ext in (".txt", ".md"):
            return text.strip() or None

        return None
    except Exception as e:
        logger.error("Error extracting content from file %r (%s): %s", file_name, mime_type, str(e))
        return None
