"""
Smart import – detects engineering parameters in uploaded technical data and
maps them onto the project's technical data sheet.

Parsing is best-effort: malformed content yields an analysis with fewer
fields and an explanatory suggestion, never an exception.
"""

import logging
import math
import os
import re
from datetime import datetime
from typing import Any, Iterator, Optional

from proposal_engine.models.schemas import (
    DetectedField,
    ImportAnalysis,
    ImportConflict,
    ImportPreview,
    MappingAmbiguity,
    MappingRule,
)

logger = logging.getLogger(__name__)


IMPORT_THRESHOLDS: dict = {
    "textBaseConfidence": 70,
    "structuredBaseConfidence": 80,
    "minNumericValue": 0,
    "maxNumericValue": 100_000,
    "minKeyLength": 2,
    "maxKeyLength": 120,
    "useNewConfidence": 85,
    "mergeRelativeDifference": 0.10,
    "lowConfidence": 60,
    "goodMappingShare": 0.5,
}

# Letters only: digits, "_", "." and spaces all delimit a token.
_L = r"(?<![a-záéíóúñ])"
_R = r"(?![a-záéíóúñ])"

DEFAULT_FIELD_PATTERNS: dict = {
    "flow": {
        "patterns": [
            re.compile(r"caud[ai]l", re.IGNORECASE),
            re.compile(r"flow", re.IGNORECASE),
            re.compile(_L + r"q[\s_]*d" + _R, re.IGNORECASE),
            re.compile(r"gasto", re.IGNORECASE),
        ],
        "section": "general-data",
        "targetField": "design-flow",
        "units": ["L/s", "m³/d", "L/min", "m³/h"],
        "defaultUnit": "L/s",
        "confidence": 90,
    },
    "population": {
        "patterns": [
            re.compile(r"poblac", re.IGNORECASE),
            re.compile(r"population", re.IGNORECASE),
            re.compile(r"habitantes", re.IGNORECASE),
            re.compile(r"inhabitants", re.IGNORECASE),
            re.compile(_L + r"hab" + _R, re.IGNORECASE),
            re.compile(r"people", re.IGNORECASE),
        ],
        "section": "general-data",
        "targetField": "population-served",
        "units": ["hab", "personas", "inhabitants"],
        "defaultUnit": "hab",
        "confidence": 85,
    },
    "ph": {
        "patterns": [
            re.compile(_L + r"ph" + _R, re.IGNORECASE),
            re.compile(r"potencial.*hidr[oó]geno", re.IGNORECASE),
        ],
        "section": "water-quality",
        "targetField": "ph",
        "units": [""],
        "defaultUnit": "",
        "confidence": 95,
    },
    "turbidity": {
        "patterns": [
            re.compile(r"turbid", re.IGNORECASE),
            re.compile(r"turbiedad", re.IGNORECASE),
            re.compile(_L + r"ntu" + _R, re.IGNORECASE),
        ],
        "section": "water-quality",
        "targetField": "turbidity",
        "units": ["NTU", "mg/L"],
        "defaultUnit": "NTU",
        "confidence": 90,
    },
    "bod": {
        "patterns": [
            re.compile(_L + r"dbo(?:\s*5)?" + _R, re.IGNORECASE),
            re.compile(_L + r"bod(?:\s*5)?" + _R, re.IGNORECASE),
            re.compile(r"demanda\s+bioqu[ií]mica", re.IGNORECASE),
            re.compile(r"biochemical\s+oxygen\s+demand", re.IGNORECASE),
        ],
        "section": "water-quality",
        "targetField": "bod5",
        "units": ["mg/L"],
        "defaultUnit": "mg/L",
        "confidence": 90,
    },
    "cod": {
        "patterns": [
            re.compile(_L + r"dqo" + _R, re.IGNORECASE),
            re.compile(_L + r"cod" + _R, re.IGNORECASE),
            re.compile(r"demanda\s+qu[ií]mica", re.IGNORECASE),
            re.compile(r"(?<!bio)chemical\s+oxygen\s+demand", re.IGNORECASE),
        ],
        "section": "water-quality",
        "targetField": "cod",
        "units": ["mg/L"],
        "defaultUnit": "mg/L",
        "confidence": 90,
    },
    "tss": {
        "patterns": [
            re.compile(_L + r"sst" + _R, re.IGNORECASE),
            re.compile(_L + r"tss" + _R, re.IGNORECASE),
            re.compile(r"s[oó]lidos.*suspendidos", re.IGNORECASE),
            re.compile(r"suspended.*solids", re.IGNORECASE),
        ],
        "section": "water-quality",
        "targetField": "tss",
        "units": ["mg/L"],
        "defaultUnit": "mg/L",
        "confidence": 85,
    },
    "temperature": {
        "patterns": [
            re.compile(_L + r"temp", re.IGNORECASE),
            re.compile(r"temperatura", re.IGNORECASE),
        ],
        "section": "water-quality",
        "targetField": "temperature",
        "units": ["°C", "°F"],
        "defaultUnit": "°C",
        "confidence": 80,
    },
    "efficiency": {
        "patterns": [
            re.compile(r"eficienc", re.IGNORECASE),
            re.compile(r"efficiency", re.IGNORECASE),
            re.compile(r"removal", re.IGNORECASE),
            re.compile(r"remoci[oó]n", re.IGNORECASE),
            re.compile(r"%"),
        ],
        "section": "water-quality",
        "targetField": "target-efficiency",
        "units": ["%"],
        "defaultUnit": "%",
        "confidence": 75,
    },
}

FILE_TYPES = {
    ".xlsx": "Excel",
    ".xls": "Excel",
    ".pdf": "PDF",
    ".csv": "CSV",
    ".json": "JSON",
    ".txt": "Text",
    ".md": "Text",
    ".docx": "Word",
}

_UNIT_CHARS = r"A-Za-z%°º³²µ/"
TEXT_LINE_PATTERNS = [
    re.compile(r"([^:=]+)[:=]\s*([^,\n]+)"),
    re.compile(
        r"([A-Za-zÀ-ÿ][A-Za-zÀ-ÿ0-9_\s]*?)(?<!\s)\s+(\d+\.?\d*)\s*([" + _UNIT_CHARS + r"][" + _UNIT_CHARS + r"0-9.·]*)?"
    ),
]
_SEPARATOR = re.compile(r"[:=]")
_NAME_START = re.compile(r"[A-Za-zÀ-ÿ]")
_NAME_RUN = re.compile(r"[A-Za-zÀ-ÿ0-9_\s]*")
_LEADING_NUMBER = re.compile(r"^\s*([-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?)\s*(.*)$")
_UNIT_TOKEN = re.compile(r"^[" + _UNIT_CHARS + r"][" + _UNIT_CHARS + r"0-9.·]*$")
_DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%m/%d/%Y", "%Y/%m/%d", "%d-%m-%Y")
_KEY_STRIP = " \t\r,;|*-•"


# ---------------------------------------------------------------------------
# Value helpers
# ---------------------------------------------------------------------------


def _leading_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return None if math.isnan(value) else float(value)
    if isinstance(value, str):
        m = _LEADING_NUMBER.match(value)
        if m:
            try:
                return float(m.group(1))
            except ValueError:
                return None
    return None


def _is_date(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    text = value.strip()
    for fmt in _DATE_FORMATS:
        try:
            datetime.strptime(text, fmt)
            return True
        except ValueError:
            continue
    try:
        datetime.fromisoformat(text)
        return bool(re.match(r"^\d{4}-\d{2}-\d{2}", text))
    except ValueError:
        return False


def detect_value_type(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return "boolean"
    if _is_date(value):
        return "date"
    if _leading_number(value) is not None:
        return "number"
    return "text"


def parse_value(value: Any) -> Any:
    if isinstance(value, str):
        text = value.strip()
        if _is_date(text):
            return text
        num = _leading_number(text)
        if num is not None:
            return num
        if text.lower() == "true":
            return True
        if text.lower() == "false":
            return False
        return text
    return value


def split_value_unit(raw: str) -> tuple[str, Optional[str]]:
    """Split ``"500 m3/d"`` into ``("500", "m3/d")``; other text is returned untouched."""
    m = _LEADING_NUMBER.match(raw)
    if m and m.group(2) and _UNIT_TOKEN.match(m.group(2).strip()):
        return m.group(1), m.group(2).strip()
    return raw.strip(), None


def is_valid_parameter(key: Any, value: Any, thresholds: Optional[dict] = None) -> bool:
    thresholds = thresholds or IMPORT_THRESHOLDS
    if not isinstance(key, str) or len(key.strip()) < thresholds["minKeyLength"]:
        return False
    if len(key) > thresholds["maxKeyLength"]:
        return False
    if value is None or (isinstance(value, str) and not value.strip()):
        return False
    if isinstance(value, float) and math.isnan(value):
        return False
    if _is_date(value):
        return True
    num = _leading_number(value)
    if num is not None and not (thresholds["minNumericValue"] <= num <= thresholds["maxNumericValue"]):
        return False
    return True


def normalize_unit(unit: Optional[str]) -> str:
    if not unit:
        return ""
    u = unit.strip().lower().replace(" ", "").replace("º", "°")
    u = u.replace("m3", "m³").replace("m^3", "m³")
    if u in ("f", "degf", "deg.f"):
        return "°f"
    if u in ("c", "degc", "deg.c"):
        return "°c"
    return u


def get_file_type(file_name: str) -> str:
    ext = os.path.splitext(file_name or "")[1].lower()
    return FILE_TYPES.get(ext, "Unknown")


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _key_value_matches(line: str) -> Iterator[re.Match]:
    # a failed start fails for every start up to the next separator
    pos = 0
    while True:
        separator = _SEPARATOR.search(line, pos)
        if separator is None:
            return
        match = TEXT_LINE_PATTERNS[0].match(line, pos)
        if match:
            yield match
            pos = match.end()
        else:
            pos = separator.end()


def _name_number_matches(line: str) -> Iterator[re.Match]:
    # a failed start fails for every start inside the same name run
    pos = 0
    while True:
        start = _NAME_START.search(line, pos)
        if start is None:
            return
        match = TEXT_LINE_PATTERNS[1].match(line, start.start())
        if match:
            yield match
            pos = match.end()
        else:
            pos = _NAME_RUN.match(line, start.start()).end()


def parse_text_content(content: str, thresholds: Optional[dict] = None) -> list[DetectedField]:
    thresholds = thresholds or IMPORT_THRESHOLDS
    fields: list[DetectedField] = []

    for index, line in enumerate(content.splitlines()):
        if not line.strip():
            continue
        for family, matches in enumerate((_key_value_matches, _name_number_matches)):
            for match in matches(line):
                key = match.group(1).strip(_KEY_STRIP)
                raw_value = match.group(2).strip()
                if family == 0:
                    raw_value, unit = split_value_unit(raw_value)
                else:
                    unit = (match.group(3) or "").strip() or None

                if not is_valid_parameter(key, raw_value, thresholds):
                    continue
                fields.append(DetectedField(
                    original_name=key,
                    detected_type=detect_value_type(raw_value),
                    confidence=thresholds["textBaseConfidence"],
                    value=parse_value(raw_value),
                    unit=unit,
                    context=f"Line {index + 1}: {line.strip()}",
                ))

    return fields


def parse_structured_data(data: Any, thresholds: Optional[dict] = None) -> list[DetectedField]:
    thresholds = thresholds or IMPORT_THRESHOLDS
    fields: list[DetectedField] = []

    def traverse(obj: Any, prefix: str = "") -> None:
        items = obj.items() if isinstance(obj, dict) else enumerate(obj)
        for key, value in items:
            key = str(key)
            full_key = f"{prefix}.{key}" if prefix else key
            if isinstance(value, dict) or (isinstance(value, list) and any(isinstance(v, dict) for v in value)):
                traverse(value, full_key)
                continue
            if isinstance(value, list):
                value = ", ".join(str(v) for v in value)
            unit = None
            if isinstance(value, str):
                value, unit = split_value_unit(value)
            leaf_key = key if not key.isdigit() else full_key
            if not is_valid_parameter(leaf_key, value, thresholds):
                continue
            fields.append(DetectedField(
                original_name=full_key,
                detected_type=detect_value_type(value),
                confidence=thresholds["structuredBaseConfidence"],
                value=parse_value(value),
                unit=unit,
                context=f"Structure: {full_key}",
            ))

    traverse(data)
    return fields


# ---------------------------------------------------------------------------
# Pattern matching
# ---------------------------------------------------------------------------


def _target_of(entry: dict) -> str:
    return f"{entry['section']}.{entry['targetField']}"


def find_best_pattern_match(field_name: str, patterns: Optional[dict] = None) -> Optional[dict]:
    """Score ``field_name`` against the pattern catalog.

    Highest confidence wins. Equal confidence is broken by the longest matched
    span, then by catalog order; the other equally-confident targets are
    reported in ``alternatives`` so the caller can surface the ambiguity.
    """
    patterns = patterns or DEFAULT_FIELD_PATTERNS
    candidates = []
    for order, (key, entry) in enumerate(patterns.items()):
        spans = [len(m.group(0)) for m in (rx.search(field_name) for rx in entry["patterns"]) if m]
        if spans:
            candidates.append((entry["confidence"], max(spans), -order, key))

    if not candidates:
        return None

    candidates.sort(reverse=True)
    confidence, _span, _order, key = candidates[0]
    winner = patterns[key]
    alternatives = []
    for other_conf, _s, _o, other_key in candidates[1:]:
        target = _target_of(patterns[other_key])
        if other_conf == confidence and target != _target_of(winner) and target not in alternatives:
            alternatives.append(target)

    return {"key": key, "entry": winner, "alternatives": alternatives}


def enhance_with_engineering_context(
    fields: list[DetectedField],
    patterns: Optional[dict] = None,
) -> tuple[list[DetectedField], list[MappingAmbiguity]]:
    enhanced: list[DetectedField] = []
    ambiguities: list[MappingAmbiguity] = []

    for field in fields:
        match = find_best_pattern_match(field.original_name, patterns)
        if not match:
            enhanced.append(field)
            continue

        entry = match["entry"]
        target = _target_of(entry)
        confidence = max(field.confidence, entry["confidence"])
        enhanced.append(field.model_copy(update={
            "suggested_mapping": target,
            "confidence": confidence,
            "unit": field.unit or entry.get("defaultUnit") or None,
            "alternative_mappings": match["alternatives"],
        }))
        if match["alternatives"]:
            ambiguities.append(MappingAmbiguity(
                field=field.original_name,
                candidates=[target, *match["alternatives"]],
                chosen=target,
                confidence=confidence,
            ))

    return enhanced, ambiguities


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------


def generate_suggestions(fields: list[DetectedField], file_type: str, thresholds: Optional[dict] = None) -> list[str]:
    thresholds = thresholds or IMPORT_THRESHOLDS
    suggestions: list[str] = []
    mapped = sum(1 for f in fields if f.suggested_mapping)
    total = len(fields)

    if mapped == 0:
        suggestions.append("No standard technical fields detected. Check the file format.")
    elif mapped < total * thresholds["goodMappingShare"]:
        suggestions.append("Partial mapping detected. Some fields may require manual mapping.")
    else:
        suggestions.append(f"{mapped} of {total} fields mapped automatically.")

    if file_type == "PDF":
        suggestions.append("For PDFs, verify that the text is selectable (not a scanned image).")

    return suggestions


def generate_warnings(
    fields: list[DetectedField],
    ambiguities: list[MappingAmbiguity],
    thresholds: Optional[dict] = None,
) -> list[str]:
    thresholds = thresholds or IMPORT_THRESHOLDS
    warnings: list[str] = []

    low_confidence = [f for f in fields if f.confidence < thresholds["lowConfidence"]]
    if low_confidence:
        warnings.append(f"{len(low_confidence)} fields with low mapping confidence.")

    missing_units = [f for f in fields if f.detected_type == "number" and not f.unit]
    if missing_units:
        warnings.append(f"{len(missing_units)} numeric values without detected units.")

    for amb in ambiguities:
        warnings.append(
            f'"{amb.field}" matches several parameters with equal confidence '
            f"({', '.join(amb.candidates)}); mapped to {amb.chosen}, confirm manually."
        )

    return warnings


def analyze_file(
    file_name: str,
    content: Any,
    patterns: Optional[dict] = None,
    thresholds: Optional[dict] = None,
) -> ImportAnalysis:
    thresholds = thresholds or IMPORT_THRESHOLDS
    file_type = get_file_type(file_name)
    extra_warnings: list[str] = []

    if isinstance(content, bytes):
        content = content.decode("utf-8", errors="replace")

    if isinstance(content, str):
        fields = parse_text_content(content, thresholds)
    elif isinstance(content, (dict, list)):
        fields = parse_structured_data(content, thresholds)
    else:
        fields = []
        if content is not None:
            extra_warnings.append(f"Unsupported content type: {type(content).__name__}")

    fields, ambiguities = enhance_with_engineering_context(fields, patterns)

    overall = sum(f.confidence for f in fields) / len(fields) if fields else 0
    analysis = ImportAnalysis(
        file_name=file_name,
        file_type=file_type,
        total_fields=len(fields),
        detected_fields=fields,
        confidence=round(overall),
        suggestions=generate_suggestions(fields, file_type, thresholds),
        warnings=extra_warnings + generate_warnings(fields, ambiguities, thresholds),
        ambiguities=ambiguities,
    )
    logger.info(
        "Smart import: %s (%s) -> %d fields, %d mapped, confidence %d",
        file_name, file_type, len(fields),
        sum(1 for f in fields if f.suggested_mapping), analysis.confidence,
    )
    return analysis


# ---------------------------------------------------------------------------
# Mapping rules & preview
# ---------------------------------------------------------------------------


def needs_transformation(field: DetectedField, entry: Optional[dict]) -> bool:
    if not field.unit or not entry:
        return False
    expected = {normalize_unit(u) for u in entry.get("units", [])}
    return bool(expected) and normalize_unit(field.unit) not in expected


def _mapped_pairs(analysis: ImportAnalysis, patterns: Optional[dict]) -> list[tuple[MappingRule, DetectedField]]:
    patterns = patterns or DEFAULT_FIELD_PATTERNS
    by_target = {_target_of(entry): entry for entry in patterns.values()}
    pairs = []

    for field in analysis.detected_fields:
        if not field.suggested_mapping:
            continue
        section, _, target_field = field.suggested_mapping.partition(".")
        transform = needs_transformation(field, by_target.get(field.suggested_mapping))
        notes = f"Auto-detected from '{field.original_name}'"
        if transform:
            notes += f" (source unit {field.unit})"
        pairs.append((MappingRule(
            source_field=field.original_name,
            target_section_id=section,
            target_field_id=target_field,
            confidence=field.confidence,
            transformation="unit_conversion" if transform else None,
            notes=notes,
        ), field))

    pairs.sort(key=lambda pair: -pair[0].confidence)
    return pairs


def generate_mapping_rules(analysis: ImportAnalysis, patterns: Optional[dict] = None) -> list[MappingRule]:
    return [rule for rule, _field in _mapped_pairs(analysis, patterns)]


def convert_units(value: Any, from_unit: Optional[str], target_key: str) -> Any:
    """Convert to the data sheet's unit; unknown conversions return ``value`` unchanged."""
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not from_unit:
        return value

    unit = normalize_unit(from_unit)
    if target_key.endswith("flow"):
        if unit == "m³/d":
            return value / 86.4
        if unit == "l/min":
            return value / 60
        if unit == "m³/h":
            return value / 3.6
    if unit == "°f":
        return (value - 32) * 5 / 9

    return value


def get_conflict_recommendation(existing_value: Any, new_value: Any, confidence: float, thresholds: Optional[dict] = None) -> str:
    thresholds = thresholds or IMPORT_THRESHOLDS
    if confidence > thresholds["useNewConfidence"]:
        return "use_new"
    existing = _leading_number(existing_value)
    new = _leading_number(new_value)
    if existing is not None and new is not None and existing != 0:
        if abs(existing - new) / abs(existing) < thresholds["mergeRelativeDifference"]:
            return "merge"
    return "keep_existing"


def create_import_preview(
    analysis: ImportAnalysis,
    existing_data: Optional[dict],
    patterns: Optional[dict] = None,
    thresholds: Optional[dict] = None,
) -> ImportPreview:
    existing_data = existing_data or {}
    pairs = _mapped_pairs(analysis, patterns)
    preview_data: dict[str, Any] = {}
    conflicts: list[ImportConflict] = []

    for rule, field in pairs:
        target_key = f"{rule.target_section_id}.{rule.target_field_id}"
        if target_key in preview_data:
            continue

        # known conversions apply even when the source unit is one the sheet accepts
        value = convert_units(field.value, field.unit, target_key)
        preview_data[target_key] = value

        existing_value = existing_data.get(target_key)
        if existing_value is None or existing_value == "" or existing_value == value:
            continue
        conflicts.append(ImportConflict(
            field=rule.target_field_id,
            target_key=target_key,
            existing_value=existing_value,
            new_value=value,
            recommendation=get_conflict_recommendation(existing_value, value, rule.confidence, thresholds),
        ))

    logger.info(
        "Smart import: preview for %s -> %d values, %d conflicts",
        analysis.file_name, len(preview_data), len(conflicts),
    )
    return ImportPreview(
        analysis=analysis,
        mapping_rules=[rule for rule, _field in pairs],
        preview_data=preview_data,
        conflicts=conflicts,
    )
