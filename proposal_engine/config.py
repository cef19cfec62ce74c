"""
Runtime configuration and engineering reference data.

Every table has a built-in default next to the code that uses it; a JSON file
named by PROPOSAL_ENGINE_REFERENCE_FILE may override any of them. Overrides
are merged onto the defaults, so a file only needs the values it changes.
"""

import copy
import json
import logging
import os
import re
from functools import lru_cache
from typing import Any, Optional

from pydantic import BaseModel, ValidationError

from proposal_engine.models.schemas import TechnologyOption
from proposal_engine.services.cost_calculation import DEFAULT_COST_RATES
from proposal_engine.services.errors import ReferenceDataError
from proposal_engine.services.smart_flags import FLAG_THRESHOLDS
from proposal_engine.services.smart_import import DEFAULT_FIELD_PATTERNS, IMPORT_THRESHOLDS
from proposal_engine.services.smart_validation import ENGINEERING_RANGES, VALIDATION_THRESHOLDS
from proposal_engine.services.technology_catalog import DEFAULT_TECHNOLOGY_CATALOG
from proposal_engine.services.technology_selection import SELECTION_THRESHOLDS

logger = logging.getLogger(__name__)

APP_NAME = os.environ.get("APP_NAME", "Proposal Intelligence Engine")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
REFERENCE_FILE = os.environ.get("PROPOSAL_ENGINE_REFERENCE_FILE", "")
MAX_UPLOAD_BYTES = int(os.environ.get("MAX_UPLOAD_BYTES", str(20 * 1024 * 1024)))


class ReferenceData(BaseModel):
    model_config = {"frozen": True}

    technology_catalog: dict
    cost_rates: dict
    engineering_ranges: dict
    field_patterns: dict
    selection_thresholds: dict
    flag_thresholds: dict
    import_thresholds: dict
    validation_thresholds: dict


OVERRIDE_KEYS = {
    "technologyCatalog",
    "costRates",
    "engineeringRanges",
    "fieldPatterns",
    "selectionThresholds",
    "flagThresholds",
    "importThresholds",
    "validationThresholds",
}


def _deep_merge(base: dict, override: dict) -> dict:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _build_catalog(override: Any) -> dict:
    if not isinstance(override, dict):
        raise ReferenceDataError("technologyCatalog must map sector names to technology lists")
    catalog = dict(DEFAULT_TECHNOLOGY_CATALOG)
    for sector, options in override.items():
        if not isinstance(options, list) or not options:
            raise ReferenceDataError(f"technologyCatalog[{sector!r}] must be a non-empty list")
        try:
            catalog[sector] = [TechnologyOption.model_validate(option) for option in options]
        except ValidationError as e:
            raise ReferenceDataError(f"Invalid technology in technologyCatalog[{sector!r}]: {e}") from e
    return catalog


def _compile_pattern_entry(key: str, entry: dict) -> dict:
    compiled = dict(entry)
    try:
        compiled["patterns"] = [
            p if isinstance(p, re.Pattern) else re.compile(p, re.IGNORECASE)
            for p in entry.get("patterns", [])
        ]
    except (re.error, TypeError) as e:
        raise ReferenceDataError(f"Invalid regex in fieldPatterns[{key!r}]: {e}") from e

    missing = {"patterns", "section", "targetField", "confidence"} - compiled.keys()
    if missing or not compiled["patterns"]:
        raise ReferenceDataError(f"fieldPatterns[{key!r}] is incomplete (missing: {', '.join(sorted(missing)) or 'patterns'})")
    if not isinstance(compiled["confidence"], (int, float)) or not 0 <= compiled["confidence"] <= 100:
        raise ReferenceDataError(f"fieldPatterns[{key!r}].confidence must be between 0 and 100")
    return compiled


def _build_field_patterns(override: Any) -> dict:
    if not isinstance(override, dict):
        raise ReferenceDataError("fieldPatterns must map parameter keys to pattern entries")
    patterns = dict(DEFAULT_FIELD_PATTERNS)
    for key, entry in override.items():
        if not isinstance(entry, dict):
            raise ReferenceDataError(f"fieldPatterns[{key!r}] must be an object")
        base = {k: v for k, v in patterns.get(key, {}).items() if k != "patterns"}
        merged = {**base, **entry}
        if "patterns" not in entry and key in patterns:
            merged["patterns"] = patterns[key]["patterns"]
        patterns[key] = _compile_pattern_entry(key, merged)
    return patterns


def _merged_table(overrides: dict, key: str, default: dict) -> dict:
    value = overrides.get(key)
    if value is None:
        return copy.deepcopy(default)
    if not isinstance(value, dict):
        raise ReferenceDataError(f"{key} must be a JSON object")
    return _deep_merge(default, value)


def load_reference_data(path: Optional[str] = None) -> ReferenceData:
    """Build the reference bundle, applying the overrides in ``path`` when given.

    Raises ReferenceDataError when the file cannot be read or does not have
    the expected shape.
    """
    overrides: dict = {}
    if path:
        try:
            with open(path, encoding="utf-8") as f:
                overrides = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ReferenceDataError(f"Cannot load reference data from {path}: {e}") from e
        if not isinstance(overrides, dict):
            raise ReferenceDataError(f"Reference data file {path} must contain a JSON object")

        unknown = set(overrides) - OVERRIDE_KEYS
        if unknown:
            logger.warning("Reference data: ignoring unknown keys %s in %s", sorted(unknown), path)
        logger.info("Reference data: loaded overrides for %s from %s", sorted(set(overrides) & OVERRIDE_KEYS), path)

    catalog_override = overrides.get("technologyCatalog")
    patterns_override = overrides.get("fieldPatterns")
    return ReferenceData(
        technology_catalog=DEFAULT_TECHNOLOGY_CATALOG if catalog_override is None else _build_catalog(catalog_override),
        cost_rates=_merged_table(overrides, "costRates", DEFAULT_COST_RATES),
        engineering_ranges=_merged_table(overrides, "engineeringRanges", ENGINEERING_RANGES),
        field_patterns=DEFAULT_FIELD_PATTERNS if patterns_override is None else _build_field_patterns(patterns_override),
        selection_thresholds=_merged_table(overrides, "selectionThresholds", SELECTION_THRESHOLDS),
        flag_thresholds=_merged_table(overrides, "flagThresholds", FLAG_THRESHOLDS),
        import_thresholds=_merged_table(overrides, "importThresholds", IMPORT_THRESHOLDS),
        validation_thresholds=_merged_table(overrides, "validationThresholds", VALIDATION_THRESHOLDS),
    )


@lru_cache(maxsize=1)
def get_reference_data() -> ReferenceData:
    return load_reference_data(REFERENCE_FILE or None)
