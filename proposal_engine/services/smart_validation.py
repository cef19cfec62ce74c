"""
Engineering validation of technical data against sector ranges and
cross-field consistency rules.

Results are classifications only; whether an error-level result blocks
proposal generation is decided by the caller.
"""

import logging
import math
from typing import Any, Optional, Union

from proposal_engine.models.schemas import ValidationContext, ValidationResult
from proposal_engine.services.technology_catalog import normalize_sector

logger = logging.getLogger(__name__)


# design flow in m³/d for every sector
ENGINEERING_RANGES: dict = {
    "Municipal": {
        "design_flow": {"min": 50, "max": 50_000, "unit": "m³/d", "typical": 2_000},
        "bod": {"min": 150, "max": 400, "unit": "mg/L", "typical": 250},
        "cod": {"min": 300, "max": 800, "unit": "mg/L", "typical": 500},
        "tss": {"min": 100, "max": 300, "unit": "mg/L", "typical": 200},
        "ph": {"min": 6.5, "max": 8.5, "unit": "", "typical": 7.2},
        "temperature": {"min": 10, "max": 30, "unit": "°C", "typical": 20},
        "population": {"min": 100, "max": 1_000_000, "unit": "hab", "typical": 10_000},
    },
    "Industrial": {
        "design_flow": {"min": 10, "max": 10_000, "unit": "m³/d", "typical": 1_000},
        "bod": {"min": 200, "max": 5_000, "unit": "mg/L", "typical": 800},
        "cod": {"min": 500, "max": 15_000, "unit": "mg/L", "typical": 1_500},
        "tss": {"min": 50, "max": 2_000, "unit": "mg/L", "typical": 400},
        "ph": {"min": 4.0, "max": 12.0, "unit": "", "typical": 8.0},
        "temperature": {"min": 20, "max": 80, "unit": "°C", "typical": 35},
    },
    "Residential": {
        "design_flow": {"min": 1, "max": 300, "unit": "m³/d", "typical": 50},
        "bod": {"min": 150, "max": 300, "unit": "mg/L", "typical": 220},
        "cod": {"min": 300, "max": 600, "unit": "mg/L", "typical": 400},
        "tss": {"min": 100, "max": 250, "unit": "mg/L", "typical": 180},
        "ph": {"min": 6.8, "max": 8.2, "unit": "", "typical": 7.0},
        "temperature": {"min": 10, "max": 30, "unit": "°C", "typical": 20},
        "population": {"min": 50, "max": 5_000, "unit": "hab", "typical": 500},
    },
    "Commercial": {
        "design_flow": {"min": 1, "max": 2_000, "unit": "m³/d", "typical": 100},
        "bod": {"min": 200, "max": 800, "unit": "mg/L", "typical": 350},
        "cod": {"min": 400, "max": 1_200, "unit": "mg/L", "typical": 600},
        "tss": {"min": 80, "max": 400, "unit": "mg/L", "typical": 200},
        "ph": {"min": 6.5, "max": 8.5, "unit": "", "typical": 7.0},
        "temperature": {"min": 15, "max": 35, "unit": "°C", "typical": 25},
    },
}

VALIDATION_THRESHOLDS: dict = {
    "perCapitaMinLPerDay": 100,
    "perCapitaMaxLPerDay": 600,
    "perCapitaExcessiveLPerDay": 1_000,
    "bodCodHighRatio": 0.8,
    "bodCodLowRatio": 0.2,
    "biologicalMaxTemperatureC": 45,
    "highBodSuggestionMgL": 500,
    "lowBiodegradabilityRatio": 0.3,
    "highTssSuggestionMgL": 300,
}

FIELD_ALIASES: dict = {
    "design-flow": "design_flow",
    "designflow": "design_flow",
    "design_flow": "design_flow",
    "flow": "design_flow",
    "bod": "bod",
    "bod5": "bod",
    "dbo": "bod",
    "dbo5": "bod",
    "cod": "cod",
    "dqo": "cod",
    "tss": "tss",
    "sst": "tss",
    "ph": "ph",
    "temperature": "temperature",
    "temp": "temperature",
    "population": "population",
    "population-served": "population",
    "populationserved": "population",
    "target-efficiency": "target_efficiency",
    "targetefficiency": "target_efficiency",
}

FIELD_LABELS: dict = {
    "design_flow": "Design flow",
    "bod": "BOD5",
    "cod": "COD",
    "tss": "TSS",
    "ph": "pH",
    "temperature": "Temperature",
    "population": "Population",
}

_LEVEL_RANK = {"info": 0, "warning": 1, "error": 2}

# Import previews write flow onto the data sheet in L/s; ranges and costs use m³/d.
SHEET_UNIT_FACTORS: dict = {
    "general-data.design-flow": 86.4,
}


def to_engine_units(field_id: str, value: Any) -> Any:
    factor = SHEET_UNIT_FACTORS.get(str(field_id).strip().lower())
    number = as_number(value) if factor else None
    return value if number is None else number * factor


def canonical_field(field_id: str) -> str:
    """Map dashboard field ids (``design-flow``, ``dbo5``, ``water-quality.ph``) to range keys."""
    key = str(field_id).strip().lower().rsplit(".", 1)[-1]
    return FIELD_ALIASES.get(key, FIELD_ALIASES.get(key.replace("_", ""), key))


def canonicalize_data(data: dict) -> dict:
    result: dict = {}
    for key, value in (data or {}).items():
        canonical = canonical_field(key)
        if canonical not in result or result[canonical] in (None, ""):
            result[canonical] = to_engine_units(key, value)
    return result


def as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return None if math.isnan(value) else float(value)
    try:
        return float(str(value).replace(",", "").strip())
    except ValueError:
        return None


def _as_context(context: Union[ValidationContext, dict]) -> ValidationContext:
    if isinstance(context, ValidationContext):
        return context
    return ValidationContext.model_validate(context)


def _most_severe(primary: ValidationResult, refinement: Optional[ValidationResult]) -> ValidationResult:
    # an in-range primary yields to any refinement; otherwise ties keep the primary
    if refinement is None:
        return primary
    if primary.is_valid and primary.level == "info":
        return refinement
    if _LEVEL_RANK[refinement.level] <= _LEVEL_RANK[primary.level]:
        return primary
    return refinement


def _fmt(value: float) -> str:
    return f"{value:,.2f}".rstrip("0").rstrip(".")


def _check_range(field: str, value: float, sector: str, ranges: dict) -> ValidationResult:
    label = FIELD_LABELS.get(field, field)
    limits = ranges.get(sector, {}).get(field)
    if not limits:
        return ValidationResult(is_valid=True, level="info", message="No ranges defined for this sector", field=field)

    unit = f" {limits['unit']}" if limits.get("unit") else ""
    if value < limits["min"]:
        return ValidationResult(
            is_valid=False,
            level="error",
            message=f"{label} too low for {sector} sector (minimum: {_fmt(limits['min'])}{unit})",
            suggestion=f"Typical value: {_fmt(limits['typical'])}{unit}",
            field=field,
        )
    if value > limits["max"]:
        return ValidationResult(
            is_valid=False,
            level="warning",
            message=f"{label} too high for {sector} sector (typical maximum: {_fmt(limits['max'])}{unit})",
            suggestion="Verify the value and units, or consider phased treatment",
            field=field,
        )
    return ValidationResult(is_valid=True, level="info", message=f"{label} within typical range", field=field)


def _per_capita_l_per_day(flow_m3d: Optional[float], population: Optional[float]) -> Optional[float]:
    if flow_m3d is None or not population or population <= 0:
        return None
    return flow_m3d * 1000 / population


def _check_per_capita(value: float, context: ValidationContext, thresholds: dict) -> Optional[ValidationResult]:
    population = as_number(context.population)
    if population is None:
        population = as_number(canonicalize_data(context.existing_data).get("population"))
    per_capita = _per_capita_l_per_day(value, population)
    if per_capita is None:
        return None
    if per_capita < thresholds["perCapitaMinLPerDay"] or per_capita > thresholds["perCapitaMaxLPerDay"]:
        return ValidationResult(
            is_valid=True,
            level="warning",
            message=(
                f"Per capita flow: {per_capita:.0f} L/cap/d (expected "
                f"{thresholds['perCapitaMinLPerDay']}-{thresholds['perCapitaMaxLPerDay']})"
            ),
            suggestion="Verify if it includes infiltration or industrial flows",
            field="design_flow",
        )
    return None


def _check_bod_cod_ratio(value: float, context: ValidationContext, thresholds: dict) -> Optional[ValidationResult]:
    cod = as_number(canonicalize_data(context.existing_data).get("cod"))
    if not cod or cod <= 0:
        return None
    ratio = value / cod
    if ratio > thresholds["bodCodHighRatio"]:
        return ValidationResult(
            is_valid=True,
            level="warning",
            message=f"BOD/COD ratio high ({ratio:.2f}) - verify values",
            suggestion="Typical ratio: 0.3-0.7 for wastewater",
            field="bod",
        )
    if ratio < thresholds["bodCodLowRatio"]:
        return ValidationResult(
            is_valid=True,
            level="info",
            message=f"BOD/COD ratio low ({ratio:.2f}) - low biodegradability",
            suggestion="Consider a physicochemical treatment route",
            field="bod",
        )
    return None


def validate_field(
    field_id: str,
    value: Any,
    context: Union[ValidationContext, dict],
    ranges: Optional[dict] = None,
    thresholds: Optional[dict] = None,
) -> ValidationResult:
    ranges = ranges or ENGINEERING_RANGES
    thresholds = thresholds or VALIDATION_THRESHOLDS
    context = _as_context(context)
    sector = normalize_sector(context.sector, ranges)
    field = canonical_field(field_id)

    if value is None or (isinstance(value, str) and not value.strip()):
        return ValidationResult(is_valid=True, level="info", message="Field empty", field=field)

    number = as_number(to_engine_units(field_id, value))
    if number is None:
        return ValidationResult(
            is_valid=False,
            level="error",
            message="Value must be numeric",
            suggestion="Enter a valid number",
            field=field,
        )

    if field not in FIELD_LABELS:
        return ValidationResult(is_valid=True, level="info", message="Field valid", field=field)

    result = _check_range(field, number, sector, ranges)
    if field == "design_flow" and sector == "Municipal":
        result = _most_severe(result, _check_per_capita(number, context, thresholds))
    elif field == "bod":
        result = _most_severe(result, _check_bod_cod_ratio(number, context, thresholds))
    return result


def validate_consistency(
    all_data: dict,
    context: Union[ValidationContext, dict, None] = None,
    thresholds: Optional[dict] = None,
) -> list[ValidationResult]:
    thresholds = thresholds or VALIDATION_THRESHOLDS
    data = canonicalize_data(all_data)
    results: list[ValidationResult] = []

    bod = as_number(data.get("bod"))
    cod = as_number(data.get("cod"))
    if bod is not None and cod is not None and bod > cod:
        results.append(ValidationResult(
            is_valid=False,
            level="error",
            message="BOD5 cannot be greater than COD",
            suggestion="Verify values - COD is the upper bound of BOD, so this is physically impossible",
            field="bod",
        ))

    per_capita = _per_capita_l_per_day(as_number(data.get("design_flow")), as_number(data.get("population")))
    if per_capita is not None and per_capita > thresholds["perCapitaExcessiveLPerDay"]:
        results.append(ValidationResult(
            is_valid=True,
            level="warning",
            message=f"Design flow excessively high for declared population ({per_capita:.0f} L/cap/d)",
            suggestion="Verify units or include industrial flows",
            field="design_flow",
        ))

    temperature = as_number(data.get("temperature"))
    if temperature is not None and temperature > thresholds["biologicalMaxTemperatureC"]:
        results.append(ValidationResult(
            is_valid=True,
            level="warning",
            message="High temperature may affect biological treatment",
            suggestion="Consider pre-cooling or physicochemical treatment",
            field="temperature",
        ))

    return results


def validate_dataset(
    all_data: dict,
    context: Union[ValidationContext, dict],
    ranges: Optional[dict] = None,
    thresholds: Optional[dict] = None,
) -> list[ValidationResult]:
    """Validate every known field of ``all_data`` (against the rest of it) plus cross-field consistency."""
    context = _as_context(context)
    data = canonicalize_data(all_data)
    field_context = context.model_copy(update={"existing_data": {**context.existing_data, **data}})

    results = [
        validate_field(field, data[field], field_context, ranges, thresholds)
        for field in FIELD_LABELS
        if field in data
    ]
    results.extend(validate_consistency(data, context, thresholds))
    logger.info(
        "Validation: %s sector, %d fields -> %d errors, %d warnings",
        context.sector, len(data),
        sum(1 for r in results if r.level == "error"),
        sum(1 for r in results if r.level == "warning"),
    )
    return results


def has_blocking_errors(results: list[ValidationResult]) -> bool:
    return any(r.level == "error" for r in results)


def get_smart_suggestions(
    data: dict,
    context: Union[ValidationContext, dict],
    ranges: Optional[dict] = None,
    thresholds: Optional[dict] = None,
) -> list[str]:
    ranges = ranges or ENGINEERING_RANGES
    thresholds = thresholds or VALIDATION_THRESHOLDS
    context = _as_context(context)
    sector = normalize_sector(context.sector, ranges)
    values = canonicalize_data(data)
    suggestions: list[str] = []

    if values.get("design_flow") in (None, ""):
        limits = ranges[sector].get("design_flow")
        if limits:
            suggestions.append(f"Typical design flow for {sector}: {_fmt(limits['typical'])} {limits['unit']}")

    bod = as_number(values.get("bod"))
    cod = as_number(values.get("cod"))
    if bod is not None and bod > thresholds["highBodSuggestionMgL"]:
        suggestions.append("For high BOD, consider activated sludge, UASB, or facultative ponds")
    if sector == "Industrial" and bod is not None and cod:
        if bod / cod < thresholds["lowBiodegradabilityRatio"]:
            suggestions.append("Low biodegradability: consider physicochemical pretreatment")

    tss = as_number(values.get("tss"))
    if tss is not None and tss > thresholds["highTssSuggestionMgL"]:
        suggestions.append("High solids content: include a primary clarifier")

    return suggestions
