"""
Rule-based primary technology selection.

Each sector owns an ordered list of rules; the first rule whose predicate
holds picks the technology and contributes the reasoning line shown in the
AI transparency panel.
"""

import math
import logging
from typing import Callable, NamedTuple, Optional

from proposal_engine.models.schemas import SelectionResult
from proposal_engine.services.errors import InvalidInputError, ReferenceDataError
from proposal_engine.services.technology_catalog import (
    COMPACT_ACTIVATED_SLUDGE,
    CONVENTIONAL_ACTIVATED_SLUDGE,
    FACULTATIVE_PONDS,
    IMHOFF_TANK_FILTER,
    MBR_REACTOR,
    PHYSICOCHEMICAL_BIOLOGICAL,
    SBR_REACTOR,
    UASB_ACTIVATED_SLUDGE,
    find_technology,
    normalize_sector,
)

logger = logging.getLogger(__name__)


SELECTION_THRESHOLDS: dict = {
    "municipalLargePopulation": 50_000,
    "municipalLowFlowM3d": 500,
    "industrialHighBodMgL": 800,
    "residentialLowFlowM3d": 100,
    "tertiaryBodMgL": 400,
    "tertiaryTargetEfficiencyPct": 90,
}


class SelectionInput(NamedTuple):
    design_flow: float
    organic_load: float
    population: Optional[float]
    target_efficiency: Optional[float]


class SelectionRule(NamedTuple):
    predicate: Callable[[SelectionInput, dict], bool]
    technology: str
    reason: Callable[[dict], str]


def _always(_inputs: SelectionInput, _t: dict) -> bool:
    return True


SELECTION_RULES: dict[str, list[SelectionRule]] = {
    "Municipal": [
        SelectionRule(
            lambda i, t: i.population is not None and i.population > t["municipalLargePopulation"],
            CONVENTIONAL_ACTIVATED_SLUDGE,
            lambda t: (
                f"Population > {t['municipalLargePopulation']:,} inhabitants: "
                "activated sludge recommended for efficiency and reliability"
            ),
        ),
        SelectionRule(
            lambda i, t: i.design_flow < t["municipalLowFlowM3d"],
            FACULTATIVE_PONDS,
            lambda t: (
                f"Low flow (< {t['municipalLowFlowM3d']:,} m³/d): "
                "facultative ponds for low operational cost and minimal energy use"
            ),
        ),
        SelectionRule(
            _always,
            UASB_ACTIVATED_SLUDGE,
            lambda t: (
                f"Medium flow (>= {t['municipalLowFlowM3d']:,} m³/d) and population "
                f"<= {t['municipalLargePopulation']:,}: UASB + aerobic polishing for energy efficiency"
            ),
        ),
    ],
    "Industrial": [
        SelectionRule(
            lambda i, t: i.organic_load > t["industrialHighBodMgL"],
            PHYSICOCHEMICAL_BIOLOGICAL,
            lambda t: (
                f"High BOD (> {t['industrialHighBodMgL']:,} mg/L): "
                "physicochemical pretreatment necessary before biological stage"
            ),
        ),
        SelectionRule(
            _always,
            SBR_REACTOR,
            lambda t: (
                f"Moderate BOD (<= {t['industrialHighBodMgL']:,} mg/L): "
                "SBR for operational flexibility with variable industrial loads"
            ),
        ),
    ],
    "Residential": [
        SelectionRule(
            lambda i, t: i.design_flow < t["residentialLowFlowM3d"],
            IMHOFF_TANK_FILTER,
            lambda t: (
                f"Low residential flow (< {t['residentialLowFlowM3d']:,} m³/d): "
                "Imhoff tank for simple operation without specialized staff"
            ),
        ),
        SelectionRule(
            _always,
            MBR_REACTOR,
            lambda t: (
                f"Residential flow >= {t['residentialLowFlowM3d']:,} m³/d with high quality requirement: "
                "MBR for potential water reuse"
            ),
        ),
    ],
    "Commercial": [
        SelectionRule(
            _always,
            COMPACT_ACTIVATED_SLUDGE,
            lambda t: "Standard technology for commercial sector: compact activated sludge for limited space",
        ),
    ],
}


def _check_number(name: str, value, allow_zero: bool) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value) or math.isinf(value):
        raise InvalidInputError(f"{name} must be a finite number, got {value!r}")
    if value < 0 or (value == 0 and not allow_zero):
        raise InvalidInputError(f"{name} must be {'non-negative' if allow_zero else 'positive'}, got {value}")
    return float(value)


def select_technologies(
    sector: str,
    design_flow: float,
    organic_load: float,
    population: Optional[float] = None,
    target_efficiency: Optional[float] = None,
    catalog: Optional[dict] = None,
    rules: Optional[dict] = None,
    thresholds: Optional[dict] = None,
) -> SelectionResult:
    rules = rules or SELECTION_RULES
    thresholds = thresholds or SELECTION_THRESHOLDS
    sector = normalize_sector(sector, catalog)
    inputs = SelectionInput(
        design_flow=_check_number("Design flow", design_flow, allow_zero=False),
        organic_load=_check_number("Organic load (BOD)", organic_load, allow_zero=True),
        population=None if population is None else _check_number("Population", population, allow_zero=True),
        target_efficiency=(
            None if target_efficiency is None
            else _check_number("Target efficiency", target_efficiency, allow_zero=True)
        ),
    )

    reasoning = [
        f"Analyzing design flow: {inputs.design_flow:g} m³/d",
        f"Organic load (BOD): {inputs.organic_load:g} mg/L",
    ]
    if inputs.population is not None:
        reasoning.append(f"Population served: {inputs.population:,.0f} inhabitants")

    sector_rules = rules.get(sector)
    if not sector_rules:
        raise ReferenceDataError(f"No selection rules defined for sector {sector!r}")

    matched = next((rule for rule in sector_rules if rule.predicate(inputs, thresholds)), None)
    if matched is None:
        raise ReferenceDataError(f"No selection rule matched for sector {sector!r}")

    technology = find_technology(sector, matched.technology, catalog)
    if technology is None:
        raise ReferenceDataError(
            f"Technology {matched.technology!r} required by {sector} selection rules is not in the catalog"
        )
    reasoning.append(matched.reason(thresholds))

    efficiency = inputs.target_efficiency
    if (inputs.organic_load > thresholds["tertiaryBodMgL"]
            or (efficiency is not None and efficiency > thresholds["tertiaryTargetEfficiencyPct"])):
        reasoning.append(
            f"Tertiary treatment warranted: BOD > {thresholds['tertiaryBodMgL']} mg/L or target efficiency "
            f"> {thresholds['tertiaryTargetEfficiencyPct']}% (equipment sizing decides the tertiary stage)"
        )

    logger.info("Technology selection: %s -> %s", sector, technology.name)
    return SelectionResult(selected_technologies=[technology], reasoning=reasoning)
