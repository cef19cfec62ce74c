"""
Deterministic CAPEX / OPEX estimator for wastewater treatment proposals.

Costs scale linearly with design flow (m³/d). The most demanding selected
technology sets the complexity and energy factors.
"""

import math
import logging
from typing import Optional

from proposal_engine.models.schemas import CostBreakdown, OperationalCost, TechnologyOption
from proposal_engine.services.errors import InvalidInputError, UnsupportedSectorError

logger = logging.getLogger(__name__)


DEFAULT_COST_RATES: dict = {
    # USD per m³/d of design capacity
    "unitCosts": {
        "Municipal": {"equipmentUsdPerM3d": 800, "constructionUsdPerM3d": 1200},
        "Industrial": {"equipmentUsdPerM3d": 1200, "constructionUsdPerM3d": 1800},
        "Residential": {"equipmentUsdPerM3d": 1500, "constructionUsdPerM3d": 2000},
        "Commercial": {"equipmentUsdPerM3d": 1000, "constructionUsdPerM3d": 1500},
    },
    "complexityMultipliers": {"high": 1.3, "medium": 1.1, "low": 1.0},
    "engineeringPct": 0.15,
    "permitsPct": 0.05,
    "contingencyPct": 0.15,
    "energyIntensityKwhPerM3": {"high": 2.5, "medium": 1.5, "low": 0.8},
    "electricityUsdPerKwh": 0.12,
    "chemicalUsdPerM3": {
        "Municipal": 0.3,
        "Industrial": 0.8,
        "Residential": 0.3,
        "Commercial": 0.3,
    },
    "laborPersonDaysPerDay": {"high": 2, "medium": 1, "low": 0.5},
    "laborUsdPerDay": 50,
    "maintenancePctOfEnergy": 0.30,
    "daysPerYear": 365,
}

LEVEL_ORDER = ("high", "medium", "low")


def _check_flow(flow) -> float:
    if isinstance(flow, bool) or not isinstance(flow, (int, float)):
        raise InvalidInputError(f"Design flow must be a number, got {flow!r}")
    if math.isnan(flow) or math.isinf(flow):
        raise InvalidInputError(f"Design flow must be finite, got {flow!r}")
    if flow <= 0:
        raise InvalidInputError(f"Design flow must be greater than 0 m³/d, got {flow}")
    return float(flow)


def _sector_entry(table: dict, sector: str, what: str):
    if not isinstance(sector, str):
        raise UnsupportedSectorError(sector, table.keys())
    for name, entry in table.items():
        if name.lower() == sector.strip().lower():
            return entry
    logger.warning("Cost calculation: no %s for sector %r", what, sector)
    raise UnsupportedSectorError(sector, table.keys())


def _dominant_level(technologies: list[TechnologyOption], attribute: str) -> str:
    levels = {getattr(t, attribute) for t in technologies}
    for level in LEVEL_ORDER:
        if level in levels:
            return level
    return "low"


def complexity_multiplier(technologies: list[TechnologyOption], rates: Optional[dict] = None) -> float:
    rates = rates or DEFAULT_COST_RATES
    return rates["complexityMultipliers"][_dominant_level(technologies, "complexity")]


def calculate_capex(
    flow: float,
    technologies: list[TechnologyOption],
    sector: str,
    rates: Optional[dict] = None,
) -> CostBreakdown:
    rates = rates or DEFAULT_COST_RATES
    flow = _check_flow(flow)
    unit_costs = _sector_entry(rates["unitCosts"], sector, "unit costs")
    multiplier = complexity_multiplier(technologies, rates)

    equipment = flow * unit_costs["equipmentUsdPerM3d"] * multiplier
    construction = flow * unit_costs["constructionUsdPerM3d"] * multiplier
    direct = equipment + construction
    engineering = direct * rates["engineeringPct"]
    permits = direct * rates["permitsPct"]
    contingency = (direct + engineering + permits) * rates["contingencyPct"]

    components = {
        "equipment": round(equipment),
        "construction": round(construction),
        "engineering": round(engineering),
        "permits": round(permits),
        "contingency": round(contingency),
    }
    result = CostBreakdown(**components, total=sum(components.values()))
    logger.info(
        "CapEx: %s sector, %.1f m³/d, complexity x%.1f -> $%s",
        sector, flow, multiplier, f"{result.total:,}",
    )
    return result


def calculate_opex(
    flow: float,
    technologies: list[TechnologyOption],
    sector: str,
    rates: Optional[dict] = None,
) -> OperationalCost:
    rates = rates or DEFAULT_COST_RATES
    flow = _check_flow(flow)
    chemical_rate = _sector_entry(rates["chemicalUsdPerM3"], sector, "chemical rate")
    days = rates["daysPerYear"]

    intensity = rates["energyIntensityKwhPerM3"][_dominant_level(technologies, "energy")]
    energy = flow * intensity * days * rates["electricityUsdPerKwh"]
    chemicals = flow * days * chemical_rate
    person_days = rates["laborPersonDaysPerDay"][_dominant_level(technologies, "complexity")]
    labor = person_days * days * rates["laborUsdPerDay"]
    maintenance = energy * rates["maintenancePctOfEnergy"]

    components = {
        "energy": round(energy),
        "chemicals": round(chemicals),
        "labor": round(labor),
        "maintenance": round(maintenance),
    }
    result = OperationalCost(**components, total=sum(components.values()))
    logger.info(
        "OpEx: %s sector, %.1f m³/d, %.1f kWh/m³ -> $%s/yr",
        sector, flow, intensity, f"{result.total:,}",
    )
    return result


def estimate_timeline(flow: float) -> dict:
    flow = _check_flow(flow)
    design = max(2, math.ceil(flow / 1000) * 1.5)
    construction = max(4, math.ceil(flow / 500) * 2)
    commissioning = 2
    return {
        "design": design,
        "construction": construction,
        "commissioning": commissioning,
        "total": design + construction + commissioning,
    }
