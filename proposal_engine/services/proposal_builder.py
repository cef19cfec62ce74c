"""
Intelligent proposal assembly.

Runs the deterministic pipeline for one project: validation, technology
selection, CAPEX/OPEX, timeline, and the fixed assumptions, risks and
performance targets shown in the proposal.
"""

import logging
import uuid
from typing import Any, Optional

from proposal_engine.config import ReferenceData, get_reference_data
from proposal_engine.models.schemas import (
    Diagrams,
    GenerationStep,
    IntelligentProposal,
    PerformanceTarget,
    Risk,
    TechnologyOption,
    Timeline,
)
from proposal_engine.services.cost_calculation import calculate_capex, calculate_opex, estimate_timeline
from proposal_engine.services.errors import InvalidInputError
from proposal_engine.services.smart_validation import as_number, canonicalize_data, validate_dataset
from proposal_engine.services.technology_catalog import normalize_sector
from proposal_engine.services.technology_selection import select_technologies

logger = logging.getLogger(__name__)


DEFAULT_DESIGN_FLOW_M3D = 1000
DEFAULT_BOD_MG_L = 250
DEFAULT_TSS_MG_L = 200
EFFLUENT_BOD_MG_L = 20
EFFLUENT_TSS_MG_L = 30
TSS_REMOVAL_PCT = 85

BASE_ASSUMPTIONS = [
    "Representative laboratory analysis of wastewater",
    "Availability of basic services on site (electricity, water)",
    "Environmental permits managed by client",
    "24-hour operation, load factor: 0.8",
    "Costs in USD, base year 2024",
    "Does not include land cost",
]

STANDARD_RISKS = [
    Risk(
        category="technical",
        risk="Variability in wastewater quality",
        probability="medium",
        impact="medium",
        mitigation="Equalization tank and continuous monitoring",
    ),
    Risk(
        category="financial",
        risk="Increase in construction costs",
        probability="medium",
        impact="high",
        mitigation="15% contingency included in budget",
    ),
]

GENERATION_STEPS = [
    ("analysis", "Analyzing technical data", "Evaluating flows, loads and treatment objectives", 2000),
    ("technology", "Selecting technologies", "Comparing options based on technical and economic criteria", 3000),
    ("calculations", "Executing deterministic calculations", "Hydraulic sizing and cost estimation", 2500),
    ("optimization", "Optimizing configuration", "Adjusting design for optimal efficiency and cost", 2000),
    ("documentation", "Generating documentation", "Preparing technical report and specifications", 1500),
]

LAYOUT_NOTE = "Preliminary layout available in detailed design stage"


def _numeric(data: dict, key: str, label: str) -> Optional[float]:
    value = data.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    number = as_number(value)
    if number is None:
        raise InvalidInputError(f"{label} must be numeric, got {value!r}")
    return number


def _flow_diagram(technologies: list[TechnologyOption]) -> str:
    steps = [
        "Raw Wastewater",
        "Pretreatment (screens, grit chamber)",
        *(t.name for t in technologies),
        "Disinfection",
        "Treated Effluent",
    ]
    return " → ".join(steps)


def _performance_targets(bod: float, tss: float) -> list[PerformanceTarget]:
    bod_removal = (bod - EFFLUENT_BOD_MG_L) / bod * 100 if bod > 0 else 0
    return [
        PerformanceTarget(
            parameter="BOD5",
            influent=bod,
            effluent=EFFLUENT_BOD_MG_L,
            removal=round(max(bod_removal, 0), 1),
            unit="mg/L",
        ),
        PerformanceTarget(
            parameter="TSS",
            influent=tss,
            effluent=EFFLUENT_TSS_MG_L,
            removal=TSS_REMOVAL_PCT,
            unit="mg/L",
        ),
    ]


def generate_proposal(
    sector: str,
    technical_data: dict[str, Any],
    reference: Optional[ReferenceData] = None,
) -> IntelligentProposal:
    reference = reference or get_reference_data()
    catalog = reference.technology_catalog
    sector = normalize_sector(sector, catalog)
    data = canonicalize_data(technical_data)
    assumptions = list(BASE_ASSUMPTIONS)

    validation = validate_dataset(
        data,
        {"sector": sector, "existing_data": data},
        reference.engineering_ranges,
        reference.validation_thresholds,
    ) if sector in reference.engineering_ranges else []

    flow = _numeric(data, "design_flow", "Design flow")
    if flow is None:
        flow = DEFAULT_DESIGN_FLOW_M3D
        assumptions.append(f"Design flow not provided: {DEFAULT_DESIGN_FLOW_M3D} m³/d assumed")
    bod = _numeric(data, "bod", "BOD")
    if bod is None:
        bod = DEFAULT_BOD_MG_L
        assumptions.append(f"BOD not provided: {DEFAULT_BOD_MG_L} mg/L assumed")
    tss = _numeric(data, "tss", "TSS")
    if tss is None:
        tss = DEFAULT_TSS_MG_L

    selection = select_technologies(
        sector,
        flow,
        bod,
        population=_numeric(data, "population", "Population"),
        target_efficiency=_numeric(data, "target_efficiency", "Target efficiency"),
        catalog=catalog,
        thresholds=reference.selection_thresholds,
    )
    technologies = selection.selected_technologies

    capex = calculate_capex(flow, technologies, sector, reference.cost_rates)
    opex = calculate_opex(flow, technologies, sector, reference.cost_rates)
    timeline = Timeline(**estimate_timeline(flow))
    reasoning = [*selection.reasoning, f"Estimated timeline: {timeline.total:g} months total"]

    proposal = IntelligentProposal(
        id=f"prop_{uuid.uuid4().hex[:12]}",
        version="v1.0",
        sector=sector,
        reasoning=reasoning,
        selected_technologies=technologies,
        capex=capex,
        opex=opex,
        timeline=timeline,
        assumptions=assumptions,
        risks=[risk.model_copy() for risk in STANDARD_RISKS],
        performance_targets=_performance_targets(bod, tss),
        diagrams=Diagrams(flow_diagram=_flow_diagram(technologies), layout=LAYOUT_NOTE),
        validation=validation,
    )
    logger.info(
        "Proposal: %s generated for %s (%s, CapEx $%s)",
        proposal.id, sector, ", ".join(t.name for t in technologies), f"{capex.total:,}",
    )
    return proposal


def get_generation_steps() -> list[GenerationStep]:
    return [
        GenerationStep(id=step_id, title=title, description=description, duration=duration)
        for step_id, title, description, duration in GENERATION_STEPS
    ]
