"""
Treatment technology catalog – primary technology options per project sector.
"""

from typing import Dict, List, Optional

from proposal_engine.models.schemas import TechnologyOption
from proposal_engine.services.errors import UnsupportedSectorError


CONVENTIONAL_ACTIVATED_SLUDGE = "Conventional Activated Sludge"
UASB_ACTIVATED_SLUDGE = "UASB Reactor + Activated Sludge"
FACULTATIVE_PONDS = "Facultative Ponds"
PHYSICOCHEMICAL_BIOLOGICAL = "Physicochemical + Biological"
SBR_REACTOR = "SBR Reactor"
MBR_REACTOR = "MBR Reactor"
IMHOFF_TANK_FILTER = "Imhoff Tank + Filter"
COMPACT_ACTIVATED_SLUDGE = "Compact Activated Sludge"


DEFAULT_TECHNOLOGY_CATALOG: Dict[str, List[TechnologyOption]] = {
    "Municipal": [
        TechnologyOption(
            name=CONVENTIONAL_ACTIVATED_SLUDGE,
            stage="primary",
            description="Aerobic biological system with complete-mix reactor",
            pros=("High efficiency", "Proven technology", "Flexible to variations"),
            cons=("High energy consumption", "Requires specialized operator", "Produces biosolids"),
            efficiency=95,
            complexity="medium",
            footprint="large",
            energy="high",
        ),
        TechnologyOption(
            name=UASB_ACTIVATED_SLUDGE,
            stage="primary",
            description="Anaerobic treatment followed by aerobic polishing",
            pros=("Lower energy consumption", "Produces methane", "Lower sludge production"),
            cons=("Temperature sensitive", "Slow startup", "Requires post-treatment"),
            efficiency=90,
            complexity="high",
            footprint="medium",
            energy="medium",
        ),
        TechnologyOption(
            name=FACULTATIVE_PONDS,
            stage="primary",
            description="Natural system of ponds in series",
            pros=("Low operational cost", "Minimal maintenance", "Robust"),
            cons=("Large area requirement", "Climate sensitive", "Lower efficiency"),
            efficiency=80,
            complexity="low",
            footprint="large",
            energy="low",
        ),
    ],
    "Industrial": [
        TechnologyOption(
            name=PHYSICOCHEMICAL_BIOLOGICAL,
            stage="primary",
            description="Coagulation-flocculation followed by biological treatment",
            pros=("Treats wide range of contaminants", "Flexible", "High efficiency"),
            cons=("High chemical costs", "Produces chemical sludge", "Complex operation"),
            efficiency=92,
            complexity="high",
            footprint="medium",
            energy="high",
        ),
        TechnologyOption(
            name=SBR_REACTOR,
            stage="primary",
            description="Sequencing batch reactor",
            pros=("Operationally flexible", "Good nutrient removal", "Compact"),
            cons=("Requires automation", "Complex operation", "High initial investment"),
            efficiency=88,
            complexity="high",
            footprint="small",
            energy="medium",
        ),
    ],
    "Residential": [
        TechnologyOption(
            name=MBR_REACTOR,
            stage="primary",
            description="Biological reactor with submerged membrane",
            pros=("Excellent effluent quality", "Compact", "Suitable for reuse"),
            cons=("High membrane cost", "Fouling issues", "High energy consumption"),
            efficiency=98,
            complexity="high",
            footprint="small",
            energy="high",
        ),
        TechnologyOption(
            name=IMHOFF_TANK_FILTER,
            stage="primary",
            description="Sedimentation and digestion followed by filtration",
            pros=("Simple operation", "Low cost", "Minimal electricity"),
            cons=("Limited efficiency", "Requires area", "Potential odors"),
            efficiency=75,
            complexity="low",
            footprint="medium",
            energy="low",
        ),
    ],
    "Commercial": [
        TechnologyOption(
            name=COMPACT_ACTIVATED_SLUDGE,
            stage="primary",
            description="High-load aerobic system in compact configuration",
            pros=("High efficiency", "Relatively compact", "Stable operation"),
            cons=("High energy consumption", "Requires maintenance", "Produces sludge"),
            efficiency=90,
            complexity="medium",
            footprint="small",
            energy="medium",
        ),
    ],
}


def list_sectors(catalog: Optional[dict] = None) -> list[str]:
    return list((catalog or DEFAULT_TECHNOLOGY_CATALOG).keys())


def normalize_sector(sector: str, catalog: Optional[dict] = None) -> str:
    """Return the catalog's spelling of ``sector`` (case-insensitive match)."""
    sectors = list_sectors(catalog)
    if isinstance(sector, str):
        wanted = sector.strip().lower()
        for name in sectors:
            if name.lower() == wanted:
                return name
    raise UnsupportedSectorError(sector, sectors)


def get_technologies(sector: str, catalog: Optional[dict] = None) -> list[TechnologyOption]:
    catalog = catalog or DEFAULT_TECHNOLOGY_CATALOG
    return list(catalog[normalize_sector(sector, catalog)])


def find_technology(
    sector: str,
    name: str,
    catalog: Optional[dict] = None,
) -> Optional[TechnologyOption]:
    wanted = name.strip().lower()
    for tech in get_technologies(sector, catalog):
        if tech.name.lower() == wanted:
            return tech
    return None
