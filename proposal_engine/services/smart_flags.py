"""
Red-flag audit of a generated proposal.

Flags are ordered critical -> high -> medium; within a severity they keep
the order in which the checks run.
"""

import logging
from typing import Optional, Union

from proposal_engine.models.schemas import FlagAction, Proposal, SmartFlag

logger = logging.getLogger(__name__)


FLAG_THRESHOLDS: dict = {
    "maxAssumptions": 5,
    "assumptionActionsShown": 3,
    "capexHighRatio": 1.5,
    "capexLowRatio": 0.6,
    "minMeanSimilarity": 0.7,
}

SEVERITY_ORDER = {"critical": 0, "high": 1, "medium": 2}


def _actions(prefix: str, labels: list[str]) -> list[FlagAction]:
    return [FlagAction(id=f"action-{prefix}-{i}", label=label) for i, label in enumerate(labels, start=1)]


def _compliance_flag() -> SmartFlag:
    return SmartFlag(
        id="compliance-failure",
        severity="critical",
        title="COMPLIANCE FAILURE - Design Does Not Meet Regulatory Requirements",
        message="The proposed design does not achieve compliance with regulatory discharge limits.",
        impact=[
            "Project cannot proceed without modifications",
            "Client may face regulatory penalties",
            "Reputation risk for engineering firm",
        ],
        actions=_actions("compliance", [
            "Review Compliance Summary section and identify failing parameters",
            "Verify regulatory limits with local authority",
            "Regenerate proposal with stricter treatment requirements",
        ]),
    )


def _low_confidence_flag() -> SmartFlag:
    return SmartFlag(
        id="low-ai-confidence",
        severity="critical",
        title="LOW AI CONFIDENCE - Engineering Validation Strongly Recommended",
        message="AI has low confidence in this proposal. Manual engineering review is required.",
        impact=[
            "Design may underperform or fail to meet objectives",
            "Cost estimates may be inaccurate",
            "Timeline estimates may be unrealistic",
        ],
        actions=_actions("confidence", [
            "Review all assumptions and verify with actual data",
            "Consult with senior engineer or specialist",
            "Request vendor quotes to validate equipment specifications",
        ]),
    )


def _assumptions_flag(assumptions: list[str], shown: int) -> SmartFlag:
    return SmartFlag(
        id="high-assumptions",
        severity="high",
        title=f"HIGH NUMBER OF DESIGN ASSUMPTIONS ({len(assumptions)})",
        message=(
            "This proposal relies on multiple assumptions due to missing data. "
            "Verify carefully before presenting to client."
        ),
        impact=[
            "Design accuracy depends on assumption validity",
            "Client may reject proposal if assumptions are incorrect",
            "May require redesign after actual data collection",
        ],
        actions=[
            FlagAction(id=f"action-assumption-{i}", label=f"Verify: {assumption}")
            for i, assumption in enumerate(assumptions[:shown])
        ],
    )


def _capex_flag(ratio: float, average: float, high_ratio: float) -> SmartFlag:
    too_high = ratio > high_ratio
    return SmartFlag(
        id="capex-anomaly",
        severity="high",
        title=f"CAPEX {'SIGNIFICANTLY HIGHER' if too_high else 'UNUSUALLY LOW'} vs Similar Projects",
        message=f"Proposal CAPEX is {round(ratio * 100)}% of similar projects average (${round(average):,}).",
        impact=[
            "Client may reject proposal as too expensive"
            if too_high else "All equipment and installation costs may not be included",
            "Budget estimates may need revision",
            "Competitive disadvantage in bidding process",
        ],
        actions=_actions("capex", [
            "Review cost breakdown in Economics section",
            "Verify equipment costs with vendors",
            "Check if all civil works and installation costs are included",
        ]),
    )


def _no_cases_flag() -> SmartFlag:
    return SmartFlag(
        id="no-proven-cases",
        severity="medium",
        title="NO PROVEN CASES CONSULTED",
        message="AI did not find similar projects for reference. Design may be based on extrapolation.",
        impact=[
            "Technical approach may not be proven for this specific application",
            "Higher risk of design issues during implementation",
        ],
        actions=_actions("proven", [
            "Consult technical literature for similar applications",
            "Request vendor references for proposed equipment",
        ]),
    )


def _similarity_flag(mean_similarity: float) -> SmartFlag:
    return SmartFlag(
        id="low-similarity",
        severity="medium",
        title=f"LOW SIMILARITY TO PROVEN CASES ({round(mean_similarity * 100)}% avg)",
        message="This project has unique characteristics not well-represented in proven cases.",
        impact=[
            "Design recommendations may not be optimal for this specific case",
            "Consider consulting domain experts for validation",
        ],
        actions=_actions("similarity", [
            "Review proven cases in References tab",
            "Identify key differences and assess impact on design",
        ]),
    )


def _critical_parameters_flag(parameters: list[str]) -> SmartFlag:
    plural = "s" if len(parameters) > 1 else ""
    return SmartFlag(
        id="critical-parameters",
        severity="medium",
        title=f"CRITICAL PARAMETERS FLAGGED ({len(parameters)})",
        message=(
            f"{len(parameters)} critical parameter{plural} require special attention: "
            f"{', '.join(parameters)}"
        ),
        impact=["Effluent may exceed discharge limits for these parameters"],
        actions=_actions("critical-parameters", [
            "Verify treatment performance for these parameters meets discharge limits",
        ]),
    )


def analyze_proposal(proposal: Union[Proposal, dict], thresholds: Optional[dict] = None) -> list[SmartFlag]:
    thresholds = thresholds or FLAG_THRESHOLDS
    if not isinstance(proposal, Proposal):
        proposal = Proposal.model_validate(proposal)

    metadata = proposal.ai_metadata
    if metadata is None:
        return []

    efficiency = proposal.treatment_efficiency
    flags: list[SmartFlag] = []

    if efficiency is not None and efficiency.overall_compliance is False:
        flags.append(_compliance_flag())

    if metadata.confidence_level == "Low":
        flags.append(_low_confidence_flag())

    if len(metadata.assumptions) >= thresholds["maxAssumptions"]:
        flags.append(_assumptions_flag(metadata.assumptions, thresholds["assumptionActionsShown"]))

    cases = metadata.proven_cases
    priced = [c.capex_usd for c in cases if c.capex_usd and c.capex_usd > 0]
    if priced and proposal.capex is not None:
        average = sum(priced) / len(priced)
        ratio = proposal.capex / average
        if ratio > thresholds["capexHighRatio"] or ratio < thresholds["capexLowRatio"]:
            flags.append(_capex_flag(ratio, average, thresholds["capexHighRatio"]))

    if not cases:
        flags.append(_no_cases_flag())
    else:
        mean_similarity = sum(c.similarity_score or 0 for c in cases) / len(cases)
        if mean_similarity < thresholds["minMeanSimilarity"]:
            flags.append(_similarity_flag(mean_similarity))

    if efficiency is not None and efficiency.critical_parameters:
        flags.append(_critical_parameters_flag(efficiency.critical_parameters))

    flags.sort(key=lambda f: SEVERITY_ORDER[f.severity])
    logger.info(
        "Smart flags: %d raised (%s)",
        len(flags), ", ".join(f.id for f in flags) or "none",
    )
    return flags
