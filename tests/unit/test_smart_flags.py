"""Unit tests for proposal red-flag prioritization."""

from __future__ import annotations

from proposal_engine.models.schemas import AIMetadata, Proposal, ProvenCase
from proposal_engine.services.smart_flags import FLAG_THRESHOLDS, analyze_proposal


def _ids(flags) -> list[str]:
    return [f.id for f in flags]


def _proposal(capex=1_000_000, cases=None, **metadata) -> Proposal:
    return Proposal(
        capex=capex,
        ai_metadata=AIMetadata(confidence_level="High", proven_cases=cases or [], **metadata),
    )


class TestCriticalFlags:
    def test_non_compliant_low_confidence(self, flagged_proposal):
        flags = analyze_proposal(flagged_proposal)

        assert [f.severity for f in flags[:2]] == ["critical", "critical"]
        assert sum(1 for f in flags if f.severity == "critical") == 2
        assert _ids(flags) == ["compliance-failure", "low-ai-confidence", "no-proven-cases"]
        assert flags[0].actions[0].id == "action-compliance-1"

    def test_no_metadata_means_no_flags(self):
        proposal = {"capex": 10, "treatmentEfficiency": {"overallCompliance": False}}
        assert analyze_proposal(proposal) == []

    def test_unknown_compliance_is_not_a_failure(self):
        proposal = _proposal(cases=[ProvenCase(capex_usd=1_000_000, similarity_score=0.9)])
        assert analyze_proposal(proposal) == []


class TestHighFlags:
    def test_many_assumptions(self):
        assumptions = [f"Assumption {i}" for i in range(6)]
        proposal = _proposal(assumptions=assumptions, cases=[ProvenCase(capex_usd=1_000_000, similarity_score=0.8)])

        flags = analyze_proposal(proposal)
        assert _ids(flags) == ["high-assumptions"]
        assert flags[0].title == "HIGH NUMBER OF DESIGN ASSUMPTIONS (6)"
        assert [a.label for a in flags[0].actions] == ["Verify: Assumption 0", "Verify: Assumption 1", "Verify: Assumption 2"]

    def test_four_assumptions_is_fine(self):
        proposal = _proposal(assumptions=["a", "b", "c", "d"], cases=[ProvenCase(capex_usd=1_000_000, similarity_score=0.8)])
        assert analyze_proposal(proposal) == []

    def test_capex_much_higher_than_cases(self):
        cases = [
            ProvenCase(capex_usd=1_000_000, similarity_score=0.9),
            ProvenCase(capex_usd=1_000_000, similarity_score=0.9),
            ProvenCase(capex_usd=0, similarity_score=0.9),
        ]
        flags = analyze_proposal(_proposal(capex=3_000_000, cases=cases))

        assert _ids(flags) == ["capex-anomaly"]
        assert "SIGNIFICANTLY HIGHER" in flags[0].title
        assert flags[0].message == "Proposal CAPEX is 300% of similar projects average ($1,000,000)."

    def test_capex_unusually_low(self):
        cases = [ProvenCase(capex_usd=2_000_000, similarity_score=0.9)]
        flags = analyze_proposal(_proposal(capex=1_000_000, cases=cases))
        assert "UNUSUALLY LOW" in flags[0].title

    def test_cases_without_capex_skip_ratio(self):
        cases = [ProvenCase(similarity_score=0.9)]
        assert analyze_proposal(_proposal(capex=9_000_000, cases=cases)) == []


class TestMediumFlags:
    def test_low_similarity(self):
        cases = [
            ProvenCase(capex_usd=1_000_000, similarity_score=0.5),
            ProvenCase(capex_usd=1_000_000, similarity_score=0.6),
        ]
        flags = analyze_proposal(_proposal(cases=cases))
        assert _ids(flags) == ["low-similarity"]
        assert flags[0].title == "LOW SIMILARITY TO PROVEN CASES (55% avg)"

    def test_critical_parameters(self, flagged_proposal):
        flagged_proposal["treatmentEfficiency"] = {"criticalParameters": ["TN", "TP"]}
        flags = analyze_proposal(flagged_proposal)

        assert _ids(flags)[-1] == "critical-parameters"
        assert "2 critical parameters require special attention: TN, TP" == flags[-1].message


class TestOrdering:
    def test_severity_order(self):
        proposal = {
            "capex": 5_000_000,
            "treatmentEfficiency": {"overallCompliance": False, "criticalParameters": ["TSS"]},
            "aiMetadata": {
                "confidenceLevel": "Medium",
                "assumptions": ["a", "b", "c", "d", "e"],
                "provenCases": [{"capexUsd": 1_000_000, "similarityScore": 0.4}],
            },
        }
        flags = analyze_proposal(proposal)

        assert _ids(flags) == [
            "compliance-failure",
            "high-assumptions",
            "capex-anomaly",
            "low-similarity",
            "critical-parameters",
        ]

    def test_custom_thresholds(self):
        thresholds = {**FLAG_THRESHOLDS, "maxAssumptions": 2}
        proposal = _proposal(assumptions=["a", "b"], cases=[ProvenCase(capex_usd=1_000_000, similarity_score=0.8)])
        assert _ids(analyze_proposal(proposal, thresholds)) == ["high-assumptions"]
