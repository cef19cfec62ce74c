"""Pytest configuration and fixtures for proposal engine tests."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from proposal_engine.config import ReferenceData, load_reference_data
from proposal_engine.models.schemas import TechnologyOption
from proposal_engine.services.technology_catalog import CONVENTIONAL_ACTIVATED_SLUDGE, find_technology


@pytest.fixture
def reference() -> ReferenceData:
    """Built-in reference data, independent of PROPOSAL_ENGINE_REFERENCE_FILE."""
    return load_reference_data(None)


@pytest.fixture
def activated_sludge() -> TechnologyOption:
    return find_technology("Municipal", CONVENTIONAL_ACTIVATED_SLUDGE)


@pytest.fixture
def lab_report_text() -> str:
    return (
        "Laboratory report - influent sampling\n"
        "Design flow: 5184 m3/d\n"
        "pH: 7.2\n"
        "BOD5: 250 mg/L\n"
        "COD 480 mg/L\n"
        "Temperature: 77 °F\n"
    )


@pytest.fixture
def flagged_proposal() -> dict:
    """Proposal payload as the dashboard sends it (camelCase)."""
    return {
        "id": "prop-1",
        "capex": 1_500_000,
        "opex": 120_000,
        "treatmentEfficiency": {"overallCompliance": False, "criticalParameters": []},
        "aiMetadata": {
            "confidenceLevel": "Low",
            "assumptions": ["Flow from census data"],
            "provenCases": [],
        },
    }


@pytest.fixture
def client():
    from proposal_engine.main import app

    with TestClient(app) as test_client:
        yield test_client
