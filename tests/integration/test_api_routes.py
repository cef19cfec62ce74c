"""End-to-end tests of the HTTP API through the FastAPI test client."""

from __future__ import annotations


class TestCatalogRoutes:
    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_sectors(self, client):
        assert client.get("/api/sectors").json() == {
            "sectors": ["Municipal", "Industrial", "Residential", "Commercial"],
        }

    def test_technologies_are_camel_cased_lists(self, client):
        body = client.get("/api/technologies/municipal").json()
        assert len(body) == 3
        assert body[0]["name"] == "Conventional Activated Sludge"
        assert isinstance(body[0]["pros"], list)

    def test_unknown_sector_is_404(self, client):
        assert client.get("/api/technologies/mining").status_code == 404


class TestCostRoutes:
    def test_capex(self, client):
        response = client.post(
            "/api/costs/capex",
            json={"flow": 1000, "sector": "Municipal", "technologies": ["Conventional Activated Sludge"]},
        )
        assert response.status_code == 200
        assert response.json()["total"] == 3_036_000

    def test_opex(self, client):
        response = client.post(
            "/api/costs/opex",
            json={"flow": 1000, "sector": "Municipal", "technologies": ["Conventional Activated Sludge"]},
        )
        assert response.json()["total"] == 270_100

    def test_zero_flow_is_400(self, client):
        response = client.post("/api/costs/capex", json={"flow": 0, "sector": "Municipal", "technologies": []})
        assert response.status_code == 400
        assert "greater than 0" in response.json()["detail"]

    def test_unknown_technology_is_400(self, client):
        response = client.post(
            "/api/costs/capex", json={"flow": 10, "sector": "Municipal", "technologies": ["Rotating drum"]},
        )
        assert response.status_code == 400

    def test_unknown_sector_is_400(self, client):
        response = client.post("/api/costs/opex", json={"flow": 10, "sector": "Mining", "technologies": []})
        assert response.status_code == 400
        assert "Unsupported sector" in response.json()["detail"]


class TestSelectionAndProposalRoutes:
    def test_select_accepts_camel_case(self, client):
        response = client.post(
            "/api/technologies/select",
            json={"sector": "Industrial", "designFlow": 500, "organicLoad": 900},
        )
        body = response.json()
        assert body["selectedTechnologies"][0]["name"] == "Physicochemical + Biological"
        assert any("High BOD" in line for line in body["reasoning"])

    def test_generate_proposal(self, client):
        response = client.post(
            "/api/proposals/generate",
            json={"sector": "Municipal", "technicalData": {"designFlow": 2000, "population": 80000, "dbo": 250}},
        )
        body = response.json()
        assert response.status_code == 200
        assert body["selectedTechnologies"][0]["name"] == "Conventional Activated Sludge"
        assert body["performanceTargets"][0]["parameter"] == "BOD5"
        assert body["diagrams"]["flowDiagram"].startswith("Raw Wastewater")
        assert not [key for key in body if "_" in key]

    def test_generate_proposal_bad_flow(self, client):
        response = client.post(
            "/api/proposals/generate", json={"sector": "Municipal", "technicalData": {"designFlow": "lots"}},
        )
        assert response.status_code == 400

    def test_generation_steps(self, client):
        steps = client.get("/api/proposals/steps").json()
        assert [s["id"] for s in steps][0] == "analysis"

    def test_flags(self, client, flagged_proposal):
        flags = client.post("/api/proposals/flags", json=flagged_proposal).json()
        assert [f["severity"] for f in flags[:2]] == ["critical", "critical"]
        assert flags[0]["actions"][0]["completed"] is False


class TestImportRoutes:
    def test_analyze_then_preview(self, client):
        analysis = client.post("/api/import/analyze", json={"fileName": "lab.txt", "content": "pH: 7.2"}).json()
        assert analysis["detectedFields"][0]["suggestedMapping"] == "water-quality.ph"
        assert analysis["totalFields"] == 1

        preview = client.post(
            "/api/import/preview",
            json={"analysis": analysis, "existingData": {"water-quality.ph": 6.8}},
        ).json()
        assert preview["previewData"] == {"water-quality.ph": 7.2}
        assert preview["conflicts"][0]["recommendation"] == "use_new"
        assert preview["mappingRules"][0]["targetFieldId"] == "ph"

    def test_analyze_structured_content(self, client):
        body = client.post(
            "/api/import/analyze", json={"fileName": "data.json", "content": {"influent": {"bod": 240}}},
        ).json()
        assert body["detectedFields"][0]["originalName"] == "influent.bod"

    def test_upload_csv(self, client):
        response = client.post(
            "/api/import/upload",
            files={"file": ("lab.csv", b"Parameter,Value,Unit\nBOD,250,mg/L\npH,7.2,\n", "text/csv")},
        )
        body = response.json()
        assert response.status_code == 200
        assert body["fileType"] == "CSV"
        assert {f["suggestedMapping"] for f in body["detectedFields"]} == {"water-quality.bod5", "water-quality.ph"}

    def test_upload_without_content_is_400(self, client):
        response = client.post("/api/import/upload", files={"file": ("empty.txt", b"   ", "text/plain")})
        assert response.status_code == 400


class TestValidationRoutes:
    def test_field(self, client):
        response = client.post(
            "/api/validation/field",
            json={"fieldId": "design-flow", "value": 50000, "context": {"sector": "Residential"}},
        )
        body = response.json()
        assert body["level"] == "warning"
        assert body["isValid"] is False

    def test_field_unknown_sector(self, client):
        response = client.post(
            "/api/validation/field", json={"fieldId": "bod", "value": 200, "context": {"sector": "Mining"}},
        )
        assert response.status_code == 400

    def test_consistency(self, client):
        response = client.post(
            "/api/validation/consistency",
            json={"data": {"bod": 300, "cod": 200}, "context": {"sector": "Municipal"}},
        )
        assert response.json()[0]["level"] == "error"

    def test_dataset(self, client):
        body = client.post(
            "/api/validation/dataset",
            json={"data": {"dbo": 300, "dqo": 200}, "context": {"sector": "Municipal"}},
        ).json()
        assert body["hasBlockingErrors"] is True
        assert any(r["field"] == "bod" for r in body["results"])
        assert body["suggestions"]
