"""Unit tests for smart import field detection, mapping rules and preview."""

from __future__ import annotations

import time

import pytest

from proposal_engine.services.smart_import import (
    analyze_file,
    convert_units,
    create_import_preview,
    detect_value_type,
    find_best_pattern_match,
    generate_mapping_rules,
    get_conflict_recommendation,
    get_file_type,
    is_valid_parameter,
    split_value_unit,
)


def _field(analysis, name: str):
    matches = [f for f in analysis.detected_fields if f.original_name == name]
    assert matches, f"{name!r} not detected in {[f.original_name for f in analysis.detected_fields]}"
    return matches[0]


class TestValueHelpers:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (True, "boolean"),
            ("false", "boolean"),
            ("7.2", "number"),
            ("250 mg/L", "number"),
            (12, "number"),
            ("2024-03-15", "date"),
            ("Activated sludge", "text"),
        ],
    )
    def test_detect_value_type(self, value, expected):
        assert detect_value_type(value) == expected

    def test_split_value_unit(self):
        assert split_value_unit("500 m3/d") == ("500", "m3/d")
        assert split_value_unit("25 °C") == ("25", "°C")
        assert split_value_unit("Sequencing batch") == ("Sequencing batch", None)

    def test_parameter_filter(self):
        assert is_valid_parameter("pH", "7.2")
        assert not is_valid_parameter("Q", "5")
        assert not is_valid_parameter("Flow", "")
        assert not is_valid_parameter("Flow", None)
        assert not is_valid_parameter("Flow", "200000")
        assert not is_valid_parameter("Flow", -1)
        assert not is_valid_parameter("Flow " * 30, "5")

    def test_file_types(self):
        assert get_file_type("report.PDF") == "PDF"
        assert get_file_type("data.xlsx") == "Excel"
        assert get_file_type("rows.csv") == "CSV"
        assert get_file_type("notes") == "Unknown"


class TestTextAnalysis:
    def test_single_ph_line(self):
        analysis = analyze_file("lab.txt", "pH: 7.2")

        assert analysis.total_fields == 1
        field = analysis.detected_fields[0]
        assert field.detected_type == "number"
        assert field.value == 7.2
        assert field.suggested_mapping == "water-quality.ph"
        assert field.confidence >= 90

    def test_lab_report(self, lab_report_text):
        analysis = analyze_file("lab.txt", lab_report_text)

        flow = _field(analysis, "Design flow")
        assert flow.value == 5184
        assert flow.unit == "m3/d"
        assert flow.suggested_mapping == "general-data.design-flow"

        bod = _field(analysis, "BOD5")
        assert bod.suggested_mapping == "water-quality.bod5"
        assert bod.unit == "mg/L"

        cod = _field(analysis, "COD")
        assert cod.value == 480
        assert cod.suggested_mapping == "water-quality.cod"

        assert _field(analysis, "Temperature").unit == "°F"
        assert analysis.file_type == "Text"

    def test_unmatched_field_keeps_base_confidence(self):
        analysis = analyze_file("notes.txt", "Operator shift: 3")
        field = _field(analysis, "Operator shift")
        assert field.suggested_mapping is None
        assert field.confidence == 70

    def test_default_unit_is_inferred(self):
        field = analyze_file("lab.txt", "BOD: 220").detected_fields[0]
        assert field.unit == "mg/L"

    def test_out_of_range_values_are_dropped(self):
        assert analyze_file("lab.txt", "Flow: 250000 L/s").total_fields == 0

    def test_empty_content(self):
        analysis = analyze_file("empty.txt", "")
        assert analysis.total_fields == 0
        assert analysis.confidence == 0
        assert analysis.suggestions

    def test_unsupported_content_does_not_raise(self):
        analysis = analyze_file("blob.bin", 42)
        assert analysis.total_fields == 0
        assert any("Unsupported content" in w for w in analysis.warnings)

    def test_idempotent(self, lab_report_text):
        first = analyze_file("lab.txt", lab_report_text)
        second = analyze_file("lab.txt", lab_report_text)
        assert first.model_dump() == second.model_dump()


class TestLongLines:
    def test_prose_without_numbers_scans_quickly(self):
        started = time.perf_counter()
        analysis = analyze_file("notes.txt", "a " * 20_000)

        assert time.perf_counter() - started < 2
        assert analysis.total_fields == 0

    def test_long_key_before_separator_is_dropped(self):
        started = time.perf_counter()
        analysis = analyze_file("notes.txt", "word " * 10_000 + ": 5")

        assert time.perf_counter() - started < 2
        assert analysis.total_fields == 0

    def test_value_after_long_paragraph_is_found(self):
        text = "Influent sampled on site. " * 2_000 + "COD 480 mg/L"
        started = time.perf_counter()
        analysis = analyze_file("report.pdf", text)

        assert time.perf_counter() - started < 2
        cod = _field(analysis, "COD")
        assert cod.value == 480
        assert cod.unit == "mg/L"


class TestStructuredAnalysis:
    def test_nested_dict_is_flattened(self):
        analysis = analyze_file("data.json", {"influent": {"bod": 240, "tss": "210 mg/L"}, "population": 12000})

        bod = _field(analysis, "influent.bod")
        assert bod.confidence == 90
        assert bod.suggested_mapping == "water-quality.bod5"
        assert _field(analysis, "influent.tss").unit == "mg/L"
        assert _field(analysis, "population").suggested_mapping == "general-data.population-served"

    def test_rows_use_indexed_keys(self):
        analysis = analyze_file("rows.csv", [{"flow": "12 L/s"}, {"flow": "15 L/s"}])
        assert {f.original_name for f in analysis.detected_fields} == {"0.flow", "1.flow"}

    def test_unmatched_structured_field_has_base_confidence(self):
        field = analyze_file("data.json", {"site_name": "North plant"}).detected_fields[0]
        assert field.detected_type == "text"
        assert field.confidence == 80


class TestPatternTieBreaking:
    def test_equal_confidence_records_ambiguity(self):
        analysis = analyze_file("lab.txt", "BOD/COD ratio: 0.5")

        field = _field(analysis, "BOD/COD ratio")
        assert field.suggested_mapping == "water-quality.bod5"
        assert field.alternative_mappings == ["water-quality.cod"]
        assert len(analysis.ambiguities) == 1
        assert analysis.ambiguities[0].candidates == ["water-quality.bod5", "water-quality.cod"]
        assert any("confirm manually" in w for w in analysis.warnings)

    def test_longest_match_wins_on_equal_confidence(self):
        match = find_best_pattern_match("Turbidity flow")
        assert match["entry"]["targetField"] == "turbidity"
        assert match["alternatives"] == ["general-data.design-flow"]

    def test_higher_confidence_wins_outright(self):
        match = find_best_pattern_match("pH temperature")
        assert match["key"] == "ph"
        assert match["alternatives"] == []

    def test_biochemical_is_not_cod(self):
        match = find_best_pattern_match("Biochemical oxygen demand")
        assert match["key"] == "bod"
        assert match["alternatives"] == []


class TestMappingRules:
    def test_sorted_by_confidence(self):
        analysis = analyze_file("lab.txt", "Temperature: 25 °C\npH: 7\nFlow: 10 L/s\n")
        rules = generate_mapping_rules(analysis)
        assert [r.target_field_id for r in rules] == ["ph", "design-flow", "temperature"]
        assert all(r.transformation is None for r in rules)

    def test_unexpected_unit_requires_conversion(self):
        rules = generate_mapping_rules(analyze_file("lab.txt", "Flow: 300 gpm"))
        assert rules[0].transformation == "unit_conversion"

    def test_unmapped_fields_have_no_rule(self):
        assert generate_mapping_rules(analyze_file("notes.txt", "Operator shift: 3")) == []


class TestImportPreview:
    def test_known_unit_conversions(self, lab_report_text):
        preview = create_import_preview(analyze_file("lab.txt", lab_report_text), {})

        assert preview.preview_data["general-data.design-flow"] == pytest.approx(60.0)
        assert preview.preview_data["water-quality.temperature"] == pytest.approx(25.0)
        assert preview.preview_data["water-quality.ph"] == 7.2
        assert preview.conflicts == []

    def test_unknown_conversion_passes_through(self):
        preview = create_import_preview(analyze_file("lab.txt", "Flow: 300 gpm"), {})
        assert preview.preview_data["general-data.design-flow"] == 300

    def test_convert_units(self):
        assert convert_units(120, "L/min", "general-data.design-flow") == 2
        assert convert_units(36, "m³/h", "general-data.design-flow") == pytest.approx(10)
        assert convert_units(212, "°F", "water-quality.temperature") == pytest.approx(100)
        assert convert_units("n/a", "°F", "water-quality.temperature") == "n/a"

    def test_highest_confidence_rule_wins_target(self):
        analysis = analyze_file("data.json", {"bod": 240, "dbo5": 260})
        preview = create_import_preview(analysis, {})
        assert preview.preview_data["water-quality.bod5"] == 240

    def test_conflicts(self):
        analysis = analyze_file("lab.txt", "pH: 7.2\nTSS: 210\nTurbidity: 5 NTU\n")
        existing = {
            "water-quality.ph": 7.0,
            "water-quality.tss": 200,
            "water-quality.turbidity": 5,
        }
        preview = create_import_preview(analysis, existing)

        by_field = {c.field: c for c in preview.conflicts}
        assert by_field["ph"].recommendation == "use_new"
        assert by_field["tss"].recommendation == "merge"
        assert "turbidity" not in by_field

    def test_empty_existing_values_are_not_conflicts(self):
        preview = create_import_preview(analyze_file("lab.txt", "pH: 7.2"), {"water-quality.ph": ""})
        assert preview.conflicts == []


class TestConflictRecommendation:
    def test_order_of_rules(self):
        assert get_conflict_recommendation(100, 300, confidence=90) == "use_new"
        assert get_conflict_recommendation(100, 105, confidence=85) == "merge"
        assert get_conflict_recommendation(100, 150, confidence=85) == "keep_existing"
        assert get_conflict_recommendation("basin", "tank", confidence=70) == "keep_existing"
