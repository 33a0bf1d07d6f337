"""
Tests for coverage catalog loading and resolution.
"""

import json

import pytest

from pa_engine.config.settings import Settings
from pa_engine.evaluation.coverage_lookup import CoverageCatalog, load_coverage_catalog, resolve_coverage
from pa_engine.evaluation.exceptions import ConfigurationError, CoverageNotFoundError, MalformedCriterionError
from pa_engine.models.enums import CriterionType, DosePhase

from conftest import AETNA


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------

class TestResolveCoverage:
    def test_match_ignores_case_and_whitespace(self, catalog):
        record = resolve_coverage(catalog, "  cvs   health (AETNA) ", "wegovy ")
        assert record.drug_name == "Wegovy"
        assert record.insurance_plan == AETNA

    def test_unknown_pair_raises(self, catalog):
        with pytest.raises(CoverageNotFoundError) as exc:
            catalog.resolve(AETNA, "Trulicity")
        assert exc.value.plan == AETNA
        assert exc.value.drug == "Trulicity"

    def test_coverage_not_found_is_configuration_error(self, catalog):
        with pytest.raises(ConfigurationError):
            catalog.resolve("Unknown Plan", "Wegovy")

    def test_bundled_wegovy_record(self, wegovy):
        assert [s.dose for s in wegovy.dose_schedule] == ["0.25 mg", "0.5 mg", "1 mg", "1.7 mg", "2.4 mg"]
        assert len(wegovy.criteria) == 8
        assert wegovy.criteria[0].type == CriterionType.AGE
        assert wegovy.criteria[0].min_age == 18

    def test_maintenance_criterion_is_never_required(self, wegovy):
        maintenance = next(c for c in wegovy.criteria if c.type == CriterionType.MAINTENANCE)
        assert maintenance.required is False
        assert maintenance.phases == frozenset({DosePhase.MAINTENANCE})


# ---------------------------------------------------------------------------
# Indication overrides
# ---------------------------------------------------------------------------

class TestIndicationOverrides:
    def test_medicare_weight_loss_not_covered(self, catalog):
        record = catalog.resolve("Medicare", "Ozempic", indication="weight_loss")
        assert record.covered is False
        assert "Medicare" in record.note

    def test_medicare_diabetes_covered(self, catalog):
        record = catalog.resolve("Medicare", "Ozempic", indication="type 2 diabetes")
        assert record.covered is True

    def test_no_indication_uses_base_record(self, catalog):
        assert catalog.resolve("Medicare", "Mounjaro").covered is True

    def test_override_replaces_only_set_fields(self, catalog):
        base = catalog.resolve(AETNA, "Ozempic")
        overridden = catalog.resolve(AETNA, "Ozempic", indication="Weight Management")
        assert overridden.note != base.note
        assert overridden.covered is True
        assert overridden.criteria == base.criteria


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

class TestCatalogLoading:
    def test_malformed_criterion_raises(self):
        data = {"Plan": {"Drug": {"criteria": [
            {"type": "bmi", "minBMI": 30, "comorbidityBMIFloor": 32},
        ]}}}
        with pytest.raises(MalformedCriterionError):
            CoverageCatalog.from_mapping(data)

    def test_threshold_out_of_range_raises(self):
        data = {"Plan": {"Drug": {"criteria": [{"type": "weightLoss", "thresholdPercent": 150}]}}}
        with pytest.raises(MalformedCriterionError):
            CoverageCatalog.from_mapping(data)

    def test_unknown_criterion_type_is_kept(self):
        catalog = CoverageCatalog.from_mapping({"Plan": {"Drug": {"criteria": [{"type": "renalFunction"}]}}})
        spec = catalog.resolve("Plan", "Drug").criteria[0]
        assert spec.type == "renalFunction"
        assert spec.is_supported_type is False

    def test_plans_and_drugs_enumerated(self, catalog):
        assert AETNA in catalog.plans()
        assert "Medicare" in catalog.plans()
        assert set(catalog.drugs_for_plan("medicare")) == {"Wegovy", "Zepbound", "Trulicity", "Ozempic", "Mounjaro"}

    def test_from_json_file(self, tmp_path):
        path = tmp_path / "coverage.json"
        path.write_text(json.dumps({"Plan A": {"Drug X": {"tier": "Tier 1", "criteria": [{"type": "age", "minAge": 21}]}}}))
        catalog = CoverageCatalog.from_json_file(str(path))
        assert catalog.resolve("plan a", "drug x").criteria[0].min_age == 21

    def test_missing_file_is_configuration_error(self, tmp_path):
        with pytest.raises(ConfigurationError):
            CoverageCatalog.from_json_file(str(tmp_path / "missing.json"))

    def test_settings_path_overrides_bundled_catalog(self, tmp_path):
        path = tmp_path / "coverage.json"
        path.write_text(json.dumps({"Only Plan": {"Only Drug": {}}}))
        catalog = load_coverage_catalog(Settings(_env_file=None, coverage_config_path=str(path)))
        assert catalog.plans() == ["Only Plan"]
        assert len(catalog) == 1

    def test_bundled_catalog_by_default(self, settings):
        assert AETNA in load_coverage_catalog(settings).plans()
