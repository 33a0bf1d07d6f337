"""
Tests for the criterion evaluator registry and per-type rules.
"""

import pytest

from pa_engine.evaluation.evaluator import (
    EVALUATOR_REGISTRY, DrugContext, evaluate, evaluate_all, find_comorbidities,
)
from pa_engine.models.coverage import CriterionSpec
from pa_engine.models.enums import CriterionStatus, CriterionType, DosePhase
from pa_engine.models.patient import Measurement, Vitals

from conftest import AS_OF, history_entry, make_patient


def _ctx(coverage=None, dose=None, **kwargs) -> DrugContext:
    kwargs.setdefault("drug_name", "Wegovy")
    kwargs.setdefault("generic_name", "semaglutide")
    return DrugContext(coverage=coverage, selected_dose=dose, as_of=AS_OF, **kwargs)


def _spec(criterion_type, **params) -> CriterionSpec:
    return CriterionSpec(type=criterion_type, **params)


BMI_WITH_FLOOR = dict(min_bmi=30, comorbidity_bmi_floor=27)


# ---------------------------------------------------------------------------
# Registry and dispatch
# ---------------------------------------------------------------------------

class TestDispatch:
    def test_every_criterion_type_has_an_evaluator(self):
        assert set(EVALUATOR_REGISTRY) == set(CriterionType)

    def test_unknown_type_is_not_applicable(self):
        result = evaluate(make_patient(), _spec("renalFunction", rule="eGFR above 30"), _ctx())
        assert result.status == CriterionStatus.NOT_APPLICABLE
        assert "renalFunction" in result.reason
        assert result.criterion_type == "renalFunction"

    def test_evaluator_crash_does_not_abort_batch(self, monkeypatch):
        def boom(spec, patient, context):
            raise RuntimeError("bad data")

        monkeypatch.setitem(EVALUATOR_REGISTRY, CriterionType.AGE, boom)
        results = evaluate_all(
            make_patient(),
            [_spec("age", min_age=18), _spec("bmi", min_bmi=30)],
            _ctx(),
        )
        assert results[0].status == CriterionStatus.NOT_APPLICABLE
        assert results[0].reason == "Evaluation error: RuntimeError"
        assert results[1].status == CriterionStatus.MET

    def test_evaluation_is_idempotent(self, wegovy):
        patient = make_patient(has_weight_program=True)
        context = _ctx(wegovy, "0.25 mg", phase=DosePhase.STARTING)
        first = evaluate_all(patient, wegovy.criteria, context)
        second = evaluate_all(patient, wegovy.criteria, context)
        assert first == second


# ---------------------------------------------------------------------------
# Age
# ---------------------------------------------------------------------------

class TestAge:
    def test_adult_meets(self):
        result = evaluate(make_patient(age=18), _spec("age", min_age=18), _ctx())
        assert result.status == CriterionStatus.MET
        assert result.display_value == "18 years"

    def test_minor_fails_and_is_required(self):
        result = evaluate(make_patient(age=16), _spec("age", min_age=18), _ctx())
        assert result.status == CriterionStatus.NOT_MET
        assert result.required is True
        assert result.value == 16

    def test_missing_age_is_warning(self):
        result = evaluate(make_patient(age=None), _spec("age", min_age=18), _ctx())
        assert result.status == CriterionStatus.WARNING


# ---------------------------------------------------------------------------
# BMI
# ---------------------------------------------------------------------------

class TestBmi:
    def test_bmi_above_minimum_meets(self):
        result = evaluate(make_patient(bmi=31.2), _spec("bmi", **BMI_WITH_FLOOR), _ctx())
        assert result.status == CriterionStatus.MET

    def test_floor_band_with_diabetes_meets(self):
        patient = make_patient(bmi=28, diagnoses=["Type 2 Diabetes Mellitus"])
        result = evaluate(patient, _spec("bmi", **BMI_WITH_FLOOR), _ctx())
        assert result.status == CriterionStatus.MET
        assert "type 2 diabetes" in result.reason

    def test_floor_band_without_comorbidity_fails(self):
        patient = make_patient(bmi=28, diagnoses=["Seasonal allergies"])
        result = evaluate(patient, _spec("bmi", **BMI_WITH_FLOOR), _ctx())
        assert result.status == CriterionStatus.NOT_MET

    def test_below_floor_fails_even_with_comorbidity(self):
        patient = make_patient(bmi=25, diagnoses=["Hypertension"])
        result = evaluate(patient, _spec("bmi", **BMI_WITH_FLOOR), _ctx())
        assert result.status == CriterionStatus.NOT_MET

    def test_no_floor_means_no_comorbidity_pathway(self):
        patient = make_patient(bmi=28, diagnoses=["Hypertension"])
        result = evaluate(patient, _spec("bmi", min_bmi=30), _ctx())
        assert result.status == CriterionStatus.NOT_MET

    def test_bmi_computed_from_height_and_weight(self):
        patient = make_patient(bmi=None).model_copy(update={
            "vitals": Vitals(
                height=Measurement(value=170, unit="cm"),
                weight=Measurement(value=95, unit="kg"),
            )
        })
        result = evaluate(patient, _spec("bmi", min_bmi=30), _ctx())
        assert result.status == CriterionStatus.MET
        assert result.value == 32.9

    def test_missing_bmi_is_warning(self):
        result = evaluate(make_patient(bmi=None), _spec("bmi", min_bmi=30), _ctx())
        assert result.status == CriterionStatus.WARNING


# ---------------------------------------------------------------------------
# Comorbidity
# ---------------------------------------------------------------------------

class TestComorbidity:
    def test_icd_code_matches(self):
        assert find_comorbidities(["E11.9"]) == ["type 2 diabetes"]

    def test_distinct_conditions_counted_once(self):
        found = find_comorbidities(["Essential hypertension", "HTN", "Hyperlipidemia"])
        assert found == ["hypertension", "dyslipidemia"]

    def test_alias_requires_word_boundary(self):
        assert find_comorbidities(["Rosacea"]) == []

    @pytest.mark.parametrize("diagnosis", [
        "Central sleep apnea",
        "Sleep apnea, unspecified",
        "Pulmonary hypertension (I27.0)",
        "Portal hypertension",
    ])
    def test_unrelated_conditions_do_not_qualify(self, diagnosis):
        assert find_comorbidities([diagnosis]) == []

    def test_obstructive_sleep_apnea_by_name_or_code(self):
        assert find_comorbidities(["OSA on CPAP"]) == ["obstructive sleep apnea"]
        assert find_comorbidities(["G47.33"]) == ["obstructive sleep apnea"]

    def test_essential_hypertension_still_counts_beside_pulmonary(self):
        found = find_comorbidities(["Pulmonary hypertension", "Essential hypertension (I10)"])
        assert found == ["hypertension"]

    def test_bmi_floor_not_met_by_pulmonary_hypertension(self):
        patient = make_patient(bmi=28.0, diagnoses=["Pulmonary hypertension"])
        spec = _spec("bmi", min_bmi=30, comorbidity_bmi_floor=27)
        assert evaluate(patient, spec, _ctx()).status == CriterionStatus.NOT_MET

    def test_min_count_met(self):
        patient = make_patient(diagnoses=["Hypertension", "Obstructive sleep apnea"])
        result = evaluate(patient, _spec("comorbidity", min_count=2), _ctx())
        assert result.status == CriterionStatus.MET
        assert result.value == 2

    def test_min_count_not_met(self):
        patient = make_patient(diagnoses=["Hypertension"])
        result = evaluate(patient, _spec("comorbidity", min_count=2), _ctx())
        assert result.status == CriterionStatus.NOT_MET

    def test_restricted_condition_list(self):
        patient = make_patient(diagnoses=["Hypertension"])
        spec = _spec("comorbidity", qualifying_conditions=["type 2 diabetes"])
        assert evaluate(patient, spec, _ctx()).status == CriterionStatus.NOT_MET

    def test_no_diagnoses_is_warning(self):
        assert evaluate(make_patient(), _spec("comorbidity"), _ctx()).status == CriterionStatus.WARNING


# ---------------------------------------------------------------------------
# Dose progression
# ---------------------------------------------------------------------------

class TestDoseProgression:
    def test_starting_dose_meets(self, wegovy):
        result = evaluate(make_patient(), _spec("doseProgression"), _ctx(wegovy, "0.25 mg"))
        assert result.status == CriterionStatus.MET

    def test_previous_dose_held_long_enough_meets(self, wegovy):
        patient = make_patient(history=[
            history_entry("Wegovy", "0.25 mg", "2025-04-01"),
            history_entry("Wegovy", "0.5 mg", "2025-05-01"),
        ])
        result = evaluate(patient, _spec("doseProgression"), _ctx(wegovy, "1 mg"))
        assert result.status == CriterionStatus.MET

    def test_gap_in_titration_fails(self, wegovy):
        patient = make_patient(history=[history_entry("Wegovy", "0.25 mg", "2025-04-01")])
        result = evaluate(patient, _spec("doseProgression"), _ctx(wegovy, "1 mg"))
        assert result.status == CriterionStatus.NOT_MET
        assert "dose progression not documented" in result.reason.lower()

    def test_previous_dose_too_recent_fails(self, wegovy):
        patient = make_patient(history=[history_entry("Wegovy", "0.5 mg", "2025-05-20")])
        result = evaluate(patient, _spec("doseProgression"), _ctx(wegovy, "1 mg"))
        assert result.status == CriterionStatus.NOT_MET

    def test_continuing_current_dose_meets(self, wegovy):
        patient = make_patient(history=[history_entry("Wegovy", "2.4 mg", "2025-01-01")])
        result = evaluate(patient, _spec("doseProgression"), _ctx(wegovy, "2.4mg"))
        assert result.status == CriterionStatus.MET
        assert result.display_value == "Continuation"

    def test_dose_outside_schedule_is_warning(self, wegovy):
        result = evaluate(make_patient(), _spec("doseProgression"), _ctx(wegovy, "3 mg"))
        assert result.status == CriterionStatus.WARNING

    def test_no_schedule_not_applicable(self):
        result = evaluate(make_patient(), _spec("doseProgression"), _ctx(None, "1 mg"))
        assert result.status == CriterionStatus.NOT_APPLICABLE


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------

class TestMaintenance:
    def test_enough_months_at_final_dose(self, wegovy):
        patient = make_patient(months_on_maintenance_dose=4)
        result = evaluate(patient, _spec("maintenance", min_maintenance_months=3), _ctx(wegovy, "2.4 mg"))
        assert result.status == CriterionStatus.MET
        assert result.required is False

    def test_too_few_months_is_warning(self, wegovy):
        patient = make_patient(months_on_maintenance_dose=1)
        result = evaluate(patient, _spec("maintenance"), _ctx(wegovy, "2.4 mg"))
        assert result.status == CriterionStatus.WARNING

    def test_not_at_final_dose_not_applicable(self, wegovy):
        result = evaluate(make_patient(), _spec("maintenance"), _ctx(wegovy, "1 mg"))
        assert result.status == CriterionStatus.NOT_APPLICABLE

    def test_required_flag_forced_off(self):
        assert _spec("maintenance", required=True).required is False


# ---------------------------------------------------------------------------
# Weight loss, maintenance of loss, program
# ---------------------------------------------------------------------------

class TestWeightCriteria:
    def test_weight_loss_from_pounds(self):
        patient = make_patient(
            baseline_weight=Measurement(value=210, unit="lbs"),
            current_weight=Measurement(value=195, unit="lbs"),
        )
        result = evaluate(patient, _spec("weightLoss", threshold_percent=5), _ctx())
        assert result.status == CriterionStatus.MET
        assert result.value == 7.1

    def test_weight_loss_below_threshold(self):
        patient = make_patient(
            baseline_weight=Measurement(value=100, unit="kg"),
            current_weight=Measurement(value=97, unit="kg"),
        )
        result = evaluate(patient, _spec("weightLoss", threshold_percent=5), _ctx())
        assert result.status == CriterionStatus.NOT_MET

    def test_liraglutide_class_threshold(self):
        patient = make_patient(weight_loss_percentage=4.5)
        context = _ctx(drug_name="Saxenda", generic_name="liraglutide")
        assert evaluate(patient, _spec("weightLoss"), context).status == CriterionStatus.MET
        assert evaluate(patient, _spec("weightLoss"), _ctx()).status == CriterionStatus.NOT_MET

    def test_weight_loss_not_documented(self):
        assert evaluate(make_patient(), _spec("weightLoss"), _ctx()).status == CriterionStatus.WARNING

    def test_weight_maintained(self):
        patient = make_patient(initial_weight_loss_percentage=8, weight_loss_percentage=6.5)
        result = evaluate(patient, _spec("weightMaintained", threshold_percent=5), _ctx())
        assert result.status == CriterionStatus.MET

    def test_weight_regressed_fails(self):
        patient = make_patient(initial_weight_loss_percentage=8, weight_loss_percentage=3)
        result = evaluate(patient, _spec("weightMaintained", threshold_percent=5), _ctx())
        assert result.status == CriterionStatus.NOT_MET
        assert "regressed" in result.reason

    def test_never_met_initial_loss_fails(self):
        patient = make_patient(initial_weight_loss_percentage=2, weight_loss_percentage=6)
        result = evaluate(patient, _spec("weightMaintained", threshold_percent=5), _ctx())
        assert result.status == CriterionStatus.NOT_MET

    def test_weight_program_documented(self):
        patient = make_patient(has_weight_program=True)
        assert evaluate(patient, _spec("weightProgram"), _ctx()).status == CriterionStatus.MET

    def test_missing_weight_program_is_warning_not_failure(self):
        assert evaluate(make_patient(), _spec("weightProgram"), _ctx()).status == CriterionStatus.WARNING


# ---------------------------------------------------------------------------
# Documentation
# ---------------------------------------------------------------------------

class TestDocumentation:
    DOCS = ["chart_note", "diet_counseling"]

    def test_all_documents_present(self):
        context = _ctx(documentation={"chart_note": True, "diet_counseling": True})
        result = evaluate(make_patient(), _spec("documentation", required_documents=self.DOCS), context)
        assert result.status == CriterionStatus.MET

    def test_missing_documents_listed_individually(self):
        context = _ctx(documentation={"chart_note": False})
        result = evaluate(make_patient(), _spec("documentation", required_documents=self.DOCS), context)
        assert result.status == CriterionStatus.NOT_MET
        assert "Missing document: chart_note" in result.reason
        assert "Missing document: diet_counseling" in result.reason

    def test_no_documentation_source_is_warning(self):
        result = evaluate(make_patient(), _spec("documentation", required_documents=self.DOCS), _ctx())
        assert result.status == CriterionStatus.WARNING

    def test_nothing_required_meets(self):
        assert evaluate(make_patient(), _spec("documentation"), _ctx()).status == CriterionStatus.MET


# ---------------------------------------------------------------------------
# Step therapy
# ---------------------------------------------------------------------------

class TestStepTherapy:
    def test_required_medication_in_history(self):
        patient = make_patient(history=[history_entry("Metformin ER", "500 mg", "2024-09-01")])
        result = evaluate(patient, _spec("stepTherapy", required_medications=["metformin"]), _ctx())
        assert result.status == CriterionStatus.MET
        assert result.display_value == "1/1 completed"

    def test_undated_medication_counts(self):
        patient = make_patient(medications=["metformin"])
        result = evaluate(patient, _spec("stepTherapy", required_medications=["Metformin"]), _ctx())
        assert result.status == CriterionStatus.MET

    def test_every_required_medication_needed(self):
        patient = make_patient(medications=["metformin"])
        spec = _spec("stepTherapy", required_medications=["metformin", "Ozempic"])
        result = evaluate(patient, spec, _ctx())
        assert result.status == CriterionStatus.NOT_MET
        assert result.value == 1
        assert "Ozempic" in result.reason

    def test_any_preferred_alternative_suffices(self):
        patient = make_patient(medications=["Victoza"])
        spec = _spec("stepTherapy", preferred_alternatives=["Ozempic", "Victoza"])
        assert evaluate(patient, spec, _ctx()).status == CriterionStatus.MET

    def test_no_preferred_alternative_tried(self):
        spec = _spec("stepTherapy", preferred_alternatives=["Ozempic"])
        result = evaluate(make_patient(), spec, _ctx())
        assert result.status == CriterionStatus.NOT_MET
        assert result.reason == "Must try Ozempic first"

    def test_unconfigured_requirement_not_met(self):
        result = evaluate(make_patient(medications=["metformin"]), _spec("stepTherapy"), _ctx())
        assert result.status == CriterionStatus.NOT_MET
        assert result.reason == "Step therapy requirements not documented"


# ---------------------------------------------------------------------------
# Lab values
# ---------------------------------------------------------------------------

class TestLabValue:
    def test_value_within_bounds(self):
        spec = _spec("labValue", lab_code="A1C", min_value=6.5)
        result = evaluate(make_patient(labs={"A1C": 7.2}), spec, _ctx())
        assert result.status == CriterionStatus.MET
        assert result.value == 7.2

    def test_code_matched_case_insensitively(self):
        spec = _spec("labValue", lab_code="a1c", min_value=6.5)
        assert evaluate(make_patient(labs={"A1C": 6.5}), spec, _ctx()).status == CriterionStatus.MET

    @pytest.mark.parametrize("value", [5.9, 10.5])
    def test_value_outside_bounds(self, value):
        spec = _spec("labValue", lab_code="A1C", min_value=6.5, max_value=10)
        result = evaluate(make_patient(labs={"A1C": value}), spec, _ctx())
        assert result.status == CriterionStatus.NOT_MET
        assert result.requirement == "A1C >=6.5 and <=10"

    def test_missing_lab_is_warning(self):
        spec = _spec("labValue", lab_code="A1C", min_value=6.5)
        result = evaluate(make_patient(labs={"LDL": 120}), spec, _ctx())
        assert result.status == CriterionStatus.WARNING
        assert result.reason == "No A1C result on file"
