"""
Tests for the criteria applicability filter.
"""

import pytest

from pa_engine.evaluation.applicability import applicable_criteria
from pa_engine.models.coverage import CoverageRecord, CriterionSpec
from pa_engine.models.enums import CONTINUATION_EXEMPT_TYPES, CriterionType, DosePhase


def _types(specs):
    return [s.type for s in specs]


# ---------------------------------------------------------------------------
# Phase filtering
# ---------------------------------------------------------------------------

class TestPhaseFiltering:
    def test_starting_phase_excludes_maintenance_only_criteria(self, wegovy):
        specs = applicable_criteria(wegovy, DosePhase.STARTING, continuation=False)
        assert _types(specs) == [
            CriterionType.AGE,
            CriterionType.DOSE_PROGRESSION,
            CriterionType.WEIGHT_PROGRAM,
            CriterionType.BMI,
            CriterionType.DOCUMENTATION,
        ]

    def test_maintenance_phase_includes_everything(self, wegovy):
        specs = applicable_criteria(wegovy, DosePhase.MAINTENANCE, continuation=False)
        assert _types(specs) == [c.type for c in wegovy.criteria]

    def test_no_phase_disables_phase_filter(self, wegovy):
        assert len(applicable_criteria(wegovy, None, continuation=False)) == len(wegovy.criteria)

    def test_empty_criteria_is_valid(self):
        record = CoverageRecord(insurance_plan="P", drug_name="D")
        assert applicable_criteria(record, DosePhase.STARTING, continuation=False) == []


# ---------------------------------------------------------------------------
# Continuation filtering
# ---------------------------------------------------------------------------

class TestContinuationFiltering:
    @pytest.mark.parametrize("phase", [None, DosePhase.STARTING, DosePhase.TITRATION, DosePhase.MAINTENANCE])
    def test_continuation_never_includes_weight_criteria(self, wegovy, phase):
        specs = applicable_criteria(wegovy, phase, continuation=True)
        assert not CONTINUATION_EXEMPT_TYPES & set(_types(specs))

    def test_basic_eligibility_kept_on_continuation(self, wegovy):
        specs = applicable_criteria(wegovy, DosePhase.MAINTENANCE, continuation=True)
        assert _types(specs) == [
            CriterionType.AGE,
            CriterionType.DOSE_PROGRESSION,
            CriterionType.MAINTENANCE,
            CriterionType.BMI,
            CriterionType.DOCUMENTATION,
        ]

    def test_skip_on_continuation_flag(self):
        record = CoverageRecord(
            insurance_plan="P",
            drug_name="D",
            criteria=[
                CriterionSpec(type="documentation", skip_on_continuation=True),
                CriterionSpec(type="bmi", skip_on_continuation=True),
                CriterionSpec(type="comorbidity"),
            ],
        )
        specs = applicable_criteria(record, None, continuation=True)
        # Basic eligibility ignores the flag
        assert _types(specs) == [CriterionType.BMI, CriterionType.COMORBIDITY]

    def test_original_order_preserved(self):
        order = [CriterionType.DOCUMENTATION, CriterionType.AGE, CriterionType.COMORBIDITY, CriterionType.BMI]
        record = CoverageRecord(
            insurance_plan="P", drug_name="D", criteria=[CriterionSpec(type=t) for t in order],
        )
        assert _types(applicable_criteria(record, DosePhase.TITRATION, continuation=True)) == order
