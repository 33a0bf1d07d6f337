"""Criteria refinement from verified drug metadata (enhanced path).

Parameters a payer left unset are filled from the drug's therapeutic class
and generic name: the minimum BMI, a comorbidity BMI floor for incretin
agonists, class-specific weight-loss thresholds and required documents.
Configured values always win. An unverified profile leaves criteria as they
are, so fallback evaluations match the standard path.
"""

from typing import Any, Dict, List

from pa_engine.models.coverage import CriterionSpec
from pa_engine.models.enums import CriterionType
from pa_engine.evaluation.drug_metadata import DrugMetadataProfile
from pa_engine.evaluation.evaluator import DEFAULT_MIN_AGE, DEFAULT_MIN_BMI, default_weight_loss_threshold
from pa_engine.config.logging_config import get_logger

logger = get_logger(__name__)

# GLP-1 and GIP agonists allow BMI 27+ with a weight-related comorbidity
INCRETIN_CLASS_MARKERS = ("glp-1", "gip")
COMORBIDITY_BMI_FLOOR = 27.0

BASE_DOCUMENTS = [
    "lifestyle_modification_attempted",
    "diet_counseling_documented",
    "exercise_counseling_documented",
]
ANTIDIABETIC_DOCUMENTS = ["glucose_monitoring", "a1c_levels"]
NALTREXONE_DOCUMENTS = ["opioid_screening", "liver_function_tests"]


def is_incretin_agonist(profile: DrugMetadataProfile) -> bool:
    return any(marker in c.casefold() for c in profile.classes for marker in INCRETIN_CLASS_MARKERS)


def documents_for(profile: DrugMetadataProfile) -> List[str]:
    """Supporting documents payers expect for this drug's class."""
    documents = list(BASE_DOCUMENTS)
    if any("antidiabetic" in c.casefold() for c in profile.classes):
        documents.extend(ANTIDIABETIC_DOCUMENTS)
    if profile.generic_name and "naltrexone" in profile.generic_name.casefold():
        documents.extend(NALTREXONE_DOCUMENTS)
    return documents


def _fill_unset(spec: CriterionSpec, profile: DrugMetadataProfile) -> Dict[str, Any]:
    updates: Dict[str, Any] = {}
    if spec.type == CriterionType.AGE and spec.min_age is None:
        updates["min_age"] = DEFAULT_MIN_AGE
    elif spec.type == CriterionType.BMI:
        min_bmi = spec.min_bmi if spec.min_bmi is not None else DEFAULT_MIN_BMI
        if spec.min_bmi is None:
            updates["min_bmi"] = min_bmi
        if spec.comorbidity_bmi_floor is None and is_incretin_agonist(profile) and COMORBIDITY_BMI_FLOOR < min_bmi:
            updates["comorbidity_bmi_floor"] = COMORBIDITY_BMI_FLOOR
    elif spec.type in (CriterionType.WEIGHT_LOSS, CriterionType.WEIGHT_MAINTAINED) and spec.threshold_percent is None:
        updates["threshold_percent"] = default_weight_loss_threshold(profile.generic_name)
    elif spec.type == CriterionType.DOCUMENTATION and not spec.required_documents:
        updates["required_documents"] = documents_for(profile)
    return updates


def augment_criteria(specs: List[CriterionSpec], profile: DrugMetadataProfile) -> List[CriterionSpec]:
    """Criteria with unset parameters filled from verified metadata, in the same order."""
    if not profile.validated:
        return list(specs)
    augmented = []
    for spec in specs:
        updates = _fill_unset(spec, profile)
        if updates:
            logger.debug("Criterion refined from drug metadata", drug=profile.drug_name,
                         criterion_type=spec.type_name, filled=sorted(updates))
            spec = spec.model_copy(update=updates)
        augmented.append(spec)
    return augmented
