"""Actionable recommendations and a one-line summary for an evaluation.

Each failed or warning criterion maps to a prioritized next step; the list
is sorted high -> medium -> low, keeping criterion order within a priority.
"""

from typing import Dict, List, Optional, Sequence, Tuple

from pa_engine.models.assessment import EvaluationResult, Recommendation
from pa_engine.models.coverage import CoverageRecord, CriterionSpec
from pa_engine.models.enums import CriterionStatus, CriterionType
from pa_engine.config.logging_config import get_logger

logger = get_logger(__name__)

PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}

# (priority, category, fixed message or None to use the result's reason, action)
_RULES: Dict[CriterionType, Tuple[str, str, Optional[str], str]] = {
    CriterionType.DOSE_PROGRESSION: (
        "medium", "Treatment History", None,
        "Ensure patient has tried lower doses before requesting maximum dose",
    ),
    CriterionType.WEIGHT_LOSS: (
        "medium", "Effectiveness", None,
        "Document weight loss progress. May need to switch medications if inadequate response.",
    ),
    CriterionType.WEIGHT_MAINTAINED: (
        "medium", "Effectiveness", None,
        "Document current weight against the loss achieved in the initial treatment window",
    ),
    CriterionType.MAINTENANCE: (
        "low", "Maintenance", None,
        "Document weight maintenance for continued approval",
    ),
    CriterionType.DOCUMENTATION: (
        "high", "Documentation", "Missing required documentation",
        "Ensure complete medical records including: diagnosis codes, BMI documentation, "
        "treatment history, lifestyle modification attempts",
    ),
    CriterionType.WEIGHT_PROGRAM: (
        "high", "Prior Authorization", "Missing documentation of lifestyle modification attempts",
        "Document 3-6 months of diet and exercise attempts before medication therapy",
    ),
    CriterionType.COMORBIDITY: (
        "medium", "Comorbidities", None,
        "Document qualifying diagnoses with ICD-10 codes in the problem list",
    ),
    CriterionType.STEP_THERAPY: (
        "high", "Step Therapy", None,
        "Document trials of the required medications, or prescribe the plan's preferred agent",
    ),
    CriterionType.LAB_VALUE: (
        "medium", "Labs", None,
        "Attach a recent lab result that meets the plan's threshold",
    ),
}


def _age_recommendation(result: EvaluationResult) -> Recommendation:
    if result.status == CriterionStatus.WARNING:
        return Recommendation(
            priority="medium", category="Eligibility", message=result.reason,
            action="Record date of birth in the chart",
        )
    return Recommendation(
        priority="high",
        category="Eligibility",
        message=f"Patient does not meet minimum age requirement ({result.requirement})",
        action="Consider alternative treatments or wait until patient meets age requirement",
    )


def _bmi_recommendation(spec: CriterionSpec, result: EvaluationResult) -> Recommendation:
    if result.status == CriterionStatus.WARNING:
        return Recommendation(
            priority="medium", category="BMI", message=result.reason,
            action="Record current height and weight, or a measured BMI",
        )
    floor = spec.comorbidity_bmi_floor
    bmi = result.value if isinstance(result.value, (int, float)) else None
    if floor is not None and bmi is not None and bmi >= floor:
        return Recommendation(
            priority="medium",
            category="BMI",
            message=f"BMI is {bmi:.1f} (requires >={floor:g} with comorbidities)",
            action="Document weight-related comorbidities (diabetes, hypertension, dyslipidemia)",
        )
    return Recommendation(
        priority="high",
        category="BMI",
        message=f"BMI is {result.display_value or 'not met'} (requires {result.requirement})",
        action="Patient does not meet BMI criteria. Consider lifestyle modifications first.",
    )


def _recommendation_for(spec: CriterionSpec, result: EvaluationResult) -> Optional[Recommendation]:
    if spec.type == CriterionType.AGE:
        return _age_recommendation(result)
    if spec.type == CriterionType.BMI:
        return _bmi_recommendation(spec, result)
    rule = _RULES.get(spec.type) if spec.is_supported_type else None
    if rule is None:
        logger.warning("No recommendation for criterion", criterion_type=spec.type_name)
        return None
    priority, category, message, action = rule
    return Recommendation(priority=priority, category=category, message=message or result.reason, action=action)


def build_recommendations(
    specs: Sequence[CriterionSpec],
    results: Sequence[EvaluationResult],
    coverage: Optional[CoverageRecord] = None,
) -> List[Recommendation]:
    """
    Prioritized next steps for the failed and warning criteria.

    specs and results are parallel, as produced by evaluate_all. An
    uncovered drug gets a single coverage recommendation.
    """
    if coverage is not None and not coverage.covered:
        return [Recommendation(
            priority="high",
            category="Coverage",
            message=f"{coverage.drug_name} is not covered by {coverage.insurance_plan}",
            action="Prescribe a covered alternative or request a formulary exception",
        )]

    recommendations = []
    for spec, result in zip(specs, results):
        if result.status not in (CriterionStatus.NOT_MET, CriterionStatus.WARNING):
            continue
        recommendation = _recommendation_for(spec, result)
        if recommendation is not None:
            recommendations.append(recommendation)

    if not recommendations:
        recommendations.append(Recommendation(
            priority="low",
            category="General",
            message="All criteria met",
            action="Submit prescription. Prior authorization should be approved quickly.",
        ))
    else:
        recommendations.append(Recommendation(
            priority="medium",
            category="Next Steps",
            message="Address the above items to improve PA approval likelihood",
            action="Consider calling insurance plan to verify specific requirements",
        ))

    return sorted(recommendations, key=lambda r: PRIORITY_ORDER.get(r.priority, len(PRIORITY_ORDER)))


def summarize_results(results: Sequence[EvaluationResult]) -> str:
    """E.g. "Patient meets 3 of 5 criteria (1 with warnings) (1 not met)"."""
    met = sum(1 for r in results if r.status == CriterionStatus.MET)
    warnings = sum(1 for r in results if r.status == CriterionStatus.WARNING)
    failed = sum(1 for r in results if r.status == CriterionStatus.NOT_MET)
    summary = f"Patient meets {met} of {len(results)} criteria"
    if warnings:
        summary += f" ({warnings} with warnings)"
    if failed:
        summary += f" ({failed} not met)"
    return summary
