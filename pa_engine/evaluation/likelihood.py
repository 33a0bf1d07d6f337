"""Approval-likelihood calculator.

Folds per-criterion results and optional signed factors into a bounded
0-100 estimate with a confidence band and recommended action.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from pa_engine.models.assessment import ApprovalAssessment, EvaluationResult, Factor
from pa_engine.models.coverage import CoverageRecord, CriterionSpec
from pa_engine.models.enums import Confidence, CriterionStatus
from pa_engine.config.logging_config import get_logger

logger = get_logger(__name__)

# Ceiling while any required criterion is unmet
REQUIRED_FAILURE_CAP = 30
REQUIRED_FAILURE_PENALTY = 10
PARTIAL_CREDIT = 20
# Optional failures alone never pull the base below this
OPTIONAL_FAILURE_FLOOR = 30


@dataclass(frozen=True)
class LikelihoodBand:
    """Likelihood threshold band."""
    min_likelihood: int
    confidence: Confidence
    color: str
    action: str


LIKELIHOOD_BANDS: Tuple[LikelihoodBand, ...] = (
    LikelihoodBand(80, Confidence.HIGH, "green", "Proceed - submit prescription"),
    LikelihoodBand(50, Confidence.MEDIUM, "yellow", "Address warnings before submitting"),
    LikelihoodBand(30, Confidence.LOW, "orange", "Gather documentation, expect delay"),
    LikelihoodBand(
        0, Confidence.VERY_LOW, "red",
        "Do not submit without meeting required criteria; consider alternatives.",
    ),
)


def bucket_likelihood(likelihood: int) -> Tuple[Confidence, str, str]:
    """(confidence, color, action) for a likelihood."""
    for band in LIKELIHOOD_BANDS:
        if likelihood >= band.min_likelihood:
            return band.confidence, band.color, band.action
    band = LIKELIHOOD_BANDS[-1]
    return band.confidence, band.color, band.action


def _weighted_base(met: int, partial: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return met / total * 100 + partial / total * PARTIAL_CREDIT


def _clamp(value: float) -> int:
    return max(0, min(100, int(round(value))))


def assess_approval(
    results: Sequence[EvaluationResult],
    external_factors: Optional[List[Factor]] = None,
    rxnorm_validated: Optional[bool] = None,
) -> ApprovalAssessment:
    """
    Compute the approval assessment for a set of criterion results.

    Every result counts toward the total, NOT_APPLICABLE included, so a
    criterion skipped for this phase dilutes the base rather than vanishing.
    When nothing is applicable the likelihood is 0. Any unmet required
    criterion drops the base to max(0, 30 - 10 * failures) and caps the final
    likelihood at 30 whatever the factors. Otherwise the base is 100 per met
    criterion and 20 per warning, averaged over all results.
    """
    factors = list(external_factors or [])
    counted = [r for r in results if r.status != CriterionStatus.NOT_APPLICABLE]
    total = len(results)
    met = sum(1 for r in counted if r.status == CriterionStatus.MET)
    partial = sum(1 for r in counted if r.status == CriterionStatus.WARNING)
    failed_required = [r for r in counted if r.status == CriterionStatus.NOT_MET and r.required]
    failed_optional = sum(1 for r in counted if r.status == CriterionStatus.NOT_MET and not r.required)

    if not counted:
        confidence, color, action = bucket_likelihood(0)
        return ApprovalAssessment(
            likelihood=0,
            confidence=confidence,
            color=color,
            reason="No applicable criteria",
            action=action,
            factors=factors,
            rxnorm_validated=rxnorm_validated,
        )

    if failed_required:
        base = float(max(0, REQUIRED_FAILURE_CAP - REQUIRED_FAILURE_PENALTY * len(failed_required)))
    else:
        base = _weighted_base(met, partial, total)
        if failed_optional:
            without_optional = _weighted_base(met, partial, total - failed_optional) if total > failed_optional else 100.0
            base = max(base, min(OPTIONAL_FAILURE_FLOOR, without_optional))

    likelihood = _clamp(base + sum(f.impact_percent for f in factors))
    if failed_required:
        likelihood = min(likelihood, REQUIRED_FAILURE_CAP)

    if failed_required:
        names = ", ".join(r.criterion_type for r in failed_required)
        reason = f"{len(failed_required)} required criteria not met ({names})"
    elif partial or failed_optional:
        reason = f"{met} of {total} criteria met, {partial + failed_optional} need attention"
    elif len(counted) < total:
        reason = f"{met} of {total} criteria met, {total - len(counted)} not applicable"
    else:
        reason = f"All {total} applicable criteria met"

    confidence, color, action = bucket_likelihood(likelihood)
    logger.debug(
        "Approval assessed",
        likelihood=likelihood,
        base=round(base, 1),
        met=met,
        partial=partial,
        failed_required=len(failed_required),
        total=total,
        factors=len(factors),
    )
    return ApprovalAssessment(
        likelihood=likelihood,
        confidence=confidence,
        color=color,
        reason=reason,
        action=action,
        factors=factors,
        met_count=met,
        partial_count=partial,
        failed_required_count=len(failed_required),
        total_count=total,
        rxnorm_validated=rxnorm_validated,
    )


def coverage_assessment(coverage: CoverageRecord, applicable: Sequence[CriterionSpec]) -> Optional[ApprovalAssessment]:
    """
    Assessment decided by coverage alone, or None when criteria must be scored.

    A drug the plan does not cover scores 0; a covered drug with no PA
    requirement and no applicable criteria scores 100.
    """
    if not coverage.covered:
        likelihood, reason = 0, f"{coverage.drug_name} is not covered by {coverage.insurance_plan}"
    elif not coverage.pa_required and not applicable:
        likelihood, reason = 100, "No prior authorization required"
    else:
        return None
    confidence, color, action = bucket_likelihood(likelihood)
    return ApprovalAssessment(likelihood=likelihood, confidence=confidence, color=color, reason=reason, action=action)
