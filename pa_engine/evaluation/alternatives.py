"""Alternative-medication ranker.

Re-runs the evaluation for medications sharing the current drug's
therapeutic category or indication, at each candidate's starting dose, and
returns those with better approval odds. Ordering is deterministic:
likelihood descending, ties in reference-set order.
"""

import asyncio
from datetime import date
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel

from pa_engine.models.assessment import AlternativeCandidate, ApprovalAssessment
from pa_engine.models.coverage import CoverageRecord
from pa_engine.models.patient import PatientSnapshot
from pa_engine.models.reference import MedicationReference
from pa_engine.evaluation.applicability import applicable_criteria
from pa_engine.evaluation.coverage_lookup import normalize_indication, normalize_name
from pa_engine.evaluation.dosing import classify_phase, detect_continuation
from pa_engine.evaluation.drug_metadata import metadata_factors, resolve_drug_metadata
from pa_engine.evaluation.evaluator import DrugContext, evaluate_all
from pa_engine.evaluation.exceptions import DoseNotInScheduleError
from pa_engine.evaluation.likelihood import assess_approval, coverage_assessment
from pa_engine.config.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_ALTERNATIVES = 3


class CandidateMedication(BaseModel):
    """A reference medication paired with its coverage under the patient's plan."""
    reference: MedicationReference
    coverage: Optional[CoverageRecord] = None


def _related(current: MedicationReference, other: MedicationReference) -> bool:
    return (
        other.category.casefold() == current.category.casefold()
        or normalize_indication(other.indication) == normalize_indication(current.indication)
    )


def _eligible_candidates(
    current_drug: str,
    candidate_pool: List[CandidateMedication],
) -> Optional[List[CandidateMedication]]:
    """Covered, related candidates in pool order; None if the current drug is unknown."""
    current_key = normalize_name(current_drug)
    current = next((c.reference for c in candidate_pool if normalize_name(c.reference.name) == current_key), None)
    if current is None:
        logger.warning("Current drug not in reference set, no alternatives", drug=current_drug)
        return None
    return [
        c for c in candidate_pool
        if normalize_name(c.reference.name) != current_key
        and _related(current, c.reference)
        and c.coverage is not None
        and c.coverage.covered
    ]


def _candidate_context(
    patient: PatientSnapshot,
    candidate: CandidateMedication,
    documentation: Optional[Dict[str, bool]],
    as_of: date,
) -> Tuple[DrugContext, list]:
    ref, coverage = candidate.reference, candidate.coverage
    dose = ref.starting_dose
    try:
        phase = classify_phase(coverage, dose)
    except DoseNotInScheduleError as e:
        logger.warning("Starting dose not in schedule", drug=ref.name, dose=dose, error=str(e))
        phase = None
    continuation = detect_continuation(patient, ref.name, dose)
    context = DrugContext(
        drug_name=ref.name,
        generic_name=ref.generic_name,
        coverage=coverage,
        selected_dose=dose,
        phase=phase,
        continuation=continuation,
        documentation=documentation,
        as_of=as_of,
    )
    return context, applicable_criteria(coverage, phase, continuation)


def _to_alternative(
    candidate: CandidateMedication,
    assessment: ApprovalAssessment,
    current_likelihood: int,
) -> AlternativeCandidate:
    ref = candidate.reference
    return AlternativeCandidate(
        medication=ref.name,
        generic_name=ref.generic_name,
        category=ref.category,
        suggested_dose=ref.starting_dose,
        approval_likelihood=assessment.likelihood,
        improvement_over_current=assessment.likelihood - current_likelihood,
        factors=assessment.factors,
        rxnorm_validated=assessment.rxnorm_validated,
    )


def _rank(
    scored: List[Tuple[CandidateMedication, ApprovalAssessment]],
    current_likelihood: int,
    max_results: int,
) -> List[AlternativeCandidate]:
    better = [
        _to_alternative(candidate, assessment, current_likelihood)
        for candidate, assessment in scored
        if assessment.likelihood > current_likelihood
    ]
    # sorted() is stable: equal likelihoods keep reference-set order
    better = sorted(better, key=lambda alt: -alt.approval_likelihood)
    return better[:max_results]


def score_candidate(
    patient: PatientSnapshot,
    candidate: CandidateMedication,
    documentation: Optional[Dict[str, bool]] = None,
    as_of: Optional[date] = None,
) -> ApprovalAssessment:
    context, specs = _candidate_context(patient, candidate, documentation, as_of or date.today())
    return coverage_assessment(candidate.coverage, specs) or assess_approval(evaluate_all(patient, specs, context))


def rank_alternatives(
    patient: PatientSnapshot,
    current_drug: str,
    current_dose: Optional[str],
    current_likelihood: int,
    candidate_pool: List[CandidateMedication],
    documentation: Optional[Dict[str, bool]] = None,
    as_of: Optional[date] = None,
    max_results: int = DEFAULT_MAX_ALTERNATIVES,
) -> List[AlternativeCandidate]:
    """Up to max_results alternatives strictly better than current_likelihood."""
    candidates = _eligible_candidates(current_drug, candidate_pool)
    if not candidates:
        return []
    as_of = as_of or date.today()
    scored = [(c, score_candidate(patient, c, documentation, as_of)) for c in candidates]
    alternatives = _rank(scored, current_likelihood, max_results)
    logger.info(
        "Alternatives ranked",
        drug=current_drug,
        dose=current_dose,
        current_likelihood=current_likelihood,
        candidates=len(candidates),
        returned=[a.medication for a in alternatives],
    )
    return alternatives


async def rank_alternatives_async(
    patient: PatientSnapshot,
    current_drug: str,
    current_dose: Optional[str],
    current_likelihood: int,
    candidate_pool: List[CandidateMedication],
    documentation: Optional[Dict[str, bool]] = None,
    as_of: Optional[date] = None,
    max_results: int = DEFAULT_MAX_ALTERNATIVES,
    metadata_provider=None,
    cache=None,
    timeout: float = 4.0,
    retry_attempts: int = 2,
) -> List[AlternativeCandidate]:
    """
    Concurrent variant of rank_alternatives.

    With a metadata provider each candidate also gets metadata factors.
    Results are gathered in pool order before ranking, so completion order
    of the lookups never affects the output.
    """
    candidates = _eligible_candidates(current_drug, candidate_pool)
    if not candidates:
        return []
    as_of = as_of or date.today()

    async def score(candidate: CandidateMedication) -> ApprovalAssessment:
        context, specs = _candidate_context(patient, candidate, documentation, as_of)
        decided = coverage_assessment(candidate.coverage, specs)
        if decided is not None:
            return decided
        results = evaluate_all(patient, specs, context)
        if metadata_provider is None:
            return assess_approval(results)
        profile = await resolve_drug_metadata(
            metadata_provider,
            candidate.reference.name,
            reference=candidate.reference,
            timeout=timeout,
            retry_attempts=retry_attempts,
            cache=cache,
        )
        return assess_approval(
            results,
            metadata_factors(profile, candidate.reference, context.selected_dose),
            rxnorm_validated=profile.validated,
        )

    assessments = await asyncio.gather(*(score(c) for c in candidates))
    alternatives = _rank(list(zip(candidates, assessments)), current_likelihood, max_results)
    logger.info(
        "Alternatives ranked",
        drug=current_drug,
        dose=current_dose,
        current_likelihood=current_likelihood,
        candidates=len(candidates),
        returned=[a.medication for a in alternatives],
        enhanced=metadata_provider is not None,
    )
    return alternatives
