"""Approval evaluation pipeline - orchestrates one PA evaluation request.

Coverage lookup -> phase and continuation -> applicable criteria ->
criterion evaluation -> approval likelihood -> alternatives (when weak).

The standard path is synchronous and never suspends. The enhanced path adds
external drug metadata factors and evaluates alternatives concurrently.
Collaborators (metadata provider, cache) are injected; the engine keeps no
state between calls.
"""

from datetime import date
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from pa_engine.models.assessment import AlternativeCandidate, ApprovalAssessment, EvaluationResult, Recommendation
from pa_engine.models.coverage import CoverageRecord, CriterionSpec
from pa_engine.models.enums import DosePhase, EvaluationMode
from pa_engine.models.patient import PatientSnapshot
from pa_engine.models.reference import MedicationReference, find_reference
from pa_engine.evaluation.alternatives import CandidateMedication, rank_alternatives, rank_alternatives_async
from pa_engine.evaluation.applicability import applicable_criteria
from pa_engine.evaluation.coverage_lookup import CoverageCatalog, load_coverage_catalog
from pa_engine.evaluation.dosing import classify_phase, detect_continuation
from pa_engine.evaluation.drug_metadata import (
    DrugMetadataProfile, StaticDrugMetadataProvider, load_medication_references,
    metadata_factors, resolve_drug_metadata,
)
from pa_engine.evaluation.enhanced_criteria import augment_criteria
from pa_engine.evaluation.evaluator import DrugContext, evaluate_all
from pa_engine.evaluation.exceptions import CoverageNotFoundError, DoseNotInScheduleError
from pa_engine.evaluation.likelihood import assess_approval, coverage_assessment
from pa_engine.evaluation.recommendations import build_recommendations, summarize_results
from pa_engine.config.logging_config import get_logger
from pa_engine.config.settings import Settings, get_settings

logger = get_logger(__name__)


class EvaluationRequest(BaseModel):
    """One prescription to evaluate against the patient's plan."""
    patient: PatientSnapshot
    insurance_plan: str
    drug_name: str
    dose: Optional[str] = None
    indication: Optional[str] = None
    documentation: Optional[Dict[str, bool]] = None
    as_of: Optional[date] = None
    mode: EvaluationMode = EvaluationMode.STANDARD


class EvaluationReport(BaseModel):
    """Full result of an evaluation request."""
    coverage: CoverageRecord
    phase: Optional[DosePhase] = None
    continuation: bool = False
    applicable_criteria: List[CriterionSpec] = Field(default_factory=list)
    results: List[EvaluationResult] = Field(default_factory=list)
    assessment: ApprovalAssessment
    alternatives: List[AlternativeCandidate] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    metadata: Optional[DrugMetadataProfile] = None
    recommendations: List[Recommendation] = Field(default_factory=list)
    summary: str = ""

    def get_high_priority_recommendations(self) -> List[Recommendation]:
        """Recommendations that block approval until addressed."""
        return [r for r in self.recommendations if r.priority == "high"]


class _Prepared(BaseModel):
    coverage: CoverageRecord
    context: DrugContext
    specs: List[CriterionSpec]
    reference: Optional[MedicationReference] = None
    warnings: List[str] = Field(default_factory=list)


class ApprovalEngine:
    """Evaluates PA requests against a coverage catalog and medication reference set."""

    def __init__(
        self,
        catalog: CoverageCatalog,
        references: List[MedicationReference],
        settings: Optional[Settings] = None,
        metadata_provider=None,
        cache=None,
    ):
        self.catalog = catalog
        self.references = references
        self.settings = settings or get_settings()
        self.metadata_provider = metadata_provider or StaticDrugMetadataProvider(references)
        self.cache = cache

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        metadata_provider=None,
        cache=None,
    ) -> "ApprovalEngine":
        settings = settings or get_settings()
        return cls(
            catalog=load_coverage_catalog(settings),
            references=load_medication_references(settings),
            settings=settings,
            metadata_provider=metadata_provider,
            cache=cache,
        )

    def candidate_pool(self, insurance_plan: str, indication: Optional[str] = None) -> List[CandidateMedication]:
        """Reference set paired with coverage under the plan, in reference order."""
        pool = []
        for ref in self.references:
            try:
                coverage = self.catalog.resolve(insurance_plan, ref.name, indication)
            except CoverageNotFoundError:
                coverage = None
            pool.append(CandidateMedication(reference=ref, coverage=coverage))
        return pool

    def _prepare(self, request: EvaluationRequest) -> _Prepared:
        # CoverageNotFoundError propagates: configuration errors stop evaluation
        coverage = self.catalog.resolve(request.insurance_plan, request.drug_name, request.indication)
        warnings = []
        if not coverage.covered:
            warnings.append(f"{coverage.drug_name} is not covered by {coverage.insurance_plan}. {coverage.note}".strip())
        if coverage.preferred_alternative:
            warnings.append(f"Plan prefers {coverage.preferred_alternative}")
        if coverage.covered and coverage.step_therapy:
            note = f"Step therapy required by {coverage.insurance_plan} for {coverage.drug_name}"
            if coverage.preferred_alternative:
                note += f"; document a trial of {coverage.preferred_alternative} first"
            warnings.append(note)

        try:
            phase = classify_phase(coverage, request.dose)
        except DoseNotInScheduleError as e:
            logger.warning("Dose not in schedule, criteria not phase-filtered",
                           drug=request.drug_name, dose=request.dose)
            warnings.append(str(e))
            phase = None

        continuation = detect_continuation(request.patient, coverage.drug_name, request.dose)
        reference = find_reference(self.references, coverage.drug_name)
        context = DrugContext(
            drug_name=coverage.drug_name,
            generic_name=reference.generic_name if reference else None,
            coverage=coverage,
            selected_dose=request.dose,
            phase=phase,
            continuation=continuation,
            documentation=request.documentation,
            as_of=request.as_of or date.today(),
        )
        specs = applicable_criteria(coverage, phase, continuation)
        return _Prepared(coverage=coverage, context=context, specs=specs, reference=reference, warnings=warnings)

    def _should_rank(self, assessment: ApprovalAssessment, mode: EvaluationMode) -> bool:
        return self.settings.max_alternatives > 0 and assessment.likelihood < self.settings.alternatives_threshold(mode)

    def _report(
        self,
        prepared: _Prepared,
        results: List[EvaluationResult],
        assessment: ApprovalAssessment,
        alternatives: List[AlternativeCandidate],
        metadata: Optional[DrugMetadataProfile] = None,
        extra_warnings: Tuple[str, ...] = (),
    ) -> EvaluationReport:
        return EvaluationReport(
            coverage=prepared.coverage,
            phase=prepared.context.phase,
            continuation=prepared.context.continuation,
            applicable_criteria=prepared.specs,
            results=results,
            assessment=assessment,
            alternatives=alternatives,
            warnings=prepared.warnings + list(extra_warnings),
            metadata=metadata,
            recommendations=build_recommendations(prepared.specs, results, prepared.coverage),
            summary=summarize_results(results),
        )

    def evaluate(self, request: EvaluationRequest) -> EvaluationReport:
        """Standard synchronous evaluation without external metadata."""
        prepared = self._prepare(request)
        results = evaluate_all(request.patient, prepared.specs, prepared.context)
        assessment = coverage_assessment(prepared.coverage, prepared.specs) or assess_approval(results)

        alternatives = []
        if self._should_rank(assessment, request.mode):
            alternatives = rank_alternatives(
                request.patient,
                prepared.coverage.drug_name,
                request.dose,
                assessment.likelihood,
                self.candidate_pool(request.insurance_plan, request.indication),
                documentation=request.documentation,
                as_of=prepared.context.as_of,
                max_results=self.settings.max_alternatives,
            )
        logger.info(
            "Evaluation complete",
            plan=request.insurance_plan,
            drug=prepared.coverage.drug_name,
            dose=request.dose,
            phase=prepared.context.phase.value if prepared.context.phase else None,
            continuation=prepared.context.continuation,
            likelihood=assessment.likelihood,
            alternatives=len(alternatives),
        )
        return self._report(prepared, results, assessment, alternatives)

    async def evaluate_enhanced(self, request: EvaluationRequest) -> EvaluationReport:
        """
        Evaluation refined by external drug metadata.

        Verified metadata fills criterion parameters the payer left unset
        and supplies the generic name, then contributes signed factors.
        Metadata failures only lower confidence.
        """
        prepared = self._prepare(request)

        profile = await resolve_drug_metadata(
            self.metadata_provider,
            prepared.coverage.drug_name,
            indication=request.indication,
            reference=prepared.reference,
            timeout=self.settings.metadata_timeout_seconds,
            retry_attempts=self.settings.metadata_retry_attempts,
            cache=self.cache,
        )
        extra_warnings = ()
        if not profile.validated:
            extra_warnings = ("Drug metadata could not be verified; using local reference profile",)
        elif profile.generic_name:
            prepared = prepared.model_copy(update={
                "specs": augment_criteria(prepared.specs, profile),
                "context": prepared.context.model_copy(update={"generic_name": profile.generic_name}),
            })
        results = evaluate_all(request.patient, prepared.specs, prepared.context)

        assessment = coverage_assessment(prepared.coverage, prepared.specs) or assess_approval(
            results,
            metadata_factors(profile, prepared.reference, request.dose),
            rxnorm_validated=profile.validated,
        )

        alternatives = []
        if self._should_rank(assessment, request.mode):
            alternatives = await rank_alternatives_async(
                request.patient,
                prepared.coverage.drug_name,
                request.dose,
                assessment.likelihood,
                self.candidate_pool(request.insurance_plan, request.indication),
                documentation=request.documentation,
                as_of=prepared.context.as_of,
                max_results=self.settings.max_alternatives,
                metadata_provider=self.metadata_provider,
                cache=self.cache,
                timeout=self.settings.metadata_timeout_seconds,
                retry_attempts=self.settings.metadata_retry_attempts,
            )
        logger.info(
            "Enhanced evaluation complete",
            plan=request.insurance_plan,
            drug=prepared.coverage.drug_name,
            dose=request.dose,
            likelihood=assessment.likelihood,
            rxnorm_validated=profile.validated,
            alternatives=len(alternatives),
        )
        return self._report(prepared, results, assessment, alternatives, metadata=profile,
                            extra_warnings=extra_warnings)
