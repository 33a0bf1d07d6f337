"""Prior-authorization criteria evaluation and approval-likelihood engine."""
from .exceptions import (
    ConfigurationError,
    CoverageNotFoundError,
    MalformedCriterionError,
    DoseNotInScheduleError,
    UnsupportedCriterionError,
    MetadataLookupError,
)
from .dosing import parse_dose, normalize_dose, doses_match, classify_phase, detect_continuation
from .coverage_lookup import CoverageCatalog, resolve_coverage, load_coverage_catalog
from .applicability import applicable_criteria
from .evaluator import DrugContext, evaluate, evaluate_all, EVALUATOR_REGISTRY
from .likelihood import assess_approval, bucket_likelihood, coverage_assessment
from .drug_metadata import (
    DrugMetadataProvider,
    StaticDrugMetadataProvider,
    DrugMetadataProfile,
    resolve_drug_metadata,
    metadata_factors,
    load_medication_references,
)
from .enhanced_criteria import augment_criteria
from .recommendations import build_recommendations, summarize_results
from .alternatives import CandidateMedication, rank_alternatives, rank_alternatives_async
from .pipeline import ApprovalEngine, EvaluationRequest, EvaluationReport

__all__ = [
    "ConfigurationError",
    "CoverageNotFoundError",
    "MalformedCriterionError",
    "DoseNotInScheduleError",
    "UnsupportedCriterionError",
    "MetadataLookupError",
    "parse_dose",
    "normalize_dose",
    "doses_match",
    "classify_phase",
    "detect_continuation",
    "CoverageCatalog",
    "resolve_coverage",
    "load_coverage_catalog",
    "applicable_criteria",
    "DrugContext",
    "evaluate",
    "evaluate_all",
    "EVALUATOR_REGISTRY",
    "assess_approval",
    "bucket_likelihood",
    "coverage_assessment",
    "DrugMetadataProvider",
    "StaticDrugMetadataProvider",
    "DrugMetadataProfile",
    "resolve_drug_metadata",
    "metadata_factors",
    "load_medication_references",
    "augment_criteria",
    "build_recommendations",
    "summarize_results",
    "CandidateMedication",
    "rank_alternatives",
    "rank_alternatives_async",
    "ApprovalEngine",
    "EvaluationRequest",
    "EvaluationReport",
]
