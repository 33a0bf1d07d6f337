"""Data models for the prior-authorization engine."""
from .enums import (
    CriterionType,
    DosePhase,
    CriterionStatus,
    Confidence,
    EvaluationMode,
    normalize_status,
)
from .patient import (
    Measurement,
    LabValue,
    Demographics,
    Vitals,
    TherapyHistoryEntry,
    ClinicalNotes,
    PatientSnapshot,
    snapshot_from_chart,
)
from .coverage import DoseStep, CriterionSpec, CoverageOverride, CoverageRecord
from .assessment import EvaluationResult, Factor, Recommendation, ApprovalAssessment, AlternativeCandidate
from .reference import MedicationReference, find_reference

__all__ = [
    "CriterionType",
    "DosePhase",
    "CriterionStatus",
    "Confidence",
    "EvaluationMode",
    "normalize_status",
    "Measurement",
    "LabValue",
    "Demographics",
    "Vitals",
    "TherapyHistoryEntry",
    "ClinicalNotes",
    "PatientSnapshot",
    "snapshot_from_chart",
    "DoseStep",
    "CriterionSpec",
    "CoverageOverride",
    "CoverageRecord",
    "EvaluationResult",
    "Factor",
    "Recommendation",
    "ApprovalAssessment",
    "AlternativeCandidate",
    "MedicationReference",
    "find_reference",
]
