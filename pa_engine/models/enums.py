"""Enumeration types for the prior-authorization engine."""
from enum import Enum


class CriterionType(str, Enum):
    """Payer criterion types the evaluator understands."""
    AGE = "age"
    BMI = "bmi"
    DOSE_PROGRESSION = "doseProgression"
    MAINTENANCE = "maintenance"
    WEIGHT_LOSS = "weightLoss"
    WEIGHT_MAINTAINED = "weightMaintained"
    WEIGHT_PROGRAM = "weightProgram"
    DOCUMENTATION = "documentation"
    COMORBIDITY = "comorbidity"
    STEP_THERAPY = "stepTherapy"
    LAB_VALUE = "labValue"


class DosePhase(str, Enum):
    """Position of a dose within a titration schedule."""
    STARTING = "starting"
    TITRATION = "titration"
    MAINTENANCE = "maintenance"


class CriterionStatus(str, Enum):
    """Per-criterion outcome."""
    MET = "met"
    WARNING = "warning"
    NOT_MET = "not_met"
    NOT_APPLICABLE = "not_applicable"


class Confidence(str, Enum):
    """Confidence bucket for an approval estimate."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    VERY_LOW = "very-low"


class EvaluationMode(str, Enum):
    """Which evaluation path produced an assessment."""
    STANDARD = "standard"
    LEGACY = "legacy"


# Criteria re-checked on continuation requests regardless of configuration
BASIC_ELIGIBILITY_TYPES = frozenset({
    CriterionType.AGE,
    CriterionType.BMI,
    CriterionType.DOSE_PROGRESSION,
})

# Criteria cleared in a prior cycle and skipped on continuation requests
CONTINUATION_EXEMPT_TYPES = frozenset({
    CriterionType.WEIGHT_LOSS,
    CriterionType.WEIGHT_MAINTAINED,
    CriterionType.WEIGHT_PROGRAM,
    CriterionType.STEP_THERAPY,
})

_STATUS_ALIASES = {
    "met": CriterionStatus.MET,
    "pass": CriterionStatus.MET,
    "yes": CriterionStatus.MET,
    "approved": CriterionStatus.MET,
    "true": CriterionStatus.MET,
    "not_met": CriterionStatus.NOT_MET,
    "fail": CriterionStatus.NOT_MET,
    "no": CriterionStatus.NOT_MET,
    "denied": CriterionStatus.NOT_MET,
    "false": CriterionStatus.NOT_MET,
    "not_applicable": CriterionStatus.NOT_APPLICABLE,
    "not applicable": CriterionStatus.NOT_APPLICABLE,
    "n/a": CriterionStatus.NOT_APPLICABLE,
    "na": CriterionStatus.NOT_APPLICABLE,
    "warning": CriterionStatus.WARNING,
    "warn": CriterionStatus.WARNING,
    "caution": CriterionStatus.WARNING,
    "partial": CriterionStatus.WARNING,
}


def normalize_status(status) -> CriterionStatus:
    """Map legacy status spellings (pass/fail/yes/no/...) to CriterionStatus.

    Unknown or empty values are treated as NOT_MET.
    """
    if isinstance(status, CriterionStatus):
        return status
    if status is None:
        return CriterionStatus.NOT_MET
    return _STATUS_ALIASES.get(str(status).strip().lower(), CriterionStatus.NOT_MET)
