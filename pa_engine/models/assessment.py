"""Evaluation output models - per-criterion results, approval assessment, alternatives."""
from typing import Any, List, Optional, Union

from pydantic import BaseModel, Field, field_validator

from .enums import Confidence, CriterionStatus, normalize_status


class EvaluationResult(BaseModel):
    """Outcome of one criterion against one patient."""
    criterion_type: str
    rule: str = ""
    status: CriterionStatus
    value: Optional[Union[float, int, str, bool]] = None
    display_value: str = ""
    requirement: str = ""
    reason: str = ""
    required: bool = True

    @field_validator("status", mode="before")
    @classmethod
    def _legacy_status(cls, value: Any) -> CriterionStatus:
        # Stored results may use pass/fail spellings
        return normalize_status(value)


class Factor(BaseModel):
    """A signed adjustment that contributed to the likelihood."""
    name: str
    impact_percent: int
    detail: str = ""

    @property
    def impact_label(self) -> str:
        return f"{self.impact_percent:+d}%"


class Recommendation(BaseModel):
    """One actionable step toward approval."""
    priority: str = Field(..., description="Priority level: high, medium, low")
    category: str = Field(..., description="Area the step addresses, e.g. BMI or Documentation")
    message: str = Field(..., description="What is wrong or missing")
    action: str = Field(..., description="Recommended action to resolve it")


class ApprovalAssessment(BaseModel):
    """Bounded approval-likelihood estimate with its rationale."""
    likelihood: int = Field(..., ge=0, le=100)
    confidence: Confidence
    color: str
    reason: str
    action: str
    factors: List[Factor] = Field(default_factory=list)

    # Breakdown of the results that produced the base score
    met_count: int = 0
    partial_count: int = 0
    failed_required_count: int = 0
    total_count: int = 0

    # None on the standard path; False when external metadata could not be verified
    rxnorm_validated: Optional[bool] = None


class AlternativeCandidate(BaseModel):
    """A medication estimated to have better approval odds than the current one."""
    medication: str
    generic_name: str
    category: str
    suggested_dose: str
    approval_likelihood: int = Field(..., ge=0, le=100)
    improvement_over_current: int
    factors: List[Factor] = Field(default_factory=list)
    rxnorm_validated: Optional[bool] = None
