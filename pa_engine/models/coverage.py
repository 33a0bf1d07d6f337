"""
Payer coverage configuration - coverage records, dose schedules and criteria.

Records are loaded once from configuration and are read-only to the engine.
Field names accept both snake_case and the camelCase used in configuration
files (minAge, minBMI, comorbidityBMIFloor, requiredDocuments, ...).
"""

from typing import Any, Dict, FrozenSet, List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .enums import CriterionType, DosePhase

_CONFIG = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class DoseStep(BaseModel):
    """One entry of a titration schedule. List order defines the sequence."""
    model_config = _CONFIG

    dose: str = Field(..., validation_alias=AliasChoices("dose", "doseValue", "value"))
    # Label carried from configuration; the engine derives phase from position
    phase_tag: Optional[str] = Field(default=None, validation_alias=AliasChoices("phase_tag", "phaseTag", "phase"))
    duration_weeks: Optional[int] = Field(default=None, ge=0)


class CriterionSpec(BaseModel):
    """A single payer-defined prior-authorization criterion."""
    model_config = _CONFIG

    # Unrecognised type strings are kept so the dispatcher can report them
    type: Union[CriterionType, str]
    rule: str = ""

    # Applicability: empty phases means every phase
    phases: FrozenSet[DosePhase] = Field(default_factory=frozenset)
    skip_on_continuation: bool = False
    required: bool = True

    # Type-specific parameters
    min_age: Optional[int] = None
    min_bmi: Optional[float] = Field(default=None, alias="minBMI")
    comorbidity_bmi_floor: Optional[float] = Field(default=None, alias="comorbidityBMIFloor")
    threshold_percent: Optional[float] = None
    min_maintenance_months: Optional[float] = None
    required_documents: List[str] = Field(default_factory=list)
    min_count: int = 1
    qualifying_conditions: List[str] = Field(default_factory=list)
    # stepTherapy: every required medication, or any one preferred alternative
    required_medications: List[str] = Field(default_factory=list)
    preferred_alternatives: List[str] = Field(default_factory=list)
    # labValue: inclusive bounds on the charted result for lab_code
    lab_code: Optional[str] = None
    min_value: Optional[float] = None
    max_value: Optional[float] = None

    @field_validator("type", mode="before")
    @classmethod
    def _coerce_type(cls, value: Any) -> Any:
        try:
            return CriterionType(value)
        except ValueError:
            return str(value)

    @model_validator(mode="before")
    @classmethod
    def _maintenance_is_informational(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("type") in (CriterionType.MAINTENANCE, CriterionType.MAINTENANCE.value):
            data = {**data, "required": False}
        return data

    @model_validator(mode="after")
    def _check_parameters(self) -> "CriterionSpec":
        if self.min_age is not None and self.min_age < 0:
            raise ValueError(f"minAge must be non-negative, got {self.min_age}")
        if self.min_bmi is not None and self.min_bmi <= 0:
            raise ValueError(f"minBMI must be positive, got {self.min_bmi}")
        if self.comorbidity_bmi_floor is not None:
            if self.min_bmi is not None and self.comorbidity_bmi_floor >= self.min_bmi:
                raise ValueError(
                    f"comorbidityBMIFloor ({self.comorbidity_bmi_floor}) must be below minBMI ({self.min_bmi})"
                )
        if self.threshold_percent is not None and not 0 < self.threshold_percent <= 100:
            raise ValueError(f"thresholdPercent must be in (0, 100], got {self.threshold_percent}")
        if self.min_count < 1:
            raise ValueError(f"minCount must be at least 1, got {self.min_count}")
        if self.min_value is not None and self.max_value is not None and self.min_value > self.max_value:
            raise ValueError(f"minValue ({self.min_value}) must not exceed maxValue ({self.max_value})")
        if self.type == CriterionType.LAB_VALUE and not self.lab_code:
            raise ValueError("labValue criteria need a labCode")
        return self

    @property
    def is_supported_type(self) -> bool:
        return isinstance(self.type, CriterionType)

    @property
    def type_name(self) -> str:
        return self.type.value if isinstance(self.type, CriterionType) else str(self.type)


class CoverageOverride(BaseModel):
    """Indication-specific replacement of coverage fields (only set fields apply)."""
    model_config = _CONFIG

    covered: Optional[bool] = None
    tier: Optional[str] = None
    copay: Optional[str] = None
    pa_required: Optional[bool] = None
    step_therapy: Optional[bool] = None
    preferred: Optional[bool] = None
    criteria: Optional[List[CriterionSpec]] = None
    note: Optional[str] = None


class CoverageRecord(BaseModel):
    """Coverage of one drug under one insurance plan."""
    model_config = _CONFIG

    insurance_plan: str
    drug_name: str
    covered: bool = True
    tier: str = ""
    copay: str = ""
    pa_required: bool = True
    step_therapy: bool = False
    preferred: bool = False
    preferred_alternative: Optional[str] = None
    dose_schedule: List[DoseStep] = Field(default_factory=list)
    criteria: List[CriterionSpec] = Field(default_factory=list)
    note: str = ""
    indication_overrides: Dict[str, CoverageOverride] = Field(default_factory=dict)

    def with_override(self, override: CoverageOverride) -> "CoverageRecord":
        """Copy of this record with the override's explicitly set fields applied."""
        update = {name: getattr(override, name) for name in override.model_fields_set}
        return self.model_copy(update=update)
