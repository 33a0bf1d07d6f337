"""Patient snapshot - the immutable clinical input to the engine.

Also converts raw chart JSON (camelCase, as produced by the EHR mapper)
into a PatientSnapshot.
"""

from datetime import date
from typing import Dict, Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

_KG_PER_LB = 0.45359237
_M_PER_IN = 0.0254


class Measurement(BaseModel):
    """A numeric observation with its unit."""
    model_config = ConfigDict(frozen=True)

    value: float
    unit: str = ""


class LabValue(BaseModel):
    """A lab result keyed by test code in PatientSnapshot.labs."""
    model_config = ConfigDict(frozen=True)

    value: Optional[float] = None
    unit: Optional[str] = None
    date: Optional[str] = None


class Demographics(BaseModel):
    model_config = ConfigDict(frozen=True)

    age: Optional[int] = None
    sex: Optional[str] = None


class Vitals(BaseModel):
    model_config = ConfigDict(frozen=True)

    height: Optional[Measurement] = None
    weight: Optional[Measurement] = None
    bmi: Optional[Measurement] = None


class TherapyHistoryEntry(BaseModel):
    """One dose a patient was started on."""
    model_config = ConfigDict(frozen=True)

    drug: str
    dose: str
    start_date: date


class ClinicalNotes(BaseModel):
    model_config = ConfigDict(frozen=True)

    has_weight_program: bool = False
    baseline_weight: Optional[Measurement] = None
    current_weight: Optional[Measurement] = None
    weight_loss_percentage: Optional[float] = None
    # Loss achieved during the initial treatment window, when charted separately
    initial_weight_loss_percentage: Optional[float] = None
    months_on_maintenance_dose: float = 0


class PatientSnapshot(BaseModel):
    """Clinical snapshot evaluated against payer criteria. Never mutated."""
    model_config = ConfigDict(frozen=True)

    patient_id: Optional[str] = None
    demographics: Demographics = Field(default_factory=Demographics)
    vitals: Vitals = Field(default_factory=Vitals)
    labs: Dict[str, LabValue] = Field(default_factory=dict)
    diagnoses: List[str] = Field(default_factory=list)
    therapy_history: List[TherapyHistoryEntry] = Field(default_factory=list)
    # Every drug named in the chart, including undated history entries
    prior_medications: List[str] = Field(default_factory=list)
    clinical_notes: ClinicalNotes = Field(default_factory=ClinicalNotes)

    @property
    def age(self) -> Optional[int]:
        return self.demographics.age

    @property
    def bmi(self) -> Optional[float]:
        """Charted BMI, or BMI computed from height and weight."""
        if self.vitals.bmi is not None:
            return self.vitals.bmi.value
        if self.vitals.height is None or self.vitals.weight is None:
            return None
        height_m = height_in_meters(self.vitals.height)
        weight_kg = weight_in_kg(self.vitals.weight)
        if not height_m or weight_kg is None:
            return None
        return round(weight_kg / (height_m ** 2), 1)

    def history_for(self, drug_name: str) -> List[TherapyHistoryEntry]:
        """History entries for one drug, oldest first (list order breaks ties)."""
        key = drug_name.strip().casefold()
        entries = [
            (i, entry) for i, entry in enumerate(self.therapy_history)
            if entry.drug.strip().casefold() == key
        ]
        entries.sort(key=lambda pair: (pair[1].start_date, pair[0]))
        return [entry for _, entry in entries]

    def medications_tried(self) -> List[str]:
        """Case-folded names of every drug in the history or medication list."""
        names = [entry.drug for entry in self.therapy_history] + self.prior_medications
        return list(dict.fromkeys(n.strip().casefold() for n in names if n and n.strip()))


def weight_in_kg(weight: Measurement) -> Optional[float]:
    """Convert a weight measurement to kilograms."""
    unit = weight.unit.strip().lower()
    if unit in ("kg", "kgs", "kilogram", "kilograms", ""):
        return weight.value
    if unit in ("lb", "lbs", "pound", "pounds", "[lb_av]"):
        return weight.value * _KG_PER_LB
    return None


def height_in_meters(height: Measurement) -> Optional[float]:
    """Convert a height measurement to meters."""
    unit = height.unit.strip().lower()
    if unit in ("cm", "centimeter", "centimeters", ""):
        return height.value / 100
    if unit in ("m", "meter", "meters"):
        return height.value
    if unit in ("in", "inch", "inches", "[in_i]"):
        return height.value * _M_PER_IN
    return None


def _measurement(raw: Any, default_unit: str = "") -> Optional[Measurement]:
    """Accept {value, units|unit} dicts or bare numbers."""
    if raw is None:
        return None
    if isinstance(raw, dict):
        value = raw.get("value")
        if value is None:
            return None
        return Measurement(value=float(value), unit=raw.get("unit") or raw.get("units") or default_unit)
    try:
        return Measurement(value=float(raw), unit=default_unit)
    except (TypeError, ValueError):
        return None


def snapshot_from_chart(raw: Dict[str, Any]) -> PatientSnapshot:
    """
    Build a PatientSnapshot from raw chart JSON.

    Handles the camelCase structure used by the EHR mapper and demo
    patients: top-level age/gender, vitals with {value, units},
    diagnosis list, labs keyed by test code, therapyHistory and clinicalNotes.
    Unparseable entries are dropped rather than failing the whole snapshot.
    """
    demographics = raw.get("demographics") or {}
    age = demographics.get("age", raw.get("age"))
    sex = demographics.get("sex") or demographics.get("gender") or raw.get("sex") or raw.get("gender")

    vitals_raw = raw.get("vitals") or {}
    vitals = Vitals(
        height=_measurement(vitals_raw.get("height"), "cm"),
        weight=_measurement(vitals_raw.get("weight"), "kg"),
        bmi=_measurement(vitals_raw.get("bmi"), "kg/m2"),
    )

    labs: Dict[str, LabValue] = {}
    for code, lab in (raw.get("labs") or {}).items():
        if isinstance(lab, dict):
            labs[code] = LabValue(
                value=lab.get("value"),
                unit=lab.get("unit") or lab.get("units"),
                date=lab.get("date"),
            )

    history: List[TherapyHistoryEntry] = []
    prior_medications: List[str] = []
    for entry in raw.get("therapyHistory") or []:
        drug = entry.get("drug")
        if drug:
            prior_medications.append(str(drug))
        dose = entry.get("dose") or entry.get("currentDose")
        start = entry.get("startDate")
        if not drug or not dose or not start:
            continue
        try:
            history.append(TherapyHistoryEntry(drug=drug, dose=str(dose), start_date=date.fromisoformat(start)))
        except (TypeError, ValueError):
            continue
    for med in raw.get("medications") or []:
        name = med.get("name") if isinstance(med, dict) else med
        if name:
            prior_medications.append(str(name))

    notes_raw = raw.get("clinicalNotes") or {}
    notes = ClinicalNotes(
        has_weight_program=bool(notes_raw.get("hasWeightProgram", False)),
        baseline_weight=_measurement(notes_raw.get("baselineWeight"), "kg"),
        current_weight=_measurement(notes_raw.get("currentWeight"), "kg"),
        weight_loss_percentage=notes_raw.get("weightLossPercentage"),
        initial_weight_loss_percentage=notes_raw.get("initialWeightLossPercentage"),
        months_on_maintenance_dose=notes_raw.get("monthsOnMaintenanceDose") or 0,
    )

    diagnoses = raw.get("diagnoses") or raw.get("diagnosis") or []

    return PatientSnapshot(
        patient_id=raw.get("id") or raw.get("patient_id"),
        demographics=Demographics(age=age, sex=(sex or "").lower() or None),
        vitals=vitals,
        labs=labs,
        diagnoses=[str(d) for d in diagnoses],
        therapy_history=history,
        prior_medications=prior_medications,
        clinical_notes=notes,
    )
