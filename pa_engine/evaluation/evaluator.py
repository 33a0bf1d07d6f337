"""Deterministic Criterion Evaluator - pure logic, no I/O.

Evaluates a patient snapshot against payer criteria to produce per-criterion
results (MET / WARNING / NOT_MET / NOT_APPLICABLE).

Design principles:
- Pure function: inputs arrive pre-resolved in PatientSnapshot and DrugContext
- Same inputs always produce same outputs (as_of pins the clock)
- Missing data is WARNING, not NOT_MET: it drives documentation gaps, not denial
- evaluate() never raises; one bad criterion cannot abort the batch
"""

import re
from datetime import date
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from pa_engine.models.assessment import EvaluationResult
from pa_engine.models.coverage import CoverageRecord, CriterionSpec
from pa_engine.models.enums import CriterionStatus, CriterionType, DosePhase
from pa_engine.models.patient import LabValue, PatientSnapshot, weight_in_kg
from pa_engine.evaluation.dosing import (
    doses_match, final_step, most_recent_entry, previous_step, schedule_index,
)
from pa_engine.evaluation.exceptions import UnsupportedCriterionError
from pa_engine.config.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_MIN_AGE = 18
DEFAULT_MIN_BMI = 30.0
DEFAULT_MAINTENANCE_MONTHS = 3
DEFAULT_WEIGHT_LOSS_THRESHOLD = 5.0

# Class-specific weight loss expectations by generic name
WEIGHT_LOSS_THRESHOLDS = {
    "liraglutide": 4.0,
    "phentermine": 3.0,
}

# Weight-related comorbidities: name -> (diagnosis text aliases, ICD-10 prefixes)
QUALIFYING_COMORBIDITIES = {
    "hypertension": (
        ["hypertension", "htn", "high blood pressure"],
        ["I10", "I11", "I12", "I13", "I15"],
    ),
    "type 2 diabetes": (
        ["type 2 diabetes", "type ii diabetes", "t2dm", "diabetes mellitus type 2", "diabetes mellitus, type 2"],
        ["E11"],
    ),
    "dyslipidemia": (
        ["dyslipidemia", "hyperlipidemia", "hypercholesterolemia", "hypertriglyceridemia", "high cholesterol"],
        ["E78"],
    ),
    "obstructive sleep apnea": (
        ["obstructive sleep apnea", "osa"],
        ["G47.33"],
    ),
    "cardiovascular disease": (
        ["cardiovascular disease", "coronary artery disease", "cad", "heart disease", "myocardial infarction"],
        ["I20", "I21", "I25"],
    ),
}

# Diagnoses that share an alias word but are not the weight-related condition
NON_QUALIFYING_PHRASES = {
    "hypertension": ["pulmonary hypertension", "portal hypertension", "intracranial hypertension", "ocular hypertension"],
}

_ICD_CODE = re.compile(r"\b[A-Z]\d{2}(?:\.[0-9A-Z]{1,4})?\b")


class DrugContext(BaseModel):
    """Pre-resolved request details shared by every criterion in a run."""
    model_config = ConfigDict(frozen=True)

    drug_name: str
    generic_name: Optional[str] = None
    coverage: Optional[CoverageRecord] = None
    selected_dose: Optional[str] = None
    phase: Optional[DosePhase] = None
    continuation: bool = False
    # Document key -> present; None when no attestation source was consulted
    documentation: Optional[Dict[str, bool]] = None
    as_of: date = Field(default_factory=date.today)


# --- Evaluator Registry ---

CriterionEvaluatorFn = Callable[[CriterionSpec, PatientSnapshot, DrugContext], EvaluationResult]

EVALUATOR_REGISTRY: Dict[CriterionType, CriterionEvaluatorFn] = {}


def register_evaluator(*criterion_types: CriterionType):
    """Decorator to register an evaluator function for one or more CriterionType values."""
    def decorator(fn: CriterionEvaluatorFn):
        for ct in criterion_types:
            EVALUATOR_REGISTRY[ct] = fn
        return fn
    return decorator


def _result(spec: CriterionSpec, status: CriterionStatus, **kwargs) -> EvaluationResult:
    return EvaluationResult(
        criterion_type=spec.type_name,
        rule=spec.rule,
        status=status,
        required=spec.required,
        **kwargs,
    )


# --- Helpers ---

def _diagnosis_codes(diagnosis: str) -> List[str]:
    return [code.replace(".", "") for code in _ICD_CODE.findall(diagnosis.upper())]


def find_comorbidities(diagnoses: List[str], conditions: Optional[List[str]] = None) -> List[str]:
    """Distinct qualifying conditions present in the diagnosis list, in table order."""
    wanted = [c.strip().lower() for c in conditions] if conditions else list(QUALIFYING_COMORBIDITIES)
    found = []
    for condition in wanted:
        aliases, prefixes = QUALIFYING_COMORBIDITIES.get(condition, ([condition], []))
        prefixes = [p.replace(".", "") for p in prefixes]
        excluded = NON_QUALIFYING_PHRASES.get(condition, [])
        for diagnosis in diagnoses:
            text = diagnosis.lower()
            for phrase in excluded:
                text = text.replace(phrase, " ")
            if any(re.search(rf"\b{re.escape(alias)}\b", text) for alias in aliases):
                found.append(condition)
                break
            if any(code.startswith(p) for code in _diagnosis_codes(diagnosis) for p in prefixes):
                found.append(condition)
                break
    return found


def default_weight_loss_threshold(generic_name: Optional[str]) -> float:
    if not generic_name:
        return DEFAULT_WEIGHT_LOSS_THRESHOLD
    return WEIGHT_LOSS_THRESHOLDS.get(generic_name.strip().lower(), DEFAULT_WEIGHT_LOSS_THRESHOLD)


def computed_weight_loss_percent(patient: PatientSnapshot) -> Optional[float]:
    """Loss from baseline to current weight, in percent of baseline."""
    notes = patient.clinical_notes
    if notes.baseline_weight is None or notes.current_weight is None:
        return None
    baseline = weight_in_kg(notes.baseline_weight)
    current = weight_in_kg(notes.current_weight)
    if not baseline or current is None:
        return None
    return (baseline - current) / baseline * 100


# --- Individual criterion evaluators ---

@register_evaluator(CriterionType.AGE)
def evaluate_age(spec: CriterionSpec, patient: PatientSnapshot, context: DrugContext) -> EvaluationResult:
    min_age = spec.min_age if spec.min_age is not None else DEFAULT_MIN_AGE
    if patient.age is None:
        return _result(
            spec, CriterionStatus.WARNING,
            display_value="Not documented",
            requirement=f">={min_age} years",
            reason="Patient age not documented",
        )
    met = patient.age >= min_age
    return _result(
        spec, CriterionStatus.MET if met else CriterionStatus.NOT_MET,
        value=patient.age,
        display_value=f"{patient.age} years",
        requirement=f">={min_age} years",
        reason=f"Age {patient.age} {'meets' if met else 'is below'} minimum of {min_age}",
    )


@register_evaluator(CriterionType.BMI)
def evaluate_bmi(spec: CriterionSpec, patient: PatientSnapshot, context: DrugContext) -> EvaluationResult:
    min_bmi = spec.min_bmi if spec.min_bmi is not None else DEFAULT_MIN_BMI
    floor = spec.comorbidity_bmi_floor
    requirement = f">={min_bmi:g}" + (f", or >={floor:g} with comorbidity" if floor is not None else "")
    bmi = patient.bmi
    if bmi is None:
        return _result(
            spec, CriterionStatus.WARNING,
            display_value="Not documented",
            requirement=requirement,
            reason="BMI not documented and cannot be computed from height and weight",
        )
    display = f"{bmi:.1f} kg/m2"
    if bmi >= min_bmi:
        return _result(
            spec, CriterionStatus.MET,
            value=bmi, display_value=display, requirement=requirement,
            reason=f"BMI {bmi:.1f} >= {min_bmi:g}",
        )
    if floor is not None and bmi >= floor:
        comorbidities = find_comorbidities(patient.diagnoses, spec.qualifying_conditions or None)
        if comorbidities:
            return _result(
                spec, CriterionStatus.MET,
                value=bmi, display_value=display, requirement=requirement,
                reason=f"BMI {bmi:.1f} >= {floor:g} with comorbidity ({', '.join(comorbidities)})",
            )
        return _result(
            spec, CriterionStatus.NOT_MET,
            value=bmi, display_value=display, requirement=requirement,
            reason=f"BMI {bmi:.1f} >= {floor:g} but no qualifying weight-related comorbidity documented",
        )
    return _result(
        spec, CriterionStatus.NOT_MET,
        value=bmi, display_value=display, requirement=requirement,
        reason=f"BMI {bmi:.1f} does not meet criteria ({requirement})",
    )


@register_evaluator(CriterionType.DOSE_PROGRESSION)
def evaluate_dose_progression(spec: CriterionSpec, patient: PatientSnapshot, context: DrugContext) -> EvaluationResult:
    coverage = context.coverage
    dose = context.selected_dose
    if coverage is None or not coverage.dose_schedule or not dose:
        return _result(
            spec, CriterionStatus.NOT_APPLICABLE,
            display_value="N/A",
            reason="No dose schedule defined" if dose else "No dose selected",
        )
    index = schedule_index(coverage, dose)
    if index is None:
        return _result(
            spec, CriterionStatus.WARNING,
            value=dose, display_value="Unrecognized dose",
            reason=f"Dose {dose} is not in the titration schedule",
        )
    if index == 0:
        return _result(
            spec, CriterionStatus.MET,
            value=dose, display_value="Starting dose",
            reason=f"{dose} is the starting dose",
        )

    latest = most_recent_entry(patient, context.drug_name)
    if latest is not None and doses_match(latest.dose, dose):
        return _result(
            spec, CriterionStatus.MET,
            value=dose, display_value="Continuation",
            reason=f"Continuing current dose: {dose}",
        )

    prior = previous_step(coverage, dose)
    held = [e for e in patient.history_for(context.drug_name) if doses_match(e.dose, prior.dose)]
    requirement = f"{prior.dose} held" + (f" >= {prior.duration_weeks} weeks" if prior.duration_weeks else "")
    if not held:
        return _result(
            spec, CriterionStatus.NOT_MET,
            value=dose, display_value="Gap in titration",
            requirement=requirement,
            reason=f"Dose progression not documented: no record of {prior.dose} before {dose}",
        )
    weeks_held = (context.as_of - held[-1].start_date).days / 7
    if prior.duration_weeks and weeks_held < prior.duration_weeks:
        return _result(
            spec, CriterionStatus.NOT_MET,
            value=round(weeks_held, 1), display_value=f"{weeks_held:.1f} weeks on {prior.dose}",
            requirement=requirement,
            reason=f"Only {weeks_held:.1f} weeks on {prior.dose}; {prior.duration_weeks} required before {dose}",
        )
    return _result(
        spec, CriterionStatus.MET,
        value=round(weeks_held, 1), display_value="Next dose",
        requirement=requirement,
        reason=f"Progressing from {prior.dose} to {dose}",
    )


@register_evaluator(CriterionType.MAINTENANCE)
def evaluate_maintenance(spec: CriterionSpec, patient: PatientSnapshot, context: DrugContext) -> EvaluationResult:
    min_months = spec.min_maintenance_months if spec.min_maintenance_months is not None else DEFAULT_MAINTENANCE_MONTHS
    final = final_step(context.coverage) if context.coverage is not None else None
    requirement = f">={min_months:g} months at maintenance dose"
    if final is None or not context.selected_dose or not doses_match(final.dose, context.selected_dose):
        return _result(
            spec, CriterionStatus.NOT_APPLICABLE,
            display_value="N/A", requirement=requirement,
            reason="Selected dose is not the maintenance dose",
        )
    months = patient.clinical_notes.months_on_maintenance_dose
    met = months >= min_months
    return _result(
        spec, CriterionStatus.MET if met else CriterionStatus.WARNING,
        value=months,
        display_value=f"{months:g} months",
        requirement=requirement,
        reason=(
            f"{months:g} months at {final.dose}"
            if met else f"{months:g} months at {final.dose}; guidance is {min_months:g}"
        ),
    )


@register_evaluator(CriterionType.WEIGHT_LOSS)
def evaluate_weight_loss(spec: CriterionSpec, patient: PatientSnapshot, context: DrugContext) -> EvaluationResult:
    threshold = spec.threshold_percent
    if threshold is None:
        threshold = default_weight_loss_threshold(context.generic_name)
    requirement = f">={threshold:g}% of baseline weight"
    loss = computed_weight_loss_percent(patient)
    if loss is None:
        loss = patient.clinical_notes.weight_loss_percentage
    if loss is None:
        return _result(
            spec, CriterionStatus.WARNING,
            display_value="Not documented", requirement=requirement,
            reason="Baseline and current weight not documented",
        )
    met = loss >= threshold
    return _result(
        spec, CriterionStatus.MET if met else CriterionStatus.NOT_MET,
        value=round(loss, 1),
        display_value=f"{loss:.1f}%",
        requirement=requirement,
        reason=f"Lost {loss:.1f}% of baseline weight ({'meets' if met else 'below'} {threshold:g}%)",
    )


@register_evaluator(CriterionType.WEIGHT_MAINTAINED)
def evaluate_weight_maintained(spec: CriterionSpec, patient: PatientSnapshot, context: DrugContext) -> EvaluationResult:
    threshold = spec.threshold_percent
    if threshold is None:
        threshold = default_weight_loss_threshold(context.generic_name)
    requirement = f"Maintained >={threshold:g}% loss"
    notes = patient.clinical_notes
    computed = computed_weight_loss_percent(patient)
    current = notes.weight_loss_percentage if notes.weight_loss_percentage is not None else computed
    achieved = notes.initial_weight_loss_percentage if notes.initial_weight_loss_percentage is not None else current
    if achieved is None or current is None:
        return _result(
            spec, CriterionStatus.WARNING,
            display_value="Not documented", requirement=requirement,
            reason="Weight loss history not documented",
        )
    if achieved < threshold:
        return _result(
            spec, CriterionStatus.NOT_MET,
            value=round(achieved, 1), display_value=f"{achieved:.1f}%", requirement=requirement,
            reason=f"Initial weight loss {achieved:.1f}% never reached {threshold:g}%",
        )
    if current < threshold:
        return _result(
            spec, CriterionStatus.NOT_MET,
            value=round(current, 1), display_value=f"{current:.1f}%", requirement=requirement,
            reason=f"Weight loss regressed to {current:.1f}% (below {threshold:g}%)",
        )
    return _result(
        spec, CriterionStatus.MET,
        value=round(current, 1), display_value=f"{current:.1f}%", requirement=requirement,
        reason=f"Maintained {current:.1f}% weight loss",
    )


@register_evaluator(CriterionType.WEIGHT_PROGRAM)
def evaluate_weight_program(spec: CriterionSpec, patient: PatientSnapshot, context: DrugContext) -> EvaluationResult:
    if patient.clinical_notes.has_weight_program:
        return _result(
            spec, CriterionStatus.MET,
            value=True, display_value="Documented",
            reason="Participation in weight management program documented",
        )
    # Payers commonly accept attestation after the fact
    return _result(
        spec, CriterionStatus.WARNING,
        value=False, display_value="Not documented",
        reason="Weight management program participation not documented; attestation may be accepted",
    )


@register_evaluator(CriterionType.DOCUMENTATION)
def evaluate_documentation(spec: CriterionSpec, patient: PatientSnapshot, context: DrugContext) -> EvaluationResult:
    required_docs = spec.required_documents
    requirement = ", ".join(required_docs) if required_docs else "None"
    if not required_docs:
        return _result(
            spec, CriterionStatus.MET,
            display_value="None required", requirement=requirement,
            reason="No supporting documents required",
        )
    if context.documentation is None:
        return _result(
            spec, CriterionStatus.WARNING,
            display_value="Attestation pending", requirement=requirement,
            reason="Documentation not yet attested: " + ", ".join(required_docs),
        )
    missing = [doc for doc in required_docs if not context.documentation.get(doc)]
    if missing:
        return _result(
            spec, CriterionStatus.NOT_MET,
            value=len(required_docs) - len(missing),
            display_value=f"{len(required_docs) - len(missing)}/{len(required_docs)} on file",
            requirement=requirement,
            reason="; ".join(f"Missing document: {doc}" for doc in missing),
        )
    return _result(
        spec, CriterionStatus.MET,
        value=len(required_docs),
        display_value=f"{len(required_docs)}/{len(required_docs)} on file",
        requirement=requirement,
        reason="All required documents on file",
    )


@register_evaluator(CriterionType.COMORBIDITY)
def evaluate_comorbidity(spec: CriterionSpec, patient: PatientSnapshot, context: DrugContext) -> EvaluationResult:
    requirement = f">={spec.min_count} qualifying condition" + ("s" if spec.min_count > 1 else "")
    if not patient.diagnoses:
        return _result(
            spec, CriterionStatus.WARNING,
            display_value="Not documented", requirement=requirement,
            reason="No diagnoses documented",
        )
    found = find_comorbidities(patient.diagnoses, spec.qualifying_conditions or None)
    met = len(found) >= spec.min_count
    return _result(
        spec, CriterionStatus.MET if met else CriterionStatus.NOT_MET,
        value=len(found),
        display_value=", ".join(found) if found else "None",
        requirement=requirement,
        reason=(
            f"Qualifying conditions: {', '.join(found)}"
            if found else "No qualifying comorbidity in diagnosis list"
        ),
    )


@register_evaluator(CriterionType.STEP_THERAPY)
def evaluate_step_therapy(spec: CriterionSpec, patient: PatientSnapshot, context: DrugContext) -> EvaluationResult:
    """
    Prior trials the plan requires before this drug.

    required_medications must all appear in the patient's history;
    preferred_alternatives need only one. Names match by case-insensitive
    containment so "Metformin ER" counts as metformin.
    """
    tried = patient.medications_tried()

    def was_tried(name: str) -> bool:
        key = name.strip().casefold()
        return any(key in med for med in tried)

    if spec.required_medications:
        required = spec.required_medications
        done = [name for name in required if was_tried(name)]
        met = len(done) == len(required)
        return _result(
            spec, CriterionStatus.MET if met else CriterionStatus.NOT_MET,
            value=len(done),
            display_value=f"{len(done)}/{len(required)} completed",
            requirement="Trial of all: " + ", ".join(required),
            reason=(
                "Completed trials of all required medications" if met
                else "No documented trial of " + ", ".join(n for n in required if n not in done)
            ),
        )
    if spec.preferred_alternatives:
        preferred = spec.preferred_alternatives
        done = [name for name in preferred if was_tried(name)]
        return _result(
            spec, CriterionStatus.MET if done else CriterionStatus.NOT_MET,
            value=bool(done),
            display_value="Completed" if done else "Required",
            requirement="Trial of preferred alternative: " + " or ".join(preferred),
            reason=(
                f"Tried preferred alternative {done[0]}" if done
                else f"Must try {' or '.join(preferred)} first"
            ),
        )
    return _result(
        spec, CriterionStatus.NOT_MET,
        value=False,
        display_value="Not documented",
        requirement="Step therapy required",
        reason="Step therapy requirements not documented",
    )


def _find_lab(patient: PatientSnapshot, code: str) -> Optional[LabValue]:
    key = code.strip().casefold()
    for lab_code, lab in patient.labs.items():
        if lab_code.strip().casefold() == key:
            return lab
    return None


@register_evaluator(CriterionType.LAB_VALUE)
def evaluate_lab_value(spec: CriterionSpec, patient: PatientSnapshot, context: DrugContext) -> EvaluationResult:
    code = spec.lab_code or ""
    bounds = []
    if spec.min_value is not None:
        bounds.append(f">={spec.min_value:g}")
    if spec.max_value is not None:
        bounds.append(f"<={spec.max_value:g}")
    requirement = f"{code} " + (" and ".join(bounds) if bounds else "on file")

    lab = _find_lab(patient, code)
    if lab is None or lab.value is None:
        return _result(
            spec, CriterionStatus.WARNING,
            display_value="Not documented", requirement=requirement,
            reason=f"No {code} result on file",
        )
    display = f"{lab.value:g} {lab.unit}".strip() if lab.unit else f"{lab.value:g}"
    too_low = spec.min_value is not None and lab.value < spec.min_value
    too_high = spec.max_value is not None and lab.value > spec.max_value
    if too_low or too_high:
        return _result(
            spec, CriterionStatus.NOT_MET,
            value=lab.value, display_value=display, requirement=requirement,
            reason=f"{code} {display} outside required range ({requirement})",
        )
    return _result(
        spec, CriterionStatus.MET,
        value=lab.value, display_value=display, requirement=requirement,
        reason=f"{code} {display} meets {requirement}",
    )


_unregistered = [t.value for t in CriterionType if t not in EVALUATOR_REGISTRY]
if _unregistered:
    raise RuntimeError(f"No evaluator registered for criterion types: {_unregistered}")


# --- Dispatch ---

def evaluate(patient: PatientSnapshot, spec: CriterionSpec, context: DrugContext) -> EvaluationResult:
    """Evaluate a single criterion using the registry. Never raises."""
    evaluator = EVALUATOR_REGISTRY.get(spec.type) if spec.is_supported_type else None
    if evaluator is None:
        error = UnsupportedCriterionError(spec.type_name)
        logger.warning(
            "Unsupported criterion type",
            criterion_type=spec.type_name,
            drug=context.drug_name,
            error=str(error),
        )
        return _result(spec, CriterionStatus.NOT_APPLICABLE, display_value="N/A", reason=str(error))
    try:
        return evaluator(spec, patient, context)
    except Exception as exc:
        logger.warning(
            "Criterion evaluation failed",
            criterion_type=spec.type_name,
            drug=context.drug_name,
            error=str(exc),
        )
        return _result(
            spec, CriterionStatus.NOT_APPLICABLE,
            display_value="N/A",
            reason=f"Evaluation error: {type(exc).__name__}",
        )


def evaluate_all(
    patient: PatientSnapshot,
    specs: List[CriterionSpec],
    context: DrugContext,
) -> List[EvaluationResult]:
    return [evaluate(patient, spec, context) for spec in specs]
