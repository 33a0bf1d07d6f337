"""Dose normalization, phase classification and continuation detection.

All dose comparisons in the engine go through parse_dose/doses_match so
"1 mg", "1mg" and "1 MG" are treated as the same dose.
"""

import re
from typing import Optional, Tuple

from pa_engine.models.coverage import CoverageRecord, DoseStep
from pa_engine.models.enums import DosePhase
from pa_engine.models.patient import PatientSnapshot, TherapyHistoryEntry
from pa_engine.evaluation.exceptions import DoseNotInScheduleError
from pa_engine.config.logging_config import get_logger

logger = get_logger(__name__)

_DOSE_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?|\.\d+)\s*([a-zA-Zµ/]*)\s*$")


def parse_dose(dose: str) -> Optional[Tuple[float, str]]:
    """Split a dose string into (value, lower-cased unit). None if unparseable."""
    if dose is None:
        return None
    match = _DOSE_PATTERN.match(str(dose))
    if not match:
        return None
    return float(match.group(1)), match.group(2).lower()


def normalize_dose(dose: str) -> str:
    """Canonical rendering, e.g. ' 1.70 MG' -> '1.7mg'."""
    parsed = parse_dose(dose)
    if parsed is None:
        return "".join(str(dose).split()).casefold()
    value, unit = parsed
    return f"{value:g}{unit}"


def doses_match(a: str, b: str) -> bool:
    """Numeric value equal and units equal (or one side has no unit)."""
    pa, pb = parse_dose(a), parse_dose(b)
    if pa is None or pb is None:
        return "".join(str(a).split()).casefold() == "".join(str(b).split()).casefold()
    if abs(pa[0] - pb[0]) > 1e-9:
        return False
    return pa[1] == pb[1] or not pa[1] or not pb[1]


def schedule_index(coverage: CoverageRecord, dose: str) -> Optional[int]:
    for i, step in enumerate(coverage.dose_schedule):
        if doses_match(step.dose, dose):
            return i
    return None


def phase_for_position(index: int, length: int) -> DosePhase:
    if length < 1 or not 0 <= index < length:
        raise ValueError(f"index {index} outside schedule of length {length}")
    if index == length - 1:
        return DosePhase.MAINTENANCE
    if index == 0:
        return DosePhase.STARTING
    return DosePhase.TITRATION


def classify_phase(coverage: CoverageRecord, dose: Optional[str]) -> Optional[DosePhase]:
    """
    Derive the dose phase from the dose's position in the schedule.

    Returns None when the record has no schedule or no dose was selected.
    Raises DoseNotInScheduleError when the dose does not match any entry;
    callers treat that as a warning and skip phase filtering.
    """
    if not coverage.dose_schedule or not dose:
        return None
    index = schedule_index(coverage, dose)
    if index is None:
        raise DoseNotInScheduleError(coverage.drug_name, dose)
    return phase_for_position(index, len(coverage.dose_schedule))


def previous_step(coverage: CoverageRecord, dose: str) -> Optional[DoseStep]:
    index = schedule_index(coverage, dose)
    if not index:
        return None
    return coverage.dose_schedule[index - 1]


def final_step(coverage: CoverageRecord) -> Optional[DoseStep]:
    return coverage.dose_schedule[-1] if coverage.dose_schedule else None


def most_recent_entry(patient: PatientSnapshot, drug: str) -> Optional[TherapyHistoryEntry]:
    history = patient.history_for(drug)
    return history[-1] if history else None


def detect_continuation(patient: PatientSnapshot, drug: str, dose: Optional[str]) -> bool:
    """
    True when the patient is already established on the selected dose.

    The most recent history entry for the drug must be the same dose and the
    chart must show time on maintenance dose.
    """
    if not dose:
        return False
    latest = most_recent_entry(patient, drug)
    if latest is None or not doses_match(latest.dose, dose):
        return False
    continuation = patient.clinical_notes.months_on_maintenance_dose > 0
    logger.debug(
        "Continuation check",
        drug=drug,
        dose=dose,
        latest_dose=latest.dose,
        months_on_dose=patient.clinical_notes.months_on_maintenance_dose,
        continuation=continuation,
    )
    return continuation
