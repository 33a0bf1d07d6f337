"""Shared fixtures for engine tests."""

from datetime import date
from typing import Dict, List, Optional

import pytest

from pa_engine.config.settings import Settings
from pa_engine.evaluation.coverage_lookup import CoverageCatalog
from pa_engine.evaluation.drug_metadata import load_medication_references
from pa_engine.evaluation.reference_data import DEFAULT_COVERAGE_CATALOG
from pa_engine.models.patient import (
    ClinicalNotes, Demographics, LabValue, Measurement, PatientSnapshot, TherapyHistoryEntry, Vitals,
)

AS_OF = date(2025, 6, 1)
AETNA = "CVS Health (Aetna)"


def make_patient(
    age: Optional[int] = 45,
    bmi: Optional[float] = 32.0,
    diagnoses: Optional[List[str]] = None,
    history: Optional[List[TherapyHistoryEntry]] = None,
    labs: Optional[Dict[str, float]] = None,
    medications: Optional[List[str]] = None,
    **notes,
) -> PatientSnapshot:
    return PatientSnapshot(
        patient_id="test-patient",
        demographics=Demographics(age=age, sex="female"),
        vitals=Vitals(bmi=Measurement(value=bmi, unit="kg/m2") if bmi is not None else None),
        diagnoses=diagnoses or [],
        therapy_history=history or [],
        labs={code: LabValue(value=value) for code, value in (labs or {}).items()},
        prior_medications=medications or [],
        clinical_notes=ClinicalNotes(**notes),
    )


def history_entry(drug: str, dose: str, start: str) -> TherapyHistoryEntry:
    return TherapyHistoryEntry(drug=drug, dose=dose, start_date=date.fromisoformat(start))


@pytest.fixture
def patient_factory():
    return make_patient


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)


@pytest.fixture
def catalog() -> CoverageCatalog:
    return CoverageCatalog.from_mapping(DEFAULT_COVERAGE_CATALOG)


@pytest.fixture
def references(settings):
    return load_medication_references(settings)


@pytest.fixture
def wegovy(catalog):
    return catalog.resolve(AETNA, "Wegovy")
