"""Bundled default coverage catalog and medication reference set.

Used when no coverage_config_path / medication_reference_path is configured.
Shapes match the JSON configuration files: {plan: {drug: record}} for
coverage and an ordered list of medication profiles for references.
"""

from typing import Any, Dict, List

_SEMAGLUTIDE_WM_SCHEDULE = [
    {"dose": "0.25 mg", "phase": "starting", "durationWeeks": 4},
    {"dose": "0.5 mg", "phase": "titration", "durationWeeks": 4},
    {"dose": "1 mg", "phase": "titration", "durationWeeks": 4},
    {"dose": "1.7 mg", "phase": "titration", "durationWeeks": 4},
    {"dose": "2.4 mg", "phase": "maintenance"},
]

_SEMAGLUTIDE_T2D_SCHEDULE = [
    {"dose": "0.25 mg", "phase": "starting", "durationWeeks": 4},
    {"dose": "0.5 mg", "phase": "titration", "durationWeeks": 4},
    {"dose": "1 mg", "phase": "titration", "durationWeeks": 4},
    {"dose": "2 mg", "phase": "maintenance"},
]

_TIRZEPATIDE_SCHEDULE = [
    {"dose": "2.5 mg", "phase": "starting", "durationWeeks": 4},
    {"dose": "5 mg", "phase": "titration", "durationWeeks": 4},
    {"dose": "7.5 mg", "phase": "titration", "durationWeeks": 4},
    {"dose": "10 mg", "phase": "titration", "durationWeeks": 4},
    {"dose": "12.5 mg", "phase": "titration", "durationWeeks": 4},
    {"dose": "15 mg", "phase": "maintenance"},
]

_LIRAGLUTIDE_SCHEDULE = [
    {"dose": "0.6 mg", "phase": "starting", "durationWeeks": 1},
    {"dose": "1.2 mg", "phase": "titration", "durationWeeks": 1},
    {"dose": "1.8 mg", "phase": "titration", "durationWeeks": 1},
    {"dose": "2.4 mg", "phase": "titration", "durationWeeks": 1},
    {"dose": "3 mg", "phase": "maintenance"},
]


def _weight_management_criteria(threshold: float) -> List[Dict[str, Any]]:
    """Criteria set shared by the chronic weight management agents."""
    return [
        {"type": "age", "rule": "Patient is 18 years or older", "minAge": 18},
        {
            "type": "doseProgression",
            "rule": "Patient has completed prior dose in titration schedule (not required for starting dose)",
        },
        {
            "type": "maintenance",
            "rule": "Completed at least 3 months of therapy at a stable maintenance dose",
            "phases": ["maintenance"],
            "minMaintenanceMonths": 3,
        },
        {
            "type": "weightLoss",
            "rule": f"Lost at least {threshold:g}% of baseline body weight",
            "phases": ["maintenance"],
            "thresholdPercent": threshold,
        },
        {
            "type": "weightMaintained",
            "rule": f"Maintained initial {threshold:g}% weight loss",
            "phases": ["maintenance"],
            "thresholdPercent": threshold,
        },
        {"type": "weightProgram", "rule": "Participated in a comprehensive weight management program"},
        {
            "type": "bmi",
            "rule": "BMI >= 30, or BMI >= 27 with comorbidity (hypertension, diabetes, dyslipidemia)",
            "minBMI": 30,
            "comorbidityBMIFloor": 27,
        },
        {
            "type": "documentation",
            "rule": "Documentation of chart note or supporting evidence",
            "requiredDocuments": ["chart_note"],
        },
    ]


def _diabetes_criteria(document: str) -> List[Dict[str, Any]]:
    return [
        {"type": "age", "rule": "Patient is 18 years or older", "minAge": 18},
        {"type": "doseProgression", "rule": "Patient has completed prior dose in titration schedule"},
        {
            "type": "comorbidity",
            "rule": "Diagnosis of type 2 diabetes mellitus",
            "qualifyingConditions": ["type 2 diabetes"],
        },
        {
            "type": "documentation",
            "rule": "Recent A1C result on file",
            "requiredDocuments": [document],
        },
    ]


def _not_covered(plan: str) -> Dict[str, Any]:
    return {
        "covered": False,
        "tier": "Not Covered",
        "copay": "N/A",
        "paRequired": False,
        "note": f"Not covered by {plan}",
    }


def _preferred_glp1(copay: str, note: str, tier: str = "Tier 1 - Preferred Brand") -> Dict[str, Any]:
    return {
        "covered": True,
        "tier": tier,
        "copay": copay,
        "paRequired": False,
        "preferred": True,
        "note": note,
    }


_MEDICARE_WEIGHT_EXCLUSION = {
    "weight management": {
        "covered": False,
        "tier": "Not Covered",
        "copay": "N/A",
        "paRequired": False,
        "note": "Weight loss medications are excluded from Medicare coverage. Covered only for type 2 diabetes.",
    }
}


DEFAULT_COVERAGE_CATALOG: Dict[str, Dict[str, Dict[str, Any]]] = {
    "CVS Health (Aetna)": {
        "Wegovy": {
            "covered": True,
            "tier": "Tier 2 - Preferred Brand",
            "copay": "$60",
            "paRequired": True,
            "preferred": True,
            "doseSchedule": _SEMAGLUTIDE_WM_SCHEDULE,
            "criteria": _weight_management_criteria(5),
            "note": "Preferred weight loss agent, PA required.",
        },
        "Ozempic": {
            "covered": True,
            "tier": "Tier 2 - Preferred Brand",
            "copay": "$60",
            "paRequired": True,
            "preferred": True,
            "doseSchedule": _SEMAGLUTIDE_T2D_SCHEDULE,
            "criteria": _weight_management_criteria(5),
            "note": "Preferred GLP-1, PA required.",
            "indicationOverrides": {
                "weight management": {
                    "note": "Off-label use for weight loss. Higher denial risk than diabetes indication.",
                },
            },
        },
        "Saxenda": {
            "covered": True,
            "tier": "Tier 3 - Non-Preferred Brand",
            "copay": "$80",
            "paRequired": True,
            "doseSchedule": _LIRAGLUTIDE_SCHEDULE,
            "criteria": _weight_management_criteria(4),
            "note": "Non-preferred weight loss agent, PA required.",
        },
        "Mounjaro": {
            "covered": True,
            "tier": "Tier 2 - Preferred Brand",
            "copay": "$60",
            "paRequired": True,
            "preferred": True,
            "doseSchedule": _TIRZEPATIDE_SCHEDULE,
            "criteria": _diabetes_criteria("a1c_result"),
            "note": "Covered for type 2 diabetes, PA required.",
        },
        "Zepbound": {**_not_covered("CVS Health (Aetna)"), "note": "Not covered."},
    },
    "Medicare": {
        "Wegovy": _not_covered("Medicare"),
        "Zepbound": _not_covered("Medicare"),
        "Trulicity": {
            "covered": True,
            "tier": "Tier 3 - Non-Preferred Brand",
            "copay": "$60",
            "paRequired": True,
            "stepTherapy": True,
            "note": "Non-preferred GLP-1 for Medicare patients",
        },
        "Ozempic": {
            **_preferred_glp1("$20", "Preferred GLP-1 for Medicare patients"),
            "indicationOverrides": _MEDICARE_WEIGHT_EXCLUSION,
        },
        "Mounjaro": {
            **_preferred_glp1("$20", "Preferred GLP-1 for Medicare patients"),
            "indicationOverrides": _MEDICARE_WEIGHT_EXCLUSION,
        },
    },
    "Medicaid": {
        "Wegovy": _not_covered("Medicaid"),
        "Zepbound": _not_covered("Medicaid"),
        "Trulicity": {
            "covered": True,
            "tier": "Tier 2 - Non-Preferred Brand",
            "copay": "$40",
            "paRequired": True,
            "stepTherapy": True,
            "note": "Non-preferred GLP-1 for Medicaid",
        },
        "Ozempic": _preferred_glp1("$10", "Preferred GLP-1 for Medicaid"),
        "Mounjaro": _preferred_glp1("$10", "Preferred GLP-1 for Medicaid"),
    },
    "Blue Cross": {
        "Wegovy": _not_covered("Blue Cross"),
        "Zepbound": _not_covered("Blue Cross"),
        "Trulicity": {
            "covered": True,
            "tier": "Tier 3 - Non-Preferred Brand",
            "copay": "$70",
            "paRequired": True,
            "stepTherapy": True,
            "preferredAlternative": "Ozempic",
            "note": "Non-preferred GLP-1. Preferred: Ozempic.",
            "criteria": [
                {"type": "age", "rule": "Patient is 18 years or older", "minAge": 18},
                {
                    "type": "comorbidity",
                    "rule": "Diagnosis of type 2 diabetes mellitus",
                    "qualifyingConditions": ["type 2 diabetes"],
                },
                {
                    "type": "stepTherapy",
                    "rule": "Trial of metformin before a non-preferred GLP-1",
                    "requiredMedications": ["metformin"],
                },
                {"type": "labValue", "rule": "A1C of 6.5% or higher", "labCode": "A1C", "minValue": 6.5},
            ],
        },
        "Ozempic": _preferred_glp1("$25", "Preferred GLP-1 for Blue Cross", tier="Tier 2 - Preferred Brand"),
        "Mounjaro": {
            "covered": True,
            "tier": "Tier 3 - Non-Preferred Brand",
            "copay": "$70",
            "paRequired": False,
            "preferredAlternative": "Ozempic",
            "note": "Non-preferred GLP-1. Preferred: Ozempic.",
        },
    },
    "Commercial": {
        "Wegovy": _not_covered("Commercial"),
        "Zepbound": _not_covered("Commercial"),
        "Trulicity": {
            "covered": True,
            "tier": "Tier 2 - Non-Preferred Brand",
            "copay": "$50",
            "paRequired": True,
            "stepTherapy": True,
            "note": "Non-preferred GLP-1 for Commercial plans",
        },
        "Ozempic": _preferred_glp1("$15", "Preferred GLP-1 for Commercial plans"),
        "Mounjaro": _preferred_glp1("$15", "Preferred GLP-1 for Commercial plans"),
    },
    "UnitedHealthcare PPO": {
        "Wegovy": _not_covered("UnitedHealthcare PPO"),
        "Zepbound": _not_covered("UnitedHealthcare PPO"),
        "Trulicity": {
            "covered": True,
            "tier": "Tier 3 - Non-Preferred Brand",
            "copay": "$75",
            "paRequired": True,
            "stepTherapy": True,
            "note": "Non-preferred GLP-1 agonist",
        },
        "Ozempic": _preferred_glp1("$30", "Preferred GLP-1 agonist - first-line option"),
        "Mounjaro": _preferred_glp1("$30", "Preferred GLP-1 agonist - first-line option"),
    },
}


# List order is candidate priority when ranking alternatives
DEFAULT_MEDICATION_REFERENCES: List[Dict[str, Any]] = [
    {
        "name": "Wegovy",
        "genericName": "semaglutide",
        "category": "GLP-1 receptor agonist",
        "indication": "weight management",
        "startingDose": "0.25 mg",
        "maxDose": "2.4 mg",
        "availableStrengths": ["0.25 mg", "0.5 mg", "1 mg", "1.7 mg", "2.4 mg"],
        "rxcui": "2534258",
    },
    {
        "name": "Ozempic",
        "genericName": "semaglutide",
        "category": "GLP-1 receptor agonist",
        "indication": "type 2 diabetes",
        "startingDose": "0.25 mg",
        "maxDose": "2 mg",
        "availableStrengths": ["0.25 mg", "0.5 mg", "1 mg", "2 mg"],
        "rxcui": "1991317",
    },
    {
        "name": "Zepbound",
        "genericName": "tirzepatide",
        "category": "GLP-1/GIP receptor agonist",
        "indication": "weight management",
        "startingDose": "2.5 mg",
        "maxDose": "15 mg",
        "availableStrengths": ["2.5 mg", "5 mg", "7.5 mg", "10 mg", "12.5 mg", "15 mg"],
        "rxcui": "2650259",
    },
    {
        "name": "Saxenda",
        "genericName": "liraglutide",
        "category": "GLP-1 receptor agonist",
        "indication": "weight management",
        "startingDose": "0.6 mg",
        "maxDose": "3 mg",
        "availableStrengths": ["0.6 mg", "1.2 mg", "1.8 mg", "2.4 mg", "3 mg"],
    },
    {
        "name": "Mounjaro",
        "genericName": "tirzepatide",
        "category": "GLP-1/GIP receptor agonist",
        "indication": "type 2 diabetes",
        "startingDose": "2.5 mg",
        "maxDose": "15 mg",
        "availableStrengths": ["2.5 mg", "5 mg", "7.5 mg", "10 mg", "12.5 mg", "15 mg"],
    },
    {
        "name": "Trulicity",
        "genericName": "dulaglutide",
        "category": "GLP-1 receptor agonist",
        "indication": "type 2 diabetes",
        "startingDose": "0.75 mg",
        "maxDose": "4.5 mg",
        "availableStrengths": ["0.75 mg", "1.5 mg", "3 mg", "4.5 mg"],
    },
]
