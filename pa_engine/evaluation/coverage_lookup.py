"""Coverage catalog - resolves a CoverageRecord for (insurance plan, drug).

Plan and drug names match case-, whitespace- and spacing-insensitively.
Records may carry per-indication overrides (a dual-indication drug such as
Ozempic prescribed for weight management can be excluded under a plan that
covers it for diabetes).
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from pa_engine.models.coverage import CoverageRecord
from pa_engine.evaluation.exceptions import CoverageNotFoundError, MalformedCriterionError, ConfigurationError
from pa_engine.evaluation.reference_data import DEFAULT_COVERAGE_CATALOG
from pa_engine.config.logging_config import get_logger

logger = get_logger(__name__)

# Indication spellings seen in requests -> the key used in configuration
INDICATION_ALIASES = {
    "weight loss": "weight management",
    "obesity": "weight management",
    "chronic weight management": "weight management",
    "diabetes": "type 2 diabetes",
    "t2dm": "type 2 diabetes",
    "type 2 diabetes mellitus": "type 2 diabetes",
}


def normalize_name(value: str) -> str:
    """Trim, case-fold and collapse internal whitespace."""
    return " ".join(str(value).split()).casefold()


def normalize_indication(value: str) -> str:
    key = normalize_name(value.replace("_", " "))
    return INDICATION_ALIASES.get(key, key)


class CoverageCatalog:
    """Read-only index of coverage records keyed by normalized (plan, drug)."""

    def __init__(self, records: List[CoverageRecord]):
        self._records: Dict[Tuple[str, str], CoverageRecord] = {}
        for record in records:
            key = (normalize_name(record.insurance_plan), normalize_name(record.drug_name))
            if key in self._records:
                logger.warning(
                    "Duplicate coverage record, keeping last",
                    plan=record.insurance_plan,
                    drug=record.drug_name,
                )
            self._records[key] = record

    def __len__(self) -> int:
        return len(self._records)

    @classmethod
    def from_mapping(cls, data: Dict[str, Dict[str, Dict[str, Any]]]) -> "CoverageCatalog":
        """Build from {plan: {drug: record}}. Malformed records raise MalformedCriterionError."""
        records = []
        for plan, drugs in data.items():
            for drug, raw in drugs.items():
                try:
                    records.append(
                        CoverageRecord.model_validate({**raw, "insurance_plan": plan, "drug_name": drug})
                    )
                except ValidationError as e:
                    raise MalformedCriterionError(
                        f"Invalid coverage record for '{drug}' under '{plan}': {e}"
                    ) from e
        logger.info("Coverage catalog loaded", plans=len(data), records=len(records))
        return cls(records)

    @classmethod
    def from_json_file(cls, path: str) -> "CoverageCatalog":
        config_path = Path(path)
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Could not load coverage config {config_path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Coverage config {config_path} must be a JSON object keyed by plan")
        return cls.from_mapping(data)

    def plans(self) -> List[str]:
        seen: Dict[str, str] = {}
        for record in self._records.values():
            seen.setdefault(normalize_name(record.insurance_plan), record.insurance_plan)
        return list(seen.values())

    def drugs_for_plan(self, plan: str) -> List[str]:
        plan_key = normalize_name(plan)
        return [r.drug_name for (p, _), r in self._records.items() if p == plan_key]

    def get(self, plan: str, drug: str) -> Optional[CoverageRecord]:
        return self._records.get((normalize_name(plan), normalize_name(drug)))

    def resolve(self, plan: str, drug: str, indication: Optional[str] = None) -> CoverageRecord:
        """
        Resolve coverage for a plan/drug pair.

        Applies the record's indication override when the normalized
        indication matches one. Raises CoverageNotFoundError when no record
        exists for the pair.
        """
        record = self.get(plan, drug)
        if record is None:
            raise CoverageNotFoundError(plan, drug)
        if indication and record.indication_overrides:
            wanted = normalize_indication(indication)
            for key, override in record.indication_overrides.items():
                if normalize_indication(key) == wanted:
                    logger.info("Applying indication override", plan=plan, drug=drug, indication=wanted)
                    return record.with_override(override)
        return record


def resolve_coverage(
    catalog: CoverageCatalog,
    insurance_plan: str,
    drug_name: str,
    indication: Optional[str] = None,
) -> CoverageRecord:
    return catalog.resolve(insurance_plan, drug_name, indication)


def load_coverage_catalog(settings) -> CoverageCatalog:
    """Catalog from settings.coverage_config_path, or the bundled default."""
    if settings.coverage_config_path:
        logger.info("Loading coverage config", path=settings.coverage_config_path)
        return CoverageCatalog.from_json_file(settings.coverage_config_path)
    return CoverageCatalog.from_mapping(DEFAULT_COVERAGE_CATALOG)
