"""Criteria applicability filter - which criteria apply to this phase/continuation state."""

from typing import List, Optional

from pa_engine.models.coverage import CoverageRecord, CriterionSpec
from pa_engine.models.enums import BASIC_ELIGIBILITY_TYPES, CONTINUATION_EXEMPT_TYPES, DosePhase
from pa_engine.config.logging_config import get_logger

logger = get_logger(__name__)


def _applies_to_phase(spec: CriterionSpec, phase: Optional[DosePhase]) -> bool:
    # No phase (no schedule or dose not found) disables phase filtering
    return phase is None or not spec.phases or phase in spec.phases


def _applies_to_continuation(spec: CriterionSpec, continuation: bool) -> bool:
    if not continuation:
        return True
    if spec.type in CONTINUATION_EXEMPT_TYPES:
        return False
    if spec.type in BASIC_ELIGIBILITY_TYPES:
        return True
    return not spec.skip_on_continuation


def applicable_criteria(
    coverage: CoverageRecord,
    phase: Optional[DosePhase],
    continuation: bool,
) -> List[CriterionSpec]:
    """
    Criteria to evaluate, in configuration order.

    Continuations are re-checked on basic eligibility only: weight loss,
    weight maintenance, program and step-therapy criteria were cleared in a
    prior cycle.
    An empty list means the drug needs no PA checks for this request.
    """
    selected = [
        spec for spec in coverage.criteria
        if _applies_to_phase(spec, phase) and _applies_to_continuation(spec, continuation)
    ]
    logger.debug(
        "Applicable criteria selected",
        drug=coverage.drug_name,
        phase=phase.value if phase else None,
        continuation=continuation,
        selected=[s.type_name for s in selected],
        skipped=len(coverage.criteria) - len(selected),
    )
    return selected
