"""External drug metadata for the enhanced evaluation path.

Identifies the drug, then fans out approval and formulation lookups
concurrently. Each call is bounded by a timeout and retried on transient
errors. Any failure degrades to the local reference profile
(validated=False); metadata problems never fail an evaluation.
"""

import asyncio
import json
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol

from pydantic import BaseModel, Field, ValidationError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from pa_engine.models.assessment import Factor
from pa_engine.models.reference import MedicationReference, find_reference
from pa_engine.evaluation.coverage_lookup import normalize_indication
from pa_engine.evaluation.dosing import doses_match, normalize_dose
from pa_engine.evaluation.exceptions import ConfigurationError, MetadataLookupError
from pa_engine.evaluation.reference_data import DEFAULT_MEDICATION_REFERENCES
from pa_engine.config.logging_config import get_logger

logger = get_logger(__name__)

FDA_APPROVED_BONUS = 10
CLASS_CONFIRMED_BONUS = 5
DOSE_NOT_FORMULATED_PENALTY = -15
UNVERIFIED_PENALTY = -5

DEFAULT_INDICATION = "weight management"


class DrugIdentity(BaseModel):
    rxcui: Optional[str] = None
    name: str
    generic_name: str
    classes: List[str] = Field(default_factory=list)


class ApprovalInfo(BaseModel):
    approved: bool
    max_dose: Optional[str] = None


class Formulation(BaseModel):
    strength: str


class DrugMetadataProvider(Protocol):
    """External drug reference (an RxNorm/FDA client in production)."""

    async def identify(self, name: str) -> Optional[DrugIdentity]:
        ...

    async def approval_info(self, generic_name: str, indication: str) -> Optional[ApprovalInfo]:
        ...

    async def formulations(self, generic_name: str) -> List[Formulation]:
        ...


class DrugMetadataProfile(BaseModel):
    """Metadata used to adjust the likelihood, external or fallback."""
    drug_name: str
    generic_name: Optional[str] = None
    rxcui: Optional[str] = None
    classes: List[str] = Field(default_factory=list)
    approved: Optional[bool] = None
    max_dose: Optional[str] = None
    strengths: List[str] = Field(default_factory=list)
    validated: bool = False
    source: str = "fallback"


class StaticDrugMetadataProvider:
    """Answers metadata lookups from the local medication reference set."""

    def __init__(self, references: List[MedicationReference]):
        self.references = references

    def _by_generic(self, generic_name: str) -> List[MedicationReference]:
        key = generic_name.strip().casefold()
        return [r for r in self.references if r.generic_name.casefold() == key]

    async def identify(self, name: str) -> Optional[DrugIdentity]:
        ref = find_reference(self.references, name)
        if ref is None:
            return None
        return DrugIdentity(rxcui=ref.rxcui, name=ref.name, generic_name=ref.generic_name, classes=[ref.category])

    async def approval_info(self, generic_name: str, indication: str) -> Optional[ApprovalInfo]:
        refs = self._by_generic(generic_name)
        if not refs:
            return None
        wanted = normalize_indication(indication)
        matching = [r for r in refs if r.fda_approved and normalize_indication(r.indication) == wanted]
        if not matching:
            return ApprovalInfo(approved=False)
        return ApprovalInfo(approved=True, max_dose=matching[0].max_dose)

    async def formulations(self, generic_name: str) -> List[Formulation]:
        seen = {}
        for ref in self._by_generic(generic_name):
            for strength in ref.available_strengths:
                seen.setdefault(normalize_dose(strength), strength)
        return [Formulation(strength=s) for s in seen.values()]


def load_medication_references(settings) -> List[MedicationReference]:
    """Reference set from settings.medication_reference_path, or the bundled default."""
    raw: Any = DEFAULT_MEDICATION_REFERENCES
    if settings.medication_reference_path:
        path = Path(settings.medication_reference_path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Could not load medication references {path}: {e}") from e
        if isinstance(raw, dict):
            raw = raw.get("medications", [])
    try:
        return [MedicationReference.model_validate(item) for item in raw]
    except ValidationError as e:
        raise ConfigurationError(f"Invalid medication reference: {e}") from e


def fallback_profile(drug_name: str, reference: Optional[MedicationReference]) -> DrugMetadataProfile:
    """Local profile used when external lookups fail. Never validated."""
    if reference is None:
        return DrugMetadataProfile(drug_name=drug_name)
    return DrugMetadataProfile(
        drug_name=drug_name,
        generic_name=reference.generic_name,
        rxcui=reference.rxcui,
        classes=[reference.category],
        approved=reference.fda_approved,
        max_dose=reference.max_dose,
        strengths=list(reference.available_strengths),
    )


async def _bounded_call(
    fn: Callable[..., Awaitable[Any]],
    *args,
    timeout: float,
    attempts: int,
) -> Any:
    """One provider call: timeout per attempt, retry on transient errors."""
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(max(1, attempts)),
        wait=wait_exponential(multiplier=0.1, min=0.1, max=1),
        retry=retry_if_exception_type((MetadataLookupError, ConnectionError)),
        reraise=True,
    ):
        with attempt:
            return await asyncio.wait_for(fn(*args), timeout=timeout)


async def _lookup(cache, cache_type: str, params: Dict[str, str], loader: Callable[[], Awaitable[Any]]) -> Any:
    if cache is None:
        return await loader()
    return await cache.get_or_load(cache_type, params, loader)


async def resolve_drug_metadata(
    provider: DrugMetadataProvider,
    drug_name: str,
    indication: Optional[str] = None,
    reference: Optional[MedicationReference] = None,
    timeout: float = 4.0,
    retry_attempts: int = 2,
    cache=None,
) -> DrugMetadataProfile:
    """
    Resolve external metadata for a drug.

    Identification runs first (the generic name keys the other lookups);
    approval and formulation lookups then run concurrently. Any failure,
    timeout or unidentified drug returns the fallback profile.
    """
    indication = indication or (reference.indication if reference else DEFAULT_INDICATION)

    async def load_identity():
        identity = await _bounded_call(provider.identify, drug_name, timeout=timeout, attempts=retry_attempts)
        return identity.model_dump(mode="json") if identity is not None else None

    try:
        identity_data = await _lookup(cache, "drug_identity", {"name": drug_name.casefold()}, load_identity)
    except Exception as e:
        logger.warning("Drug identification failed, using fallback profile", drug=drug_name, error=str(e),
                       error_type=type(e).__name__)
        return fallback_profile(drug_name, reference)
    if identity_data is None:
        logger.warning("Drug not found in external reference", drug=drug_name)
        return fallback_profile(drug_name, reference)
    identity = DrugIdentity.model_validate(identity_data)

    async def load_approval():
        info = await _bounded_call(
            provider.approval_info, identity.generic_name, indication, timeout=timeout, attempts=retry_attempts
        )
        return info.model_dump(mode="json") if info is not None else None

    async def load_formulations():
        forms = await _bounded_call(provider.formulations, identity.generic_name, timeout=timeout, attempts=retry_attempts)
        return [f.model_dump(mode="json") for f in forms]

    approval_data, formulation_data = await asyncio.gather(
        _lookup(cache, "approval_info",
                {"generic": identity.generic_name.casefold(), "indication": normalize_indication(indication)},
                load_approval),
        _lookup(cache, "formulations", {"generic": identity.generic_name.casefold()}, load_formulations),
        return_exceptions=True,
    )
    for label, outcome in (("approval_info", approval_data), ("formulations", formulation_data)):
        if isinstance(outcome, Exception):
            logger.warning("Drug metadata lookup failed, using fallback profile", drug=drug_name, lookup=label,
                           error=str(outcome), error_type=type(outcome).__name__)
            return fallback_profile(drug_name, reference)

    approval = ApprovalInfo.model_validate(approval_data) if approval_data else None
    strengths = [Formulation.model_validate(f).strength for f in formulation_data or []]
    logger.debug("Drug metadata resolved", drug=drug_name, generic=identity.generic_name,
                 approved=approval.approved if approval else None, strengths=len(strengths))
    return DrugMetadataProfile(
        drug_name=drug_name,
        generic_name=identity.generic_name,
        rxcui=identity.rxcui,
        classes=identity.classes,
        approved=approval.approved if approval else None,
        max_dose=approval.max_dose if approval else None,
        strengths=strengths,
        validated=True,
        source="external",
    )


def metadata_factors(
    profile: DrugMetadataProfile,
    reference: Optional[MedicationReference] = None,
    dose: Optional[str] = None,
) -> List[Factor]:
    """Signed likelihood factors contributed by drug metadata."""
    if not profile.validated:
        return [Factor(
            name="Drug not verified",
            impact_percent=UNVERIFIED_PENALTY,
            detail=f"Could not verify {profile.drug_name} in external drug reference; using local profile",
        )]

    factors = []
    if profile.approved:
        factors.append(Factor(
            name="FDA approved",
            impact_percent=FDA_APPROVED_BONUS,
            detail=f"{profile.generic_name} is FDA approved for this indication",
        ))
    if reference is not None:
        category = reference.category.casefold()
        if any(category == c.casefold() for c in profile.classes):
            factors.append(Factor(
                name="Therapeutic class",
                impact_percent=CLASS_CONFIRMED_BONUS,
                detail=f"Confirmed {reference.category}",
            ))
    if dose and profile.strengths and not any(doses_match(s, dose) for s in profile.strengths):
        factors.append(Factor(
            name="Dose not in formulations",
            impact_percent=DOSE_NOT_FORMULATED_PENALTY,
            detail=f"{dose} not among available strengths ({', '.join(profile.strengths)})",
        ))
    return factors
