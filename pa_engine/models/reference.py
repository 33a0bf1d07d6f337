"""Medication reference set - the local drug database used for fallbacks and alternatives."""
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class MedicationReference(BaseModel):
    """Static profile of one medication. Reference-set order is candidate priority."""
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    name: str
    generic_name: str
    category: str
    indication: str
    starting_dose: str
    max_dose: Optional[str] = None
    available_strengths: List[str] = Field(default_factory=list)
    fda_approved: bool = True
    rxcui: Optional[str] = None

    @property
    def display_name(self) -> str:
        return f"{self.name} ({self.generic_name})"


def find_reference(references: List[MedicationReference], drug_name: str) -> Optional[MedicationReference]:
    """Case/whitespace-insensitive lookup by brand name."""
    key = " ".join(drug_name.split()).casefold()
    for ref in references:
        if " ".join(ref.name.split()).casefold() == key:
            return ref
    return None
