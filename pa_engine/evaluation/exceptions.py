"""Exceptions for the criteria evaluation engine."""


class ConfigurationError(Exception):
    """Coverage configuration is missing or invalid. Evaluation does not proceed."""
    pass


class CoverageNotFoundError(ConfigurationError):
    """No coverage record for the (plan, drug) pair after normalization."""

    def __init__(self, plan: str, drug: str):
        self.plan = plan
        self.drug = drug
        super().__init__(f"No coverage found for '{drug}' under '{plan}'")


class MalformedCriterionError(ConfigurationError):
    """A coverage record or criterion failed validation while loading."""
    pass


class DoseNotInScheduleError(Exception):
    """Selected dose is not part of the drug's titration schedule."""

    def __init__(self, drug: str, dose: str):
        self.drug = drug
        self.dose = dose
        super().__init__(f"Dose '{dose}' is not in the schedule for '{drug}'")


class UnsupportedCriterionError(Exception):
    """No evaluator exists for a criterion type."""

    def __init__(self, criterion_type: str):
        self.criterion_type = criterion_type
        super().__init__(f"No evaluator registered for criterion type '{criterion_type}'")


class MetadataLookupError(Exception):
    """External drug metadata could not be retrieved."""
    pass
