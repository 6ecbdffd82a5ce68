"""
Exception hierarchy for assessment intelligence.

Missing or thin data is never an error here: analysis degrades to empty
results instead. These exceptions cover caller mistakes only, such as an
unknown option value, a malformed environment setting, or a subject id
that is not in the collection.
"""

from __future__ import annotations


class AssessmentError(Exception):
    """Base exception for all assessment intelligence failures."""

    def __init__(self, code: str, message: str, details: dict | None = None):
        self.code = code
        self.details = details or {}
        super().__init__(message)


class InvalidOptionError(AssessmentError):
    """An analysis option was given a value outside its allowed set."""

    def __init__(self, option: str, value: object, allowed: tuple[str, ...]):
        super().__init__(
            "INVALID_OPTION",
            f"Invalid value {value!r} for option '{option}'. "
            f"Expected one of: {', '.join(allowed)}.",
            {"option": option, "value": value, "allowed": list(allowed)},
        )


class ConfigurationError(AssessmentError):
    """An environment variable could not be parsed into a setting."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("CONFIGURATION_INVALID", message, details)


class PropertyNotFoundError(AssessmentError):
    """The requested subject property is not part of the supplied collection."""

    def __init__(self, property_id: str):
        super().__init__(
            "PROPERTY_NOT_FOUND",
            f"Property '{property_id}' is not in the supplied collection.",
            {"property_id": property_id},
        )
