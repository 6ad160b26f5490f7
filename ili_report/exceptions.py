"""Exceptions raised by the ILI report pipeline."""


class SourceNotFoundError(FileNotFoundError):
    """An input file required by the report does not exist."""


class DataValidationError(ValueError):
    """An input table has missing columns or malformed rows."""


class RateComputationError(ValueError):
    """A rate join produced an undefined or ambiguous denominator."""
