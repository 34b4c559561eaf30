"""Error taxonomy for the time-card pipeline."""
from typing import List, Optional


class TimecardError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(TimecardError):
    """A required credential or setting is missing. Raised before any OCR call."""


class ExtractionError(TimecardError):
    """The OCR payload was unusable for a single image."""

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        self.stage = stage


class ExportError(TimecardError):
    """A spreadsheet write failed. Never fails the extraction itself."""


class QuotaExceededError(TimecardError):
    """The caller has used up today's extraction allowance."""

    def __init__(self, message: str, count: int, limit: int):
        super().__init__(message)
        self.count = count
        self.limit = limit


class BatchFailedError(TimecardError):
    """Every image in a batch failed."""

    def __init__(self, message: str, results: Optional[List] = None):
        super().__init__(message)
        self.results = results or []
