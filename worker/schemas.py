"""Pydantic models shared by the extraction pipeline, exporters and API."""
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from durations import format_minutes, row_total_minutes

NO_NAME_DETECTED = '検出なし'
FAILED_RESULT_NAME = 'エラー'


# ===========================================
# Untrusted OCR payload
# ===========================================

class RawExtractionRow(BaseModel):
    """Single row exactly as returned by the OCR service. Nothing is trusted."""
    model_config = ConfigDict(extra='ignore')

    dayInt: Any = Field(None, description="The numeric day of the month (1-31)")
    date: Any = Field(None, description="The day label as printed on the card, digits only")
    dayOfWeek: Any = Field(None, description="Single-character weekday label, e.g. '月', '土'")
    startTime1: Any = Field(None, description="First period clock-in time, HH:mm 24-hour")
    endTime1: Any = Field(None, description="First period clock-out time, HH:mm 24-hour")
    startTime2: Any = Field(None, description="Second period clock-in time, HH:mm 24-hour")
    endTime2: Any = Field(None, description="Second period clock-out time, HH:mm 24-hour")


class RawExtractionPayload(BaseModel):
    """Top-level object the OCR service is asked to return."""
    model_config = ConfigDict(extra='ignore')

    name: Any = Field(None, description="Employee name (氏名) found on the card, or null")
    entries: List[RawExtractionRow] = Field(default_factory=list)


# ===========================================
# Trusted, post-processing records
# ===========================================

class TimeEntry(BaseModel):
    """One calendar day of a reconstructed attendance table."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    day_int: int = Field(..., alias='dayInt')
    date: str = ''
    day_of_week: str = Field('', alias='dayOfWeek')
    start_time1: str = Field('', alias='startTime1')
    end_time1: str = Field('', alias='endTime1')
    start_time2: str = Field('', alias='startTime2')
    end_time2: str = Field('', alias='endTime2')

    @property
    def total_minutes(self) -> int:
        return row_total_minutes(self)

    @property
    def total_hours(self) -> str:
        return format_minutes(self.total_minutes)

    def to_wire(self) -> Dict[str, Any]:
        payload = self.model_dump(by_alias=True)
        payload['totalHours'] = self.total_hours
        return payload


class ExtractionResult(BaseModel):
    """Outcome of processing one image."""
    model_config = ConfigDict(frozen=True)

    entries: Tuple[TimeEntry, ...] = ()
    detected_name: str = ''
    file_name: Optional[str] = None
    offset: Optional[int] = None
    model_name: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def display_name(self) -> str:
        return self.detected_name or NO_NAME_DETECTED

    @classmethod
    def failed(cls, file_name: Optional[str], error: str) -> 'ExtractionResult':
        """Placeholder recorded for an image whose extraction failed."""
        return cls(detected_name=FAILED_RESULT_NAME, file_name=file_name, error=error)

    def to_wire(self) -> Dict[str, Any]:
        return {
            'fileName': self.file_name,
            'detectedName': self.display_name,
            'entries': [entry.to_wire() for entry in self.entries],
            'offset': self.offset,
            'modelName': self.model_name,
            'error': self.error,
        }

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> 'ExtractionResult':
        """Rebuild a result posted back by a client (e.g. after manual edits)."""
        return cls(
            entries=tuple(TimeEntry.model_validate(entry) for entry in data.get('entries') or []),
            detected_name=str(data.get('detectedName') or ''),
            file_name=data.get('fileName'),
        )
