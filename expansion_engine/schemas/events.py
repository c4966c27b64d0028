"""
Schemas for event extraction output and stored event payloads.
"""
from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field

EventType = Literal[
    'EXEC_HIRE_LD',
    'EXEC_DEPARTURE_LD',
    'LAYOFF',
    'HEADCOUNT_GROWTH',
    'HEADCOUNT_DECLINE',
]


class ExtractedEvent(BaseModel):
    model_config = ConfigDict(strict=True)

    event_type: EventType
    event_ts: str
    confidence: float = Field(ge=0, le=1)
    summary: str


class ExtractionOutput(BaseModel):
    """Top-level shape the extraction prompt must return."""
    model_config = ConfigDict(strict=True)

    events: List[ExtractedEvent]


class EventPayload(BaseModel):
    """Stored in external_events.payload_json."""
    summary: str = ''
    confidence: float = Field(ge=0, le=1)
