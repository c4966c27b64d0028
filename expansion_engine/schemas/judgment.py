"""
Schema the judge's response must satisfy. No field has a default.
"""
from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field


class EvidenceItem(BaseModel):
    model_config = ConfigDict(strict=True)

    signal_type: str
    lift_ratio: float
    direction: Literal['positive_expansion', 'positive_risk', 'conflicting']
    confidence: Literal['high', 'medium', 'low']


class Judgment(BaseModel):
    model_config = ConfigDict(strict=True)

    expansion_score: float = Field(ge=0, le=100)
    risk_score: float = Field(ge=0, le=100)
    recommended_motion: Literal['EXPAND', 'MONITOR', 'SAVE']
    evidence_used: List[EvidenceItem]
    why_now: str
    reasoning: str
