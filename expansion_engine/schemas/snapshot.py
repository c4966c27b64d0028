"""
The context document handed to the judge.
"""
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class EvaluationContext(BaseModel):
    evaluation_month: str  # YYYY-MM-DD
    data_quality_score: int = Field(ge=0, le=100)


class AccountProfile(BaseModel):
    account_name: str
    domain: str
    arr: Optional[float] = None
    renewal_date: Optional[str] = None
    segment: Optional[str] = None


class SnapshotSignal(BaseModel):
    signal_type: str
    signal_category: Literal['EXPANSION', 'RISK', 'REENGAGE']
    signal_value: float
    signal_score: int
    signal_timestamp: str


class SnapshotLiftStat(BaseModel):
    signal_type: str
    expansion_rate: float
    non_expansion_rate: float
    lift_ratio: float = Field(ge=0)
    sample_size: int


class ContextSnapshot(BaseModel):
    evaluation_context: EvaluationContext
    account_profile: AccountProfile
    atomic_signals: List[SnapshotSignal]
    historical_signal_stats: List[SnapshotLiftStat]
