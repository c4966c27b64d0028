"""
Per-(run, domain) context snapshots and LLM evaluations.

An LlmEvaluation row for (run_id, domain) marks that domain as done.
"""
from sqlalchemy import Column, Integer, Float, Text, DateTime, JSON, UniqueConstraint
from sqlalchemy.sql import func

from expansion_engine.database import Base


class AccountContextSnapshot(Base):
    __tablename__ = 'account_context_snapshots'

    id = Column(Integer, primary_key=True, autoincrement=True)
    run_id = Column(Text, nullable=False, index=True)
    domain = Column(Text, nullable=False)
    snapshot_json = Column(JSON, nullable=False)
    data_quality_score = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint('run_id', 'domain', name='uq_snapshot_run_domain'),
    )


class LlmEvaluation(Base):
    __tablename__ = 'llm_evaluations'

    id = Column(Integer, primary_key=True, autoincrement=True)
    run_id = Column(Text, nullable=False, index=True)
    domain = Column(Text, nullable=False)
    prompt_version = Column(Text, nullable=True)
    signal_version = Column(Text, nullable=True)
    lift_stats_version = Column(Text, nullable=True)
    engine_version = Column(Text, nullable=True)
    model_name = Column(Text, nullable=True)
    expansion_score = Column(Float, nullable=False)
    risk_score = Column(Float, nullable=False)
    recommended_motion = Column(Text, nullable=False)
    why_now = Column(Text, default='')
    reasoning = Column(Text, default='')
    evidence_used = Column(JSON, default=list)
    raw_response = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint('run_id', 'domain', name='uq_evaluation_run_domain'),
    )
