"""
Atomic signals (upserted per domain/month/type) and lift stats (appended).
"""
from sqlalchemy import Column, Integer, Float, Text, Date, DateTime, UniqueConstraint
from sqlalchemy.sql import func

from expansion_engine.database import Base


class AtomicSignal(Base):
    __tablename__ = 'atomic_signals'

    id = Column(Integer, primary_key=True, autoincrement=True)
    domain = Column(Text, nullable=False, index=True)
    month = Column(Date, nullable=False)
    signal_type = Column(Text, nullable=False)
    signal_value = Column(Float, nullable=False, default=0)
    signal_score = Column(Integer, nullable=False, default=0)  # 0..100
    signal_timestamp = Column(Date, nullable=False)
    signal_version = Column(Text, nullable=False)

    __table_args__ = (
        UniqueConstraint('domain', 'month', 'signal_type', name='uq_atomic_signal_key'),
    )


class LiftStat(Base):
    __tablename__ = 'lift_stats'

    id = Column(Integer, primary_key=True, autoincrement=True)
    signal_type = Column(Text, nullable=False, index=True)
    expansion_rate = Column(Float, nullable=False)
    non_expansion_rate = Column(Float, nullable=False)
    lift_ratio = Column(Float, nullable=False)
    sample_size = Column(Integer, nullable=False)
    lift_stats_version = Column(Text, nullable=False)
    computed_at = Column(DateTime(timezone=True), server_default=func.now())

    def to_dict(self):
        return {
            'signal_type': self.signal_type,
            'expansion_rate': self.expansion_rate,
            'non_expansion_rate': self.non_expansion_rate,
            'lift_ratio': self.lift_ratio,
            'sample_size': self.sample_size,
        }
