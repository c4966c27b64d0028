"""
Monthly product telemetry — one row per (domain, month).
"""
from sqlalchemy import Column, Integer, Float, Text, Date, JSON, UniqueConstraint

from expansion_engine.database import Base


class Telemetry(Base):
    __tablename__ = 'telemetry'

    id = Column(Integer, primary_key=True, autoincrement=True)
    domain = Column(Text, nullable=False, index=True)
    month = Column(Date, nullable=False)  # first day of the month
    active_users_30d = Column(Integer, nullable=True)
    licensed_seats = Column(Integer, nullable=True)
    feature_adoption_score = Column(Float, nullable=True)  # 0..1
    extra = Column(JSON, nullable=True)

    __table_args__ = (
        UniqueConstraint('domain', 'month', name='uq_telemetry_domain_month'),
    )
