"""
CRM opportunities — the lift calculator's ground truth for realized expansion.
"""
from sqlalchemy import Column, Integer, Float, Text, Date, JSON

from expansion_engine.database import Base


class Opportunity(Base):
    __tablename__ = 'opportunities'

    id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(Text, nullable=False, index=True)
    opportunity_id = Column(Text, nullable=True)
    type = Column(Text, nullable=True)   # e.g. "Expansion", "New Business", "Renewal"
    stage = Column(Text, nullable=True)  # e.g. "Closed Won"
    created_date = Column(Date, nullable=True)
    close_date = Column(Date, nullable=True)
    amount = Column(Float, nullable=True)
    extra = Column(JSON, nullable=True)
