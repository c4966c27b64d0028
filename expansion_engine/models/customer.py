"""
Customer model — one row per account, keyed by canonical domain.
"""
from sqlalchemy import Column, Integer, Float, Text, Date, DateTime, JSON
from sqlalchemy.sql import func

from expansion_engine.database import Base


class Customer(Base):
    __tablename__ = 'customers'

    id = Column(Integer, primary_key=True, autoincrement=True)
    domain = Column(Text, nullable=False, unique=True)
    account_id = Column(Text, nullable=True, index=True)  # CRM key, joins opportunities
    account_name = Column(Text, default='')
    website = Column(Text, nullable=True)
    arr = Column(Float, nullable=True)
    renewal_date = Column(Date, nullable=True)
    segment = Column(Text, nullable=True)
    status = Column(Text, nullable=True)
    licensed_seats = Column(Integer, nullable=True)
    extra = Column(JSON, nullable=True)
    last_enriched_at = Column(DateTime(timezone=True), nullable=True)
    last_enrichment_run_id = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def to_dict(self):
        return {
            'domain': self.domain,
            'account_id': self.account_id,
            'account_name': self.account_name,
            'website': self.website,
            'arr': self.arr,
            'renewal_date': self.renewal_date.isoformat() if self.renewal_date else None,
            'segment': self.segment,
            'status': self.status,
            'licensed_seats': self.licensed_seats,
            'last_enriched_at': self.last_enriched_at.isoformat() if self.last_enriched_at else None,
            'last_enrichment_run_id': self.last_enrichment_run_id,
        }
