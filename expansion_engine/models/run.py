"""
Run record — the unit of work, with live progress pointers.
"""
from sqlalchemy import Column, Text, Integer, Date, DateTime, JSON
from sqlalchemy.sql import func

from expansion_engine.database import Base


class Run(Base):
    __tablename__ = 'runs'

    id = Column(Text, primary_key=True)
    evaluation_month = Column(Date, nullable=False)
    prompt_id = Column(Text, nullable=True)
    prompt_version = Column(Text, nullable=True)
    signal_version = Column(Text, nullable=True)
    lift_stats_version = Column(Text, nullable=True)
    engine_version = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default='pending')
    processed_count = Column(Integer, nullable=False, default=0)
    total_accounts = Column(Integer, nullable=False, default=0)
    last_processed_index = Column(Integer, nullable=True)  # 0-based into the run's slice
    current_step = Column(Text, default='created')
    current_domain = Column(Text, nullable=True)
    substep_label = Column(Text, nullable=True)
    config = Column(JSON, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def to_dict(self):
        return {
            'id': self.id,
            'evaluation_month': self.evaluation_month.isoformat() if self.evaluation_month else None,
            'prompt_id': self.prompt_id,
            'prompt_version': self.prompt_version,
            'signal_version': self.signal_version,
            'lift_stats_version': self.lift_stats_version,
            'engine_version': self.engine_version,
            'status': self.status,
            'processed_count': self.processed_count or 0,
            'total_accounts': self.total_accounts or 0,
            'last_processed_index': self.last_processed_index,
            'current_step': self.current_step,
            'current_domain': self.current_domain,
            'substep_label': self.substep_label,
            'config': self.config or {},
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }
