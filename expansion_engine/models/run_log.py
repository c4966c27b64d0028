"""
Append-only run log — one row per (run_id, seq).
"""
from sqlalchemy import Column, Integer, Text, DateTime, JSON, UniqueConstraint
from sqlalchemy.sql import func

from expansion_engine.database import Base


class RunLogEntry(Base):
    __tablename__ = 'run_log'

    id = Column(Integer, primary_key=True, autoincrement=True)
    run_id = Column(Text, nullable=False, index=True)
    seq = Column(Integer, nullable=False)
    ts = Column(DateTime(timezone=True), server_default=func.now())
    level = Column(Text, nullable=False, default='info')
    domain = Column(Text, nullable=True)
    step = Column(Text, nullable=True)
    message = Column(Text, nullable=False)
    detail = Column(JSON, nullable=True)

    __table_args__ = (
        UniqueConstraint('run_id', 'seq', name='uq_run_log_seq'),
    )

    def to_dict(self):
        return {
            'seq': self.seq,
            'ts': self.ts.isoformat() if self.ts else None,
            'level': self.level,
            'domain': self.domain,
            'step': self.step,
            'message': self.message,
            'detail': self.detail,
        }
