"""
External events and the raw search/fetch artifacts they were extracted from.

external_events is append-only. Search results and articles are kept for audit.
"""
from sqlalchemy import Column, Integer, Float, Text, DateTime, JSON
from sqlalchemy.sql import func

from expansion_engine.database import Base


EVENT_TYPES = (
    'EXEC_HIRE_LD',
    'EXEC_DEPARTURE_LD',
    'LAYOFF',
    'HEADCOUNT_GROWTH',
    'HEADCOUNT_DECLINE',
)


class ExternalEvent(Base):
    __tablename__ = 'external_events'

    id = Column(Integer, primary_key=True, autoincrement=True)
    domain = Column(Text, nullable=False, index=True)
    event_type = Column(Text, nullable=False)
    event_ts = Column(DateTime(timezone=True), nullable=True)
    source = Column(Text, nullable=True)
    source_url = Column(Text, nullable=True)
    confidence = Column(Float, nullable=True)
    payload_json = Column(JSON, nullable=True)  # {"summary": ..., "confidence": ...}
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    @property
    def summary(self):
        return (self.payload_json or {}).get('summary') or ''


class ExternalSearchResult(Base):
    __tablename__ = 'external_search_results'

    id = Column(Integer, primary_key=True, autoincrement=True)
    domain = Column(Text, nullable=False, index=True)
    query = Column(Text, nullable=False)
    category = Column(Text, nullable=True)
    provider = Column(Text, nullable=True)
    url = Column(Text, nullable=False)
    title = Column(Text, nullable=True)
    snippet = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class ExternalArticle(Base):
    __tablename__ = 'external_articles_raw'

    id = Column(Integer, primary_key=True, autoincrement=True)
    domain = Column(Text, nullable=False, index=True)
    url = Column(Text, nullable=False)
    published_date = Column(Text, nullable=True)
    text = Column(Text, nullable=True)
    content_length = Column(Integer, nullable=True)
    fetched_at = Column(DateTime(timezone=True), server_default=func.now())
