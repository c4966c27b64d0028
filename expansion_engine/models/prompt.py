"""
Prompt bodies stored in the database, addressed by UUID.
"""
from sqlalchemy import Column, Text, DateTime
from sqlalchemy.sql import func

from expansion_engine.database import Base


class Prompt(Base):
    __tablename__ = 'prompts'

    id = Column(Text, primary_key=True)  # uuid4 string
    name = Column(Text, nullable=False)
    kind = Column(Text, nullable=False)  # "events" or "evaluation"
    content = Column(Text, nullable=False)
    version = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
