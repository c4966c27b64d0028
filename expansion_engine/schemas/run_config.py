"""
Run.config blob. Validated when a run is created and whenever it is read back.
"""
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

RunType = Literal['full', 'evaluation_only', 'enrichment_only']


class RunConfig(BaseModel):
    model_config = ConfigDict(extra='ignore')

    run_type: RunType = 'full'
    start_row: int = Field(default=1, ge=1)  # 1-based into the domain-ordered customer list
    event_prompt_id: Optional[str] = None
    prompt_id: Optional[str] = None
    prompt_version: Optional[str] = None
    domain: Optional[str] = None  # enrichment_only runs

    external_events_domains_processed: Optional[int] = None
    external_events_domains_skipped: Optional[int] = None
    external_events_articles_fetched: Optional[int] = None
    external_events_articles_failed: Optional[int] = None
    external_events_events_stored: Optional[int] = None
    external_events_errors: List[str] = Field(default_factory=list)

    @classmethod
    def from_blob(cls, blob):
        return cls.model_validate(blob or {})

    def to_blob(self):
        return self.model_dump(exclude_none=True)

    def enrichment_summary(self):
        """Summary counters as stored by the enrichment stage, or None if never run."""
        if self.external_events_domains_processed is None:
            return None
        return {
            'domains_processed': self.external_events_domains_processed,
            'domains_skipped': self.external_events_domains_skipped or 0,
            'articles_fetched': self.external_events_articles_fetched or 0,
            'articles_failed': self.external_events_articles_failed or 0,
            'events_stored': self.external_events_events_stored or 0,
            'errors': list(self.external_events_errors),
        }
