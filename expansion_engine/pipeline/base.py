"""
Pipeline contracts — run steps, statuses and the values stages hand back.

Each stage function returns a StageResult; the orchestrator persists the
step it names. Stages never write run status themselves.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List


class RunStep(str, Enum):
    CREATED = 'created'
    QUERY_BUILDER = 'external_events_query_builder'
    SEARCH = 'external_events_search'
    FETCH = 'external_events_fetch'
    EXTRACT = 'external_events_extract'
    DEDUPE_STORE = 'external_events_dedupe_store'
    ATOMIC_SIGNALS = 'atomic_signals'
    LIFT_STATS = 'lift_stats'
    LLM_EVAL = 'llm_eval'
    COMPLETED = 'completed'


# Log-only step tag for enrichment start/finish entries
EXTERNAL_EVENTS_STEP = 'external_events'


class RunStatus(str, Enum):
    PENDING = 'pending'
    RUNNING = 'running'
    COMPLETED = 'completed'
    FAILED = 'failed'
    PARTIAL = 'partial'
    HALTED = 'halted'


@dataclass
class StageResult:
    """Uniform output from every run stage."""
    step: RunStep
    processed: int = 0
    failed: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)
    meta: Dict[str, Any] = field(default_factory=dict)


@dataclass
class EnrichmentSummary:
    domains_processed: int = 0
    domains_skipped: int = 0
    articles_fetched: int = 0
    articles_failed: int = 0
    events_stored: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self):
        return {
            'domains_processed': self.domains_processed,
            'domains_skipped': self.domains_skipped,
            'articles_fetched': self.articles_fetched,
            'articles_failed': self.articles_failed,
            'events_stored': self.events_stored,
            'errors': list(self.errors),
        }

    def to_config(self):
        """Keys under which the summary is merged into Run.config."""
        return {f'external_events_{k}': v for k, v in self.to_dict().items()}

    def to_stage_result(self):
        return StageResult(
            step=RunStep.DEDUPE_STORE,
            processed=self.domains_processed,
            failed=self.articles_failed,
            skipped=self.domains_skipped,
            errors=list(self.errors),
            meta=self.to_dict(),
        )
