"""
Layer 4: language-model extraction of typed events from article text.

The response must validate against ExtractionOutput; anything else raises
EventExtractionError for that article only. Events below the confidence
threshold are dropped here.
"""
import json
import logging
from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import urlparse

from pydantic import ValidationError

from expansion_engine.config import (
    DEFAULT_EVENT_PROMPT_ID, EVENT_CONFIDENCE_THRESHOLD, FETCH_MAX_CHARS,
)
from expansion_engine.errors import EventExtractionError
from expansion_engine.schemas.events import EventPayload, ExtractionOutput
from expansion_engine.services import llm_client
from expansion_engine.services.prompts import get_prompt_content

logger = logging.getLogger('pipeline.event_extract')

FALLBACK_EVENT_PROMPT = (
    "You extract structured events from article text. "
    'Return JSON: {"events": []}.'
)


@dataclass
class CandidateEvent:
    domain: str
    event_type: str
    event_ts: str
    confidence: float
    summary: str
    source: Optional[str] = None
    source_url: Optional[str] = None

    def payload(self):
        return EventPayload(summary=self.summary, confidence=self.confidence).model_dump()

    def to_log_dict(self):
        return {
            'event_type': self.event_type,
            'event_ts': self.event_ts,
            'confidence': self.confidence,
            'summary': self.summary[:120],
        }


def hostname(url) -> Optional[str]:
    try:
        return urlparse(url).hostname
    except ValueError:
        return None


def build_user_message(domain, article_text, source_url, published_date=None) -> str:
    return json.dumps({
        'domain': domain,
        'article_text': (article_text or '')[:FETCH_MAX_CHARS],
        'source_url': source_url,
        'published_date': published_date,
    })


def parse_extraction(raw_text) -> ExtractionOutput:
    try:
        return ExtractionOutput.model_validate(llm_client.parse_json_object(raw_text))
    except (ValueError, ValidationError) as e:
        raise EventExtractionError(f"Invalid extraction output: {e}", raw=raw_text) from e


def extract_events_from_article(domain, article_text, source_url, published_date=None,
                                event_prompt_id=None) -> List[CandidateEvent]:
    system_prompt = get_prompt_content(event_prompt_id or DEFAULT_EVENT_PROMPT_ID) or FALLBACK_EVENT_PROMPT
    user_message = build_user_message(domain, article_text, source_url, published_date)

    raw = llm_client.complete(system_prompt, user_message, temperature=0)
    output = parse_extraction(raw)

    source = hostname(source_url)
    candidates = [
        CandidateEvent(
            domain=domain,
            event_type=event.event_type,
            event_ts=event.event_ts,
            confidence=event.confidence,
            summary=event.summary,
            source=source,
            source_url=source_url,
        )
        for event in output.events
        if event.confidence >= EVENT_CONFIDENCE_THRESHOLD
    ]
    dropped = len(output.events) - len(candidates)
    if dropped:
        logger.debug("Dropped %d low-confidence events from %s", dropped, source_url)
    return candidates
