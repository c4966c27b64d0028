"""
Prompt registry — Markdown files under expansion_engine/prompts plus DB prompts.

File prompt ids look like "events/ExpansionEventsV2"; DB prompts are
addressed by UUID.
"""
import logging
import re
from pathlib import Path

from expansion_engine.config import DEFAULT_EVALUATION_PROMPT_ID
from expansion_engine.database import get_session
from expansion_engine.errors import ConfigurationError
from expansion_engine.models.prompt import Prompt

logger = logging.getLogger('services.prompts')

PROMPTS_DIR = Path(__file__).resolve().parent.parent / 'prompts'
PROMPT_KINDS = ('events', 'evaluation')

_UUID_RE = re.compile(r'^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$', re.I)
_NAME_RE = re.compile(r'^[A-Za-z0-9_-]+$')


def is_uuid(value) -> bool:
    return bool(value) and bool(_UUID_RE.match(str(value).strip()))


def _display_name(base_id):
    name = re.sub(r'[-_]+', ' ', base_id)
    return name[:1].upper() + name[1:]


def list_file_prompts(kind):
    """Prompt metadata for one kind, sorted by id."""
    directory = PROMPTS_DIR / kind
    if not directory.is_dir():
        return []
    return sorted(
        ({'id': f'{kind}/{p.stem}', 'name': _display_name(p.stem), 'source': 'file'}
         for p in directory.glob('*.md')),
        key=lambda m: m['id'],
    )


def list_prompts():
    """All prompts grouped by kind: file prompts first, then DB prompts."""
    result = {kind: list_file_prompts(kind) for kind in PROMPT_KINDS}
    session = get_session()
    try:
        for row in session.query(Prompt).order_by(Prompt.created_at).all():
            result.setdefault(row.kind, []).append(
                {'id': row.id, 'name': row.name, 'source': 'db', 'version': row.version}
            )
    finally:
        session.close()
    return result


def _resolve_file(prompt_id):
    """Map a prompt id to a file under PROMPTS_DIR, or None if it is not a valid id."""
    if '/' in prompt_id:
        kind, _, name = prompt_id.partition('/')
        if kind in PROMPT_KINDS and _NAME_RE.match(name):
            return [PROMPTS_DIR / kind / f'{name}.md']
        return []
    if not _NAME_RE.match(prompt_id):
        return []
    # Bare names are searched under every kind
    return [PROMPTS_DIR / kind / f'{prompt_id}.md' for kind in PROMPT_KINDS]


def get_prompt_content(prompt_id):
    """Return the prompt body for prompt_id, or None if no such prompt exists."""
    if not prompt_id or not str(prompt_id).strip():
        return None
    prompt_id = str(prompt_id).strip()

    if is_uuid(prompt_id):
        session = get_session()
        try:
            row = session.get(Prompt, prompt_id)
            if row and row.content:
                return row.content
        finally:
            session.close()

    for path in _resolve_file(prompt_id):
        if path.is_file():
            return path.read_text(encoding='utf-8')

    logger.warning("Prompt %s not found", prompt_id)
    return None


def resolve_evaluation_prompt(prompt_id=None):
    """The judge's system prompt: the run's prompt if set, else the packaged default."""
    content = get_prompt_content(prompt_id) if prompt_id else None
    if content is None:
        content = get_prompt_content(DEFAULT_EVALUATION_PROMPT_ID)
    if content is None:
        raise ConfigurationError(f"Evaluation prompt not found: {prompt_id or DEFAULT_EVALUATION_PROMPT_ID}")
    return content
