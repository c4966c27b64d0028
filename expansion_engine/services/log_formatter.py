"""
Human-readable rendering of run log entries for the log API and CLI.
"""
import json


def _num(value):
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return value
    return 0


def _plural(count, singular, plural=None):
    word = singular if count == 1 else (plural or singular + 's')
    return f"{count} {word}"


def _shorten(text, width=50):
    text = str(text or '')
    return text if len(text) <= width else text[:width - 3] + '...'


def humanize_log_entry(entry):
    """Render one run log entry dict as a single operator-facing sentence."""
    level = entry.get('level')
    domain = entry.get('domain')
    step = entry.get('step')
    message = entry.get('message') or ''
    d = entry.get('detail') or {}
    for_domain = f" for {domain}" if domain else ''

    if level == 'warn' and message.startswith('Search failed for'):
        return message
    if level == 'error' and message.startswith('Domain ') and ' failed:' in message:
        return message

    if step == 'external_events':
        if message == 'External events enrichment started':
            count = _num(d.get('domain_count'))
            cap = _num(d.get('max_domains'))
            suffix = f" (max {cap})" if cap > 0 else ''
            return f"Starting external events enrichment for {_plural(count, 'domain')}{suffix}."
        if message == 'External events enrichment finished':
            return (f"Enrichment finished: {_plural(_num(d.get('domains_processed')), 'domain')} processed, "
                    f"{_plural(_num(d.get('events_stored')), 'event')} stored.")

    elif step == 'external_events_query_builder':
        if message.startswith('Queries built for '):
            return f"Built {_plural(_num(d.get('count')), 'search query', 'search queries')}{for_domain}."

    elif step == 'external_events_search':
        if message.startswith('Search query: '):
            query = f' "{d["query"]}"' if d.get('query') else ''
            return (f"Searched for {d.get('category', '')}{query}: "
                    f"found {_plural(_num(d.get('result_count')), 'result')}.")
        if message.startswith('Search results for '):
            return f"Found {_plural(_num(d.get('url_count')), 'article')}{for_domain}."

    elif step == 'external_events_fetch':
        if message == 'Article fetch':
            url = _shorten(d.get('url'))
            if d.get('reason'):
                return f"Skipped article ({d['reason']}): {url}"
            return f"Fetched article: {d.get('status', '')} {url}"

    elif step == 'external_events_extract':
        if message == 'LLM extract input':
            return f"Extracting events from article ({_num(d.get('article_text_length')):,} chars)."
        if message == 'LLM extract output':
            events = d.get('events') if isinstance(d.get('events'), list) else []
            return f"Extracted {_plural(len(events), 'event')} from article."
        if message.startswith('Article extracted: '):
            return (f"Article done: {_plural(_num(d.get('events_extracted')), 'event')} extracted, "
                    f"{_num(d.get('events_stored'))} stored.")

    elif step == 'external_events_dedupe_store':
        if message == 'Dedupe skip':
            reason = d.get('reason') or 'already stored'
            return f"Skipped duplicate event ({reason}): {d.get('event_type', '')} at {d.get('event_ts', '')}"
        if message == 'Dedupe insert':
            return f"Stored new event: {d.get('event_type', '')} at {d.get('event_ts', '')}"
        if message.startswith('Domain ') and message.endswith(' completed'):
            return (f"Completed{for_domain}: {_plural(_num(d.get('articles_fetched')), 'article')}, "
                    f"{_plural(_num(d.get('events_from_domain')), 'event')} stored.")

    elif step == 'atomic_signals' and message == 'Computing atomic signals':
        return "Computing atomic signals."

    elif step == 'lift_stats' and message == 'Computing lift stats':
        return "Computing lift stats."

    elif step == 'llm_eval':
        if message == 'LLM evaluation started':
            return f"Starting LLM evaluation for {_plural(_num(d.get('total_customers')), 'customer')}."
        if message.startswith('Evaluating '):
            return f"Evaluating {domain or 'customer'}."
        if message.startswith('Done '):
            return f"Finished evaluating {domain or 'customer'}."
        if message == 'LLM evaluation finished':
            return (f"LLM evaluation done: {_num(d.get('processed_count'))} of "
                    f"{_num(d.get('total_customers'))} customers.")

    if message:
        return f"{domain}: {message}" if domain else message

    fallback = {'error': 'Error', 'warn': 'Warning'}.get(level)
    fallback = f"{fallback}{for_domain}" if fallback else 'Info'
    return f"{fallback}: {json.dumps(d)}" if d else fallback
